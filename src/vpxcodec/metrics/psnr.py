"""Host-side PSNR between two frames.

Uses the same definitions as the encoder's own PSNR packets:
- entry 0 covers all planes together, entries 1..3 cover Y, U and V
- peak value 255 (8-bit samples)
- identical planes and anything above MAX_PSNR report MAX_PSNR
Only the visible area of each plane is compared, never stride padding.
"""

from __future__ import annotations

import math

import numpy as np

from vpxcodec.models.frame import Frame
from vpxcodec.models.packet import Psnr

MAX_PSNR = 100.0
PEAK = 255.0


def sse_to_psnr(samples: int, sse: int, peak: float = PEAK) -> float:
    """PSNR in dB for `samples` values with a total squared error `sse`."""
    if sse <= 0:
        return MAX_PSNR
    return min(10.0 * math.log10(samples * peak * peak / sse), MAX_PSNR)


def compute_psnr(reference: Frame, distorted: Frame) -> Psnr:
    """Compare two frames plane by plane.

    Args:
        reference: Source frame.
        distorted: Frame to score, e.g. the decoder's output.

    Returns:
        Psnr with total, Y, U and V entries.

    Raises:
        ValueError: If the frames differ in size or pixel format.
    """
    if (reference.width, reference.height) != (distorted.width, distorted.height):
        raise ValueError(
            f"Frame sizes differ: {reference.width}x{reference.height} "
            f"vs {distorted.width}x{distorted.height}"
        )
    if reference.format != distorted.format:
        raise ValueError(
            f"Pixel formats differ: {reference.format.name} vs {distorted.format.name}"
        )

    samples = []
    sse = []
    for index in range(3):
        ref = reference.plane(index).astype(np.int64)
        dist = distorted.plane(index).astype(np.int64)
        samples.append(int(ref.size))
        sse.append(int(np.sum((ref - dist) ** 2)))

    total_samples = sum(samples)
    total_sse = sum(sse)
    return Psnr(
        samples=(total_samples, *samples),
        sse=(total_sse, *sse),
        psnr=(
            sse_to_psnr(total_samples, total_sse),
            *(sse_to_psnr(n, e) for n, e in zip(samples, sse)),
        ),
    )
