"""Host-side frame representation.

A Frame owns one numpy array per plane. Each array is 2-D uint8 shaped
(rows, stride): the row stride is the array's second dimension, and the
visible picture is the top-left (plane_height, plane_width) window.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from fractions import Fraction

import numpy as np


@dataclass(frozen=True)
class PixelFormat:
    """Planar YUV layout descriptor.

    Attributes:
        name: Short name (ffmpeg style).
        planes: Number of planes.
        x_chroma_shift: Horizontal subsampling of planes 1 and 2 (log2).
        y_chroma_shift: Vertical subsampling of planes 1 and 2 (log2).
        bits_per_pixel: Average bits per pixel over all planes.
    """

    name: str
    planes: int
    x_chroma_shift: int
    y_chroma_shift: int
    bits_per_pixel: int

    def plane_width(self, index: int, width: int) -> int:
        """Width in samples of plane `index` for a picture `width` wide."""
        if index == 0:
            return width
        return (width + (1 << self.x_chroma_shift) - 1) >> self.x_chroma_shift

    def plane_height(self, index: int, height: int) -> int:
        """Height in rows of plane `index` for a picture `height` tall."""
        if index == 0:
            return height
        return (height + (1 << self.y_chroma_shift) - 1) >> self.y_chroma_shift


YUV420 = PixelFormat("yuv420p", planes=3, x_chroma_shift=1, y_chroma_shift=1, bits_per_pixel=12)
YUV422 = PixelFormat("yuv422p", planes=3, x_chroma_shift=1, y_chroma_shift=0, bits_per_pixel=16)
YUV440 = PixelFormat("yuv440p", planes=3, x_chroma_shift=0, y_chroma_shift=1, bits_per_pixel=16)
YUV444 = PixelFormat("yuv444p", planes=3, x_chroma_shift=0, y_chroma_shift=0, bits_per_pixel=24)


@dataclass
class TimeInfo:
    """Timing metadata attached to a frame."""

    pts: int | None = None
    dts: int | None = None
    duration: int | None = None
    timebase: Fraction | None = None


def _align(value: int, align: int) -> int:
    return (value + align - 1) // align * align


@dataclass
class Frame:
    """Owned multi-plane picture.

    Raises:
        ValueError: On construction, if the planes do not match the format
            or do not cover the visible area.
    """

    width: int
    height: int
    format: PixelFormat
    planes: list[np.ndarray]
    time: TimeInfo | None = field(default=None)

    def __post_init__(self) -> None:
        if self.width <= 0 or self.height <= 0:
            raise ValueError(f"Invalid frame size {self.width}x{self.height}")
        if len(self.planes) != self.format.planes:
            raise ValueError(
                f"{self.format.name} needs {self.format.planes} planes, got {len(self.planes)}"
            )
        for index, plane in enumerate(self.planes):
            if plane.dtype != np.uint8 or plane.ndim != 2:
                raise ValueError(f"Plane {index} must be a 2-D uint8 array")
            if not plane.flags.c_contiguous:
                raise ValueError(f"Plane {index} must be C-contiguous")
            rows, stride = plane.shape
            if rows < self.format.plane_height(index, self.height):
                raise ValueError(f"Plane {index} has too few rows ({rows})")
            if stride < self.format.plane_width(index, self.width):
                raise ValueError(f"Plane {index} stride {stride} is narrower than the picture")

    @classmethod
    def new_default(
        cls,
        width: int,
        height: int,
        format: PixelFormat = YUV420,
        time: TimeInfo | None = None,
        align: int = 32,
    ) -> "Frame":
        """Allocate a zero-filled frame with stride-aligned planes.

        Args:
            width: Picture width in pixels.
            height: Picture height in pixels.
            format: Pixel format.
            time: Optional timing metadata.
            align: Row stride alignment in bytes.

        Returns:
            New Frame.
        """
        planes = [
            np.zeros(
                (format.plane_height(i, height), _align(format.plane_width(i, width), align)),
                dtype=np.uint8,
            )
            for i in range(format.planes)
        ]
        return cls(width=width, height=height, format=format, planes=planes, time=time)

    @property
    def strides(self) -> list[int]:
        """Row stride of each plane in bytes."""
        return [plane.shape[1] for plane in self.planes]

    @property
    def pts(self) -> int | None:
        """Presentation timestamp, if any."""
        return self.time.pts if self.time is not None else None

    def plane(self, index: int) -> np.ndarray:
        """Visible window of plane `index` (a view, not a copy)."""
        rows = self.format.plane_height(index, self.height)
        cols = self.format.plane_width(index, self.width)
        return self.planes[index][:rows, :cols]
