"""Owned encoder output values.

One class per vpx_codec_cx_pkt kind. Byte payloads are always Python bytes
copied out of native memory.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Union

# vpx_codec_frame_flags_t
FRAME_IS_KEY = 0x1
FRAME_IS_DROPPABLE = 0x2
FRAME_IS_INVISIBLE = 0x4
FRAME_IS_FRAGMENT = 0x8


@dataclass(frozen=True)
class FramePacket:
    """Compressed bitstream unit."""

    data: bytes
    pts: int
    duration: int = 1
    flags: int = 0

    @property
    def is_key(self) -> bool:
        return bool(self.flags & FRAME_IS_KEY)

    @property
    def is_droppable(self) -> bool:
        return bool(self.flags & FRAME_IS_DROPPABLE)

    @property
    def is_invisible(self) -> bool:
        return bool(self.flags & FRAME_IS_INVISIBLE)

    @property
    def is_fragment(self) -> bool:
        return bool(self.flags & FRAME_IS_FRAGMENT)


@dataclass(frozen=True)
class StatsPacket:
    """Two-pass rate-control statistics."""

    data: bytes


@dataclass(frozen=True)
class MbStatsPacket:
    """First-pass per-macroblock statistics."""

    data: bytes


@dataclass(frozen=True)
class Psnr:
    """PSNR measurement.

    Index 0 covers the whole frame, indices 1..3 the Y, U and V planes.

    Attributes:
        samples: Number of samples per entry.
        sse: Sum of squared errors per entry.
        psnr: PSNR in dB per entry.
    """

    samples: tuple[int, int, int, int]
    sse: tuple[int, int, int, int]
    psnr: tuple[float, float, float, float]


@dataclass(frozen=True)
class CustomPacket:
    """Algorithm-specific opaque buffer."""

    data: bytes


Packet = Union[FramePacket, StatsPacket, MbStatsPacket, Psnr, CustomPacket]
