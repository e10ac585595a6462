"""Classification of native encoder output records.

Each vpx_codec_cx_pkt_t is turned into exactly one owned Packet value. Any
referenced buffer is copied byte-for-byte before returning, because its
backing memory belongs to the encoder context and is reused on the next
retrieval call.
"""

from __future__ import annotations

import ctypes

from vpxcodec.adapter.libvpx.bindings import (
    VPX_CODEC_CUSTOM_PKT,
    VPX_CODEC_CX_FRAME_PKT,
    VPX_CODEC_FPMB_STATS_PKT,
    VPX_CODEC_PSNR_PKT,
    VPX_CODEC_STATS_PKT,
    vpx_codec_cx_pkt_t,
    vpx_fixed_buf_t,
)
from vpxcodec.errors import CorruptBufferError, ErrorCode, VpxError
from vpxcodec.models.packet import (
    CustomPacket,
    FramePacket,
    MbStatsPacket,
    Packet,
    Psnr,
    StatsPacket,
)


def _copy_bytes(address: int | None, size: int, max_size: int) -> bytes:
    if size == 0:
        return b""
    if not address:
        raise CorruptBufferError(f"NULL buffer with {size} bytes declared")
    if size > max_size:
        raise CorruptBufferError(f"Buffer of {size} bytes exceeds the {max_size} byte limit")
    return ctypes.string_at(address, size)


def copy_fixed_buffer(buf: vpx_fixed_buf_t, max_buffer_size: int) -> bytes:
    """Copy a vpx_fixed_buf_t into owned bytes.

    Raises:
        CorruptBufferError: On a NULL pointer with non-zero size, or a size
            above `max_buffer_size`.
    """
    return _copy_bytes(buf.buf, buf.sz, max_buffer_size)


def classify_packet(pkt: vpx_codec_cx_pkt_t, max_buffer_size: int) -> Packet:
    """Convert one native output record into an owned Packet.

    Args:
        pkt: Native record, valid only until the next retrieval call.
        max_buffer_size: Largest buffer, in bytes, accepted for copying.

    Returns:
        FramePacket, StatsPacket, MbStatsPacket, Psnr or CustomPacket.

    Raises:
        CorruptBufferError: If a buffer descriptor cannot be trusted.
        VpxError: With UNSUP_FEATURE for an unknown packet kind.
    """
    kind = pkt.kind

    if kind == VPX_CODEC_CX_FRAME_PKT:
        frame = pkt.data.frame
        return FramePacket(
            data=_copy_bytes(frame.buf, frame.sz, max_buffer_size),
            pts=frame.pts,
            duration=frame.duration,
            flags=frame.flags,
        )

    if kind == VPX_CODEC_STATS_PKT:
        return StatsPacket(copy_fixed_buffer(pkt.data.twopass_stats, max_buffer_size))

    if kind == VPX_CODEC_FPMB_STATS_PKT:
        return MbStatsPacket(copy_fixed_buffer(pkt.data.firstpass_mb_stats, max_buffer_size))

    if kind == VPX_CODEC_PSNR_PKT:
        psnr = pkt.data.psnr
        return Psnr(
            samples=tuple(psnr.samples),
            sse=tuple(psnr.sse),
            psnr=tuple(psnr.psnr),
        )

    if kind == VPX_CODEC_CUSTOM_PKT:
        return CustomPacket(copy_fixed_buffer(pkt.data.raw, max_buffer_size))

    raise VpxError(ErrorCode.UNSUP_FEATURE, f"Unknown encoder packet kind {kind}")
