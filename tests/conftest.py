"""Shared pytest fixtures for vpxcodec tests.

FakeLibvpx stands in for the shared library. It is called exactly the way
the ctypes CDLL is (byref() context and cursor arguments, raw ints for
opaque pointers) and honours the native contract the sessions depend on:
- contexts are only touched after a successful init and are destroyed once
- every encode/decode/flush starts a new output generation; a cursor from
  an older generation reads nothing and is counted in `stale_cursor_reads`
- decode echoes user_priv on the image built from that unit
- encoder controls are accepted per codec, like the real control maps

Its "bitstream" is a header followed by the raw I420 pixels, so encode then
decode is lossless.
"""

import ctypes
import struct
from collections import Counter

import numpy as np
import pytest

from vpxcodec import config as vpx_config
from vpxcodec.adapter.libvpx import bindings
from vpxcodec.adapter.libvpx.bindings import (
    VPX_CODEC_CX_FRAME_PKT,
    VPX_CODEC_PSNR_PKT,
    VPX_CODEC_STATS_PKT,
    VPX_CODEC_USE_PSNR,
    VPX_EFLAG_FORCE_KF,
    VPX_IMG_FMT_I420,
    EncoderControl,
    vpx_codec_cx_pkt_t,
    vpx_image_t,
)
from vpxcodec.config import VPX_DECODER_ABI_VERSION, VPX_ENCODER_ABI_VERSION, Settings
from vpxcodec.errors import ErrorCode
from vpxcodec.models.options import EncodingPass
from vpxcodec.models.packet import FRAME_IS_KEY

UNIT_MAGIC = b"FAKEVPX0"
UNIT_HEADER = struct.Struct("<8sBIHHq")
UNIT_SHOWN = 0
UNIT_HIDDEN = 1
UNIT_HELD = 2

_ERROR_STRINGS = {
    ErrorCode.OK: b"Success",
    ErrorCode.ERROR: b"Unspecified internal error",
    ErrorCode.MEM_ERROR: b"Memory allocation error",
    ErrorCode.ABI_MISMATCH: b"ABI version mismatch",
    ErrorCode.INCAPABLE: b"Codec does not implement requested capability",
    ErrorCode.UNSUP_BITSTREAM: b"Bitstream not supported by this decoder",
    ErrorCode.UNSUP_FEATURE: b"Bitstream required feature not supported by this decoder",
    ErrorCode.CORRUPT_FRAME: b"Corrupt frame detected",
    ErrorCode.INVALID_PARAM: b"Invalid parameter",
    ErrorCode.LIST_END: b"End of iterated list",
}

_VP8_CONTROLS = {
    EncoderControl.VP8E_SET_CPUUSED,
    EncoderControl.VP8E_SET_ENABLEAUTOALTREF,
    EncoderControl.VP8E_SET_NOISE_SENSITIVITY,
    EncoderControl.VP8E_SET_SHARPNESS,
    EncoderControl.VP8E_SET_STATIC_THRESHOLD,
    EncoderControl.VP8E_SET_TOKEN_PARTITIONS,
    EncoderControl.VP8E_SET_ARNR_MAXFRAMES,
    EncoderControl.VP8E_SET_ARNR_STRENGTH,
    EncoderControl.VP8E_SET_ARNR_TYPE,
    EncoderControl.VP8E_SET_TUNING,
    EncoderControl.VP8E_SET_CQ_LEVEL,
    EncoderControl.VP8E_SET_MAX_INTRA_BITRATE_PCT,
    EncoderControl.VP8E_SET_TEMPORAL_LAYER_ID,
    EncoderControl.VP8E_SET_SCREEN_CONTENT_MODE,
}

_VP9_CONTROLS = {
    EncoderControl.VP8E_SET_CPUUSED,
    EncoderControl.VP8E_SET_ENABLEAUTOALTREF,
    EncoderControl.VP8E_SET_SHARPNESS,
    EncoderControl.VP8E_SET_STATIC_THRESHOLD,
    EncoderControl.VP8E_SET_ARNR_MAXFRAMES,
    EncoderControl.VP8E_SET_ARNR_STRENGTH,
    EncoderControl.VP8E_SET_ARNR_TYPE,
    EncoderControl.VP8E_SET_TUNING,
    EncoderControl.VP8E_SET_CQ_LEVEL,
    EncoderControl.VP8E_SET_MAX_INTRA_BITRATE_PCT,
    EncoderControl.VP9E_SET_MAX_INTER_BITRATE_PCT,
    EncoderControl.VP9E_SET_GF_CBR_BOOST_PCT,
    EncoderControl.VP9E_SET_LOSSLESS,
    EncoderControl.VP9E_SET_TILE_COLUMNS,
    EncoderControl.VP9E_SET_TILE_ROWS,
    EncoderControl.VP9E_SET_FRAME_PARALLEL_DECODING,
    EncoderControl.VP9E_SET_AQ_MODE,
    EncoderControl.VP9E_SET_FRAME_PERIODIC_BOOST,
    EncoderControl.VP9E_SET_NOISE_SENSITIVITY,
}

_CPUUSED_RANGE = {"vp8": 16, "vp9": 9}

_INTERFACES = {
    0x1001: ("vp8", "cx"),
    0x1002: ("vp8", "dx"),
    0x1003: ("vp9", "cx"),
    0x1004: ("vp9", "dx"),
}


def _align(value: int, align: int) -> int:
    return (value + align - 1) // align * align


def _chroma_size(width: int, height: int) -> tuple[int, int]:
    return (width + 1) // 2, (height + 1) // 2


def i420_size(width: int, height: int) -> int:
    """Bytes in the visible planes of a width x height I420 picture."""
    cw, ch = _chroma_size(width, height)
    return width * height + 2 * cw * ch


def make_unit(
    width: int = 16,
    height: int = 16,
    pts: int = 0,
    kind: int = UNIT_SHOWN,
    fmt: int = VPX_IMG_FMT_I420,
    pixels: bytes | None = None,
) -> bytes:
    """Build a compressed unit the fake decoder understands."""
    if pixels is None:
        pixels = bytes(i420_size(width, height))
    return UNIT_HEADER.pack(UNIT_MAGIC, kind, fmt, width, height, pts) + pixels


def _native_image(fmt: int, width: int, height: int, pixels: bytes, user_priv):
    """Decoder-owned image with padded strides and allocated height."""
    cw, ch = _chroma_size(width, height)
    alloc_h = _align(height, 8)
    shapes = [
        (alloc_h, _align(width, 32)),
        (alloc_h // 2, _align(cw, 32)),
        (alloc_h // 2, _align(cw, 32)),
    ]
    arrays = [np.full(shape, 0xEE, dtype=np.uint8) for shape in shapes]

    offset = 0
    for plane, (pw, ph) in zip(arrays, [(width, height), (cw, ch), (cw, ch)]):
        chunk = pixels[offset:offset + pw * ph]
        offset += pw * ph
        if len(chunk) == pw * ph:
            plane[:ph, :pw] = np.frombuffer(chunk, dtype=np.uint8).reshape(ph, pw)

    img = vpx_image_t()
    img.fmt = fmt
    img.w = _align(width, 8)
    # libvpx reports the border-padded height here, past the plane storage
    img.h = alloc_h + 64
    img.d_w = width
    img.d_h = height
    img.bit_depth = 8
    img.x_chroma_shift = 1
    img.y_chroma_shift = 1
    for index, plane in enumerate(arrays):
        img.planes[index] = plane.ctypes.data
        img.stride[index] = plane.shape[1]
    img.user_priv = user_priv
    return img, arrays


def _read_i420(img) -> bytes:
    """Copy the visible planes out of a borrowed host image."""
    cw, ch = _chroma_size(img.d_w, img.d_h)
    chunks = []
    for index, (pw, ph) in enumerate([(img.d_w, img.d_h), (cw, ch), (cw, ch)]):
        stride = img.stride[index]
        raw = ctypes.string_at(img.planes[index], stride * ph)
        rows = np.frombuffer(raw, dtype=np.uint8).reshape(ph, stride)[:, :pw]
        chunks.append(rows.tobytes())
    return b"".join(chunks)


class _ContextState:
    def __init__(self, codec: str, direction: str):
        self.codec = codec
        self.direction = direction
        self.err = ErrorCode.OK
        self.detail: bytes | None = None
        self.generation = 0
        self.outputs: list = []

    def begin_call(self) -> None:
        self.generation += 1
        self.outputs = []


class _DecoderState(_ContextState):
    def __init__(self, codec: str, threads: int):
        super().__init__(codec, "dx")
        self.threads = threads
        self.held: list = []


class _EncoderState(_ContextState):
    def __init__(self, codec: str, cfg, flags: int):
        super().__init__(codec, "cx")
        self.cfg = cfg  # the struct passed to init, read on every encode
        self.psnr = bool(flags & VPX_CODEC_USE_PSNR)
        self.lagged: list = []
        self.frames_in = 0
        self.controls: dict[int, int] = {}
        self.stats_seen: bytes | None = None


class FakeLibvpx:
    """In-process stand-in for the libvpx CDLL.

    Attributes:
        contexts: Live context state keyed by the context struct address.
        destroyed: vpx_codec_destroy call count per context address.
        stale_cursor_reads: Retrievals made with a cursor from an older call.
        encode_calls: (pts, duration, flags, deadline) of every encode call.
    """

    def __init__(self, codecs=("vp8", "vp9")):
        self.contexts: dict[int, _ContextState] = {}
        self.destroyed: Counter = Counter()
        self.stale_cursor_reads = 0
        self.decode_calls = 0
        self.encode_calls: list[tuple] = []
        self.control_calls: list[tuple[int, int]] = []

        for iface, (codec, direction) in _INTERFACES.items():
            if codec in codecs:
                setattr(self, f"vpx_codec_{codec}_{direction}", lambda iface=iface: iface)

    # -- helpers ------------------------------------------------------------

    def _state(self, ctx_ref) -> _ContextState:
        return self.contexts[ctypes.addressof(ctx_ref._obj)]

    @staticmethod
    def _fail(state: _ContextState, status: ErrorCode, detail: bytes | None = None) -> int:
        state.err = status
        state.detail = detail
        return int(status)

    @staticmethod
    def _ok(state: _ContextState) -> int:
        state.err = ErrorCode.OK
        state.detail = None
        return int(ErrorCode.OK)

    def _next_output(self, state: _ContextState, iter_ref):
        cursor = iter_ref._obj
        position = cursor.value or 0
        if position:
            generation, index = position >> 32, position & 0xFFFFFFFF
            if generation != state.generation:
                self.stale_cursor_reads += 1
                return None
        else:
            index = 0
        if index >= len(state.outputs):
            return None
        cursor.value = (state.generation << 32) | (index + 1)
        return state.outputs[index]

    def live_contexts(self, direction: str | None = None) -> int:
        """Number of contexts not yet destroyed."""
        return sum(
            1 for s in self.contexts.values() if direction is None or s.direction == direction
        )

    def encoder_state(self) -> _EncoderState:
        """State of the single live encoder context."""
        (state,) = [s for s in self.contexts.values() if s.direction == "cx"]
        return state

    # -- vpx_codec.h --------------------------------------------------------

    def vpx_codec_version(self):
        return (1 << 16) | (14 << 8) | 1

    def vpx_codec_version_str(self):
        return b"v1.14.1-fake"

    def vpx_codec_build_config(self):
        return b"--enable-vp8 --enable-vp9 --enable-shared"

    def vpx_codec_err_to_string(self, status):
        try:
            return _ERROR_STRINGS[ErrorCode(status)]
        except ValueError:
            return b"Unrecognized error code"

    def vpx_codec_error(self, ctx_ref):
        return self.vpx_codec_err_to_string(self._state(ctx_ref).err)

    def vpx_codec_error_detail(self, ctx_ref):
        return self._state(ctx_ref).detail

    def vpx_codec_destroy(self, ctx_ref):
        address = ctypes.addressof(ctx_ref._obj)
        self.destroyed[address] += 1
        if self.contexts.pop(address, None) is None:
            return int(ErrorCode.ERROR)
        return int(ErrorCode.OK)

    # -- vpx_decoder.h ------------------------------------------------------

    def vpx_codec_dec_init_ver(self, ctx_ref, iface, cfg_ref, flags, ver):
        if ver != VPX_DECODER_ABI_VERSION:
            return int(ErrorCode.ABI_MISMATCH)
        codec, direction = _INTERFACES.get(iface, (None, None))
        if direction != "dx":
            return int(ErrorCode.INVALID_PARAM)
        ctx = ctx_ref._obj
        ctx.name = f"fake {codec} decoder".encode()
        ctx.iface = iface
        self.contexts[ctypes.addressof(ctx)] = _DecoderState(codec, cfg_ref._obj.threads)
        return int(ErrorCode.OK)

    def vpx_codec_decode(self, ctx_ref, data, size, user_priv, deadline):
        state = self._state(ctx_ref)
        self.decode_calls += 1
        state.begin_call()

        if data is None:
            if size:
                return self._fail(state, ErrorCode.INVALID_PARAM)
            state.outputs, state.held = state.held, []
            return self._ok(state)
        if size == 0:
            return self._fail(state, ErrorCode.INVALID_PARAM)

        data = data[:size]
        if len(data) < UNIT_HEADER.size or not data.startswith(UNIT_MAGIC):
            return self._fail(state, ErrorCode.UNSUP_BITSTREAM, b"Invalid frame header")
        _, kind, fmt, width, height, _ = UNIT_HEADER.unpack_from(data)
        if width == 0 or height == 0:
            return self._fail(state, ErrorCode.CORRUPT_FRAME, b"Invalid frame size")

        image = _native_image(fmt, width, height, data[UNIT_HEADER.size:], user_priv)
        if kind == UNIT_SHOWN:
            state.outputs.append(image)
        elif kind == UNIT_HELD:
            state.held.append(image)
        return self._ok(state)

    def vpx_codec_get_frame(self, ctx_ref, iter_ref):
        entry = self._next_output(self._state(ctx_ref), iter_ref)
        if entry is None:
            return None
        return ctypes.pointer(entry[0])

    # -- vpx_encoder.h ------------------------------------------------------

    def vpx_codec_enc_config_default(self, iface, cfg_ref, usage):
        codec, direction = _INTERFACES.get(iface, (None, None))
        if direction != "cx" or usage != 0:
            return int(ErrorCode.INVALID_PARAM)
        cfg = cfg_ref._obj
        cfg.g_usage = usage
        cfg.g_threads = 0
        cfg.g_profile = 0
        cfg.g_w = 320
        cfg.g_h = 240
        cfg.g_bit_depth = 8
        cfg.g_input_bit_depth = 8
        cfg.g_timebase.num = 1
        cfg.g_timebase.den = 30
        cfg.g_pass = EncodingPass.ONE_PASS
        cfg.g_lag_in_frames = 0
        cfg.rc_target_bitrate = 256
        cfg.rc_min_quantizer = 4 if codec == "vp8" else 0
        cfg.rc_max_quantizer = 63
        return int(ErrorCode.OK)

    def vpx_codec_enc_init_ver(self, ctx_ref, iface, cfg_ref, flags, ver):
        if ver != VPX_ENCODER_ABI_VERSION:
            return int(ErrorCode.ABI_MISMATCH)
        codec, direction = _INTERFACES.get(iface, (None, None))
        if direction != "cx":
            return int(ErrorCode.INVALID_PARAM)
        cfg = cfg_ref._obj
        if cfg.g_w == 0 or cfg.g_h == 0 or cfg.g_timebase.num <= 0 or cfg.g_timebase.den <= 0:
            return int(ErrorCode.INVALID_PARAM)
        if cfg.rc_max_quantizer > 63 or cfg.rc_min_quantizer > cfg.rc_max_quantizer:
            return int(ErrorCode.INVALID_PARAM)
        if cfg.g_pass == EncodingPass.LAST_PASS and cfg.rc_twopass_stats_in.sz == 0:
            return int(ErrorCode.INVALID_PARAM)
        ctx = ctx_ref._obj
        ctx.name = f"fake {codec} encoder".encode()
        ctx.iface = iface
        ctx.init_flags = flags
        self.contexts[ctypes.addressof(ctx)] = _EncoderState(codec, cfg, flags)
        return int(ErrorCode.OK)

    def vpx_codec_control_(self, ctx_ref, ctrl_id, value):
        state = self._state(ctx_ref)
        ctrl_id = ctrl_id.value
        value = value.value
        self.control_calls.append((ctrl_id, value))
        supported = _VP8_CONTROLS if state.codec == "vp8" else _VP9_CONTROLS
        if ctrl_id not in supported:
            return self._fail(state, ErrorCode.INCAPABLE)
        if ctrl_id == EncoderControl.VP8E_SET_CPUUSED:
            limit = _CPUUSED_RANGE[state.codec]
            if not -limit <= value <= limit:
                return self._fail(state, ErrorCode.INVALID_PARAM, b"cpu_used out of range")
        state.controls[ctrl_id] = value
        return self._ok(state)

    def vpx_codec_encode(self, ctx_ref, img_ref, pts, duration, flags, deadline):
        state = self._state(ctx_ref)
        self.encode_calls.append((pts, duration, flags, deadline))
        state.begin_call()

        if img_ref is None:
            while state.lagged:
                self._emit(state, *state.lagged.pop(0))
            return self._ok(state)

        img = img_ref._obj
        cfg = state.cfg
        if img.fmt != VPX_IMG_FMT_I420:
            return self._fail(state, ErrorCode.INVALID_PARAM, b"Unsupported image format")
        if (img.d_w, img.d_h) != (cfg.g_w, cfg.g_h):
            return self._fail(state, ErrorCode.INVALID_PARAM, b"Frame size does not match config")

        key = bool(flags & VPX_EFLAG_FORCE_KF) or state.frames_in == 0
        state.frames_in += 1
        state.lagged.append((pts, duration, key, img.d_w, img.d_h, _read_i420(img)))
        if len(state.lagged) > cfg.g_lag_in_frames:
            self._emit(state, *state.lagged.pop(0))
        return self._ok(state)

    def _emit(self, state: _EncoderState, pts, duration, key, width, height, pixels) -> None:
        cfg = state.cfg
        if cfg.g_pass == EncodingPass.FIRST_PASS:
            stats = struct.pack("<qI", pts, len(pixels))
            self._append_buffer(state, VPX_CODEC_STATS_PKT, "twopass_stats", stats)
            return
        if cfg.g_pass == EncodingPass.LAST_PASS:
            stats_in = cfg.rc_twopass_stats_in
            state.stats_seen = ctypes.string_at(stats_in.buf, stats_in.sz)

        data = UNIT_HEADER.pack(UNIT_MAGIC, UNIT_SHOWN, VPX_IMG_FMT_I420, width, height, pts)
        data += pixels
        buf = ctypes.create_string_buffer(data, len(data))
        pkt = vpx_codec_cx_pkt_t()
        pkt.kind = VPX_CODEC_CX_FRAME_PKT
        pkt.data.frame.buf = ctypes.addressof(buf)
        pkt.data.frame.sz = len(data)
        pkt.data.frame.pts = pts
        pkt.data.frame.duration = duration
        pkt.data.frame.flags = FRAME_IS_KEY if key else 0
        state.outputs.append((pkt, buf))

        if state.psnr:
            cw, ch = _chroma_size(width, height)
            planes = [width * height, cw * ch, cw * ch]
            psnr = vpx_codec_cx_pkt_t()
            psnr.kind = VPX_CODEC_PSNR_PKT
            for index, samples in enumerate([sum(planes), *planes]):
                psnr.data.psnr.samples[index] = samples
                psnr.data.psnr.sse[index] = 0
                psnr.data.psnr.psnr[index] = 100.0
            state.outputs.append((psnr, None))

    def _append_buffer(self, state: _ContextState, kind: int, field: str, data: bytes) -> None:
        buf = ctypes.create_string_buffer(data, len(data))
        pkt = vpx_codec_cx_pkt_t()
        pkt.kind = kind
        target = getattr(pkt.data, field)
        target.buf = ctypes.addressof(buf)
        target.sz = len(data)
        state.outputs.append((pkt, buf))

    def vpx_codec_get_cx_data(self, ctx_ref, iter_ref):
        entry = self._next_output(self._state(ctx_ref), iter_ref)
        if entry is None:
            return None
        return ctypes.pointer(entry[0])


_ENV_VARS = (
    "VPXCODEC_LIBRARY",
    "VPXCODEC_DECODER_ABI_VERSION",
    "VPXCODEC_ENCODER_ABI_VERSION",
    "VPXCODEC_MAX_BUFFER_SIZE",
)


@pytest.fixture(autouse=True)
def clean_settings(request, monkeypatch):
    """Isolate tests from VPXCODEC_* variables and the settings cache.

    Tests marked real_libvpx keep the variables: their skip conditions were
    evaluated against them at collection time.
    """
    if request.node.get_closest_marker("real_libvpx") is None:
        for name in _ENV_VARS:
            monkeypatch.delenv(name, raising=False)
    vpx_config.reset_settings()
    yield
    vpx_config.reset_settings()


@pytest.fixture
def fake_libvpx(monkeypatch):
    """Install a FakeLibvpx as the process-wide loaded library."""
    fake = FakeLibvpx()
    monkeypatch.setattr(bindings, "_libvpx", fake)
    return fake


@pytest.fixture
def settings():
    """Default settings."""
    return Settings()
