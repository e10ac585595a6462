"""ctypes bindings for the libvpx C API.

Struct layouts follow vpx_codec.h, vpx_image.h, vpx_decoder.h and
vpx_encoder.h. vpx_codec_enc_cfg_t only declares its leading fields, which
have kept their offsets across releases; the rest of the struct is an
opaque reserved tail the library fills in and reads back.

Usage:
    lib = load_library()
    print(version_string())
"""

from __future__ import annotations

import ctypes
import ctypes.util
import logging
import sys
from enum import IntEnum
from ctypes import (
    POINTER,
    Structure,
    Union,
    c_char,
    c_char_p,
    c_double,
    c_int,
    c_int64,
    c_long,
    c_size_t,
    c_ubyte,
    c_uint,
    c_uint32,
    c_uint64,
    c_ulong,
    c_void_p,
)

from vpxcodec.config import Settings, get_settings
from vpxcodec.errors import LibraryNotFoundError, VpxError
from vpxcodec.models.options import Codec

logger = logging.getLogger(__name__)

# ============================================================================
# Constants
# ============================================================================

# vpx_img_fmt_t
VPX_IMG_FMT_PLANAR = 0x100
VPX_IMG_FMT_UV_FLIP = 0x200
VPX_IMG_FMT_HAS_ALPHA = 0x400
VPX_IMG_FMT_HIGHBITDEPTH = 0x800
VPX_IMG_FMT_NONE = 0
VPX_IMG_FMT_YV12 = VPX_IMG_FMT_PLANAR | VPX_IMG_FMT_UV_FLIP | 1
VPX_IMG_FMT_I420 = VPX_IMG_FMT_PLANAR | 2
VPX_IMG_FMT_I422 = VPX_IMG_FMT_PLANAR | 5
VPX_IMG_FMT_I440 = VPX_IMG_FMT_PLANAR | 6
VPX_IMG_FMT_I444 = VPX_IMG_FMT_PLANAR | 7
VPX_IMG_FMT_NV12 = VPX_IMG_FMT_PLANAR | 9
VPX_IMG_FMT_I42016 = VPX_IMG_FMT_I420 | VPX_IMG_FMT_HIGHBITDEPTH

# vpx_codec_cx_pkt_kind
VPX_CODEC_CX_FRAME_PKT = 0
VPX_CODEC_STATS_PKT = 1
VPX_CODEC_FPMB_STATS_PKT = 2
VPX_CODEC_PSNR_PKT = 3
VPX_CODEC_CUSTOM_PKT = 256

# Init flags
VPX_CODEC_USE_PSNR = 0x10000
VPX_CODEC_USE_OUTPUT_PARTITION = 0x20000
VPX_CODEC_USE_HIGHBITDEPTH = 0x40000

# Encode flags
VPX_EFLAG_FORCE_KF = 1 << 0

VPX_SS_MAX_LAYERS = 5

# Reserved room after the declared prefix of vpx_codec_enc_cfg_t. The full
# struct is well under this on every release that ships the prefix below.
ENC_CFG_RESERVED_SIZE = 2048


class EncoderControl(IntEnum):
    """vp8e_enc_control_id values (vp8cx.h) that take a plain int argument.

    Ids prefixed VP8E_ are shared or VP8-only, VP9E_ ids are VP9-only.
    Controls whose argument is a pointer (ROI map, active map, scale mode,
    last-quantizer getters) are not listed and cannot be sent.
    """

    VP8E_SET_CPUUSED = 13
    VP8E_SET_ENABLEAUTOALTREF = 14
    VP8E_SET_NOISE_SENSITIVITY = 15
    VP8E_SET_SHARPNESS = 16
    VP8E_SET_STATIC_THRESHOLD = 17
    VP8E_SET_TOKEN_PARTITIONS = 18
    VP8E_SET_ARNR_MAXFRAMES = 21
    VP8E_SET_ARNR_STRENGTH = 22
    VP8E_SET_ARNR_TYPE = 23
    VP8E_SET_TUNING = 24
    VP8E_SET_CQ_LEVEL = 25
    VP8E_SET_MAX_INTRA_BITRATE_PCT = 26
    VP8E_SET_FRAME_FLAGS = 27
    VP9E_SET_MAX_INTER_BITRATE_PCT = 28
    VP9E_SET_GF_CBR_BOOST_PCT = 29
    VP8E_SET_TEMPORAL_LAYER_ID = 30
    VP8E_SET_SCREEN_CONTENT_MODE = 31
    VP9E_SET_LOSSLESS = 32
    VP9E_SET_TILE_COLUMNS = 33
    VP9E_SET_TILE_ROWS = 34
    VP9E_SET_FRAME_PARALLEL_DECODING = 35
    VP9E_SET_AQ_MODE = 36
    VP9E_SET_FRAME_PERIODIC_BOOST = 37
    VP9E_SET_NOISE_SENSITIVITY = 38


# ============================================================================
# Structures
# ============================================================================


class vpx_rational_t(Structure):
    _fields_ = [
        ("num", c_int),
        ("den", c_int),
    ]


class vpx_fixed_buf_t(Structure):
    _fields_ = [
        ("buf", c_void_p),
        ("sz", c_size_t),
    ]


class _vpx_codec_config_u(Union):
    _fields_ = [
        ("dec", c_void_p),
        ("enc", c_void_p),
        ("raw", c_void_p),
    ]


class vpx_codec_ctx_t(Structure):
    """Codec context. Only the library writes to it."""

    _fields_ = [
        ("name", c_char_p),
        ("iface", c_void_p),
        ("err", c_int),
        ("err_detail", c_char_p),
        ("init_flags", c_long),
        ("config", _vpx_codec_config_u),
        ("priv", c_void_p),
    ]


class vpx_codec_dec_cfg_t(Structure):
    _fields_ = [
        ("threads", c_uint),
        ("w", c_uint),
        ("h", c_uint),
    ]


class vpx_codec_enc_cfg_t(Structure):
    """Encoder configuration: stable prefix plus reserved tail."""

    _fields_ = [
        ("g_usage", c_uint),
        ("g_threads", c_uint),
        ("g_profile", c_uint),
        ("g_w", c_uint),
        ("g_h", c_uint),
        ("g_bit_depth", c_int),
        ("g_input_bit_depth", c_uint),
        ("g_timebase", vpx_rational_t),
        ("g_error_resilient", c_uint32),
        ("g_pass", c_int),
        ("g_lag_in_frames", c_uint),
        ("rc_dropframe_thresh", c_uint),
        ("rc_resize_allowed", c_uint),
        ("rc_scaled_width", c_uint),
        ("rc_scaled_height", c_uint),
        ("rc_resize_up_thresh", c_uint),
        ("rc_resize_down_thresh", c_uint),
        ("rc_end_usage", c_int),
        ("rc_twopass_stats_in", vpx_fixed_buf_t),
        ("rc_firstpass_mb_stats_in", vpx_fixed_buf_t),
        ("rc_target_bitrate", c_uint),
        ("rc_min_quantizer", c_uint),
        ("rc_max_quantizer", c_uint),
        ("rc_undershoot_pct", c_uint),
        ("rc_overshoot_pct", c_uint),
        ("rc_buf_sz", c_uint),
        ("rc_buf_initial_sz", c_uint),
        ("rc_buf_optimal_sz", c_uint),
        ("_reserved", c_ubyte * ENC_CFG_RESERVED_SIZE),
    ]


class vpx_image_t(Structure):
    _fields_ = [
        ("fmt", c_int),
        ("cs", c_int),
        ("range", c_int),
        ("w", c_uint),
        ("h", c_uint),
        ("bit_depth", c_uint),
        ("d_w", c_uint),
        ("d_h", c_uint),
        ("r_w", c_uint),
        ("r_h", c_uint),
        ("x_chroma_shift", c_uint),
        ("y_chroma_shift", c_uint),
        ("planes", c_void_p * 4),
        ("stride", c_int * 4),
        ("bps", c_int),
        ("user_priv", c_void_p),
        ("img_data", c_void_p),
        ("img_data_owner", c_int),
        ("self_allocd", c_int),
        ("fb_priv", c_void_p),
    ]


class vpx_frame_pkt_t(Structure):
    _fields_ = [
        ("buf", c_void_p),
        ("sz", c_size_t),
        ("pts", c_int64),
        ("duration", c_ulong),
        ("flags", c_uint32),
        ("partition_id", c_int),
        ("width", c_uint * VPX_SS_MAX_LAYERS),
        ("height", c_uint * VPX_SS_MAX_LAYERS),
        ("spatial_layer_encoded", c_ubyte * VPX_SS_MAX_LAYERS),
    ]


class vpx_psnr_pkt_t(Structure):
    _fields_ = [
        ("samples", c_uint * 4),
        ("sse", c_uint64 * 4),
        ("psnr", c_double * 4),
    ]


class _vpx_cx_pkt_data_u(Union):
    _fields_ = [
        ("frame", vpx_frame_pkt_t),
        ("twopass_stats", vpx_fixed_buf_t),
        ("firstpass_mb_stats", vpx_fixed_buf_t),
        ("psnr", vpx_psnr_pkt_t),
        ("raw", vpx_fixed_buf_t),
        ("pad", c_char * (128 - ctypes.sizeof(c_int))),
    ]


class vpx_codec_cx_pkt_t(Structure):
    _fields_ = [
        ("kind", c_int),
        ("data", _vpx_cx_pkt_data_u),
    ]


# ============================================================================
# Library Loading
# ============================================================================

_libvpx: ctypes.CDLL | None = None

_CANDIDATE_NAMES = {
    "linux": ["libvpx.so", "libvpx.so.9", "libvpx.so.8", "libvpx.so.7", "libvpx.so.6"],
    "darwin": ["libvpx.dylib", "/opt/homebrew/lib/libvpx.dylib", "/usr/local/lib/libvpx.dylib"],
    "win32": ["vpx.dll", "libvpx.dll", "libvpx-1.dll"],
}


def _candidate_names(settings: Settings) -> list[str]:
    names: list[str] = []
    if settings.library_path:
        names.append(settings.library_path)
    found = ctypes.util.find_library("vpx")
    if found:
        names.append(found)
    platform = "linux" if sys.platform.startswith("linux") else sys.platform
    names.extend(_CANDIDATE_NAMES.get(platform, []))
    return names


def _setup_function_signatures(lib: ctypes.CDLL) -> None:
    """Declare argument and return types of the functions used."""
    ctx_p = POINTER(vpx_codec_ctx_t)
    iter_p = POINTER(c_void_p)

    # const char *vpx_codec_version_str(void), vpx_codec_build_config(void)
    lib.vpx_codec_version.argtypes = []
    lib.vpx_codec_version.restype = c_int
    lib.vpx_codec_version_str.argtypes = []
    lib.vpx_codec_version_str.restype = c_char_p
    lib.vpx_codec_build_config.argtypes = []
    lib.vpx_codec_build_config.restype = c_char_p

    # const char *vpx_codec_err_to_string(vpx_codec_err_t err)
    lib.vpx_codec_err_to_string.argtypes = [c_int]
    lib.vpx_codec_err_to_string.restype = c_char_p

    # const char *vpx_codec_error(vpx_codec_ctx_t *ctx), *_detail
    lib.vpx_codec_error.argtypes = [ctx_p]
    lib.vpx_codec_error.restype = c_char_p
    lib.vpx_codec_error_detail.argtypes = [ctx_p]
    lib.vpx_codec_error_detail.restype = c_char_p

    # vpx_codec_err_t vpx_codec_destroy(vpx_codec_ctx_t *ctx)
    lib.vpx_codec_destroy.argtypes = [ctx_p]
    lib.vpx_codec_destroy.restype = c_int

    # vpx_codec_err_t vpx_codec_dec_init_ver(ctx, iface, const cfg *, flags, ver)
    lib.vpx_codec_dec_init_ver.argtypes = [
        ctx_p, c_void_p, POINTER(vpx_codec_dec_cfg_t), c_long, c_int,
    ]
    lib.vpx_codec_dec_init_ver.restype = c_int

    # vpx_codec_err_t vpx_codec_decode(ctx, const uint8_t *data, unsigned int sz,
    #                                  void *user_priv, long deadline)
    lib.vpx_codec_decode.argtypes = [ctx_p, c_char_p, c_uint, c_void_p, c_long]
    lib.vpx_codec_decode.restype = c_int

    # vpx_image_t *vpx_codec_get_frame(ctx, vpx_codec_iter_t *iter)
    lib.vpx_codec_get_frame.argtypes = [ctx_p, iter_p]
    lib.vpx_codec_get_frame.restype = POINTER(vpx_image_t)

    # vpx_codec_err_t vpx_codec_enc_config_default(iface, cfg *, unsigned int usage)
    lib.vpx_codec_enc_config_default.argtypes = [
        c_void_p, POINTER(vpx_codec_enc_cfg_t), c_uint,
    ]
    lib.vpx_codec_enc_config_default.restype = c_int

    # vpx_codec_err_t vpx_codec_enc_init_ver(ctx, iface, const cfg *, flags, ver)
    lib.vpx_codec_enc_init_ver.argtypes = [
        ctx_p, c_void_p, POINTER(vpx_codec_enc_cfg_t), c_long, c_int,
    ]
    lib.vpx_codec_enc_init_ver.restype = c_int

    # vpx_codec_err_t vpx_codec_encode(ctx, const vpx_image_t *img, vpx_codec_pts_t pts,
    #                                  unsigned long duration, vpx_enc_frame_flags_t flags,
    #                                  vpx_enc_deadline_t deadline)
    lib.vpx_codec_encode.argtypes = [
        ctx_p, POINTER(vpx_image_t), c_int64, c_ulong, c_long, c_ulong,
    ]
    lib.vpx_codec_encode.restype = c_int

    # const vpx_codec_cx_pkt_t *vpx_codec_get_cx_data(ctx, vpx_codec_iter_t *iter)
    lib.vpx_codec_get_cx_data.argtypes = [ctx_p, iter_p]
    lib.vpx_codec_get_cx_data.restype = POINTER(vpx_codec_cx_pkt_t)

    # vpx_codec_err_t vpx_codec_control_(ctx, int ctrl_id, ...)
    # Variadic: only the return type is declared, arguments are passed as c_int.
    lib.vpx_codec_control_.restype = c_int

    # vpx_codec_iface_t *vpx_codec_vp{8,9}_{cx,dx}(void)
    for codec in Codec:
        for direction in ("cx", "dx"):
            name = f"vpx_codec_{codec.value}_{direction}"
            if hasattr(lib, name):
                func = getattr(lib, name)
                func.argtypes = []
                func.restype = c_void_p


def load_library(settings: Settings | None = None) -> ctypes.CDLL:
    """Load libvpx once per process.

    Args:
        settings: Settings to read the library path from.

    Returns:
        Loaded library with function signatures declared.

    Raises:
        LibraryNotFoundError: If no candidate can be loaded.
    """
    global _libvpx
    if _libvpx is not None:
        return _libvpx

    settings = settings or get_settings()
    tried = []
    for name in _candidate_names(settings):
        try:
            lib = ctypes.CDLL(name)
        except OSError:
            tried.append(name)
            continue
        _setup_function_signatures(lib)
        _libvpx = lib
        logger.info(f"Loaded libvpx: {name}")
        return lib

    raise LibraryNotFoundError(f"libvpx not found (tried: {', '.join(tried) or 'nothing'})")


def codec_interface(lib, codec: Codec, direction: str) -> int | None:
    """Return the vpx_codec_iface_t pointer for a codec, or None if absent.

    Args:
        lib: Loaded library.
        codec: Codec family.
        direction: "cx" for the encoder, "dx" for the decoder.
    """
    try:
        func = getattr(lib, f"vpx_codec_{codec.value}_{direction}")
    except AttributeError:
        return None
    return func()


def error_string(lib, status: int) -> str:
    """Static description of a status code (does not touch any context)."""
    text = lib.vpx_codec_err_to_string(int(status))
    return text.decode("utf-8", errors="replace") if text else ""


def library_version(lib=None) -> tuple[int, int, int]:
    """(major, minor, patch) of the loaded library."""
    lib = lib or load_library()
    packed = lib.vpx_codec_version()
    return (packed >> 16) & 0xFF, (packed >> 8) & 0xFF, packed & 0xFF


def version_string(lib=None) -> str:
    """Version string reported by the loaded library."""
    lib = lib or load_library()
    return (lib.vpx_codec_version_str() or b"").decode("utf-8", errors="replace")


def build_config(lib=None) -> str:
    """configure arguments the loaded library was built with."""
    lib = lib or load_library()
    return (lib.vpx_codec_build_config() or b"").decode("utf-8", errors="replace")


def check_available(codec: Codec = Codec.VP9) -> bool:
    """Check if libvpx is usable for `codec` in both directions.

    Creates and destroys one decoder and one encoder context, which also
    validates the configured ABI versions against the loaded library.

    Returns:
        True if both contexts could be created.
    """
    from vpxcodec.core.decoder import Decoder
    from vpxcodec.core.encoder import EncoderConfig

    try:
        with Decoder(codec=codec):
            pass
        with EncoderConfig(codec=codec).get_encoder():
            pass
        return True
    except (RuntimeError, VpxError) as e:
        logger.warning(f"libvpx {codec.value} not available: {e}")
        return False
