"""libvpx adapters.

- bindings: struct layouts, constants, library loading
- image: Frame <-> vpx_image_t
- packet: vpx_codec_cx_pkt_t -> owned Packet values
"""

from vpxcodec.adapter.libvpx.bindings import (
    EncoderControl,
    build_config,
    check_available,
    library_version,
    load_library,
    version_string,
)
from vpxcodec.adapter.libvpx.image import (
    frame_from_image,
    image_from_frame,
    native_format,
    pixel_format,
)
from vpxcodec.adapter.libvpx.packet import classify_packet, copy_fixed_buffer

__all__ = [
    "EncoderControl",
    "build_config",
    "check_available",
    "classify_packet",
    "copy_fixed_buffer",
    "frame_from_image",
    "image_from_frame",
    "library_version",
    "load_library",
    "native_format",
    "pixel_format",
    "version_string",
]
