"""Adapter module for native and host-side boundaries.

Adapters wrap external dependencies behind domain-focused interfaces.
Sessions should use adapters rather than touching native structs directly.

Structure:
- adapter/libvpx/  - ctypes bindings, image and packet conversion
- adapter/media/   - BGR <-> I420 conversion (OpenCV)
"""

# Re-export commonly used items for convenience
from vpxcodec.adapter.libvpx import (
    check_available,
    classify_packet,
    frame_from_image,
    image_from_frame,
    load_library,
    version_string,
)
from vpxcodec.adapter.media import frame_from_bgr, frame_to_bgr

__all__ = [
    # libvpx
    "check_available",
    "classify_packet",
    "frame_from_image",
    "image_from_frame",
    "load_library",
    "version_string",
    # Media
    "frame_from_bgr",
    "frame_to_bgr",
]
