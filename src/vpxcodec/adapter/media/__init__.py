"""Media adapters for host pixel formats.

- bgr: OpenCV BGR images <-> I420 Frames
"""

from vpxcodec.adapter.media.bgr import frame_from_bgr, frame_to_bgr

__all__ = [
    "frame_from_bgr",
    "frame_to_bgr",
]
