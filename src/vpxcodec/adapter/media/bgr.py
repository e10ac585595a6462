"""BGR <-> I420 frame conversion via OpenCV.

Bridges OpenCV-style images (HxWx3 uint8, BGR order) and planar YUV420
Frames, the only layout both VP8 and VP9 accept at profile 0. Both
directions need even picture dimensions.
"""

from __future__ import annotations

import numpy as np

from vpxcodec.models.frame import YUV420, Frame, TimeInfo


def _cv2():
    try:
        import cv2
    except ImportError as e:
        raise RuntimeError("OpenCV (cv2) is required for BGR conversion") from e
    return cv2


def frame_from_bgr(bgr: np.ndarray, time: TimeInfo | None = None) -> Frame:
    """Convert a BGR image into a new YUV420 Frame.

    Args:
        bgr: HxWx3 uint8 array in BGR order.
        time: Optional timing metadata for the frame.

    Returns:
        Frame with stride-aligned planes.

    Raises:
        ValueError: If the image shape or dimensions are unusable.
        RuntimeError: If OpenCV is not installed.
    """
    if bgr.ndim != 3 or bgr.shape[2] != 3 or bgr.dtype != np.uint8:
        raise ValueError(f"Expected an HxWx3 uint8 image, got {bgr.shape} {bgr.dtype}")
    height, width = bgr.shape[:2]
    if width % 2 or height % 2:
        raise ValueError(f"I420 conversion needs even dimensions, got {width}x{height}")

    cv2 = _cv2()
    yuv = cv2.cvtColor(np.ascontiguousarray(bgr), cv2.COLOR_BGR2YUV_I420)

    # cvtColor packs Y, U and V back to back in an (h * 3 / 2) x w array
    flat = yuv.reshape(-1)
    luma = width * height
    chroma = (width // 2) * (height // 2)

    frame = Frame.new_default(width, height, YUV420, time=time)
    frame.plane(0)[:] = flat[:luma].reshape(height, width)
    frame.plane(1)[:] = flat[luma:luma + chroma].reshape(height // 2, width // 2)
    frame.plane(2)[:] = flat[luma + chroma:luma + 2 * chroma].reshape(height // 2, width // 2)
    return frame


def frame_to_bgr(frame: Frame) -> np.ndarray:
    """Convert a YUV420 Frame into a new BGR image.

    Raises:
        ValueError: If the frame is not YUV420 or has odd dimensions.
        RuntimeError: If OpenCV is not installed.
    """
    if frame.format != YUV420:
        raise ValueError(f"Expected a yuv420p frame, got {frame.format.name}")
    if frame.width % 2 or frame.height % 2:
        raise ValueError(
            f"I420 conversion needs even dimensions, got {frame.width}x{frame.height}"
        )

    cv2 = _cv2()
    packed = np.concatenate([frame.plane(i).reshape(-1) for i in range(3)])
    packed = packed.reshape(frame.height * 3 // 2, frame.width)
    return cv2.cvtColor(packed, cv2.COLOR_YUV2BGR_I420)
