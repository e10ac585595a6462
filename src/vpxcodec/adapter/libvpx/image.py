"""Conversion between host Frames and native vpx_image_t descriptors.

Frame -> Image borrows: the descriptor's plane pointers alias the Frame's
numpy arrays, so the Frame must stay alive and unmodified for the duration
of the native call that consumes the descriptor.

Image -> Frame copies: native plane memory is only valid until the next
call on the same context.
"""

from __future__ import annotations

import ctypes

import numpy as np

from vpxcodec.adapter.libvpx.bindings import (
    VPX_IMG_FMT_I420,
    VPX_IMG_FMT_I422,
    VPX_IMG_FMT_I440,
    VPX_IMG_FMT_I444,
    vpx_image_t,
)
from vpxcodec.errors import CorruptBufferError, UnsupportedFormatError
from vpxcodec.models.frame import YUV420, YUV422, YUV440, YUV444, Frame, PixelFormat

# Native format tag -> host pixel format. Extend both directions together.
_FORMATS: dict[int, PixelFormat] = {
    VPX_IMG_FMT_I420: YUV420,
    VPX_IMG_FMT_I422: YUV422,
    VPX_IMG_FMT_I440: YUV440,
    VPX_IMG_FMT_I444: YUV444,
}
_NATIVE_FORMATS: dict[PixelFormat, int] = {fmt: tag for tag, fmt in _FORMATS.items()}


def pixel_format(img_fmt: int) -> PixelFormat:
    """Host pixel format for a native vpx_img_fmt_t value.

    Raises:
        UnsupportedFormatError: If the format has no conversion path.
    """
    try:
        return _FORMATS[img_fmt]
    except KeyError:
        raise UnsupportedFormatError(f"Unsupported native image format 0x{img_fmt:x}") from None


def native_format(fmt: PixelFormat) -> int:
    """Native vpx_img_fmt_t value for a host pixel format.

    Raises:
        UnsupportedFormatError: If the format has no native counterpart.
    """
    try:
        return _NATIVE_FORMATS[fmt]
    except KeyError:
        raise UnsupportedFormatError(f"Unsupported pixel format {fmt.name}") from None


def image_from_frame(frame: Frame) -> vpx_image_t:
    """Build a descriptor whose planes point into `frame`'s arrays.

    Args:
        frame: Source frame. Must outlive every use of the returned image.

    Returns:
        Populated vpx_image_t (no pixel data is copied).

    Raises:
        UnsupportedFormatError: If the frame's format is not in the table.
        ValueError: If a plane is no longer C-contiguous.
    """
    img = vpx_image_t()
    img.fmt = native_format(frame.format)
    img.w = img.d_w = img.r_w = frame.width
    img.h = img.d_h = img.r_h = frame.height
    img.bit_depth = 8
    img.bps = frame.format.bits_per_pixel
    img.x_chroma_shift = frame.format.x_chroma_shift
    img.y_chroma_shift = frame.format.y_chroma_shift

    for index, plane in enumerate(frame.planes):
        if not plane.flags.c_contiguous:
            raise ValueError(f"Plane {index} must be C-contiguous")
        img.planes[index] = plane.ctypes.data
        img.stride[index] = plane.strides[0]

    return img


def _copy_plane(address: int | None, stride: int, rows: int, max_size: int) -> np.ndarray:
    size = stride * rows
    if size == 0:
        return np.zeros((rows, stride), dtype=np.uint8)
    if not address:
        raise CorruptBufferError(f"NULL plane with {size} bytes declared")
    if size > max_size:
        raise CorruptBufferError(f"Plane of {size} bytes exceeds the {max_size} byte limit")
    source = (ctypes.c_uint8 * size).from_address(address)
    return np.ctypeslib.as_array(source).reshape(rows, stride).copy()


def frame_from_image(img: vpx_image_t, max_buffer_size: int) -> Frame:
    """Deep-copy a native image into a new Frame.

    Plane heights follow the format's chroma subsampling applied to the
    display height `img.d_h`. Decoder output reports a padded `img.h`
    that includes the codec border, which is not part of the plane.

    Args:
        img: Native image, valid only until the next native call.
        max_buffer_size: Largest plane, in bytes, accepted for copying.

    Returns:
        Owned Frame of img.d_w x img.d_h.

    Raises:
        UnsupportedFormatError: If the image format is not in the table.
        CorruptBufferError: If a plane descriptor cannot be trusted.
    """
    fmt = pixel_format(img.fmt)

    planes = []
    for index in range(fmt.planes):
        stride = img.stride[index]
        if stride < 0:
            raise CorruptBufferError(f"Plane {index} has negative stride {stride}")
        rows = fmt.plane_height(index, img.d_h)
        planes.append(_copy_plane(img.planes[index], stride, rows, max_buffer_size))

    return Frame(width=img.d_w, height=img.d_h, format=fmt, planes=planes)
