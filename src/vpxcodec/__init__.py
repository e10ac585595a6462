"""Safe Python sessions over the libvpx VP8/VP9 codecs.

Layout:
- adapter/libvpx/  - ctypes bindings, Frame <-> image and packet conversion
- adapter/media/   - host pixel format conversion (OpenCV)
- core/            - payload registry, decoder and encoder sessions
- models/          - frames, packets, encoder options
- metrics/         - host-side quality metrics
"""

from vpxcodec.core.decoder import Decoder
from vpxcodec.core.encoder import Encoder, EncoderConfig
from vpxcodec.errors import (
    CodecInitError,
    ControlError,
    CorruptBufferError,
    ErrorCode,
    LibraryNotFoundError,
    SessionClosedError,
    SubmissionError,
    UnsupportedFormatError,
    VpxError,
)
from vpxcodec.models.frame import YUV420, YUV422, YUV440, YUV444, Frame, PixelFormat, TimeInfo
from vpxcodec.models.options import Codec, Deadline, EncoderOptions, EncodingPass, RateControlMode
from vpxcodec.models.packet import (
    CustomPacket,
    FramePacket,
    MbStatsPacket,
    Packet,
    Psnr,
    StatsPacket,
)

__version__ = "0.1.0"

__all__ = [
    # Sessions
    "Decoder",
    "Encoder",
    "EncoderConfig",
    # Models
    "Codec",
    "CustomPacket",
    "Deadline",
    "EncoderOptions",
    "EncodingPass",
    "Frame",
    "FramePacket",
    "MbStatsPacket",
    "Packet",
    "PixelFormat",
    "Psnr",
    "RateControlMode",
    "StatsPacket",
    "TimeInfo",
    "YUV420",
    "YUV422",
    "YUV440",
    "YUV444",
    # Errors
    "CodecInitError",
    "ControlError",
    "CorruptBufferError",
    "ErrorCode",
    "LibraryNotFoundError",
    "SessionClosedError",
    "SubmissionError",
    "UnsupportedFormatError",
    "VpxError",
]
