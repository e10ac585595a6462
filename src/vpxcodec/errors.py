"""Typed errors for libvpx sessions.

Every native status code maps 1:1 onto an ErrorCode member, and every failed
native call surfaces as a VpxError subclass carrying that code:
- CodecInitError: context or default-configuration creation failed
- SubmissionError: encode/decode/flush rejected
- ControlError: runtime parameter not accepted by the active codec
- UnsupportedFormatError: pixel format with no conversion path
- CorruptBufferError: native buffer descriptor that cannot be copied safely

Misuse of the wrapper itself (closed session, missing library) raises
RuntimeError subclasses instead.
"""

from __future__ import annotations

from enum import IntEnum


class ErrorCode(IntEnum):
    """Mirror of vpx_codec_err_t."""

    OK = 0
    ERROR = 1
    MEM_ERROR = 2
    ABI_MISMATCH = 3
    INCAPABLE = 4
    UNSUP_BITSTREAM = 5
    UNSUP_FEATURE = 6
    CORRUPT_FRAME = 7
    INVALID_PARAM = 8
    LIST_END = 9

    @classmethod
    def from_status(cls, status: int) -> "ErrorCode":
        """Map a raw native status, folding unknown values into ERROR."""
        try:
            return cls(status)
        except ValueError:
            return cls.ERROR


class VpxError(Exception):
    """Base class for failures reported by (or about) the native codec.

    Attributes:
        code: Typed status code.
        status: Raw status value as returned by the native call.
        message: Human-readable diagnostic.
        detail: Optional extra diagnostic from vpx_codec_error_detail.
    """

    def __init__(
        self,
        code: ErrorCode | int,
        message: str = "",
        detail: str | None = None,
    ) -> None:
        self.status = int(code)
        self.code = ErrorCode.from_status(self.status)
        self.message = message or self.code.name
        self.detail = detail
        text = f"[{self.code.name}] {self.message}"
        if detail:
            text = f"{text} ({detail})"
        super().__init__(text)


class CodecInitError(VpxError):
    """Context or configuration could not be created."""


class SubmissionError(VpxError):
    """Encode, decode or flush was rejected by the native layer."""


class ControlError(VpxError):
    """A runtime control parameter was rejected."""


class UnsupportedFormatError(VpxError):
    """Pixel format outside the adapter's format table."""

    def __init__(self, message: str) -> None:
        super().__init__(ErrorCode.UNSUP_FEATURE, message)


class CorruptBufferError(VpxError):
    """Native buffer pointer/length pair that cannot be trusted."""

    def __init__(self, message: str) -> None:
        super().__init__(ErrorCode.CORRUPT_FRAME, message)


class SessionClosedError(RuntimeError):
    """Operation attempted on a session whose context was destroyed."""


class LibraryNotFoundError(RuntimeError):
    """libvpx shared library could not be located or loaded."""
