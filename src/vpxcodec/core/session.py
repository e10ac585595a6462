"""Shared lifecycle of a libvpx codec context.

A CodecSession owns exactly one vpx_codec_ctx_t and one emission cursor.
The context is created with a construct-then-fill handshake: a zeroed
scratch struct is handed to the native initializer and only adopted by the
session once the initializer reports success. Teardown goes through a
weakref finalizer, so vpx_codec_destroy runs exactly once whether the
session is closed explicitly, left via `with`, or garbage collected.

Sessions do no locking: drive each one from a single thread at a time.
"""

from __future__ import annotations

import ctypes
import logging
import weakref
from typing import Callable

from vpxcodec.adapter.libvpx.bindings import error_string, load_library, vpx_codec_ctx_t
from vpxcodec.config import Settings, get_settings
from vpxcodec.errors import CodecInitError, ErrorCode, SessionClosedError, VpxError

logger = logging.getLogger(__name__)


def _destroy_context(lib, ctx: vpx_codec_ctx_t, label: str) -> None:
    status = lib.vpx_codec_destroy(ctypes.byref(ctx))
    if status != ErrorCode.OK:
        logger.warning(f"vpx_codec_destroy({label}) returned {status}")
    else:
        logger.debug(f"Destroyed {label} context")


class CodecSession:
    """Owning handle over one native codec context.

    Usage:
        with Decoder() as decoder:
            decoder.decode(data)
            for frame, payload in decoder.iter_frames():
                ...
    """

    def __init__(self, settings: Settings | None = None) -> None:
        self._settings = settings or get_settings()
        self._lib = load_library(self._settings)
        self._ctx: vpx_codec_ctx_t | None = None
        self._iter = ctypes.c_void_p()
        self._finalizer: weakref.finalize | None = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def _init_context(self, init: Callable[[vpx_codec_ctx_t], int], label: str) -> None:
        """Run a native initializer against a scratch context.

        Args:
            init: Calls the native initializer on the given scratch struct
                and returns its status.
            label: Name used in logs and errors.

        Raises:
            CodecInitError: If the initializer fails. The scratch struct is
                dropped without being read.
        """
        scratch = vpx_codec_ctx_t()
        status = init(scratch)
        if status != ErrorCode.OK:
            raise CodecInitError(
                status, f"{label} initialization failed: {error_string(self._lib, status)}"
            )
        self._ctx = scratch
        self._finalizer = weakref.finalize(self, _destroy_context, self._lib, scratch, label)
        logger.debug(f"Created {label} context")

    def _context(self):
        """Reference to the live context for passing to native calls."""
        if self._ctx is None:
            raise SessionClosedError(f"{type(self).__name__} is closed")
        return ctypes.byref(self._ctx)

    def _reset_cursor(self) -> None:
        """Point the cursor back at the start of the current call's output."""
        self._iter.value = None

    def _check(self, status: int, error_cls: type[VpxError], action: str) -> None:
        """Raise `error_cls` unless `status` is VPX_CODEC_OK."""
        if status != ErrorCode.OK:
            raise error_cls(status, f"{action} failed: {self.error_to_str()}", self.error_detail())

    @property
    def closed(self) -> bool:
        """Whether the native context has been destroyed."""
        return self._ctx is None

    def error_to_str(self) -> str:
        """Human-readable description of the last error on this context.

        Returns:
            The library's message, or "" once the session is closed.
        """
        if self._ctx is None:
            return ""
        text = self._lib.vpx_codec_error(ctypes.byref(self._ctx))
        return text.decode("utf-8", errors="replace") if text else ""

    def error_detail(self) -> str | None:
        """Extra detail for the last error, if the library recorded any."""
        if self._ctx is None:
            return None
        text = self._lib.vpx_codec_error_detail(ctypes.byref(self._ctx))
        return text.decode("utf-8", errors="replace") if text else None

    def close(self) -> None:
        """Destroy the native context. Safe to call more than once."""
        if self._finalizer is not None:
            self._finalizer()
        self._ctx = None
        self._reset_cursor()
