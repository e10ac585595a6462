"""VP8/VP9 decoder session.

Usage:
    with Decoder(Codec.VP9) as decoder:
        for unit, pts in units:
            decoder.decode(unit, payload=pts)
            for frame, payload in decoder.iter_frames():
                ...
        decoder.flush()
        for frame, payload in decoder.iter_frames():
            ...
"""

from __future__ import annotations

import ctypes
import logging
from typing import Any, Iterator

from vpxcodec.adapter.libvpx.bindings import codec_interface, vpx_codec_dec_cfg_t
from vpxcodec.adapter.libvpx.image import frame_from_image
from vpxcodec.config import Settings
from vpxcodec.core.payload import PayloadRegistry
from vpxcodec.core.session import CodecSession
from vpxcodec.errors import CodecInitError, ErrorCode, SubmissionError
from vpxcodec.models.frame import Frame
from vpxcodec.models.options import Codec

logger = logging.getLogger(__name__)

# vpx_codec_decode takes an unsigned int size
MAX_UNIT_SIZE = 2**32 - 1


class Decoder(CodecSession):
    """Decodes compressed units into Frames.

    Each decode() may carry an opaque payload (any object except None). The
    payload comes back from get_frame() alongside the frame decoded from
    that unit, exactly once. A payload whose unit produced no frame is
    dropped by the next decode() or by close().
    """

    def __init__(
        self,
        codec: Codec = Codec.VP9,
        threads: int = 0,
        settings: Settings | None = None,
    ) -> None:
        super().__init__(settings)
        self.codec = Codec(codec)
        self._payloads: PayloadRegistry[Any] = PayloadRegistry()

        iface = codec_interface(self._lib, self.codec, "dx")
        if not iface:
            raise CodecInitError(
                ErrorCode.INCAPABLE, f"libvpx was built without the {self.codec.value} decoder"
            )

        cfg = vpx_codec_dec_cfg_t()
        cfg.threads = threads
        abi_version = self._settings.decoder_abi_version

        self._init_context(
            lambda ctx: self._lib.vpx_codec_dec_init_ver(
                ctypes.byref(ctx), iface, ctypes.byref(cfg), 0, abi_version
            ),
            f"{self.codec.value} decoder",
        )

    @property
    def pending_payloads(self) -> int:
        """Payloads handed to the native layer and not yet returned."""
        return len(self._payloads)

    def _drop_stale_payloads(self) -> None:
        dropped = self._payloads.discard_all()
        if dropped:
            logger.debug(f"Dropped {dropped} payload(s) whose unit produced no frame")

    def decode(self, data: bytes | bytearray | memoryview, payload: Any = None) -> None:
        """Submit one compressed unit.

        Args:
            data: Compressed bytes. Copied for the duration of the call.
            payload: Object to return with the frame decoded from `data`.

        Raises:
            SessionClosedError: If the decoder is closed.
            ValueError: If `data` is larger than the native size type allows.
            SubmissionError: If the native decoder rejects the unit. The
                payload is dropped.
        """
        ctx = self._context()
        buf = bytes(data)
        if len(buf) > MAX_UNIT_SIZE:
            raise ValueError(f"Compressed unit of {len(buf)} bytes is too large")

        self._drop_stale_payloads()
        token = self._payloads.attach(payload) if payload is not None else None

        try:
            status = self._lib.vpx_codec_decode(ctx, buf, len(buf), token, 0)
            if status != ErrorCode.OK:
                self._payloads.discard(token)
            self._check(status, SubmissionError, "decode")
        finally:
            self._reset_cursor()

    def flush(self) -> None:
        """Signal end of stream so buffered frames are emitted.

        Outstanding payloads are kept: the flushed frames may carry them.

        Raises:
            SessionClosedError: If the decoder is closed.
            SubmissionError: If the native decoder rejects the flush.
        """
        ctx = self._context()
        try:
            status = self._lib.vpx_codec_decode(ctx, None, 0, None, 0)
            self._check(status, SubmissionError, "flush")
        finally:
            self._reset_cursor()

    def get_frame(self) -> tuple[Frame, Any] | None:
        """Retrieve the next frame produced by the last decode or flush.

        Returns:
            (frame, payload) with payload None when none was attached, or
            None once the output of the last call is exhausted.

        Raises:
            SessionClosedError: If the decoder is closed.
            UnsupportedFormatError: If the image format has no conversion.
            CorruptBufferError: If the image's plane descriptors are invalid.
        """
        ctx = self._context()
        img_p = self._lib.vpx_codec_get_frame(ctx, ctypes.byref(self._iter))
        if not img_p:
            return None

        img = img_p.contents
        token = img.user_priv
        frame = frame_from_image(img, self._settings.max_buffer_size)

        payload = None
        if token:
            if token in self._payloads:
                payload = self._payloads.reclaim(token)
            else:
                logger.warning(f"Decoded frame carries unknown payload token {token}")
        return frame, payload

    def iter_frames(self) -> Iterator[tuple[Frame, Any]]:
        """Drain every frame produced by the last decode or flush."""
        while True:
            item = self.get_frame()
            if item is None:
                return
            yield item

    def close(self) -> None:
        """Destroy the native context and drop outstanding payloads."""
        super().close()
        dropped = self._payloads.discard_all()
        if dropped:
            logger.debug(f"Dropped {dropped} payload(s) on close")
