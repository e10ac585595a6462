"""VP8/VP9 encoder configuration and session.

Usage:
    config = EncoderConfig(Codec.VP9)
    config.width, config.height = 640, 480
    config.timebase = Fraction(1, 30)

    with config.get_encoder() as encoder:
        for frame in frames:
            encoder.encode(frame)
            for packet in encoder.iter_packets():
                ...
        encoder.flush()
        for packet in encoder.iter_packets():
            ...
"""

from __future__ import annotations

import ctypes
import logging
from fractions import Fraction
from typing import Iterator

from vpxcodec.adapter.libvpx.bindings import (
    VPX_CODEC_USE_PSNR,
    VPX_EFLAG_FORCE_KF,
    EncoderControl,
    codec_interface,
    error_string,
    load_library,
    vpx_codec_enc_cfg_t,
)
from vpxcodec.adapter.libvpx.image import image_from_frame
from vpxcodec.adapter.libvpx.packet import classify_packet
from vpxcodec.config import Settings, get_settings
from vpxcodec.core.session import CodecSession
from vpxcodec.errors import CodecInitError, ControlError, ErrorCode, SubmissionError
from vpxcodec.models.frame import Frame
from vpxcodec.models.options import (
    Codec,
    Deadline,
    EncoderOptions,
    EncodingPass,
    RateControlMode,
)
from vpxcodec.models.packet import Packet

logger = logging.getLogger(__name__)

# Named options that map to runtime controls rather than config fields
NAMED_CONTROLS: dict[str, EncoderControl] = {
    "cpu-used": EncoderControl.VP8E_SET_CPUUSED,
    "auto-alt-ref": EncoderControl.VP8E_SET_ENABLEAUTOALTREF,
    "arnr-maxframes": EncoderControl.VP8E_SET_ARNR_MAXFRAMES,
    "arnr-strength": EncoderControl.VP8E_SET_ARNR_STRENGTH,
    "arnr-type": EncoderControl.VP8E_SET_ARNR_TYPE,
}


def _cfg_field(name: str, doc: str) -> property:
    def getter(self) -> int:
        return getattr(self._cfg, name)

    def setter(self, value: int) -> None:
        setattr(self._cfg, name, int(value))

    return property(getter, setter, doc=doc)


class EncoderConfig:
    """Encoder parameters, seeded from the library defaults.

    Setters write straight into the native configuration struct without
    validation; libvpx checks the values when an Encoder is built. Changes
    made after get_encoder() do not affect encoders already built.
    """

    def __init__(
        self,
        codec: Codec = Codec.VP9,
        usage: int = 0,
        settings: Settings | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.codec = Codec(codec)
        self.enable_psnr = False
        self.controls: dict[str, int] = {}
        self._lib = load_library(self.settings)
        self._twopass_stats: ctypes.Array | None = None

        self._iface = codec_interface(self._lib, self.codec, "cx")
        if not self._iface:
            raise CodecInitError(
                ErrorCode.INCAPABLE, f"libvpx was built without the {self.codec.value} encoder"
            )

        self._cfg = vpx_codec_enc_cfg_t()
        status = self._lib.vpx_codec_enc_config_default(self._iface, ctypes.byref(self._cfg), usage)
        if status != ErrorCode.OK:
            raise CodecInitError(
                status, f"{self.codec.value} default config failed: {error_string(self._lib, status)}"
            )

    usage = _cfg_field("g_usage", "Algorithm-specific usage value.")
    threads = _cfg_field("g_threads", "Maximum number of encoder threads.")
    profile = _cfg_field("g_profile", "Bitstream profile.")
    width = _cfg_field("g_w", "Frame width in pixels.")
    height = _cfg_field("g_h", "Frame height in pixels.")
    error_resilient = _cfg_field("g_error_resilient", "Error resilience flags.")
    lag_in_frames = _cfg_field("g_lag_in_frames", "Frames the encoder may buffer for look-ahead.")
    dropframe_thresh = _cfg_field("rc_dropframe_thresh", "Buffer level (percent) that triggers frame drops.")
    target_bitrate = _cfg_field("rc_target_bitrate", "Target bitrate in kbit/s.")
    min_quantizer = _cfg_field("rc_min_quantizer", "Best quality quantizer (0-63).")
    max_quantizer = _cfg_field("rc_max_quantizer", "Worst quality quantizer (0-63).")

    @property
    def timebase(self) -> Fraction | None:
        """Seconds per timestamp tick."""
        tb = self._cfg.g_timebase
        if tb.den == 0:
            return None
        return Fraction(tb.num, tb.den)

    @timebase.setter
    def timebase(self, value: Fraction) -> None:
        value = Fraction(value)
        self._cfg.g_timebase.num = value.numerator
        self._cfg.g_timebase.den = value.denominator

    @property
    def timebase_num(self) -> int:
        return self._cfg.g_timebase.num

    @timebase_num.setter
    def timebase_num(self, value: int) -> None:
        self._cfg.g_timebase.num = int(value)

    @property
    def timebase_den(self) -> int:
        return self._cfg.g_timebase.den

    @timebase_den.setter
    def timebase_den(self, value: int) -> None:
        self._cfg.g_timebase.den = int(value)

    @property
    def rate_control_pass(self) -> EncodingPass:
        return EncodingPass(self._cfg.g_pass)

    @rate_control_pass.setter
    def rate_control_pass(self, value: EncodingPass) -> None:
        self._cfg.g_pass = int(value)

    @property
    def rate_control_mode(self) -> RateControlMode:
        return RateControlMode(self._cfg.rc_end_usage)

    @rate_control_mode.setter
    def rate_control_mode(self, value: RateControlMode) -> None:
        self._cfg.rc_end_usage = int(value)

    @property
    def twopass_stats(self) -> bytes | None:
        """First-pass statistics fed to a last-pass encoder."""
        if self._twopass_stats is None:
            return None
        return self._twopass_stats.raw

    @twopass_stats.setter
    def twopass_stats(self, value: bytes | None) -> None:
        stats = self._cfg.rc_twopass_stats_in
        if not value:
            self._twopass_stats = None
            stats.buf = None
            stats.sz = 0
            return
        data = bytes(value)
        self._twopass_stats = ctypes.create_string_buffer(data, len(data))
        stats.buf = ctypes.addressof(self._twopass_stats)
        stats.sz = len(data)

    def apply(self, options: EncoderOptions) -> "EncoderConfig":
        """Copy every option that is set onto this configuration.

        Control-backed options ("cpu-used", "arnr-*", ...) are queued in
        `controls` and sent by every encoder built from this config.

        Returns:
            self, for chaining.
        """
        for name, value in options.model_dump(exclude_none=True).items():
            alias = EncoderOptions.model_fields[name].alias
            if alias in NAMED_CONTROLS:
                self.controls[alias] = int(value)
            else:
                setattr(self, name, value)
        return self

    def snapshot(self) -> vpx_codec_enc_cfg_t:
        """Independent copy of the native configuration struct."""
        return vpx_codec_enc_cfg_t.from_buffer_copy(self._cfg)

    def get_encoder(self, deadline: int = Deadline.GOOD_QUALITY) -> "Encoder":
        """Build an encoder session from the current parameters."""
        return Encoder(self, deadline=deadline)


class Encoder(CodecSession):
    """Encodes Frames into compressed packets.

    Attributes:
        codec: Codec family.
        deadline: Per-frame time budget in microseconds (see Deadline).
        width: Configured frame width.
        height: Configured frame height.
    """

    def __init__(self, config: EncoderConfig, deadline: int = Deadline.GOOD_QUALITY) -> None:
        super().__init__(config.settings)
        self.codec = config.codec
        self.deadline = int(deadline)

        # libvpx keeps pointing at the config struct and the stats buffer
        self._cfg = config.snapshot()
        self._twopass_stats = config._twopass_stats
        self.width = self._cfg.g_w
        self.height = self._cfg.g_h

        iface = config._iface
        flags = VPX_CODEC_USE_PSNR if config.enable_psnr else 0
        abi_version = self._settings.encoder_abi_version

        self._init_context(
            lambda ctx: self._lib.vpx_codec_enc_init_ver(
                ctypes.byref(ctx), iface, ctypes.byref(self._cfg), flags, abi_version
            ),
            f"{self.codec.value} encoder",
        )

        try:
            for key, value in config.controls.items():
                self.set_option(key, value)
        except ControlError:
            self.close()
            raise

    def control(self, control_id: int, value: int) -> None:
        """Set a runtime encoder parameter.

        Args:
            control_id: EncoderControl member, or the raw id of one.
            value: Integer argument.

        Raises:
            SessionClosedError: If the encoder is closed.
            ControlError: If the id is not an int-argument control, or the
                active codec rejects the control.
        """
        ctx = self._context()
        try:
            control = EncoderControl(control_id)
        except ValueError:
            # Unlisted ids may expect a pointer; never hand libvpx an int for one
            raise ControlError(
                ErrorCode.INVALID_PARAM, f"control {control_id} is not an int-argument encoder control"
            ) from None
        status = self._lib.vpx_codec_control_(ctx, ctypes.c_int(int(control)), ctypes.c_int(int(value)))
        self._check(status, ControlError, f"control {control.name}")

    def set_option(self, key: str, value: int) -> None:
        """Set a control-backed named option, e.g. "cpu-used".

        Raises:
            KeyError: If `key` is not in NAMED_CONTROLS.
            SessionClosedError: If the encoder is closed.
            ControlError: If the active codec rejects the value.
        """
        try:
            control = NAMED_CONTROLS[key]
        except KeyError:
            raise KeyError(f"Unknown encoder option {key!r}") from None
        self.control(control, value)

    def encode(self, frame: Frame, force_keyframe: bool = False) -> None:
        """Submit one frame.

        The frame's planes are read in place, so they must not change while
        this call runs.

        Raises:
            SessionClosedError: If the encoder is closed.
            ValueError: If the frame has no presentation timestamp.
            UnsupportedFormatError: If the frame's format has no native form.
            SubmissionError: If the native encoder rejects the frame.
        """
        ctx = self._context()
        pts = frame.pts
        if pts is None:
            raise ValueError("Frame has no presentation timestamp")
        img = image_from_frame(frame)
        flags = VPX_EFLAG_FORCE_KF if force_keyframe else 0

        try:
            status = self._lib.vpx_codec_encode(ctx, ctypes.byref(img), pts, 1, flags, self.deadline)
            self._check(status, SubmissionError, "encode")
        finally:
            self._reset_cursor()

    def flush(self) -> None:
        """Signal end of stream so look-ahead frames are emitted.

        Raises:
            SessionClosedError: If the encoder is closed.
            SubmissionError: If the native encoder rejects the flush.
        """
        ctx = self._context()
        try:
            status = self._lib.vpx_codec_encode(ctx, None, -1, 1, 0, self.deadline)
            self._check(status, SubmissionError, "flush")
        finally:
            self._reset_cursor()

    def get_packet(self) -> Packet | None:
        """Retrieve the next packet produced by the last encode or flush.

        Returns:
            Owned Packet, or None once the output of the last call is
            exhausted.

        Raises:
            SessionClosedError: If the encoder is closed.
            CorruptBufferError: If a packet's buffer descriptor is invalid.
        """
        ctx = self._context()
        pkt_p = self._lib.vpx_codec_get_cx_data(ctx, ctypes.byref(self._iter))
        if not pkt_p:
            return None
        return classify_packet(pkt_p.contents, self._settings.max_buffer_size)

    def iter_packets(self) -> Iterator[Packet]:
        """Drain every packet produced by the last encode or flush."""
        while True:
            packet = self.get_packet()
            if packet is None:
                return
            yield packet
