"""Codec selection and encoder option models.

EncoderOptions is the validated, named-option view of an encoder
configuration (the keys a media pipeline would pass around as strings).
It is applied onto an EncoderConfig before the encoder session is built.
"""

from __future__ import annotations

from enum import Enum, IntEnum
from fractions import Fraction

from pydantic import BaseModel, ConfigDict, Field, field_validator


class Codec(str, Enum):
    """Codec families exposed by libvpx."""

    VP8 = "vp8"
    VP9 = "vp9"


class EncodingPass(IntEnum):
    """vpx_enc_pass."""

    ONE_PASS = 0
    FIRST_PASS = 1
    LAST_PASS = 2


class RateControlMode(IntEnum):
    """vpx_rc_mode."""

    VBR = 0
    CBR = 1
    CQ = 2
    Q = 3


class Deadline(IntEnum):
    """vpx_enc_deadline_t presets, in microseconds (0 = best quality)."""

    BEST_QUALITY = 0
    REALTIME = 1
    GOOD_QUALITY = 1000000


class EncoderOptions(BaseModel):
    """Named encoder options.

    Unset options leave the library default untouched.
    """

    model_config = ConfigDict(populate_by_name=True, extra="forbid", arbitrary_types_allowed=True)

    width: int | None = Field(default=None, alias="w", gt=0)
    height: int | None = Field(default=None, alias="h", gt=0)
    timebase: Fraction | None = None
    min_quantizer: int | None = Field(default=None, alias="qmin", ge=0, le=63)
    max_quantizer: int | None = Field(default=None, alias="qmax", ge=0, le=63)
    lag_in_frames: int | None = Field(default=None, alias="lag-in-frames", ge=0)
    threads: int | None = Field(default=None, ge=0)
    target_bitrate: int | None = Field(default=None, ge=0)
    rate_control_pass: EncodingPass | None = None
    rate_control_mode: RateControlMode | None = None
    enable_psnr: bool | None = None

    # Applied as runtime controls once the encoder exists
    cpu_used: int | None = Field(default=None, alias="cpu-used", ge=-16, le=16)
    auto_alt_ref: int | None = Field(default=None, alias="auto-alt-ref", ge=0)
    arnr_maxframes: int | None = Field(default=None, alias="arnr-maxframes", ge=0, le=15)
    arnr_strength: int | None = Field(default=None, alias="arnr-strength", ge=0, le=6)
    arnr_type: int | None = Field(default=None, alias="arnr-type", ge=1, le=3)

    @field_validator("timebase", mode="before")
    @classmethod
    def _parse_timebase(cls, value):
        """Accept Fraction, "num/den" strings or (num, den) pairs."""
        if value is None or isinstance(value, Fraction):
            return value
        if isinstance(value, (tuple, list)):
            num, den = value
            return Fraction(int(num), int(den))
        return Fraction(value)

    @field_validator("timebase")
    @classmethod
    def _positive_timebase(cls, value: Fraction | None) -> Fraction | None:
        if value is not None and value <= 0:
            raise ValueError("timebase must be positive")
        return value
