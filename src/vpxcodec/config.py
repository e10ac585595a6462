"""Runtime settings for vpxcodec.

Settings come from environment variables with sensible defaults:
- VPXCODEC_LIBRARY: explicit path to the libvpx shared library
- VPXCODEC_DECODER_ABI_VERSION: override for the decoder ABI constant
- VPXCODEC_ENCODER_ABI_VERSION: override for the encoder ABI constant
- VPXCODEC_MAX_BUFFER_SIZE: largest native buffer copied out, in bytes

The ABI defaults are the constants of the libvpx headers these bindings
were written against. libvpx rejects any other value with ABI_MISMATCH.
"""

from __future__ import annotations

import os

from pydantic import BaseModel, Field

# vpx_image.h / vpx_codec.h / vpx_decoder.h / vpx_encoder.h
VPX_IMAGE_ABI_VERSION = 5
VPX_CODEC_ABI_VERSION = 4 + VPX_IMAGE_ABI_VERSION
VPX_EXT_RATECTRL_ABI_VERSION = 7
VPX_TPL_ABI_VERSION = 2
VPX_DECODER_ABI_VERSION = 3 + VPX_CODEC_ABI_VERSION
VPX_ENCODER_ABI_VERSION = (
    16 + VPX_CODEC_ABI_VERSION + VPX_EXT_RATECTRL_ABI_VERSION + VPX_TPL_ABI_VERSION
)

DEFAULT_MAX_BUFFER_SIZE = 256 * 1024 * 1024  # 256 MiB


class Settings(BaseModel):
    """Library-wide settings."""

    library_path: str | None = None
    decoder_abi_version: int = Field(default=VPX_DECODER_ABI_VERSION, ge=0)
    encoder_abi_version: int = Field(default=VPX_ENCODER_ABI_VERSION, ge=0)
    max_buffer_size: int = Field(default=DEFAULT_MAX_BUFFER_SIZE, gt=0)

    @classmethod
    def from_environment(cls, environ: dict[str, str] | None = None) -> "Settings":
        """Build settings from environment variables.

        Args:
            environ: Mapping to read instead of os.environ.

        Returns:
            Validated Settings instance.

        Raises:
            pydantic.ValidationError: If a variable holds an invalid value.
        """
        env = os.environ if environ is None else environ
        values: dict[str, str] = {}
        if env.get("VPXCODEC_LIBRARY"):
            values["library_path"] = env["VPXCODEC_LIBRARY"]
        if env.get("VPXCODEC_DECODER_ABI_VERSION"):
            values["decoder_abi_version"] = env["VPXCODEC_DECODER_ABI_VERSION"]
        if env.get("VPXCODEC_ENCODER_ABI_VERSION"):
            values["encoder_abi_version"] = env["VPXCODEC_ENCODER_ABI_VERSION"]
        if env.get("VPXCODEC_MAX_BUFFER_SIZE"):
            values["max_buffer_size"] = env["VPXCODEC_MAX_BUFFER_SIZE"]
        return cls.model_validate(values)


# Module-level settings cache
_settings: Settings | None = None


def get_settings() -> Settings:
    """Get the process-wide settings, read from the environment once."""
    global _settings
    if _settings is None:
        _settings = Settings.from_environment()
    return _settings


def reset_settings() -> None:
    """Drop the cached settings so the next call re-reads the environment."""
    global _settings
    _settings = None
