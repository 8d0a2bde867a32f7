"""clapsense configuration: typed settings loaded from the environment."""

import logging
import platform
from typing import Any, Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)

_config_instance: "ClapConfig | None" = None


def _default_audio_source() -> str:
    """Microphone source understood by ``sox -t``."""
    if platform.system() == "Darwin":
        return "coreaudio default"
    return "alsa hw:1,0"


class ClapConfig(BaseSettings):
    """All clapsense settings, loaded from environment variables with CLAPSENSE_ prefix."""

    # Capture
    backend: Literal["sox", "sounddevice"] = "sox"
    audio_source: str = Field(default_factory=_default_audio_source)
    detection_percentage_start: str = "10%"
    detection_percentage_end: str = "10%"
    sox_binary: str = "sox"

    # sounddevice backend
    sample_rate: int = Field(default=16000, gt=0)
    channels: int = Field(default=1, gt=0)
    silence_duration: float = Field(default=0.1, gt=0)  # trailing silence that ends a segment
    max_recording_seconds: float = Field(default=0.0, ge=0)  # 0 = unbounded

    # Noise cleaning (requires a sox noise profile)
    cleaning_enabled: bool = False
    noise_profile: str = "noise.prof"
    noise_reduction_amount: float = Field(default=0.21, ge=0, le=1)

    # Classification
    clap_amplitude_threshold: float = 0.7
    clap_energy_threshold: float = 0.3
    clap_max_duration_ms: int = Field(default=1500, gt=0)

    # Pattern matching
    max_history_length: int = Field(default=10, ge=1)  # no need to keep a big history

    # Staging folder for transient segment files
    wav_folder: str = "wav"

    # Loop
    capture_failure_backoff: float = Field(default=0.5, ge=0)

    # System
    log_level: str = "INFO"
    log_levels: dict[str, str] = Field(default_factory=dict)  # per-module, e.g. {"clapsense.audio": "DEBUG"}

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="CLAPSENSE_",
        env_file_encoding="utf-8",
        extra="ignore",
        frozen=True,
    )

    @field_validator("detection_percentage_start", "detection_percentage_end")
    @classmethod
    def validate_percentage(cls, value: str) -> str:
        text = value.strip()
        try:
            fraction = _percentage_to_fraction(text)
        except ValueError:
            raise ValueError(f"Not a sox threshold: {value!r} (expected e.g. \"10%\")") from None
        if not 0 <= fraction <= 1:
            raise ValueError(f"Threshold out of range: {value!r}")
        return text

    @property
    def detection_threshold_start(self) -> float:
        """Start-of-sound threshold as a fraction of full scale."""
        return _percentage_to_fraction(self.detection_percentage_start)

    @property
    def detection_threshold_end(self) -> float:
        """End-of-sound (silence) threshold as a fraction of full scale."""
        return _percentage_to_fraction(self.detection_percentage_end)


def _percentage_to_fraction(value: str) -> float:
    """Convert a sox-style ``"10%"`` threshold to ``0.1``."""
    text = value.strip()
    if text.endswith("%"):
        return float(text[:-1]) / 100.0
    return float(text)


def merge_config(base: ClapConfig, overrides: dict[str, Any] | None = None) -> ClapConfig:
    """Return a validated copy of *base* with *overrides* applied.

    Unknown keys are ignored, matching the settings' ``extra="ignore"``.

    Raises:
        pydantic.ValidationError: If an override has an invalid value.
    """
    if not overrides:
        return base

    known = {k: v for k, v in overrides.items() if k in ClapConfig.model_fields}
    ignored = sorted(set(overrides) - set(known))
    if ignored:
        logger.warning("Ignoring unknown config keys: %s", ", ".join(ignored))

    merged = ClapConfig(**{**base.model_dump(), **known})
    logger.debug("Config merged with overrides: %s", ", ".join(sorted(known)))
    return merged


def get_config() -> ClapConfig:
    """Get the singleton ClapConfig instance.

    Returns:
        The shared ClapConfig loaded from environment.
    """
    global _config_instance
    if _config_instance is None:
        _config_instance = ClapConfig()
    return _config_instance
