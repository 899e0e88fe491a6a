"""Configuration management for the amortization service."""

import os
from dataclasses import dataclass
from decimal import Decimal

from exceptions import ConfigurationError
from schemas import ClampPolicy

LOG_FORMATS = ("standard", "json")


@dataclass
class EngineConfig:
    """Engine and service configuration."""

    decimal_precision: int = 28
    clamp_policy: ClampPolicy = ClampPolicy.EVERY_PERIOD
    display_places: int = 2
    log_level: str = "INFO"
    log_format: str = "standard"

    @property
    def quantum(self) -> Decimal:
        """Quantization step used when rendering amounts, e.g. 0.01."""
        return Decimal(1).scaleb(-self.display_places)

    @classmethod
    def from_env(cls) -> "EngineConfig":
        """Create config from environment variables."""
        precision = _int_from_env("AMORTIZATION_PRECISION", 28)
        if precision < 10:
            raise ConfigurationError(
                f"AMORTIZATION_PRECISION must be at least 10, got {precision}"
            )

        places = _int_from_env("AMORTIZATION_DISPLAY_PLACES", 2)
        if places < 0:
            raise ConfigurationError(
                f"AMORTIZATION_DISPLAY_PLACES must not be negative, got {places}"
            )

        policy_name = os.getenv("AMORTIZATION_CLAMP_POLICY", ClampPolicy.EVERY_PERIOD.value)
        try:
            clamp_policy = ClampPolicy(policy_name.lower())
        except ValueError:
            raise ConfigurationError(
                f"AMORTIZATION_CLAMP_POLICY must be one of "
                f"{[p.value for p in ClampPolicy]}, got {policy_name!r}"
            ) from None

        log_format = os.getenv("LOG_FORMAT", "standard").lower()
        if log_format not in LOG_FORMATS:
            raise ConfigurationError(
                f"LOG_FORMAT must be one of {list(LOG_FORMATS)}, got {log_format!r}"
            )

        return cls(
            decimal_precision=precision,
            clamp_policy=clamp_policy,
            display_places=places,
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            log_format=log_format,
        )


def _int_from_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}") from None
