from __future__ import annotations

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

ENV_PREFIX = "CALLGUARD_"


def prefixed_settings_config(prefix: str) -> SettingsConfigDict:
    """Build standard Pydantic settings config for prefixed environments."""
    return SettingsConfigDict(env_prefix=prefix, case_sensitive=False)


class BreakerSettings(BaseSettings):
    """Defaults applied to breaker configuration fields left unset."""

    model_config = prefixed_settings_config(ENV_PREFIX)

    timeout_seconds: float = 2.0
    grace_period_seconds: float = 3.0
    failure_threshold: int = 2

    @model_validator(mode="after")
    def _validate_breaker_settings(self) -> BreakerSettings:
        if self.timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be > 0")
        if self.grace_period_seconds < 0:
            raise ValueError("grace_period_seconds must be >= 0")
        if self.failure_threshold < 1:
            raise ValueError("failure_threshold must be >= 1")
        return self
