from __future__ import annotations

import pytest
from pydantic import ValidationError

from callguard.settings import BreakerSettings, prefixed_settings_config


@pytest.fixture(autouse=True)
def _clean_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in (
        "CALLGUARD_TIMEOUT_SECONDS",
        "CALLGUARD_GRACE_PERIOD_SECONDS",
        "CALLGUARD_FAILURE_THRESHOLD",
    ):
        monkeypatch.delenv(name, raising=False)


def test_breaker_settings_defaults() -> None:
    settings = BreakerSettings()

    assert settings.timeout_seconds == 2.0
    assert settings.grace_period_seconds == 3.0
    assert settings.failure_threshold == 2


def test_breaker_settings_read_prefixed_environment(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.setenv("CALLGUARD_TIMEOUT_SECONDS", "0.5")
    monkeypatch.setenv("callguard_grace_period_seconds", "10")
    monkeypatch.setenv("CALLGUARD_FAILURE_THRESHOLD", "3")

    settings = BreakerSettings()

    assert settings.timeout_seconds == 0.5
    assert settings.grace_period_seconds == 10.0
    assert settings.failure_threshold == 3


def test_breaker_settings_rejects_non_positive_timeout() -> None:
    with pytest.raises(ValidationError):
        BreakerSettings(timeout_seconds=0)


def test_breaker_settings_rejects_negative_grace_period() -> None:
    with pytest.raises(ValidationError):
        BreakerSettings(grace_period_seconds=-0.1)


def test_breaker_settings_rejects_zero_threshold() -> None:
    with pytest.raises(ValidationError):
        BreakerSettings(failure_threshold=0)


def test_prefixed_settings_config_is_case_insensitive() -> None:
    config = prefixed_settings_config("APP_")

    assert config["env_prefix"] == "APP_"
    assert config["case_sensitive"] is False


def test_breaker_settings_only_carry_breaker_defaults() -> None:
    assert set(BreakerSettings.model_fields) == {
        "timeout_seconds",
        "grace_period_seconds",
        "failure_threshold",
    }
