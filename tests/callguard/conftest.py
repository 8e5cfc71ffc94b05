from __future__ import annotations

import pytest

import callguard.circuit_breaker.breaker as breaker_mod
import callguard.circuit_breaker.ledger as ledger_mod
from tests.callguard.support.fakes import FakeClock, FakeLogger


@pytest.fixture
def fake_logger() -> FakeLogger:
    """Provide a fresh structured logger test double per test."""
    return FakeLogger()


@pytest.fixture
def fake_clock(monkeypatch: pytest.MonkeyPatch) -> FakeClock:
    """Drive breaker and ledger time from one manually advanced clock."""
    clock = FakeClock()
    monkeypatch.setattr(breaker_mod, "_utcnow", clock.now)
    monkeypatch.setattr(ledger_mod, "_utcnow", clock.now)
    return clock
