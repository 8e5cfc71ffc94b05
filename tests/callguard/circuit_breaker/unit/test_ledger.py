from __future__ import annotations

from datetime import timedelta

import pytest

from callguard.circuit_breaker import FailureLedger
from callguard.circuit_breaker.ledger import DEFAULT_FAILURE_DESCRIPTION
from tests.callguard.support.fakes import FakeClock

pytestmark = pytest.mark.asyncio


class _ExplodingAsyncLock:
    async def acquire(self) -> None:
        raise RuntimeError("async acquire failed")

    def release(self) -> None:
        return


async def test_record_failure_increments_and_stamps(fake_clock: FakeClock) -> None:
    ledger = FailureLedger()

    update = await ledger.record_failure("timed out", threshold=3)

    assert update.previous.failure_count == 0
    assert update.current.failure_count == 1
    assert update.current.last_failure_at == fake_clock.now()
    assert update.current.failure_log == ("timed out",)
    assert update.at == fake_clock.now()
    assert ledger.snapshot is update.current


async def test_record_failure_uses_default_description() -> None:
    ledger = FailureLedger()

    await ledger.record_failure(None, threshold=3)

    assert ledger.snapshot.failure_log == (DEFAULT_FAILURE_DESCRIPTION,)


async def test_record_failure_saturates_at_threshold_but_refreshes_timestamp(
    fake_clock: FakeClock,
) -> None:
    ledger = FailureLedger()
    await ledger.record_failure("first", threshold=2)
    await ledger.record_failure("second", threshold=2)
    first_trip_at = ledger.snapshot.last_failure_at

    fake_clock.advance(10.0)
    update = await ledger.record_failure("third", threshold=2)

    assert update.previous.failure_count == 2
    assert update.current.failure_count == 2
    assert first_trip_at is not None
    assert update.current.last_failure_at == first_trip_at + timedelta(seconds=10.0)
    assert update.current.failure_log == ("first", "second", "third")


async def test_reset_clears_counters_timestamp_and_log() -> None:
    ledger = FailureLedger()
    await ledger.record_failure("boom", threshold=5)

    update = await ledger.reset()

    assert update.previous.failure_count == 1
    assert update.current.failure_count == 0
    assert update.current.last_failure_at is None
    assert update.current.failure_log == ()


async def test_ledger_uses_thread_lock_path_when_gil_disabled(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.setattr(
        "callguard.circuit_breaker.ledger.sys._is_gil_enabled",
        lambda: False,
        raising=False,
    )
    ledger = FailureLedger()

    update = await ledger.record_failure("boom", threshold=1)

    assert update.current.failure_count == 1
    assert ledger._thread_lock.locked() is False


async def test_ledger_releases_thread_lock_if_async_lock_acquire_fails(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.setattr(
        "callguard.circuit_breaker.ledger.sys._is_gil_enabled",
        lambda: False,
        raising=False,
    )
    ledger = FailureLedger()
    ledger._async_lock = _ExplodingAsyncLock()  # type: ignore[assignment]

    with pytest.raises(RuntimeError, match="async acquire failed"):
        await ledger.reset()

    assert ledger._thread_lock.locked() is False
