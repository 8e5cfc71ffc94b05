"""Failure ledger for circuit breakers.

The ledger is the only mutable state a breaker owns. It holds an immutable
``BreakerSnapshot`` that is swapped atomically, so readers never need a lock.
Writers are serialized so that concurrent callers cannot lose an update.
"""

import asyncio
import sys
import threading
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import UTC, datetime

from callguard.circuit_breaker.state import BreakerSnapshot

DEFAULT_FAILURE_DESCRIPTION = "service is relying on fallback"


def _utcnow() -> datetime:
    return datetime.now(UTC)


@dataclass(frozen=True)
class LedgerUpdate:
    """Snapshots taken immediately before and after one ledger mutation."""

    previous: BreakerSnapshot
    current: BreakerSnapshot
    at: datetime


class FailureLedger:
    """In-memory failure ledger with cooperative + optional thread locks."""

    def __init__(self) -> None:
        """Initialize an empty ledger."""
        self._snapshot = BreakerSnapshot()
        self._async_lock = asyncio.Lock()
        self._thread_lock = threading.Lock()
        is_gil_enabled = getattr(sys, "_is_gil_enabled", None)
        self._gil_enabled = True if is_gil_enabled is None else bool(is_gil_enabled())

    @property
    def snapshot(self) -> BreakerSnapshot:
        """Return the current snapshot."""
        return self._snapshot

    @asynccontextmanager
    async def _locked(self) -> AsyncIterator[None]:
        if self._gil_enabled:
            await self._async_lock.acquire()
            try:
                yield
            finally:
                self._async_lock.release()
            return

        self._thread_lock.acquire()
        try:
            await self._async_lock.acquire()
        except BaseException:
            self._thread_lock.release()
            raise
        try:
            yield
        finally:
            self._async_lock.release()
            self._thread_lock.release()

    async def record_failure(
        self,
        description: str | None = None,
        *,
        threshold: int,
    ) -> LedgerUpdate:
        """Record one failure and return the surrounding snapshots.

        The count saturates at ``threshold``: once a breaker is eligible to
        block, further failures only refresh the timestamp and the log.

        Args:
            description: Text appended to the failure log.
            threshold: Failure count at which the breaker blocks.
        """
        async with self._locked():
            previous = self._snapshot
            now = _utcnow()
            current = BreakerSnapshot(
                failure_count=min(previous.failure_count + 1, max(threshold, 1)),
                last_failure_at=now,
                failure_log=(
                    *previous.failure_log,
                    description or DEFAULT_FAILURE_DESCRIPTION,
                ),
            )
            self._snapshot = current
            return LedgerUpdate(previous=previous, current=current, at=now)

    async def reset(self) -> LedgerUpdate:
        """Clear counters, timestamp and log."""
        async with self._locked():
            previous = self._snapshot
            current = BreakerSnapshot()
            self._snapshot = current
            return LedgerUpdate(previous=previous, current=current, at=_utcnow())
