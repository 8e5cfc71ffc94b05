"""Circuit breaker state primitives."""

from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum


class CircuitState(StrEnum):
    """Protective state values.

    The state is never stored. It is derived from the failure ledger on every
    read, see :func:`derive_state`.
    """

    NORMAL = "normal"
    PROBING = "probing"
    BLOCKED = "blocked"


@dataclass(frozen=True)
class BreakerSnapshot:
    """Point-in-time view of the failure ledger.

    Attributes:
        failure_count: Consecutive failures since the last success.
        last_failure_at: Timestamp of the last recorded failure, if any.
        failure_log: Descriptions of failures since the last success, oldest
            first.
    """

    failure_count: int = 0
    last_failure_at: datetime | None = None
    failure_log: tuple[str, ...] = ()


def derive_state(
    failure_count: int,
    last_failure_at: datetime | None,
    threshold: int,
    grace_period: float,
    now: datetime,
) -> CircuitState:
    """Map failure counters and elapsed time to a protective state.

    Args:
        failure_count: Consecutive failures recorded so far.
        last_failure_at: Time of the most recent failure.
        threshold: Failure count at which calls stop passing through.
        grace_period: Seconds to stay blocked after the last failure.
        now: Reference time for the elapsed-time comparison.

    Returns:
        ``NORMAL`` below the threshold, ``PROBING`` once more than
        ``grace_period`` seconds passed since the last failure, otherwise
        ``BLOCKED``.
    """
    if failure_count < threshold:
        return CircuitState.NORMAL
    if last_failure_at is None:
        return CircuitState.PROBING
    elapsed = (now - last_failure_at).total_seconds()
    if elapsed > grace_period:
        return CircuitState.PROBING
    return CircuitState.BLOCKED


def seconds_until_probe(
    snapshot: BreakerSnapshot,
    grace_period: float,
    now: datetime,
) -> float:
    """Return seconds left before a probe is allowed, never negative."""
    if snapshot.last_failure_at is None:
        return 0.0
    elapsed = (now - snapshot.last_failure_at).total_seconds()
    return max(grace_period - elapsed, 0.0)
