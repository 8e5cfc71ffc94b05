"""Core circuit breaker implementation."""

import asyncio
import sys
import threading
import time
from collections.abc import Sequence
from dataclasses import dataclass, replace
from datetime import UTC, datetime
from typing import cast

from pydantic import ValidationError

from callguard.circuit_breaker.exceptions import (
    CallFailedError,
    CircuitBreakerError,
    ConfigurationError,
    FallbackFailedError,
    FallbackUsedError,
    RejectedWhileBlockedError,
)
from callguard.circuit_breaker.invocation import Operation, invoke_bounded
from callguard.circuit_breaker.ledger import FailureLedger, LedgerUpdate
from callguard.circuit_breaker.listeners import (
    BreakerHooks,
    BreakerListener,
    Hook,
    TransitionNotifier,
)
from callguard.circuit_breaker.state import (
    BreakerSnapshot,
    CircuitState,
    derive_state,
    seconds_until_probe,
)
from callguard.logging import StructuredLogger, get_logger, log_error, log_warning
from callguard.settings import BreakerSettings


def _utcnow() -> datetime:
    return datetime.now(UTC)


class _ProbeGate:
    """Allow at most one in-flight probe per breaker instance."""

    def __init__(self) -> None:
        is_gil_enabled = getattr(sys, "_is_gil_enabled", None)
        self._gil_enabled = True if is_gil_enabled is None else bool(is_gil_enabled())
        self._thread_lock: threading.Lock | None = None
        if not self._gil_enabled:
            self._thread_lock = threading.Lock()
        self._held = False

    def try_acquire(self) -> bool:
        if self._thread_lock is None:
            if self._held:
                return False
            self._held = True
            return True

        with self._thread_lock:
            if self._held:
                return False
            self._held = True
            return True

    def release(self) -> None:
        if self._thread_lock is None:
            self._held = False
            return
        with self._thread_lock:
            self._held = False


@dataclass(frozen=True, slots=True)
class CircuitBreakerConfig:
    """Circuit breaker configuration values.

    Fields left as ``None`` are filled from ``BreakerSettings`` when the
    breaker is built.

    Attributes:
        target: Zero-argument async callable being protected. Required.
        fallback: Zero-argument async callable serving substitute content.
        timeout: Seconds to wait for ``target`` before treating it as failed.
        grace_period: Seconds to stay ``BLOCKED`` before allowing a probe.
        failure_threshold: Consecutive failures required to block.
        on_trip: Hook fired on transitions into ``BLOCKED``.
        on_reset: Hook fired on transitions into ``NORMAL``.
        on_state_change: Hook fired on every transition, before the others.
        cancel_on_timeout: Cancel a timed-out ``target`` instead of leaving it
            running detached.
    """

    target: Operation | None = None
    fallback: Operation | None = None
    timeout: float | None = None
    grace_period: float | None = None
    failure_threshold: int | None = None
    on_trip: Hook | None = None
    on_reset: Hook | None = None
    on_state_change: Hook | None = None
    cancel_on_timeout: bool = True

    def __post_init__(self) -> None:
        if self.timeout is not None and self.timeout <= 0:
            raise ConfigurationError("timeout must be > 0")
        if self.grace_period is not None and self.grace_period < 0:
            raise ConfigurationError("grace_period must be >= 0")
        if self.failure_threshold is not None and self.failure_threshold < 1:
            raise ConfigurationError("failure_threshold must be >= 1")


@dataclass(frozen=True, slots=True)
class CallResult:
    """Outcome of one protected call.

    Attributes:
        content: Content from the target, or from the fallback when
            ``via_fallback`` is set. ``None`` when nothing could be served.
        via_fallback: Whether the fallback was invoked for this call.
        error: ``None`` only after a genuine success of the target.
    """

    content: object | None
    via_fallback: bool
    error: CircuitBreakerError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def unwrap(self) -> object:
        """Return the content, or raise the error carried by this result."""
        if self.error is not None:
            raise self.error
        return self.content


def _apply_defaults(
    config: CircuitBreakerConfig,
    settings: BreakerSettings | None,
) -> CircuitBreakerConfig:
    if (
        config.timeout is not None
        and config.grace_period is not None
        and config.failure_threshold is not None
    ):
        return config
    defaults = settings
    if defaults is None:
        try:
            defaults = BreakerSettings()
        except ValidationError as exc:
            raise ConfigurationError(
                f"invalid breaker defaults in environment: {exc}"
            ) from exc
    return replace(
        config,
        timeout=defaults.timeout_seconds if config.timeout is None else config.timeout,
        grace_period=(
            defaults.grace_period_seconds
            if config.grace_period is None
            else config.grace_period
        ),
        failure_threshold=(
            defaults.failure_threshold
            if config.failure_threshold is None
            else config.failure_threshold
        ),
    )


class CircuitBreaker:
    """Stateful guard around one unreliable async operation."""

    def __init__(
        self,
        config: CircuitBreakerConfig,
        *,
        name: str = "default",
        settings: BreakerSettings | None = None,
        listeners: Sequence[BreakerListener] | None = None,
        logger: StructuredLogger | None = None,
    ) -> None:
        """Build a circuit breaker from its configuration.

        Args:
            config: Target, fallback, bounds and hooks for this breaker.
            name: Breaker name used in logs, events and errors.
            settings: Source of defaults for unset config fields. Defaults to
                ``BreakerSettings()`` read from the environment.
            listeners: Optional async listeners for breaker events.
            logger: Structured logger. Defaults to a structlog logger.

        Raises:
            ConfigurationError: When ``config.target`` is missing.
        """
        if config.target is None:
            raise ConfigurationError("a target operation must be provided")

        self.name = name
        self.config = _apply_defaults(config, settings)
        self._target: Operation = config.target
        self._fallback = config.fallback
        self._timeout = cast(float, self.config.timeout)
        self._grace_period = cast(float, self.config.grace_period)
        self._failure_threshold = cast(int, self.config.failure_threshold)
        self._logger = get_logger(__name__) if logger is None else logger
        self._ledger = FailureLedger()
        self._probe_gate = _ProbeGate()
        self._pending: set[asyncio.Future[object]] = set()
        self._notifier = TransitionNotifier(
            name,
            hooks=BreakerHooks(
                on_state_change=config.on_state_change,
                on_trip=config.on_trip,
                on_reset=config.on_reset,
            ),
            listeners=() if listeners is None else listeners,
            logger=self._logger,
        )

    @property
    def hooks(self) -> BreakerHooks:
        """Transition hooks; reassignable after construction."""
        return self._notifier.hooks

    @hooks.setter
    def hooks(self, hooks: BreakerHooks) -> None:
        self._notifier.hooks = hooks

    @property
    def snapshot(self) -> BreakerSnapshot:
        return self._ledger.snapshot

    @property
    def failure_count(self) -> int:
        return self._ledger.snapshot.failure_count

    @property
    def failure_log(self) -> tuple[str, ...]:
        return self._ledger.snapshot.failure_log

    def _derive(self, snapshot: BreakerSnapshot, now: datetime) -> CircuitState:
        return derive_state(
            snapshot.failure_count,
            snapshot.last_failure_at,
            self._failure_threshold,
            self._grace_period,
            now,
        )

    def state(self) -> CircuitState:
        """Return the protective state as of now."""
        return self._derive(self._ledger.snapshot, _utcnow())

    def retry_after(self) -> float:
        """Return seconds until a probe is allowed, ``0.0`` unless blocked."""
        snapshot = self._ledger.snapshot
        now = _utcnow()
        if self._derive(snapshot, now) != CircuitState.BLOCKED:
            return 0.0
        return seconds_until_probe(snapshot, self._grace_period, now)

    async def call(self) -> CallResult:
        """Invoke the target under circuit breaker protection.

        Returns:
            A ``CallResult``. Its ``error`` is ``None`` only when the target
            itself succeeded; every fallback or rejection carries an error.
        """
        snapshot = self._ledger.snapshot
        now = _utcnow()
        pre_state = self._derive(snapshot, now)

        if pre_state == CircuitState.BLOCKED:
            retry_after = seconds_until_probe(snapshot, self._grace_period, now)
            return await self._reject(pre_state, retry_after)

        if pre_state == CircuitState.PROBING:
            if not self._probe_gate.try_acquire():
                return await self._reject(pre_state, 0.0)
            try:
                return await self._attempt()
            finally:
                self._probe_gate.release()

        return await self._attempt()

    async def _call_fallback(self) -> tuple[object | None, Exception | None]:
        if self._fallback is None:
            return None, None
        try:
            return await self._fallback(), None
        except Exception as exc:
            log_error(
                self._logger,
                "circuit_breaker.fallback_failed",
                breaker=self.name,
                error=str(exc),
                error_type=exc.__class__.__name__,
            )
            return None, exc

    async def _reject(self, pre_state: CircuitState, retry_after: float) -> CallResult:
        log_warning(
            self._logger,
            "circuit_breaker.call_rejected",
            breaker=self.name,
            retry_after=retry_after,
        )
        await self._notifier.call_rejected()

        content, fallback_error = await self._call_fallback()
        error = RejectedWhileBlockedError(self.name, retry_after, fallback_error)
        await self._notifier.notify_transition(pre_state, self.state())
        return CallResult(
            content=content,
            via_fallback=self._fallback is not None,
            error=error,
        )

    async def _attempt(self) -> CallResult:
        start = time.monotonic()
        outcome = await invoke_bounded(
            self._target,
            self._timeout,
            name=self.name,
            cancel_on_timeout=self.config.cancel_on_timeout,
            pending=self._pending,
            logger=self._logger,
        )
        elapsed = max(time.monotonic() - start, 0.0)

        if outcome.error is None:
            update = await self._ledger.reset()
            await self._notifier.call_succeeded(elapsed)
            await self._notify_update(update)
            return CallResult(content=outcome.content, via_fallback=False)

        failure = outcome.error
        log_warning(
            self._logger,
            "circuit_breaker.call_failed",
            breaker=self.name,
            error=str(failure),
            error_type=failure.__class__.__name__,
        )
        await self._notifier.call_failed(failure, elapsed)

        result = await self._divert(failure)
        update = await self._ledger.record_failure(
            None if result.error is None else str(result.error),
            threshold=self._failure_threshold,
        )
        await self._notify_update(update)
        return result

    async def _divert(self, failure: CallFailedError) -> CallResult:
        if self._fallback is None:
            return CallResult(content=None, via_fallback=False, error=failure)
        content, fallback_error = await self._call_fallback()
        if fallback_error is not None:
            return CallResult(
                content=None,
                via_fallback=True,
                error=FallbackFailedError(fallback_error, failure),
            )
        return CallResult(
            content=content,
            via_fallback=True,
            error=FallbackUsedError(failure),
        )

    async def _notify_update(self, update: LedgerUpdate) -> None:
        await self._notifier.notify_transition(
            self._derive(update.previous, update.at),
            self._derive(update.current, update.at),
        )
