"""Event hooks and listeners for circuit breakers."""

from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import Protocol

from callguard.circuit_breaker.state import CircuitState
from callguard.logging import StructuredLogger, log_exception, log_info

Hook = Callable[[], None]


class BreakerListener(Protocol):
    """Listener protocol for circuit breaker events.

    Notes:
        ``on_state_change`` is always delivered before ``on_trip`` or
        ``on_reset`` for the same transition.
    """

    async def on_state_change(
        self, name: str, old: CircuitState, new: CircuitState
    ) -> None:
        """Handle any protective state transition."""

    async def on_trip(self, name: str) -> None:
        """Handle a transition into ``BLOCKED``."""

    async def on_reset(self, name: str) -> None:
        """Handle a transition back to ``NORMAL``."""

    async def on_call_rejected(self, name: str) -> None:
        """Handle call rejection while the circuit is blocked."""

    async def on_call_succeeded(self, name: str, elapsed: float) -> None:
        """Handle successful protected call completion."""

    async def on_call_failed(self, name: str, exc: Exception, elapsed: float) -> None:
        """Handle failed protected call completion."""


@dataclass(slots=True)
class BreakerHooks:
    """Zero-argument callbacks fired on state transitions.

    Hooks may be reassigned at any time after the breaker is built.
    """

    on_state_change: Hook | None = None
    on_trip: Hook | None = None
    on_reset: Hook | None = None


class TransitionNotifier:
    """Deliver breaker events to hooks and listeners.

    A failing hook or listener is logged and skipped; it never affects the
    breaker or the result of the call that triggered it.
    """

    def __init__(
        self,
        name: str,
        *,
        hooks: BreakerHooks,
        listeners: Sequence[BreakerListener],
        logger: StructuredLogger,
    ) -> None:
        self.name = name
        self.hooks = hooks
        self._listeners = tuple(listeners)
        self._logger = logger

    def _fire_hook(self, hook: Hook | None, kind: str) -> None:
        if hook is None:
            return
        try:
            hook()
        except Exception:
            log_exception(
                self._logger,
                "circuit_breaker.hook_failed",
                breaker=self.name,
                hook=kind,
            )

    def _listener_failed(self, listener: BreakerListener, kind: str) -> None:
        log_exception(
            self._logger,
            "circuit_breaker.listener_failed",
            breaker=self.name,
            listener=listener.__class__.__qualname__,
            callback=kind,
        )

    async def notify_transition(self, old: CircuitState, new: CircuitState) -> None:
        """Fire transition hooks when ``new`` differs from ``old``."""
        if old == new:
            return

        log_info(
            self._logger,
            "circuit_breaker.state_changed",
            breaker=self.name,
            old=str(old),
            new=str(new),
        )
        self._fire_hook(self.hooks.on_state_change, "on_state_change")
        for listener in self._listeners:
            try:
                await listener.on_state_change(self.name, old, new)
            except Exception:
                self._listener_failed(listener, "on_state_change")

        if new == CircuitState.BLOCKED:
            self._fire_hook(self.hooks.on_trip, "on_trip")
            for listener in self._listeners:
                try:
                    await listener.on_trip(self.name)
                except Exception:
                    self._listener_failed(listener, "on_trip")
        elif new == CircuitState.NORMAL:
            self._fire_hook(self.hooks.on_reset, "on_reset")
            for listener in self._listeners:
                try:
                    await listener.on_reset(self.name)
                except Exception:
                    self._listener_failed(listener, "on_reset")

    async def call_rejected(self) -> None:
        for listener in self._listeners:
            try:
                await listener.on_call_rejected(self.name)
            except Exception:
                self._listener_failed(listener, "on_call_rejected")

    async def call_succeeded(self, elapsed: float) -> None:
        for listener in self._listeners:
            try:
                await listener.on_call_succeeded(self.name, elapsed)
            except Exception:
                self._listener_failed(listener, "on_call_succeeded")

    async def call_failed(self, exc: Exception, elapsed: float) -> None:
        for listener in self._listeners:
            try:
                await listener.on_call_failed(self.name, exc, elapsed)
            except Exception:
                self._listener_failed(listener, "on_call_failed")
