"""Framework-agnostic async circuit breaker with fallback support.

Key behavior notes:
  - The protective state (``NORMAL``, ``PROBING``, ``BLOCKED``) is never
    stored. It is derived on every read from the failure count, the time of
    the last failure, the threshold and the grace period.
  - Probing is conservative: at most one in-flight trial call is permitted
    per ``CircuitBreaker`` instance. Concurrent callers are rejected as if
    the circuit were blocked.
  - Rejected calls do not touch the failure ledger, so sustained traffic
    while blocked cannot postpone the next probe window.
  - ``call`` never raises for a failed target. Errors are returned in the
    ``CallResult`` next to any fallback content.
"""

from callguard.circuit_breaker.breaker import (
    CallResult,
    CircuitBreaker,
    CircuitBreakerConfig,
)
from callguard.circuit_breaker.exceptions import (
    CallFailedError,
    CallTimeoutError,
    CircuitBreakerError,
    ConfigurationError,
    EmptyResponseError,
    FallbackFailedError,
    FallbackUsedError,
    OperationError,
    RejectedWhileBlockedError,
)
from callguard.circuit_breaker.invocation import InvocationOutcome, invoke_bounded
from callguard.circuit_breaker.ledger import FailureLedger, LedgerUpdate
from callguard.circuit_breaker.listeners import BreakerHooks, BreakerListener
from callguard.circuit_breaker.state import BreakerSnapshot, CircuitState, derive_state

__all__ = [
    "BreakerHooks",
    "BreakerListener",
    "BreakerSnapshot",
    "CallFailedError",
    "CallResult",
    "CallTimeoutError",
    "CircuitBreaker",
    "CircuitBreakerConfig",
    "CircuitBreakerError",
    "CircuitState",
    "ConfigurationError",
    "EmptyResponseError",
    "FailureLedger",
    "FallbackFailedError",
    "FallbackUsedError",
    "InvocationOutcome",
    "LedgerUpdate",
    "OperationError",
    "RejectedWhileBlockedError",
    "derive_state",
    "invoke_bounded",
]
