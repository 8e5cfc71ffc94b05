"""Circuit breaker exceptions.

Callers can distinguish between:
  - A breaker that could not be built from its configuration.
  - A target call that timed out, raised, or returned nothing usable.
  - A call being rejected because the circuit is blocked.
  - A result served by the fallback, and a fallback that failed too.

``CircuitBreaker.call`` returns these inside its result instead of raising
them. ``CallResult.unwrap`` raises them on demand.
"""


class CircuitBreakerError(Exception):
    """Base exception for the circuit breaker package."""


class ConfigurationError(CircuitBreakerError, ValueError):
    """Raised when a breaker configuration is incomplete or invalid."""


class CallFailedError(CircuitBreakerError):
    """Base class for failed target invocations."""


class CallTimeoutError(CallFailedError, TimeoutError):
    """The target did not complete within the configured timeout.

    Attributes:
        timeout: Bound in seconds that was exceeded.
    """

    def __init__(self, timeout: float) -> None:
        self.timeout = timeout
        super().__init__(f"service timed out after {timeout:g}s")


class OperationError(CallFailedError):
    """The target raised an exception.

    Attributes:
        cause: Exception raised by the target.
    """

    def __init__(self, cause: BaseException) -> None:
        self.cause = cause
        super().__init__(f"error when calling service: {cause}")
        self.__cause__ = cause


class EmptyResponseError(CallFailedError):
    """The target completed without usable content."""

    def __init__(self) -> None:
        super().__init__("service returned an empty response")


class RejectedWhileBlockedError(CircuitBreakerError):
    """Raised when a call is rejected because the circuit is blocked.

    Attributes:
        breaker_name: Name of the breaker rejecting the call.
        retry_after: Seconds until a probe may be attempted.
        fallback_error: Exception raised by the fallback, if it failed too.
    """

    def __init__(
        self,
        breaker_name: str,
        retry_after: float,
        fallback_error: BaseException | None = None,
    ) -> None:
        """Initialize a rejection payload.

        Args:
            breaker_name: Breaker rejecting the call.
            retry_after: Seconds until the next probe window opens.
            fallback_error: Error raised by the fallback, when one ran and
                failed.
        """
        self.breaker_name = breaker_name
        self.retry_after = retry_after
        self.fallback_error = fallback_error
        message = f"rejected_while_blocked: {breaker_name} retry_after={retry_after:g}s"
        if fallback_error is not None:
            message = f"{message}; fallback failed too: {fallback_error}"
        super().__init__(message)


class FallbackUsedError(CircuitBreakerError):
    """The target failed and the fallback served the result.

    Attributes:
        cause: The target failure that triggered the fallback.
    """

    def __init__(self, cause: CallFailedError) -> None:
        self.cause = cause
        super().__init__(self._describe())
        self.__cause__ = cause

    def _describe(self) -> str:
        return f"service was fallbacked due to error: {self.cause}"


class FallbackFailedError(FallbackUsedError):
    """The target failed and the fallback raised as well.

    Attributes:
        fallback_error: Exception raised by the fallback.
        cause: The target failure that triggered the fallback.
    """

    def __init__(self, fallback_error: BaseException, cause: CallFailedError) -> None:
        self.fallback_error = fallback_error
        super().__init__(cause)

    def _describe(self) -> str:
        return (
            "service was fallbacked due to error but failed too: "
            f"{self.fallback_error}: {self.cause}"
        )
