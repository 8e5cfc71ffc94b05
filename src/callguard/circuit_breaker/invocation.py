"""Bounded invocation of a protected operation."""

import asyncio
from collections.abc import Awaitable, Callable, Sized
from dataclasses import dataclass

from callguard.circuit_breaker.exceptions import (
    CallFailedError,
    CallTimeoutError,
    EmptyResponseError,
    OperationError,
)
from callguard.logging import StructuredLogger, log_info

Operation = Callable[[], Awaitable[object]]


@dataclass(frozen=True)
class InvocationOutcome:
    """Result of one bounded invocation: content or an error, never both."""

    content: object | None = None
    error: CallFailedError | None = None

    @property
    def succeeded(self) -> bool:
        return self.error is None


def operation_name(operation: object) -> str:
    """Return a readable name for a callable, for task names and logs."""
    name = getattr(operation, "__qualname__", None)
    if name is None:
        name = getattr(operation, "__name__", None)
    if name is None:
        name = operation.__class__.__qualname__
    return str(name)


def is_empty(content: object) -> bool:
    """Return whether ``content`` carries nothing usable."""
    if content is None:
        return True
    return isinstance(content, Sized) and len(content) == 0


def _discard_late_outcome(
    task: "asyncio.Future[object]",
    *,
    name: str,
    pending: set["asyncio.Future[object]"],
    logger: StructuredLogger,
) -> None:
    pending.discard(task)
    if task.cancelled():
        outcome = "cancelled"
    elif task.exception() is not None:
        outcome = "error"
    else:
        outcome = "success"
    log_info(
        logger,
        "circuit_breaker.late_result_discarded",
        breaker=name,
        outcome=outcome,
    )


async def invoke_bounded(
    operation: Operation,
    timeout: float,
    *,
    name: str,
    cancel_on_timeout: bool,
    pending: set["asyncio.Future[object]"],
    logger: StructuredLogger,
) -> InvocationOutcome:
    """Run ``operation`` as its own task and race it against ``timeout``.

    Args:
        operation: Zero-argument callable returning an awaitable.
        timeout: Seconds to wait before giving up on the operation.
        name: Breaker name, used for the task name and logs.
        cancel_on_timeout: Cancel the task when the timer wins. When false the
            task keeps running detached and its eventual outcome is discarded.
        pending: Set holding references to detached tasks until they finish.
        logger: Logger receiving late-outcome events.

    Returns:
        Content on success, otherwise a ``CallTimeoutError``,
        ``OperationError`` or ``EmptyResponseError``.
    """
    try:
        task = asyncio.ensure_future(operation())
    except Exception as exc:
        return InvocationOutcome(error=OperationError(exc))
    if isinstance(task, asyncio.Task):
        task.set_name(f"circuit_breaker:{name}:{operation_name(operation)}")

    try:
        done, _ = await asyncio.wait({task}, timeout=timeout)
    except asyncio.CancelledError:
        task.cancel()
        raise

    if not done:
        task.add_done_callback(
            lambda finished: _discard_late_outcome(
                finished, name=name, pending=pending, logger=logger
            )
        )
        if cancel_on_timeout:
            task.cancel()
        else:
            pending.add(task)
        return InvocationOutcome(error=CallTimeoutError(timeout))

    if task.cancelled():
        return InvocationOutcome(
            error=OperationError(asyncio.CancelledError("operation was cancelled"))
        )
    exc = task.exception()
    if exc is not None:
        return InvocationOutcome(error=OperationError(exc))
    content = task.result()
    if is_empty(content):
        return InvocationOutcome(error=EmptyResponseError())
    return InvocationOutcome(content=content)
