"""Deadlines for single operations.

Used by ``retry(..., attempt_timeout=...)`` to bound each attempt and by
``run_bounded(..., operation_timeout=...)`` to bound each slot. An operation
that overruns is cancelled and surfaces as :class:`TimeoutExpired`, which
inherits from the built-in ``TimeoutError`` so generic handlers keep working.

Nested deadlines: an inner deadline never outlives the enclosing one. The
stack of active deadlines lives in a ContextVar, so every asyncio task sees
only the deadlines of its own call chain.

Examples:
    >>> async with with_deadline_async(10.0) as ctx:
    ...     data = await fetch_data()
    ...     print(f"{ctx.remaining():.1f}s to spare")

    >>> value = await call_with_timeout(fetch_data, 5.0)
"""

from __future__ import annotations

import asyncio
import math
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from contextvars import ContextVar
from dataclasses import dataclass, field
from typing import TypeVar

from toolmaster.core.errors import InvalidConfigError
from toolmaster.execution.operation import Operation, invoke, operation_name

T = TypeVar("T")


class TimeoutExpired(TimeoutError):
    """Raised when an operation exceeds its deadline.

    Attributes:
        timeout: The timeout value that was exceeded
        elapsed: How long the operation ran before being interrupted
        operation: Name/description of the operation
    """

    def __init__(
        self,
        timeout: float,
        elapsed: float | None = None,
        operation: str = "operation",
    ):
        self.timeout = timeout
        self.elapsed = elapsed
        self.operation = operation

        msg = f"Operation '{operation}' timed out after {timeout}s"
        if elapsed is not None:
            msg += f" (ran for {elapsed:.2f}s)"

        super().__init__(msg)


@dataclass
class DeadlineContext:
    """Tracking state for one active deadline (monotonic clock)."""

    deadline: float
    timeout_seconds: float
    operation: str = "operation"
    start_time: float = field(default_factory=time.monotonic)

    def remaining(self) -> float:
        """Seconds until the deadline; negative once expired."""
        return self.deadline - time.monotonic()

    @property
    def elapsed(self) -> float:
        return time.monotonic() - self.start_time

    def is_expired(self) -> bool:
        return time.monotonic() >= self.deadline


_deadlines: ContextVar[tuple[DeadlineContext, ...]] = ContextVar("toolmaster_deadlines", default=())


def get_current_deadline() -> DeadlineContext | None:
    """Innermost active deadline for the current task, if any."""
    stack = _deadlines.get()
    return stack[-1] if stack else None


def get_effective_timeout(requested: float) -> float:
    """Clamp ``requested`` to the time left on the enclosing deadline."""
    current = get_current_deadline()
    if current is None:
        return requested
    return max(0.0, min(requested, current.remaining()))


def validate_timeout(key: str, seconds: float | None) -> None:
    """Reject non-positive or non-finite timeouts before any work starts."""
    if seconds is None:
        return
    if (
        isinstance(seconds, bool)
        or not isinstance(seconds, (int, float))
        or not math.isfinite(seconds)
        or seconds <= 0
    ):
        raise InvalidConfigError(key, seconds, f"{key} must be a positive number of seconds, got {seconds!r}")


@asynccontextmanager
async def with_deadline_async(
    seconds: float, operation: str | None = None
) -> AsyncIterator[DeadlineContext]:
    """Async context manager enforcing a time limit via ``asyncio.timeout``.

    Raises:
        TimeoutExpired: If the deadline is exceeded
        InvalidConfigError: If seconds <= 0
    """
    validate_timeout("timeout", seconds)

    name = operation or "operation"
    effective = get_effective_timeout(seconds)
    now = time.monotonic()
    ctx = DeadlineContext(
        deadline=now + effective,
        timeout_seconds=effective,
        operation=name,
        start_time=now,
    )

    reset_token = _deadlines.set(_deadlines.get() + (ctx,))
    try:
        async with asyncio.timeout(effective) as scope:
            yield ctx
    except TimeoutError:
        # Only translate our own expiry; a TimeoutError raised by the body passes through
        if scope.expired():
            raise TimeoutExpired(timeout=effective, elapsed=ctx.elapsed, operation=name) from None
        raise
    finally:
        _deadlines.reset(reset_token)


async def call_with_timeout(
    op: Operation[T],
    timeout_seconds: float,
    operation: str | None = None,
) -> T:
    """Invoke ``op`` once, failing with TimeoutExpired after ``timeout_seconds``."""
    async with with_deadline_async(timeout_seconds, operation or operation_name(op)):
        return await invoke(op)


__all__ = [
    "TimeoutExpired",
    "DeadlineContext",
    "get_current_deadline",
    "get_effective_timeout",
    "validate_timeout",
    "with_deadline_async",
    "call_with_timeout",
]
