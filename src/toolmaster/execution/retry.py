"""Retry with exponential backoff.

Re-invokes a zero-argument async operation until it succeeds or the retry
budget runs out, doubling the wait after every failure.

Semantics:
    - ``max_retries`` counts *additional* attempts after the first failure,
      so an operation is invoked at most ``max_retries + 1`` times.
    - The wait before retry *k* (0-based) is ``initial_delay * 2**k``. There
      is no jitter and, unless ``max_delay`` is given, no cap: a large
      ``max_retries`` can produce very long waits.
    - When the budget is exhausted the exception from the final attempt is
      re-raised as-is. It is not wrapped, so "failed once" and "failed after
      N retries" look the same to the caller; ``RetryContext.attempts``
      tells them apart.
    - Attempts are strictly sequential.

Example:
    >>> from toolmaster.execution.retry import retry
    >>>
    >>> async def fetch():
    ...     return await client.get("/health")
    >>>
    >>> body = await retry(fetch, max_retries=3, initial_delay=0.1)

    >>> strategy = ExponentialBackoff(max_retries=5, base_delay=1.0, max_delay=60.0)
    >>> [strategy.next_delay(n) for n in range(3)]
    [1.0, 2.0, 4.0]
"""

from __future__ import annotations

import functools
import math
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, TypeVar

from toolmaster.core.errors import InvalidConfigError
from toolmaster.core.logging import get_logger
from toolmaster.execution.cancellation import CancellationToken, cancellable_sleep
from toolmaster.execution.operation import Operation, invoke, operation_name
from toolmaster.execution.scheduler import Scheduler, default_scheduler
from toolmaster.execution.timeout import call_with_timeout, validate_timeout

T = TypeVar("T")

logger = get_logger(__name__)

OnRetry = Callable[[int, Exception, float], None]


def utcnow() -> datetime:
    """Return timezone-aware UTC datetime."""
    return datetime.now(UTC)


def _is_finite_number(value: Any) -> bool:
    return not isinstance(value, bool) and isinstance(value, (int, float)) and math.isfinite(value)


class RetryStrategy(ABC):
    """Abstract base for retry strategies."""

    @abstractmethod
    def next_delay(self, attempt: int) -> float:
        """Calculate delay before next retry attempt.

        Args:
            attempt: Zero-based attempt number (0 = first retry)

        Returns:
            Delay in seconds before next attempt
        """
        ...

    @abstractmethod
    def should_retry(self, attempt: int, error: Exception | None = None) -> bool:
        """Determine if another retry should be attempted.

        Args:
            attempt: Zero-based index of the attempt that just failed
            error: The exception that caused the failure

        Returns:
            True if should retry, False otherwise
        """
        ...


@dataclass
class ExponentialBackoff(RetryStrategy):
    """Exponential backoff without jitter.

    Delay = base_delay * (multiplier ** attempt), clamped to max_delay if set.

    Attributes:
        max_retries: Additional attempts allowed after the first failure
        base_delay: Delay before the first retry, in seconds
        max_delay: Optional cap on a single delay (None = unbounded)
        multiplier: Growth factor between consecutive delays
        retryable_errors: Exception types worth retrying (None = all)
    """

    max_retries: int = 3
    base_delay: float = 1.0
    max_delay: float | None = None
    multiplier: float = 2.0
    retryable_errors: tuple[type[BaseException], ...] | None = None

    def __post_init__(self) -> None:
        if isinstance(self.max_retries, bool) or not isinstance(self.max_retries, int) or self.max_retries < 0:
            raise InvalidConfigError(
                "max_retries", self.max_retries, f"max_retries must be a non-negative integer, got {self.max_retries!r}"
            )
        if not _is_finite_number(self.base_delay) or self.base_delay < 0:
            raise InvalidConfigError(
                "initial_delay", self.base_delay, f"initial_delay must be a non-negative number, got {self.base_delay!r}"
            )
        if self.max_delay is not None and (not _is_finite_number(self.max_delay) or self.max_delay <= 0):
            raise InvalidConfigError(
                "max_delay", self.max_delay, f"max_delay must be a positive number when set, got {self.max_delay!r}"
            )
        if not _is_finite_number(self.multiplier) or self.multiplier < 1:
            raise InvalidConfigError("multiplier", self.multiplier)
        if self.retryable_errors is not None:
            self.retryable_errors = tuple(self.retryable_errors)

    def next_delay(self, attempt: int) -> float:
        """Calculate exponential backoff delay.

        Large exponents are evaluated in log space, so only a delay that is
        itself too large for a float becomes ``math.inf``.
        """
        if self.base_delay == 0:
            return 0.0
        try:
            delay = self.base_delay * (self.multiplier ** attempt)
        except OverflowError:
            try:
                delay = math.exp(math.log(self.base_delay) + attempt * math.log(self.multiplier))
            except OverflowError:
                delay = math.inf
        if self.max_delay is not None:
            delay = min(delay, self.max_delay)
        return delay

    def should_retry(self, attempt: int, error: Exception | None = None) -> bool:
        """Check if retry should be attempted."""
        if attempt >= self.max_retries:
            return False

        if error is not None and self.retryable_errors is not None:
            return isinstance(error, self.retryable_errors)

        return True


@dataclass
class Attempt:
    """One invocation of the operation inside a retry loop."""

    index: int
    started_at: datetime = field(default_factory=utcnow)
    finished_at: datetime | None = None
    error: Exception | None = None
    delay: float | None = None

    @property
    def succeeded(self) -> bool:
        return self.finished_at is not None and self.error is None

    @property
    def duration_seconds(self) -> float | None:
        if self.finished_at is None:
            return None
        return (self.finished_at - self.started_at).total_seconds()


@dataclass
class RetryContext:
    """State of one retry loop.

    Example:
        >>> ctx = RetryContext(ExponentialBackoff(max_retries=3, base_delay=0.1))
        >>> value = await ctx.run(fetch)
        >>> len(ctx.attempts), ctx.total_delay
        (3, 0.30000000000000004)
    """

    strategy: RetryStrategy
    scheduler: Scheduler = field(default_factory=default_scheduler)
    on_retry: OnRetry | None = None
    attempt_timeout: float | None = None
    attempts: list[Attempt] = field(default_factory=list, init=False)
    total_delay: float = field(default=0.0, init=False)
    _started: float | None = field(default=None, init=False, repr=False)

    def __post_init__(self) -> None:
        validate_timeout("attempt_timeout", self.attempt_timeout)

    @property
    def last_error(self) -> Exception | None:
        return self.attempts[-1].error if self.attempts else None

    @property
    def attempt_count(self) -> int:
        return len(self.attempts)

    @property
    def elapsed_seconds(self) -> float:
        """Scheduler time since the first attempt started."""
        if self._started is None:
            return 0.0
        return self.scheduler.now() - self._started

    async def _call(self, operation: Operation[T], name: str) -> T:
        if self.attempt_timeout is None:
            return await invoke(operation)
        return await call_with_timeout(operation, self.attempt_timeout, name)

    async def run(self, operation: Operation[T], token: CancellationToken | None = None) -> T:
        """Execute ``operation`` with retry logic.

        Each call starts a fresh attempt history, so a context can be reused.

        Returns:
            Result from the first successful attempt

        Raises:
            The final attempt's exception, unchanged, once retries are exhausted
            OperationCancelledError: if ``token`` fires between attempts
        """
        name = operation_name(operation)
        self.attempts = []
        self.total_delay = 0.0
        self._started = self.scheduler.now()

        while True:
            if token is not None:
                token.raise_if_cancelled()

            attempt = Attempt(index=len(self.attempts))
            self.attempts.append(attempt)
            try:
                value = await self._call(operation, name)
            except Exception as e:
                attempt.finished_at = utcnow()
                attempt.error = e

                if not self.strategy.should_retry(attempt.index, e):
                    # Without the error only the budget is consulted
                    exhausted = not self.strategy.should_retry(attempt.index)
                    logger.warning(
                        "retry.exhausted" if exhausted else "retry.not_retryable",
                        operation=name,
                        attempts=len(self.attempts),
                        total_delay=self.total_delay,
                        error=f"{type(e).__name__}: {e}",
                    )
                    raise

                delay = self.strategy.next_delay(attempt.index)
                attempt.delay = delay
                logger.warning(
                    "retry.attempt_failed",
                    operation=name,
                    attempt=attempt.index + 1,
                    delay=delay,
                    error=f"{type(e).__name__}: {e}",
                )
                if self.on_retry:
                    self.on_retry(attempt.index + 1, e, delay)

                await cancellable_sleep(delay, self.scheduler, token)
                self.total_delay += delay
            else:
                attempt.finished_at = utcnow()
                if attempt.index:
                    logger.info("retry.succeeded", operation=name, attempts=len(self.attempts))
                return value


async def retry(
    operation: Operation[T],
    max_retries: int = 3,
    initial_delay: float = 1.0,
    *,
    max_delay: float | None = None,
    retryable_errors: tuple[type[BaseException], ...] | None = None,
    attempt_timeout: float | None = None,
    on_retry: OnRetry | None = None,
    scheduler: Scheduler | None = None,
    token: CancellationToken | None = None,
) -> T:
    """Invoke ``operation`` until it succeeds or the retry budget is spent.

    Args:
        operation: Zero-argument callable returning an awaitable (or a value)
        max_retries: Additional attempts after the first failure (0 = single attempt)
        initial_delay: Seconds to wait before the first retry; doubled each time
        max_delay: Optional cap on any single wait (default: no cap)
        retryable_errors: Only retry these exception types (default: any Exception)
        attempt_timeout: Optional limit per attempt; overruns raise TimeoutExpired
        on_retry: Called as ``on_retry(attempt, error, delay)`` before each wait
        scheduler: Timer collaborator (default: asyncio)
        token: Cancellation signal checked between attempts and during waits

    Raises:
        InvalidConfigError: bad budget/delay arguments, before any invocation
        OperationCancelledError: ``token`` fired
        Exception: the final attempt's exception, unwrapped
    """
    strategy = ExponentialBackoff(
        max_retries=max_retries,
        base_delay=initial_delay,
        max_delay=max_delay,
        retryable_errors=retryable_errors,
    )
    ctx = RetryContext(
        strategy=strategy,
        scheduler=scheduler or default_scheduler(),
        on_retry=on_retry,
        attempt_timeout=attempt_timeout,
    )
    return await ctx.run(operation, token=token)


def with_retry(
    strategy: RetryStrategy | None = None,
    *,
    on_retry: OnRetry | None = None,
    attempt_timeout: float | None = None,
    scheduler: Scheduler | None = None,
) -> Callable[[Callable[..., Awaitable[T]]], Callable[..., Awaitable[T]]]:
    """Decorator factory adding retry logic to an async function.

    Each call of the decorated function gets a fresh RetryContext; the
    arguments of the call are re-used for every attempt.

    Example:
        >>> @with_retry(ExponentialBackoff(max_retries=3, base_delay=0.5))
        ... async def flaky_operation(url):
        ...     return await client.get(url)
    """
    if strategy is None:
        strategy = ExponentialBackoff()

    def decorator(func: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
        @functools.wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> T:
            ctx = RetryContext(
                strategy=strategy,
                scheduler=scheduler or default_scheduler(),
                on_retry=on_retry,
                attempt_timeout=attempt_timeout,
            )
            return await ctx.run(functools.partial(func, *args, **kwargs))

        return wrapper

    return decorator


__all__ = [
    "RetryStrategy",
    "ExponentialBackoff",
    "Attempt",
    "RetryContext",
    "retry",
    "with_retry",
]
