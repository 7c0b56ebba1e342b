"""Toolmaster Execution -- retry loops and bounded fan-out on asyncio.

ARCHITECTURE
────────────
::

    Operation (zero-arg callable → awaitable | value)
      │
      ├── retry()          ─ sequential attempts, exponential backoff
      │     └── RetryContext / ExponentialBackoff / Attempt
      │
      └── run_bounded()    ─ ≤ N in flight, index-aligned ResultSet
            └── BoundedParallelRunner / ExecutionSlot / FailurePolicy

    Collaborators
      ├── Scheduler          ─ sleep + clock (AsyncioScheduler by default)
      ├── CancellationToken  ─ abandons work at suspension points
      └── with_deadline_async ─ per-attempt / per-operation time limits

MODULE MAP
──────────
  1. operation.py     ─ Operation alias, invoke(), operation_name()
  2. scheduler.py     ─ Scheduler protocol, AsyncioScheduler
  3. cancellation.py  ─ CancellationToken, wait_first, cancellable_sleep
  4. timeout.py       ─ TimeoutExpired, with_deadline_async, call_with_timeout
  5. retry.py         ─ retry, with_retry, ExponentialBackoff, RetryContext
  6. bounded.py       ─ run_bounded, BoundedParallelRunner, ResultSet
"""

from .bounded import (
    BoundedParallelRunner,
    ExecutionSlot,
    FailurePolicy,
    ResultSet,
    run_bounded,
)
from .cancellation import CancellationToken, cancellable_sleep, wait_first
from .operation import Operation, invoke, operation_name
from .retry import (
    Attempt,
    ExponentialBackoff,
    RetryContext,
    RetryStrategy,
    retry,
    with_retry,
)
from .scheduler import AsyncioScheduler, Scheduler, default_scheduler
from .timeout import (
    DeadlineContext,
    TimeoutExpired,
    call_with_timeout,
    with_deadline_async,
)

__all__ = [
    # bounded
    "BoundedParallelRunner",
    "ExecutionSlot",
    "FailurePolicy",
    "ResultSet",
    "run_bounded",
    # cancellation
    "CancellationToken",
    "cancellable_sleep",
    "wait_first",
    # operation
    "Operation",
    "invoke",
    "operation_name",
    # retry
    "Attempt",
    "ExponentialBackoff",
    "RetryContext",
    "RetryStrategy",
    "retry",
    "with_retry",
    # scheduler
    "AsyncioScheduler",
    "Scheduler",
    "default_scheduler",
    # timeout
    "DeadlineContext",
    "TimeoutExpired",
    "call_with_timeout",
    "with_deadline_async",
]
