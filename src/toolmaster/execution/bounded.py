"""Bounded parallel runner -- asyncio fan-out with at most N in flight.

WHY
───
Firing hundreds of coroutines at once with ``asyncio.gather`` overwhelms
whatever they talk to. This module starts operations in input order, keeps
at most ``concurrency`` of them running, and starts the next one the moment
any running one settles.

ARCHITECTURE
────────────
::

    run_bounded(operations, concurrency)
      │
      ▼
    BoundedParallelRunner.run()
      ├── fill free slots in input order ─ ExecutionSlot(index, task)
      ├── wait_first(active, token)      ─ FIRST_COMPLETED or cancellation
      ├── settle: results[slot.index] = Ok(value) | Err(error)
      └── ResultSet                      ─ index-aligned outcomes

FAILURE POLICY
──────────────
``FailurePolicy.COLLECT`` (default): a failing operation fills its own slot
with ``Err(error)``; every other operation still runs to completion and the
batch returns once all have settled.

``FailurePolicy.FAIL_FAST``: the first failure observed stops new launches,
cancels the operations still in flight, waits for them to unwind and then
re-raises the original exception. If several operations fail in the same
wake-up, the lowest index wins.

No policy leaves operations running unobserved after ``run()`` returns or
raises. The same clean-up happens on CancellationToken or on cancellation of
the calling task.

The active-slot dict is only mutated by the coordinating coroutine, so no
lock is needed under asyncio's single-threaded scheduling.

Example::

    results = await run_bounded([lambda: fetch(u) for u in urls], concurrency=10)
    for index, error in results.errors():
        log.warning("fetch failed", url=urls[index], error=str(error))
    pages = [r.unwrap_or(None) for r in results]
"""

from __future__ import annotations

import asyncio
import uuid
from collections.abc import Iterable, Iterator, Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any, Generic, Self, TypeVar

from toolmaster.core.errors import InvalidConfigError, OperationCancelledError, OperationFailure
from toolmaster.core.logging import get_logger
from toolmaster.core.result import Err, Ok, Result, collect_results, partition_results
from toolmaster.core.settings import ToolmasterSettings, get_settings
from toolmaster.execution.cancellation import CancellationToken, wait_first
from toolmaster.execution.operation import Operation, invoke, operation_name
from toolmaster.execution.timeout import call_with_timeout, validate_timeout

T = TypeVar("T")

logger = get_logger(__name__)


class FailurePolicy(str, Enum):
    """What a bounded batch does when one operation fails."""

    COLLECT = "collect"
    FAIL_FAST = "fail_fast"


@dataclass
class ExecutionSlot:
    """One unit of the concurrency budget, owning a single in-flight operation."""

    index: int
    name: str
    task: asyncio.Task
    started_at: datetime = field(default_factory=lambda: datetime.now(UTC))


@dataclass
class ResultSet(Generic[T]):
    """Index-aligned outcomes of a bounded batch.

    ``results[i]`` is the outcome of ``operations[i]`` regardless of the
    order in which operations finished.
    """

    batch_id: str
    results: list[Result[T]]
    started_at: datetime
    completed_at: datetime
    names: list[str] = field(default_factory=list)
    max_in_flight: int = 0

    def __len__(self) -> int:
        return len(self.results)

    def __iter__(self) -> Iterator[Result[T]]:
        return iter(self.results)

    def __getitem__(self, index: int) -> Result[T]:
        return self.results[index]

    @property
    def total(self) -> int:
        return len(self.results)

    @property
    def succeeded(self) -> int:
        """Number of operations that completed successfully."""
        return sum(1 for r in self.results if r.is_ok())

    @property
    def failed(self) -> int:
        """Number of operations that failed."""
        return sum(1 for r in self.results if r.is_err())

    @property
    def ok(self) -> bool:
        return self.failed == 0

    @property
    def duration_seconds(self) -> float:
        """Wall-clock duration of the entire batch."""
        return (self.completed_at - self.started_at).total_seconds()

    def values(self) -> list[T]:
        """All values in input order; raises the first failure's original exception."""
        return collect_results(self.results).unwrap()

    def errors(self) -> list[tuple[int, Exception]]:
        """``(index, exception)`` for every failed operation."""
        return [(i, r.error) for i, r in enumerate(self.results) if isinstance(r, Err)]

    def partition(self) -> tuple[list[T], list[Exception]]:
        return partition_results(self.results)

    def unwrap_all(self) -> list[T]:
        """All values in input order, or OperationFailure for the first failed index."""
        for index, result in enumerate(self.results):
            if isinstance(result, Err):
                name = self.names[index] if index < len(self.names) else None
                raise OperationFailure(index, result.error, name) from result.error
        return [r.unwrap() for r in self.results]

    def to_dict(self) -> dict[str, Any]:
        """Serialise for logging / API responses."""
        return {
            "batch_id": self.batch_id,
            "total": self.total,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "max_in_flight": self.max_in_flight,
            "duration_seconds": self.duration_seconds,
            "results": [
                {"index": i, "name": self.names[i] if i < len(self.names) else None, **r.to_dict()}
                for i, r in enumerate(self.results)
            ],
        }


def validate_concurrency(concurrency: Any) -> int:
    if isinstance(concurrency, bool) or not isinstance(concurrency, int) or concurrency <= 0:
        raise InvalidConfigError(
            "concurrency", concurrency, f"concurrency must be a positive integer, got {concurrency!r}"
        )
    return concurrency


class BoundedParallelRunner:
    """Runs operations with at most ``concurrency`` in flight.

    Use :meth:`run` with a sequence of operations, or build a batch with
    :meth:`add` and execute it with :meth:`run_all`.

    Parameters
    ----------
    concurrency : int
        Maximum simultaneous operations (default 5). Must be positive.
    policy : FailurePolicy
        COLLECT (default) or FAIL_FAST, see module docs.
    operation_timeout : float | None
        Optional per-operation limit; overruns become ``Err(TimeoutExpired)``.
    """

    def __init__(
        self,
        concurrency: int = 5,
        *,
        policy: FailurePolicy = FailurePolicy.COLLECT,
        operation_timeout: float | None = None,
    ) -> None:
        self._concurrency = validate_concurrency(concurrency)
        validate_timeout("operation_timeout", operation_timeout)
        self._policy = FailurePolicy(policy)
        self._operation_timeout = operation_timeout
        self._items: list[tuple[Operation[Any], str | None]] = []

    @classmethod
    def from_settings(cls, settings: ToolmasterSettings | None = None, **kwargs: Any) -> Self:
        """Build a runner whose concurrency comes from TOOLMASTER_CONCURRENCY."""
        settings = settings or get_settings()
        return cls(settings.concurrency, **kwargs)

    @property
    def concurrency(self) -> int:
        return self._concurrency

    @property
    def policy(self) -> FailurePolicy:
        return self._policy

    @property
    def item_count(self) -> int:
        """Number of operations queued with :meth:`add`."""
        return len(self._items)

    # ── Building ─────────────────────────────────────────────────────

    def add(self, operation: Operation[Any], name: str | None = None) -> Self:
        """Queue an operation for :meth:`run_all`. Returns ``self`` for chaining."""
        self._items.append((operation, name))
        return self

    async def run_all(self, token: CancellationToken | None = None) -> ResultSet[Any]:
        """Run every queued operation in the order it was added."""
        operations = [op for op, _ in self._items]
        names = [name or operation_name(op) for op, name in self._items]
        return await self.run(operations, token=token, names=names)

    # ── Execution ────────────────────────────────────────────────────

    async def _run_slot(self, operation: Operation[T], name: str) -> Result[T]:
        try:
            if self._operation_timeout is None:
                value = await invoke(operation)
            else:
                value = await call_with_timeout(operation, self._operation_timeout, name)
        except Exception as e:
            return Err(e)
        return Ok(value)

    async def run(
        self,
        operations: Iterable[Operation[T]],
        token: CancellationToken | None = None,
        *,
        names: Sequence[str] | None = None,
    ) -> ResultSet[T]:
        """Execute ``operations`` with bounded concurrency.

        Returns:
            :class:`ResultSet` with one Ok/Err per operation, in input order.

        Raises:
            OperationCancelledError: ``token`` fired before the batch finished
            Exception: under FAIL_FAST, the first failing operation's exception
        """
        ops = list(operations)
        labels = list(names) if names is not None else [operation_name(op) for op in ops]
        if len(labels) != len(ops):
            raise InvalidConfigError("names", len(labels), f"expected {len(ops)} names, got {len(labels)}")

        if token is not None:
            token.raise_if_cancelled()

        batch_id = str(uuid.uuid4())
        started_at = datetime.now(UTC)
        results: list[Result[T] | None] = [None] * len(ops)
        active: dict[asyncio.Task, ExecutionSlot] = {}
        max_in_flight = 0
        next_index = 0

        logger.info(
            "bounded.start",
            batch_id=batch_id,
            operations=len(ops),
            concurrency=self._concurrency,
            policy=self._policy.value,
        )

        try:
            while next_index < len(ops) or active:
                while next_index < len(ops) and len(active) < self._concurrency:
                    task = asyncio.create_task(self._run_slot(ops[next_index], labels[next_index]))
                    active[task] = ExecutionSlot(index=next_index, name=labels[next_index], task=task)
                    next_index += 1
                max_in_flight = max(max_in_flight, len(active))

                done = await wait_first(active, token)

                for task in sorted(done, key=lambda t: active[t].index):
                    slot = active.pop(task)
                    outcome = task.result()
                    results[slot.index] = outcome
                    if isinstance(outcome, Err):
                        logger.warning(
                            "bounded.slot_failed",
                            batch_id=batch_id,
                            index=slot.index,
                            operation=slot.name,
                            error=f"{type(outcome.error).__name__}: {outcome.error}",
                        )
                        if self._policy is FailurePolicy.FAIL_FAST:
                            raise outcome.error
        except BaseException as e:
            await self._abandon(active)
            cancelled = isinstance(e, (OperationCancelledError, asyncio.CancelledError))
            logger.warning(
                "bounded.cancelled" if cancelled else "bounded.aborted",
                batch_id=batch_id,
                abandoned=len(active),
                not_started=len(ops) - next_index,
                error=f"{type(e).__name__}: {e}",
            )
            raise

        result_set = ResultSet(
            batch_id=batch_id,
            results=results,  # type: ignore[arg-type]
            started_at=started_at,
            completed_at=datetime.now(UTC),
            names=labels,
            max_in_flight=max_in_flight,
        )

        logger.info(
            "bounded.complete",
            batch_id=batch_id,
            succeeded=result_set.succeeded,
            failed=result_set.failed,
            max_in_flight=max_in_flight,
            duration_seconds=result_set.duration_seconds,
        )

        return result_set

    @staticmethod
    async def _abandon(active: dict[asyncio.Task, ExecutionSlot]) -> None:
        """Cancel in-flight operations and wait until they have unwound."""
        for task in active:
            task.cancel()
        if active:
            await asyncio.gather(*active, return_exceptions=True)


async def run_bounded(
    operations: Iterable[Operation[T]],
    concurrency: int = 5,
    *,
    policy: FailurePolicy = FailurePolicy.COLLECT,
    operation_timeout: float | None = None,
    token: CancellationToken | None = None,
) -> ResultSet[T]:
    """Run ``operations`` with at most ``concurrency`` in flight.

    Raises:
        InvalidConfigError: ``concurrency`` is not a positive integer; no
            operation is invoked
    """
    runner = BoundedParallelRunner(concurrency, policy=policy, operation_timeout=operation_timeout)
    return await runner.run(operations, token=token)


__all__ = [
    "FailurePolicy",
    "ExecutionSlot",
    "ResultSet",
    "BoundedParallelRunner",
    "run_bounded",
    "validate_concurrency",
]
