"""Cooperative cancellation for retry loops and bounded batches.

A :class:`CancellationToken` is owned by the caller and passed into
``retry()`` or ``run_bounded()``. Firing it abandons the work at the next
suspension point:

- a retry loop stops before its next attempt, or in the middle of a backoff
  wait;
- a bounded batch stops launching operations, cancels the in-flight ones and
  waits for them to unwind.

Either way the caller gets :class:`~toolmaster.core.errors.OperationCancelledError`.
An attempt that is already running is not interrupted by the token; use an
attempt/operation timeout for that.

Example::

    token = CancellationToken()
    task = asyncio.create_task(retry(fetch, 10, 1.0, token=token))
    ...
    token.cancel("shutdown")
    await task  # raises OperationCancelledError("Operation cancelled: shutdown")
"""

from __future__ import annotations

import asyncio
from collections.abc import Iterable

from toolmaster.core.errors import OperationCancelledError
from toolmaster.execution.scheduler import Scheduler


class CancellationToken:
    """One-shot cancellation signal.

    Safe to create outside a running event loop; ``cancel()`` is idempotent
    and the first reason wins.
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self._reason: str | None = None

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> str | None:
        return self._reason

    def cancel(self, reason: str | None = None) -> None:
        """Signal cancellation to every holder of this token."""
        if self._event.is_set():
            return
        self._reason = reason
        self._event.set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise OperationCancelledError(self._reason)

    async def wait(self) -> None:
        """Block until the token is cancelled."""
        await self._event.wait()

    def __repr__(self) -> str:
        state = f"cancelled, reason={self._reason!r}" if self.cancelled else "active"
        return f"CancellationToken({state})"


async def wait_first(
    tasks: Iterable[asyncio.Future],
    token: CancellationToken | None = None,
) -> set[asyncio.Future]:
    """Wait until at least one of ``tasks`` finishes or ``token`` fires.

    Returns the set of finished tasks. Raises OperationCancelledError if the
    token fired, even when some tasks finished at the same time. The tasks
    themselves are left untouched; the caller decides whether to cancel them.
    """
    pending = set(tasks)
    if token is None:
        done, _ = await asyncio.wait(pending, return_when=asyncio.FIRST_COMPLETED)
        return done

    token.raise_if_cancelled()
    waiter = asyncio.ensure_future(token.wait())
    try:
        done, _ = await asyncio.wait(pending | {waiter}, return_when=asyncio.FIRST_COMPLETED)
    finally:
        if not waiter.done():
            waiter.cancel()
    token.raise_if_cancelled()
    return done


async def cancellable_sleep(
    seconds: float,
    scheduler: Scheduler,
    token: CancellationToken | None = None,
) -> None:
    """Sleep through ``scheduler``, waking early with an error if ``token`` fires."""
    if token is None:
        await scheduler.sleep(seconds)
        return

    token.raise_if_cancelled()
    sleeper = asyncio.ensure_future(scheduler.sleep(seconds))
    try:
        await wait_first({sleeper}, token)
    finally:
        if not sleeper.done():
            sleeper.cancel()
    # Propagate errors raised by the scheduler itself
    sleeper.result()


__all__ = ["CancellationToken", "wait_first", "cancellable_sleep"]
