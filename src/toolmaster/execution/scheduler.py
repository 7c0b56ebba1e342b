"""Scheduler protocol -- the timer collaborator behind every backoff wait.

Retry loops never call ``asyncio.sleep`` directly. They ask a Scheduler,
which keeps the waiting policy swappable: production code uses
:class:`AsyncioScheduler`, tests pass a virtual clock that records the
requested delays and returns immediately.

Example::

    class RecordingScheduler:
        def __init__(self):
            self.delays = []
            self._now = 0.0

        async def sleep(self, seconds):
            self.delays.append(seconds)
            self._now += seconds

        def now(self):
            return self._now

    await retry(flaky, 3, 0.1, scheduler=RecordingScheduler())
"""

from __future__ import annotations

import asyncio
import time
from typing import Protocol, runtime_checkable


@runtime_checkable
class Scheduler(Protocol):
    """Anything that can suspend for a duration and tell the time."""

    async def sleep(self, seconds: float) -> None:
        """Suspend the calling coroutine for ``seconds``."""
        ...

    def now(self) -> float:
        """Monotonic time in seconds."""
        ...


class AsyncioScheduler:
    """Default scheduler backed by the running event loop."""

    async def sleep(self, seconds: float) -> None:
        await asyncio.sleep(seconds)

    def now(self) -> float:
        try:
            return asyncio.get_running_loop().time()
        except RuntimeError:
            return time.monotonic()

    def __repr__(self) -> str:
        return "AsyncioScheduler()"


_default_scheduler = AsyncioScheduler()


def default_scheduler() -> Scheduler:
    """Return the shared :class:`AsyncioScheduler`."""
    return _default_scheduler


__all__ = ["Scheduler", "AsyncioScheduler", "default_scheduler"]
