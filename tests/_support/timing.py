"""
Deterministic timing helpers for retry and bounded-runner tests.

- VirtualScheduler: records requested delays and advances a fake clock
  without waiting, so backoff arithmetic can be asserted exactly.
- BlockingScheduler: parks every sleep until released, so tests can fire a
  CancellationToken while a retry loop is mid-backoff.
- FlakyOperation: fails a fixed number of times, then succeeds.
- ConcurrencyProbe: builds operations that record start/finish order and
  the high-water mark of simultaneously running operations.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any


class VirtualScheduler:
    """Scheduler whose clock only moves when something sleeps."""

    def __init__(self, start: float = 0.0) -> None:
        self.delays: list[float] = []
        self._now = start

    async def sleep(self, seconds: float) -> None:
        self.delays.append(seconds)
        self._now += seconds
        await asyncio.sleep(0)

    def now(self) -> float:
        return self._now

    @property
    def total(self) -> float:
        return sum(self.delays)


class BlockingScheduler:
    """Scheduler whose sleeps never finish until ``release()`` is called."""

    def __init__(self) -> None:
        self.delays: list[float] = []
        self.sleeping = asyncio.Event()
        self._release = asyncio.Event()
        self.interrupted = 0

    async def sleep(self, seconds: float) -> None:
        self.delays.append(seconds)
        self.sleeping.set()
        try:
            await self._release.wait()
        except asyncio.CancelledError:
            self.interrupted += 1
            raise

    def now(self) -> float:
        return 0.0

    def release(self) -> None:
        self._release.set()


class FlakyOperation:
    """Zero-argument async operation failing ``failures`` times before succeeding."""

    def __init__(
        self,
        failures: int,
        value: Any = "ok",
        error_type: type[Exception] = ConnectionError,
    ) -> None:
        self.failures = failures
        self.value = value
        self.error_type = error_type
        self.calls = 0
        self.raised: list[Exception] = []

    async def __call__(self) -> Any:
        self.calls += 1
        if self.calls <= self.failures:
            error = self.error_type(f"failure {self.calls}")
            self.raised.append(error)
            raise error
        return self.value


@dataclass
class ConcurrencyProbe:
    """Instrumented operations for bounded-runner tests."""

    active: int = 0
    high_water: int = 0
    events: list[str] = field(default_factory=list)
    calls: list[int] = field(default_factory=list)
    cancelled: list[int] = field(default_factory=list)

    def op(
        self,
        index: int,
        delay: float = 0.0,
        value: Any = None,
        error: Exception | None = None,
        gate: asyncio.Event | None = None,
    ):
        """Build an operation that sleeps ``delay`` (or waits on ``gate``)."""

        async def _operation() -> Any:
            self.calls.append(index)
            self.active += 1
            self.high_water = max(self.high_water, self.active)
            self.events.append(f"start:{index}")
            try:
                if gate is not None:
                    await gate.wait()
                else:
                    await asyncio.sleep(delay)
                if error is not None:
                    raise error
                return index if value is None else value
            except asyncio.CancelledError:
                self.cancelled.append(index)
                raise
            finally:
                self.active -= 1
                self.events.append(f"end:{index}")

        _operation.__qualname__ = f"probe_op_{index}"
        return _operation
