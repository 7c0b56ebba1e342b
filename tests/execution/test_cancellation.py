"""Tests for CancellationToken and the cancellation-aware wait helpers."""

import asyncio

import pytest

from toolmaster.core.errors import OperationCancelledError
from toolmaster.execution.cancellation import CancellationToken, cancellable_sleep, wait_first
from toolmaster.execution.scheduler import AsyncioScheduler


class TestCancellationToken:
    def test_initial_state(self):
        token = CancellationToken()
        assert token.cancelled is False
        assert token.reason is None
        token.raise_if_cancelled()
        assert repr(token) == "CancellationToken(active)"

    def test_first_reason_wins(self):
        token = CancellationToken()
        token.cancel("shutdown")
        token.cancel("second")
        assert token.cancelled is True
        assert token.reason == "shutdown"
        assert repr(token) == "CancellationToken(cancelled, reason='shutdown')"

    def test_raise_if_cancelled(self):
        token = CancellationToken()
        token.cancel("deadline")
        with pytest.raises(OperationCancelledError) as exc_info:
            token.raise_if_cancelled()
        assert exc_info.value.reason == "deadline"

    @pytest.mark.asyncio
    async def test_wait_returns_after_cancel(self):
        token = CancellationToken()
        waiter = asyncio.create_task(token.wait())
        await asyncio.sleep(0)
        assert not waiter.done()

        token.cancel()
        await asyncio.wait_for(waiter, timeout=1)


class TestWaitFirst:
    @pytest.mark.asyncio
    async def test_returns_finished_tasks(self):
        fast = asyncio.create_task(asyncio.sleep(0, result="fast"))
        slow = asyncio.create_task(asyncio.sleep(10))

        done = await wait_first({fast, slow})

        assert done == {fast}
        assert not slow.done()
        slow.cancel()

    @pytest.mark.asyncio
    async def test_token_interrupts_wait(self):
        token = CancellationToken()
        slow = asyncio.create_task(asyncio.sleep(10))
        asyncio.get_running_loop().call_later(0.01, token.cancel, "stop")

        with pytest.raises(OperationCancelledError, match="stop"):
            await wait_first({slow}, token)

        # The caller owns the tasks; they are left running
        assert not slow.done()
        slow.cancel()

    @pytest.mark.asyncio
    async def test_already_cancelled_token(self):
        token = CancellationToken()
        token.cancel()
        slow = asyncio.create_task(asyncio.sleep(10))

        with pytest.raises(OperationCancelledError):
            await wait_first({slow}, token)

        slow.cancel()


class TestCancellableSleep:
    @pytest.mark.asyncio
    async def test_sleeps_through_scheduler(self, virtual_scheduler):
        await cancellable_sleep(0.5, virtual_scheduler, CancellationToken())
        assert virtual_scheduler.delays == [0.5]

    @pytest.mark.asyncio
    async def test_without_token(self, virtual_scheduler):
        await cancellable_sleep(0.25, virtual_scheduler)
        assert virtual_scheduler.delays == [0.25]

    @pytest.mark.asyncio
    async def test_cancel_wakes_sleeper(self, blocking_scheduler):
        token = CancellationToken()
        sleeper = asyncio.create_task(cancellable_sleep(60, blocking_scheduler, token))
        await blocking_scheduler.sleeping.wait()

        token.cancel("stop")
        with pytest.raises(OperationCancelledError):
            await sleeper

        await asyncio.sleep(0)
        assert blocking_scheduler.interrupted == 1

    @pytest.mark.asyncio
    async def test_scheduler_errors_propagate(self):
        class BrokenScheduler(AsyncioScheduler):
            async def sleep(self, seconds):
                raise RuntimeError("clock unavailable")

        with pytest.raises(RuntimeError, match="clock unavailable"):
            await cancellable_sleep(1, BrokenScheduler(), CancellationToken())
