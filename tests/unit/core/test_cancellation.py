"""Unit tests for run handles and cancellable awaits."""

import asyncio

import pytest

from taskpilot.core.domain.cancellation import RunHandle, run_cancellable
from taskpilot.core.domain.errors import CancelledError


class TestRunHandle:
    @pytest.mark.asyncio
    async def test_request_stop_sets_flag_and_event(self):
        handle = RunHandle(session_id="s1")
        assert not handle.stop_requested
        assert not handle.done

        handle.request_stop()

        assert handle.stop_requested
        assert handle.cancel_event.is_set()

    @pytest.mark.asyncio
    async def test_done_follows_task(self):
        handle = RunHandle(session_id="s1")
        handle.task = asyncio.create_task(asyncio.sleep(0))
        await handle.task
        assert handle.done


class TestRunCancellable:
    """Tests for racing an awaitable against a cancel event."""

    @pytest.mark.asyncio
    async def test_returns_result(self):
        async def answer():
            return 42

        assert await run_cancellable(answer(), asyncio.Event()) == 42
        assert await run_cancellable(answer(), None) == 42

    @pytest.mark.asyncio
    async def test_already_cancelled(self):
        event = asyncio.Event()
        event.set()

        with pytest.raises(CancelledError, match="Operation cancelled"):
            await run_cancellable(asyncio.sleep(10), event)

    @pytest.mark.asyncio
    async def test_cancelled_while_waiting(self):
        event = asyncio.Event()
        started = asyncio.Event()
        finished = []

        async def slow():
            started.set()
            await asyncio.sleep(10)
            finished.append(True)

        async def stop_soon():
            await started.wait()
            event.set()

        stopper = asyncio.create_task(stop_soon())
        with pytest.raises(CancelledError, match="halted"):
            await run_cancellable(slow(), event, "halted")
        await stopper
        assert finished == []

    @pytest.mark.asyncio
    async def test_exception_propagates(self):
        async def boom():
            raise ValueError("bad")

        with pytest.raises(ValueError):
            await run_cancellable(boom(), asyncio.Event())
