"""Unit tests for tick scheduling."""

import asyncio

import pytest

from attune_core.conversation.scheduler import CancellationToken, TickingTask, VirtualClock


class TestVirtualClock:
    """Tests for VirtualClock."""

    @pytest.mark.asyncio
    async def test_sleep_resolves_on_advance(self):
        """Test sleepers wake only once their deadline passes."""
        clock = VirtualClock(start_ms=1000)
        task = asyncio.create_task(clock.sleep(100))

        await clock.advance(50)
        assert not task.done()
        assert clock.pending_sleepers == 1

        await clock.advance(50)
        assert task.done()
        assert clock.now_ms() == 1100

    @pytest.mark.asyncio
    async def test_sleepers_wake_in_order(self):
        """Test deadlines are honored in order."""
        clock = VirtualClock()
        woke = []

        async def sleeper(name, delay):
            await clock.sleep(delay)
            woke.append((name, clock.now_ms()))

        tasks = [
            asyncio.create_task(sleeper("late", 300)),
            asyncio.create_task(sleeper("early", 100)),
        ]

        await clock.advance(500)
        await asyncio.gather(*tasks)

        assert woke == [("early", 100), ("late", 300)]
        assert clock.now_ms() == 500

    def test_set_time(self):
        """Test jumping the clock."""
        clock = VirtualClock()
        clock.set_time(42.0)

        assert clock.now_ms() == 42.0


class TestCancellationToken:
    """Tests for CancellationToken."""

    def test_callbacks(self):
        """Test callbacks run on cancel, and immediately once cancelled."""
        token = CancellationToken()
        calls = []
        token.on_cancel(lambda: calls.append("before"))

        token.cancel()
        token.cancel()
        token.on_cancel(lambda: calls.append("after"))

        assert token.cancelled
        assert calls == ["before", "after"]


class TestTickingTask:
    """Tests for TickingTask."""

    @pytest.mark.asyncio
    async def test_ticks_on_interval(self):
        """Test the callback runs once per interval with the clock time."""
        clock = VirtualClock()
        seen = []
        task = TickingTask(seen.append, 100, clock=clock)

        task.start()
        await clock.advance(350)

        assert seen == [100, 200, 300]
        assert task.ticks == 3
        assert task.is_running

        await task.stop()
        assert not task.is_running

    @pytest.mark.asyncio
    async def test_async_callback(self):
        """Test coroutine callbacks are awaited."""
        clock = VirtualClock()
        seen = []

        async def callback(now_ms):
            seen.append(now_ms)

        task = TickingTask(callback, 50, clock=clock)
        task.start()
        await clock.advance(100)
        await task.stop()

        assert seen == [50, 100]

    @pytest.mark.asyncio
    async def test_callback_errors_do_not_stop_loop(self):
        """Test a failing tick is logged and the loop continues."""
        clock = VirtualClock()

        def callback(now_ms):
            raise RuntimeError("boom")

        task = TickingTask(callback, 100, clock=clock)
        task.start()
        await clock.advance(200)

        assert task.ticks == 2
        assert task.is_running

        await task.stop()

    @pytest.mark.asyncio
    async def test_token_stops_loop(self):
        """Test cancelling the token ends the loop at the next wake-up."""
        clock = VirtualClock()
        token = CancellationToken()
        task = TickingTask(lambda now: token.cancel(), 100, clock=clock, token=token)

        task.start()
        await clock.advance(300)

        assert task.ticks == 1
        assert not task.is_running
