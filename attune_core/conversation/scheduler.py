"""
Tick scheduling.

Polling loops (barge-in sampling, session sweeps) run as TickingTasks driven
by a Clock. Production uses SystemClock; tests drive a VirtualClock forward
explicitly instead of waiting on wall-clock time.
"""

import asyncio
import heapq
import inspect
import itertools
import time
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, List, Optional, Tuple, Union

import structlog

logger = structlog.get_logger()

TickCallback = Callable[[float], Union[Awaitable[Any], Any]]


class Clock(ABC):
    """Time source with an awaitable sleep."""

    @abstractmethod
    def now_ms(self) -> float:
        """Current time in milliseconds."""
        pass

    @abstractmethod
    async def sleep(self, delay_ms: float) -> None:
        """Suspend for `delay_ms` of this clock's time."""
        pass


class SystemClock(Clock):
    """Wall-clock time backed by asyncio.sleep."""

    def now_ms(self) -> float:
        return time.time() * 1000

    async def sleep(self, delay_ms: float) -> None:
        await asyncio.sleep(max(0.0, delay_ms) / 1000)


class VirtualClock(Clock):
    """
    Manually advanced clock.

    Sleepers are resumed in deadline order by `advance()`; between wake-ups
    the event loop is given a few iterations so woken tasks can run their
    tick and go back to sleep.
    """

    def __init__(self, start_ms: float = 0.0):
        self._now = start_ms
        self._sleepers: List[Tuple[float, int, asyncio.Future]] = []
        self._seq = itertools.count()

    def now_ms(self) -> float:
        return self._now

    def set_time(self, now_ms: float) -> None:
        """Jump the clock without waking sleepers."""
        self._now = now_ms

    @property
    def pending_sleepers(self) -> int:
        return sum(1 for _, _, fut in self._sleepers if not fut.done())

    async def sleep(self, delay_ms: float) -> None:
        if delay_ms <= 0:
            await asyncio.sleep(0)
            return

        future = asyncio.get_running_loop().create_future()
        heapq.heappush(self._sleepers, (self._now + delay_ms, next(self._seq), future))
        await future

    async def advance(self, delta_ms: float) -> None:
        """Move time forward, waking every sleeper whose deadline passes."""
        await self._settle()
        target = self._now + delta_ms

        while self._sleepers and self._sleepers[0][0] <= target:
            deadline, _, future = heapq.heappop(self._sleepers)
            self._now = max(self._now, deadline)
            if not future.done():
                future.set_result(None)
            await self._settle()

        self._now = target
        await self._settle()

    @staticmethod
    async def _settle(iterations: int = 5) -> None:
        for _ in range(iterations):
            await asyncio.sleep(0)


class CancellationToken:
    """Cooperative cancellation flag shared between a loop and its owner."""

    def __init__(self) -> None:
        self._cancelled = False
        self._callbacks: List[Callable[[], None]] = []

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        if self._cancelled:
            return
        self._cancelled = True
        for callback in self._callbacks:
            try:
                callback()
            except Exception as e:
                logger.error("Cancellation callback error", error=str(e))

    def on_cancel(self, callback: Callable[[], None]) -> None:
        if self._cancelled:
            callback()
        else:
            self._callbacks.append(callback)


class TickingTask:
    """
    Runs `callback(now_ms)` every `interval_ms` until cancelled.

    Each tick does a bounded amount of work and then suspends on the clock,
    so the loop never starves the event loop.
    """

    def __init__(
        self,
        callback: TickCallback,
        interval_ms: float,
        clock: Optional[Clock] = None,
        token: Optional[CancellationToken] = None,
        name: str = "tick",
    ):
        self.callback = callback
        self.interval_ms = interval_ms
        self.clock = clock or SystemClock()
        self.token = token or CancellationToken()
        self.name = name
        self.ticks = 0

        self._task: Optional[asyncio.Task] = None
        self.logger = logger.bind(component="scheduler", task=name)

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Start ticking on the running event loop."""
        if self.is_running:
            return
        self._task = asyncio.create_task(self._run())
        self.logger.debug("Ticking task started", interval_ms=self.interval_ms)

    def cancel_nowait(self) -> None:
        """Cancel the loop without waiting for it to exit."""
        self.token.cancel()
        if self._task and self._task is not asyncio.current_task():
            self._task.cancel()

    async def stop(self) -> None:
        """Cancel the loop and wait for it to exit."""
        self.token.cancel()
        if self._task is asyncio.current_task():
            # Stopped from inside its own callback; the loop exits on return
            return
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        self.logger.debug("Ticking task stopped", ticks=self.ticks)

    async def _run(self) -> None:
        while not self.token.cancelled:
            await self.clock.sleep(self.interval_ms)
            if self.token.cancelled:
                break

            try:
                result = self.callback(self.clock.now_ms())
                if inspect.isawaitable(result):
                    await result
            except asyncio.CancelledError:
                raise
            except Exception as e:
                self.logger.error("Tick callback error", error=str(e))

            self.ticks += 1
