"""Monotonic clock abstraction used for every combat timer.

LoopClock runs on the asyncio loop's monotonic time. VirtualClock keeps its
own timer heap so simulations and tests can skip the waiting.
"""

from __future__ import annotations

import abc
import asyncio
import heapq
import itertools
from typing import Any, Awaitable, Callable


class TimerHandle:
    def __init__(self, when: float, callback: Callable[..., Any], args: tuple):
        self.when = when
        self._callback = callback
        self._args = args
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True

    def cancelled(self) -> bool:
        return self._cancelled

    def _run(self) -> None:
        if not self._cancelled:
            self._cancelled = True
            self._callback(*self._args)


class Clock(abc.ABC):
    """Time source plus cancellable one-shot timers. Times are in seconds."""

    @abc.abstractmethod
    def now(self) -> float: ...

    @abc.abstractmethod
    def call_later(self, delay: float, callback: Callable[..., Any], *args: Any): ...

    @abc.abstractmethod
    async def sleep(self, delay: float) -> None: ...


class LoopClock(Clock):
    def now(self) -> float:
        return asyncio.get_running_loop().time()

    def call_later(self, delay: float, callback: Callable[..., Any], *args: Any) -> asyncio.TimerHandle:
        return asyncio.get_running_loop().call_later(max(delay, 0.0), callback, *args)

    async def sleep(self, delay: float) -> None:
        await asyncio.sleep(max(delay, 0.0))


def _resolve_future(fut: asyncio.Future) -> None:
    if not fut.done():
        fut.set_result(None)


class VirtualClock(Clock):
    """Manually advanced clock.

    Timers only fire from ``advance`` or ``drive``. Timers due at the same
    instant fire in the order they were armed.
    """

    def __init__(self, start: float = 0.0, settle_iterations: int = 20):
        self._now = start
        self._timers: list[tuple[float, int, TimerHandle]] = []
        self._seq = itertools.count()
        self._settle_iterations = settle_iterations

    def now(self) -> float:
        return self._now

    def call_later(self, delay: float, callback: Callable[..., Any], *args: Any) -> TimerHandle:
        handle = TimerHandle(self._now + max(delay, 0.0), callback, args)
        heapq.heappush(self._timers, (handle.when, next(self._seq), handle))
        return handle

    async def sleep(self, delay: float) -> None:
        fut = asyncio.get_running_loop().create_future()
        handle = self.call_later(delay, _resolve_future, fut)
        try:
            await fut
        finally:
            handle.cancel()

    @property
    def pending(self) -> int:
        return sum(1 for _, _, h in self._timers if not h.cancelled())

    def next_deadline(self) -> float | None:
        self._discard_cancelled()
        return self._timers[0][0] if self._timers else None

    def _discard_cancelled(self) -> None:
        while self._timers and self._timers[0][2].cancelled():
            heapq.heappop(self._timers)

    def _fire_next(self) -> bool:
        self._discard_cancelled()
        if not self._timers:
            return False
        when, _, handle = heapq.heappop(self._timers)
        self._now = max(self._now, when)
        handle._run()
        return True

    def advance(self, delta: float) -> None:
        """Move time forward, firing every timer that falls due."""
        target = self._now + delta
        while True:
            deadline = self.next_deadline()
            if deadline is None or deadline > target:
                break
            self._fire_next()
        self._now = target

    async def _settle(self) -> None:
        for _ in range(self._settle_iterations):
            await asyncio.sleep(0)

    async def drive(self, aw: Awaitable):
        """Run ``aw`` to completion, jumping time to each timer as it comes due."""
        task = asyncio.ensure_future(aw)
        try:
            while True:
                await self._settle()
                if task.done():
                    return task.result()
                if not self._fire_next():
                    # Waiting on something outside the clock (engine I/O).
                    await asyncio.wait({task}, timeout=0.01)
        finally:
            if not task.done():
                task.cancel()
