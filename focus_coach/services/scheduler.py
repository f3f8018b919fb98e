"""Timer scheduling with real and virtual clocks

Components never call ``asyncio.sleep`` or ``time`` directly for their timing
logic. They ask a scheduler for the current time and register callbacks with
``call_later`` / ``call_every``. ``AsyncioScheduler`` runs them on the event
loop; ``VirtualScheduler`` runs them when ``tick`` advances its clock, so
timing behavior can be exercised without waiting.
"""
import asyncio
import inspect
import itertools
import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Coroutine, Dict, List, Optional, Set

from focus_coach.services.errors import SchedulerError

logger = logging.getLogger(__name__)

Callback = Callable[[], Any]


@dataclass(eq=False)
class TimerHandle:
    """Reference to a scheduled callback"""
    id: int
    name: str
    interval: Optional[float] = None
    cancelled: bool = False

    @property
    def periodic(self) -> bool:
        return self.interval is not None

    def cancel(self) -> None:
        self.cancelled = True


async def _invoke(name: str, callback: Callback) -> None:
    """Run a sync or async callback, logging instead of propagating failures"""
    try:
        result = callback()
        if inspect.isawaitable(result):
            await result
    except asyncio.CancelledError:
        raise
    except Exception as e:
        logger.error(f"Timer callback '{name}' failed: {e}", exc_info=True)


class Scheduler(ABC):
    """Clock plus cancellable one-shot and periodic timers"""

    def __init__(self):
        self._ids = itertools.count(1)
        self._closed = False

    @abstractmethod
    def now(self) -> float:
        """Current time in seconds"""

    @abstractmethod
    def call_later(self, delay: float, callback: Callback, name: str = "timer") -> TimerHandle:
        """Run callback once after delay seconds"""

    @abstractmethod
    def call_every(self, interval: float, callback: Callback, name: str = "interval") -> TimerHandle:
        """Run callback every interval seconds until cancelled"""

    @abstractmethod
    def spawn(self, coro: Coroutine, name: str = "task") -> None:
        """Run a coroutine without blocking the caller"""

    @abstractmethod
    def cancel(self, handle: Optional[TimerHandle]) -> None:
        """Cancel a timer; cancelling None or a finished timer is a no-op"""

    @abstractmethod
    def cancel_all(self) -> None:
        """Cancel every timer and pending task"""

    def reopen(self) -> None:
        self._closed = False

    def _check_open(self) -> None:
        if self._closed:
            raise SchedulerError("Scheduler has been closed")


class AsyncioScheduler(Scheduler):
    """Scheduler backed by the running asyncio event loop"""

    def __init__(self, clock: Callable[[], float] = time.time):
        super().__init__()
        self._clock = clock
        self._timers: Dict[int, asyncio.Task] = {}
        self._tasks: Set[asyncio.Task] = set()

    def now(self) -> float:
        return self._clock()

    def call_later(self, delay: float, callback: Callback, name: str = "timer") -> TimerHandle:
        self._check_open()
        handle = TimerHandle(id=next(self._ids), name=name)

        async def runner():
            try:
                await asyncio.sleep(delay)
                if not handle.cancelled:
                    await _invoke(name, callback)
            finally:
                self._timers.pop(handle.id, None)

        self._timers[handle.id] = asyncio.create_task(runner(), name=name)
        return handle

    def call_every(self, interval: float, callback: Callback, name: str = "interval") -> TimerHandle:
        self._check_open()
        handle = TimerHandle(id=next(self._ids), name=name, interval=interval)

        async def runner():
            try:
                while not handle.cancelled:
                    await asyncio.sleep(interval)
                    if handle.cancelled:
                        break
                    await _invoke(name, callback)
            finally:
                self._timers.pop(handle.id, None)

        self._timers[handle.id] = asyncio.create_task(runner(), name=name)
        return handle

    def spawn(self, coro: Coroutine, name: str = "task") -> None:
        if self._closed:
            coro.close()
            return
        task = asyncio.create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._task_done)

    def _task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(f"Background task '{task.get_name()}' failed: {exc}", exc_info=exc)

    def cancel(self, handle: Optional[TimerHandle]) -> None:
        if handle is None:
            return
        handle.cancel()
        task = self._timers.pop(handle.id, None)
        if task is not None:
            task.cancel()

    def cancel_all(self) -> None:
        count = len(self._timers) + len(self._tasks)
        for task in list(self._timers.values()):
            task.cancel()
        for task in list(self._tasks):
            task.cancel()
        self._timers.clear()
        self._tasks.clear()
        self._closed = True
        logger.debug(f"Cancelled {count} timers and tasks")

    async def drain(self) -> None:
        """Wait for spawned tasks to finish"""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)


@dataclass(order=True)
class _VirtualTimer:
    due: float
    seq: int
    handle: TimerHandle = field(compare=False)
    callback: Callback = field(compare=False)


class VirtualScheduler(Scheduler):
    """Deterministic scheduler driven by ``tick``"""

    def __init__(self, start: float = 0.0):
        super().__init__()
        self._time = start
        self._timers: List[_VirtualTimer] = []
        self._pending: List[Awaitable] = []
        self._seq = itertools.count()

    def now(self) -> float:
        return self._time

    def call_later(self, delay: float, callback: Callback, name: str = "timer") -> TimerHandle:
        self._check_open()
        handle = TimerHandle(id=next(self._ids), name=name)
        self._timers.append(_VirtualTimer(self._time + delay, next(self._seq), handle, callback))
        return handle

    def call_every(self, interval: float, callback: Callback, name: str = "interval") -> TimerHandle:
        self._check_open()
        handle = TimerHandle(id=next(self._ids), name=name, interval=interval)
        self._timers.append(_VirtualTimer(self._time + interval, next(self._seq), handle, callback))
        return handle

    def spawn(self, coro: Coroutine, name: str = "task") -> None:
        if self._closed:
            coro.close()
            return
        self._pending.append(coro)

    def cancel(self, handle: Optional[TimerHandle]) -> None:
        if handle is None:
            return
        handle.cancel()
        self._timers = [t for t in self._timers if t.handle is not handle]

    def cancel_all(self) -> None:
        for timer in self._timers:
            timer.handle.cancel()
        self._timers.clear()
        for coro in self._pending:
            coro.close()
        self._pending.clear()
        self._closed = True

    @property
    def active_timers(self) -> List[TimerHandle]:
        return [t.handle for t in self._timers if not t.handle.cancelled]

    async def run_pending(self) -> None:
        """Await spawned coroutines, including ones they spawn"""
        while self._pending:
            coro = self._pending.pop(0)
            try:
                await coro
            except Exception as e:
                logger.error(f"Background task failed: {e}", exc_info=True)

    async def tick(self, seconds: float = 0.0) -> None:
        """Advance the clock, firing due timers in order"""
        target = self._time + seconds
        await self.run_pending()
        while True:
            due = [t for t in self._timers if t.due <= target and not t.handle.cancelled]
            if not due:
                break
            timer = min(due)
            self._time = timer.due
            if timer.handle.periodic:
                timer.due += timer.handle.interval
                timer.seq = next(self._seq)
            else:
                self._timers.remove(timer)
            await _invoke(timer.handle.name, timer.callback)
            await self.run_pending()
        self._time = target
