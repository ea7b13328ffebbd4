# tracemath/core/scheduling.py
"""
One-shot timers for debounced recomputation.

All engine work runs on one logical thread; the only deferred execution is a
fire-once timer obtained from a Scheduler. Three schedulers are provided:

- ManualScheduler: virtual clock advanced explicitly (tests, offline replay)
- PollingScheduler: monotonic clock, the host loop calls run_pending()
- AsyncioScheduler: timers armed on an asyncio event loop
"""
from __future__ import annotations

import asyncio
import heapq
import itertools
import math
import time
from dataclasses import dataclass, field
from typing import Callable, Protocol, runtime_checkable


@runtime_checkable
class TimerHandle(Protocol):
    def cancel(self) -> None: ...


@runtime_checkable
class Scheduler(Protocol):
    def now(self) -> float: ...

    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle: ...


@dataclass(order=True)
class _Timer:
    due: float
    seq: int
    callback: Callable[[], None] = field(compare=False)
    cancelled: bool = field(default=False, compare=False)

    def cancel(self) -> None:
        self.cancelled = True


class PollingScheduler:
    """Timers kept in a heap and fired by run_pending() from the host loop."""

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._timers: list[_Timer] = []
        self._seq = itertools.count()

    def now(self) -> float:
        return self._clock()

    def call_later(self, delay: float, callback: Callable[[], None]) -> _Timer:
        timer = _Timer(due=self.now() + max(0.0, delay), seq=next(self._seq), callback=callback)
        heapq.heappush(self._timers, timer)
        return timer

    @property
    def pending(self) -> int:
        return sum(1 for t in self._timers if not t.cancelled)

    def next_due(self) -> float | None:
        live = [t.due for t in self._timers if not t.cancelled]
        return min(live) if live else None

    def run_pending(self) -> int:
        """Fire every timer that is due; returns how many fired."""
        return self._fire_until(self.now())

    def _fire_until(self, deadline: float) -> int:
        fired = 0
        while self._timers and self._timers[0].due <= deadline:
            timer = heapq.heappop(self._timers)
            if timer.cancelled:
                continue
            self._on_fire(timer)
            timer.callback()
            fired += 1
        return fired

    def _on_fire(self, timer: _Timer) -> None:
        pass


class ManualScheduler(PollingScheduler):
    """Virtual-clock scheduler; time only moves through advance()."""

    def __init__(self, start: float = 0.0) -> None:
        self._t = float(start)
        super().__init__(clock=lambda: self._t)

    def advance(self, dt: float) -> int:
        target = self._t + dt
        fired = self._fire_until(target)
        self._t = target
        return fired

    def _on_fire(self, timer: _Timer) -> None:
        # callbacks observe the clock at their own due time
        self._t = max(self._t, timer.due)


class AsyncioScheduler:
    """Arms timers on an asyncio event loop (the running one by default)."""

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        self._loop = loop if loop is not None else asyncio.get_running_loop()

    def now(self) -> float:
        return self._loop.time()

    def call_later(self, delay: float, callback: Callable[[], None]) -> asyncio.TimerHandle:
        return self._loop.call_later(max(0.0, delay), callback)


class Debouncer:
    """
    Runs `callback` at most once per `interval`.

    A request arriving after the interval has elapsed runs immediately;
    otherwise a single timer is armed for the remaining time. Requests made
    while the timer is armed are absorbed by that one firing.
    """

    def __init__(
        self,
        scheduler: Scheduler,
        interval: float,
        callback: Callable[[], None],
    ) -> None:
        self.scheduler = scheduler
        self.interval = float(interval)
        self._callback = callback
        self._timer: TimerHandle | None = None
        self.last_run = -math.inf

    @property
    def armed(self) -> bool:
        return self._timer is not None

    def request(self) -> None:
        if self._timer is not None:
            return
        elapsed = self.scheduler.now() - self.last_run
        if elapsed >= self.interval:
            self._run()
        else:
            self._timer = self.scheduler.call_later(self.interval - elapsed, self._on_timer)

    def flush(self) -> None:
        """Run now, dropping an armed timer."""
        self.cancel()
        self._run()

    def cancel(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _on_timer(self) -> None:
        self._timer = None
        self._run()

    def _run(self) -> None:
        self.last_run = self.scheduler.now()
        self._callback()
