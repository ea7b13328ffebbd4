# test/test_scheduling.py
import asyncio

import pytest

from tracemath.core.scheduling import AsyncioScheduler, Debouncer, ManualScheduler, PollingScheduler


def test_manual_scheduler_fires_in_due_order():
    sched = ManualScheduler()
    fired = []
    sched.call_later(0.2, lambda: fired.append(("b", sched.now())))
    sched.call_later(0.1, lambda: fired.append(("a", sched.now())))

    assert sched.advance(0.05) == 0
    assert sched.advance(0.2) == 2
    assert fired == [("a", pytest.approx(0.1)), ("b", pytest.approx(0.2))]
    assert sched.now() == pytest.approx(0.25)


def test_cancelled_timer_never_fires():
    sched = ManualScheduler()
    fired = []
    handle = sched.call_later(0.1, lambda: fired.append(1))
    handle.cancel()
    assert sched.pending == 0
    sched.advance(1.0)
    assert fired == []


def test_polling_scheduler_uses_given_clock():
    now = [10.0]
    sched = PollingScheduler(clock=lambda: now[0])
    fired = []
    sched.call_later(1.0, lambda: fired.append(1))

    assert sched.next_due() == 11.0
    assert sched.run_pending() == 0
    now[0] = 11.0
    assert sched.run_pending() == 1
    assert fired == [1]
    assert sched.next_due() is None


def test_debouncer_runs_immediately_when_idle():
    sched = ManualScheduler()
    calls = []
    d = Debouncer(sched, 0.1, lambda: calls.append(sched.now()))
    d.request()
    assert calls == [0.0]
    assert not d.armed


def test_debouncer_coalesces_requests_within_interval():
    sched = ManualScheduler()
    calls = []
    d = Debouncer(sched, 0.1, lambda: calls.append(sched.now()))
    d.request()
    sched.advance(0.02)
    d.request()
    d.request()
    d.request()
    assert d.armed
    assert len(calls) == 1

    sched.advance(0.1)
    assert calls == [0.0, pytest.approx(0.1)]
    assert not d.armed


def test_debouncer_at_most_one_run_per_interval():
    sched = ManualScheduler()
    calls = []
    d = Debouncer(sched, 0.1, lambda: calls.append(sched.now()))
    for _ in range(100):
        d.request()
        sched.advance(0.01)
    sched.advance(0.2)

    assert all(b - a >= 0.1 - 1e-9 for a, b in zip(calls, calls[1:]))
    assert 9 <= len(calls) <= 11


def test_debouncer_flush_and_cancel():
    sched = ManualScheduler()
    calls = []
    d = Debouncer(sched, 0.1, lambda: calls.append(1))
    d.request()
    d.request()
    assert d.armed

    d.flush()
    assert calls == [1, 1]
    assert not d.armed

    sched.advance(0.05)
    d.request()
    d.cancel()
    sched.advance(1.0)
    assert calls == [1, 1]


def test_asyncio_scheduler_runs_on_loop():
    async def main():
        sched = AsyncioScheduler()
        done = asyncio.Event()
        d = Debouncer(sched, 0.01, done.set)
        d.request()
        done.clear()
        d.request()
        await asyncio.wait_for(done.wait(), timeout=1.0)
        return d.last_run

    assert asyncio.run(main()) > 0
