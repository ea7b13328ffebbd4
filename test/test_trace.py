# test/test_trace.py
import time

import numpy as np
import pytest

from tracemath.core import (
    Domain,
    EngineConfig,
    EventKind,
    ExpressionTransform,
    InvalidSamples,
    InvalidTrace,
    LiveParameter,
    ManualScheduler,
    MergePolicy,
    PollingScheduler,
    Sample,
    Source,
    Trace,
    TraceModel,
)
from tracemath.core.config import SPEED_OF_LIGHT


def _kinds(trace):
    seen = []
    trace.events.subscribe(lambda e: seen.append(e.kind))
    return seen


def _fill(trace, xs, ys, domain=Domain.FREQUENCY):
    for x, y in zip(xs, ys):
        trace.add_data(Sample(float(x), complex(y)), domain)


def test_defaults():
    t = Trace()
    assert t.name == "Trace"
    assert t.color == "yellow"
    assert t.visible
    assert t.source is Source.LIVE
    assert t.domain is Domain.FREQUENCY
    assert t.velocity_factor == 0.66
    assert t.reference_impedance == 50.0
    assert t.reflection
    assert not t.paused
    assert t.sample_count == 0
    assert t.min_x is None


def test_config_defaults_are_used():
    cfg = EngineConfig(velocity_factor=0.8, reference_impedance=75.0)
    t = Trace(config=cfg)
    assert t.velocity_factor == 0.8
    assert t.reference_impedance == 75.0


def test_name_must_be_string():
    with pytest.raises(InvalidTrace):
        Trace(name=3)


def test_add_data_emits_range():
    t = Trace()
    seen = []
    t.events.subscribe(lambda e: seen.append((e.begin, e.end)), EventKind.DATA_CHANGED)
    _fill(t, [1, 3], [1, 1])
    t.add_data(Sample(2.0, 5.0), Domain.FREQUENCY)

    assert seen == [(0, 1), (1, 2), (1, 2)]
    assert t.to_numpy()[0].tolist() == [1.0, 2.0, 3.0]


def test_add_data_with_other_domain_clears():
    t = Trace()
    _fill(t, [1, 2, 3], [1, 1, 1])
    kinds = _kinds(t)

    t.add_data(Sample(0.5, 2.0), Domain.TIME)
    assert t.domain is Domain.TIME
    assert t.sample_count == 1
    assert EventKind.CLEARED in kinds
    assert EventKind.TYPE_CHANGED in kinds


def test_reference_impedance_change_emits_type_changed():
    t = Trace()
    kinds = _kinds(t)
    t.add_data(Sample(1.0, 1.0), Domain.FREQUENCY, reference_impedance=75.0)
    assert t.reference_impedance == 75.0
    assert EventKind.TYPE_CHANGED in kinds


def test_merge_policy_applies_to_live_writes():
    t = Trace()
    t.merge_policy = MergePolicy.MAX_HOLD
    t.add_data(Sample(1.0, 3.0), Domain.FREQUENCY)
    t.add_data(Sample(1.0, 1.0), Domain.FREQUENCY)
    assert t.sample_at(0).y == 3.0


def test_paused_trace_ignores_data_and_clear():
    t = Trace()
    _fill(t, [1, 2], [1, 1])
    t.pause()
    assert t.add_data(Sample(3.0, 1.0), Domain.FREQUENCY) is None
    t.clear()
    assert t.sample_count == 2

    t.clear(force=True)
    assert t.sample_count == 0
    assert t.warning == "No data"


def test_pause_resume_events():
    t = Trace()
    kinds = _kinds(t)
    t.pause()
    t.pause()
    t.resume()
    assert kinds.count(EventKind.PAUSE_CHANGED) == 2
    assert not t.paused


def test_domain_setter_clears_samples():
    t = Trace()
    _fill(t, [1, 2], [1, 1])
    kinds = _kinds(t)
    t.domain = Domain.POWER
    assert t.sample_count == 0
    assert t.output_domain is Domain.POWER
    assert EventKind.CLEARED in kinds
    assert EventKind.TYPE_CHANGED in kinds


def test_fill_from_rows_accepts_value_forms():
    t = Trace()
    t.fill_from_rows(
        [(3.0, (1.0, 2.0)), (1.0, 5.0), (2.0, 1 - 1j), (1.0, 6.0)],
        Domain.FREQUENCY,
        filename="dut.s2p",
        parameter=1,
        reference_impedance=75.0,
    )
    x, y = t.to_numpy()
    assert x.tolist() == [1.0, 2.0, 3.0]
    # the later row at an existing coordinate wins
    assert y.tolist() == [6, 1 - 1j, 1 + 2j]
    assert t.source is Source.FILE
    assert t.filename == "dut.s2p"
    assert t.file_parameter == 1
    assert not t.reflection
    assert t.reference_impedance == 75.0


def test_fill_from_rows_rejects_bad_rows_without_touching_trace():
    t = Trace()
    _fill(t, [1, 2], [1, 1])
    with pytest.raises(InvalidSamples):
        t.fill_from_rows([(np.nan, 1.0)])
    with pytest.raises(InvalidTrace):
        t.fill_from_rows([(1.0, (1.0, 2.0, 3.0))])
    assert t.source is Source.LIVE
    assert t.sample_count == 2


def test_fill_from_rows_drops_math_sources():
    model = TraceModel(EngineConfig(min_update_interval=0.0), scheduler=ManualScheduler())
    a = model.create("A")
    _fill(a, [0, 1], [1, 1])
    m = model.create("M")
    m.from_math()
    m.add_math_source(a, "a")

    m.fill_from_rows([(0.0, 1.0)])
    assert m.math_sources == {}
    assert m.source is Source.FILE


def test_from_live_sets_reflection_from_parameter():
    t = Trace()
    t.from_live(MergePolicy.MIN_HOLD, LiveParameter.S21)
    assert t.live_parameter is LiveParameter.S21
    assert not t.reflection
    assert t.merge_policy is MergePolicy.MIN_HOLD

    t.from_live(MergePolicy.OVERWRITE, LiveParameter.S22)
    assert t.reflection


def test_can_be_paused():
    model = TraceModel(EngineConfig(min_update_interval=0.0), scheduler=ManualScheduler())
    live = model.create("L")
    _fill(live, [0, 1], [1, 1])
    file = model.create("F")
    file.fill_from_rows([(0.0, 1.0), (1.0, 1.0)])
    m = model.create("M")
    m.from_math()

    assert live.can_be_paused()
    assert not file.can_be_paused()
    assert not m.can_be_paused()

    m.add_math_source(file, "f")
    assert not m.can_be_paused()
    m.add_math_source(live, "l")
    assert m.can_be_paused()


def test_time_distance_conversion():
    t = Trace()
    t.velocity_factor = 0.5
    t.reflection = True
    assert t.time_to_distance(2e-9) == pytest.approx(2e-9 * SPEED_OF_LIGHT * 0.5 / 2)

    t.reflection = False
    assert t.time_to_distance(2e-9) == pytest.approx(2e-9 * SPEED_OF_LIGHT * 0.5)
    assert t.distance_to_time(t.time_to_distance(3e-9)) == pytest.approx(3e-9)

    t.reflection = True
    assert t.distance_to_time(t.time_to_distance(3e-9)) == pytest.approx(3e-9)


def test_velocity_factor_range():
    t = Trace()
    with pytest.raises(InvalidTrace):
        t.velocity_factor = 0.0
    with pytest.raises(InvalidTrace):
        t.velocity_factor = 1.5


def test_find_extremum():
    t = Trace()
    _fill(t, [1, 2, 3, 4], [1, -5, 2j, 0.5])
    assert t.find_extremum() == 2.0
    assert t.find_extremum(maximum=False) == 4.0
    assert Trace().find_extremum() is None


def test_interpolation_through_trace():
    t = Trace()
    _fill(t, [1, 2], [2, 4])
    assert t.interpolated_at(1.5) == 3
    assert t.interpolated_at(-1.0) == 2
    assert t.interpolated_at(10.0) == 4
    assert t.index_of(1.5) == 1


def test_status_events():
    t = Trace()
    kinds = _kinds(t)
    t.set_error("broken")
    t.set_error("broken")
    t.set_ok()
    assert kinds.count(EventKind.STATUS_CHANGED) == 2
    assert t.error is None


def test_identity_hash_is_cached_and_invalidated():
    t = Trace(name="A")
    h1 = t.identity_hash()
    assert t.identity_hash() == h1
    assert 0 <= h1 < 2**32

    t.name = "B"
    h2 = t.identity_hash()
    assert h2 != h1

    t.name = "A"
    assert t.identity_hash() == h1


def test_setters_emit_attribute_events():
    t = Trace()
    kinds = _kinds(t)
    t.name = "X"
    t.color = "red"
    t.visible = False
    assert kinds == [EventKind.NAME_CHANGED, EventKind.COLOR_CHANGED, EventKind.VISIBILITY_CHANGED]


def test_add_and_swap_operations():
    t = Trace()
    _fill(t, [0, 1, 2], [1, 2, 3])
    t.add_operations([ExpressionTransform("y*2"), ExpressionTransform("y+1")])
    assert t.has_operations
    assert t.to_numpy()[1].tolist() == [3, 5, 7]

    t.swap_operations(1)
    assert t.to_numpy()[1].tolist() == [4, 6, 8]


def test_standalone_math_trace_runs_timers_from_its_scheduler():
    cfg = EngineConfig(min_update_interval=0.3)
    a = Trace("A", config=cfg)
    _fill(a, [0, 1, 2], [1, 2, 3])
    m = Trace("M", config=cfg)
    m.from_math()
    m.math_formula = "a+1"
    assert m.add_math_source(a, "a")

    # the source arrived inside the debounce interval
    assert m.formula.timer_armed
    assert isinstance(m.scheduler, PollingScheduler)
    time.sleep(0.35)
    assert m.scheduler.run_pending() == 1
    assert not m.formula.timer_armed
    assert m.to_numpy()[1].tolist() == [2, 3, 4]


def test_explicit_scheduler_is_exposed():
    sched = ManualScheduler()
    t = Trace(scheduler=sched)
    assert t.scheduler is sched
