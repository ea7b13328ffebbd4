# test/test_samplestore.py
import numpy as np
import pytest

from tracemath.core.enums import MergePolicy
from tracemath.core.exceptions import InvalidSamples
from tracemath.core.samplestore import Sample, SampleStore


def _store(xs, ys=None, policy=MergePolicy.OVERWRITE):
    ys = xs if ys is None else ys
    return SampleStore.from_arrays(np.asarray(xs, dtype=float), np.asarray(ys, dtype=complex), merge_policy=policy)


def test_empty_store():
    s = SampleStore()
    assert s.n == 0
    assert len(s) == 0
    assert s.x_min is None
    assert s.x_max is None
    assert s.index_of(1.0) == 0
    assert np.isnan(s.interpolated(1.0).real)


def test_upsert_keeps_sorted_without_duplicates():
    s = SampleStore()
    for x in [5.0, 1.0, 3.0, 1.0, 4.0, 5.0, 0.0, 3.0]:
        s.upsert(Sample(x, complex(x, 1.0)))

    assert np.all(np.diff(s.coordinates) > 0)
    assert s.coordinates.tolist() == [0.0, 1.0, 3.0, 4.0, 5.0]


def test_upsert_returns_touched_range():
    s = _store([1.0, 2.0, 4.0])
    assert s.upsert(Sample(3.0, 1j)) == (2, 3)
    assert s.upsert(Sample(1.0, 2j)) == (0, 1)
    assert s.upsert(Sample(9.0, 0j)) == (4, 5)


def test_overwrite_replaces_value():
    s = _store([1.0, 2.0], [1.0, 1.0])
    s.upsert(Sample(2.0, 0.5))
    assert s[1].y == 0.5
    assert s.n == 2


@pytest.mark.parametrize("first,second", [(2.0, 5.0), (5.0, 2.0)])
def test_max_hold_keeps_larger_magnitude(first, second):
    s = SampleStore(MergePolicy.MAX_HOLD)
    s.upsert(Sample(1.0, complex(first)))
    s.upsert(Sample(1.0, complex(second)))
    assert abs(s[0].y) == 5.0


@pytest.mark.parametrize("first,second", [(2.0, 5.0), (5.0, 2.0)])
def test_min_hold_keeps_smaller_magnitude(first, second):
    s = SampleStore(MergePolicy.MIN_HOLD)
    s.upsert(Sample(1.0, complex(first)))
    s.upsert(Sample(1.0, complex(second)))
    assert abs(s[0].y) == 2.0


def test_max_hold_compares_complex_magnitude():
    s = SampleStore(MergePolicy.MAX_HOLD)
    s.upsert(Sample(1.0, 3 + 4j))   # |.| = 5
    s.upsert(Sample(1.0, -4.5 + 0j))
    assert s[0].y == 3 + 4j


def test_index_write_pre_extends_with_undefined():
    s = SampleStore()
    assert s.upsert(Sample(10.0, 1.0), index=2) == (2, 3)
    assert s.n == 3
    assert np.isnan(s.coordinates[0])
    assert np.isnan(s.values[1].real) and np.isnan(s.values[1].imag)
    assert s[2] == Sample(10.0, 1.0)


def test_index_write_rejects_negative_index():
    with pytest.raises(InvalidSamples):
        SampleStore().upsert(Sample(0.0, 0.0), index=-1)


def test_write_range_overwrites_values_only():
    s = _store([0.0, 1.0, 2.0, 3.0])
    assert s.write_range(1, np.array([10.0, 20.0])) == (1, 3)
    assert s.values.tolist() == [0, 10, 20, 3]
    assert s.coordinates.tolist() == [0, 1, 2, 3]


def test_write_range_outside_store_raises():
    s = _store([0.0, 1.0])
    with pytest.raises(InvalidSamples):
        s.write_range(1, np.array([1.0, 2.0]))


def test_resize_to_preserves_coinciding_coordinates():
    s = _store([0.0, 1.0, 2.0], [5.0, 6.0, 7.0])
    s.resize_to(5, lambda i: i * 0.5)

    assert s.coordinates.tolist() == [0.0, 0.5, 1.0, 1.5, 2.0]
    assert s.values[0] == 5.0
    assert s.values[2] == 6.0
    assert s.values[4] == 7.0
    assert np.isnan(s.values[1].real)
    assert np.isnan(s.values[3].real)


def test_resize_to_zero_empties_store():
    s = _store([0.0, 1.0])
    s.resize_to(0, lambda i: float(i))
    assert s.n == 0


def test_from_arrays_validation():
    with pytest.raises(InvalidSamples):
        SampleStore.from_arrays(np.array([[0.0, 1.0]]), np.array([1.0, 2.0]))
    with pytest.raises(InvalidSamples):
        SampleStore.from_arrays(np.array([0.0, 1.0]), np.array([1.0]))
    with pytest.raises(InvalidSamples):
        SampleStore.from_arrays(np.array([0.0, np.nan]), np.array([1.0, 2.0]))
    with pytest.raises(InvalidSamples):
        SampleStore.from_arrays(np.array([0.0, 0.0]), np.array([1.0, 2.0]))


def test_to_numpy_copy_semantics():
    s = _store([0.0, 1.0])
    x_view, _ = s.to_numpy(copy=False)
    x_copy, y_copy = s.to_numpy(copy=True)

    assert x_view is s.coordinates
    assert x_copy is not s.coordinates
    y_copy[0] = 99.0
    assert s.values[0] == 0.0


def test_clear():
    s = _store([0.0, 1.0])
    s.clear()
    assert s.n == 0
    assert s.coordinates.dtype == np.float64
    assert s.values.dtype == np.complex128
