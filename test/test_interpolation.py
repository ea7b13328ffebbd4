# test/test_interpolation.py
import numpy as np

from tracemath.core.interpolation import (
    index_for_coordinate,
    interpolated_value,
    interpolated_values,
)


X = np.array([1.0, 2.0, 4.0])
Y = np.array([1 + 1j, 2 + 0j, 4 - 2j])


def test_index_for_coordinate():
    assert index_for_coordinate(X, 0.0) == 0
    assert index_for_coordinate(X, 1.0) == 0
    assert index_for_coordinate(X, 1.5) == 1
    assert index_for_coordinate(X, 4.0) == 2
    # saturates instead of pointing past the data
    assert index_for_coordinate(X, 100.0) == 2


def test_index_for_coordinate_empty():
    assert index_for_coordinate(np.empty(0), 3.0) == 0


def test_interpolated_value_inside_range():
    assert interpolated_value(X, Y, 2.0) == 2 + 0j
    assert interpolated_value(X, Y, 1.5) == 1.5 + 0.5j
    assert interpolated_value(X, Y, 3.0) == 3 - 1j


def test_interpolated_value_clamps_at_edges():
    assert interpolated_value(X, Y, -10.0) == Y[0]
    assert interpolated_value(X, Y, 10.0) == Y[-1]


def test_interpolated_value_empty_is_undefined():
    v = interpolated_value(np.empty(0), np.empty(0, dtype=complex), 1.0)
    assert np.isnan(v.real) and np.isnan(v.imag)


def test_interpolated_values_matches_scalar_form():
    xs = np.array([-1.0, 1.0, 1.5, 3.0, 4.0, 7.0])
    expected = [interpolated_value(X, Y, x) for x in xs]
    np.testing.assert_allclose(interpolated_values(X, Y, xs), expected)


def test_interpolated_values_empty():
    out = interpolated_values(np.empty(0), np.empty(0, dtype=complex), np.array([1.0, 2.0]))
    assert out.shape == (2,)
    assert np.isnan(out).all()
