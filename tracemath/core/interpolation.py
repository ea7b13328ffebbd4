# tracemath/core/interpolation.py
"""
Binary search and linear interpolation over coordinate-sorted samples.

Queries outside the sampled range never fail: indices saturate at the last
sample and interpolated values are clamped to the edge samples.
"""
from __future__ import annotations

import numpy as np

UNDEFINED = complex(np.nan, np.nan)


def index_for_coordinate(coordinates: np.ndarray, x: float) -> int:
    """Index of the first sample with coordinate >= x, saturated at the last index."""
    n = int(coordinates.size)
    if n == 0:
        return 0
    idx = int(np.searchsorted(coordinates, x, side="left"))
    # beyond the last sample: return the last one instead of an index past the data
    return min(idx, n - 1)


def interpolated_value(coordinates: np.ndarray, values: np.ndarray, x: float) -> complex:
    """Linear interpolation in the complex plane, edge values outside the range."""
    n = int(coordinates.size)
    if n == 0:
        return UNDEFINED
    if x <= coordinates[0]:
        return complex(values[0])
    if x >= coordinates[-1]:
        return complex(values[-1])

    upper = int(np.searchsorted(coordinates, x, side="left"))
    if coordinates[upper] == x:
        return complex(values[upper])
    lower = upper - 1
    alpha = (x - coordinates[lower]) / (coordinates[upper] - coordinates[lower])
    return complex(values[lower] + alpha * (values[upper] - values[lower]))


def interpolated_values(
    coordinates: np.ndarray,
    values: np.ndarray,
    xs: np.ndarray,
) -> np.ndarray:
    """Vectorised interpolated_value() for an array of coordinates."""
    xs = np.asarray(xs, dtype=np.float64)
    if coordinates.size == 0:
        return np.full(xs.shape, UNDEFINED, dtype=np.complex128)
    v = np.asarray(values, dtype=np.complex128)
    # np.interp clamps to fp[0] / fp[-1] outside the range, matching the scalar form
    re = np.interp(xs, coordinates, v.real)
    im = np.interp(xs, coordinates, v.imag)
    return re + 1j * im
