# tracemath/core/samplestore.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Callable

import numpy as np

from .enums import MergePolicy
from .exceptions import InvalidSamples
from .interpolation import (
    UNDEFINED,
    index_for_coordinate,
    interpolated_value,
    interpolated_values,
)


@dataclass(frozen=True, slots=True)
class Sample:
    """One (coordinate, complex value) pair."""

    x: float
    y: complex

    @classmethod
    def undefined(cls, x: float = float("nan")) -> "Sample":
        return cls(x=x, y=UNDEFINED)


def _validate_arrays(x: np.ndarray, y: np.ndarray) -> None:
    if x.ndim != 1:
        raise InvalidSamples(f"`coordinates` must be 1D, got shape {x.shape}")
    if y.ndim != 1:
        raise InvalidSamples(f"`values` must be 1D, got shape {y.shape}")
    if x.size != y.size:
        raise InvalidSamples(
            f"`coordinates` and `values` must have same length, got {x.size} vs {y.size}"
        )
    if x.size > 0:
        if not np.isfinite(x).all():
            raise InvalidSamples("`coordinates` contains non-finite values (NaN/Inf).")
        if np.any(np.diff(x) <= 0):
            raise InvalidSamples("`coordinates` must be strictly increasing.")


class SampleStore:
    """
    Coordinate-sorted, duplicate-free samples of one trace.

    Coordinates are float64 and values complex128. Writes without an explicit
    index keep the ordering; writes at an existing coordinate are resolved by
    `merge_policy`. Explicit-index writes are reserved for fixed-grid output
    and may pre-extend the store with undefined samples.
    """

    __slots__ = ("_x", "_y", "merge_policy")

    def __init__(self, merge_policy: MergePolicy = MergePolicy.OVERWRITE) -> None:
        self._x = np.empty(0, dtype=np.float64)
        self._y = np.empty(0, dtype=np.complex128)
        self.merge_policy = merge_policy

    @classmethod
    def from_arrays(
        cls,
        coordinates,
        values,
        *,
        merge_policy: MergePolicy = MergePolicy.OVERWRITE,
    ) -> "SampleStore":
        x = np.asarray(coordinates, dtype=np.float64)
        y = np.asarray(values, dtype=np.complex128)
        _validate_arrays(x, y)
        store = cls(merge_policy)
        store._x = x.copy()
        store._y = y.copy()
        return store

    # ---- read access ----
    def __len__(self) -> int:
        return int(self._x.size)

    @property
    def n(self) -> int:
        return int(self._x.size)

    @property
    def coordinates(self) -> np.ndarray:
        return self._x

    @property
    def values(self) -> np.ndarray:
        return self._y

    def __getitem__(self, index: int) -> Sample:
        return Sample(float(self._x[index]), complex(self._y[index]))

    @property
    def x_min(self) -> float | None:
        return None if self.n == 0 else float(self._x[0])

    @property
    def x_max(self) -> float | None:
        return None if self.n == 0 else float(self._x[-1])

    def index_of(self, x: float) -> int:
        return index_for_coordinate(self._x, x)

    def interpolated(self, x: float) -> complex:
        return interpolated_value(self._x, self._y, x)

    def interpolated_many(self, xs: np.ndarray) -> np.ndarray:
        return interpolated_values(self._x, self._y, xs)

    def to_numpy(self, *, copy: bool = False) -> tuple[np.ndarray, np.ndarray]:
        if copy:
            return self._x.copy(), self._y.copy()
        return self._x, self._y

    # ---- writes ----
    def upsert(self, sample: Sample, index: int | None = None) -> tuple[int, int]:
        """
        Write one sample and return the half-open index range touched.

        With `index`, the sample is written at that position (the store is
        pre-extended with undefined samples if needed). Without it, the
        position is found by coordinate: new coordinates are inserted in
        order, existing ones are resolved by the merge policy.
        """
        y = complex(sample.y)
        if index is not None:
            if index < 0:
                raise InvalidSamples(f"Sample index must be >= 0, got {index}")
            if index >= self.n:
                grow = index + 1 - self.n
                self._x = np.concatenate([self._x, np.full(grow, np.nan)])
                self._y = np.concatenate(
                    [self._y, np.full(grow, UNDEFINED, dtype=np.complex128)]
                )
            self._x[index] = sample.x
            self._y[index] = y
            return index, index + 1

        idx = int(np.searchsorted(self._x, sample.x, side="left"))
        if idx < self.n and self._x[idx] == sample.x:
            current = self._y[idx]
            if self.merge_policy is MergePolicy.OVERWRITE:
                self._y[idx] = y
            elif self.merge_policy is MergePolicy.MAX_HOLD:
                if abs(y) > abs(current):
                    self._y[idx] = y
            elif self.merge_policy is MergePolicy.MIN_HOLD:
                if abs(y) < abs(current):
                    self._y[idx] = y
        else:
            self._x = np.insert(self._x, idx, sample.x)
            self._y = np.insert(self._y, idx, y)
        return idx, idx + 1

    def write_range(self, begin: int, values: np.ndarray) -> tuple[int, int]:
        """Overwrite values (not coordinates) starting at `begin`."""
        values = np.asarray(values, dtype=np.complex128)
        end = begin + int(values.size)
        if begin < 0 or end > self.n:
            raise InvalidSamples(
                f"write_range [{begin}, {end}) outside store of size {self.n}"
            )
        self._y[begin:end] = values
        return begin, end

    def assign(self, coordinates, values) -> None:
        """Replace the whole content with validated arrays (bulk import)."""
        x = np.asarray(coordinates, dtype=np.float64)
        y = np.asarray(values, dtype=np.complex128)
        _validate_arrays(x, y)
        self._x = x.copy()
        self._y = y.copy()

    def clear(self) -> None:
        self._x = np.empty(0, dtype=np.float64)
        self._y = np.empty(0, dtype=np.complex128)

    def resize_to(self, n: int, coordinate_generator: Callable[[int], float]) -> None:
        """
        Lay the store onto an externally imposed grid of `n` samples.

        Values are kept where a new coordinate equals an old one; all other
        cells become undefined.
        """
        if n < 0:
            raise InvalidSamples(f"Sample count must be >= 0, got {n}")
        new_x = np.array([coordinate_generator(i) for i in range(n)], dtype=np.float64)
        new_y = np.full(n, UNDEFINED, dtype=np.complex128)
        if self.n > 0 and n > 0:
            old_x = self._x
            pos = np.searchsorted(old_x, new_x, side="left")
            pos_c = np.clip(pos, 0, self.n - 1)
            match = (pos < self.n) & (old_x[pos_c] == new_x)
            new_y[match] = self._y[pos_c[match]]
        self._x = new_x
        self._y = new_y
