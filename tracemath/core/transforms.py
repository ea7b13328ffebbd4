# tracemath/core/transforms.py
"""
Transform kinds that can be chained after a trace's raw samples.

Every transform maps an input grid (coordinates, values, domain) to an output
grid. Incremental transforms keep the input grid and can recompute a sub
range of their output when only part of the input changed.
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, ClassVar, Mapping

import numpy as np
from loguru import logger
from numpy.lib.stride_tricks import sliding_window_view

from .enums import Domain
from .exceptions import ExpressionError, InvalidTransform
from .expression import parse
from .interpolation import UNDEFINED


class Transform(ABC):
    kind: ClassVar[str]
    incremental: ClassVar[bool] = False

    def output_domain(self, input_domain: Domain) -> Domain:
        return input_domain

    @abstractmethod
    def apply(
        self, x: np.ndarray, y: np.ndarray, domain: Domain
    ) -> tuple[np.ndarray, np.ndarray]:
        """Full recomputation: return (coordinates, values) of the output."""

    def apply_range(
        self,
        x: np.ndarray,
        y: np.ndarray,
        out: np.ndarray,
        begin: int,
        end: int,
    ) -> tuple[int, int]:
        """
        Update `out` in place for an input change over [begin, end).

        Only called for incremental transforms, whose output grid equals the
        input grid. Returns the output index range that was rewritten.
        """
        raise NotImplementedError(f"{self.kind} does not support range updates")

    @abstractmethod
    def settings(self) -> dict[str, Any]: ...

    @classmethod
    @abstractmethod
    def from_settings(cls, settings: Mapping[str, Any]) -> "Transform": ...

    def description(self) -> str:
        return self.kind

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.settings()})"


class MedianFilter(Transform):
    """Sliding median over an odd kernel; complex values are ranked by magnitude."""

    kind = "Median filter"
    incremental = True

    def __init__(self, kernel_size: int = 3) -> None:
        if not isinstance(kernel_size, int) or kernel_size < 1 or kernel_size % 2 == 0:
            raise InvalidTransform("MedianFilter.kernel_size must be a positive odd integer.")
        self.kernel_size = kernel_size

    @property
    def half(self) -> int:
        return self.kernel_size // 2

    def _median(self, y: np.ndarray, begin: int, end: int) -> np.ndarray:
        h = self.half
        padded = np.pad(y, h, mode="edge")
        windows = sliding_window_view(padded[begin:end + 2 * h], self.kernel_size)
        pick = np.argsort(np.abs(windows), axis=1, kind="stable")[:, h]
        return windows[np.arange(windows.shape[0]), pick]

    def apply(self, x, y, domain):
        if y.size == 0:
            return x.copy(), y.copy()
        return x.copy(), self._median(y, 0, y.size)

    def apply_range(self, x, y, out, begin, end):
        n = int(y.size)
        b = max(0, begin - self.half)
        e = min(n, end + self.half)
        if b < e:
            out[b:e] = self._median(y, b, e)
        return b, e

    def settings(self):
        return {"kernel_size": self.kernel_size}

    @classmethod
    def from_settings(cls, settings):
        return cls(kernel_size=int(settings.get("kernel_size", 3)))

    def description(self):
        return f"Median filter, kernel size {self.kernel_size}"


class ExpressionTransform(Transform):
    """Per-sample expression over `x` (coordinate) and `y` (input value)."""

    kind = "Expression"
    incremental = True

    def __init__(self, expression: str = "y") -> None:
        if not isinstance(expression, str):
            raise InvalidTransform("ExpressionTransform.expression must be a string.")
        self.expression = expression

    def _eval(self, x: np.ndarray, y: np.ndarray) -> np.ndarray:
        try:
            result = parse(self.expression).eval({"x": x, "y": y})
            return np.broadcast_to(np.asarray(result, dtype=np.complex128), y.shape)
        except (ExpressionError, ValueError) as e:
            logger.warning("Expression transform '{}' failed: {}", self.expression, e)
            return np.full(y.shape, UNDEFINED, dtype=np.complex128)

    def apply(self, x, y, domain):
        return x.copy(), np.array(self._eval(x, y), dtype=np.complex128)

    def apply_range(self, x, y, out, begin, end):
        if begin < end:
            out[begin:end] = self._eval(x[begin:end], y[begin:end])
        return begin, end

    def settings(self):
        return {"expression": self.expression}

    @classmethod
    def from_settings(cls, settings):
        return cls(expression=str(settings.get("expression", "y")))

    def description(self):
        return f"Expression: {self.expression}"


_WINDOWS = {
    "none": np.ones,
    "hann": np.hanning,
    "hamming": np.hamming,
    "blackman": np.blackman,
}


class TimeDomainTransform(Transform):
    """Frequency to time domain conversion (windowed inverse FFT)."""

    kind = "Time domain"

    def __init__(self, window: str = "hann") -> None:
        if window not in _WINDOWS:
            raise InvalidTransform(
                f"Unknown window {window!r}; expected one of {sorted(_WINDOWS)}"
            )
        self.window = window

    def output_domain(self, input_domain):
        return Domain.TIME

    def apply(self, x, y, domain):
        if domain is not Domain.FREQUENCY:
            logger.warning("Time domain transform needs frequency input, got {}", domain.value)
            return np.empty(0), np.empty(0, dtype=np.complex128)
        n = int(y.size)
        if n < 2:
            return np.empty(0), np.empty(0, dtype=np.complex128)
        df = (x[-1] - x[0]) / (n - 1)
        t = np.arange(n) / (n * df)
        return t, np.fft.ifft(y * _WINDOWS[self.window](n))

    def settings(self):
        return {"window": self.window}

    @classmethod
    def from_settings(cls, settings):
        return cls(window=str(settings.get("window", "hann")))

    def description(self):
        return f"Time domain ({self.window} window)"


TRANSFORM_KINDS: dict[str, type[Transform]] = {
    cls.kind: cls for cls in (MedianFilter, ExpressionTransform, TimeDomainTransform)
}


def create_transform(kind: str, settings: Mapping[str, Any] | None = None) -> Transform:
    try:
        cls = TRANSFORM_KINDS[kind]
    except KeyError as e:
        raise InvalidTransform(f"Unknown transform kind: {kind!r}") from e
    return cls.from_settings(settings or {})
