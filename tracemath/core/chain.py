# tracemath/core/chain.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, Iterator

import numpy as np

from .enums import Domain
from .exceptions import InvalidTransform
from .interpolation import index_for_coordinate, interpolated_value, interpolated_values
from .samplestore import Sample, SampleStore
from .transforms import Transform


@dataclass(slots=True, eq=False)
class TransformNode:
    """
    One chain position. `transform is None` marks the identity node, whose
    output is the trace's SampleStore. `input` is the index of the nearest
    enabled predecessor and is None while the node is disabled.
    """
    transform: Transform | None
    enabled: bool = True
    input: int | None = None
    x: np.ndarray = field(default_factory=lambda: np.empty(0), repr=False)
    y: np.ndarray = field(default_factory=lambda: np.empty(0, dtype=np.complex128), repr=False)
    domain: Domain | None = None

    @property
    def is_identity(self) -> bool:
        return self.transform is None


class TransformChain:
    """
    Ordered transforms applied after a trace's raw samples.

    Nodes are kept in an owned list and refer to each other by index only.
    The visible output is the last enabled node, found by scanning from the
    tail; the identity node at index 0 is always enabled, so the scan always
    terminates.
    """

    def __init__(
        self,
        store: SampleStore,
        domain: Callable[[], Domain],
        on_output_changed: Callable[[int, int], None] | None = None,
        on_type_changed: Callable[[], None] | None = None,
    ) -> None:
        self._store = store
        self._domain = domain
        self._on_output_changed = on_output_changed
        self._on_type_changed = on_type_changed
        self._nodes: list[TransformNode] = [TransformNode(transform=None)]
        self._math_enabled = True
        self._last = 0
        self._last_domain = domain()

    # ---- structure ----
    def __len__(self) -> int:
        return len(self._nodes)

    def __iter__(self) -> Iterator[TransformNode]:
        return iter(self._nodes)

    def __getitem__(self, index: int) -> TransformNode:
        return self._nodes[index]

    @property
    def operations(self) -> list[tuple[Transform, bool]]:
        return [(n.transform, n.enabled) for n in self._nodes[1:]]

    @property
    def has_operations(self) -> bool:
        return len(self._nodes) > 1

    @property
    def last_enabled(self) -> int:
        return self._last

    @property
    def math_enabled(self) -> bool:
        return self._math_enabled

    def set_math_enabled(self, enable: bool) -> None:
        self._math_enabled = bool(enable)
        self._finish()

    def append(self, transform: Transform) -> int:
        if not isinstance(transform, Transform):
            raise InvalidTransform("append() expects a Transform instance.")
        index = len(self._nodes)
        node = TransformNode(transform=transform, input=self._enabled_before(index))
        self._nodes.append(node)
        self._recompute_from(index)
        self._finish()
        return index

    def extend(self, transforms) -> None:
        for t in transforms:
            self.append(t)

    def remove(self, index: int) -> Transform:
        self._check_operation_index(index)
        if self._nodes[index].enabled:
            self._set_enabled(index, False)
        node = self._nodes.pop(index)
        for n in self._nodes:
            if n.input is not None and n.input > index:
                n.input -= 1
        self._finish()
        return node.transform

    def set_enabled(self, index: int, enabled: bool) -> None:
        if index == 0 and enabled:
            return
        self._check_operation_index(index)
        self._set_enabled(index, enabled)
        self._finish()

    def swap(self, index: int) -> None:
        """Exchange the operations at `index` and `index + 1`."""
        if index < 1 or index + 1 >= len(self._nodes):
            raise InvalidTransform(f"Cannot swap chain positions {index} and {index + 1}")
        first_enabled = self._nodes[index].enabled
        second_enabled = self._nodes[index + 1].enabled
        self._set_enabled(index, False)
        self._set_enabled(index + 1, False)
        self._nodes[index], self._nodes[index + 1] = self._nodes[index + 1], self._nodes[index]
        self._set_enabled(index, second_enabled)
        self._set_enabled(index + 1, first_enabled)
        self._finish()

    # ---- change propagation ----
    def input_changed(self, begin: int, end: int) -> None:
        """Raw samples changed over [begin, end); push the change down the chain."""
        b, e = begin, end
        out_range = (b, e) if self._last == 0 else None
        for i in range(1, len(self._nodes)):
            node = self._nodes[i]
            if not node.enabled:
                continue
            x, y, domain = self._output(node.input)
            if (
                node.transform.incremental
                and node.y.size == y.size
                and node.domain == domain
            ):
                if b < e:
                    node.x[b:e] = x[b:e]
                    b, e = node.transform.apply_range(x, y, node.y, b, e)
            else:
                self._recompute(i)
                b, e = 0, int(node.y.size)
            if i == self._last:
                out_range = (b, e)
        if out_range is None:
            out_range = (0, self.sample_count)
        self._check_type()
        if self._on_output_changed is not None:
            self._on_output_changed(*out_range)

    def refresh(self) -> None:
        """Recompute every node from scratch (e.g. after the domain changed)."""
        self._recompute_from(1)
        self._finish()

    # ---- output accessors ----
    @property
    def coordinates(self) -> np.ndarray:
        return self._output(self._last)[0]

    @property
    def values(self) -> np.ndarray:
        return self._output(self._last)[1]

    @property
    def output_domain(self) -> Domain:
        return self._output(self._last)[2]

    @property
    def sample_count(self) -> int:
        return int(self.coordinates.size)

    def sample_at(self, index: int) -> Sample:
        x, y, _ = self._output(self._last)
        return Sample(float(x[index]), complex(y[index]))

    def interpolated_at(self, x: float) -> complex:
        xs, ys, _ = self._output(self._last)
        return interpolated_value(xs, ys, x)

    def interpolated_many(self, xs: np.ndarray) -> np.ndarray:
        cx, cy, _ = self._output(self._last)
        return interpolated_values(cx, cy, xs)

    def index_of(self, x: float) -> int:
        return index_for_coordinate(self.coordinates, x)

    @property
    def min_x(self) -> float | None:
        xs = self.coordinates
        return None if xs.size == 0 else float(xs[0])

    @property
    def max_x(self) -> float | None:
        xs = self.coordinates
        return None if xs.size == 0 else float(xs[-1])

    # ---- internals ----
    def _check_operation_index(self, index: int) -> None:
        if index < 1 or index >= len(self._nodes):
            raise InvalidTransform(
                f"Chain index {index} out of range (operations are 1..{len(self._nodes) - 1})"
            )

    def _output(self, index: int) -> tuple[np.ndarray, np.ndarray, Domain]:
        if index == 0:
            return self._store.coordinates, self._store.values, self._domain()
        node = self._nodes[index]
        return node.x, node.y, node.domain

    def _enabled_before(self, index: int) -> int:
        i = index - 1
        while i > 0 and not self._nodes[i].enabled:
            i -= 1
        return i

    def _enabled_after(self, index: int) -> int | None:
        for i in range(index + 1, len(self._nodes)):
            if self._nodes[i].enabled:
                return i
        return None

    def _set_enabled(self, index: int, enable: bool) -> None:
        node = self._nodes[index]
        if node.enabled == enable:
            return
        prev_index = self._enabled_before(index)
        next_index = self._enabled_after(index)
        if enable:
            node.input = prev_index
            node.enabled = True
            if next_index is not None:
                self._nodes[next_index].input = index
            self._recompute_from(index)
        else:
            if next_index is not None:
                self._nodes[next_index].input = prev_index
            node.input = None
            node.enabled = False
            node.x = np.empty(0)
            node.y = np.empty(0, dtype=np.complex128)
            node.domain = None
            if next_index is not None:
                self._recompute_from(next_index)

    def _recompute(self, index: int) -> None:
        node = self._nodes[index]
        x, y, domain = self._output(node.input)
        node.x, node.y = node.transform.apply(x, y, domain)
        node.domain = node.transform.output_domain(domain)

    def _recompute_from(self, index: int) -> None:
        for i in range(max(index, 1), len(self._nodes)):
            if self._nodes[i].enabled:
                self._recompute(i)

    def _find_last(self) -> int:
        if not self._math_enabled:
            return 0
        i = len(self._nodes) - 1
        while not self._nodes[i].enabled:
            i -= 1
        return i

    def _check_type(self) -> None:
        domain = self.output_domain
        if domain != self._last_domain:
            self._last_domain = domain
            if self._on_type_changed is not None:
                self._on_type_changed()

    def _finish(self) -> None:
        self._last = self._find_last()
        self._check_type()
        if self._on_output_changed is not None:
            self._on_output_changed(0, self.sample_count)
