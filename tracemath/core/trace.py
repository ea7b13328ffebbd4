# tracemath/core/trace.py
from __future__ import annotations

from typing import TYPE_CHECKING, Any, Iterable

import numpy as np
from loguru import logger

from . import records
from .chain import TransformChain
from .config import SPEED_OF_LIGHT, EngineConfig
from .enums import Domain, LiveParameter, MergePolicy, Source
from .events import Event, EventBus, EventKind
from .exceptions import InvalidTrace
from .formula import FormulaEngine
from .graph import can_add_source, depends_on
from .samplestore import Sample, SampleStore
from .scheduling import PollingScheduler, Scheduler
from .transforms import Transform

if TYPE_CHECKING:
    from .model import TraceModel


def _row_value(value: Any) -> complex:
    """Accept complex, real, or (real, imag) row values from file importers."""
    if isinstance(value, (tuple, list)):
        if len(value) != 2:
            raise InvalidTrace(f"Row value must be (real, imag), got {value!r}")
        return complex(float(value[0]), float(value[1]))
    return complex(value)


class Trace:
    """
    A named series of (coordinate, complex value) samples.

    The samples come from exactly one of live acquisition (add_data), a
    one-shot file import (fill_from_rows) or a formula over other traces
    (from_math). What consumers see is the output of the transform chain,
    whose identity node wraps the raw SampleStore.

    Changes are announced on `events`; formula traces observe their sources
    there. Every setter of a persisted field drops the cached identity hash.
    """

    def __init__(
        self,
        name: str = "Trace",
        color: str = "yellow",
        live_parameter: LiveParameter = LiveParameter.S11,
        *,
        config: EngineConfig | None = None,
        scheduler: Scheduler | None = None,
    ) -> None:
        if not isinstance(name, str):
            raise InvalidTrace("Trace.name must be a string.")
        cfg = config if config is not None else EngineConfig()
        self.model: "TraceModel | None" = None
        self.events = EventBus()

        self._name = name
        self._color = color
        self._visible = True
        self._source = Source.LIVE
        self._domain = Domain.FREQUENCY
        self._live_parameter = live_parameter
        self._merge_policy = MergePolicy.OVERWRITE
        self._filename = ""
        self._file_parameter = 0
        self._velocity_factor = cfg.velocity_factor
        self._reflection = True
        self._paused = False
        self._reference_impedance = cfg.reference_impedance

        self.error: str | None = None
        self.warning: str | None = None
        self._hash: int | None = None
        self.unresolved_sources: dict[int, str] = {}

        self.samples = SampleStore(self._merge_policy)
        self.chain = TransformChain(
            self.samples,
            lambda: self._domain,
            on_output_changed=self._chain_output_changed,
            on_type_changed=self._chain_type_changed,
        )
        self.formula = FormulaEngine(
            self,
            scheduler if scheduler is not None else PollingScheduler(),
            cfg.min_update_interval,
        )

    def __repr__(self) -> str:
        return f"Trace(name={self._name!r}, source={self._source.value}, n={self.sample_count})"

    # ---- model membership ----
    def attach(self, model: "TraceModel") -> None:
        self.model = model
        self.formula.set_scheduler(model.scheduler, model.config.min_update_interval)

    def detach(self) -> None:
        """First phase of deletion: let consumers drop their edges to this trace."""
        self.events.publish(Event(EventKind.DELETED, self))
        self.formula.clear_sources()
        self.formula.cancel()

    # ---- notifications ----
    def _emit(self, kind: EventKind, begin: int = 0, end: int = 0) -> None:
        self.events.publish(Event(kind, self, begin, end))

    def _changed(self) -> None:
        self._hash = None
        # formula traces embed their sources' hashes in their own
        if self.model is not None:
            for consumer in self.model.graph.consumers_of(self):
                consumer._changed()

    def _chain_output_changed(self, begin: int, end: int) -> None:
        self._emit(EventKind.DATA_CHANGED, begin, end)

    def _chain_type_changed(self) -> None:
        self._emit(EventKind.TYPE_CHANGED)

    def raw_samples_changed(self, begin: int, end: int) -> None:
        """The SampleStore changed over [begin, end); run it through the chain."""
        self.chain.input_changed(begin, end)

    def set_error(self, message: str) -> None:
        if self.error != message:
            logger.warning("Trace '{}': {}", self._name, message)
            self.error = message
            self._emit(EventKind.STATUS_CHANGED)

    def set_warning(self, message: str) -> None:
        if self.warning != message:
            self.warning = message
            self._emit(EventKind.STATUS_CHANGED)

    def set_ok(self) -> None:
        if self.error is not None or self.warning is not None:
            self.error = None
            self.warning = None
            self._emit(EventKind.STATUS_CHANGED)

    # ---- persisted attributes ----
    @property
    def name(self) -> str:
        return self._name

    @name.setter
    def name(self, name: str) -> None:
        if not isinstance(name, str):
            raise InvalidTrace("Trace.name must be a string.")
        if name != self._name:
            self._name = name
            self._changed()
            self._emit(EventKind.NAME_CHANGED)

    @property
    def color(self) -> str:
        return self._color

    @color.setter
    def color(self, color: str) -> None:
        if color != self._color:
            self._color = color
            self._changed()
            self._emit(EventKind.COLOR_CHANGED)

    @property
    def visible(self) -> bool:
        return self._visible

    @visible.setter
    def visible(self, visible: bool) -> None:
        if visible != self._visible:
            self._visible = bool(visible)
            self._changed()
            self._emit(EventKind.VISIBILITY_CHANGED)

    @property
    def velocity_factor(self) -> float:
        return self._velocity_factor

    @velocity_factor.setter
    def velocity_factor(self, v: float) -> None:
        if not 0 < v <= 1:
            raise InvalidTrace("Trace.velocity_factor must be in (0, 1].")
        self._velocity_factor = float(v)
        self._changed()

    @property
    def reflection(self) -> bool:
        return self._reflection

    @reflection.setter
    def reflection(self, value: bool) -> None:
        self._reflection = bool(value)
        self._changed()

    @property
    def domain(self) -> Domain:
        return self._domain

    @domain.setter
    def domain(self, domain: Domain) -> None:
        if domain is not self._domain:
            self.samples.clear()
            self._domain = domain
            self._changed()
            self._emit(EventKind.CLEARED)
            self.chain.refresh()

    @property
    def merge_policy(self) -> MergePolicy:
        return self._merge_policy

    @merge_policy.setter
    def merge_policy(self, policy: MergePolicy) -> None:
        self._merge_policy = policy
        self.samples.merge_policy = policy if self._source is Source.LIVE else MergePolicy.OVERWRITE
        self._changed()

    @property
    def live_parameter(self) -> LiveParameter:
        return self._live_parameter

    @property
    def source(self) -> Source:
        return self._source

    @property
    def filename(self) -> str:
        return self._filename

    @property
    def file_parameter(self) -> int:
        return self._file_parameter

    @property
    def reference_impedance(self) -> float:
        return self._reference_impedance

    @property
    def paused(self) -> bool:
        return self._paused

    @property
    def scheduler(self) -> Scheduler:
        """
        Timer source for debounced formula passes.

        Outside a model this is a private PollingScheduler unless one was
        passed in; the host loop must call its run_pending().
        """
        return self.formula.scheduler

    # ---- population ----
    def clear(self, force: bool = False) -> None:
        if self._paused and not force:
            return
        self.samples.clear()
        self.set_warning("No data")
        self._emit(EventKind.CLEARED)
        self.raw_samples_changed(0, 0)

    def add_data(
        self,
        sample: Sample,
        domain: Domain,
        reference_impedance: float = 50.0,
        index: int | None = None,
    ) -> tuple[int, int] | None:
        """Live ingestion of one sample; returns the touched index range."""
        if self._paused:
            return None
        if domain is not self._domain:
            self.clear(force=True)
            self._domain = domain
            self._emit(EventKind.TYPE_CHANGED)
        begin, end = self.samples.upsert(sample, index)
        if reference_impedance != self._reference_impedance:
            self._reference_impedance = reference_impedance
            self._emit(EventKind.TYPE_CHANGED)
        self.set_ok()
        self.raw_samples_changed(begin, end)
        return begin, end

    def fill_from_rows(
        self,
        rows: Iterable[tuple[float, Any]],
        domain: Domain = Domain.FREQUENCY,
        *,
        filename: str = "",
        parameter: int = 0,
        reflection: bool = False,
        reference_impedance: float | None = None,
    ) -> None:
        """One-shot import of (coordinate, value) rows; the trace becomes a File trace."""
        rows = list(rows)
        x = np.asarray([float(r[0]) for r in rows], dtype=np.float64)
        y = np.asarray([_row_value(r[1]) for r in rows], dtype=np.complex128)
        order = np.argsort(x, kind="stable")
        x, y = x[order], y[order]
        # a later row at the same coordinate replaces an earlier one
        keep = np.append(x[1:] != x[:-1], True) if x.size else np.empty(0, dtype=bool)
        imported = SampleStore.from_arrays(x[keep], y[keep])

        self.formula.clear_sources()
        self.formula.cancel()
        self._domain = domain
        self._source = Source.FILE
        self.samples.merge_policy = MergePolicy.OVERWRITE
        self.samples.assign(*imported.to_numpy())
        self._filename = filename
        self._file_parameter = int(parameter)
        self._reflection = bool(reflection)
        if reference_impedance is not None:
            self._reference_impedance = float(reference_impedance)
        self._changed()
        self.set_ok()
        self._emit(EventKind.TYPE_CHANGED)
        self.raw_samples_changed(0, self.samples.n)

    def from_live(
        self,
        policy: MergePolicy = MergePolicy.OVERWRITE,
        parameter: LiveParameter = LiveParameter.S11,
    ) -> None:
        self.formula.clear_sources()
        self.formula.cancel()
        self._source = Source.LIVE
        self._live_parameter = parameter
        self._reflection = parameter.is_reflection
        self.merge_policy = policy
        self._emit(EventKind.TYPE_CHANGED)

    def from_math(self) -> None:
        self._source = Source.MATH
        self.samples.merge_policy = MergePolicy.OVERWRITE
        self.clear(force=True)
        self.formula.reset_range()
        self.formula.update_grid()
        self.formula.schedule_all()
        self._changed()
        self._emit(EventKind.TYPE_CHANGED)

    def set_calibration(self) -> None:
        self._source = Source.CALIBRATION
        self._changed()

    # ---- formula ----
    @property
    def math_formula(self) -> str:
        return self.formula.expression

    @math_formula.setter
    def math_formula(self, text: str) -> None:
        self.formula.set_expression(text)
        self._changed()

    @property
    def math_sources(self) -> dict["Trace", str]:
        return dict(self.formula.sources)

    def source_variable(self, trace: "Trace") -> str | None:
        return self.formula.variable_of(trace)

    def depends_on(self, trace: "Trace", direct_only: bool = False) -> bool:
        return depends_on(self, trace, direct_only=direct_only)

    def can_add_math_source(self, trace: "Trace") -> bool:
        return can_add_source(self, trace)

    def add_math_source(self, trace: "Trace", variable: str) -> bool:
        added = self.formula.add_source(trace, variable)
        if added:
            self._changed()
        return added

    def add_math_source_by_hash(self, trace_hash: int, variable: str) -> bool:
        if self.model is None:
            return False
        candidate = self.model.by_hash(trace_hash, exclude=self)
        if candidate is None:
            return False
        return self.add_math_source(candidate, variable)

    def remove_math_source(self, trace: "Trace") -> None:
        self.formula.remove_source(trace)
        self._changed()

    def clear_math_sources(self) -> None:
        self.formula.clear_sources()
        self._changed()

    def math_formula_valid(self) -> bool:
        return self.formula.is_valid()

    def resolve_math_source_hashes(self) -> bool:
        """Retry persisted source references that could not be matched at load time."""
        # bindings come from the persisted record, so cached hashes stay valid
        if self.model is None:
            return not self.unresolved_sources
        for trace_hash, variable in list(self.unresolved_sources.items()):
            candidate = self.model.by_hash(trace_hash, exclude=self)
            if candidate is not None and self.formula.add_source(candidate, variable):
                del self.unresolved_sources[trace_hash]
        return not self.unresolved_sources

    # ---- pause ----
    def can_be_paused(self) -> bool:
        if self._source is Source.LIVE:
            return True
        if self._source is Source.MATH:
            # a formula trace may pause if any of its inputs is live data
            return any(s.can_be_paused() for s in self.formula.sources)
        return False

    def pause(self) -> None:
        if not self._paused:
            self._paused = True
            self._changed()
            self._emit(EventKind.PAUSE_CHANGED)

    def resume(self) -> None:
        if self._paused:
            self._paused = False
            self._changed()
            self._emit(EventKind.PAUSE_CHANGED)
            if self._source is Source.MATH:
                self.formula.resume()

    # ---- transform chain ----
    def add_operation(self, transform: Transform) -> int:
        index = self.chain.append(transform)
        self._changed()
        return index

    def add_operations(self, transforms: Iterable[Transform]) -> None:
        self.chain.extend(transforms)
        self._changed()

    def remove_operation(self, index: int) -> Transform:
        transform = self.chain.remove(index)
        self._changed()
        return transform

    def enable_operation(self, index: int, enable: bool = True) -> None:
        self.chain.set_enabled(index, enable)
        self._changed()

    def swap_operations(self, index: int) -> None:
        self.chain.swap(index)
        self._changed()

    def enable_math(self, enable: bool = True) -> None:
        self.chain.set_math_enabled(enable)
        self._changed()

    @property
    def math_enabled(self) -> bool:
        return self.chain.math_enabled

    @property
    def has_operations(self) -> bool:
        return self.chain.has_operations

    # ---- output (last enabled chain node) ----
    def __len__(self) -> int:
        return self.chain.sample_count

    @property
    def sample_count(self) -> int:
        return self.chain.sample_count

    @property
    def output_domain(self) -> Domain:
        return self.chain.output_domain

    @property
    def min_x(self) -> float | None:
        return self.chain.min_x

    @property
    def max_x(self) -> float | None:
        return self.chain.max_x

    def sample_at(self, index: int) -> Sample:
        return self.chain.sample_at(index)

    def interpolated_at(self, x: float) -> complex:
        return self.chain.interpolated_at(x)

    def interpolated_many(self, xs: np.ndarray) -> np.ndarray:
        return self.chain.interpolated_many(xs)

    def index_of(self, x: float) -> int:
        return self.chain.index_of(x)

    def to_numpy(self, *, copy: bool = False) -> tuple[np.ndarray, np.ndarray]:
        x, y = self.chain.coordinates, self.chain.values
        if copy:
            return x.copy(), y.copy()
        return x, y

    def find_extremum(self, maximum: bool = True) -> float | None:
        """Coordinate of the sample with the largest (or smallest) magnitude."""
        x, y = self.to_numpy()
        if x.size == 0:
            return None
        mag = np.abs(y)
        idx = int(np.nanargmax(mag) if maximum else np.nanargmin(mag))
        return float(x[idx])

    # ---- distance conversion ----
    def time_to_distance(self, time: float) -> float:
        distance = time * SPEED_OF_LIGHT * self._velocity_factor
        if self._reflection:
            distance /= 2.0
        return distance

    def distance_to_time(self, distance: float) -> float:
        time = distance / (SPEED_OF_LIGHT * self._velocity_factor)
        if self._reflection:
            time *= 2.0
        return time

    # ---- persistence ----
    def identity_hash(self, force: bool = False) -> int:
        if self._hash is None or force:
            self._hash = records.compute_hash(self)
        return self._hash

    def restore_hash(self, trace_hash: int) -> None:
        self._hash = int(trace_hash)

    def to_record(self) -> dict[str, Any]:
        return records.to_record(self)
