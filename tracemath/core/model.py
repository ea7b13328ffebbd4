# tracemath/core/model.py
from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Iterable, Iterator

from loguru import logger

from .config import EngineConfig
from .enums import LiveParameter
from .exceptions import InvalidTrace, TraceLoadError, TraceNotFound, UnresolvedSourceReference
from .graph import DependencyGraph
from .records import FileLoader, apply_record
from .scheduling import PollingScheduler, Scheduler
from .trace import Trace


class TraceModel:
    """
    Owning collection of traces.

    All traces of a model share one scheduler and one EngineConfig. Removal is
    two-phase: the trace first announces its deletion so consumers drop their
    edges, then it is dropped from the collection.
    """

    def __init__(self, config: EngineConfig | None = None, scheduler: Scheduler | None = None) -> None:
        self.config = config if config is not None else EngineConfig()
        self.scheduler = scheduler if scheduler is not None else PollingScheduler()
        self._traces: list[Trace] = []
        self.graph = DependencyGraph(lambda: list(self._traces))

    def __len__(self) -> int:
        return len(self._traces)

    def __iter__(self) -> Iterator[Trace]:
        return iter(list(self._traces))

    def __getitem__(self, index: int) -> Trace:
        return self._traces[index]

    def __contains__(self, trace: object) -> bool:
        return any(t is trace for t in self._traces)

    @property
    def names(self) -> list[str]:
        return [t.name for t in self._traces]

    # ---- membership ----
    def create(
        self,
        name: str = "Trace",
        color: str = "yellow",
        live_parameter: LiveParameter = LiveParameter.S11,
    ) -> Trace:
        trace = Trace(name, color, live_parameter, config=self.config, scheduler=self.scheduler)
        return self.add(trace)

    def add(self, trace: Trace) -> Trace:
        if trace in self:
            raise InvalidTrace(f"Trace '{trace.name}' is already part of the model.")
        if trace.model is not None and trace.model is not self:
            raise InvalidTrace(f"Trace '{trace.name}' belongs to another model.")
        trace.attach(self)
        self._traces.append(trace)
        logger.debug("Added trace '{}'", trace.name)
        return trace

    def remove(self, trace: Trace) -> None:
        if trace not in self:
            raise TraceNotFound(f"Trace '{trace.name}' is not part of the model.")
        # phase 1: consumers drop their edges while the trace is still alive
        trace.detach()
        # phase 2: free
        self._traces = [t for t in self._traces if t is not trace]
        trace.events.clear()
        trace.model = None
        logger.debug("Removed trace '{}'", trace.name)

    def clear(self) -> None:
        for trace in list(reversed(self.graph.evaluation_order())):
            self.remove(trace)

    # ---- lookup ----
    def find(self, name: str) -> Trace:
        for t in self._traces:
            if t.name == name:
                return t
        raise TraceNotFound(f"Trace not found: {name!r}. Available: {self.names}")

    def get(self, name: str, default: Trace | None = None) -> Trace | None:
        try:
            return self.find(name)
        except TraceNotFound:
            return default

    def by_hash(self, trace_hash: int, exclude: Trace | None = None) -> Trace | None:
        for t in self._traces:
            if t is not exclude and t.identity_hash() == trace_hash:
                return t
        return None

    # ---- persistence ----
    def to_records(self) -> list[dict[str, Any]]:
        # sources before consumers so consumers embed up-to-date source hashes
        for t in self.graph.evaluation_order():
            t.identity_hash(force=True)
        return [t.to_record() for t in self._traces]

    def load_records(
        self,
        records: Iterable[dict[str, Any]],
        file_loader: FileLoader | None = None,
    ) -> list[UnresolvedSourceReference]:
        """
        Append one trace per record.

        Formula sources may reference traces further down the list; those
        references are resolved after all records are loaded. Returns the
        references that still could not be matched.
        """
        loaded: list[Trace] = []
        for record in records:
            trace = self.create()
            try:
                apply_record(trace, record, file_loader)
            except TraceLoadError:
                self.remove(trace)
                raise
            loaded.append(trace)

        unresolved: list[UnresolvedSourceReference] = []
        for trace in loaded:
            if trace.unresolved_sources and not trace.resolve_math_source_hashes():
                for trace_hash, variable in trace.unresolved_sources.items():
                    ref = UnresolvedSourceReference(trace.name, trace_hash, variable)
                    logger.warning("{}", ref)
                    unresolved.append(ref)
        logger.info("Loaded {} traces ({} unresolved sources)", len(loaded), len(unresolved))
        return unresolved

    def save(self, path: str | Path) -> Path:
        path = Path(path)
        path.write_text(json.dumps({"traces": self.to_records()}, indent=2), encoding="utf-8")
        logger.info("Saved {} traces to {}", len(self), path)
        return path

    def load(self, path: str | Path, file_loader: FileLoader | None = None) -> list[UnresolvedSourceReference]:
        path = Path(path)
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            raise TraceLoadError(f"Cannot read setup file {path}: {e}") from e
        if not isinstance(data, dict) or not isinstance(data.get("traces"), list):
            raise TraceLoadError(f"Setup file {path} has no 'traces' list")
        return self.load_records(data["traces"], file_loader)
