# tracemath/core/graph.py
"""
Formula source graph.

Edges are owned by the consuming trace (its FormulaEngine maps source traces
to variable names); this module holds the rules every new edge must satisfy
and a model-wide read-only view of all edges.

Rules for adding `candidate` as a source of `consumer`:
- a trace is never its own source
- `candidate` must not (transitively) depend on `consumer`
- all sources of one consumer share the same output domain
"""
from __future__ import annotations

from collections import deque
from typing import TYPE_CHECKING, Callable, Iterable

from .exceptions import CyclicDependency, DependencyError, DomainMismatch

if TYPE_CHECKING:
    from .trace import Trace


def depends_on(trace: "Trace", target: "Trace", *, direct_only: bool = False) -> bool:
    """True if `target` is a source of `trace` (directly or through other sources)."""
    sources = trace.math_sources
    if target in sources:
        return True
    if direct_only:
        return False
    # no memo: the graph is acyclic by construction, so plain DFS terminates
    return any(depends_on(s, target) for s in sources)


def check_source(consumer: "Trace", candidate: "Trace") -> None:
    """Raise CyclicDependency / DomainMismatch if the edge is not allowed."""
    if candidate is consumer:
        raise CyclicDependency(f"Trace '{consumer.name}' cannot be a source of itself.")
    if depends_on(candidate, consumer):
        raise CyclicDependency(
            f"Trace '{candidate.name}' depends on '{consumer.name}'; "
            "using it as a source would create a loop."
        )
    existing = [s for s in consumer.math_sources if s is not candidate]
    if existing:
        domain = existing[0].output_domain
        if candidate.output_domain != domain:
            raise DomainMismatch(
                f"Trace '{candidate.name}' is in the {candidate.output_domain.value} domain, "
                f"the sources of '{consumer.name}' are in the {domain.value} domain."
            )


def can_add_source(consumer: "Trace", candidate: "Trace") -> bool:
    try:
        check_source(consumer, candidate)
    except DependencyError:
        return False
    return True


def add_source(consumer: "Trace", source: "Trace", variable: str) -> bool:
    return consumer.add_math_source(source, variable)


def remove_source(consumer: "Trace", source: "Trace") -> None:
    consumer.remove_math_source(source)


class DependencyGraph:
    """Read-only view of the source edges between a collection of traces."""

    def __init__(self, traces: Callable[[], Iterable["Trace"]]) -> None:
        self._traces = traces

    def sources_of(self, trace: "Trace") -> dict["Trace", str]:
        return trace.math_sources

    def consumers_of(self, source: "Trace") -> list["Trace"]:
        return [t for t in self._traces() if source in t.math_sources]

    def edges(self) -> list[tuple["Trace", "Trace", str]]:
        """(source, consumer, variable) for every binding."""
        return [
            (src, t, var)
            for t in self._traces()
            for src, var in t.math_sources.items()
        ]

    def evaluation_order(self) -> list["Trace"]:
        """Traces ordered so that every source comes before its consumers."""
        traces = list(self._traces())
        members = set(traces)
        indegree = {t: sum(1 for s in t.math_sources if s in members) for t in traces}
        queue = deque(t for t in traces if indegree[t] == 0)
        order: list["Trace"] = []
        while queue:
            current = queue.popleft()
            order.append(current)
            for consumer in traces:
                if current in consumer.math_sources:
                    indegree[consumer] -= 1
                    if indegree[consumer] == 0:
                        queue.append(consumer)
        return order
