# tracemath/core/__init__.py
"""
Core trace math and dependency engine.

- Trace: named series of (coordinate, complex value) samples
- SampleStore: coordinate-sorted sample container with merge policies
- TransformChain: enable/disable-able operations after the raw samples
- FormulaEngine: debounced evaluation of an expression over other traces
- DependencyGraph: source edges between traces (acyclic, one domain per consumer)
- TraceModel: owning collection, persistence by identity hash

The core layer does not read files; importers live in tracemath.io.
"""

from .config import EngineConfig
from .enums import Domain, Source, MergePolicy, LiveParameter
from .samplestore import Sample, SampleStore
from .interpolation import UNDEFINED, index_for_coordinate, interpolated_value, interpolated_values
from .events import Event, EventBus, EventKind, Subscription
from .scheduling import Scheduler, PollingScheduler, ManualScheduler, AsyncioScheduler, Debouncer
from .expression import Expression, parse
from .transforms import (
    Transform,
    MedianFilter,
    ExpressionTransform,
    TimeDomainTransform,
    TRANSFORM_KINDS,
    create_transform,
)
from .chain import TransformChain, TransformNode
from .graph import DependencyGraph, depends_on, check_source, can_add_source, add_source, remove_source
from .formula import FormulaEngine
from .trace import Trace
from .model import TraceModel
from .records import to_record, apply_record, compute_hash, canonical_json
from .exceptions import (
    CoreError,
    InvalidSamples,
    InvalidTrace,
    InvalidTransform,
    InvalidConfig,
    TraceLoadError,
    TraceNotFound,
    DependencyError,
    DomainMismatch,
    CyclicDependency,
    UnresolvedSourceReference,
    ExpressionError,
    ParseError,
    EvalError,
    OutOfRangeEvaluation,
)


__all__ = [
    # config
    "EngineConfig",

    # enums
    "Domain",
    "Source",
    "MergePolicy",
    "LiveParameter",

    # samples
    "Sample",
    "SampleStore",
    "UNDEFINED",
    "index_for_coordinate",
    "interpolated_value",
    "interpolated_values",

    # events / scheduling
    "Event",
    "EventBus",
    "EventKind",
    "Subscription",
    "Scheduler",
    "PollingScheduler",
    "ManualScheduler",
    "AsyncioScheduler",
    "Debouncer",

    # math
    "Expression",
    "parse",
    "Transform",
    "MedianFilter",
    "ExpressionTransform",
    "TimeDomainTransform",
    "TRANSFORM_KINDS",
    "create_transform",
    "TransformChain",
    "TransformNode",
    "FormulaEngine",

    # graph
    "DependencyGraph",
    "depends_on",
    "check_source",
    "can_add_source",
    "add_source",
    "remove_source",

    # domain objects
    "Trace",
    "TraceModel",

    # persistence
    "to_record",
    "apply_record",
    "compute_hash",
    "canonical_json",

    # exceptions
    "CoreError",
    "InvalidSamples",
    "InvalidTrace",
    "InvalidTransform",
    "InvalidConfig",
    "TraceLoadError",
    "TraceNotFound",
    "DependencyError",
    "DomainMismatch",
    "CyclicDependency",
    "UnresolvedSourceReference",
    "ExpressionError",
    "ParseError",
    "EvalError",
    "OutOfRangeEvaluation",
]
