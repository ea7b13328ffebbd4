# tracemath/core/exceptions.py
from __future__ import annotations


class CoreError(Exception):
    """Base error for all core-domain exceptions."""


# ---- Validation / construction errors ----
class InvalidSamples(CoreError):
    """Raised when a SampleStore is built from invalid arrays."""


class InvalidTrace(CoreError):
    """Raised when a Trace is configured with invalid inputs."""


class InvalidTransform(CoreError):
    """Raised for unknown transform kinds, bad settings or bad chain indices."""


class InvalidConfig(CoreError):
    """Raised when an EngineConfig is constructed with invalid inputs."""


class TraceLoadError(CoreError):
    """Raised when a persisted trace record cannot be turned into a Trace."""


# ---- Lookup errors (also behave like KeyError for dict-like APIs) ----
class TraceNotFound(CoreError, KeyError):
    """Raised when a requested trace is not part of the model."""


# ---- Formula sourcing ----
class DependencyError(CoreError):
    """Base error for rejected formula source bindings."""


class DomainMismatch(DependencyError):
    """The candidate source has another axis domain than the existing sources."""


class CyclicDependency(DependencyError):
    """Adding the source would make a trace (transitively) depend on itself."""


class UnresolvedSourceReference(CoreError):
    """A persisted source hash does not match any loaded trace."""

    def __init__(self, consumer: str, trace_hash: int, variable: str) -> None:
        super().__init__(
            f"Trace '{consumer}': source hash {trace_hash} "
            f"(variable '{variable}') not found"
        )
        self.consumer = consumer
        self.trace_hash = trace_hash
        self.variable = variable


# ---- Formula evaluation ----
class ExpressionError(CoreError):
    """Base error of the expression evaluator."""


class ParseError(ExpressionError):
    """The expression text does not compile."""


class EvalError(ExpressionError):
    """The expression compiled but could not be evaluated."""


class OutOfRangeEvaluation(CoreError):
    """A pending evaluation range lies outside the current sample count."""
