# tracemath/core/records.py
"""
Persisted form of a trace.

A record is a plain JSON-compatible dict. The identity hash of a trace is
derived from its record without the hash field: the first four bytes of the
SHA-256 digest of the canonical JSON text, read as an unsigned big-endian
integer. Formula traces reference their sources by these hashes.
"""
from __future__ import annotations

import hashlib
import json
from typing import TYPE_CHECKING, Any, Callable, Mapping

from loguru import logger

from .enums import LiveParameter, MergePolicy, Source
from .exceptions import CoreError, TraceLoadError
from .transforms import create_transform

if TYPE_CHECKING:
    from .trace import Trace

HASH_KEY = "identityHash"

FileLoader = Callable[["Trace", str, int], None]


def canonical_json(record: Mapping[str, Any]) -> str:
    return json.dumps(record, sort_keys=True, separators=(",", ":"))


def hash_record(record: Mapping[str, Any]) -> int:
    body = {k: v for k, v in record.items() if k != HASH_KEY}
    digest = hashlib.sha256(canonical_json(body).encode("utf-8")).digest()
    return int.from_bytes(digest[:4], "big")


def compute_hash(trace: "Trace") -> int:
    return hash_record(to_record(trace, include_hash=False))


def to_record(trace: "Trace", include_hash: bool = True) -> dict[str, Any]:
    if trace.source is Source.CALIBRATION:
        # calibration traces are recreated by the calibration itself
        if include_hash:
            return {HASH_KEY: trace.identity_hash()}
        return {"source": Source.CALIBRATION.value, "name": trace.name}

    record: dict[str, Any] = {
        "name": trace.name,
        "color": trace.color,
        "visible": trace.visible,
        "source": trace.source.value,
    }
    if trace.source is Source.LIVE:
        record["parameter"] = trace.live_parameter.value
        record["mergePolicy"] = trace.merge_policy.value
        record["paused"] = trace.paused
    elif trace.source is Source.FILE:
        record["filename"] = trace.filename
        record["parameterIndex"] = trace.file_parameter
    elif trace.source is Source.MATH:
        record["expression"] = trace.math_formula
        record["sources"] = [
            {"traceHash": src.identity_hash(), "variableName": var}
            for src, var in trace.math_sources.items()
        ]

    record["velocityFactor"] = trace.velocity_factor
    record["isReflection"] = trace.reflection
    record["transforms"] = [
        {"kind": t.kind, "enabled": enabled, "settings": t.settings()}
        for t, enabled in trace.chain.operations
    ]
    record["mathEnabled"] = trace.math_enabled
    if include_hash:
        record[HASH_KEY] = trace.identity_hash()
    return record


def _require(record: Mapping[str, Any], key: str) -> Any:
    try:
        return record[key]
    except KeyError as e:
        raise TraceLoadError(f"Trace record is missing '{key}'") from e


def apply_record(
    trace: "Trace",
    record: Mapping[str, Any],
    file_loader: FileLoader | None = None,
) -> None:
    """
    Restore a freshly created trace from `record`.

    Math sources are looked up by hash in the trace's model; references that
    cannot be matched yet are kept in `trace.unresolved_sources` for a later
    resolve pass. Raises TraceLoadError on malformed records.
    """
    if "source" not in record and HASH_KEY in record:
        trace.set_calibration()
        trace.restore_hash(record[HASH_KEY])
        return

    try:
        source = Source(_require(record, "source"))
    except ValueError as e:
        raise TraceLoadError(f"Unknown trace source {record['source']!r}") from e

    try:
        trace.name = _require(record, "name")
        trace.color = record.get("color", trace.color)
        trace.visible = bool(record.get("visible", True))

        if source is Source.LIVE:
            trace.from_live(
                MergePolicy(record.get("mergePolicy", MergePolicy.OVERWRITE.value)),
                LiveParameter(record.get("parameter", LiveParameter.S11.value)),
            )
            if record.get("paused", False):
                trace.pause()
        elif source is Source.FILE:
            filename = _require(record, "filename")
            if file_loader is None:
                raise TraceLoadError(f"No loader available for file trace '{filename}'")
            file_loader(trace, filename, int(record.get("parameterIndex", 0)))
        elif source is Source.MATH:
            trace.from_math()
            trace.math_formula = record.get("expression", "")
            for entry in record.get("sources", []):
                trace_hash = int(_require(entry, "traceHash"))
                variable = _require(entry, "variableName")
                if not trace.add_math_source_by_hash(trace_hash, variable):
                    trace.unresolved_sources[trace_hash] = variable
        else:
            trace.set_calibration()

        trace.velocity_factor = float(record.get("velocityFactor", trace.velocity_factor))
        trace.reflection = bool(record.get("isReflection", trace.reflection))

        for entry in record.get("transforms", []):
            index = trace.add_operation(
                create_transform(_require(entry, "kind"), entry.get("settings"))
            )
            if not entry.get("enabled", True):
                trace.enable_operation(index, False)
        trace.enable_math(bool(record.get("mathEnabled", True)))
    except TraceLoadError:
        raise
    except (CoreError, ValueError, TypeError) as e:
        raise TraceLoadError(f"Failed to restore trace '{trace.name}': {e}") from e

    if HASH_KEY in record:
        trace.restore_hash(record[HASH_KEY])
    logger.debug("Restored {} trace '{}'", source.value, trace.name)
