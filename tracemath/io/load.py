# tracemath/io/load.py
from __future__ import annotations

from pathlib import Path
from typing import Callable

from loguru import logger

from tracemath.io.mdf_reader import AsammdfReader
from tracemath.core import Domain, EngineConfig, Trace, TraceLoadError, TraceModel, UnresolvedSourceReference


def fill_trace_from_mdf(trace: Trace, path: str, parameter: int = 0) -> None:
    """Turn `trace` into a File trace holding data channel number `parameter` of an MDF file."""
    try:
        reader = AsammdfReader(str(path))
    except OSError as e:
        raise TraceLoadError(f"Cannot open MDF file {path}: {e}") from e

    with reader:
        try:
            raw_ch = reader.channel(parameter)
        except IndexError as e:
            raise TraceLoadError(str(e)) from e
        t, v = raw_ch.load()

    trace.fill_from_rows(
        zip(t, v),
        Domain.TIME,
        filename=str(path),
        parameter=parameter,
        reflection=False,
    )
    logger.info("Loaded '{}' ({} samples) from {}", raw_ch.name, trace.sample_count, path)


def load_mdf_traces(path: str, model: TraceModel | None = None) -> list[Trace]:
    """Create one File trace per data channel of an MDF file."""
    model = model if model is not None else TraceModel()
    with AsammdfReader(str(path)) as reader:
        raw_channels = reader.list_channels()
        traces = []
        for index, raw_ch in enumerate(raw_channels):
            t, v = raw_ch.load()
            trace = model.create(name=raw_ch.name)
            trace.fill_from_rows(zip(t, v), Domain.TIME, filename=str(path), parameter=index)
            traces.append(trace)
    return traces


FILE_LOADERS: dict[str, Callable[[Trace, str, int], None]] = {
    ".mf4": fill_trace_from_mdf,
    ".mdf": fill_trace_from_mdf,
}


def load_trace_file(trace: Trace, filename: str, parameter: int) -> None:
    """File loader for setup files: pick the importer by file suffix."""
    suffix = Path(filename).suffix.lower()
    loader = FILE_LOADERS.get(suffix)
    if loader is None:
        raise TraceLoadError(f"No importer for '{suffix}' files ({filename})")
    loader(trace, filename, parameter)


def save_setup(model: TraceModel, path: str) -> Path:
    return model.save(path)


def load_setup(
    path: str,
    config: EngineConfig | None = None,
) -> tuple[TraceModel, list[UnresolvedSourceReference]]:
    model = TraceModel(config)
    unresolved = model.load(path, file_loader=load_trace_file)
    return model, unresolved
