# tracemath/core/config.py
from __future__ import annotations

import tempfile
from dataclasses import dataclass, fields
from typing import Any, Mapping

from .exceptions import InvalidConfig

DEFAULT_LOGLEVEL = "INFO"
TEMP_DIR = tempfile.gettempdir()

MIN_MATH_UPDATE_INTERVAL = 0.1  # seconds between two formula evaluation passes
DEFAULT_VELOCITY_FACTOR = 0.66
DEFAULT_REFERENCE_IMPEDANCE = 50.0  # ohm
SPEED_OF_LIGHT = 299792458.0  # m/s


@dataclass(frozen=True, slots=True)
class EngineConfig:
    """
    Settings shared by all traces of a TraceModel.

    - min_update_interval: debounce interval of formula evaluation (seconds)
    - velocity_factor: default velocity factor of new traces
    - reference_impedance: default reference impedance of new traces (ohm)
    - log_level: level used by tracemath.log.start_log()
    """
    min_update_interval: float = MIN_MATH_UPDATE_INTERVAL
    velocity_factor: float = DEFAULT_VELOCITY_FACTOR
    reference_impedance: float = DEFAULT_REFERENCE_IMPEDANCE
    log_level: str = DEFAULT_LOGLEVEL

    def __post_init__(self) -> None:
        if self.min_update_interval < 0:
            raise InvalidConfig("EngineConfig.min_update_interval must be >= 0.")
        if not 0 < self.velocity_factor <= 1:
            raise InvalidConfig("EngineConfig.velocity_factor must be in (0, 1].")
        if self.reference_impedance <= 0:
            raise InvalidConfig("EngineConfig.reference_impedance must be > 0.")
        if not isinstance(self.log_level, str) or not self.log_level.strip():
            raise InvalidConfig("EngineConfig.log_level must be a non-empty string.")

    @classmethod
    def from_mapping(cls, values: Mapping[str, Any]) -> "EngineConfig":
        """Build a config from a mapping; unknown keys are rejected."""
        known = {f.name for f in fields(cls)}
        unknown = set(values) - known
        if unknown:
            raise InvalidConfig(f"Unknown config keys: {sorted(unknown)}")
        return cls(**dict(values))
