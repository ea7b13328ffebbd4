# tracemath/core/enums.py
from __future__ import annotations

from enum import Enum


class Domain(Enum):
    """Semantics of a trace's coordinate axis."""

    FREQUENCY = "Frequency"
    TIME = "Time"
    TIME_ZERO_SPAN = "TimeZeroSpan"
    POWER = "Power"


class Source(Enum):
    """Where a trace's samples come from."""

    LIVE = "Live"
    FILE = "File"
    MATH = "Math"
    CALIBRATION = "Calibration"


class MergePolicy(Enum):
    """Resolution of a live write landing on an already occupied coordinate."""

    OVERWRITE = "Overwrite"
    MAX_HOLD = "MaxHold"
    MIN_HOLD = "MinHold"

    @classmethod
    def from_string(cls, s: str) -> "MergePolicy":
        key = s.strip().upper().replace("_", "")
        for policy in cls:
            if policy.value.upper() == key:
                return policy
        raise ValueError(f"Unknown merge policy: {s!r}")


class LiveParameter(Enum):
    """Measured quantity feeding a live trace."""

    S11 = "S11"
    S12 = "S12"
    S21 = "S21"
    S22 = "S22"
    PORT1 = "Port1"
    PORT2 = "Port2"

    @classmethod
    def from_string(cls, s: str) -> "LiveParameter":
        key = s.strip().upper()
        for param in cls:
            if param.value.upper() == key:
                return param
        raise ValueError(f"Unknown live parameter: {s!r}")

    @property
    def is_vna(self) -> bool:
        return self in (LiveParameter.S11, LiveParameter.S12, LiveParameter.S21, LiveParameter.S22)

    @property
    def is_reflection(self) -> bool:
        return self in (LiveParameter.S11, LiveParameter.S22)
