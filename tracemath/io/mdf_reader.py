from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Iterable, List, Protocol

from asammdf import MDF  # pivotal dependency for MDF file handling
import numpy as np


@dataclass
class RawChannelInfo:
    """
    Metadata + lazy loader for one data channel of an MDF file.

    Master (time base) channels are never exposed; every data channel is
    read together with the timestamps of its group.
    """

    name: str                  # "S11", "eng_spd", ...
    unit: str | None
    n_samples: int
    # MDF identifiers
    group_index: int           # group id inside the MDF
    channel_index: int         # channel id inside the group

    # Lazy loader: when called, reads ONLY this channel
    loader: Callable[[], tuple["np.ndarray", "np.ndarray"]]
    # -> (timestamps, samples)

    def load(self) -> tuple[np.ndarray, np.ndarray]:
        """Read the channel; returns (coordinates, values) as float64 / numeric arrays."""
        t, v = self.loader()
        t = np.asarray(t, dtype=np.float64)
        v = np.asarray(v)
        if not np.iscomplexobj(v):
            v = v.astype(np.float64)
        return t, v


@dataclass
class RawChannelData:
    time: "np.ndarray"
    values: "np.ndarray"


class MdfReader(Protocol):
    """Protocol for MDF readers used by the trace importers."""

    def list_channels(self) -> List[RawChannelInfo]:
        ...

    def read_channels(
        self,
        channel_names: Iterable[str],
        start_time: float | None = None,
        end_time: float | None = None,
    ) -> dict[str, RawChannelData]:
        ...


class AsammdfReader:
    """Concrete implementation of MdfReader using asammdf.MDF.

    Channels are listed in file order (group by group); this order is the
    `parameter` index persisted for file traces. When a name occurs in more
    than one group, the first occurrence wins for name lookups.
    """

    def __init__(self, path: str):
        self._mdf = MDF(path)
        self._channels: list[RawChannelInfo] = []
        self._by_name: dict[str, RawChannelInfo] = {}
        self._build_index()

    def __enter__(self) -> "AsammdfReader":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def close(self) -> None:
        self._mdf.close()

    # ------------------------------------------------------------------
    # Index construction
    # ------------------------------------------------------------------
    def _build_index(self) -> None:
        masters = getattr(self._mdf, "masters_db", {}) or {}

        for group_index, group in enumerate(self._mdf.groups):
            n_samples = int(getattr(group.channel_group, "cycles_nr", 0))
            for channel_index, channel in enumerate(group.channels):
                if masters.get(group_index) == channel_index:
                    continue

                def make_loader(g_i: int = group_index, c_i: int = channel_index):
                    def _loader() -> tuple[np.ndarray, np.ndarray]:
                        sig = self._mdf.get(group=g_i, index=c_i)
                        # asammdf Signal interface: timestamps & samples
                        return sig.timestamps, sig.samples

                    return _loader

                info = RawChannelInfo(
                    name=channel.name,
                    unit=getattr(channel, "unit", None) or None,
                    n_samples=n_samples,
                    group_index=group_index,
                    channel_index=channel_index,
                    loader=make_loader(),
                )
                self._channels.append(info)
                self._by_name.setdefault(info.name, info)

    # ------------------------------------------------------------------
    # MdfReader protocol implementation
    # ------------------------------------------------------------------
    def list_channels(self) -> List[RawChannelInfo]:
        return list(self._channels)

    def channel(self, index: int) -> RawChannelInfo:
        if not 0 <= index < len(self._channels):
            raise IndexError(
                f"Channel index {index} out of range ({len(self._channels)} data channels)"
            )
        return self._channels[index]

    def read_channels(
        self,
        channel_names: Iterable[str],
        start_time: float | None = None,
        end_time: float | None = None,
    ) -> dict[str, RawChannelData]:
        """Read multiple channels by name.

        Parameters
        ----------
        channel_names:
            Iterable of channel names.
        start_time, end_time:
            Optional window on the master axis (inclusive).
        """
        result: dict[str, RawChannelData] = {}

        for name in channel_names:
            if name not in self._by_name:
                raise KeyError(f"Channel '{name}' not found in MDF")

            t, v = self._by_name[name].load()

            if start_time is not None or end_time is not None:
                mask = np.ones_like(t, dtype=bool)
                if start_time is not None:
                    mask &= t >= start_time
                if end_time is not None:
                    mask &= t <= end_time
                t = t[mask]
                v = v[mask]

            result[name] = RawChannelData(time=t, values=v)

        return result
