from __future__ import annotations

import threading
from collections import deque
from dataclasses import dataclass, replace
from typing import Deque, List

import numpy as np

from .decoder import PartialReading
from .frames import ResponseFormat

PH_MIN = 0.0
PH_MAX = 14.0


class RollingWindow:
    """
    Fixed-capacity FIFO of recent samples.

    ``mean()`` returns 0.0 for an empty window. Callers must read that as
    "no data yet", not as a measured value.
    """

    def __init__(self, capacity: int = 60):
        if capacity < 1:
            raise ValueError("RollingWindow capacity must be at least 1")
        self.capacity = capacity
        self._values: Deque[float] = deque(maxlen=capacity)

    def push(self, value: float) -> None:
        self._values.append(float(value))

    def mean(self) -> float:
        if not self._values:
            return 0.0
        return float(np.mean(np.fromiter(self._values, dtype=float, count=len(self._values))))

    def values(self) -> List[float]:
        return list(self._values)

    def clear(self) -> None:
        self._values.clear()

    def __len__(self) -> int:
        return len(self._values)


@dataclass
class SensorReading:
    """Latest instantaneous values. ph and orp are refreshed on alternate cycles."""

    cf: float = 0.0
    ec: float = 0.0
    tds: float = 0.0
    relative_value: int = 0
    temperature: float = 0.0
    ph: float = 0.0
    orp: int = 0
    last_format: ResponseFormat = ResponseFormat.PH


@dataclass(frozen=True)
class Snapshot:
    reading: SensorReading
    avg_ph: float
    avg_orp: float
    ph_samples: int
    orp_samples: int


class SensorState:
    """Owner of the shared reading and both rolling windows, behind a single lock."""

    def __init__(self, window_size: int = 60):
        self._lock = threading.Lock()
        self._reading = SensorReading()
        self._ph = RollingWindow(window_size)
        self._orp = RollingWindow(window_size)

    def apply(self, partial: PartialReading, *, validate_range: bool = True) -> bool:
        """
        Merge one decoded response. Returns True when a pH sample was outside
        [0, 14] and kept out of the window; the instantaneous pH is still updated.
        """
        rejected = False
        with self._lock:
            reading = self._reading
            reading.cf = partial.cf
            reading.ec = partial.ec
            reading.tds = partial.tds
            reading.relative_value = partial.relative_value
            reading.temperature = partial.temperature
            reading.last_format = partial.fmt
            if partial.fmt is ResponseFormat.PH and partial.ph is not None:
                reading.ph = partial.ph
                if not validate_range or PH_MIN <= partial.ph <= PH_MAX:
                    self._ph.push(partial.ph)
                else:
                    rejected = True
            elif partial.fmt is ResponseFormat.ORP and partial.orp is not None:
                reading.orp = partial.orp
                self._orp.push(partial.orp)
        return rejected

    def reading(self) -> SensorReading:
        with self._lock:
            return replace(self._reading)

    def snapshot(self) -> Snapshot:
        with self._lock:
            return Snapshot(
                reading=replace(self._reading),
                avg_ph=self._ph.mean(),
                avg_orp=self._orp.mean(),
                ph_samples=len(self._ph),
                orp_samples=len(self._orp),
            )

    def ph_values(self) -> List[float]:
        with self._lock:
            return self._ph.values()

    def orp_values(self) -> List[float]:
        with self._lock:
            return self._orp.values()
