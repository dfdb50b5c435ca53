from __future__ import annotations

import itertools
from datetime import datetime, timezone
from threading import Lock
from typing import Callable, Dict, List

from models.records import Reading

DEFAULT_RECENT_LIMIT = 50


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _newest_first(readings: List[Reading]) -> List[Reading]:
    # Equal timestamps fall back to insertion order, later inserts first.
    return sorted(readings, key=lambda reading: (reading.timestamp, reading.id), reverse=True)


class ReadingStore:
    """Process-lifetime store of readings keyed by device.

    Nothing is evicted and nothing survives a restart. Readings are frozen,
    so callers receive the stored instances directly.
    """

    def __init__(self, clock: Callable[[], datetime] = _utc_now) -> None:
        self._clock = clock
        self._ids = itertools.count(1)
        self._readings: Dict[str, List[Reading]] = {}
        self._lock = Lock()

    def append(
        self,
        device_id: str,
        dht_temperature: float,
        lm35_temperature: float,
        led_level: int,
    ) -> Reading:
        with self._lock:
            reading = Reading(
                id=next(self._ids),
                device_id=device_id,
                dht_temperature=dht_temperature,
                lm35_temperature=lm35_temperature,
                led_level=led_level,
                timestamp=self._clock(),
            )
            self._readings.setdefault(device_id, []).append(reading)
        return reading

    def recent(self, device_id: str, limit: int = DEFAULT_RECENT_LIMIT) -> List[Reading]:
        """Return up to ``limit`` readings for the device, newest first."""

        with self._lock:
            readings = list(self._readings.get(device_id, ()))
        return _newest_first(readings)[: max(limit, 0)]

    def by_time_range(self, device_id: str, start: datetime, end: datetime) -> List[Reading]:
        """Return readings with ``start <= timestamp <= end``, newest first."""

        with self._lock:
            readings = [
                reading
                for reading in self._readings.get(device_id, ())
                if start <= reading.timestamp <= end
            ]
        return _newest_first(readings)

    def count(self, device_id: str) -> int:
        with self._lock:
            return len(self._readings.get(device_id, ()))
