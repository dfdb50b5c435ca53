"""Client-side folding of push events into dashboard state."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional, Tuple

from app.schemas import ReadingSchema
from models.events import (
    ConnectionStatusEvent,
    HistoricalDataEvent,
    PushEvent,
    SensorDataEvent,
)

CHART_CAPACITY = 20
HISTORY_CAPACITY = 100


def time_label(timestamp: datetime) -> str:
    """Local wall-clock time used as a chart axis label."""
    return timestamp.astimezone().strftime("%H:%M:%S")


@dataclass
class RollingWindowConsumer:
    """Latest reading, a capped history list and four lock-step chart buffers.

    ``history`` is newest first. The chart buffers read oldest to newest and
    always have the same length, at most ``chart_capacity``.
    """

    chart_capacity: int = CHART_CAPACITY
    history_capacity: int = HISTORY_CAPACITY
    latest: Optional[ReadingSchema] = None
    history: List[ReadingSchema] = field(default_factory=list)
    labels: List[str] = field(default_factory=list)
    dht_series: List[float] = field(default_factory=list)
    lm35_series: List[float] = field(default_factory=list)
    led_series: List[int] = field(default_factory=list)
    mqtt_connected: bool = False

    def apply(self, event: PushEvent) -> None:
        if isinstance(event, SensorDataEvent):
            self._on_sensor_data(event.data)
        elif isinstance(event, HistoricalDataEvent):
            self._on_historical_data(event.data)
        elif isinstance(event, ConnectionStatusEvent):
            self.mqtt_connected = event.connected

    def chart_points(self) -> List[Tuple[str, float, float, int]]:
        return list(zip(self.labels, self.dht_series, self.lm35_series, self.led_series))

    def _on_sensor_data(self, reading: ReadingSchema) -> None:
        self.latest = reading
        self.history = [reading, *self.history[: self.history_capacity - 1]]

        self._append_point(reading)
        if len(self.labels) > self.chart_capacity:
            del self.labels[0]
            del self.dht_series[0]
            del self.lm35_series[0]
            del self.led_series[0]

    def _on_historical_data(self, readings: List[ReadingSchema]) -> None:
        self.history = list(readings)

        self.labels = []
        self.dht_series = []
        self.lm35_series = []
        self.led_series = []
        for reading in reversed(readings[: self.chart_capacity]):
            self._append_point(reading)

        if readings:
            self.latest = readings[0]

    def _append_point(self, reading: ReadingSchema) -> None:
        self.labels.append(time_label(reading.timestamp))
        self.dht_series.append(reading.dht_temperature)
        self.lm35_series.append(reading.lm35_temperature)
        self.led_series.append(reading.led_level)
