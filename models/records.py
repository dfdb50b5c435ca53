"""Domain models shared across services."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

MIN_LED_LEVEL = 0
MAX_LED_LEVEL = 3


@dataclass(frozen=True, slots=True)
class Reading:
    """A single stored sensor observation for a device."""

    id: int
    device_id: str
    dht_temperature: float
    lm35_temperature: float
    led_level: int
    timestamp: datetime

    @property
    def max_temperature(self) -> float:
        return max(self.dht_temperature, self.lm35_temperature)


def alert_status(led_level: int) -> str:
    """Human label for the LED alert level shown on dashboards."""
    if led_level >= 3:
        return "High Temp"
    if led_level >= 2:
        return "Elevated"
    return "Normal"
