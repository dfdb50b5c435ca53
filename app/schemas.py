"""Pydantic schemas for the HTTP API layer and the telemetry payload."""

from __future__ import annotations

from datetime import datetime

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from models.records import MAX_LED_LEVEL, MIN_LED_LEVEL, Reading


class ReadingSchema(BaseModel):
    """Wire representation of a stored reading (camelCase keys)."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    id: int
    device_id: str = Field(..., alias="deviceId")
    dht_temperature: float = Field(..., alias="dhtTemperature")
    lm35_temperature: float = Field(..., alias="lm35Temperature")
    led_level: int = Field(..., alias="ledLevel", ge=MIN_LED_LEVEL, le=MAX_LED_LEVEL)
    timestamp: datetime

    @classmethod
    def from_reading(cls, reading: Reading) -> "ReadingSchema":
        return cls(
            id=reading.id,
            device_id=reading.device_id,
            dht_temperature=reading.dht_temperature,
            lm35_temperature=reading.lm35_temperature,
            led_level=reading.led_level,
            timestamp=reading.timestamp,
        )


class TelemetryPayload(BaseModel):
    """Raw message published by the device on its MQTT topic.

    The firmware field names (``suhuDHT``, ``suhuLM35``, ``LED``) are accepted
    alongside the canonical ones.
    """

    model_config = ConfigDict(strict=True, allow_inf_nan=False)

    temperature_a: float = Field(
        ..., validation_alias=AliasChoices("temperatureA", "suhuDHT")
    )
    temperature_b: float = Field(
        ..., validation_alias=AliasChoices("temperatureB", "suhuLM35")
    )
    alert_level: int = Field(
        ...,
        ge=MIN_LED_LEVEL,
        le=MAX_LED_LEVEL,
        validation_alias=AliasChoices("alertLevel", "LED"),
    )


class ConnectionStatusResponse(BaseModel):
    connected: bool


class ErrorResponse(BaseModel):
    error: str
