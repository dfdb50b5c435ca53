"""Messages exchanged with viewers over the ``/ws`` socket.

Both directions are closed sets keyed by the ``type`` field. Decoding looks
the tag up explicitly, so an unknown tag is reported separately from a
message that is structurally broken.
"""

from __future__ import annotations

import json
from typing import Dict, List, Literal, Optional, Type, TypeVar, Union

from pydantic import BaseModel, Field, ValidationError

from app.schemas import ReadingSchema
from models.records import Reading


class MalformedMessage(ValueError):
    """Raised when a frame is not a well-formed protocol message."""


class UnknownMessageType(ValueError):
    """Raised when a frame carries a ``type`` tag outside the protocol."""

    def __init__(self, tag: str) -> None:
        super().__init__(f"Unknown message type {tag!r}.")
        self.tag = tag


class SensorDataEvent(BaseModel):
    type: Literal["sensor_data"] = "sensor_data"
    data: ReadingSchema

    @classmethod
    def for_reading(cls, reading: Reading) -> "SensorDataEvent":
        return cls(data=ReadingSchema.from_reading(reading))


class HistoricalDataEvent(BaseModel):
    type: Literal["historical_data"] = "historical_data"
    data: List[ReadingSchema] = Field(default_factory=list)

    @classmethod
    def for_readings(cls, readings: List[Reading]) -> "HistoricalDataEvent":
        return cls(data=[ReadingSchema.from_reading(reading) for reading in readings])


class ConnectionStatusEvent(BaseModel):
    type: Literal["connection_status"] = "connection_status"
    connected: bool


class GetHistoricalDataRequest(BaseModel):
    type: Literal["get_historical_data"] = "get_historical_data"
    limit: Optional[int] = Field(default=None, ge=0)


PushEvent = Union[SensorDataEvent, HistoricalDataEvent, ConnectionStatusEvent]
ViewerRequest = GetHistoricalDataRequest

_PUSH_EVENTS: Dict[str, Type[BaseModel]] = {
    "sensor_data": SensorDataEvent,
    "historical_data": HistoricalDataEvent,
    "connection_status": ConnectionStatusEvent,
}
_VIEWER_REQUESTS: Dict[str, Type[BaseModel]] = {
    "get_historical_data": GetHistoricalDataRequest,
}

_M = TypeVar("_M", bound=BaseModel)


def _decode(raw: Union[str, bytes], registry: Dict[str, Type[_M]]) -> _M:
    try:
        payload = json.loads(raw)
    except (TypeError, ValueError) as exc:
        raise MalformedMessage("Frame is not valid JSON.") from exc
    if not isinstance(payload, dict):
        raise MalformedMessage("Frame must be a JSON object.")
    tag = payload.get("type")
    if not isinstance(tag, str):
        raise MalformedMessage("Frame is missing a string 'type' field.")
    model = registry.get(tag)
    if model is None:
        raise UnknownMessageType(tag)
    try:
        return model.model_validate(payload)
    except ValidationError as exc:
        raise MalformedMessage(f"Invalid {tag!r} message: {exc.error_count()} error(s).") from exc


def decode_push_event(raw: Union[str, bytes]) -> PushEvent:
    return _decode(raw, _PUSH_EVENTS)  # type: ignore[return-value]


def decode_viewer_request(raw: Union[str, bytes]) -> ViewerRequest:
    return _decode(raw, _VIEWER_REQUESTS)  # type: ignore[return-value]


def encode_message(message: BaseModel) -> str:
    return message.model_dump_json(by_alias=True)
