"""HTTP route definitions for the service."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import List, Optional, Union

from fastapi import APIRouter, Depends, Query, Request, status
from fastapi.responses import JSONResponse

from app.schemas import ConnectionStatusResponse, ErrorResponse, ReadingSchema
from datastore.reading_store import DEFAULT_RECENT_LIMIT, ReadingStore
from services.bridge import TelemetryBridge

logger = logging.getLogger(__name__)

FETCH_FAILED = "Failed to fetch sensor readings"
RANGE_REQUIRED = "startTime and endTime are required"
RANGE_INVALID = "startTime and endTime must be ISO-8601 timestamps"

router = APIRouter()


def get_store(request: Request) -> ReadingStore:
    return request.app.state.store


def get_bridge(request: Request) -> TelemetryBridge:
    return request.app.state.bridge


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=ErrorResponse(error=message).model_dump())


def _parse_limit(value: Optional[str]) -> int:
    if value is None:
        return DEFAULT_RECENT_LIMIT
    candidate = value.strip()
    try:
        parsed = int(candidate)
    except ValueError:
        return DEFAULT_RECENT_LIMIT
    return parsed if parsed > 0 else DEFAULT_RECENT_LIMIT


def _parse_timestamp(value: str) -> datetime:
    candidate = value.strip()
    if not candidate:
        raise ValueError("Timestamp is empty.")

    if candidate.endswith("Z"):
        candidate = candidate[:-1] + "+00:00"

    try:
        parsed = datetime.fromisoformat(candidate)
    except ValueError as exc:
        raise ValueError("Invalid timestamp format") from exc

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)

    return parsed.astimezone(timezone.utc)


@router.get(
    "/api/sensor-readings/{device_id}",
    response_model=List[ReadingSchema],
    responses={500: {"model": ErrorResponse}},
    summary="Most recent readings for a device, newest first.",
)
async def get_recent_readings(
    device_id: str,
    limit: Optional[str] = Query(
        None, description=f"Maximum number of readings (default {DEFAULT_RECENT_LIMIT})."
    ),
    store: ReadingStore = Depends(get_store),
) -> Union[List[ReadingSchema], JSONResponse]:
    try:
        readings = store.recent(device_id, _parse_limit(limit))
    except Exception:  # noqa: BLE001 - any store failure maps to a generic 500
        logger.exception("Error fetching sensor readings", extra={"device_id": device_id})
        return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, FETCH_FAILED)
    return [ReadingSchema.from_reading(reading) for reading in readings]


@router.get(
    "/api/sensor-readings/{device_id}/range",
    response_model=List[ReadingSchema],
    responses={400: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
    summary="Readings for a device within an inclusive time range, newest first.",
)
async def get_readings_in_range(
    device_id: str,
    start_time: Optional[str] = Query(None, alias="startTime"),
    end_time: Optional[str] = Query(None, alias="endTime"),
    store: ReadingStore = Depends(get_store),
) -> Union[List[ReadingSchema], JSONResponse]:
    if not start_time or not end_time:
        return _error(status.HTTP_400_BAD_REQUEST, RANGE_REQUIRED)
    try:
        start = _parse_timestamp(start_time)
        end = _parse_timestamp(end_time)
    except ValueError:
        return _error(status.HTTP_400_BAD_REQUEST, RANGE_INVALID)

    try:
        readings = store.by_time_range(device_id, start, end)
    except Exception:  # noqa: BLE001 - any store failure maps to a generic 500
        logger.exception(
            "Error fetching sensor readings by range", extra={"device_id": device_id}
        )
        return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, FETCH_FAILED)
    return [ReadingSchema.from_reading(reading) for reading in readings]


@router.get(
    "/api/mqtt/status",
    response_model=ConnectionStatusResponse,
    summary="Cached upstream MQTT connection status.",
)
async def get_mqtt_status(
    bridge: TelemetryBridge = Depends(get_bridge),
) -> ConnectionStatusResponse:
    return ConnectionStatusResponse(connected=bridge.get_connection_status())


@router.get(
    "/health",
    summary="Health check endpoint.",
    status_code=status.HTTP_200_OK,
)
async def healthcheck() -> dict[str, str]:
    return {"status": "ok"}


@router.get(
    "/",
    summary="Root endpoint mirrors health information.",
    status_code=status.HTTP_200_OK,
)
async def root() -> dict[str, str]:
    return {"status": "ok", "detail": "See /health for service status and /ui for the dashboard."}
