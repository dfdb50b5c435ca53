"""Viewer WebSocket endpoint."""

from __future__ import annotations

import asyncio
import logging
from typing import Union

from fastapi import APIRouter, WebSocket

from models.events import (
    ConnectionStatusEvent,
    HistoricalDataEvent,
    MalformedMessage,
    UnknownMessageType,
    decode_viewer_request,
)
from services.bridge import TelemetryBridge, Viewer
from services.viewers import ViewerSession

logger = logging.getLogger(__name__)

GREETING_HISTORY_LIMIT = 20

router = APIRouter()


async def handle_viewer_frame(
    bridge: TelemetryBridge, viewer: Viewer, raw: Union[str, bytes]
) -> None:
    try:
        request = decode_viewer_request(raw)
    except UnknownMessageType as exc:
        logger.debug("Ignoring viewer request of unknown type %r", exc.tag)
        return
    except MalformedMessage as exc:
        logger.warning("Ignoring malformed viewer request", extra={"reason": str(exc)})
        return

    logger.debug("Viewer requested history", extra={"limit": request.limit})
    await bridge.send_history(viewer, request.limit)


@router.websocket("/ws")
async def viewer_socket(websocket: WebSocket) -> None:
    bridge: TelemetryBridge = websocket.app.state.bridge
    await websocket.accept()
    session = ViewerSession(websocket, asyncio.get_running_loop())

    # Greeting goes out before the session can receive broadcasts.
    await session.send(ConnectionStatusEvent(connected=bridge.get_connection_status()))
    await session.send(HistoricalDataEvent.for_readings(bridge.recent(GREETING_HISTORY_LIMIT)))
    bridge.register_viewer(session)

    try:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                break
            raw = message.get("text")
            if raw is None:
                raw = message.get("bytes") or b""
            await handle_viewer_frame(bridge, session, raw)
    finally:
        session.close()
        bridge.unregister_viewer(session)
