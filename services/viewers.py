"""Per-connection viewer sessions shared by the gateway and the bridge."""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from fastapi import WebSocket, WebSocketDisconnect
from fastapi.websockets import WebSocketState
from pydantic import BaseModel

from models.events import encode_message

logger = logging.getLogger(__name__)


class ViewerSession:
    """Wraps one accepted viewer socket and the event loop that owns it.

    ``send`` must run on that loop. ``push`` may be called from any thread and
    returns immediately. Once the session is closed both become no-ops.
    """

    def __init__(
        self,
        websocket: WebSocket,
        loop: Optional[asyncio.AbstractEventLoop] = None,
    ) -> None:
        self._websocket = websocket
        self._loop = loop or asyncio.get_running_loop()
        self._closed = False

    @property
    def is_open(self) -> bool:
        if self._closed:
            return False
        return (
            self._websocket.client_state == WebSocketState.CONNECTED
            and self._websocket.application_state == WebSocketState.CONNECTED
        )

    def close(self) -> None:
        self._closed = True

    async def send(self, event: BaseModel) -> None:
        if not self.is_open:
            return
        try:
            await self._websocket.send_text(encode_message(event))
        except (WebSocketDisconnect, RuntimeError, OSError) as exc:
            self._closed = True
            logger.debug("Skipped send to a closed viewer: %s", exc)

    def push(self, event: BaseModel) -> None:
        if not self.is_open:
            return
        pending = self.send(event)
        try:
            asyncio.run_coroutine_threadsafe(pending, self._loop)
        except RuntimeError:
            # The owning loop has shut down.
            pending.close()
            self._closed = True
