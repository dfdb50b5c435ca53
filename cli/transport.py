"""Self-reconnecting WebSocket connection to the viewer endpoint."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional

import aiohttp

from cli.config import DEFAULT_RECONNECT_DELAY
from models.events import (
    GetHistoricalDataRequest,
    MalformedMessage,
    PushEvent,
    UnknownMessageType,
    decode_push_event,
    encode_message,
)

logger = logging.getLogger(__name__)

DEFAULT_HISTORY_LIMIT = 50


class ViewerTransport:
    """Keeps exactly one socket open to ``url`` and redials after it closes.

    A close schedules one reconnect after ``reconnect_delay`` seconds; an
    open cancels any pending one. Errors only mark the transport as
    disconnected, since every failed or dropped connection also ends in a
    close.
    """

    def __init__(
        self,
        url: str,
        on_event: Callable[[PushEvent], None],
        on_open: Optional[Callable[[], Awaitable[None]]] = None,
        reconnect_delay: float = DEFAULT_RECONNECT_DELAY,
        session: Optional[aiohttp.ClientSession] = None,
    ) -> None:
        self.url = url
        self.reconnect_delay = reconnect_delay
        self._on_event = on_event
        self._on_open = on_open
        self._session = session
        self._owns_session = session is None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._task: Optional[asyncio.Task[None]] = None
        self._ws: Any = None
        self._reconnect_handle: Optional[asyncio.TimerHandle] = None
        self._connected = False
        self._stopped = False

    @property
    def is_connected(self) -> bool:
        return self._connected

    @property
    def reconnect_pending(self) -> bool:
        return self._reconnect_handle is not None

    async def start(self) -> None:
        self._loop = asyncio.get_running_loop()
        self._stopped = False
        if self._session is None:
            self._session = aiohttp.ClientSession()
        self._open()

    async def stop(self) -> None:
        self._stopped = True
        self._cancel_reconnect()
        ws = self._ws
        if ws is not None and not ws.closed:
            await ws.close()
        task = self._task
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._task = None
        if self._owns_session and self._session is not None:
            await self._session.close()
            self._session = None

    async def request_history(self, limit: int = DEFAULT_HISTORY_LIMIT) -> bool:
        """Ask for history; the answer is whichever ``historical_data`` comes next.

        Returns ``False`` without sending when no socket is open.
        """
        ws = self._ws
        if ws is None or ws.closed:
            return False
        try:
            await ws.send_str(encode_message(GetHistoricalDataRequest(limit=limit)))
        except (aiohttp.ClientError, ConnectionError) as exc:
            logger.warning("History request not sent: %s", exc, extra={"limit": limit})
            return False
        return True

    def _open(self) -> None:
        self._reconnect_handle = None
        if self._stopped or self._loop is None:
            return
        if self._task is not None and not self._task.done():
            return
        self._task = self._loop.create_task(self._run_connection())

    async def _run_connection(self) -> None:
        assert self._session is not None
        try:
            ws = await self._session.ws_connect(self.url)
        except (aiohttp.ClientError, OSError) as exc:
            self._handle_error(exc)
            self._handle_close()
            return

        self._ws = ws
        try:
            self._handle_open()
            if self._on_open is not None:
                await self._on_open()
            async for message in ws:
                if message.type == aiohttp.WSMsgType.TEXT:
                    self._handle_text(message.data)
                elif message.type == aiohttp.WSMsgType.ERROR:
                    self._handle_error(ws.exception())
        finally:
            self._ws = None
            if not ws.closed:
                await ws.close()
            self._handle_close()

    def _handle_open(self) -> None:
        self._cancel_reconnect()
        self._connected = True
        logger.info("Viewer socket connected to %s", self.url)

    def _handle_close(self) -> None:
        self._connected = False
        if self._stopped or self._reconnect_handle is not None or self._loop is None:
            return
        logger.info("Viewer socket closed; reconnecting in %.1fs", self.reconnect_delay)
        self._reconnect_handle = self._loop.call_later(self.reconnect_delay, self._open)

    def _handle_error(self, exc: Optional[BaseException]) -> None:
        self._connected = False
        logger.warning("Viewer socket error: %s", exc)

    def _handle_text(self, data: str) -> None:
        try:
            event = decode_push_event(data)
        except UnknownMessageType as exc:
            logger.debug("Ignoring push event of unknown type %r", exc.tag)
            return
        except MalformedMessage as exc:
            logger.warning("Ignoring malformed push event", extra={"reason": str(exc)})
            return
        self._on_event(event)

    def _cancel_reconnect(self) -> None:
        if self._reconnect_handle is not None:
            self._reconnect_handle.cancel()
            self._reconnect_handle = None
