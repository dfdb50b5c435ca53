"""Tests for the reconnecting viewer transport."""

from __future__ import annotations

import asyncio
import json
from types import SimpleNamespace
from typing import Any, List, Optional

import aiohttp

from cli.transport import ViewerTransport
from models.events import ConnectionStatusEvent, HistoricalDataEvent

URL = "ws://relay.test/ws"


class FakeSocket:
    def __init__(self, frames: List[str], hold_open: bool = False) -> None:
        self._frames = list(frames)
        self._hold_open = hold_open
        self._closing = asyncio.Event()
        self.closed = False
        self.sent: List[str] = []

    def __aiter__(self) -> "FakeSocket":
        return self

    async def __anext__(self) -> SimpleNamespace:
        await asyncio.sleep(0)
        if not self._frames and self._hold_open:
            await self._closing.wait()
        if not self._frames or self.closed:
            raise StopAsyncIteration
        return SimpleNamespace(type=aiohttp.WSMsgType.TEXT, data=self._frames.pop(0))

    async def send_str(self, data: str) -> None:
        self.sent.append(data)

    async def close(self) -> None:
        self.closed = True
        self._closing.set()

    def exception(self) -> Optional[BaseException]:
        return None


class FakeSession:
    def __init__(self, sockets: List[Any]) -> None:
        self._sockets = list(sockets)
        self.connect_calls = 0

    async def ws_connect(self, url: str) -> FakeSocket:
        self.connect_calls += 1
        socket = self._sockets.pop(0)
        if isinstance(socket, BaseException):
            raise socket
        return socket


def _transport(session: Optional[FakeSession] = None, **kwargs: Any) -> ViewerTransport:
    on_event = kwargs.pop("on_event", lambda _event: None)
    return ViewerTransport(URL, on_event=on_event, session=session, **kwargs)  # type: ignore[arg-type]


def test_close_schedules_exactly_one_reconnect() -> None:
    async def scenario() -> None:
        transport = _transport(reconnect_delay=60)
        transport._loop = asyncio.get_running_loop()

        transport._handle_close()
        first = transport._reconnect_handle
        transport._handle_close()

        assert first is not None
        assert transport._reconnect_handle is first
        assert transport.is_connected is False
        await transport.stop()

    asyncio.run(scenario())


def test_open_cancels_pending_reconnect() -> None:
    async def scenario() -> None:
        transport = _transport(reconnect_delay=60)
        transport._loop = asyncio.get_running_loop()
        transport._handle_close()
        handle = transport._reconnect_handle

        transport._handle_open()

        assert transport.is_connected is True
        assert transport.reconnect_pending is False
        assert handle is not None and handle.cancelled()

    asyncio.run(scenario())


def test_error_marks_disconnected_without_scheduling() -> None:
    async def scenario() -> None:
        transport = _transport(reconnect_delay=60)
        transport._loop = asyncio.get_running_loop()
        transport._handle_open()

        transport._handle_error(RuntimeError("reset"))

        assert transport.is_connected is False
        assert transport.reconnect_pending is False

    asyncio.run(scenario())


def test_reconnect_fires_once_after_delay(monkeypatch) -> None:
    async def scenario() -> None:
        transport = _transport(reconnect_delay=0.01)
        transport._loop = asyncio.get_running_loop()
        opened: List[int] = []
        monkeypatch.setattr(transport, "_open", lambda: opened.append(1))

        transport._handle_close()
        transport._handle_close()
        await asyncio.sleep(0.05)

        assert opened == [1]

    asyncio.run(scenario())


def test_stop_prevents_reconnect() -> None:
    async def scenario() -> None:
        transport = _transport(reconnect_delay=60)
        transport._loop = asyncio.get_running_loop()
        transport._handle_close()

        await transport.stop()
        transport._handle_close()

        assert transport.reconnect_pending is False

    asyncio.run(scenario())


def test_frames_are_decoded_and_dispatched() -> None:
    socket = FakeSocket(
        [
            json.dumps({"type": "connection_status", "connected": True}),
            "garbage",
            json.dumps({"type": "mystery"}),
            json.dumps({"type": "historical_data", "data": []}),
        ]
    )
    session = FakeSession([socket])
    events: List[Any] = []
    opened: List[bool] = []

    async def on_open() -> None:
        opened.append(transport.is_connected)
        assert await transport.request_history(25) is True

    transport = _transport(session, on_event=events.append, on_open=on_open, reconnect_delay=60)

    async def scenario() -> None:
        await transport.start()
        for _ in range(50):
            if transport.reconnect_pending:
                break
            await asyncio.sleep(0)
        assert transport.reconnect_pending is True
        assert transport.is_connected is False
        await transport.stop()

    asyncio.run(scenario())

    assert opened == [True]
    assert events == [ConnectionStatusEvent(connected=True), HistoricalDataEvent(data=[])]
    assert [json.loads(frame) for frame in socket.sent] == [
        {"type": "get_historical_data", "limit": 25}
    ]
    assert socket.closed is True


def test_failed_dial_is_retried_after_delay() -> None:
    socket = FakeSocket(
        [json.dumps({"type": "connection_status", "connected": False})], hold_open=True
    )
    session = FakeSession([aiohttp.ClientConnectionError("refused"), socket])
    events: List[Any] = []
    transport = _transport(session, on_event=events.append, reconnect_delay=0.01)

    async def scenario() -> None:
        await transport.start()
        for _ in range(100):
            if events:
                break
            await asyncio.sleep(0.01)
        await transport.stop()

    asyncio.run(scenario())

    assert session.connect_calls == 2
    assert events == [ConnectionStatusEvent(connected=False)]


def test_request_history_without_socket_is_dropped() -> None:
    transport = _transport()

    assert asyncio.run(transport.request_history()) is False
