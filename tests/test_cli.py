from __future__ import annotations

from typing import Any, Dict, List, Optional

import httpx
import pytest
import typer
from typer.testing import CliRunner

from app.schemas import ReadingSchema
from cli.app import app
from cli.client import ApiClient
from cli.config import CLIConfig, load_config
from models.events import ConnectionStatusEvent, HistoricalDataEvent, SensorDataEvent


def _reading_payload(reading_id: int, led_level: int = 1) -> Dict[str, Any]:
    return {
        "id": reading_id,
        "deviceId": "dev-1",
        "dhtTemperature": 24.5,
        "lm35Temperature": 25.1,
        "ledLevel": led_level,
        "timestamp": "2024-01-01T00:00:00Z",
    }


class StubClient:
    def __init__(self, config) -> None:
        self.config = config
        self.recent_calls: List[tuple[str, Optional[int]]] = []
        self.range_calls: List[tuple[str, str, str]] = []
        self.connected = True
        self.closed = False

    def get_recent(self, device_id: str, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        self.recent_calls.append((device_id, limit))
        return [_reading_payload(2, led_level=3), _reading_payload(1)]

    def get_range(self, device_id: str, start: str, end: str) -> List[Dict[str, Any]]:
        self.range_calls.append((device_id, start, end))
        return []

    def get_status(self) -> Dict[str, Any]:
        return {"connected": self.connected}

    def close(self) -> None:
        self.closed = True


@pytest.fixture()
def runner() -> CliRunner:
    return CliRunner()


def _install_stub(monkeypatch, stub: StubClient) -> None:
    def factory(config):
        stub.config = config
        return stub

    monkeypatch.setattr("cli.app.ApiClient", factory)


def test_readings_command(monkeypatch, runner: CliRunner) -> None:
    stub = StubClient(config=None)
    _install_stub(monkeypatch, stub)

    result = runner.invoke(app, ["readings", "dev-1", "--limit", "2"])

    assert result.exit_code == 0
    assert "Recent readings for dev-1 (2)" in result.stdout
    assert "High Temp" in result.stdout
    assert "Normal" in result.stdout
    assert stub.recent_calls == [("dev-1", 2)]
    assert stub.closed is True


def test_range_command(monkeypatch, runner: CliRunner) -> None:
    stub = StubClient(config=None)
    _install_stub(monkeypatch, stub)

    result = runner.invoke(
        app,
        ["range", "dev-1", "--start", "2024-01-01T00:00:00Z", "--end", "2024-01-02T00:00:00Z"],
    )

    assert result.exit_code == 0
    assert "No readings found." in result.stdout
    assert stub.range_calls == [("dev-1", "2024-01-01T00:00:00Z", "2024-01-02T00:00:00Z")]


def test_status_command_uses_base_url_option(monkeypatch, runner: CliRunner) -> None:
    stub = StubClient(config=None)
    stub.connected = False
    _install_stub(monkeypatch, stub)

    result = runner.invoke(app, ["--base-url", "http://relay:9000/", "status"])

    assert result.exit_code == 0
    assert "MQTT: disconnected" in result.stdout
    assert stub.config.base_url == "http://relay:9000"


def test_watch_command_renders_pushed_events(monkeypatch, runner: CliRunner) -> None:
    _install_stub(monkeypatch, StubClient(config=None))
    created: List["FakeTransport"] = []

    class FakeTransport:
        def __init__(self, url, on_event, on_open=None, reconnect_delay=3.0) -> None:
            self.url = url
            self.on_event = on_event
            self.on_open = on_open
            self.history_requests: List[int] = []
            self.stopped = False
            created.append(self)

        async def start(self) -> None:
            await self.on_open()
            self.on_event(ConnectionStatusEvent(connected=True))
            self.on_event(HistoricalDataEvent(data=[ReadingSchema.model_validate(_reading_payload(1))]))
            self.on_event(SensorDataEvent(data=ReadingSchema.model_validate(_reading_payload(2, led_level=2))))

        async def request_history(self, limit: int = 50) -> bool:
            self.history_requests.append(limit)
            return True

        async def stop(self) -> None:
            self.stopped = True

    monkeypatch.setattr("cli.app.ViewerTransport", FakeTransport)

    result = runner.invoke(
        app,
        ["--base-url", "https://relay.example", "watch", "--history", "30", "--max-events", "3"],
    )

    assert result.exit_code == 0
    transport = created[0]
    assert transport.url == "wss://relay.example/ws"
    assert transport.history_requests == [30]
    assert transport.stopped is True
    assert "MQTT: connected" in result.stdout
    assert "Elevated" in result.stdout
    assert "Chart window (2 points)" in result.stdout


def test_api_client_reports_error_body(monkeypatch) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(400, json={"error": "startTime and endTime are required"})

    client = ApiClient(CLIConfig(base_url="http://relay.test"))
    client._client = httpx.Client(base_url="http://relay.test", transport=httpx.MockTransport(handler))
    messages: List[str] = []
    monkeypatch.setattr(typer, "secho", lambda message, **_kwargs: messages.append(message))

    with pytest.raises(typer.Exit) as excinfo:
        client.get_range("dev-1", "", "")

    assert excinfo.value.exit_code == 1
    assert messages == ["Request failed with status 400: startTime and endTime are required"]
    client.close()


def test_api_client_sends_query_parameters() -> None:
    seen: List[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json=[_reading_payload(1)])

    client = ApiClient(CLIConfig(base_url="http://relay.test"))
    client._client = httpx.Client(base_url="http://relay.test", transport=httpx.MockTransport(handler))

    readings = client.get_recent("dev-1", limit=5)

    assert readings[0]["deviceId"] == "dev-1"
    assert seen[0].url.path == "/api/sensor-readings/dev-1"
    assert seen[0].url.params["limit"] == "5"
    client.close()


def test_load_config_reads_environment(monkeypatch) -> None:
    monkeypatch.setenv("API_BASE_URL", "http://env-relay:8080/")
    monkeypatch.setenv("VIEWER_RECONNECT_DELAY", "not-a-number")

    config = load_config()

    assert config.base_url == "http://env-relay:8080"
    assert config.reconnect_delay == 3.0
    assert config.websocket_url == "ws://env-relay:8080/ws"
