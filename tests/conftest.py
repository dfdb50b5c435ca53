from __future__ import annotations

from typing import Iterator, List

import pytest
from fastapi.testclient import TestClient

from app.main import create_app
from datastore.reading_store import ReadingStore
from services.bridge import TelemetryBridge
from tests.fakes import DEVICE_ID, TOPIC, FakeMqttClient, StepClock


@pytest.fixture
def clock() -> StepClock:
    return StepClock()


@pytest.fixture
def store(clock: StepClock) -> ReadingStore:
    return ReadingStore(clock=clock)


@pytest.fixture
def fake_clients() -> List[FakeMqttClient]:
    return []


@pytest.fixture
def bridge(store: ReadingStore, fake_clients: List[FakeMqttClient]) -> TelemetryBridge:
    def factory(client_id: str) -> FakeMqttClient:
        client = FakeMqttClient(client_id)
        fake_clients.append(client)
        return client

    return TelemetryBridge(
        store=store,
        device_id=DEVICE_ID,
        topic=TOPIC,
        broker_host="broker.test",
        broker_port=1883,
        username="usm",
        password="secret",
        reconnect_seconds=5,
        client_factory=factory,  # type: ignore[arg-type]
    )


@pytest.fixture
def api_client(bridge: TelemetryBridge) -> Iterator[TestClient]:
    app = create_app(bridge=bridge)
    with TestClient(app) as client:
        yield client
