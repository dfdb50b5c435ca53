"""Upstream MQTT subscription and fan-out to connected viewers."""

from __future__ import annotations

import logging
import secrets
from threading import Lock
from typing import Any, Callable, List, Optional, Protocol, Set

import paho.mqtt.client as mqtt
from pydantic import BaseModel, ValidationError

from app.schemas import TelemetryPayload
from datastore.reading_store import DEFAULT_RECENT_LIMIT, ReadingStore
from models.events import ConnectionStatusEvent, HistoricalDataEvent, SensorDataEvent
from models.records import Reading
from settings import Settings

logger = logging.getLogger(__name__)


class Viewer(Protocol):
    @property
    def is_open(self) -> bool: ...

    def push(self, event: BaseModel) -> None: ...

    async def send(self, event: BaseModel) -> None: ...


ClientFactory = Callable[[str], mqtt.Client]


def _default_client_factory(client_id: str) -> mqtt.Client:
    return mqtt.Client(
        callback_api_version=mqtt.CallbackAPIVersion.VERSION2,
        client_id=client_id,
        clean_session=True,
    )


def _describe_errors(exc: ValidationError) -> str:
    parts: List[str] = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error["loc"]) or "payload"
        parts.append(f"{location}: {error['msg']}")
    return "; ".join(parts)


class TelemetryBridge:
    """Owns the single MQTT subscription and the set of live viewers.

    Every valid message on ``topic`` becomes a stored reading for
    ``device_id`` and a ``sensor_data`` event for each open viewer. The
    transport reconnects on its own; the bridge only mirrors the connection
    state and announces each change.
    """

    def __init__(
        self,
        store: ReadingStore,
        device_id: str,
        topic: str,
        broker_host: str = "localhost",
        broker_port: int = 1883,
        username: Optional[str] = None,
        password: Optional[str] = None,
        client_prefix: str = "web_dashboard",
        keepalive: int = 60,
        reconnect_seconds: int = 5,
        client_factory: Optional[ClientFactory] = None,
    ) -> None:
        self.store = store
        self.device_id = device_id
        self.topic = topic
        self.broker_host = broker_host
        self.broker_port = broker_port
        self.username = username
        self.password = password
        self.keepalive = keepalive
        self.reconnect_seconds = reconnect_seconds
        self.client_id = f"{client_prefix}_{secrets.token_hex(4)}"
        self._client_factory = client_factory or _default_client_factory
        self._client: Optional[mqtt.Client] = None
        self._connected = False
        self._viewers: Set[Viewer] = set()
        self._viewers_lock = Lock()

    @classmethod
    def from_settings(
        cls,
        store: ReadingStore,
        settings: Settings,
        client_factory: Optional[ClientFactory] = None,
    ) -> "TelemetryBridge":
        return cls(
            store=store,
            device_id=settings.device_id,
            topic=settings.mqtt_topic,
            broker_host=settings.mqtt_broker,
            broker_port=settings.mqtt_port,
            username=settings.mqtt_username,
            password=settings.mqtt_password,
            client_prefix=settings.mqtt_client_prefix,
            keepalive=settings.mqtt_keepalive,
            reconnect_seconds=settings.mqtt_reconnect_seconds,
            client_factory=client_factory,
        )

    def start(self) -> None:
        """Begin connecting in the background; returns without waiting."""
        if self._client is not None:
            return

        client = self._client_factory(self.client_id)
        if self.username:
            client.username_pw_set(self.username, self.password)
        client.reconnect_delay_set(
            min_delay=self.reconnect_seconds, max_delay=self.reconnect_seconds
        )
        client.enable_logger(logging.getLogger("paho"))
        client.on_connect = self._on_connect
        client.on_connect_fail = self._on_connect_fail
        client.on_disconnect = self._on_disconnect
        client.on_subscribe = self._on_subscribe
        client.on_message = self._on_message

        logger.info(
            "Connecting to MQTT broker %s:%d",
            self.broker_host,
            self.broker_port,
            extra={"client_id": self.client_id},
        )
        client.connect_async(self.broker_host, self.broker_port, keepalive=self.keepalive)
        client.loop_start()
        self._client = client

    def stop(self) -> None:
        client = self._client
        if client is None:
            return
        self._client = None
        client.disconnect()
        client.loop_stop()
        self._connected = False
        logger.info("MQTT bridge stopped", extra={"client_id": self.client_id})

    def get_connection_status(self) -> bool:
        return self._connected

    def recent(self, limit: int = DEFAULT_RECENT_LIMIT) -> List[Reading]:
        return self.store.recent(self.device_id, limit)

    def handle_message(self, payload: bytes) -> Optional[Reading]:
        """Validate, store and broadcast one upstream message.

        Invalid payloads are logged and dropped; ``None`` is returned and
        nothing is stored or broadcast.
        """
        try:
            telemetry = TelemetryPayload.model_validate_json(payload)
        except ValidationError as exc:
            logger.warning(
                "Dropping invalid telemetry message",
                extra={"topic": self.topic, "reason": _describe_errors(exc)},
            )
            return None

        reading = self.store.append(
            self.device_id,
            telemetry.temperature_a,
            telemetry.temperature_b,
            telemetry.alert_level,
        )
        logger.debug(
            "Stored reading",
            extra={"device_id": self.device_id, "reading_id": reading.id},
        )
        self.broadcast(SensorDataEvent.for_reading(reading))
        return reading

    def register_viewer(self, viewer: Viewer) -> None:
        with self._viewers_lock:
            self._viewers.add(viewer)
            total = len(self._viewers)
        logger.info("Viewer connected", extra={"viewer_count": total})

    def unregister_viewer(self, viewer: Viewer) -> None:
        with self._viewers_lock:
            self._viewers.discard(viewer)
            total = len(self._viewers)
        logger.info("Viewer disconnected", extra={"viewer_count": total})

    @property
    def viewer_count(self) -> int:
        with self._viewers_lock:
            return len(self._viewers)

    def broadcast(self, event: BaseModel) -> None:
        with self._viewers_lock:
            viewers = list(self._viewers)
        for viewer in viewers:
            if viewer.is_open:
                viewer.push(event)

    async def send_history(self, viewer: Viewer, limit: Optional[int] = None) -> None:
        """Answer a history request on ``viewer`` only."""
        readings = self.recent(limit or DEFAULT_RECENT_LIMIT)
        await viewer.send(HistoricalDataEvent.for_readings(readings))

    def _set_connected(self, connected: bool) -> None:
        self._connected = connected
        logger.debug("Announcing connection status", extra={"connected": connected})
        self.broadcast(ConnectionStatusEvent(connected=connected))

    def _on_connect(
        self,
        client: mqtt.Client,
        userdata: Any,
        flags: Any,
        reason_code: Any,
        properties: Any = None,
    ) -> None:
        if reason_code.is_failure:
            logger.error(
                "MQTT connection refused: %s",
                reason_code,
                extra={"client_id": self.client_id},
            )
            self._set_connected(False)
            return

        logger.info("MQTT connected", extra={"client_id": self.client_id})
        result, _mid = client.subscribe(self.topic)
        if result != mqtt.MQTT_ERR_SUCCESS:
            logger.error(
                "Failed to subscribe to topic",
                extra={"topic": self.topic, "reason": mqtt.error_string(result)},
            )
        self._set_connected(True)

    def _on_subscribe(
        self,
        client: mqtt.Client,
        userdata: Any,
        mid: int,
        reason_code_list: Any,
        properties: Any = None,
    ) -> None:
        failures = [code for code in reason_code_list if code.is_failure]
        if failures:
            logger.error(
                "Broker rejected subscription",
                extra={"topic": self.topic, "reason": failures[0]},
            )
            return
        logger.info("Subscribed to topic", extra={"topic": self.topic})

    def _on_connect_fail(self, client: mqtt.Client, userdata: Any) -> None:
        logger.error(
            "MQTT connection attempt failed",
            extra={"client_id": self.client_id},
        )
        self._set_connected(False)

    def _on_disconnect(
        self,
        client: mqtt.Client,
        userdata: Any,
        flags: Any,
        reason_code: Any,
        properties: Any = None,
    ) -> None:
        logger.warning(
            "MQTT connection closed (rc=%s)",
            reason_code,
            extra={"client_id": self.client_id},
        )
        self._set_connected(False)

    def _on_message(self, client: mqtt.Client, userdata: Any, message: mqtt.MQTTMessage) -> None:
        try:
            self.handle_message(message.payload)
        except Exception:  # noqa: BLE001 - an exception here would stop the network thread
            logger.exception(
                "Unhandled error while processing MQTT message",
                extra={"topic": message.topic},
            )
