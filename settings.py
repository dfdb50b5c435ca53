from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional


_BROKER_ENV = "MQTT_BROKER"
_PORT_ENV = "MQTT_PORT"
_USER_ENV = "MQTT_USER"
_PASS_ENV = "MQTT_PASS"
_TOPIC_ENV = "MQTT_TOPIC"
_CLIENT_PREFIX_ENV = "MQTT_CLIENT_PREFIX"
_KEEPALIVE_ENV = "MQTT_KEEPALIVE"
_RECONNECT_ENV = "MQTT_RECONNECT_SECONDS"
_DEVICE_ID_ENV = "DEVICE_ID"
_LOG_LEVEL_ENV = "LOG_LEVEL"
_HTTP_HOST_ENV = "HTTP_HOST"
_HTTP_PORT_ENV = "HTTP_PORT"

DEFAULT_DEVICE_ID = "G.231.22.0002"


@dataclass(frozen=True)
class Settings:
    mqtt_broker: str
    mqtt_port: int
    mqtt_username: Optional[str]
    mqtt_password: Optional[str]
    mqtt_topic: str
    mqtt_client_prefix: str
    mqtt_keepalive: int
    mqtt_reconnect_seconds: int
    device_id: str
    log_level: str
    http_host: str
    http_port: int


def _read_str_env(name: str, default: str) -> str:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    return candidate or default


def _read_optional_env(name: str, default: Optional[str]) -> Optional[str]:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    return candidate or None


def _read_positive_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    try:
        parsed = int(candidate)
    except ValueError:
        return default
    return parsed if parsed > 0 else default


def _read_log_level(default: str) -> str:
    value = os.getenv(_LOG_LEVEL_ENV)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    return candidate.upper()


@lru_cache
def get_settings() -> Settings:
    device_id = _read_str_env(_DEVICE_ID_ENV, DEFAULT_DEVICE_ID)
    return Settings(
        mqtt_broker=_read_str_env(_BROKER_ENV, "localhost"),
        mqtt_port=_read_positive_int(_PORT_ENV, 1883),
        mqtt_username=_read_optional_env(_USER_ENV, None),
        mqtt_password=_read_optional_env(_PASS_ENV, None),
        mqtt_topic=_read_str_env(_TOPIC_ENV, f"iot/{device_id}"),
        mqtt_client_prefix=_read_str_env(_CLIENT_PREFIX_ENV, "web_dashboard"),
        mqtt_keepalive=_read_positive_int(_KEEPALIVE_ENV, 60),
        mqtt_reconnect_seconds=_read_positive_int(_RECONNECT_ENV, 5),
        device_id=device_id,
        log_level=_read_log_level("INFO"),
        http_host=_read_str_env(_HTTP_HOST_ENV, "0.0.0.0"),
        http_port=_read_positive_int(_HTTP_PORT_ENV, 8000),
    )
