from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional

DEFAULT_BASE_URL = "http://localhost:8000"
DEFAULT_RECONNECT_DELAY = 3.0
WEBSOCKET_PATH = "/ws"

_BASE_URL_ENV = "API_BASE_URL"
_RECONNECT_DELAY_ENV = "VIEWER_RECONNECT_DELAY"


@dataclass(frozen=True)
class CLIConfig:
    base_url: str = DEFAULT_BASE_URL
    reconnect_delay: float = DEFAULT_RECONNECT_DELAY

    @property
    def websocket_url(self) -> str:
        if self.base_url.startswith("https://"):
            return "wss://" + self.base_url[len("https://"):] + WEBSOCKET_PATH
        if self.base_url.startswith("http://"):
            return "ws://" + self.base_url[len("http://"):] + WEBSOCKET_PATH
        return self.base_url + WEBSOCKET_PATH


def _read_float(value: Optional[str], default: float) -> float:
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    try:
        parsed = float(candidate)
    except ValueError:
        return default
    return parsed if parsed > 0 else default


def load_config(
    base_url: Optional[str] = None,
    reconnect_delay: Optional[float] = None,
) -> CLIConfig:
    url = base_url or os.getenv(_BASE_URL_ENV) or DEFAULT_BASE_URL
    if reconnect_delay is None:
        reconnect_delay = _read_float(os.getenv(_RECONNECT_DELAY_ENV), DEFAULT_RECONNECT_DELAY)
    return CLIConfig(
        base_url=url.rstrip("/"),
        reconnect_delay=reconnect_delay,
    )
