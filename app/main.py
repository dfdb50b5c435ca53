from __future__ import annotations
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

import uvicorn
from fastapi import FastAPI

from app.api import router
from app.gateway import router as gateway_router
from app.web import router as web_router
from datastore.reading_store import ReadingStore
from logging_config import configure_logging
from services.bridge import TelemetryBridge
from settings import get_settings


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    bridge: TelemetryBridge = app.state.bridge
    bridge.start()
    try:
        yield
    finally:
        bridge.stop()


def create_app(
    store: Optional[ReadingStore] = None,
    bridge: Optional[TelemetryBridge] = None,
) -> FastAPI:
    configure_logging()
    if bridge is not None:
        store = bridge.store
    elif store is None:
        store = ReadingStore()
    if bridge is None:
        bridge = TelemetryBridge.from_settings(store, get_settings())

    app = FastAPI(
        title="Telemetry Relay",
        description="Relays MQTT sensor telemetry to live dashboard viewers.",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.store = store
    app.state.bridge = bridge
    app.include_router(router)
    app.include_router(gateway_router)
    app.include_router(web_router)
    return app

app = create_app()


def run() -> None:
    """Serve the relay on HTTP_HOST:HTTP_PORT."""
    settings = get_settings()
    uvicorn.run(app, host=settings.http_host, port=settings.http_port, log_config=None)
