from __future__ import annotations

from pathlib import Path

from fastapi import APIRouter, Depends, Request
from fastapi.responses import HTMLResponse
from fastapi.templating import Jinja2Templates

from app.api import get_bridge
from models.records import alert_status
from services.bridge import TelemetryBridge


templates = Jinja2Templates(directory=str(Path(__file__).resolve().parent / "templates"))
templates.env.filters["alert_status"] = alert_status

TABLE_ROWS = 10

router = APIRouter(include_in_schema=False)


@router.get("/ui", name="ui_index", response_class=HTMLResponse)
async def ui_index(
    request: Request,
    bridge: TelemetryBridge = Depends(get_bridge),
) -> HTMLResponse:
    readings = bridge.recent(TABLE_ROWS)
    return templates.TemplateResponse(
        request,
        "ui/index.html",
        {
            "device_id": bridge.device_id,
            "connected": bridge.get_connection_status(),
            "latest": readings[0] if readings else None,
            "readings": readings,
        },
    )
