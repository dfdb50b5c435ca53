from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Optional

import typer

from cli.client import ApiClient
from cli.config import CLIConfig, load_config
from cli.consumer import RollingWindowConsumer
from cli.render import render_readings, render_snapshot, render_status
from cli.transport import DEFAULT_HISTORY_LIMIT, ViewerTransport
from models.events import PushEvent
from settings import DEFAULT_DEVICE_ID


@dataclass
class CLIState:
    config: CLIConfig
    client: ApiClient


app = typer.Typer(
    help="Utilities for querying and watching the telemetry relay.",
    context_settings={"help_option_names": ["-h", "--help"]},
)


def _get_state(ctx: typer.Context) -> CLIState:
    state = ctx.obj
    if not isinstance(state, CLIState):
        raise typer.Exit(code=1, message="CLI state is uninitialized.")
    return state


@app.callback()
def main(
    ctx: typer.Context,
    base_url: Optional[str] = typer.Option(
        None,
        "--base-url",
        "-b",
        help="Relay base URL (defaults to API_BASE_URL env or http://localhost:8000).",
    ),
) -> None:
    """Entry point for the CLI."""
    config = load_config(base_url=base_url)
    client = ApiClient(config)
    ctx.obj = CLIState(config=config, client=client)
    ctx.call_on_close(client.close)


@app.command("readings")
def readings_command(
    ctx: typer.Context,
    device_id: str = typer.Argument(DEFAULT_DEVICE_ID, help="Device identifier."),
    limit: Optional[int] = typer.Option(None, "--limit", "-n", min=1, help="Maximum readings to fetch."),
) -> None:
    """Show the most recent readings for a device."""
    state = _get_state(ctx)
    render_readings(state.client.get_recent(device_id, limit), title=f"Recent readings for {device_id}")


@app.command("range")
def range_command(
    ctx: typer.Context,
    device_id: str = typer.Argument(DEFAULT_DEVICE_ID, help="Device identifier."),
    start: str = typer.Option(..., "--start", help="Inclusive ISO-8601 start time."),
    end: str = typer.Option(..., "--end", help="Inclusive ISO-8601 end time."),
) -> None:
    """Show readings recorded between two instants."""
    state = _get_state(ctx)
    render_readings(
        state.client.get_range(device_id, start, end),
        title=f"Readings for {device_id} from {start} to {end}",
    )


@app.command("status")
def status_command(ctx: typer.Context) -> None:
    """Show whether the relay is connected to the MQTT broker."""
    state = _get_state(ctx)
    render_status(state.client.get_status())


async def _watch(config: CLIConfig, history: int, max_events: Optional[int]) -> None:
    consumer = RollingWindowConsumer()
    finished = asyncio.Event()
    received = 0

    def on_event(event: PushEvent) -> None:
        nonlocal received
        consumer.apply(event)
        typer.echo()
        render_snapshot(consumer)
        received += 1
        if max_events is not None and received >= max_events:
            finished.set()

    async def on_open() -> None:
        await transport.request_history(history)

    transport = ViewerTransport(
        config.websocket_url,
        on_event=on_event,
        on_open=on_open,
        reconnect_delay=config.reconnect_delay,
    )
    await transport.start()
    try:
        await finished.wait()
    finally:
        await transport.stop()


@app.command("watch")
def watch_command(
    ctx: typer.Context,
    history: int = typer.Option(
        DEFAULT_HISTORY_LIMIT, "--history", min=1, help="History items requested on connect."
    ),
    max_events: Optional[int] = typer.Option(
        None, "--max-events", min=1, help="Exit after this many push events."
    ),
) -> None:
    """Follow live telemetry over the viewer socket until interrupted."""
    state = _get_state(ctx)
    typer.echo(f"Connecting to {state.config.websocket_url} ...")
    try:
        asyncio.run(_watch(state.config, history, max_events))
    except KeyboardInterrupt:
        typer.echo("Stopped.")
