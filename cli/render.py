from __future__ import annotations

from typing import Any, Dict, Iterable, Sequence

import typer

from cli.consumer import RollingWindowConsumer
from models.records import alert_status

_TABLE_HEADER = f"{'id':>6}  {'timestamp':<32}  {'DHT11':>6}  {'LM35':>6}  {'LED':>3}  status"


def echo_heading(text: str) -> None:
    typer.secho(text, bold=True)


def echo_key_values(pairs: Iterable[tuple[str, Any]]) -> None:
    for key, value in pairs:
        typer.echo(f"{key}: {value}")


def _format_row(reading: Dict[str, Any]) -> str:
    led_level = int(reading.get("ledLevel", 0))
    return (
        f"{reading.get('id', ''):>6}  {str(reading.get('timestamp', '')):<32}  "
        f"{float(reading.get('dhtTemperature', 0.0)):>6.1f}  "
        f"{float(reading.get('lm35Temperature', 0.0)):>6.1f}  "
        f"{led_level:>3}  {alert_status(led_level)}"
    )


def render_readings(readings: Sequence[Dict[str, Any]], title: str = "Readings") -> None:
    echo_heading(f"{title} ({len(readings)})")
    if not readings:
        typer.echo("No readings found.")
        return
    typer.echo(_TABLE_HEADER)
    for reading in readings:
        typer.echo(_format_row(reading))


def render_status(payload: Dict[str, Any]) -> None:
    connected = bool(payload.get("connected"))
    typer.secho(
        f"MQTT: {'connected' if connected else 'disconnected'}",
        fg=typer.colors.GREEN if connected else typer.colors.RED,
    )


def render_snapshot(consumer: RollingWindowConsumer, table_rows: int = 10) -> None:
    echo_heading("Live Telemetry")
    render_status({"connected": consumer.mqtt_connected})

    latest = consumer.latest
    if latest is None:
        typer.echo("Waiting for readings...")
        return

    echo_key_values(
        [
            ("device", latest.device_id),
            ("DHT11", f"{latest.dht_temperature:.1f}"),
            ("LM35", f"{latest.lm35_temperature:.1f}"),
            ("max", f"{max(latest.dht_temperature, latest.lm35_temperature):.1f}"),
            ("alert", f"level {latest.led_level} ({alert_status(latest.led_level)})"),
        ]
    )

    typer.echo()
    echo_heading(f"Chart window ({len(consumer.labels)} points)")
    for label, dht, lm35, led in consumer.chart_points():
        typer.echo(f"  {label}  DHT11={dht:.1f}  LM35={lm35:.1f}  LED={led}")

    typer.echo()
    render_readings(
        [reading.model_dump(mode="json", by_alias=True) for reading in consumer.history[:table_rows]],
        title="History",
    )
