from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Iterable, List

import typer

from models.records import ScheduleConfig

DAY_NAMES = ("Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun")


def echo_heading(text: str) -> None:
    typer.secho(text, bold=True)


def echo_key_values(pairs: Iterable[tuple[str, Any]]) -> None:
    for key, value in pairs:
        typer.echo(f"{key}: {value}")


def _format_millis(value: Any) -> str:
    if not isinstance(value, int):
        return str(value)
    return datetime.fromtimestamp(value / 1000).strftime("%Y-%m-%d %H:%M:%S")


def render_readings(readings: List[Dict[str, Any]]) -> None:
    echo_heading(f"Readings ({len(readings)})")
    if not readings:
        typer.echo("No readings in range.")
        return
    for reading in readings:
        typer.echo(
            f"  - #{reading.get('id')} {_format_millis(reading.get('timestamp'))} "
            f"lat={reading.get('latitude')} lon={reading.get('longitude')} "
            f"device={reading.get('deviceId')}"
        )


def render_status(payload: Dict[str, Any]) -> None:
    battery = payload.get("battery") or {}
    network = payload.get("network") or {}
    storage = payload.get("storage") or {}

    echo_heading("Battery")
    echo_key_values(
        [
            ("levelPercent", battery.get("levelPercent")),
            ("isCharging", battery.get("isCharging")),
        ]
    )
    typer.echo()
    echo_heading("Network")
    echo_key_values(
        [
            ("isConnected", network.get("isConnected")),
            ("connectionType", network.get("connectionType")),
        ]
    )
    typer.echo()
    echo_heading("Storage")
    echo_key_values(
        [
            ("availableGB", storage.get("availableGB")),
            ("totalGB", storage.get("totalGB")),
        ]
    )
    typer.echo()
    echo_key_values(
        [
            ("osVersion", payload.get("osVersion")),
            ("deviceModel", payload.get("deviceModel")),
            ("sdkVersion", payload.get("sdkVersion")),
        ]
    )


def render_schedule(config: ScheduleConfig) -> None:
    echo_heading("Collection Schedule")
    days = ", ".join(DAY_NAMES[day] for day in sorted(config.active_days)) or "none"
    window = (
        f"{config.start_hour:02d}:{config.start_minute:02d}"
        f"-{config.end_hour:02d}:{config.end_minute:02d}"
    )
    if config.wraps_midnight:
        window += " (crosses midnight)"
    echo_key_values(
        [
            ("days", days),
            ("window", window),
            ("interval_seconds", config.interval_seconds),
        ]
    )
