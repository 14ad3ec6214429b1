from __future__ import annotations

import signal
import threading
import time
from dataclasses import dataclass
from typing import Callable, List, Optional, Tuple

import typer

from cli.client import ApiClient
from cli.config import CLIConfig, load_config
from cli.render import render_readings, render_schedule, render_status
from datastore.config_store import build_default_config_store
from datastore.credential_store import build_default_credential_store
from errors import ConfigError, StorageError
from logging_config import configure_logging
from services.session import build_default_session


@dataclass
class CLIState:
    config: CLIConfig
    client: ApiClient


app = typer.Typer(
    help="Run the location tracker and query running instances.",
    context_settings={"help_option_names": ["-h", "--help"]},
)
schedule_app = typer.Typer(help="Inspect or change the collection schedule.")
app.add_typer(schedule_app, name="schedule")


def _get_state(ctx: typer.Context) -> CLIState:
    state = ctx.obj
    if not isinstance(state, CLIState):
        typer.secho("CLI state is uninitialized.", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)
    return state


def _wait_for_interrupt(stop: threading.Event) -> None:
    while not stop.wait(1.0):
        pass


def _install_sigterm_handler(stop: threading.Event) -> Optional[Callable[[], None]]:
    """Make SIGTERM end the wait like Ctrl+C does; returns a restore callback."""
    if threading.current_thread() is not threading.main_thread():
        return None
    previous = signal.signal(signal.SIGTERM, lambda _signum, _frame: stop.set())
    if previous is None:
        previous = signal.SIG_DFL
    return lambda: signal.signal(signal.SIGTERM, previous)


def _parse_clock(value: str, option: str) -> Tuple[int, int]:
    hour_text, sep, minute_text = value.strip().partition(":")
    try:
        if not sep:
            raise ValueError(value)
        hour, minute = int(hour_text), int(minute_text)
    except ValueError as exc:
        raise typer.BadParameter(f"{option} must look like HH:MM, got {value!r}.") from exc
    return hour, minute


def _parse_days(value: str) -> List[int]:
    if not value.strip():
        return []
    try:
        return [int(part) for part in value.split(",") if part.strip()]
    except ValueError as exc:
        raise typer.BadParameter(
            f"--days must be comma separated numbers 0 (Monday) to 6 (Sunday), got {value!r}."
        ) from exc


@app.callback()
def main(
    ctx: typer.Context,
    base_url: Optional[str] = typer.Option(
        None,
        "--base-url",
        "-b",
        help="Tracker API base URL (defaults to API_BASE_URL env or http://localhost:9999).",
    ),
    token: Optional[str] = typer.Option(
        None,
        "--token",
        "-t",
        help="Bearer token for the API (defaults to API_TOKEN env).",
    ),
    timeout: Optional[float] = typer.Option(
        None,
        "--timeout",
        help="HTTP timeout in seconds.",
    ),
) -> None:
    """Entry point for the CLI."""
    config = load_config(base_url=base_url, token=token, timeout=timeout)
    client = ApiClient(config)
    ctx.obj = CLIState(config=config, client=client)
    ctx.call_on_close(client.close)


@app.command("readings")
def readings_command(
    ctx: typer.Context,
    start: Optional[int] = typer.Option(
        None, "--start", help="Range start in epoch milliseconds (default: one hour before end)."
    ),
    end: Optional[int] = typer.Option(
        None, "--end", help="Range end in epoch milliseconds (default: now)."
    ),
) -> None:
    """List stored readings from a running tracker, newest first."""
    state = _get_state(ctx)
    end_time = end if end is not None else int(time.time() * 1000)
    start_time = start if start is not None else end_time - 3_600_000
    readings = state.client.get_readings(start_time, end_time)
    render_readings(readings)


@app.command("status")
def status_command(ctx: typer.Context) -> None:
    """Show live device telemetry from a running tracker."""
    state = _get_state(ctx)
    render_status(state.client.get_device_status())


@app.command("token")
def token_command() -> None:
    """Print the local API token, creating it on first use."""
    try:
        token = build_default_credential_store().get_or_create_token()
    except StorageError as exc:
        typer.secho(exc.message, fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)
    typer.echo(token)


@app.command("serve")
def serve_command() -> None:
    """Run sampling and the API until interrupted."""
    configure_logging()
    session = build_default_session()
    stop = threading.Event()
    session.start()
    typer.secho(
        f"Tracker running (API on {session.host}:{session.port}). Press Ctrl+C to stop.",
        fg=typer.colors.GREEN,
    )
    restore_sigterm = _install_sigterm_handler(stop)
    try:
        _wait_for_interrupt(stop)
    except KeyboardInterrupt:
        pass
    finally:
        typer.echo("Stopping...")
        session.stop()
        if restore_sigterm is not None:
            restore_sigterm()


@schedule_app.command("show")
def schedule_show() -> None:
    """Print the stored schedule (defaults where unset)."""
    render_schedule(build_default_config_store().load())


@schedule_app.command("set")
def schedule_set(
    days: Optional[str] = typer.Option(
        None, "--days", help="Active days, e.g. 0,1,2,3,4 (0=Monday)."
    ),
    start: Optional[str] = typer.Option(None, "--start", help="Window start, HH:MM."),
    end: Optional[str] = typer.Option(None, "--end", help="Window end, HH:MM."),
    interval: Optional[int] = typer.Option(
        None, "--interval", help="Seconds between samples."
    ),
) -> None:
    """Change one or more schedule settings."""
    store = build_default_config_store()
    try:
        if days is not None:
            store.save_active_days(_parse_days(days))
        if start is not None:
            store.save_start_time(*_parse_clock(start, "--start"))
        if end is not None:
            store.save_end_time(*_parse_clock(end, "--end"))
        if interval is not None:
            store.save_interval(interval)
    except ConfigError as exc:
        typer.secho(exc.message, fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)
    render_schedule(store.load())
