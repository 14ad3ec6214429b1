"""End-to-end: sampling session feeding the HTTP API."""

from __future__ import annotations

import socket
import time
from datetime import datetime

import httpx
from fastapi.testclient import TestClient

from app.main import create_app
from datastore.config_store import ScheduleConfigStore
from datastore.credential_store import CredentialStore
from datastore.reading_store import ReadingStore
from models.records import ScheduleConfig
from sensors.location import ManualLocationProvider
from services.session import CollectionSession


class FakeClock:
    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now


def _free_port() -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


def _session(tmp_path, clock: FakeClock, serve_api: bool, port: int = 0) -> CollectionSession:
    config_store = ScheduleConfigStore(persistence_path=tmp_path / "schedule.json")
    config_store.save(
        ScheduleConfig(start_hour=9, start_minute=0, end_hour=17, end_minute=0, interval_seconds=10)
    )
    return CollectionSession(
        config_store=config_store,
        reading_store=ReadingStore(persistence_path=tmp_path / "readings.jsonl"),
        credential_store=CredentialStore(persistence_path=tmp_path / "credentials.json"),
        location_provider=ManualLocationProvider(),
        device_id="device-e2e",
        host="127.0.0.1",
        port=port or _free_port(),
        grace_seconds=1.0,
        clock=clock,
        serve_api=serve_api,
    )


def test_fix_in_window_is_served_and_fix_outside_is_not(tmp_path) -> None:
    # Monday 2024-01-01
    clock = FakeClock(datetime(2024, 1, 1, 12, 0))
    session = _session(tmp_path, clock, serve_api=False)
    provider: ManualLocationProvider = session.location_provider  # type: ignore[assignment]
    observer = session.channel.subscribe()
    session.start()
    try:
        provider.push(40.4168, -3.7038)
        saved = observer.get(timeout=3)
        assert saved is not None

        clock.now = datetime(2024, 1, 1, 20, 0)
        provider.push(41.0, -4.0)
        time.sleep(0.3)
    finally:
        session.stop()

    noon_millis = int(datetime(2024, 1, 1, 12, 0).timestamp() * 1000)
    evening_millis = int(datetime(2024, 1, 1, 20, 0).timestamp() * 1000)
    assert saved.captured_at_millis == noon_millis
    assert session.reading_store.count() == 1

    app = create_app(
        reading_store=session.reading_store,
        credential_store=session.credential_store,
        telemetry=session.telemetry,
    )
    with TestClient(app) as client:
        headers = {"Authorization": f"Bearer {session.credential_store.get_or_create_token()}"}
        response = client.get(
            "/api/sensor_data",
            params={"start_time": noon_millis - 1000, "end_time": evening_millis + 1000},
            headers=headers,
        )

    assert response.status_code == 200
    assert response.json() == [
        {
            "id": 1,
            "latitude": 40.4168,
            "longitude": -3.7038,
            "timestamp": noon_millis,
            "deviceId": "device-e2e",
        }
    ]


def test_session_runs_sampler_and_server_together(tmp_path) -> None:
    clock = FakeClock(datetime(2024, 1, 1, 10, 30))
    session = _session(tmp_path, clock, serve_api=True)
    provider: ManualLocationProvider = session.location_provider  # type: ignore[assignment]
    observer = session.channel.subscribe()
    session.start()
    try:
        assert session.server is not None
        assert session.server.wait_until_started(timeout=10)
        provider.push(52.0, 17.0)
        assert observer.get(timeout=3) is not None

        token = session.credential_store.get_or_create_token()
        response = httpx.get(
            f"http://127.0.0.1:{session.port}/api/sensor_data",
            params={"start_time": 0, "end_time": 2**62},
            headers={"Authorization": f"Bearer {token}"},
            timeout=5,
        )
        assert response.status_code == 200
        assert [item["latitude"] for item in response.json()] == [52.0]
    finally:
        session.stop()

    assert session.sampler.running is False
    assert session.server.running is False
    assert provider.active_subscriptions == 0


def test_stop_is_safe_when_never_started(tmp_path) -> None:
    session = _session(tmp_path, FakeClock(datetime(2024, 1, 1, 12, 0)), serve_api=True)

    session.stop()

    assert session.sampler.running is False
