"""Wires the stores, sampler and API server into one collection session."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Callable, Optional

from app.main import create_app
from app.schemas import Reading
from app.server import ApiServer
from datastore.config_store import ScheduleConfigStore, build_default_config_store
from datastore.credential_store import CredentialStore, build_default_credential_store
from datastore.reading_store import ReadingStore, build_default_reading_store
from sensors.device import load_device_id
from sensors.location import GpsdLocationProvider, LocationProvider
from services.channel import LatestValueChannel
from services.sampler import SamplingLoop
from services.telemetry import TelemetrySnapshot
from settings import get_settings

logger = logging.getLogger(__name__)


@dataclass
class CollectionSession:
    """Owns every component for the lifetime of one collection run.

    The sampler and the API server start and stop independently; a failure in
    one does not prevent the other from shutting down.
    """

    config_store: ScheduleConfigStore
    reading_store: ReadingStore
    credential_store: CredentialStore
    location_provider: LocationProvider
    device_id: str
    telemetry: TelemetrySnapshot = field(default_factory=TelemetrySnapshot)
    channel: LatestValueChannel[Reading] = field(default_factory=LatestValueChannel)
    host: str = "0.0.0.0"
    port: int = 9999
    grace_seconds: float = 2.0
    clock: Callable[[], datetime] = datetime.now
    serve_api: bool = True
    sampler: SamplingLoop = field(init=False)
    server: Optional[ApiServer] = field(init=False, default=None)

    def __post_init__(self) -> None:
        self.sampler = SamplingLoop(
            config_store=self.config_store,
            reading_store=self.reading_store,
            channel=self.channel,
            location_provider=self.location_provider,
            device_id=self.device_id,
            clock=self.clock,
        )
        if self.serve_api:
            app = create_app(
                reading_store=self.reading_store,
                credential_store=self.credential_store,
                telemetry=self.telemetry,
            )
            self.server = ApiServer(
                app, host=self.host, port=self.port, grace_seconds=self.grace_seconds
            )

    def start(self) -> None:
        self.credential_store.get_or_create_token()
        self.sampler.start()
        if self.server is not None:
            self.server.start()

    def stop(self) -> None:
        try:
            self.sampler.stop(timeout=self.grace_seconds)
        except Exception:  # noqa: BLE001 - keep going so the server still stops
            logger.exception("Failed to stop sampling loop")
        if self.server is not None:
            try:
                self.server.stop()
            except Exception:  # noqa: BLE001
                logger.exception("Failed to stop API server")
        self.channel.close()


def build_default_session(location_provider: Optional[LocationProvider] = None) -> CollectionSession:
    """Factory that wires a session from environment settings."""
    settings = get_settings()
    provider = location_provider or GpsdLocationProvider(
        host=settings.gpsd_host, port=settings.gpsd_port
    )
    return CollectionSession(
        config_store=build_default_config_store(),
        reading_store=build_default_reading_store(),
        credential_store=build_default_credential_store(),
        location_provider=provider,
        device_id=load_device_id(Path(settings.device_id_path), settings.device_id),
        telemetry=TelemetrySnapshot(storage_path=settings.storage_path),
        host=settings.api_host,
        port=settings.api_port,
        grace_seconds=settings.shutdown_grace_seconds,
    )
