"""Timer-driven location sampling."""

from __future__ import annotations

import logging
import threading
from datetime import datetime
from typing import Callable, Optional

from app.schemas import Reading
from datastore.config_store import DEFAULT_SCHEDULE, ScheduleConfigStore
from datastore.reading_store import ReadingStore
from errors import ConfigError, StorageError
from models.records import LocationFix, ScheduleConfig
from sensors.location import LocationProvider, LocationSubscription
from services.channel import LatestValueChannel
from services.schedule import is_active_now

logger = logging.getLogger(__name__)

# Extra time allowed past the interval before a tick gives up waiting for a fix.
_FIX_WAIT_SLACK_SECONDS = 5.0


class SamplingLoop:
    """Consumes fixes on a dedicated worker and persists those the schedule allows.

    The schedule is re-read on every tick. When the configured interval
    changes, the location subscription is replaced so the provider receives
    the new hint from the next tick on.
    """

    def __init__(
        self,
        config_store: ScheduleConfigStore,
        reading_store: ReadingStore,
        channel: LatestValueChannel[Reading],
        location_provider: LocationProvider,
        device_id: str,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.config_store = config_store
        self.reading_store = reading_store
        self.channel = channel
        self.location_provider = location_provider
        self.device_id = device_id
        self.clock = clock
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._subscription: Optional[LocationSubscription] = None
        self._lock = threading.Lock()

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        with self._lock:
            if self.running:
                logger.debug("Sampling loop already running")
                return
            self._stop_event = threading.Event()
            config = self._current_config()
            self._subscription = self.location_provider.subscribe(config.interval_seconds)
            self._thread = threading.Thread(
                target=self._run,
                args=(self._stop_event,),
                name="sampling-loop",
                daemon=True,
            )
            self._thread.start()
        logger.info(
            "Sampling loop started",
            extra={"interval_seconds": config.interval_seconds, "device_id": self.device_id},
        )

    def stop(self, timeout: float = 5.0) -> None:
        with self._lock:
            thread = self._thread
            if thread is None:
                logger.debug("Sampling loop was not running")
                return
            self._stop_event.set()
            subscription = self._subscription
            self._subscription = None
            self._thread = None
        if subscription is not None:
            subscription.close()
        thread.join(timeout=timeout)
        if thread.is_alive():
            logger.warning("Sampling loop did not stop in time", extra={"reason": "timeout"})
        else:
            logger.info("Sampling loop stopped")

    def handle_fix(self, fix: LocationFix) -> Optional[Reading]:
        """Gate, persist and publish one fix. Returns the stored reading or None."""
        config = self._current_config()
        now = self.clock()
        if not is_active_now(config, now):
            logger.debug("Discarding fix outside the collection schedule")
            return None

        reading = Reading(
            latitude=fix.latitude,
            longitude=fix.longitude,
            captured_at_millis=int(now.timestamp() * 1000),
            device_id=self.device_id,
        )
        reading_id = self.reading_store.append(reading)
        stored = reading.model_copy(update={"id": reading_id})
        logger.info(
            "Reading saved",
            extra={"reading_id": reading_id, "device_id": self.device_id},
        )
        self.channel.publish(stored)
        return stored

    def _current_config(self) -> ScheduleConfig:
        try:
            return self.config_store.load()
        except ConfigError as exc:
            logger.warning("Schedule unavailable, using defaults", extra={"reason": exc.message})
            return DEFAULT_SCHEDULE

    def _run(self, stop_event: threading.Event) -> None:
        while not stop_event.is_set():
            with self._lock:
                subscription = self._subscription
            if subscription is None:
                return

            config = self._current_config()
            if config.interval_seconds != subscription.interval_seconds:
                subscription = self._resubscribe(subscription, config.interval_seconds, stop_event)
                if subscription is None:
                    return

            fix = subscription.next_fix(timeout=config.interval_seconds + _FIX_WAIT_SLACK_SECONDS)
            if fix is None or stop_event.is_set():
                continue

            try:
                self.handle_fix(fix)
            except StorageError as exc:
                logger.error("Failed to store reading", extra={"reason": exc.message})
            except ConfigError as exc:
                logger.warning("Skipping tick after config error", extra={"reason": exc.message})
            except Exception:
                logger.exception("Unexpected error while handling fix")

    def _resubscribe(
        self,
        current: LocationSubscription,
        interval_seconds: int,
        stop_event: threading.Event,
    ) -> Optional[LocationSubscription]:
        replacement = self.location_provider.subscribe(interval_seconds)
        with self._lock:
            if stop_event.is_set() or self._subscription is not current:
                replacement.close()
                return None
            self._subscription = replacement
        current.close()
        logger.info("Sampling interval changed", extra={"interval_seconds": interval_seconds})
        return replacement
