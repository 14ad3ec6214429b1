from __future__ import annotations

import time
from datetime import datetime
from typing import Callable, List

import pytest

from app.schemas import Reading
from datastore.config_store import ScheduleConfigStore
from datastore.reading_store import ReadingStore
from errors import StorageError
from models.records import LocationFix, ScheduleConfig
from sensors.location import ManualLocationProvider
from services.channel import LatestValueChannel
from services.sampler import SamplingLoop


class FakeClock:
    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now


class FlakyReadingStore(ReadingStore):
    """Fails the first ``failures`` appends."""

    def __init__(self, failures: int, error: Exception | None = None) -> None:
        super().__init__()
        self.failures = failures
        self.error = error or StorageError("disk full")
        self.attempts = 0

    def append(self, reading: Reading) -> int:
        self.attempts += 1
        if self.attempts <= self.failures:
            raise self.error
        return super().append(reading)


def _wait_for(predicate: Callable[[], bool], timeout: float = 3.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.02)
    return predicate()


def _config_store(**overrides) -> ScheduleConfigStore:
    store = ScheduleConfigStore()
    interval_seconds = overrides.pop("interval_seconds", 1)
    store.save(
        ScheduleConfig(
            start_hour=9,
            start_minute=0,
            end_hour=17,
            end_minute=0,
            interval_seconds=interval_seconds,
            **overrides,
        )
    )
    return store


def _fix(latitude: float = 40.4168, longitude: float = -3.7038) -> LocationFix:
    return LocationFix(latitude=latitude, longitude=longitude, time=datetime(2024, 1, 1, 12, 0))


@pytest.fixture
def clock() -> FakeClock:
    # Monday noon
    return FakeClock(datetime(2024, 1, 1, 12, 0))


def _loop(clock: FakeClock, store: ReadingStore | None = None, **config) -> SamplingLoop:
    return SamplingLoop(
        config_store=_config_store(**config),
        reading_store=store or ReadingStore(),
        channel=LatestValueChannel(),
        location_provider=ManualLocationProvider(),
        device_id="device-abc",
        clock=clock,
    )


def test_fix_inside_window_is_stored_and_published(clock: FakeClock) -> None:
    loop = _loop(clock)
    subscription = loop.channel.subscribe()

    stored = loop.handle_fix(_fix())

    assert stored is not None
    assert stored.id == 1
    assert stored.latitude == 40.4168
    assert stored.longitude == -3.7038
    assert stored.device_id == "device-abc"
    assert stored.captured_at_millis == int(clock.now.timestamp() * 1000)
    assert subscription.get(timeout=0.1) == stored
    assert loop.reading_store.count() == 1


def test_fix_outside_window_is_discarded(clock: FakeClock) -> None:
    loop = _loop(clock)
    subscription = loop.channel.subscribe()
    clock.now = datetime(2024, 1, 1, 20, 0)

    assert loop.handle_fix(_fix()) is None
    assert loop.reading_store.count() == 0
    assert subscription.get(timeout=0.05) is None


def test_fix_on_inactive_day_is_discarded(clock: FakeClock) -> None:
    loop = _loop(clock, active_days=frozenset({5, 6}))

    assert loop.handle_fix(_fix()) is None
    assert loop.reading_store.count() == 0


def test_failed_write_is_not_published(clock: FakeClock) -> None:
    loop = _loop(clock, store=FlakyReadingStore(failures=1))

    with pytest.raises(StorageError):
        loop.handle_fix(_fix())

    assert loop.channel.latest is None


def test_running_loop_persists_pushed_fixes(clock: FakeClock) -> None:
    loop = _loop(clock)
    provider: ManualLocationProvider = loop.location_provider  # type: ignore[assignment]
    subscription = loop.channel.subscribe()
    loop.start()
    try:
        assert provider.push(1.5, 2.5) == 1
        published = subscription.get(timeout=3)
    finally:
        loop.stop()

    assert published is not None
    assert (published.latitude, published.longitude) == (1.5, 2.5)
    assert loop.reading_store.count() == 1


def test_loop_survives_storage_errors(clock: FakeClock) -> None:
    store = FlakyReadingStore(failures=1)
    loop = _loop(clock, store=store)
    provider: ManualLocationProvider = loop.location_provider  # type: ignore[assignment]
    loop.start()
    try:
        provider.push(1.0, 1.0)
        assert _wait_for(lambda: store.attempts == 1)
        provider.push(2.0, 2.0)
        assert _wait_for(lambda: store.count() == 1)
        assert loop.running
    finally:
        loop.stop()

    latest = store.latest()
    assert latest is not None
    assert latest.latitude == 2.0


def test_loop_survives_unexpected_errors(clock: FakeClock) -> None:
    store = FlakyReadingStore(failures=1, error=RuntimeError("boom"))
    loop = _loop(clock, store=store)
    provider: ManualLocationProvider = loop.location_provider  # type: ignore[assignment]
    loop.start()
    try:
        provider.push(1.0, 1.0)
        assert _wait_for(lambda: store.attempts == 1)
        provider.push(3.0, 3.0)
        assert _wait_for(lambda: store.count() == 1)
        assert loop.running
    finally:
        loop.stop()

    latest = store.latest()
    assert latest is not None
    assert latest.latitude == 3.0


def test_stop_releases_location_subscription(clock: FakeClock) -> None:
    loop = _loop(clock)
    provider: ManualLocationProvider = loop.location_provider  # type: ignore[assignment]

    loop.start()
    assert provider.active_subscriptions == 1
    loop.stop()

    assert provider.active_subscriptions == 0
    assert loop.running is False
    assert provider.push(1.0, 1.0) == 0


def test_start_and_stop_are_idempotent(clock: FakeClock) -> None:
    loop = _loop(clock)
    provider: ManualLocationProvider = loop.location_provider  # type: ignore[assignment]

    loop.stop()
    loop.start()
    loop.start()
    try:
        assert provider.active_subscriptions == 1
    finally:
        loop.stop()
        loop.stop()
    assert provider.active_subscriptions == 0


def test_interval_change_resubscribes_on_next_tick(clock: FakeClock) -> None:
    loop = _loop(clock, interval_seconds=1)
    provider: ManualLocationProvider = loop.location_provider  # type: ignore[assignment]
    seen: List[float] = []
    original_subscribe = provider.subscribe

    def recording_subscribe(interval_seconds: float):
        seen.append(interval_seconds)
        return original_subscribe(interval_seconds)

    provider.subscribe = recording_subscribe  # type: ignore[method-assign]
    loop.start()
    try:
        loop.config_store.save_interval(2)
        provider.push(3.0, 3.0)
        assert _wait_for(lambda: seen == [1, 2])
        assert _wait_for(lambda: provider.active_subscriptions == 1)
    finally:
        loop.stop()
