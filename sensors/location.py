"""Location providers feeding fixes to the sampling loop.

A provider hands out :class:`LocationSubscription` objects. Each subscription
is a bounded buffer of fixes consumed by a single reader through
``next_fix(timeout)``; closing it releases whatever the provider holds for it
and wakes a reader blocked on ``next_fix``.
"""

from __future__ import annotations

import json
import logging
import math
import queue
import socket
import threading
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Callable, List, Optional

from models.records import LocationFix

logger = logging.getLogger(__name__)

_CLOSED = object()


class LocationSubscription:
    def __init__(
        self,
        interval_seconds: float,
        on_close: Optional[Callable[["LocationSubscription"], None]] = None,
        maxsize: int = 64,
    ) -> None:
        self.interval_seconds = interval_seconds
        self._on_close = on_close
        self._queue: "queue.Queue[object]" = queue.Queue(maxsize=maxsize)
        self._closed = threading.Event()

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    def deliver(self, fix: LocationFix) -> bool:
        """Buffer ``fix`` for the reader; returns False once closed."""
        if self.closed:
            return False
        self._offer(fix)
        return True

    def next_fix(self, timeout: Optional[float] = None) -> Optional[LocationFix]:
        if self.closed and self._queue.empty():
            return None
        try:
            item = self._queue.get(timeout=timeout)
        except queue.Empty:
            return None
        if item is _CLOSED:
            return None
        return item  # type: ignore[return-value]

    def close(self) -> None:
        if self.closed:
            return
        self._closed.set()
        self._offer(_CLOSED)
        if self._on_close is not None:
            self._on_close(self)

    def _offer(self, item: object) -> None:
        while True:
            try:
                self._queue.put_nowait(item)
                return
            except queue.Full:
                try:
                    self._queue.get_nowait()
                except queue.Empty:
                    pass


class LocationProvider(ABC):
    @abstractmethod
    def subscribe(self, interval_seconds: float) -> LocationSubscription:
        """Start delivering fixes roughly every ``interval_seconds``."""


class ManualLocationProvider(LocationProvider):
    """Provider whose fixes are pushed in by the caller."""

    def __init__(self) -> None:
        self._subscriptions: List[LocationSubscription] = []
        self._lock = threading.Lock()

    def subscribe(self, interval_seconds: float) -> LocationSubscription:
        subscription = LocationSubscription(interval_seconds, on_close=self._release)
        with self._lock:
            self._subscriptions.append(subscription)
        return subscription

    def push(self, latitude: float, longitude: float, time: Optional[datetime] = None) -> int:
        """Deliver a fix to every open subscription; returns how many received it."""
        fix = LocationFix(
            latitude=latitude,
            longitude=longitude,
            time=time or datetime.now(timezone.utc),
        )
        with self._lock:
            subscriptions = list(self._subscriptions)
        return sum(1 for subscription in subscriptions if subscription.deliver(fix))

    @property
    def active_subscriptions(self) -> int:
        with self._lock:
            return len(self._subscriptions)

    def _release(self, subscription: LocationSubscription) -> None:
        with self._lock:
            if subscription in self._subscriptions:
                self._subscriptions.remove(subscription)


def _to_float(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        parsed = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(parsed) or math.isinf(parsed):
        return None
    return parsed


def _parse_gps_time(value: Any) -> Optional[datetime]:
    if not isinstance(value, str) or not value.strip():
        return None
    candidate = value.strip()
    if candidate.endswith("Z"):
        candidate = candidate[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(candidate)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def parse_tpv(line: str) -> Optional[LocationFix]:
    """Turn one gpsd JSON report into a fix, or None if it carries no 2D fix."""
    try:
        report = json.loads(line)
    except json.JSONDecodeError:
        return None
    if not isinstance(report, dict) or report.get("class") != "TPV":
        return None
    mode = report.get("mode") or 0
    if not isinstance(mode, int) or mode < 2:
        return None
    latitude = _to_float(report.get("lat"))
    longitude = _to_float(report.get("lon"))
    if latitude is None or longitude is None:
        return None
    return LocationFix(
        latitude=latitude,
        longitude=longitude,
        time=_parse_gps_time(report.get("time")) or datetime.now(timezone.utc),
    )


class GpsdLocationProvider(LocationProvider):
    """Reads TPV reports from a gpsd daemon over TCP (like ``gpspipe -w``)."""

    WATCH_COMMAND = b'?WATCH={"enable":true,"json":true}\n'

    def __init__(
        self,
        host: str = "127.0.0.1",
        port: int = 2947,
        connect_timeout: float = 5.0,
        reconnect_delay: float = 1.0,
    ) -> None:
        self.host = host
        self.port = port
        self.connect_timeout = connect_timeout
        self.reconnect_delay = reconnect_delay

    def subscribe(self, interval_seconds: float) -> LocationSubscription:
        stop = threading.Event()
        subscription = LocationSubscription(interval_seconds, on_close=lambda _s: stop.set())
        thread = threading.Thread(
            target=self._run,
            args=(subscription, stop),
            name="gpsd-reader",
            daemon=True,
        )
        thread.start()
        return subscription

    def _run(self, subscription: LocationSubscription, stop: threading.Event) -> None:
        last_delivered: Optional[float] = None
        while not stop.is_set():
            try:
                with socket.create_connection(
                    (self.host, self.port), timeout=self.connect_timeout
                ) as sock:
                    sock.sendall(self.WATCH_COMMAND)
                    with sock.makefile(mode="r", encoding="utf-8", errors="replace") as stream:
                        for line in stream:
                            if stop.is_set():
                                break
                            fix = parse_tpv(line.strip())
                            if fix is None:
                                continue
                            now = fix.time.timestamp()
                            # gpsd reports about once a second; honour the interval hint
                            if (
                                last_delivered is not None
                                and now - last_delivered < subscription.interval_seconds
                            ):
                                continue
                            last_delivered = now
                            subscription.deliver(fix)
            except (OSError, ValueError) as exc:
                logger.warning(
                    "gpsd connection failed, retrying",
                    extra={"reason": str(exc), "path": f"{self.host}:{self.port}"},
                )
            stop.wait(self.reconnect_delay)
