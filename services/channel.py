"""Replay-1 broadcast of the most recently saved value."""

from __future__ import annotations

import queue
from threading import Lock
from typing import Generic, Iterator, List, Optional, TypeVar

T = TypeVar("T")

_CLOSED = object()


class Subscription(Generic[T]):
    """Receiving end of a :class:`LatestValueChannel`.

    Values are buffered in a bounded queue; once it is full the oldest pending
    value is discarded to make room, so the publisher is never held up.
    """

    def __init__(self, channel: "LatestValueChannel[T]", maxsize: int) -> None:
        self._channel = channel
        self._queue: "queue.Queue[object]" = queue.Queue(maxsize=maxsize)
        self.closed = False
        self.dropped = 0

    def get(self, timeout: Optional[float] = None) -> Optional[T]:
        """Next value, or None when the wait times out or the subscription closed."""
        if self.closed and self._queue.empty():
            return None
        try:
            item = self._queue.get(timeout=timeout)
        except queue.Empty:
            return None
        if item is _CLOSED:
            self.closed = True
            return None
        return item  # type: ignore[return-value]

    def close(self) -> None:
        self._channel._unsubscribe(self)
        self._offer(_CLOSED)

    def __iter__(self) -> Iterator[T]:
        while True:
            item = self.get()
            if item is None:
                return
            yield item

    def _offer(self, item: object) -> None:
        while True:
            try:
                self._queue.put_nowait(item)
                return
            except queue.Full:
                try:
                    self._queue.get_nowait()
                    self.dropped += 1
                except queue.Empty:
                    pass


class LatestValueChannel(Generic[T]):
    """Single-slot publish/subscribe channel with replay depth one."""

    def __init__(self) -> None:
        self._latest: Optional[T] = None
        self._subscribers: List[Subscription[T]] = []
        self._lock = Lock()

    @property
    def latest(self) -> Optional[T]:
        with self._lock:
            return self._latest

    def publish(self, value: T) -> None:
        with self._lock:
            self._latest = value
            for subscription in self._subscribers:
                subscription._offer(value)

    def subscribe(self, maxsize: int = 16) -> Subscription[T]:
        subscription: Subscription[T] = Subscription(self, maxsize=max(1, maxsize))
        with self._lock:
            if self._latest is not None:
                subscription._offer(self._latest)
            self._subscribers.append(subscription)
        return subscription

    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscribers)

    def close(self) -> None:
        with self._lock:
            subscribers = list(self._subscribers)
        for subscription in subscribers:
            subscription.close()

    def _unsubscribe(self, subscription: Subscription[T]) -> None:
        with self._lock:
            if subscription in self._subscribers:
                self._subscribers.remove(subscription)
