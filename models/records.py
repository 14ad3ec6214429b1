"""Domain models shared across services."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import FrozenSet

ALL_DAYS: FrozenSet[int] = frozenset(range(7))


@dataclass(frozen=True, slots=True)
class LocationFix:
    """A single position delivered by a location provider."""

    latitude: float
    longitude: float
    time: datetime


@dataclass(frozen=True, slots=True)
class ScheduleConfig:
    """Active-collection schedule. Days use 0=Monday .. 6=Sunday."""

    active_days: FrozenSet[int] = field(default=ALL_DAYS)
    start_hour: int = 22
    start_minute: int = 0
    end_hour: int = 0
    end_minute: int = 59
    interval_seconds: int = 30

    @property
    def start_minutes(self) -> int:
        return self.start_hour * 60 + self.start_minute

    @property
    def end_minutes(self) -> int:
        return self.end_hour * 60 + self.end_minute

    @property
    def wraps_midnight(self) -> bool:
        return self.start_minutes > self.end_minutes
