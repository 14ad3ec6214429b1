"""Persisted key/value settings for the collection schedule."""

from __future__ import annotations

import json
import logging
from dataclasses import replace
from functools import lru_cache
from pathlib import Path
from threading import Lock
from typing import Any, Dict, Iterable, Optional

from errors import ConfigError
from models.records import ScheduleConfig
from settings import get_settings

logger = logging.getLogger(__name__)

KEY_SELECTED_DAYS = "selected_days"
KEY_START_HOUR = "start_hour"
KEY_START_MINUTE = "start_minute"
KEY_END_HOUR = "end_hour"
KEY_END_MINUTE = "end_minute"
KEY_COLLECTION_INTERVAL = "collection_interval"

DEFAULT_SCHEDULE = ScheduleConfig()


def _read_int(data: Dict[str, Any], key: str, default: int, low: int, high: Optional[int]) -> int:
    value = data.get(key)
    if value is None:
        return default
    if isinstance(value, bool) or not isinstance(value, int):
        logger.warning("Malformed schedule value, using default", extra={"reason": key})
        return default
    if value < low or (high is not None and value > high):
        logger.warning("Out-of-range schedule value, using default", extra={"reason": key})
        return default
    return value


def _read_days(data: Dict[str, Any], default: frozenset) -> frozenset:
    value = data.get(KEY_SELECTED_DAYS)
    if value is None:
        return default
    if not isinstance(value, list):
        logger.warning("Malformed schedule value, using default", extra={"reason": KEY_SELECTED_DAYS})
        return default
    days = set()
    for item in value:
        if isinstance(item, bool) or not isinstance(item, int) or not 0 <= item <= 6:
            # unknown entries are ignored individually
            continue
        days.add(item)
    return frozenset(days)


def _validate_time(hour: int, minute: int) -> None:
    if not 0 <= hour <= 23:
        raise ConfigError(f"Hour must be between 0 and 23, got {hour}.")
    if not 0 <= minute <= 59:
        raise ConfigError(f"Minute must be between 0 and 59, got {minute}.")


class ScheduleConfigStore:
    """Reads and writes the schedule, falling back to defaults for bad values.

    The backing file is re-read on every ``load`` so edits made by another
    process (for example the CLI) are picked up on the next sampling tick.
    """

    def __init__(self, persistence_path: Optional[Path] = None) -> None:
        self.persistence_path = persistence_path
        self._values: Dict[str, Any] = {}
        self._lock = Lock()
        if persistence_path:
            persistence_path.parent.mkdir(parents=True, exist_ok=True)

    def load(self) -> ScheduleConfig:
        with self._lock:
            data = self._read_values()
        return ScheduleConfig(
            active_days=_read_days(data, DEFAULT_SCHEDULE.active_days),
            start_hour=_read_int(data, KEY_START_HOUR, DEFAULT_SCHEDULE.start_hour, 0, 23),
            start_minute=_read_int(data, KEY_START_MINUTE, DEFAULT_SCHEDULE.start_minute, 0, 59),
            end_hour=_read_int(data, KEY_END_HOUR, DEFAULT_SCHEDULE.end_hour, 0, 23),
            end_minute=_read_int(data, KEY_END_MINUTE, DEFAULT_SCHEDULE.end_minute, 0, 59),
            interval_seconds=_read_int(
                data, KEY_COLLECTION_INTERVAL, DEFAULT_SCHEDULE.interval_seconds, 1, None
            ),
        )

    def save_active_days(self, days: Iterable[int]) -> None:
        selected = sorted(set(days))
        invalid = [day for day in selected if not 0 <= day <= 6]
        if invalid:
            raise ConfigError(f"Days must be between 0 (Monday) and 6 (Sunday), got {invalid}.")
        self._update({KEY_SELECTED_DAYS: selected})

    def save_start_time(self, hour: int, minute: int) -> None:
        _validate_time(hour, minute)
        self._update({KEY_START_HOUR: hour, KEY_START_MINUTE: minute})

    def save_end_time(self, hour: int, minute: int) -> None:
        _validate_time(hour, minute)
        self._update({KEY_END_HOUR: hour, KEY_END_MINUTE: minute})

    def save_interval(self, seconds: int) -> None:
        if seconds < 1:
            raise ConfigError(f"Interval must be at least one second, got {seconds}.")
        self._update({KEY_COLLECTION_INTERVAL: seconds})

    def save(self, config: ScheduleConfig) -> None:
        """Write every field of ``config`` in one go."""
        _validate_time(config.start_hour, config.start_minute)
        _validate_time(config.end_hour, config.end_minute)
        checked = replace(config, active_days=frozenset(config.active_days))
        if any(not 0 <= day <= 6 for day in checked.active_days):
            raise ConfigError("Days must be between 0 (Monday) and 6 (Sunday).")
        if checked.interval_seconds < 1:
            raise ConfigError("Interval must be at least one second.")
        self._update(
            {
                KEY_SELECTED_DAYS: sorted(checked.active_days),
                KEY_START_HOUR: checked.start_hour,
                KEY_START_MINUTE: checked.start_minute,
                KEY_END_HOUR: checked.end_hour,
                KEY_END_MINUTE: checked.end_minute,
                KEY_COLLECTION_INTERVAL: checked.interval_seconds,
            }
        )

    def _update(self, changes: Dict[str, Any]) -> None:
        with self._lock:
            values = self._read_values()
            values.update(changes)
            self._values = values
            if not self.persistence_path:
                return
            try:
                self.persistence_path.write_text(json.dumps(values, indent=2, sort_keys=True))
            except OSError as exc:
                raise ConfigError(f"Failed to persist schedule: {exc}") from exc

    def _read_values(self) -> Dict[str, Any]:
        if not self.persistence_path:
            return dict(self._values)
        if not self.persistence_path.exists():
            return {}
        try:
            raw = self.persistence_path.read_text() or "{}"
            data = json.loads(raw)
        except (OSError, json.JSONDecodeError):
            logger.warning(
                "Unreadable schedule file, using defaults", extra={"path": str(self.persistence_path)}
            )
            return {}
        return data if isinstance(data, dict) else {}


@lru_cache
def build_default_config_store(path: Optional[str] = None) -> ScheduleConfigStore:
    settings = get_settings()
    store_path = settings.schedule_path if path is None else path
    persistence = Path(store_path) if store_path else None
    return ScheduleConfigStore(persistence_path=persistence)
