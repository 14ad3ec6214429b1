from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional


_READINGS_PATH_ENV = "TRACKER_READINGS_PATH"
_CREDENTIALS_PATH_ENV = "TRACKER_CREDENTIALS_PATH"
_SCHEDULE_PATH_ENV = "TRACKER_SCHEDULE_PATH"
_DEVICE_ID_PATH_ENV = "TRACKER_DEVICE_ID_PATH"
_DEVICE_ID_ENV = "TRACKER_DEVICE_ID"
_API_HOST_ENV = "TRACKER_API_HOST"
_API_PORT_ENV = "TRACKER_API_PORT"
_GRACE_ENV = "TRACKER_SHUTDOWN_GRACE_SECONDS"
_STORAGE_PATH_ENV = "TRACKER_STORAGE_PATH"
_GPSD_HOST_ENV = "TRACKER_GPSD_HOST"
_GPSD_PORT_ENV = "TRACKER_GPSD_PORT"
_LOG_LEVEL_ENV = "LOG_LEVEL"


@dataclass(frozen=True)
class Settings:
    readings_path: str
    credentials_path: str
    schedule_path: str
    device_id_path: str
    device_id: Optional[str]
    api_host: str
    api_port: int
    shutdown_grace_seconds: float
    storage_path: str
    gpsd_host: str
    gpsd_port: int
    log_level: str


def _read_str_env(name: str, default: str) -> str:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    return candidate or default


def _read_optional_env(name: str, default: Optional[str]) -> Optional[str]:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    return candidate or None


def _read_port(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    try:
        parsed = int(candidate)
    except ValueError:
        return default
    return parsed if 0 < parsed < 65536 else default


def _read_positive_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    try:
        parsed = float(candidate)
    except ValueError:
        return default
    return parsed if parsed > 0 else default


def _read_log_level(default: str) -> str:
    value = os.getenv(_LOG_LEVEL_ENV)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    return candidate.upper()


@lru_cache
def get_settings() -> Settings:
    return Settings(
        readings_path=_read_str_env(_READINGS_PATH_ENV, "./tmp/readings.jsonl"),
        credentials_path=_read_str_env(_CREDENTIALS_PATH_ENV, "./tmp/credentials.json"),
        schedule_path=_read_str_env(_SCHEDULE_PATH_ENV, "./tmp/schedule.json"),
        device_id_path=_read_str_env(_DEVICE_ID_PATH_ENV, "./tmp/device_id"),
        device_id=_read_optional_env(_DEVICE_ID_ENV, None),
        api_host=_read_str_env(_API_HOST_ENV, "0.0.0.0"),
        api_port=_read_port(_API_PORT_ENV, 9999),
        shutdown_grace_seconds=_read_positive_float(_GRACE_ENV, 2.0),
        storage_path=_read_str_env(_STORAGE_PATH_ENV, "/"),
        gpsd_host=_read_str_env(_GPSD_HOST_ENV, "127.0.0.1"),
        gpsd_port=_read_port(_GPSD_PORT_ENV, 2947),
        log_level=_read_log_level("INFO"),
    )
