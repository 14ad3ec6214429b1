"""Collection gating: decides whether a sample may be taken at a given time."""

from __future__ import annotations

import logging
from datetime import datetime

from models.records import ScheduleConfig

logger = logging.getLogger(__name__)


def is_day_active(config: ScheduleConfig, now: datetime) -> bool:
    return now.weekday() in config.active_days


def is_time_active(config: ScheduleConfig, now: datetime) -> bool:
    now_minutes = now.hour * 60 + now.minute
    start_minutes = config.start_minutes
    end_minutes = config.end_minutes
    if start_minutes <= end_minutes:
        return start_minutes <= now_minutes <= end_minutes
    # window crosses midnight, e.g. 22:00 -> 02:00
    return now_minutes >= start_minutes or now_minutes <= end_minutes


def is_active_now(config: ScheduleConfig, now: datetime) -> bool:
    """Return True when ``now`` falls on an active day and inside the window.

    ``now`` is taken as local wall-clock time; no timezone conversion is done.
    A window whose start equals its end is active for that single minute.
    """
    if not is_day_active(config, now):
        logger.debug(
            "Collection inactive: day %s not selected", now.strftime("%A"),
            extra={"reason": "day"},
        )
        return False

    active = is_time_active(config, now)
    logger.debug(
        "Collection %s at %02d:%02d (window %02d:%02d-%02d:%02d)",
        "active" if active else "inactive",
        now.hour,
        now.minute,
        config.start_hour,
        config.start_minute,
        config.end_hour,
        config.end_minute,
    )
    return active
