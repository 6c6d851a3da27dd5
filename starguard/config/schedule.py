"""Schedule checks that suppress issue activity on configured weekdays."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Literal
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from loguru import logger

from starguard.config.schema import ScheduleConfig

type ScheduleAction = Literal["log", "issue", "ping", "fix"]

_WEEKDAYS = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")
_MAX_DAYS = 3
# Suppressing issue creation also suppresses pings.
_IMPLIED_BY: dict[str, tuple[str, ...]] = {"ping": ("issue",)}


def should_perform(
    schedule: ScheduleConfig | None, action: ScheduleAction, at: datetime | None = None
) -> bool:
    """False when ``action`` is suppressed at ``at`` by ``schedule``."""
    if schedule is None:
        return True
    allowed = schedule.actions.get(action)
    for implied in _IMPLIED_BY.get(action, ()):
        if schedule.actions.get(implied) is False:
            allowed = False
    if allowed is None or allowed:
        return True

    try:
        zone = ZoneInfo(schedule.timezone or "UTC")
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning(f"Unknown schedule timezone {schedule.timezone!r}, ignoring schedule")
        return True
    now = (at or datetime.now(UTC)).astimezone(zone)
    today = _WEEKDAYS[now.weekday()]
    return all(day.lower() != today for day in schedule.days[:_MAX_DAYS])


def merge_schedules(*layers: ScheduleConfig | None) -> ScheduleConfig | None:
    """The most specific configured schedule wins."""
    merged = None
    for layer in layers:
        if layer is not None:
            merged = layer
    return merged
