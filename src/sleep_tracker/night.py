"""Night-window arithmetic shared by every stage of the pipeline."""

from __future__ import annotations

from datetime import date, datetime, timedelta
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .config import NightWindow


def is_night_hour(hour: int, start_hour: int, end_hour: int) -> bool:
    """Return True if ``hour`` falls inside the night window.

    A window with ``start_hour > end_hour`` crosses midnight (e.g. 22 to 6).
    The end hour itself is never part of the night.
    """
    if start_hour > end_hour:
        return hour >= start_hour or hour < end_hour
    return start_hour <= hour < end_hour


def resolve_sleep_date(start: datetime, end: datetime, window: "NightWindow") -> date:
    """Map an episode to the calendar date of the night it belongs to.

    The date the episode ends on is the default. When the window crosses
    midnight and the whole episode sits in the pre-midnight part of it,
    the episode is attributed to the following day.
    """
    sleep_date = end.date()
    if window.crosses_midnight:
        if start.hour >= window.start_hour and end.hour >= window.start_hour:
            sleep_date += timedelta(days=1)
    return sleep_date


def current_night_date(now: datetime, window: "NightWindow") -> date:
    """Sleep date a night starting or in progress at ``now`` resolves to."""
    today = now.date()
    if window.crosses_midnight and now.hour >= window.start_hour:
        return today + timedelta(days=1)
    return today


def last_completed_night(now: datetime, window: "NightWindow") -> date:
    """Sleep date of the most recent night that has already ended at ``now``."""
    today = now.date()
    if now.hour < window.end_hour:
        return today - timedelta(days=1)
    return today
