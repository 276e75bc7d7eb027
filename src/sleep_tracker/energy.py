"""Wake-up time and the daily energy timeline derived from it."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from enum import Enum
from typing import Iterable

from .config import NightWindow
from .models import SleepEpisode

WAKE_UP_WINDOW = timedelta(hours=3)


class EnergyPointType(str, Enum):
    WAKE_UP = "wake_up"
    MORNING_PEAK = "morning_peak"
    AFTERNOON_DIP = "afternoon_dip"
    EVENING_PEAK = "evening_peak"


# Offsets from wake-up.
_ENERGY_OFFSETS: tuple[tuple[EnergyPointType, timedelta], ...] = (
    (EnergyPointType.WAKE_UP, timedelta(0)),
    (EnergyPointType.MORNING_PEAK, timedelta(hours=3)),
    (EnergyPointType.AFTERNOON_DIP, timedelta(hours=8)),
    (EnergyPointType.EVENING_PEAK, timedelta(hours=11)),
)


@dataclass(slots=True)
class EnergyPoint:
    time: datetime
    type: EnergyPointType


def night_bounds(sleep_date: date, window: NightWindow) -> tuple[datetime, datetime]:
    """Start and end of the night window that resolves to ``sleep_date``."""
    end = datetime.combine(sleep_date, time(hour=window.end_hour))
    start_day = sleep_date - timedelta(days=1) if window.crosses_midnight else sleep_date
    start = datetime.combine(start_day, time(hour=window.start_hour))
    return start, end


def wake_up_time(
    sleep_date: date, episodes: Iterable[SleepEpisode], window: NightWindow
) -> datetime:
    """Latest end among the night's episodes, or the window end if none qualify.

    Episodes count when they start after the night opens and before three
    hours past its end.
    """
    night_start, night_end = night_bounds(sleep_date, window)
    cutoff = night_end + WAKE_UP_WINDOW
    ends = [
        episode.end
        for episode in episodes
        if not episode.is_deleted and night_start < episode.start < cutoff
    ]
    return max(ends) if ends else night_end


def energy_points(wake_up: datetime) -> list[EnergyPoint]:
    return [EnergyPoint(time=wake_up + offset, type=kind) for kind, offset in _ENERGY_OFFSETS]
