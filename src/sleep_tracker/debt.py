"""Exponentially weighted sleep debt."""

from __future__ import annotations

import logging
import math
from collections import defaultdict
from datetime import date, datetime, timedelta
from typing import Iterable, Optional

from .config import DebtSettings, NightWindow
from .models import DailySleep, SleepDebt, SleepEpisode
from .night import current_night_date

logger = logging.getLogger(__name__)


def latest_counted_night(
    now: datetime, window: NightWindow, episodes: Iterable[SleepEpisode]
) -> date:
    """Return the sleep date that should be ``day_0``.

    While the clock is inside the night window and tonight has no confirmed
    episode yet, tonight is still in progress and the previous night is used
    instead.
    """
    tonight = current_night_date(now, window)
    if not window.contains(now.hour):
        return tonight
    has_tonight = any(_counts(episode) and episode.sleep_date == tonight for episode in episodes)
    if has_tonight:
        return tonight
    logger.debug("Night of %s still in progress; starting debt at the previous night.", tonight)
    return tonight - timedelta(days=1)


def compute_sleep_debt(
    episodes: Iterable[SleepEpisode],
    now: datetime,
    window: NightWindow,
    settings: Optional[DebtSettings] = None,
) -> Optional[SleepDebt]:
    """Sum each night's surplus over the target, weighted by ``exp(-i / tau)``.

    ``i`` is 0 for the most recent counted night and grows going back in
    time. At most ``settings.analysis_days`` nights are used and never more
    than the nights since the earliest stored episode. Returns None when no
    episode falls inside the analysis range.
    """
    settings = settings or DebtSettings()
    episodes = [episode for episode in episodes if _counts(episode)]
    day_zero = latest_counted_night(now, window, episodes)
    first_day = day_zero - timedelta(days=settings.analysis_days - 1)

    minutes_by_date: defaultdict[date, int] = defaultdict(int)
    for episode in episodes:
        if first_day <= episode.sleep_date <= day_zero:
            minutes_by_date[episode.sleep_date] += episode.duration_minutes

    if not minutes_by_date:
        return None

    earliest = min(minutes_by_date)
    nights = min((day_zero - earliest).days + 1, settings.analysis_days)

    total = 0.0
    days: list[DailySleep] = []
    for days_ago in range(nights):
        sleep_date = day_zero - timedelta(days=days_ago)
        hours = minutes_by_date.get(sleep_date, 0) / 60.0
        contribution = (hours - settings.needed_sleep_hours) * math.exp(
            -days_ago / settings.tau_days
        )
        total += contribution
        days.append(
            DailySleep(
                sleep_date=sleep_date,
                sleep_hours=hours,
                days_ago=days_ago,
                contribution=contribution,
            )
        )
    return SleepDebt(debt=total, days=days)


def _counts(episode: SleepEpisode) -> bool:
    return episode.is_potential_sleep and not episode.is_deleted
