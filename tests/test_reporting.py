"""Tests for nightly totals and duration formatting."""

from __future__ import annotations

from datetime import date, datetime, timedelta

from sleep_tracker.reporting import format_duration, nightly_totals
from sleep_tracker.models import SleepEpisode


def _episode(start: datetime, minutes: int, sleep_date: date, **kwargs) -> SleepEpisode:
    return SleepEpisode(
        start=start,
        end=start + timedelta(minutes=minutes),
        duration_minutes=minutes,
        sleep_date=sleep_date,
        **kwargs,
    )


def test_nightly_totals_groups_and_sorts() -> None:
    episodes = [
        _episode(datetime(2026, 1, 1, 23, 0), 400, date(2026, 1, 2)),
        _episode(datetime(2026, 1, 2, 23, 0), 300, date(2026, 1, 3)),
        _episode(datetime(2026, 1, 3, 7, 0), 40, date(2026, 1, 3)),
        _episode(datetime(2026, 1, 3, 9, 0), 60, date(2026, 1, 3), is_deleted=True),
    ]
    totals = nightly_totals(episodes)
    assert [n.sleep_date for n in totals] == [date(2026, 1, 3), date(2026, 1, 2)]
    assert [n.total_minutes for n in totals] == [340, 400]
    assert [e.duration_minutes for e in totals[0].episodes] == [300, 40]


def test_night_label_spans_previous_day() -> None:
    totals = nightly_totals([_episode(datetime(2026, 2, 28, 23, 0), 400, date(2026, 3, 1))])
    assert totals[0].label == "Feb 28 - Mar 1"


def test_nightly_totals_empty() -> None:
    assert nightly_totals([]) == []


def test_format_duration() -> None:
    assert format_duration(0) == "00:00:00"
    assert format_duration(7 * 3600 + 30 * 60) == "07:30:00"
    assert format_duration(59.6) == "00:01:00"
