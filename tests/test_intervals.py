"""Tests for screen-off period extraction."""

from __future__ import annotations

from datetime import datetime, timedelta

from sleep_tracker.intervals import extract_off_periods
from sleep_tracker.models import ScreenEvent, ScreenEventKind

ON = ScreenEventKind.ON
OFF = ScreenEventKind.OFF

_BASE = datetime(2026, 1, 10, 22, 0)


def _event(minutes: float, kind: ScreenEventKind) -> ScreenEvent:
    return ScreenEvent.at(_BASE + timedelta(minutes=minutes), kind)


def test_empty_stream() -> None:
    assert extract_off_periods([]) == []


def test_single_period() -> None:
    periods = extract_off_periods([_event(0, OFF), _event(95, ON)])
    assert len(periods) == 1
    assert periods[0].start == _BASE
    assert periods[0].end == _BASE + timedelta(minutes=95)
    assert periods[0].duration_minutes == 95


def test_duration_is_truncated_to_whole_minutes() -> None:
    periods = extract_off_periods([_event(0, OFF), _event(89.99, ON)])
    assert periods[0].duration_minutes == 89


def test_latest_unmatched_off_wins() -> None:
    periods = extract_off_periods([_event(0, OFF), _event(10, OFF), _event(40, ON)])
    assert len(periods) == 1
    assert periods[0].start == _BASE + timedelta(minutes=10)
    assert periods[0].duration_minutes == 30


def test_on_without_off_is_ignored() -> None:
    periods = extract_off_periods(
        [_event(0, ON), _event(5, ON), _event(10, OFF), _event(20, ON), _event(30, ON)]
    )
    assert [p.duration_minutes for p in periods] == [10]


def test_trailing_off_is_dropped() -> None:
    periods = extract_off_periods([_event(0, OFF), _event(30, ON), _event(40, OFF)])
    assert len(periods) == 1


def test_tied_timestamps_do_not_produce_empty_period() -> None:
    periods = extract_off_periods([_event(0, OFF), _event(0, ON), _event(5, OFF), _event(9, ON)])
    assert len(periods) == 1
    assert periods[0].start == _BASE + timedelta(minutes=5)
    assert all(p.end > p.start for p in periods)


def test_query_bounds_skip_outside_events() -> None:
    events = [_event(0, OFF), _event(60, ON), _event(120, OFF), _event(200, ON)]
    periods = extract_off_periods(
        events,
        start=_BASE + timedelta(minutes=30),
        end=_BASE + timedelta(minutes=300),
    )
    assert len(periods) == 1
    assert periods[0].start == _BASE + timedelta(minutes=120)


def test_periods_are_chronological_and_disjoint() -> None:
    events = []
    for i in range(5):
        events.append(_event(i * 100, OFF))
        events.append(_event(i * 100 + 50, ON))
    periods = extract_off_periods(events)
    assert len(periods) == 5
    for earlier, later in zip(periods, periods[1:]):
        assert earlier.end <= later.start
