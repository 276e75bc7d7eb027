"""Tests for screen event normalization and file import."""

from __future__ import annotations

import json
from datetime import datetime
from pathlib import Path

import pytest

from sleep_tracker.models import ScreenEventKind
from sleep_tracker.normalization import (
    load_events_file,
    normalize_event,
    normalize_event_kind,
    parse_timestamp_ms,
)


@pytest.mark.parametrize(
    "raw,expected",
    [
        ("SCREEN_INTERACTIVE", ScreenEventKind.ON),
        ("screen on", ScreenEventKind.ON),
        ("On", ScreenEventKind.ON),
        (1, ScreenEventKind.ON),
        ("SCREEN_NON_INTERACTIVE", ScreenEventKind.OFF),
        ("screen-off", ScreenEventKind.OFF),
        ("0", ScreenEventKind.OFF),
        ("lock", ScreenEventKind.OFF),
    ],
)
def test_normalize_event_kind(raw, expected) -> None:
    assert normalize_event_kind(raw) is expected


def test_unknown_kind() -> None:
    assert normalize_event_kind("ACTIVITY_RESUMED") is None
    assert normalize_event_kind(None) is None


def test_parse_timestamp_ms() -> None:
    assert parse_timestamp_ms(1767225600000) == 1767225600000
    assert parse_timestamp_ms("1767225600000") == 1767225600000
    local = datetime(2026, 1, 1, 23, 0)
    assert parse_timestamp_ms("2026-01-01T23:00:00") == int(local.timestamp() * 1000)
    assert parse_timestamp_ms("2026-01-01T00:00:00Z") == 1767225600000
    assert parse_timestamp_ms("yesterday") is None
    assert parse_timestamp_ms("") is None
    assert parse_timestamp_ms(None) is None


def test_normalize_event_rejects_partial_rows() -> None:
    assert normalize_event(None, "on") is None
    assert normalize_event(1000, "wiggle") is None
    event = normalize_event(1000, "off")
    assert event is not None
    assert event.kind is ScreenEventKind.OFF


def test_load_csv(tmp_path: Path) -> None:
    path = tmp_path / "events.csv"
    path.write_text(
        "timestamp,kind\n"
        "2000,SCREEN_INTERACTIVE\n"
        "1000,SCREEN_NON_INTERACTIVE\n"
        "oops,on\n",
        encoding="utf-8",
    )
    events, skipped = load_events_file(path)
    assert [e.timestamp_ms for e in events] == [1000, 2000]
    assert [e.kind for e in events] == [ScreenEventKind.OFF, ScreenEventKind.ON]
    assert skipped == 1


def test_load_jsonl(tmp_path: Path) -> None:
    path = tmp_path / "events.jsonl"
    rows = [
        {"timestamp": 1000, "kind": "off"},
        {"timestamp": 5000, "kind": "on"},
        {"timestamp": 6000, "kind": "notification"},
    ]
    path.write_text("\n".join(json.dumps(r) for r in rows) + "\n\n", encoding="utf-8")
    events, skipped = load_events_file(path)
    assert len(events) == 2
    assert skipped == 1


def test_load_jsonl_skips_malformed_lines(tmp_path: Path) -> None:
    path = tmp_path / "events.jsonl"
    path.write_text(
        '{"timestamp": 1000, "kind": "off"}\n'
        "not json\n"
        "[1, 2]\n"
        '{"timestamp": 5000, "kind": "on"}\n',
        encoding="utf-8",
    )
    events, skipped = load_events_file(path)
    assert [e.kind for e in events] == [ScreenEventKind.OFF, ScreenEventKind.ON]
    assert skipped == 2
