"""Utilities to normalize raw screen event records from device exports."""

from __future__ import annotations

import csv
import json
import re
from datetime import datetime
from pathlib import Path
from typing import Any, Iterable, Iterator, Optional, Union

from .models import ScreenEvent, ScreenEventKind

_KIND_ALIASES: dict[str, ScreenEventKind] = {
    "on": ScreenEventKind.ON,
    "1": ScreenEventKind.ON,
    "screen_on": ScreenEventKind.ON,
    "screen_interactive": ScreenEventKind.ON,
    "interactive": ScreenEventKind.ON,
    "unlock": ScreenEventKind.ON,
    "off": ScreenEventKind.OFF,
    "0": ScreenEventKind.OFF,
    "screen_off": ScreenEventKind.OFF,
    "screen_non_interactive": ScreenEventKind.OFF,
    "non_interactive": ScreenEventKind.OFF,
    "lock": ScreenEventKind.OFF,
}

_SEPARATORS = re.compile(r"[\s\-.]+")
_DIGITS = re.compile(r"-?\d+")


def normalize_event_kind(value: Union[str, int, None]) -> Optional[ScreenEventKind]:
    """Map a platform-specific label such as ``SCREEN_INTERACTIVE`` to a kind.

    Returns None for labels that are not screen transitions.
    """
    if value is None:
        return None
    key = _SEPARATORS.sub("_", str(value).strip().lower()).strip("_")
    return _KIND_ALIASES.get(key)


def parse_timestamp_ms(value: Union[str, int, float, None]) -> Optional[int]:
    """Accept epoch milliseconds or an ISO 8601 string (local time if naive)."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return int(value)
    text = value.strip()
    if not text:
        return None
    if _DIGITS.fullmatch(text):
        return int(text)
    try:
        parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        return None
    return int(parsed.timestamp() * 1000)


def normalize_event(
    timestamp: Union[str, int, float, None], kind: Union[str, int, None]
) -> Optional[ScreenEvent]:
    ts = parse_timestamp_ms(timestamp)
    event_kind = normalize_event_kind(kind)
    if ts is None or event_kind is None:
        return None
    return ScreenEvent(timestamp_ms=ts, kind=event_kind)


def load_events_file(path: Path) -> tuple[list[ScreenEvent], int]:
    """Read events from a CSV (``timestamp,kind``) or JSON-lines export.

    Returns the parsed events sorted by time and the number of rows skipped.
    Rows that cannot be parsed are skipped rather than aborting the import.
    """
    path = Path(path)
    events: list[ScreenEvent] = []
    skipped = 0
    with path.open(encoding="utf-8", newline="") as handle:
        if path.suffix.lower() in (".jsonl", ".json", ".ndjson"):
            pairs = _json_lines(handle)
        else:
            reader = csv.DictReader(handle)
            pairs = ((row.get("timestamp"), row.get("kind")) for row in reader)
        for timestamp, kind in pairs:
            event = normalize_event(timestamp, kind)
            if event is None:
                skipped += 1
                continue
            events.append(event)
    events.sort(key=lambda event: event.timestamp_ms)
    return events, skipped


def _json_lines(lines: Iterable[str]) -> Iterator[tuple[Any, Any]]:
    for line in lines:
        if not line.strip():
            continue
        try:
            row = json.loads(line)
        except json.JSONDecodeError:
            yield None, None
            continue
        if not isinstance(row, dict):
            yield None, None
            continue
        yield row.get("timestamp"), row.get("kind")
