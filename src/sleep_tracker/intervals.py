"""Turn a screen on/off event stream into closed screen-off periods."""

from __future__ import annotations

from datetime import datetime
from typing import Iterable, Optional

from .models import OffPeriod, ScreenEvent, ScreenEventKind

MS_PER_MINUTE = 60_000


def extract_off_periods(
    events: Iterable[ScreenEvent],
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
) -> list[OffPeriod]:
    """Pair each OFF event with the next ON event.

    Only the most recent unmatched OFF is remembered. ON events without a
    pending OFF are ignored and a trailing OFF is dropped, so malformed
    streams simply yield fewer periods.
    """
    start_ms = _to_ms(start) if start is not None else None
    end_ms = _to_ms(end) if end is not None else None

    periods: list[OffPeriod] = []
    pending_off: Optional[int] = None
    for event in events:
        ts = event.timestamp_ms
        if start_ms is not None and ts < start_ms:
            continue
        if end_ms is not None and ts > end_ms:
            continue

        if event.kind is ScreenEventKind.OFF:
            pending_off = ts
        elif pending_off is not None:
            if ts > pending_off:
                periods.append(
                    OffPeriod(
                        start=datetime.fromtimestamp(pending_off / 1000),
                        end=datetime.fromtimestamp(ts / 1000),
                        duration_minutes=(ts - pending_off) // MS_PER_MINUTE,
                    )
                )
            pending_off = None
    return periods


def _to_ms(value: datetime) -> int:
    return int(value.timestamp() * 1000)
