"""Domain models for screen events, off-periods and sleep episodes."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Iterable, Iterator, Optional


class ScreenEventKind(str, Enum):
    ON = "on"
    OFF = "off"


@dataclass(slots=True, frozen=True)
class ScreenEvent:
    """A single screen transition reported by the device."""

    timestamp_ms: int
    kind: ScreenEventKind

    @property
    def timestamp(self) -> datetime:
        return datetime.fromtimestamp(self.timestamp_ms / 1000)

    @classmethod
    def at(cls, moment: datetime, kind: ScreenEventKind) -> "ScreenEvent":
        return cls(timestamp_ms=int(moment.timestamp() * 1000), kind=kind)


@dataclass(slots=True, frozen=True)
class OffPeriod:
    """A closed interval during which the screen stayed off."""

    start: datetime
    end: datetime
    duration_minutes: int


@dataclass(slots=True)
class SleepCandidate:
    period: OffPeriod
    is_sleep: bool = False

    @property
    def start(self) -> datetime:
        return self.period.start

    @property
    def end(self) -> datetime:
        return self.period.end

    @property
    def duration_minutes(self) -> int:
        return self.period.duration_minutes


class CandidateSet:
    """Owned, index-addressed collection of sleep candidates.

    Passes never hold references to candidates; they relabel them by index
    through :meth:`promote` and :meth:`demote` so every transition goes
    through one place.
    """

    __slots__ = ("_items",)

    def __init__(self, periods: Iterable[OffPeriod] = ()) -> None:
        self._items: list[SleepCandidate] = [SleepCandidate(period) for period in periods]

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[SleepCandidate]:
        return iter(self._items)

    def __getitem__(self, index: int) -> SleepCandidate:
        return self._items[index]

    def promote(self, index: int) -> bool:
        """Mark a candidate as sleep. Returns True if the label changed."""
        candidate = self._items[index]
        if candidate.is_sleep:
            return False
        candidate.is_sleep = True
        return True

    def demote(self, index: int) -> bool:
        """Clear the sleep label. Returns True if the label changed."""
        candidate = self._items[index]
        if not candidate.is_sleep:
            return False
        candidate.is_sleep = False
        return True

    def confirmed_indices(self) -> list[int]:
        return [i for i, candidate in enumerate(self._items) if candidate.is_sleep]

    def confirmed(self) -> list[OffPeriod]:
        return [candidate.period for candidate in self._items if candidate.is_sleep]

    def by_start(self) -> list[int]:
        """Indices ordered by start time; ties keep insertion order."""
        return sorted(range(len(self._items)), key=lambda i: self._items[i].start)

    def copy(self) -> "CandidateSet":
        clone = CandidateSet()
        clone._items = [SleepCandidate(c.period, c.is_sleep) for c in self._items]
        return clone


@dataclass(slots=True)
class SleepEpisode:
    """A confirmed sleep interval as stored in the database."""

    start: datetime
    end: datetime
    duration_minutes: int
    sleep_date: date
    is_potential_sleep: bool = True
    is_deleted: bool = False
    id: Optional[int] = None

    @property
    def duration_hours(self) -> float:
        return self.duration_minutes / 60.0


@dataclass(slots=True)
class DailySleep:
    """Sleep accumulated on one resolved night and its weighted contribution."""

    sleep_date: date
    sleep_hours: float
    days_ago: int
    contribution: float


@dataclass(slots=True)
class SleepDebt:
    debt: float
    days: list[DailySleep] = field(default_factory=list)

    @property
    def formatted(self) -> str:
        return format_debt(self.debt)


def format_debt(value: float) -> str:
    """Render a debt value with up to two decimals and an explicit plus sign."""
    text = f"{round(value, 2):.2f}".rstrip("0").rstrip(".")
    if text in ("-0", ""):
        text = "0"
    return f"+{text}" if value > 0 and text != "0" else text
