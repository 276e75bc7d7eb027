"""Simple reporting utilities for CLI output."""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from pathlib import Path
from typing import Iterable, Optional

from .analyzer import SleepAnalyzer
from .db import database_connection, fetch_all_episodes, load_night_window
from .models import SleepEpisode, format_debt


@dataclass(slots=True)
class NightTotal:
    sleep_date: date
    total_minutes: int
    episodes: list[SleepEpisode] = field(default_factory=list)

    @property
    def label(self) -> str:
        previous = self.sleep_date - timedelta(days=1)
        return f"{previous:%b} {previous.day} - {self.sleep_date:%b} {self.sleep_date.day}"


def nightly_totals(episodes: Iterable[SleepEpisode]) -> list[NightTotal]:
    """Group non-deleted episodes by sleep date, newest night first."""
    grouped: defaultdict[date, list[SleepEpisode]] = defaultdict(list)
    for episode in episodes:
        if episode.is_deleted:
            continue
        grouped[episode.sleep_date].append(episode)
    return [
        NightTotal(
            sleep_date=sleep_date,
            total_minutes=sum(e.duration_minutes for e in grouped[sleep_date]),
            episodes=sorted(grouped[sleep_date], key=lambda e: e.start),
        )
        for sleep_date in sorted(grouped, reverse=True)
    ]


class SummaryPrinter:
    """Render human-readable summaries in the console."""

    def __init__(self, db_path: Path) -> None:
        self.db_path = Path(db_path)
        self._analyzer = SleepAnalyzer(self.db_path)

    def print_sleep_debt(self, now: Optional[datetime] = None) -> None:
        debt = self._analyzer.sleep_debt(now)
        if debt is None:
            print("No sleep recorded yet.")
            return

        print(f"Sleep debt: {debt.formatted} h")
        print(f"Worst debt: {format_debt(-self._analyzer.max_sleep_debt())} h")
        print("-" * 40)
        for day in debt.days:
            print(
                f"  {day.sleep_date:%Y-%m-%d}  {format_duration(day.sleep_hours * 3600)}"
                f"  {day.contribution:+.2f}"
            )

    def print_nights(self, limit: int = 14) -> None:
        with database_connection(self.db_path) as conn:
            nights = nightly_totals(fetch_all_episodes(conn))
            window = load_night_window(conn)
        if not nights:
            print("No sleep recorded yet.")
            return

        print(f"Night window: {window.start_hour:02d}:00 - {window.end_hour:02d}:00")
        print("-" * 40)
        for night in nights[:limit]:
            print(f"{night.label:<20} {format_duration(night.total_minutes * 60)}")
            for episode in night.episodes:
                print(
                    f"  #{episode.id:<5} {episode.start:%Y-%m-%d %H:%M} -> "
                    f"{episode.end:%Y-%m-%d %H:%M}  {format_duration(episode.duration_minutes * 60)}"
                )

    def print_energy(self, now: Optional[datetime] = None) -> None:
        timeline = self._analyzer.energy_timeline(now)
        print(f"Night of {timeline.sleep_date:%Y-%m-%d}")
        for point in timeline.points:
            print(f"  {point.type.value:<14} {point.time:%H:%M}")


def format_duration(seconds: float) -> str:
    total_seconds = int(round(seconds))
    hours, remainder = divmod(total_seconds, 3600)
    minutes, secs = divmod(remainder, 60)
    return f"{hours:02d}:{minutes:02d}:{secs:02d}"
