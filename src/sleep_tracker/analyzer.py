"""Sleep analysis service: runs the inference pipeline against the database."""

from __future__ import annotations

import logging
import sqlite3
import threading
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from pathlib import Path
from typing import Callable, Iterable, Optional

from .config import AnalysisSettings, ConfigurationError, InferenceSettings, NightWindow
from .db import (
    PREF_MAX_SLEEP_DEBT,
    StorageError,
    database_connection,
    end_of_day,
    episode_exists,
    episodes_between,
    episodes_on_date,
    fetch_screen_events,
    has_overlapping_episodes,
    insert_episode,
    insert_screen_events,
    latest_episode,
    load_debt_settings,
    load_max_sleep_debt,
    load_night_window,
    save_preference,
    soft_delete_episode,
    start_of_day,
)
from .debt import compute_sleep_debt
from .energy import EnergyPoint, energy_points, wake_up_time
from .inference import infer_sleep_periods
from .intervals import extract_off_periods
from .models import OffPeriod, ScreenEvent, SleepDebt, SleepEpisode
from .night import current_night_date, last_completed_night, resolve_sleep_date
from .validation import ValidationError, validate_manual_episode

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class AnalysisReport:
    window_start: Optional[datetime] = None
    window_end: Optional[datetime] = None
    event_count: int = 0
    off_period_count: int = 0
    detected: int = 0
    inserted: int = 0
    skipped: bool = False


@dataclass(slots=True)
class AddEpisodeResult:
    episode: Optional[SleepEpisode] = None
    error: Optional[ValidationError] = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass(slots=True)
class EnergyTimeline:
    sleep_date: date
    wake_up: datetime
    points: list[EnergyPoint]


class SleepAnalyzer:
    """Infers sleep episodes from stored screen events and reports sleep debt.

    Only one analysis runs at a time; a call made while another is in flight
    returns a skipped report instead of waiting.
    """

    def __init__(
        self,
        db_path: Path,
        settings: Optional[AnalysisSettings] = None,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.db_path = Path(db_path)
        self.settings = settings or AnalysisSettings()
        self._clock = clock
        self._lock = threading.Lock()

    @property
    def inference(self) -> InferenceSettings:
        return self.settings.inference

    def is_analyzing(self) -> bool:
        return self._lock.locked()

    def analyze(self, now: Optional[datetime] = None) -> AnalysisReport:
        if not self._lock.acquire(blocking=False):
            logger.info("Sleep analysis already in progress; skipping.")
            return AnalysisReport(skipped=True)
        try:
            return self._analyze_locked(now or self._clock())
        except sqlite3.Error as exc:
            raise StorageError(f"Sleep analysis failed: {exc}") from exc
        finally:
            self._lock.release()

    def _analyze_locked(self, now: datetime) -> AnalysisReport:
        with database_connection(self.db_path) as conn:
            window = load_night_window(conn)
            latest = latest_episode(conn, include_deleted=True)
            start = latest.end if latest else now - self.inference.lookback
            report = AnalysisReport(window_start=start, window_end=now)
            if start >= now:
                return report

            events = fetch_screen_events(conn, start, now)
            periods = extract_off_periods(events, start, now)
            confirmed = infer_sleep_periods(periods, window, self.inference)
            report.event_count = len(events)
            report.off_period_count = len(periods)
            report.detected = len(confirmed)

            for period in confirmed:
                if episode_exists(conn, period.start, period.end):
                    logger.debug("Sleep episode already stored: %s", period)
                    continue
                insert_episode(conn, self._episode_from_period(period, window))
                report.inserted += 1
                logger.debug("Stored new sleep episode: %s", period)

        logger.info(
            "Analyzed %d events (%d off-periods): %d sleep episodes, %d new.",
            report.event_count,
            report.off_period_count,
            report.detected,
            report.inserted,
        )
        return report

    @staticmethod
    def _episode_from_period(period: OffPeriod, window: NightWindow) -> SleepEpisode:
        return SleepEpisode(
            start=period.start,
            end=period.end,
            duration_minutes=period.duration_minutes,
            is_potential_sleep=True,
            sleep_date=resolve_sleep_date(period.start, period.end, window),
        )

    def sleep_debt(self, now: Optional[datetime] = None) -> Optional[SleepDebt]:
        """Compute the current debt and raise the stored worst-debt watermark."""
        now = now or self._clock()
        try:
            with database_connection(self.db_path) as conn:
                window = load_night_window(conn)
                debt_settings = load_debt_settings(conn)
                tonight = current_night_date(now, window)
                range_start = start_of_day(tonight - timedelta(days=debt_settings.analysis_days + 2))
                episodes = episodes_between(conn, range_start, end_of_day(tonight))
                result = compute_sleep_debt(episodes, now, window, debt_settings)
                if result is not None and -result.debt > load_max_sleep_debt(conn):
                    save_preference(conn, PREF_MAX_SLEEP_DEBT, -result.debt)
        except sqlite3.Error as exc:
            raise StorageError(f"Could not compute sleep debt: {exc}") from exc
        return result

    def max_sleep_debt(self) -> float:
        try:
            with database_connection(self.db_path) as conn:
                return load_max_sleep_debt(conn)
        except sqlite3.Error as exc:
            raise StorageError(f"Could not read the worst sleep debt: {exc}") from exc

    def energy_timeline(self, now: Optional[datetime] = None) -> EnergyTimeline:
        now = now or self._clock()
        try:
            with database_connection(self.db_path) as conn:
                window = load_night_window(conn)
                sleep_date = last_completed_night(now, window)
                episodes = episodes_on_date(conn, sleep_date)
        except sqlite3.Error as exc:
            raise StorageError(f"Could not load last night's episodes: {exc}") from exc
        wake_up = wake_up_time(sleep_date, episodes, window)
        return EnergyTimeline(sleep_date=sleep_date, wake_up=wake_up, points=energy_points(wake_up))

    def add_episode(
        self, start: datetime, end: datetime, now: Optional[datetime] = None
    ) -> AddEpisodeResult:
        """Store a manually entered episode after validating it."""
        now = now or self._clock()
        try:
            with database_connection(self.db_path) as conn:
                error = validate_manual_episode(
                    start, end, now, lambda s, e: has_overlapping_episodes(conn, s, e)
                )
                if error is not None:
                    logger.info(
                        "Rejected manual sleep episode %s - %s: %s", start, end, error.message
                    )
                    return AddEpisodeResult(error=error)
                window = load_night_window(conn)
                episode = SleepEpisode(
                    start=start,
                    end=end,
                    duration_minutes=int((end - start).total_seconds() // 60),
                    is_potential_sleep=True,
                    sleep_date=resolve_sleep_date(start, end, window),
                )
                insert_episode(conn, episode)
        except sqlite3.Error as exc:
            raise StorageError(f"Could not store sleep episode: {exc}") from exc
        logger.info("Added manual sleep episode %s", episode)
        return AddEpisodeResult(episode=episode)

    def delete_episode(self, episode_id: int) -> None:
        try:
            with database_connection(self.db_path) as conn:
                soft_delete_episode(conn, episode_id)
        except sqlite3.Error as exc:
            raise StorageError(f"Could not delete sleep episode {episode_id}: {exc}") from exc
        logger.info("Deleted sleep episode id=%d", episode_id)

    def import_events(self, events: Iterable[ScreenEvent]) -> int:
        try:
            with database_connection(self.db_path) as conn:
                inserted = insert_screen_events(conn, events)
        except sqlite3.Error as exc:
            raise StorageError(f"Could not store screen events: {exc}") from exc
        logger.info("Imported %d screen events.", inserted)
        return inserted

    def run_until_stopped(self, stop_event: threading.Event) -> None:
        """Re-run the analysis on a fixed interval until the event is set."""
        logger.info("Starting periodic sleep analysis on %s", self.db_path)
        interval = self.settings.interval.total_seconds()
        while not stop_event.is_set():
            try:
                self.analyze()
            except (StorageError, ConfigurationError):
                logger.exception("Periodic sleep analysis failed; retrying next interval.")
            stop_event.wait(interval)
        logger.info("Periodic sleep analysis stopped.")
