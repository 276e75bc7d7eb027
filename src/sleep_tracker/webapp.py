"""FastAPI application that exposes a local API for the sleep tracker."""

from __future__ import annotations

import logging
import sqlite3
import threading
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Dict, Optional

from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, ConfigDict, Field

from .analyzer import SleepAnalyzer
from .config import AnalysisSettings, ConfigurationError, DebtSettings, NightWindow
from .db import (
    StorageError,
    database_connection,
    end_of_day,
    episodes_between,
    fetch_all_episodes,
    load_debt_settings,
    load_night_window,
    save_debt_settings,
    save_night_window,
)
from .models import SleepEpisode
from .normalization import normalize_event
from .paths import get_db_path
from .reporting import nightly_totals

logger = logging.getLogger(__name__)


class AnalysisRunner:
    """Own the background thread that re-runs sleep analysis on an interval."""

    def __init__(self, analyzer: SleepAnalyzer) -> None:
        self._analyzer = analyzer
        self._guard = threading.Lock()
        self._worker: Optional[tuple[threading.Thread, threading.Event]] = None

    def start(self) -> None:
        with self._guard:
            if self._alive():
                return
            stop_event = threading.Event()
            worker = threading.Thread(
                target=self._analyzer.run_until_stopped,
                args=(stop_event,),
                name="sleep-analysis",
                daemon=True,
            )
            self._worker = (worker, stop_event)
            worker.start()
        logger.info("Analysis background thread started.")

    def stop(self, timeout: float = 10.0) -> None:
        with self._guard:
            if not self._alive():
                return
            worker, stop_event = self._worker
            self._worker = None
        stop_event.set()
        worker.join(timeout=timeout)
        logger.info("Analysis background thread stopped.")

    def is_running(self) -> bool:
        with self._guard:
            return self._alive()

    def _alive(self) -> bool:
        return self._worker is not None and self._worker[0].is_alive()


class EpisodePayload(BaseModel):
    start: datetime
    end: datetime

    model_config = ConfigDict(extra="forbid")


class SettingsPayload(BaseModel):
    night_start_hour: Optional[int] = None
    night_end_hour: Optional[int] = None
    needed_sleep_hours: Optional[float] = None
    tau_days: Optional[float] = None

    model_config = ConfigDict(extra="forbid")


class ScreenEventPayload(BaseModel):
    timestamp: Any
    kind: Any

    model_config = ConfigDict(extra="forbid")


class ScreenEventBatch(BaseModel):
    events: list[ScreenEventPayload] = Field(default_factory=list)

    model_config = ConfigDict(extra="forbid")


def create_app(
    *,
    db_path: Optional[Path] = None,
    settings: Optional[AnalysisSettings] = None,
    background: bool = True,
) -> FastAPI:
    """Instantiate the FastAPI application."""
    resolved_db_path = Path(db_path or get_db_path())
    resolved_settings = settings or AnalysisSettings()
    analyzer = SleepAnalyzer(resolved_db_path, resolved_settings)
    runner = AnalysisRunner(analyzer)

    app = FastAPI(title="Sleep Tracker", version="0.1.0")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.db_path = resolved_db_path
    app.state.analyzer = analyzer
    app.state.analysis_runner = runner

    @app.on_event("startup")
    async def _startup() -> None:
        logging.basicConfig(
            level=logging.INFO,
            format="%(asctime)s %(levelname)s %(name)s %(message)s",
        )
        if background:
            runner.start()

    @app.on_event("shutdown")
    async def _shutdown() -> None:
        runner.stop()

    @app.get("/api/status")
    def status(request: Request) -> Dict[str, Any]:
        return {
            "analysis_running": request.app.state.analysis_runner.is_running(),
            "analysis_in_progress": request.app.state.analyzer.is_analyzing(),
            "database_path": str(request.app.state.db_path),
            "interval_minutes": resolved_settings.interval.total_seconds() / 60.0,
        }

    @app.post("/api/analyze")
    def analyze(request: Request) -> Dict[str, Any]:
        try:
            report = request.app.state.analyzer.analyze()
        except StorageError as exc:
            raise HTTPException(status_code=500, detail=str(exc)) from exc
        except ConfigurationError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        return {
            "skipped": report.skipped,
            "window_start": _iso(report.window_start),
            "window_end": _iso(report.window_end),
            "events": report.event_count,
            "off_periods": report.off_period_count,
            "detected": report.detected,
            "inserted": report.inserted,
        }

    @app.get("/api/debt")
    def debt(request: Request) -> Dict[str, Any]:
        analyzer: SleepAnalyzer = request.app.state.analyzer
        try:
            result = analyzer.sleep_debt()
            max_debt = analyzer.max_sleep_debt()
        except StorageError as exc:
            raise HTTPException(status_code=500, detail=str(exc)) from exc
        except ConfigurationError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        if result is None:
            return {"debt": None, "formatted": None, "max_debt": max_debt, "days": []}
        return {
            "debt": result.debt,
            "formatted": result.formatted,
            "max_debt": max_debt,
            "days": [
                {
                    "sleep_date": day.sleep_date.isoformat(),
                    "sleep_hours": day.sleep_hours,
                    "days_ago": day.days_ago,
                    "contribution": day.contribution,
                }
                for day in result.days
            ],
        }

    @app.get("/api/nights")
    def nights(request: Request) -> Dict[str, Any]:
        try:
            with database_connection(request.app.state.db_path) as conn:
                totals = nightly_totals(fetch_all_episodes(conn))
        except sqlite3.Error as exc:
            raise HTTPException(status_code=500, detail=str(exc)) from exc
        return {
            "nights": [
                {
                    "sleep_date": night.sleep_date.isoformat(),
                    "label": night.label,
                    "total_minutes": night.total_minutes,
                    "episodes": [_episode_payload(e) for e in night.episodes],
                }
                for night in totals
            ]
        }

    @app.get("/api/episodes")
    def episodes(
        request: Request,
        start: Optional[str] = Query(
            default=None,
            description="Start date in YYYY-MM-DD format (inclusive).",
        ),
        end: Optional[str] = Query(
            default=None,
            description="End date in YYYY-MM-DD format (inclusive).",
        ),
    ) -> Dict[str, Any]:
        end_day = _parse_date(end)
        start_day = _parse_date(start) if start else end_day - timedelta(days=13)
        if end_day < start_day:
            raise HTTPException(
                status_code=400, detail="end date must be on or after start date"
            )
        with database_connection(request.app.state.db_path) as conn:
            rows = episodes_between(conn, start_day, end_of_day(end_day.date()))
        return {
            "start": start_day.strftime("%Y-%m-%d"),
            "end": end_day.strftime("%Y-%m-%d"),
            "episodes": [_episode_payload(e) for e in rows],
        }

    @app.post("/api/episodes", status_code=201)
    def add_episode(payload: EpisodePayload, request: Request) -> Dict[str, Any]:
        start = _naive_local(payload.start)
        end = _naive_local(payload.end)
        try:
            result = request.app.state.analyzer.add_episode(start, end)
        except StorageError as exc:
            raise HTTPException(status_code=500, detail=str(exc)) from exc
        except ConfigurationError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        if result.error is not None:
            raise HTTPException(status_code=400, detail=result.error.message)
        return _episode_payload(result.episode)

    @app.delete("/api/episodes/{episode_id}")
    def delete_episode(episode_id: int, request: Request) -> Dict[str, Any]:
        try:
            request.app.state.analyzer.delete_episode(episode_id)
        except StorageError as exc:
            raise HTTPException(status_code=500, detail=str(exc)) from exc
        except ValueError as exc:
            raise HTTPException(status_code=404, detail="Episode not found") from exc
        return {"id": episode_id, "is_deleted": True}

    @app.get("/api/settings")
    def get_settings(request: Request) -> Dict[str, Any]:
        with database_connection(request.app.state.db_path) as conn:
            try:
                window = load_night_window(conn)
                debt_settings = load_debt_settings(conn)
            except ConfigurationError as exc:
                raise HTTPException(status_code=400, detail=str(exc)) from exc
        return _settings_payload(window, debt_settings)

    @app.put("/api/settings")
    def update_settings(payload: SettingsPayload, request: Request) -> Dict[str, Any]:
        updates = payload.model_dump(exclude_unset=True, exclude_none=True)
        with database_connection(request.app.state.db_path) as conn:
            window = _load_or_default(conn, load_night_window, NightWindow)
            debt_settings = _load_or_default(conn, load_debt_settings, DebtSettings)
            try:
                window = NightWindow(
                    start_hour=updates.get("night_start_hour", window.start_hour),
                    end_hour=updates.get("night_end_hour", window.end_hour),
                )
                debt_settings = DebtSettings(
                    needed_sleep_hours=updates.get(
                        "needed_sleep_hours", debt_settings.needed_sleep_hours
                    ),
                    tau_days=updates.get("tau_days", debt_settings.tau_days),
                )
            except ConfigurationError as exc:
                raise HTTPException(status_code=400, detail=str(exc)) from exc
            save_night_window(conn, window)
            save_debt_settings(conn, debt_settings)
        return _settings_payload(window, debt_settings)

    @app.post("/api/screen-events")
    def import_screen_events(payload: ScreenEventBatch, request: Request) -> Dict[str, Any]:
        events = []
        skipped = 0
        for item in payload.events:
            event = normalize_event(item.timestamp, item.kind)
            if event is None:
                skipped += 1
                continue
            events.append(event)
        events.sort(key=lambda event: event.timestamp_ms)
        try:
            inserted = request.app.state.analyzer.import_events(events)
        except StorageError as exc:
            raise HTTPException(status_code=500, detail=str(exc)) from exc
        return {"inserted": inserted, "skipped": skipped}

    @app.get("/api/energy")
    def energy(request: Request) -> Dict[str, Any]:
        try:
            timeline = request.app.state.analyzer.energy_timeline()
        except StorageError as exc:
            raise HTTPException(status_code=500, detail=str(exc)) from exc
        except ConfigurationError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        return {
            "sleep_date": timeline.sleep_date.isoformat(),
            "wake_up": timeline.wake_up.isoformat(),
            "points": [
                {"type": point.type.value, "time": point.time.isoformat()}
                for point in timeline.points
            ],
        }

    return app


def _parse_date(value: Optional[str]) -> datetime:
    if not value:
        return _start_of_day(datetime.now())
    try:
        parsed = datetime.strptime(value, "%Y-%m-%d")
    except ValueError as exc:
        raise HTTPException(status_code=400, detail="Invalid date format") from exc
    return _start_of_day(parsed)


def _load_or_default(conn: sqlite3.Connection, loader, default):
    try:
        return loader(conn)
    except ConfigurationError as exc:
        logger.warning("Replacing invalid stored preferences: %s", exc)
        return default()


def _start_of_day(value: datetime) -> datetime:
    return value.replace(hour=0, minute=0, second=0, microsecond=0)


def _naive_local(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value
    return value.astimezone().replace(tzinfo=None)


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _settings_payload(window: NightWindow, debt_settings: DebtSettings) -> Dict[str, Any]:
    return {
        "night_start_hour": window.start_hour,
        "night_end_hour": window.end_hour,
        "needed_sleep_hours": debt_settings.needed_sleep_hours,
        "tau_days": debt_settings.tau_days,
    }


def _episode_payload(episode: SleepEpisode) -> Dict[str, Any]:
    return {
        "id": episode.id,
        "start": episode.start.isoformat(),
        "end": episode.end.isoformat(),
        "duration_minutes": episode.duration_minutes,
        "sleep_date": episode.sleep_date.isoformat(),
        "is_potential_sleep": episode.is_potential_sleep,
        "is_deleted": episode.is_deleted,
    }
