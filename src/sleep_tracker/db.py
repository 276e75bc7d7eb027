"""SQLite database layer for screen events, sleep episodes and preferences."""

from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from datetime import date, datetime, timedelta
from pathlib import Path
from typing import Iterable, Iterator, Optional

from .config import ConfigurationError, DebtSettings, NightWindow
from .models import ScreenEvent, ScreenEventKind, SleepEpisode


DATETIME_FMT = "%Y-%m-%d %H:%M:%S.%f"
DATE_FMT = "%Y-%m-%d"

PREF_NIGHT_START_HOUR = "night_start_hour"
PREF_NIGHT_END_HOUR = "night_end_hour"
PREF_NEEDED_SLEEP_HOURS = "needed_sleep_hours"
PREF_TAU_DAYS = "tau_days"
PREF_MAX_SLEEP_DEBT = "max_sleep_debt"


class StorageError(RuntimeError):
    """Raised when the database cannot be read or written."""


def open_database(path: Path, *, check_same_thread: bool = True) -> sqlite3.Connection:
    """Open (and initialize) the SQLite database."""
    conn = sqlite3.connect(
        path,
        isolation_level=None,
        check_same_thread=check_same_thread,
    )
    conn.row_factory = sqlite3.Row
    initialize_schema(conn)
    return conn


@contextmanager
def database_connection(
    path: Path, *, check_same_thread: bool = True
) -> Iterator[sqlite3.Connection]:
    conn = open_database(path, check_same_thread=check_same_thread)
    try:
        yield conn
    finally:
        conn.close()


def initialize_schema(conn: sqlite3.Connection) -> None:
    conn.executescript(
        """
        CREATE TABLE IF NOT EXISTS screen_events (
            id INTEGER PRIMARY KEY,
            timestamp_ms INTEGER NOT NULL,
            kind TEXT NOT NULL CHECK (kind IN ('on', 'off')),
            UNIQUE (timestamp_ms, kind)
        );

        CREATE INDEX IF NOT EXISTS idx_screen_events_timestamp
            ON screen_events(timestamp_ms);

        CREATE TABLE IF NOT EXISTS sleep_episodes (
            id INTEGER PRIMARY KEY,
            start_time TEXT NOT NULL,
            end_time TEXT NOT NULL,
            duration_minutes INTEGER NOT NULL,
            is_potential_sleep INTEGER NOT NULL DEFAULT 1,
            sleep_date TEXT NOT NULL,
            is_deleted INTEGER NOT NULL DEFAULT 0
        );

        CREATE INDEX IF NOT EXISTS idx_episodes_start_time
            ON sleep_episodes(start_time);

        CREATE INDEX IF NOT EXISTS idx_episodes_sleep_date
            ON sleep_episodes(sleep_date);

        CREATE TABLE IF NOT EXISTS preferences (
            key TEXT PRIMARY KEY,
            value TEXT NOT NULL
        );
        """
    )


# ---------------------------------------------------------------------------
# Screen events
# ---------------------------------------------------------------------------


def insert_screen_events(conn: sqlite3.Connection, events: Iterable[ScreenEvent]) -> int:
    """Store events, ignoring exact duplicates. Returns the number inserted."""
    before = conn.total_changes
    conn.executemany(
        "INSERT OR IGNORE INTO screen_events (timestamp_ms, kind) VALUES (?, ?)",
        [(event.timestamp_ms, event.kind.value) for event in events],
    )
    return conn.total_changes - before


def fetch_screen_events(
    conn: sqlite3.Connection, start: datetime, end: datetime
) -> list[ScreenEvent]:
    """Events between ``start`` and ``end`` inclusive, oldest first."""
    rows = conn.execute(
        """
        SELECT timestamp_ms, kind
        FROM screen_events
        WHERE timestamp_ms >= ? AND timestamp_ms <= ?
        ORDER BY timestamp_ms, id;
        """,
        (_to_ms(start), _to_ms(end)),
    )
    return [
        ScreenEvent(timestamp_ms=row["timestamp_ms"], kind=ScreenEventKind(row["kind"]))
        for row in rows
    ]


# ---------------------------------------------------------------------------
# Sleep episodes
# ---------------------------------------------------------------------------


def episode_exists(conn: sqlite3.Connection, start: datetime, end: datetime) -> bool:
    """Exact start/end match, soft-deleted rows included."""
    row = conn.execute(
        "SELECT EXISTS(SELECT 1 FROM sleep_episodes WHERE start_time = ? AND end_time = ?)",
        (start.strftime(DATETIME_FMT), end.strftime(DATETIME_FMT)),
    ).fetchone()
    return bool(row[0])


def insert_episode(conn: sqlite3.Connection, episode: SleepEpisode) -> int:
    cur = conn.execute(
        """
        INSERT INTO sleep_episodes (
            start_time,
            end_time,
            duration_minutes,
            is_potential_sleep,
            sleep_date,
            is_deleted
        ) VALUES (?, ?, ?, ?, ?, ?)
        """,
        (
            episode.start.strftime(DATETIME_FMT),
            episode.end.strftime(DATETIME_FMT),
            episode.duration_minutes,
            1 if episode.is_potential_sleep else 0,
            episode.sleep_date.strftime(DATE_FMT),
            1 if episode.is_deleted else 0,
        ),
    )
    episode.id = cur.lastrowid
    return cur.lastrowid


def latest_episode(
    conn: sqlite3.Connection, *, include_deleted: bool = False
) -> Optional[SleepEpisode]:
    """The episode with the latest end time."""
    row = conn.execute(
        f"""
        SELECT * FROM sleep_episodes
        {"" if include_deleted else "WHERE is_deleted = 0"}
        ORDER BY end_time DESC
        LIMIT 1;
        """
    ).fetchone()
    return row_to_episode(row) if row else None


def episodes_between(
    conn: sqlite3.Connection,
    start: datetime,
    end: datetime,
    *,
    include_deleted: bool = False,
) -> list[SleepEpisode]:
    """Episodes whose start time lies in ``[start, end]``, newest first."""
    rows = conn.execute(
        f"""
        SELECT * FROM sleep_episodes
        WHERE start_time >= ? AND start_time <= ?
        {"" if include_deleted else "AND is_deleted = 0"}
        ORDER BY start_time DESC;
        """,
        (start.strftime(DATETIME_FMT), end.strftime(DATETIME_FMT)),
    )
    return [row_to_episode(row) for row in rows]


def episodes_on_date(conn: sqlite3.Connection, sleep_date: date) -> list[SleepEpisode]:
    rows = conn.execute(
        """
        SELECT * FROM sleep_episodes
        WHERE sleep_date = ? AND is_deleted = 0
        ORDER BY start_time;
        """,
        (sleep_date.strftime(DATE_FMT),),
    )
    return [row_to_episode(row) for row in rows]


def fetch_all_episodes(conn: sqlite3.Connection) -> list[SleepEpisode]:
    rows = conn.execute(
        "SELECT * FROM sleep_episodes WHERE is_deleted = 0 ORDER BY start_time DESC;"
    )
    return [row_to_episode(row) for row in rows]


def has_overlapping_episodes(conn: sqlite3.Connection, start: datetime, end: datetime) -> bool:
    """True if any non-deleted episode shares at least one instant with the range."""
    start_text = start.strftime(DATETIME_FMT)
    end_text = end.strftime(DATETIME_FMT)
    row = conn.execute(
        """
        SELECT EXISTS(
            SELECT 1 FROM sleep_episodes
            WHERE is_deleted = 0 AND (
                (start_time BETWEEN :start AND :end)
                OR (end_time BETWEEN :start AND :end)
                OR (:start BETWEEN start_time AND end_time)
                OR (:end BETWEEN start_time AND end_time)
            )
        )
        """,
        {"start": start_text, "end": end_text},
    ).fetchone()
    return bool(row[0])


def soft_delete_episode(conn: sqlite3.Connection, episode_id: int) -> None:
    cur = conn.execute(
        "UPDATE sleep_episodes SET is_deleted = 1 WHERE id = ? AND is_deleted = 0",
        (episode_id,),
    )
    if cur.rowcount == 0:
        raise ValueError(f"No episode found for id={episode_id}")


def row_to_episode(row: sqlite3.Row) -> SleepEpisode:
    return SleepEpisode(
        id=row["id"],
        start=datetime.strptime(row["start_time"], DATETIME_FMT),
        end=datetime.strptime(row["end_time"], DATETIME_FMT),
        duration_minutes=row["duration_minutes"],
        is_potential_sleep=bool(row["is_potential_sleep"]),
        sleep_date=datetime.strptime(row["sleep_date"], DATE_FMT).date(),
        is_deleted=bool(row["is_deleted"]),
    )


# ---------------------------------------------------------------------------
# Preferences
# ---------------------------------------------------------------------------


def load_preference(conn: sqlite3.Connection, key: str) -> Optional[str]:
    row = conn.execute("SELECT value FROM preferences WHERE key = ?", (key,)).fetchone()
    return row["value"] if row else None


def save_preference(conn: sqlite3.Connection, key: str, value: object) -> None:
    conn.execute(
        """
        INSERT INTO preferences (key, value) VALUES (?, ?)
        ON CONFLICT(key) DO UPDATE SET value = excluded.value
        """,
        (key, str(value)),
    )


def load_night_window(conn: sqlite3.Connection) -> NightWindow:
    """Read the configured night window; raises ConfigurationError if invalid."""
    defaults = NightWindow()
    return NightWindow(
        start_hour=_load_typed(conn, PREF_NIGHT_START_HOUR, int, defaults.start_hour),
        end_hour=_load_typed(conn, PREF_NIGHT_END_HOUR, int, defaults.end_hour),
    )


def save_night_window(conn: sqlite3.Connection, window: NightWindow) -> None:
    save_preference(conn, PREF_NIGHT_START_HOUR, window.start_hour)
    save_preference(conn, PREF_NIGHT_END_HOUR, window.end_hour)


def load_debt_settings(conn: sqlite3.Connection) -> DebtSettings:
    defaults = DebtSettings()
    return DebtSettings(
        needed_sleep_hours=_load_typed(
            conn, PREF_NEEDED_SLEEP_HOURS, float, defaults.needed_sleep_hours
        ),
        tau_days=_load_typed(conn, PREF_TAU_DAYS, float, defaults.tau_days),
    )


def save_debt_settings(conn: sqlite3.Connection, settings: DebtSettings) -> None:
    save_preference(conn, PREF_NEEDED_SLEEP_HOURS, settings.needed_sleep_hours)
    save_preference(conn, PREF_TAU_DAYS, settings.tau_days)


def load_max_sleep_debt(conn: sqlite3.Connection) -> float:
    value = load_preference(conn, PREF_MAX_SLEEP_DEBT)
    return float(value) if value is not None else 0.0


def _load_typed(conn: sqlite3.Connection, key: str, convert, default):
    value = load_preference(conn, key)
    if value is None:
        return default
    try:
        return convert(value)
    except ValueError as exc:
        raise ConfigurationError(f"Stored preference {key}={value!r} is invalid") from exc


def _to_ms(value: datetime) -> int:
    return int(value.timestamp() * 1000)


def start_of_day(value: date) -> datetime:
    return datetime.combine(value, datetime.min.time())


def end_of_day(value: date) -> datetime:
    return start_of_day(value) + timedelta(days=1) - timedelta(microseconds=1)
