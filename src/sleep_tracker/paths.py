"""Where the sleep database and logs live on disk."""

from __future__ import annotations

import os
from pathlib import Path

from platformdirs import PlatformDirs


APP_NAME = "SleepTracker"
APP_AUTHOR = "SleepTracker"
HOME_ENV_VAR = "SLEEP_TRACKER_HOME"
DB_FILENAME = "sleep.sqlite3"
LOG_FILENAME = "analyzer.log"


def get_data_dir() -> Path:
    """Return the directory holding the database, creating it if needed.

    ``SLEEP_TRACKER_HOME`` overrides the per-user platform data directory.
    """
    override = os.environ.get(HOME_ENV_VAR)
    if override:
        path = Path(override).expanduser()
    else:
        dirs = PlatformDirs(appname=APP_NAME, appauthor=APP_AUTHOR, roaming=True)
        path = Path(dirs.user_data_path)
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_db_path() -> Path:
    return get_data_dir() / DB_FILENAME


def get_log_path() -> Path:
    return get_data_dir() / LOG_FILENAME
