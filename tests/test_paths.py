"""Tests for data directory resolution."""

from __future__ import annotations

from pathlib import Path

import pytest

from sleep_tracker.paths import HOME_ENV_VAR, get_data_dir, get_db_path, get_log_path


def test_home_override(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    home = tmp_path / "data"
    monkeypatch.setenv(HOME_ENV_VAR, str(home))

    assert get_data_dir() == home
    assert home.is_dir()
    assert get_db_path() == home / "sleep.sqlite3"
    assert get_log_path() == home / "analyzer.log"
