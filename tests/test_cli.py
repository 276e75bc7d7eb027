"""Tests for the typer command-line interface."""

from __future__ import annotations

from pathlib import Path

from typer.testing import CliRunner

from sleep_tracker.cli import app
from sleep_tracker.db import database_connection, save_preference

runner = CliRunner()


def test_add_then_nights(tmp_path: Path) -> None:
    db = str(tmp_path / "sleep.sqlite3")

    added = runner.invoke(app, ["add", "2024-03-01 23:00", "2024-03-02 06:30", "--db", db])
    assert added.exit_code == 0
    assert "2024-03-02" in added.output

    listed = runner.invoke(app, ["nights", "--db", db])
    assert listed.exit_code == 0
    assert "Mar 1 - Mar 2" in listed.output


def test_rejected_episode_exits_with_message(tmp_path: Path) -> None:
    db = str(tmp_path / "sleep.sqlite3")
    result = runner.invoke(app, ["add", "2024-03-02 06:30", "2024-03-01 23:00", "--db", db])
    assert result.exit_code == 1
    assert "End time cannot be before start time" in result.output


def test_invalid_stored_preference_is_reported(tmp_path: Path) -> None:
    db_path = tmp_path / "sleep.sqlite3"
    with database_connection(db_path) as conn:
        save_preference(conn, "tau_days", 0)

    result = runner.invoke(app, ["debt", "--db", str(db_path)])

    assert result.exit_code == 1
    assert "Could not compute sleep debt" in result.output
    assert "tau_days" in result.output
