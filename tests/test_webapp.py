"""Tests for the local HTTP API."""

from __future__ import annotations

from datetime import datetime, timedelta
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from sleep_tracker.analyzer import SleepAnalyzer
from sleep_tracker.db import database_connection, save_preference
from sleep_tracker.webapp import AnalysisRunner, create_app


@pytest.fixture
def client(tmp_path: Path):
    app = create_app(db_path=tmp_path / "sleep.sqlite3", background=False)
    with TestClient(app) as test_client:
        yield test_client


def test_status(client: TestClient) -> None:
    body = client.get("/api/status").json()
    assert body["analysis_running"] is False
    assert body["analysis_in_progress"] is False
    assert body["database_path"].endswith("sleep.sqlite3")
    assert body["interval_minutes"] == pytest.approx(15.0)


def test_default_settings(client: TestClient) -> None:
    assert client.get("/api/settings").json() == {
        "night_start_hour": 1,
        "night_end_hour": 10,
        "needed_sleep_hours": 8.0,
        "tau_days": 4.0,
    }


def test_update_settings(client: TestClient) -> None:
    response = client.put("/api/settings", json={"night_start_hour": 22, "night_end_hour": 7})
    assert response.status_code == 200
    assert response.json()["night_start_hour"] == 22

    body = client.get("/api/settings").json()
    assert body["night_end_hour"] == 7
    assert body["needed_sleep_hours"] == 8.0


@pytest.mark.parametrize(
    "payload",
    [{"night_start_hour": 24}, {"needed_sleep_hours": 0}, {"tau_days": -1}],
)
def test_invalid_settings_are_rejected(client: TestClient, payload) -> None:
    response = client.put("/api/settings", json=payload)
    assert response.status_code == 400
    assert client.get("/api/settings").json()["night_start_hour"] == 1


def test_add_and_delete_episode(client: TestClient) -> None:
    response = client.post(
        "/api/episodes",
        json={"start": "2024-03-01T23:00:00", "end": "2024-03-02T06:30:00"},
    )
    assert response.status_code == 201
    episode = response.json()
    assert episode["duration_minutes"] == 450
    assert episode["sleep_date"] == "2024-03-02"

    listed = client.get("/api/episodes", params={"start": "2024-03-01", "end": "2024-03-02"})
    assert [e["id"] for e in listed.json()["episodes"]] == [episode["id"]]

    assert client.delete(f"/api/episodes/{episode['id']}").status_code == 200
    assert client.delete(f"/api/episodes/{episode['id']}").status_code == 404
    listed = client.get("/api/episodes", params={"start": "2024-03-01", "end": "2024-03-02"})
    assert listed.json()["episodes"] == []


def test_future_episode_is_rejected(client: TestClient) -> None:
    start = datetime.now() + timedelta(days=1)
    response = client.post(
        "/api/episodes",
        json={"start": start.isoformat(), "end": (start + timedelta(hours=7)).isoformat()},
    )
    assert response.status_code == 400
    assert response.json()["detail"] == "Cannot select future dates or times"


def test_overlapping_episode_is_rejected(client: TestClient) -> None:
    client.post(
        "/api/episodes",
        json={"start": "2024-03-01T23:00:00", "end": "2024-03-02T06:30:00"},
    )
    response = client.post(
        "/api/episodes",
        json={"start": "2024-03-02T06:00:00", "end": "2024-03-02T09:00:00"},
    )
    assert response.status_code == 400
    assert response.json()["detail"] == "Sleep period overlaps with existing period"


def test_unknown_fields_are_rejected(client: TestClient) -> None:
    response = client.post(
        "/api/episodes",
        json={"start": "2024-03-01T23:00:00", "end": "2024-03-02T06:30:00", "note": "x"},
    )
    assert response.status_code == 422


def test_episode_range_validation(client: TestClient) -> None:
    assert client.get("/api/episodes", params={"start": "yesterday"}).status_code == 400
    response = client.get("/api/episodes", params={"start": "2024-03-05", "end": "2024-03-01"})
    assert response.status_code == 400


def test_debt_without_data(client: TestClient) -> None:
    body = client.get("/api/debt").json()
    assert body["debt"] is None
    assert body["formatted"] is None
    assert body["days"] == []


def test_events_to_sleep_debt(client: TestClient) -> None:
    client.put("/api/settings", json={"night_start_hour": 22, "night_end_hour": 7})
    bedtime = (datetime.now() - timedelta(days=3)).replace(
        hour=23, minute=0, second=0, microsecond=0
    )
    wake = bedtime + timedelta(hours=7, minutes=30)

    imported = client.post(
        "/api/screen-events",
        json={
            "events": [
                {"timestamp": bedtime.isoformat(), "kind": "SCREEN_OFF"},
                {"timestamp": wake.isoformat(), "kind": "screen on"},
                {"timestamp": wake.isoformat(), "kind": "notification"},
            ]
        },
    )
    assert imported.json() == {"inserted": 2, "skipped": 1}

    report = client.post("/api/analyze").json()
    assert report["skipped"] is False
    assert report["inserted"] == 1

    nights = client.get("/api/nights").json()["nights"]
    assert len(nights) == 1
    assert nights[0]["sleep_date"] == wake.date().isoformat()
    assert nights[0]["total_minutes"] == 450

    debt = client.get("/api/debt").json()
    assert debt["debt"] < 0
    assert debt["max_debt"] == pytest.approx(-debt["debt"])
    assert debt["days"][-1]["sleep_date"] == wake.date().isoformat()
    assert debt["days"][-1]["sleep_hours"] == pytest.approx(7.5)


def test_energy(client: TestClient) -> None:
    body = client.get("/api/energy").json()
    assert [point["type"] for point in body["points"]] == [
        "wake_up",
        "morning_peak",
        "afternoon_dip",
        "evening_peak",
    ]


def test_analysis_runner_start_stop(tmp_path: Path) -> None:
    runner = AnalysisRunner(SleepAnalyzer(tmp_path / "sleep.sqlite3"))
    runner.start()
    try:
        assert runner.is_running()
        runner.start()
    finally:
        runner.stop()
    assert not runner.is_running()


def _store_preference(tmp_path: Path, key: str, value: object) -> None:
    with database_connection(tmp_path / "sleep.sqlite3") as conn:
        save_preference(conn, key, value)


def test_invalid_stored_tau_is_a_client_error(client: TestClient, tmp_path: Path) -> None:
    _store_preference(tmp_path, "tau_days", 0)

    response = client.get("/api/debt")
    assert response.status_code == 400
    assert "tau_days" in response.json()["detail"]
    assert client.get("/api/settings").status_code == 400


def test_invalid_stored_window_is_a_client_error(client: TestClient, tmp_path: Path) -> None:
    _store_preference(tmp_path, "night_start_hour", 31)

    assert client.get("/api/energy").status_code == 400
    assert client.post("/api/analyze").status_code == 400
    assert client.get("/api/nights").status_code == 200


def test_settings_update_repairs_invalid_preferences(
    client: TestClient, tmp_path: Path
) -> None:
    client.put("/api/settings", json={"night_start_hour": 22, "night_end_hour": 7})
    _store_preference(tmp_path, "tau_days", 0)

    response = client.put("/api/settings", json={"tau_days": 3.0})
    assert response.status_code == 200
    settings = client.get("/api/settings").json()
    assert settings["tau_days"] == 3.0
    assert settings["night_start_hour"] == 22
    assert client.get("/api/debt").status_code == 200
