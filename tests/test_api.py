from __future__ import annotations

from datetime import datetime, timedelta, timezone

from fastapi.testclient import TestClient

from study_tracker.api import build_app
from study_tracker.config import Settings
from study_tracker.db import Database


class _Clock:
    def __init__(self) -> None:
        self.now = datetime(2026, 3, 2, 10, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: int) -> None:
        self.now += timedelta(seconds=seconds)


def _client(tmp_path, admin_token: str | None = "secret"):
    db = Database(tmp_path / "app.db")
    settings = Settings(tmp_path / "app.db", "UTC", "127.0.0.1", 8080, admin_token, "INFO")
    clock = _Clock()
    return TestClient(build_app(db, settings, clock=clock)), db, clock


def _register(client: TestClient, username: str = "ada") -> tuple[dict, dict]:
    resp = client.post("/api/register", json={"username": username, "display_name": username.title()})
    assert resp.status_code == 201
    body = resp.json()
    return body["user"], {"Authorization": f"Bearer {body['token']}"}


def _subject(client: TestClient, headers: dict, name: str = "Math") -> dict:
    resp = client.post("/api/subjects", json={"name": name}, headers=headers)
    assert resp.status_code == 201
    return resp.json()


def test_requests_without_valid_token_are_unauthenticated(tmp_path) -> None:
    client, _, _ = _client(tmp_path)
    assert client.get("/api/user").status_code == 401
    resp = client.get("/api/user", headers={"Authorization": "Bearer nope"})
    assert resp.status_code == 401
    assert resp.json() == {"detail": "Invalid bearer token"}


def test_register_rejects_duplicate_username(tmp_path) -> None:
    client, _, _ = _client(tmp_path)
    user, headers = _register(client)
    assert user["level"] == "Student"
    assert user["daily_goal"] == 8 * 3600
    resp = client.post("/api/register", json={"username": "ada"})
    assert resp.status_code == 400
    assert client.get("/api/user", headers=headers).json()["username"] == "ada"


def test_full_study_session_flow(tmp_path) -> None:
    client, _, clock = _client(tmp_path)
    _, headers = _register(client)
    subject = _subject(client, headers)

    resp = client.post("/api/sessions/start", json={"subject_id": subject["id"]}, headers=headers)
    assert resp.status_code == 201
    session = resp.json()
    assert session["type"] == "study"
    assert session["is_active"] is True
    assert [s["id"] for s in client.get("/api/sessions/active", headers=headers).json()] == [session["id"]]

    clock.advance(3665)
    resp = client.post(f"/api/sessions/{session['id']}/end", json={"duration": 3665}, headers=headers)
    assert resp.status_code == 200
    body = resp.json()
    assert body["session"]["duration"] == 3665
    assert body["unlocked"] == ["Student"]
    assert body["daily_stats"]["study_time"] == 3665

    user = client.get("/api/user", headers=headers).json()
    assert user["total_study_time"] == 3665
    subjects = client.get("/api/subjects", headers=headers).json()
    assert subjects[0]["total_time"] == 3665

    stats = client.get("/api/stats/daily", params={"start": "2026-03-01", "end": "2026-03-02"}, headers=headers)
    assert [row["date"] for row in stats.json()] == ["2026-03-02"]
    assert stats.json()[0]["subject_breakdown"] == {str(subject["id"]): 3665}

    notifications = client.get("/api/notifications", headers=headers).json()
    assert [n["type"] for n in notifications] == ["achievement"]
    achievements = client.get("/api/achievements", headers=headers).json()
    assert [a["name"] for a in achievements if a["unlocked"]] == ["Student"]

    again = client.post(f"/api/sessions/{session['id']}/end", json={"duration": 3665}, headers=headers)
    assert again.status_code == 404
    assert client.get("/api/user", headers=headers).json()["total_study_time"] == 3665


def test_session_errors_map_to_status_codes(tmp_path) -> None:
    client, _, _ = _client(tmp_path)
    _, headers = _register(client)
    subject = _subject(client, headers)

    assert client.post("/api/sessions/start", json={"subject_id": 999}, headers=headers).status_code == 404
    assert (
        client.post("/api/sessions/start", json={"subject_id": subject["id"], "type": "nap"}, headers=headers).status_code
        == 400
    )

    session = client.post("/api/sessions/start", json={"subject_id": subject["id"]}, headers=headers).json()
    tag = client.post(f"/api/sessions/{session['id']}/tag", json={"break_tag": "coffee"}, headers=headers)
    assert tag.status_code == 409
    negative = client.post(f"/api/sessions/{session['id']}/end", json={"duration": -5}, headers=headers)
    assert negative.status_code == 400
    missing = client.post(f"/api/sessions/{session['id']}/end", json={}, headers=headers)
    assert missing.status_code == 422


def test_other_users_cannot_touch_sessions(tmp_path) -> None:
    client, _, _ = _client(tmp_path)
    _, ada = _register(client, "ada")
    _, bob = _register(client, "bob")
    subject = _subject(client, ada)
    session = client.post("/api/sessions/start", json={"subject_id": subject["id"]}, headers=ada).json()
    assert client.post(f"/api/sessions/{session['id']}/end", json={"duration": 5}, headers=bob).status_code == 404
    assert client.post("/api/sessions/start", json={"subject_id": subject["id"]}, headers=bob).status_code == 404


def test_break_tag_and_reconcile(tmp_path) -> None:
    client, _, _ = _client(tmp_path)
    _, headers = _register(client)
    subject = _subject(client, headers)

    brk = client.post("/api/sessions/start", json={"subject_id": subject["id"], "type": "break"}, headers=headers).json()
    assert brk["break_tag"] == "rest"
    tagged = client.post(f"/api/sessions/{brk['id']}/tag", json={"break_tag": "walk"}, headers=headers)
    assert tagged.json()["break_tag"] == "walk"

    study = client.post(
        "/api/sessions/start",
        json={"subject_id": subject["id"], "elapsed": 120},
        headers=headers,
    ).json()
    resp = client.post(f"/api/sessions/{study['id']}/reconcile", json={"elapsed": 600, "gap": 2000}, headers=headers)
    body = resp.json()
    assert body["classification"] == "sleep"
    assert body["gap_session"]["duration"] == 2000
    assert body["current"]["is_active"] is True
    assert body["notification"]["type"] == "sleep"

    stats = client.get("/api/stats/daily", params={"start": "2026-03-02", "end": "2026-03-02"}, headers=headers).json()
    assert (stats[0]["study_time"], stats[0]["break_time"], stats[0]["sleep_time"]) == (600, 120, 2000)


def test_daily_stats_requires_valid_range(tmp_path) -> None:
    client, _, _ = _client(tmp_path)
    _, headers = _register(client)
    assert client.get("/api/stats/daily", headers=headers).status_code == 400
    bad = client.get("/api/stats/daily", params={"start": "2026-03-05", "end": "2026-03-01"}, headers=headers)
    assert bad.status_code == 400
    assert client.get("/api/stats/daily", params={"start": "03/01", "end": "03/02"}, headers=headers).status_code == 400


def test_goal_and_target_updates(tmp_path) -> None:
    client, _, _ = _client(tmp_path)
    _, headers = _register(client)
    subject = _subject(client, headers)

    user = client.patch("/api/user/daily-goal", json={"daily_goal": 7200}, headers=headers).json()
    assert user["daily_goal"] == 7200
    assert client.patch("/api/user/daily-goal", json={"daily_goal": -1}, headers=headers).status_code == 400

    updated = client.patch(
        f"/api/subjects/{subject['id']}/daily-target",
        json={"daily_target_time": 1800},
        headers=headers,
    ).json()
    assert updated["daily_target_time"] == 1800

    status = client.get("/api/status", headers=headers).json()
    assert status["daily_goal_seconds"] == 7200
    assert status["subjects"][0]["daily_target_seconds"] == 1800


def test_notifications_can_be_marked_read(tmp_path) -> None:
    client, db, clock = _client(tmp_path)
    user, headers = _register(client)
    note = db.create_notification(user["id"], "reminder", "hello", clock())

    resp = client.post(f"/api/notifications/{note.id}/read", headers=headers)
    assert resp.json()["read"] is True
    _, bob = _register(client, "bob")
    assert client.post(f"/api/notifications/{note.id}/read", headers=bob).status_code == 404


def test_groups_and_leaderboard(tmp_path) -> None:
    client, db, _ = _client(tmp_path)
    ada, ada_headers = _register(client, "ada")
    bob, bob_headers = _register(client, "bob")
    db.add_user_study_time(bob["id"], 900)

    group = client.post("/api/groups", json={"name": "Exam crew"}, headers=ada_headers).json()
    members = client.get(f"/api/groups/{group['id']}/members", headers=ada_headers).json()
    assert [m["user_id"] for m in members] == [ada["id"]]

    assert client.get(f"/api/groups/{group['id']}/members", headers=bob_headers).status_code == 404
    added = client.post(f"/api/groups/{group['id']}/members", json={"user_id": bob["id"]}, headers=ada_headers)
    assert added.status_code == 201
    assert [g["name"] for g in client.get("/api/groups", headers=bob_headers).json()] == ["Exam crew"]

    board = client.get("/api/leaderboard", params={"timeframe": "month"}, headers=ada_headers).json()
    assert board["timeframe"] == "month"
    assert [(r["display_name"], r["is_current_user"]) for r in board["leaderboard"]] == [("Bob", False), ("Ada", True)]
    assert client.get("/api/leaderboard", params={"timeframe": "year"}, headers=ada_headers).status_code == 400


def test_admin_config_requires_token(tmp_path) -> None:
    client, db, _ = _client(tmp_path)
    assert client.get("/api/admin/config").status_code == 401

    resp = client.post(
        "/api/admin/config",
        json={"updates": {"timer.break_threshold_seconds": "600", "unknown.key": 1}, "actor": "tester"},
        headers={"x-admin-token": "secret"},
    )
    assert resp.json()["updated_count"] == 1
    assert db.get_timer_tuning()["break_threshold_seconds"] == 600
    audit = client.get("/api/admin/audit", headers={"x-admin-token": "secret"}).json()["rows"]
    assert audit[0]["actor"] == "tester"


def test_health_and_session_history(tmp_path) -> None:
    client, _, clock = _client(tmp_path)
    assert client.get("/health").json() == {"ok": True}
    _, headers = _register(client)
    subject = _subject(client, headers)

    session = client.post("/api/sessions/start", json={"subject_id": subject["id"]}, headers=headers).json()
    clock.advance(600)
    client.post(f"/api/sessions/{session['id']}/end", json={"duration": 600}, headers=headers)

    history = client.get("/api/sessions", params={"start": "2026-03-02", "end": "2026-03-02"}, headers=headers)
    assert [(s["id"], s["duration"], s["is_active"]) for s in history.json()] == [(session["id"], 600, False)]
    empty = client.get("/api/sessions", params={"start": "2026-03-03", "end": "2026-03-04"}, headers=headers)
    assert empty.json() == []


def test_numeric_fields_reject_strings_and_oversized_values(tmp_path) -> None:
    client, _, _ = _client(tmp_path)
    _, headers = _register(client)
    subject = _subject(client, headers)
    session = client.post("/api/sessions/start", json={"subject_id": subject["id"]}, headers=headers).json()

    assert client.post(f"/api/sessions/{session['id']}/end", json={"duration": "60"}, headers=headers).status_code == 422
    assert client.patch("/api/user/daily-goal", json={"daily_goal": "7200"}, headers=headers).status_code == 422
    reconcile = client.post(
        f"/api/sessions/{session['id']}/reconcile",
        json={"elapsed": "100", "gap": 2000},
        headers=headers,
    )
    assert reconcile.status_code == 422

    oversized = client.post(
        f"/api/sessions/{session['id']}/reconcile",
        json={"elapsed": 100, "gap": 10**12},
        headers=headers,
    )
    assert oversized.status_code == 400
    assert client.post(f"/api/sessions/{session['id']}/end", json={"duration": 1e20}, headers=headers).status_code == 400
    assert [s["id"] for s in client.get("/api/sessions/active", headers=headers).json()] == [session["id"]]
