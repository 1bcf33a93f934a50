from __future__ import annotations

from datetime import datetime, timezone

import pytest

from study_tracker import service
from study_tracker.db import Database
from study_tracker.errors import NotFound, Unauthenticated, ValidationError
from study_tracker.lifecycle import SessionLifecycleManager


def _dt(y: int, m: int, d: int, h: int = 10, minute: int = 0) -> datetime:
    return datetime(y, m, d, h, minute, tzinfo=timezone.utc)


def test_register_stores_only_token_hash(tmp_path) -> None:
    db = Database(tmp_path / "app.db")
    registration = service.register_user(db, " ada ", None, _dt(2026, 3, 2))
    assert registration.user.username == "ada"
    assert registration.user.display_name == "ada"
    assert db.get_user_by_token_hash(registration.token) is None
    assert service.authenticate(db, registration.token).id == registration.user.id


def test_authenticate_rejects_missing_or_unknown_token(tmp_path) -> None:
    db = Database(tmp_path / "app.db")
    with pytest.raises(Unauthenticated):
        service.authenticate(db, None)
    with pytest.raises(Unauthenticated):
        service.authenticate(db, "not-a-token")


def test_register_validates_input(tmp_path) -> None:
    db = Database(tmp_path / "app.db")
    with pytest.raises(ValidationError):
        service.register_user(db, "  ", None, _dt(2026, 3, 2))
    with pytest.raises(ValidationError):
        service.register_user(db, "ada", None, _dt(2026, 3, 2), daily_goal=-10)
    service.register_user(db, "ada", "Ada", _dt(2026, 3, 2), daily_goal=3600)
    with pytest.raises(ValidationError):
        service.register_user(db, "ada", "Other", _dt(2026, 3, 2))


def test_subject_defaults_and_target_ownership(tmp_path) -> None:
    db = Database(tmp_path / "app.db")
    now = _dt(2026, 3, 2)
    ada = db.create_user("ada", "Ada", now)
    bob = db.create_user("bob", "Bob", now)
    subject = service.create_subject(db, ada.id, "Physics", now)
    assert subject.color == "#3b82f6"
    assert subject.total_time == 0
    with pytest.raises(NotFound):
        service.update_subject_daily_target(db, bob.id, subject.id, 600)
    with pytest.raises(ValidationError):
        service.update_subject_daily_target(db, ada.id, subject.id, -1)
    assert service.update_subject_daily_target(db, ada.id, subject.id, 600).daily_target_time == 600


def test_daily_stats_range_is_inclusive(tmp_path) -> None:
    db = Database(tmp_path / "app.db")
    now = _dt(2026, 3, 2)
    user = db.create_user("ada", "Ada", now)
    subject = db.create_subject(user.id, "Math", "#3b82f6", now)
    for day in (1, 2, 3, 4):
        moment = _dt(2026, 3, day)
        manager = SessionLifecycleManager(db, "UTC", clock=lambda moment=moment: moment)
        session = manager.start(user.id, subject.id)
        manager.end(user.id, session.id, 60 * day)

    rows = service.get_daily_stats(db, user.id, "2026-03-02", "2026-03-03")
    assert [(r.date, r.study_time) for r in rows] == [("2026-03-02", 120), ("2026-03-03", 180)]
    with pytest.raises(ValidationError):
        service.get_daily_stats(db, user.id, "2026-03-03", "2026-03-02")
    with pytest.raises(ValidationError):
        service.get_daily_stats(db, user.id, None, "2026-03-02")


def test_session_history_window_uses_local_days(tmp_path) -> None:
    db = Database(tmp_path / "app.db")
    now = _dt(2026, 3, 2, 23, 30)
    user = db.create_user("ada", "Ada", now)
    subject = db.create_subject(user.id, "Math", "#3b82f6", now)
    manager = SessionLifecycleManager(db, "UTC", clock=lambda: now)
    session = manager.start(user.id, subject.id)

    assert [s.id for s in service.list_session_history(db, user.id, "2026-03-02", "2026-03-02")] == [session.id]
    # 23:30 UTC falls on March 3 in Oslo
    assert service.list_session_history(db, user.id, "2026-03-02", "2026-03-02", "Europe/Oslo") == []
    oslo = service.list_session_history(db, user.id, "2026-03-03", "2026-03-03", "Europe/Oslo")
    assert [s.id for s in oslo] == [session.id]


def test_notifications_limit_and_order(tmp_path) -> None:
    db = Database(tmp_path / "app.db")
    user = db.create_user("ada", "Ada", _dt(2026, 3, 2))
    for minute in range(12):
        db.create_notification(user.id, "reminder", f"n{minute}", _dt(2026, 3, 2, 10, minute))

    rows = service.list_notifications(db, user.id)
    assert len(rows) == 10
    assert rows[0].message == "n11"
    assert len(service.list_notifications(db, user.id, limit=3)) == 3
    db.set_app_config({"notifications.default_limit": 5}, actor="test")
    assert len(service.list_notifications(db, user.id)) == 5

    read = service.mark_notification_read(db, user.id, rows[0].id)
    assert read.read is True
    with pytest.raises(NotFound):
        service.mark_notification_read(db, user.id, 9999)


def test_group_creator_joins_and_membership_is_required(tmp_path) -> None:
    db = Database(tmp_path / "app.db")
    now = _dt(2026, 3, 2)
    ada = db.create_user("ada", "Ada", now)
    bob = db.create_user("bob", "Bob", now)
    group = service.create_group(db, ada.id, "Finals", now)
    assert [m.user_id for m in service.list_group_members(db, ada.id, group.id)] == [ada.id]

    with pytest.raises(NotFound):
        service.add_group_member(db, bob.id, group.id, bob.id, now)
    with pytest.raises(NotFound):
        service.add_group_member(db, ada.id, group.id, 999, now)

    service.add_group_member(db, ada.id, group.id, bob.id, now)
    service.add_group_member(db, ada.id, group.id, bob.id, now)
    assert sorted(m.user_id for m in db.list_group_members(group.id)) == [ada.id, bob.id]
    assert [g.id for g in service.list_groups(db, bob.id)] == [group.id]


def test_compute_status_tracks_goal_and_subject_progress(tmp_path) -> None:
    db = Database(tmp_path / "app.db")
    monday = _dt(2026, 3, 2)
    wednesday = _dt(2026, 3, 4)
    user = db.create_user("ada", "Ada", monday, daily_goal=7200)
    math = db.create_subject(user.id, "Math", "#3b82f6", monday, target_time=10000, daily_target_time=3600)
    art = db.create_subject(user.id, "Art", "#ff0000", monday)

    for moment, subject_id, seconds in ((monday, math.id, 1000), (wednesday, math.id, 1800), (wednesday, art.id, 600)):
        manager = SessionLifecycleManager(db, "UTC", clock=lambda moment=moment: moment)
        session = manager.start(user.id, subject_id)
        manager.end(user.id, session.id, seconds)

    view = service.compute_status(db, user.id, wednesday)
    assert view.today_study_seconds == 2400
    assert view.daily_goal_remaining == 4800
    assert view.week_study_seconds == 3400

    by_name = {p.subject.name: p for p in view.subjects}
    assert by_name["Math"].today_seconds == 1800
    assert by_name["Math"].week_seconds == 2800
    assert by_name["Math"].daily_ratio == 0.5
    assert by_name["Math"].total_ratio == pytest.approx(0.28)
    assert by_name["Art"].total_target_seconds == 6 * 3600
    assert by_name["Art"].daily_ratio == 0.0
