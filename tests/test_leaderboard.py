from __future__ import annotations

from datetime import datetime, timezone

import pytest

from study_tracker.db import Database
from study_tracker.errors import ValidationError
from study_tracker.leaderboard import normalize_timeframe, rank_users


def _dt(y: int, m: int, d: int, h: int = 10, minute: int = 0) -> datetime:
    return datetime(y, m, d, h, minute, tzinfo=timezone.utc)


def test_rank_by_total_with_id_tiebreak(tmp_path) -> None:
    db = Database(tmp_path / "app.db")
    now = _dt(2026, 3, 2)
    ada = db.create_user("ada", "Ada", now)
    bob = db.create_user("bob", "Bob", now)
    cy = db.create_user("cy", "Cy", now)
    db.add_user_study_time(ada.id, 100)
    db.add_user_study_time(bob.id, 500)
    db.add_user_study_time(cy.id, 100)

    rows = rank_users(db, "week", current_user_id=cy.id)
    assert [(r.rank, r.display_name) for r in rows] == [(1, "Bob"), (2, "Ada"), (3, "Cy")]
    assert [r.is_current_user for r in rows] == [False, False, True]
    assert rows[0].total_study_time == 500
    assert rows[0].level == "Student"


def test_rank_is_all_time_for_every_timeframe(tmp_path) -> None:
    db = Database(tmp_path / "app.db")
    now = _dt(2026, 3, 2)
    ada = db.create_user("ada", "Ada", now)
    db.create_user("bob", "Bob", now)
    db.add_user_study_time(ada.id, 60)
    orders = {tf: [r.user_id for r in rank_users(db, tf)] for tf in ("today", "week", "month", "all")}
    assert len({tuple(v) for v in orders.values()}) == 1


@pytest.mark.parametrize(
    ("raw", "expected"),
    [(None, "week"), ("", "week"), ("TODAY", "today"), ("month", "month"), ("all_time", "all")],
)
def test_normalize_timeframe(raw: str | None, expected: str) -> None:
    assert normalize_timeframe(raw) == expected


def test_unknown_timeframe_is_rejected(tmp_path) -> None:
    with pytest.raises(ValidationError):
        normalize_timeframe("decade")
    with pytest.raises(ValidationError):
        rank_users(Database(tmp_path / "app.db"), "year")
