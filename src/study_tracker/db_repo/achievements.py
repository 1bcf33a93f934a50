from __future__ import annotations

import sqlite3
from datetime import datetime
from typing import Protocol

from study_tracker.db_converters import _row_to_achievement, _row_to_user_achievement
from study_tracker.db_models import Achievement, UserAchievement


class DbProtocol(Protocol):
    def _connect(self) -> sqlite3.Connection: ...


class AchievementMixin:
    def list_achievements(self: DbProtocol) -> list[Achievement]:
        with self._connect() as conn:
            rows = conn.execute("SELECT * FROM achievements ORDER BY required_time ASC, id ASC").fetchall()
        return [_row_to_achievement(r) for r in rows]

    def list_user_achievements(self: DbProtocol, user_id: int) -> list[UserAchievement]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM user_achievements WHERE user_id = ? ORDER BY unlocked_at ASC, id ASC",
                (user_id,),
            ).fetchall()
        return [_row_to_user_achievement(r) for r in rows]

    def add_user_achievement(self: DbProtocol, user_id: int, achievement_id: int, unlocked_at: datetime) -> UserAchievement | None:
        """Returns None when the achievement was already unlocked for this user."""
        with self._connect() as conn:
            cursor = conn.execute(
                """
                INSERT OR IGNORE INTO user_achievements(user_id, achievement_id, unlocked_at)
                VALUES (?, ?, ?)
                """,
                (user_id, achievement_id, unlocked_at.isoformat()),
            )
            if cursor.rowcount == 0:
                return None
            row = conn.execute("SELECT * FROM user_achievements WHERE id = ?", (cursor.lastrowid,)).fetchone()
        assert row is not None
        return _row_to_user_achievement(row)
