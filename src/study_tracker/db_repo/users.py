from __future__ import annotations

import sqlite3
from datetime import datetime
from typing import Protocol

from study_tracker.db_constants import DEFAULT_DAILY_GOAL_SECONDS, DEFAULT_LEVEL
from study_tracker.db_converters import _row_to_user
from study_tracker.db_models import User

_USER_COLUMNS = "id, username, display_name, total_study_time, level, daily_goal, created_at"


class DbProtocol(Protocol):
    def _connect(self) -> sqlite3.Connection: ...
    def get_user(self, user_id: int) -> User | None: ...


class UserMixin:
    def create_user(
        self: DbProtocol,
        username: str,
        display_name: str,
        created_at: datetime,
        daily_goal: int | None = None,
        api_token_hash: str | None = None,
    ) -> User:
        with self._connect() as conn:
            cursor = conn.execute(
                """
                INSERT INTO users(username, display_name, total_study_time, level, daily_goal, api_token_hash, created_at)
                VALUES (?, ?, 0, ?, ?, ?, ?)
                """,
                (
                    username.strip(),
                    display_name.strip(),
                    DEFAULT_LEVEL,
                    daily_goal if daily_goal is not None else DEFAULT_DAILY_GOAL_SECONDS,
                    api_token_hash,
                    created_at.isoformat(),
                ),
            )
            row = conn.execute(f"SELECT {_USER_COLUMNS} FROM users WHERE id = ?", (cursor.lastrowid,)).fetchone()
        assert row is not None
        return _row_to_user(row)

    def get_user(self: DbProtocol, user_id: int) -> User | None:
        with self._connect() as conn:
            row = conn.execute(f"SELECT {_USER_COLUMNS} FROM users WHERE id = ?", (user_id,)).fetchone()
        return _row_to_user(row) if row else None

    def get_user_by_username(self: DbProtocol, username: str) -> User | None:
        with self._connect() as conn:
            row = conn.execute(
                f"SELECT {_USER_COLUMNS} FROM users WHERE username = ?",
                (username.strip(),),
            ).fetchone()
        return _row_to_user(row) if row else None

    def get_user_by_token_hash(self: DbProtocol, token_hash: str) -> User | None:
        with self._connect() as conn:
            row = conn.execute(
                f"SELECT {_USER_COLUMNS} FROM users WHERE api_token_hash = ?",
                (token_hash,),
            ).fetchone()
        return _row_to_user(row) if row else None

    def list_users(self: DbProtocol) -> list[User]:
        with self._connect() as conn:
            rows = conn.execute(f"SELECT {_USER_COLUMNS} FROM users ORDER BY id ASC").fetchall()
        return [_row_to_user(r) for r in rows]

    def add_user_study_time(self: DbProtocol, user_id: int, seconds: int) -> User | None:
        with self._connect() as conn:
            conn.execute(
                "UPDATE users SET total_study_time = total_study_time + ? WHERE id = ?",
                (max(0, seconds), user_id),
            )
        return self.get_user(user_id)

    def update_user_level(self: DbProtocol, user_id: int, level: str) -> User | None:
        with self._connect() as conn:
            conn.execute("UPDATE users SET level = ? WHERE id = ?", (level, user_id))
        return self.get_user(user_id)

    def update_user_daily_goal(self: DbProtocol, user_id: int, daily_goal: int) -> User | None:
        with self._connect() as conn:
            conn.execute("UPDATE users SET daily_goal = ? WHERE id = ?", (daily_goal, user_id))
        return self.get_user(user_id)
