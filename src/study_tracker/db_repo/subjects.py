from __future__ import annotations

import sqlite3
from datetime import datetime
from typing import Protocol

from study_tracker.db_converters import _row_to_subject
from study_tracker.db_models import Subject


class DbProtocol(Protocol):
    def _connect(self) -> sqlite3.Connection: ...
    def get_subject(self, subject_id: int) -> Subject | None: ...


class SubjectMixin:
    def create_subject(
        self: DbProtocol,
        user_id: int,
        name: str,
        color: str,
        created_at: datetime,
        target_time: int = 0,
        daily_target_time: int = 0,
    ) -> Subject:
        with self._connect() as conn:
            cursor = conn.execute(
                """
                INSERT INTO subjects(user_id, name, color, target_time, daily_target_time, total_time, created_at)
                VALUES (?, ?, ?, ?, ?, 0, ?)
                """,
                (user_id, name.strip(), color, max(0, target_time), max(0, daily_target_time), created_at.isoformat()),
            )
            row = conn.execute("SELECT * FROM subjects WHERE id = ?", (cursor.lastrowid,)).fetchone()
        assert row is not None
        return _row_to_subject(row)

    def get_subject(self: DbProtocol, subject_id: int) -> Subject | None:
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM subjects WHERE id = ?", (subject_id,)).fetchone()
        return _row_to_subject(row) if row else None

    def list_subjects(self: DbProtocol, user_id: int) -> list[Subject]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM subjects WHERE user_id = ? ORDER BY id ASC",
                (user_id,),
            ).fetchall()
        return [_row_to_subject(r) for r in rows]

    def add_subject_time(self: DbProtocol, subject_id: int, seconds: int) -> Subject | None:
        with self._connect() as conn:
            conn.execute(
                "UPDATE subjects SET total_time = total_time + ? WHERE id = ?",
                (max(0, seconds), subject_id),
            )
        return self.get_subject(subject_id)

    def update_subject_daily_target(self: DbProtocol, subject_id: int, daily_target_time: int) -> Subject | None:
        with self._connect() as conn:
            conn.execute(
                "UPDATE subjects SET daily_target_time = ? WHERE id = ?",
                (daily_target_time, subject_id),
            )
        return self.get_subject(subject_id)

