from __future__ import annotations

import sqlite3
from datetime import datetime
from typing import Protocol

from study_tracker.db_converters import _row_to_group, _row_to_group_member
from study_tracker.db_models import GroupMember, StudyGroup


class DbProtocol(Protocol):
    def _connect(self) -> sqlite3.Connection: ...


class GroupMixin:
    def create_group(self: DbProtocol, name: str, created_at: datetime) -> StudyGroup:
        with self._connect() as conn:
            cursor = conn.execute(
                "INSERT INTO study_groups(name, created_at) VALUES (?, ?)",
                (name.strip(), created_at.isoformat()),
            )
            row = conn.execute("SELECT * FROM study_groups WHERE id = ?", (cursor.lastrowid,)).fetchone()
        assert row is not None
        return _row_to_group(row)

    def get_group(self: DbProtocol, group_id: int) -> StudyGroup | None:
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM study_groups WHERE id = ?", (group_id,)).fetchone()
        return _row_to_group(row) if row else None

    def add_group_member(self: DbProtocol, group_id: int, user_id: int, joined_at: datetime) -> GroupMember:
        with self._connect() as conn:
            conn.execute(
                "INSERT OR IGNORE INTO group_members(group_id, user_id, joined_at) VALUES (?, ?, ?)",
                (group_id, user_id, joined_at.isoformat()),
            )
            row = conn.execute(
                "SELECT * FROM group_members WHERE group_id = ? AND user_id = ?",
                (group_id, user_id),
            ).fetchone()
        assert row is not None
        return _row_to_group_member(row)

    def list_groups_for_user(self: DbProtocol, user_id: int) -> list[StudyGroup]:
        with self._connect() as conn:
            rows = conn.execute(
                """
                SELECT g.* FROM study_groups g
                JOIN group_members m ON m.group_id = g.id
                WHERE m.user_id = ?
                ORDER BY g.id ASC
                """,
                (user_id,),
            ).fetchall()
        return [_row_to_group(r) for r in rows]

    def list_group_members(self: DbProtocol, group_id: int) -> list[GroupMember]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM group_members WHERE group_id = ? ORDER BY joined_at ASC, id ASC",
                (group_id,),
            ).fetchall()
        return [_row_to_group_member(r) for r in rows]
