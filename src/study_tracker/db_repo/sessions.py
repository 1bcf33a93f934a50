from __future__ import annotations

import sqlite3
from datetime import datetime
from typing import Protocol

from study_tracker.db_constants import DEFAULT_BREAK_TAG
from study_tracker.db_converters import _row_to_session
from study_tracker.db_models import Session
from study_tracker.session_types import SessionType


class DbProtocol(Protocol):
    def _connect(self) -> sqlite3.Connection: ...
    def get_session(self, session_id: int) -> Session | None: ...


class SessionMixin:
    def create_session(
        self: DbProtocol,
        user_id: int,
        subject_id: int,
        session_type: SessionType,
        started_at: datetime,
    ) -> Session:
        """Insert an active session.

        Raises sqlite3.IntegrityError when the user already has an active
        session (partial unique index on active rows).
        """
        break_tag = DEFAULT_BREAK_TAG if session_type is SessionType.BREAK else None
        with self._connect() as conn:
            cursor = conn.execute(
                """
                INSERT INTO sessions(user_id, subject_id, type, start_time, break_tag, is_active, last_sync_time)
                VALUES (?, ?, ?, ?, ?, 1, ?)
                """,
                (user_id, subject_id, session_type.value, started_at.isoformat(), break_tag, started_at.isoformat()),
            )
            row = conn.execute("SELECT * FROM sessions WHERE id = ?", (cursor.lastrowid,)).fetchone()
        assert row is not None
        return _row_to_session(row)

    def get_session(self: DbProtocol, session_id: int) -> Session | None:
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM sessions WHERE id = ?", (session_id,)).fetchone()
        return _row_to_session(row) if row else None

    def list_active_sessions(self: DbProtocol, user_id: int) -> list[Session]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM sessions WHERE user_id = ? AND is_active = 1 ORDER BY start_time DESC, id DESC",
                (user_id,),
            ).fetchall()
        return [_row_to_session(r) for r in rows]

    def get_active_session(self: DbProtocol, user_id: int) -> Session | None:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM sessions WHERE user_id = ? AND is_active = 1 LIMIT 1",
                (user_id,),
            ).fetchone()
        return _row_to_session(row) if row else None

    def finish_session(self: DbProtocol, session_id: int, duration: int, ended_at: datetime) -> Session | None:
        """Close an active session once. Returns None if it is unknown or already ended."""
        with self._connect() as conn:
            cursor = conn.execute(
                """
                UPDATE sessions
                SET end_time = ?, duration = ?, is_active = 0, last_sync_time = ?
                WHERE id = ? AND is_active = 1
                """,
                (ended_at.isoformat(), duration, ended_at.isoformat(), session_id),
            )
            if cursor.rowcount == 0:
                return None
            row = conn.execute("SELECT * FROM sessions WHERE id = ?", (session_id,)).fetchone()
        assert row is not None
        return _row_to_session(row)

    def update_break_tag(self: DbProtocol, session_id: int, break_tag: str, synced_at: datetime) -> Session | None:
        with self._connect() as conn:
            conn.execute(
                "UPDATE sessions SET break_tag = ?, last_sync_time = ? WHERE id = ? AND type = 'break'",
                (break_tag, synced_at.isoformat(), session_id),
            )
        return self.get_session(session_id)

    def list_sessions(
        self: DbProtocol,
        user_id: int,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> list[Session]:
        conditions = ["user_id = ?"]
        params: list[object] = [user_id]
        if start is not None:
            conditions.append("start_time >= ?")
            params.append(start.isoformat())
        if end is not None:
            conditions.append("start_time < ?")
            params.append(end.isoformat())
        query = f"SELECT * FROM sessions WHERE {' AND '.join(conditions)} ORDER BY start_time ASC, id ASC"
        with self._connect() as conn:
            rows = conn.execute(query, params).fetchall()
        return [_row_to_session(r) for r in rows]
