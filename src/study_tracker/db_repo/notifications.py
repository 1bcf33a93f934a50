from __future__ import annotations

import sqlite3
from datetime import datetime
from typing import Protocol

from study_tracker.db_converters import _row_to_notification
from study_tracker.db_models import Notification


class DbProtocol(Protocol):
    def _connect(self) -> sqlite3.Connection: ...


class NotificationMixin:
    def create_notification(self: DbProtocol, user_id: int, kind: str, message: str, created_at: datetime) -> Notification:
        with self._connect() as conn:
            cursor = conn.execute(
                "INSERT INTO notifications(user_id, type, message, read, created_at) VALUES (?, ?, ?, 0, ?)",
                (user_id, kind, message, created_at.isoformat()),
            )
            row = conn.execute("SELECT * FROM notifications WHERE id = ?", (cursor.lastrowid,)).fetchone()
        assert row is not None
        return _row_to_notification(row)

    def list_notifications(self: DbProtocol, user_id: int, limit: int = 10) -> list[Notification]:
        with self._connect() as conn:
            rows = conn.execute(
                """
                SELECT * FROM notifications
                WHERE user_id = ?
                ORDER BY created_at DESC, id DESC
                LIMIT ?
                """,
                (user_id, max(0, limit)),
            ).fetchall()
        return [_row_to_notification(r) for r in rows]

    def mark_notification_read(self: DbProtocol, notification_id: int, user_id: int) -> Notification | None:
        with self._connect() as conn:
            conn.execute(
                "UPDATE notifications SET read = 1 WHERE id = ? AND user_id = ?",
                (notification_id, user_id),
            )
            row = conn.execute(
                "SELECT * FROM notifications WHERE id = ? AND user_id = ?",
                (notification_id, user_id),
            ).fetchone()
        return _row_to_notification(row) if row else None
