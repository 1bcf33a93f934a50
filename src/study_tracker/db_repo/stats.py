from __future__ import annotations

import sqlite3
from datetime import date
from typing import Protocol

from study_tracker.db_converters import _row_to_daily_stats
from study_tracker.db_models import DailyStats
from study_tracker.session_types import SessionType


class DbProtocol(Protocol):
    def _connect(self) -> sqlite3.Connection: ...
    def get_daily_stats(self, user_id: int, day: date) -> DailyStats | None: ...


class StatsMixin:
    def add_daily_time(
        self: DbProtocol,
        user_id: int,
        day: date,
        session_type: SessionType,
        seconds: int,
        subject_id: int | None = None,
    ) -> DailyStats:
        seconds = max(0, seconds)
        column = session_type.stats_column
        day_key = day.isoformat()
        with self._connect() as conn:
            conn.execute(
                f"""
                INSERT INTO daily_stats(user_id, date, {column})
                VALUES (?, ?, ?)
                ON CONFLICT(user_id, date) DO UPDATE SET
                    {column} = {column} + excluded.{column}
                """,
                (user_id, day_key, seconds),
            )
            if session_type is SessionType.STUDY and subject_id is not None:
                conn.execute(
                    """
                    INSERT INTO daily_subject_stats(user_id, date, subject_id, seconds)
                    VALUES (?, ?, ?, ?)
                    ON CONFLICT(user_id, date, subject_id) DO UPDATE SET
                        seconds = seconds + excluded.seconds
                    """,
                    (user_id, day_key, subject_id, seconds),
                )
        stats = self.get_daily_stats(user_id, day)
        assert stats is not None
        return stats

    def get_daily_stats(self: DbProtocol, user_id: int, day: date) -> DailyStats | None:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM daily_stats WHERE user_id = ? AND date = ?",
                (user_id, day.isoformat()),
            ).fetchone()
            if row is None:
                return None
            breakdown_rows = conn.execute(
                "SELECT subject_id, seconds FROM daily_subject_stats WHERE user_id = ? AND date = ?",
                (user_id, day.isoformat()),
            ).fetchall()
        breakdown = {int(r["subject_id"]): int(r["seconds"]) for r in breakdown_rows}
        return _row_to_daily_stats(row, breakdown)

    def daily_stats_between(self: DbProtocol, user_id: int, start_date: date, end_date: date) -> list[DailyStats]:
        """Stats buckets with start_date <= date <= end_date, oldest first."""
        params = (user_id, start_date.isoformat(), end_date.isoformat())
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM daily_stats WHERE user_id = ? AND date >= ? AND date <= ? ORDER BY date ASC",
                params,
            ).fetchall()
            breakdown_rows = conn.execute(
                """
                SELECT date, subject_id, seconds FROM daily_subject_stats
                WHERE user_id = ? AND date >= ? AND date <= ?
                """,
                params,
            ).fetchall()

        by_date: dict[str, dict[int, int]] = {}
        for r in breakdown_rows:
            by_date.setdefault(r["date"], {})[int(r["subject_id"])] = int(r["seconds"])
        return [_row_to_daily_stats(row, by_date.get(row["date"], {})) for row in rows]

    def study_seconds_for_date(self: DbProtocol, user_id: int, day: date) -> int:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT study_time FROM daily_stats WHERE user_id = ? AND date = ?",
                (user_id, day.isoformat()),
            ).fetchone()
        return int(row["study_time"]) if row else 0
