from __future__ import annotations

import sqlite3
from datetime import datetime, timezone
from pathlib import Path

from study_tracker.db_constants import ACHIEVEMENT_TIERS


class BaseDatabase:
    def __init__(self, path: Path) -> None:
        self.path = path
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.path, timeout=30)
        conn.row_factory = sqlite3.Row
        return conn

    def _init_db(self) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS schema_migrations (
                    version INTEGER PRIMARY KEY,
                    applied_at TEXT NOT NULL
                )
                """
            )
            current = {row["version"] for row in conn.execute("SELECT version FROM schema_migrations")}

            migrations: dict[int, str] = {
                1: """
                    CREATE TABLE users (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        username TEXT NOT NULL UNIQUE,
                        display_name TEXT NOT NULL,
                        total_study_time INTEGER NOT NULL DEFAULT 0 CHECK(total_study_time >= 0),
                        level TEXT NOT NULL DEFAULT 'Student',
                        daily_goal INTEGER NOT NULL DEFAULT 28800,
                        api_token_hash TEXT UNIQUE,
                        created_at TEXT NOT NULL
                    );

                    CREATE TABLE subjects (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        user_id INTEGER NOT NULL REFERENCES users(id),
                        name TEXT NOT NULL,
                        color TEXT NOT NULL,
                        target_time INTEGER NOT NULL DEFAULT 0,
                        daily_target_time INTEGER NOT NULL DEFAULT 0,
                        total_time INTEGER NOT NULL DEFAULT 0 CHECK(total_time >= 0),
                        created_at TEXT NOT NULL
                    );

                    CREATE INDEX idx_subjects_user ON subjects(user_id);

                    CREATE TABLE sessions (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        user_id INTEGER NOT NULL REFERENCES users(id),
                        subject_id INTEGER NOT NULL REFERENCES subjects(id),
                        type TEXT NOT NULL CHECK(type IN ('study', 'break', 'sleep')),
                        start_time TEXT NOT NULL,
                        end_time TEXT,
                        duration INTEGER CHECK(duration IS NULL OR duration >= 0),
                        break_tag TEXT,
                        is_active INTEGER NOT NULL DEFAULT 1,
                        last_sync_time TEXT
                    );

                    CREATE INDEX idx_sessions_user_start ON sessions(user_id, start_time);
                    CREATE UNIQUE INDEX idx_sessions_one_active ON sessions(user_id) WHERE is_active = 1;

                    CREATE TABLE daily_stats (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        user_id INTEGER NOT NULL REFERENCES users(id),
                        date TEXT NOT NULL,
                        study_time INTEGER NOT NULL DEFAULT 0,
                        break_time INTEGER NOT NULL DEFAULT 0,
                        sleep_time INTEGER NOT NULL DEFAULT 0,
                        UNIQUE(user_id, date)
                    );

                    CREATE TABLE daily_subject_stats (
                        user_id INTEGER NOT NULL,
                        date TEXT NOT NULL,
                        subject_id INTEGER NOT NULL,
                        seconds INTEGER NOT NULL DEFAULT 0,
                        PRIMARY KEY(user_id, date, subject_id)
                    );

                    CREATE TABLE achievements (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        name TEXT NOT NULL UNIQUE,
                        description TEXT NOT NULL,
                        icon TEXT NOT NULL,
                        required_time INTEGER NOT NULL,
                        level INTEGER NOT NULL
                    );

                    CREATE TABLE user_achievements (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        user_id INTEGER NOT NULL REFERENCES users(id),
                        achievement_id INTEGER NOT NULL REFERENCES achievements(id),
                        unlocked_at TEXT NOT NULL,
                        UNIQUE(user_id, achievement_id)
                    );

                    CREATE TABLE notifications (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        user_id INTEGER NOT NULL REFERENCES users(id),
                        type TEXT NOT NULL,
                        message TEXT NOT NULL,
                        read INTEGER NOT NULL DEFAULT 0,
                        created_at TEXT NOT NULL
                    );

                    CREATE INDEX idx_notifications_user_created ON notifications(user_id, created_at);

                    CREATE TABLE study_groups (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        name TEXT NOT NULL,
                        created_at TEXT NOT NULL
                    );

                    CREATE TABLE group_members (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        group_id INTEGER NOT NULL REFERENCES study_groups(id),
                        user_id INTEGER NOT NULL REFERENCES users(id),
                        joined_at TEXT NOT NULL,
                        UNIQUE(group_id, user_id)
                    );
                """,
                2: """
                    CREATE TABLE IF NOT EXISTS app_config (
                        key TEXT PRIMARY KEY,
                        value_json TEXT NOT NULL,
                        updated_at TEXT NOT NULL,
                        updated_by TEXT NOT NULL
                    );

                    CREATE TABLE IF NOT EXISTS admin_audit_log (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        actor TEXT NOT NULL,
                        action TEXT NOT NULL,
                        target TEXT NOT NULL,
                        payload_json TEXT,
                        created_at TEXT NOT NULL
                    );

                    CREATE TABLE IF NOT EXISTS reminder_events (
                        user_id INTEGER NOT NULL,
                        event_key TEXT NOT NULL,
                        sent_at TEXT NOT NULL,
                        PRIMARY KEY(user_id, event_key)
                    );
                """,
            }

            now = datetime.now(timezone.utc).isoformat(timespec="seconds")
            for version in sorted(migrations):
                if version in current:
                    continue
                conn.executescript(migrations[version])
                conn.execute(
                    "INSERT INTO schema_migrations(version, applied_at) VALUES (?, ?)",
                    (version, now),
                )

            self._seed_achievements(conn)

    def _seed_achievements(self, conn: sqlite3.Connection) -> None:
        for name, description, icon, required_time, level in ACHIEVEMENT_TIERS:
            conn.execute(
                """
                INSERT INTO achievements(name, description, icon, required_time, level)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT(name) DO UPDATE SET
                    description=excluded.description,
                    icon=excluded.icon,
                    required_time=excluded.required_time,
                    level=excluded.level
                """,
                (name, description, icon, required_time, level),
            )
