from __future__ import annotations

import sqlite3
from datetime import datetime

from study_tracker.db_constants import DEFAULT_LEVEL
from study_tracker.db_models import (
    Achievement,
    DailyStats,
    GroupMember,
    Notification,
    Session,
    StudyGroup,
    Subject,
    User,
    UserAchievement,
)
from study_tracker.session_types import SessionType


def _dt_or_none(raw: str | None) -> datetime | None:
    return datetime.fromisoformat(raw) if raw else None


def _row_to_user(row: sqlite3.Row) -> User:
    return User(
        id=int(row["id"]),
        username=row["username"],
        display_name=row["display_name"],
        total_study_time=int(row["total_study_time"]),
        level=row["level"] or DEFAULT_LEVEL,
        daily_goal=int(row["daily_goal"]),
        created_at=datetime.fromisoformat(row["created_at"]),
    )


def _row_to_subject(row: sqlite3.Row) -> Subject:
    return Subject(
        id=int(row["id"]),
        user_id=int(row["user_id"]),
        name=row["name"],
        color=row["color"],
        target_time=int(row["target_time"]),
        daily_target_time=int(row["daily_target_time"]),
        total_time=int(row["total_time"]),
        created_at=datetime.fromisoformat(row["created_at"]),
    )


def _row_to_session(row: sqlite3.Row) -> Session:
    return Session(
        id=int(row["id"]),
        user_id=int(row["user_id"]),
        subject_id=int(row["subject_id"]),
        type=SessionType(row["type"]),
        start_time=datetime.fromisoformat(row["start_time"]),
        end_time=_dt_or_none(row["end_time"]),
        duration=int(row["duration"]) if row["duration"] is not None else None,
        break_tag=row["break_tag"],
        is_active=bool(row["is_active"]),
        last_sync_time=_dt_or_none(row["last_sync_time"]),
    )


def _row_to_daily_stats(row: sqlite3.Row, breakdown: dict[int, int]) -> DailyStats:
    return DailyStats(
        id=int(row["id"]),
        user_id=int(row["user_id"]),
        date=row["date"],
        study_time=int(row["study_time"]),
        break_time=int(row["break_time"]),
        sleep_time=int(row["sleep_time"]),
        subject_breakdown=breakdown,
    )


def _row_to_achievement(row: sqlite3.Row) -> Achievement:
    return Achievement(
        id=int(row["id"]),
        name=row["name"],
        description=row["description"],
        icon=row["icon"],
        required_time=int(row["required_time"]),
        level=int(row["level"]),
    )


def _row_to_user_achievement(row: sqlite3.Row) -> UserAchievement:
    return UserAchievement(
        id=int(row["id"]),
        user_id=int(row["user_id"]),
        achievement_id=int(row["achievement_id"]),
        unlocked_at=datetime.fromisoformat(row["unlocked_at"]),
    )


def _row_to_notification(row: sqlite3.Row) -> Notification:
    return Notification(
        id=int(row["id"]),
        user_id=int(row["user_id"]),
        type=row["type"],
        message=row["message"],
        read=bool(row["read"]),
        created_at=datetime.fromisoformat(row["created_at"]),
    )


def _row_to_group(row: sqlite3.Row) -> StudyGroup:
    return StudyGroup(
        id=int(row["id"]),
        name=row["name"],
        created_at=datetime.fromisoformat(row["created_at"]),
    )


def _row_to_group_member(row: sqlite3.Row) -> GroupMember:
    return GroupMember(
        id=int(row["id"]),
        group_id=int(row["group_id"]),
        user_id=int(row["user_id"]),
        joined_at=datetime.fromisoformat(row["joined_at"]),
    )
