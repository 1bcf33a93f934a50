from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

from study_tracker.session_types import SessionType


@dataclass(frozen=True)
class User:
    id: int
    username: str
    display_name: str
    total_study_time: int
    level: str
    daily_goal: int
    created_at: datetime


@dataclass(frozen=True)
class Subject:
    id: int
    user_id: int
    name: str
    color: str
    target_time: int
    daily_target_time: int
    total_time: int
    created_at: datetime


@dataclass(frozen=True)
class Session:
    id: int
    user_id: int
    subject_id: int
    type: SessionType
    start_time: datetime
    end_time: datetime | None
    duration: int | None
    break_tag: str | None
    is_active: bool
    last_sync_time: datetime | None


@dataclass(frozen=True)
class DailyStats:
    id: int
    user_id: int
    date: str
    study_time: int
    break_time: int
    sleep_time: int
    subject_breakdown: dict[int, int] = field(default_factory=dict)


@dataclass(frozen=True)
class Achievement:
    id: int
    name: str
    description: str
    icon: str
    required_time: int
    level: int


@dataclass(frozen=True)
class UserAchievement:
    id: int
    user_id: int
    achievement_id: int
    unlocked_at: datetime


@dataclass(frozen=True)
class Notification:
    id: int
    user_id: int
    type: str
    message: str
    read: bool
    created_at: datetime


@dataclass(frozen=True)
class StudyGroup:
    id: int
    name: str
    created_at: datetime


@dataclass(frozen=True)
class GroupMember:
    id: int
    group_id: int
    user_id: int
    joined_at: datetime
