from __future__ import annotations

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
from study_tracker.db_repo import (
    AchievementMixin,
    BaseDatabase,
    GroupMixin,
    NotificationMixin,
    SessionMixin,
    StatsMixin,
    SubjectMixin,
    SystemMixin,
    UserMixin,
)

__all__ = [
    "Database",
    "Achievement",
    "DailyStats",
    "GroupMember",
    "Notification",
    "Session",
    "StudyGroup",
    "Subject",
    "User",
    "UserAchievement",
]


class Database(
    UserMixin,
    SubjectMixin,
    SessionMixin,
    StatsMixin,
    AchievementMixin,
    NotificationMixin,
    GroupMixin,
    SystemMixin,
    BaseDatabase,
):
    pass
