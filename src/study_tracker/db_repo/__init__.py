from .base import BaseDatabase
from .users import UserMixin
from .subjects import SubjectMixin
from .sessions import SessionMixin
from .stats import StatsMixin
from .achievements import AchievementMixin
from .notifications import NotificationMixin
from .groups import GroupMixin
from .system import SystemMixin

__all__ = [
    "BaseDatabase",
    "UserMixin",
    "SubjectMixin",
    "SessionMixin",
    "StatsMixin",
    "AchievementMixin",
    "NotificationMixin",
    "GroupMixin",
    "SystemMixin",
]
