from __future__ import annotations

import hashlib
import logging
import secrets
import sqlite3
from dataclasses import dataclass
from datetime import datetime, time, timedelta, timezone

from study_tracker.db import DailyStats, Database, GroupMember, Notification, Session, StudyGroup, Subject, User
from study_tracker.db_constants import DEFAULT_SUBJECT_COLOR
from study_tracker.errors import NotFound, Unauthenticated, ValidationError
from study_tracker.time_utils import DEFAULT_STATS_TZ, parse_day, resolve_tz, week_range_for
from study_tracker.validation import coerce_seconds, require_name

logger = logging.getLogger(__name__)

DEFAULT_SUBJECT_TARGET_SECONDS = 6 * 3600
MAX_NOTIFICATION_LIMIT = 100


@dataclass(frozen=True)
class Registration:
    user: User
    token: str


@dataclass(frozen=True)
class SubjectProgress:
    subject: Subject
    today_seconds: int
    daily_target_seconds: int
    week_seconds: int
    total_target_seconds: int
    daily_ratio: float
    total_ratio: float


@dataclass(frozen=True)
class StatusView:
    user: User
    today: DailyStats | None
    today_study_seconds: int
    daily_goal_seconds: int
    daily_goal_remaining: int
    week_study_seconds: int
    subjects: list[SubjectProgress]


def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def register_user(
    db: Database,
    username: str,
    display_name: str | None,
    now: datetime,
    daily_goal: int | None = None,
) -> Registration:
    name = require_name(username, "username")
    shown = require_name(display_name, "display name") if display_name else name
    goal = coerce_seconds(daily_goal, "daily goal") if daily_goal is not None else None
    if db.get_user_by_username(name) is not None:
        raise ValidationError("Username already exists")

    token = secrets.token_urlsafe(32)
    try:
        user = db.create_user(name, shown, now, daily_goal=goal, api_token_hash=hash_token(token))
    except sqlite3.IntegrityError:
        raise ValidationError("Username already exists") from None
    logger.info("user registered user_id=%s username=%s", user.id, user.username)
    return Registration(user=user, token=token)


def authenticate(db: Database, token: str | None) -> User:
    if not token:
        raise Unauthenticated("Missing bearer token")
    user = db.get_user_by_token_hash(hash_token(token))
    if user is None:
        raise Unauthenticated("Invalid bearer token")
    return user


def get_user(db: Database, user_id: int) -> User:
    user = db.get_user(user_id)
    if user is None:
        raise NotFound(f"User {user_id} not found")
    return user


def owned_subject(db: Database, user_id: int, subject_id: int) -> Subject:
    subject = db.get_subject(subject_id)
    if subject is None or subject.user_id != user_id:
        raise NotFound(f"Subject {subject_id} not found")
    return subject


def create_subject(
    db: Database,
    user_id: int,
    name: str,
    now: datetime,
    color: str | None = None,
    target_time: int = 0,
    daily_target_time: int = 0,
) -> Subject:
    subject = db.create_subject(
        user_id,
        require_name(name),
        (color or DEFAULT_SUBJECT_COLOR).strip(),
        now,
        target_time=coerce_seconds(target_time, "target time"),
        daily_target_time=coerce_seconds(daily_target_time, "daily target time"),
    )
    logger.info("subject created user_id=%s subject_id=%s", user_id, subject.id)
    return subject


def update_user_daily_goal(db: Database, user_id: int, daily_goal: object) -> User:
    seconds = coerce_seconds(daily_goal, "daily goal")
    user = db.update_user_daily_goal(user_id, seconds)
    if user is None:
        raise NotFound(f"User {user_id} not found")
    return user


def update_subject_daily_target(db: Database, user_id: int, subject_id: int, daily_target_time: object) -> Subject:
    seconds = coerce_seconds(daily_target_time, "daily target time")
    owned_subject(db, user_id, subject_id)
    subject = db.update_subject_daily_target(subject_id, seconds)
    assert subject is not None
    return subject


def get_daily_stats(db: Database, user_id: int, start: str | None, end: str | None) -> list[DailyStats]:
    if not start or not end:
        raise ValidationError("Start and end dates are required")
    start_date = parse_day(start)
    end_date = parse_day(end)
    if start_date > end_date:
        raise ValidationError("Start date must not be after end date")
    return db.daily_stats_between(user_id, start_date, end_date)


def list_notifications(db: Database, user_id: int, limit: int | None = None) -> list[Notification]:
    if limit is None:
        try:
            limit = int(db.get_app_config_value("notifications.default_limit"))
        except (TypeError, ValueError):
            limit = 10
    return db.list_notifications(user_id, limit=max(1, min(limit, MAX_NOTIFICATION_LIMIT)))


def mark_notification_read(db: Database, user_id: int, notification_id: int) -> Notification:
    notification = db.mark_notification_read(notification_id, user_id)
    if notification is None:
        raise NotFound(f"Notification {notification_id} not found")
    return notification


def create_group(db: Database, user_id: int, name: str, now: datetime) -> StudyGroup:
    group = db.create_group(require_name(name, "group name"), now)
    db.add_group_member(group.id, user_id, now)
    logger.info("group created group_id=%s creator=%s", group.id, user_id)
    return group


def _member_group(db: Database, user_id: int, group_id: int) -> StudyGroup:
    group = db.get_group(group_id)
    if group is None or all(m.user_id != user_id for m in db.list_group_members(group_id)):
        raise NotFound(f"Group {group_id} not found")
    return group


def add_group_member(db: Database, user_id: int, group_id: int, member_id: int, now: datetime) -> GroupMember:
    """Add `member_id` to a group the caller belongs to. Re-adding is a no-op."""
    _member_group(db, user_id, group_id)
    if db.get_user(member_id) is None:
        raise NotFound(f"User {member_id} not found")
    return db.add_group_member(group_id, member_id, now)


def list_group_members(db: Database, user_id: int, group_id: int) -> list[GroupMember]:
    _member_group(db, user_id, group_id)
    return db.list_group_members(group_id)


def list_groups(db: Database, user_id: int) -> list[StudyGroup]:
    return db.list_groups_for_user(user_id)


def _ratio(done: int, target: int) -> float:
    if target <= 0:
        return 0.0
    return min(1.0, done / target)


def compute_status(db: Database, user_id: int, now: datetime, tz_name: str = DEFAULT_STATS_TZ) -> StatusView:
    user = get_user(db, user_id)
    local_now = now.astimezone(resolve_tz(tz_name))
    today_date = local_now.date()
    week = week_range_for(local_now)

    today = db.get_daily_stats(user_id, today_date)
    week_rows = db.daily_stats_between(user_id, week.start.date(), (week.end - timedelta(days=1)).date())

    week_by_subject: dict[int, int] = {}
    for row in week_rows:
        for subject_id, seconds in row.subject_breakdown.items():
            week_by_subject[subject_id] = week_by_subject.get(subject_id, 0) + seconds

    today_breakdown = today.subject_breakdown if today else {}
    progress: list[SubjectProgress] = []
    for subject in db.list_subjects(user_id):
        today_seconds = today_breakdown.get(subject.id, 0)
        total_target = subject.target_time or DEFAULT_SUBJECT_TARGET_SECONDS
        progress.append(
            SubjectProgress(
                subject=subject,
                today_seconds=today_seconds,
                daily_target_seconds=subject.daily_target_time,
                week_seconds=week_by_subject.get(subject.id, 0),
                total_target_seconds=total_target,
                daily_ratio=_ratio(today_seconds, subject.daily_target_time),
                total_ratio=_ratio(subject.total_time, total_target),
            )
        )

    studied = today.study_time if today else 0
    return StatusView(
        user=user,
        today=today,
        today_study_seconds=studied,
        daily_goal_seconds=user.daily_goal,
        daily_goal_remaining=max(0, user.daily_goal - studied),
        week_study_seconds=sum(r.study_time for r in week_rows),
        subjects=progress,
    )


def list_session_history(
    db: Database,
    user_id: int,
    start: str,
    end: str,
    tz_name: str = DEFAULT_STATS_TZ,
) -> list[Session]:
    """Sessions started between the start of `start` and the end of `end`, local days."""
    tz = resolve_tz(tz_name)
    start_date = parse_day(start)
    end_date = parse_day(end)
    if start_date > end_date:
        raise ValidationError("Start date must not be after end date")
    window_start = datetime.combine(start_date, time.min, tzinfo=tz)
    window_end = datetime.combine(end_date + timedelta(days=1), time.min, tzinfo=tz)
    return db.list_sessions(user_id, start=window_start.astimezone(timezone.utc), end=window_end.astimezone(timezone.utc))
