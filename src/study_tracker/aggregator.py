from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import assert_never

from study_tracker.achievements import UnlockedAchievement, evaluate_achievements
from study_tracker.db import DailyStats, Database, Session, Subject, User
from study_tracker.session_types import SessionType
from study_tracker.time_utils import DEFAULT_STATS_TZ, stats_day

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AggregationOutcome:
    session: Session
    day: date
    daily_stats: DailyStats
    user: User | None = None
    subject: Subject | None = None
    unlocked: list[UnlockedAchievement] = field(default_factory=list)


def _evaluate_safely(db: Database, user_id: int, now: datetime) -> list[UnlockedAchievement]:
    if not db.is_feature_enabled("achievements"):
        return []
    try:
        return evaluate_achievements(db, user_id, now)
    except Exception:
        # duration accounting already succeeded; unlocks are retried on the next study session
        logger.exception("achievement evaluation failed user_id=%s", user_id)
        return []


def apply_session_end(
    db: Database,
    session: Session,
    now: datetime,
    tz_name: str = DEFAULT_STATS_TZ,
) -> AggregationOutcome:
    """Roll an ended session into the subject, user and daily totals.

    The daily bucket is the date of `now` (the end call), so a session that
    crosses midnight is attributed entirely to the day it ended.
    """
    if session.is_active or session.duration is None:
        raise ValueError(f"session {session.id} has not ended")

    duration = session.duration
    day = stats_day(now, tz_name)
    kind = session.type

    if kind is SessionType.STUDY:
        user = db.add_user_study_time(session.user_id, duration)
        subject = db.add_subject_time(session.subject_id, duration)
        stats = db.add_daily_time(session.user_id, day, kind, duration, subject_id=session.subject_id)
        unlocked = _evaluate_safely(db, session.user_id, now)
        if unlocked:
            user = db.get_user(session.user_id)
        return AggregationOutcome(session, day, stats, user=user, subject=subject, unlocked=unlocked)
    elif kind is SessionType.BREAK or kind is SessionType.SLEEP:
        stats = db.add_daily_time(session.user_id, day, kind, duration)
        return AggregationOutcome(session, day, stats)
    else:
        assert_never(kind)
