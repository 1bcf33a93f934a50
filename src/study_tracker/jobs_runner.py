from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, time

from study_tracker.config import Settings
from study_tracker.db import Database
from study_tracker.messages import daily_goal_reminder_message, inactivity_reminder_message
from study_tracker.time_utils import now_local, parse_hhmm

logger = logging.getLogger(__name__)

INACTIVITY_REMINDER_AT = "20:00"
DAILY_GOAL_REMINDER_AT = "21:30"


@dataclass(frozen=True)
class ReminderDecision:
    inactivity: bool
    daily_goal: bool


def evaluate_reminders(
    now: datetime,
    studied_today_seconds: int,
    daily_goal_seconds: int,
    has_study_today: bool,
    inactivity_at: time | None = None,
    daily_goal_at: time | None = None,
) -> ReminderDecision:
    inactivity_at = inactivity_at or parse_hhmm(INACTIVITY_REMINDER_AT)
    daily_goal_at = daily_goal_at or parse_hhmm(DAILY_GOAL_REMINDER_AT)
    inactivity_due = now.time() >= inactivity_at and not has_study_today
    goal_due = now.time() >= daily_goal_at and studied_today_seconds < daily_goal_seconds
    return ReminderDecision(inactivity=inactivity_due, daily_goal=goal_due)


def run_reminders(db: Database, settings: Settings, now: datetime | None = None) -> int:
    """Create reminder notifications; returns how many were created."""
    if not db.is_job_enabled("reminders"):
        logger.info("job disabled: reminders")
        return 0
    now = now or now_local(settings.stats_tz)
    date_key = now.date().isoformat()
    created = 0

    for user in db.list_users():
        studied = db.study_seconds_for_date(user.id, now.date())
        decision = evaluate_reminders(
            now=now,
            studied_today_seconds=studied,
            daily_goal_seconds=user.daily_goal,
            has_study_today=studied > 0,
        )

        if decision.inactivity:
            key = f"inactivity:{date_key}"
            if not db.was_event_sent(user.id, key):
                db.create_notification(user.id, "reminder", inactivity_reminder_message(), now)
                db.mark_event_sent(user.id, key, now)
                created += 1
                logger.info("sent inactivity reminder user_id=%s", user.id)

        if decision.daily_goal:
            key = f"daily-goal:{date_key}"
            if not db.was_event_sent(user.id, key):
                missing = max(0, user.daily_goal - studied)
                db.create_notification(user.id, "reminder", daily_goal_reminder_message(missing), now)
                db.mark_event_sent(user.id, key, now)
                created += 1
                logger.info("sent daily goal reminder user_id=%s", user.id)
    return created


def run_job(job_name: str, db: Database, settings: Settings) -> None:
    if not db.is_job_enabled(job_name):
        logger.info("job disabled: %s", job_name)
        return
    if job_name == "reminders":
        run_reminders(db, settings)
    else:
        raise SystemExit(f"Unknown job '{job_name}'. Expected one of: reminders")
