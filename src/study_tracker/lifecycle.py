"""Session lifecycle: the single active interval per user.

The server never sees pause/resume. Clients report elapsed seconds when they
end a session or start a new one, and submit absence gaps for classification
through `reconcile`. Client-reported durations are trusted (clamped to zero);
only when a caller starts a new session without reporting the elapsed time of
the previous one does the server fall back to its own `now - start_time`.
"""
from __future__ import annotations

import logging
import sqlite3
import threading
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta

from study_tracker.aggregator import AggregationOutcome, apply_session_end
from study_tracker.db import Database, Notification, Session, Subject
from study_tracker.db_constants import BREAK_THRESHOLD_SECONDS, SLEEP_THRESHOLD_SECONDS
from study_tracker.errors import InvalidState, NotFound
from study_tracker.messages import gap_recorded_message
from study_tracker.session_types import SessionType
from study_tracker.time_utils import DEFAULT_STATS_TZ, now_utc
from study_tracker.validation import coerce_seconds, normalize_break_tag

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EndOutcome:
    session: Session
    aggregation: AggregationOutcome


@dataclass(frozen=True)
class ReconcileOutcome:
    gap_seconds: int
    classification: SessionType | None
    ended: Session | None
    gap_session: Session | None
    current: Session
    notification: Notification | None = None


def classify_gap(
    gap_seconds: int,
    break_threshold: int = BREAK_THRESHOLD_SECONDS,
    sleep_threshold: int = SLEEP_THRESHOLD_SECONDS,
) -> SessionType | None:
    """Classify an absence gap. Both thresholds are inclusive upper bounds."""
    if gap_seconds > sleep_threshold:
        return SessionType.SLEEP
    if gap_seconds > break_threshold:
        return SessionType.BREAK
    return None


class SessionLifecycleManager:
    def __init__(
        self,
        db: Database,
        tz_name: str = DEFAULT_STATS_TZ,
        clock: Callable[[], datetime] = now_utc,
    ) -> None:
        self.db = db
        self.tz_name = tz_name
        self._clock = clock
        self._locks: dict[int, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    def _user_lock(self, user_id: int) -> threading.Lock:
        with self._locks_guard:
            lock = self._locks.get(user_id)
            if lock is None:
                lock = threading.Lock()
                self._locks[user_id] = lock
            return lock

    def _owned_subject(self, user_id: int, subject_id: int) -> Subject:
        subject = self.db.get_subject(subject_id)
        if subject is None or subject.user_id != user_id:
            raise NotFound(f"Subject {subject_id} not found")
        return subject

    def _owned_session(self, user_id: int, session_id: int) -> Session:
        session = self.db.get_session(session_id)
        if session is None or session.user_id != user_id:
            raise NotFound(f"Session {session_id} not found")
        return session

    def _finish(self, session: Session, seconds: int, now: datetime) -> EndOutcome:
        ended = self.db.finish_session(session.id, seconds, now)
        if ended is None:
            raise NotFound(f"Session {session.id} not found or already ended")
        aggregation = apply_session_end(self.db, ended, now, self.tz_name)
        logger.info(
            "session ended user_id=%s session_id=%s type=%s duration=%s",
            ended.user_id,
            ended.id,
            ended.type.value,
            seconds,
        )
        return EndOutcome(ended, aggregation)

    def _open(self, user_id: int, subject_id: int, kind: SessionType, started_at: datetime) -> Session:
        try:
            return self.db.create_session(user_id, subject_id, kind, started_at)
        except sqlite3.IntegrityError:
            raise InvalidState("Another session is already active for this user") from None

    def start(
        self,
        user_id: int,
        subject_id: int,
        session_type: str | SessionType | None = SessionType.STUDY,
        elapsed: float | None = None,
    ) -> Session:
        """End the user's active session (if any) and open a new one."""
        kind = SessionType.parse(session_type, default=SessionType.STUDY)
        reported = coerce_seconds(elapsed, "elapsed", clamp=True) if elapsed is not None else None
        with self._user_lock(user_id):
            self._owned_subject(user_id, subject_id)
            now = self._clock()
            active = self.db.get_active_session(user_id)
            if active is not None:
                if reported is None:
                    prior = max(0, int((now - active.start_time).total_seconds()))
                else:
                    prior = reported
                self._finish(active, prior, now)
            session = self._open(user_id, subject_id, kind, now)
        logger.info(
            "session started user_id=%s session_id=%s type=%s subject_id=%s",
            user_id,
            session.id,
            kind.value,
            subject_id,
        )
        return session

    def end(self, user_id: int, session_id: int, duration: float) -> EndOutcome:
        seconds = coerce_seconds(duration, "duration")
        with self._user_lock(user_id):
            session = self._owned_session(user_id, session_id)
            if not session.is_active:
                raise NotFound(f"Session {session_id} not found or already ended")
            return self._finish(session, seconds, self._clock())

    def tag(self, user_id: int, session_id: int, break_tag: str) -> Session:
        tag = normalize_break_tag(break_tag)
        with self._user_lock(user_id):
            session = self._owned_session(user_id, session_id)
            if session.type is not SessionType.BREAK:
                raise InvalidState("Can only tag break sessions")
            updated = self.db.update_break_tag(session_id, tag, self._clock())
        assert updated is not None
        return updated

    def active_sessions(self, user_id: int) -> list[Session]:
        return self.db.list_active_sessions(user_id)

    def reconcile(self, user_id: int, session_id: int, elapsed: float, gap: float) -> ReconcileOutcome:
        """Account for an absence gap reported by a client returning to the page.

        Gaps above the break threshold close the running study session with its
        pre-gap elapsed time, record a closed break or sleep session covering
        the gap and open a fresh study session for the same subject.
        """
        elapsed_seconds = coerce_seconds(elapsed, "elapsed")
        gap_seconds = coerce_seconds(gap, "gap")
        tuning = self.db.get_timer_tuning()
        kind = classify_gap(
            gap_seconds,
            break_threshold=tuning["break_threshold_seconds"],
            sleep_threshold=tuning["sleep_threshold_seconds"],
        )

        with self._user_lock(user_id):
            session = self._owned_session(user_id, session_id)
            if not session.is_active:
                raise NotFound(f"Session {session_id} not found or already ended")
            if session.type is not SessionType.STUDY:
                raise InvalidState("Only running study sessions can be reconciled")
            if kind is None:
                return ReconcileOutcome(gap_seconds, None, None, None, session)

            now = self._clock()
            gap_start = now - timedelta(seconds=gap_seconds)
            ended = self._finish(session, elapsed_seconds, now).session
            gap_open = self._open(user_id, session.subject_id, kind, gap_start)
            gap_session = self._finish(gap_open, gap_seconds, now).session
            current = self._open(user_id, session.subject_id, SessionType.STUDY, now)

            notification = None
            if self.db.is_feature_enabled("gap_notifications"):
                notification = self.db.create_notification(
                    user_id,
                    kind.value,
                    gap_recorded_message(kind, gap_seconds),
                    now,
                )

        logger.info(
            "gap reconciled user_id=%s kind=%s gap=%s resumed_session_id=%s",
            user_id,
            kind.value,
            gap_seconds,
            current.id,
        )
        return ReconcileOutcome(gap_seconds, kind, ended, gap_session, current, notification)
