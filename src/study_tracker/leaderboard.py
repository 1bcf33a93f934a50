from __future__ import annotations

from dataclasses import dataclass

from study_tracker.db import Database
from study_tracker.db_constants import LEADERBOARD_TIMEFRAMES
from study_tracker.errors import ValidationError


@dataclass(frozen=True)
class RankedUser:
    rank: int
    user_id: int
    display_name: str
    total_study_time: int
    level: str
    is_current_user: bool


def normalize_timeframe(raw: str | None) -> str:
    value = (raw or "week").strip().lower()
    if value == "all_time":
        value = "all"
    if value not in LEADERBOARD_TIMEFRAMES:
        raise ValidationError(f"timeframe must be one of: {', '.join(LEADERBOARD_TIMEFRAMES)}")
    return value


def rank_users(db: Database, timeframe: str | None, current_user_id: int | None = None) -> list[RankedUser]:
    # The timeframe is validated but ranking always uses all-time totals.
    normalize_timeframe(timeframe)
    users = sorted(db.list_users(), key=lambda u: (-u.total_study_time, u.id))
    return [
        RankedUser(
            rank=i + 1,
            user_id=u.id,
            display_name=u.display_name,
            total_study_time=u.total_study_time,
            level=u.level,
            is_current_user=u.id == current_user_id,
        )
        for i, u in enumerate(users)
    ]
