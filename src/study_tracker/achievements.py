from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime

from study_tracker.db import Achievement, Database, Notification, UserAchievement
from study_tracker.errors import NotFound
from study_tracker.messages import achievement_unlocked_message

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class UnlockedAchievement:
    achievement: Achievement
    user_achievement: UserAchievement
    notification: Notification


@dataclass(frozen=True)
class AchievementStatus:
    achievement: Achievement
    unlocked: bool


def qualifying_tiers(total_study_time: int, catalog: list[Achievement]) -> list[Achievement]:
    """Tiers whose requirement is met, in ascending order of requirement."""
    ordered = sorted(catalog, key=lambda a: (a.required_time, a.id))
    return [a for a in ordered if total_study_time >= a.required_time]


def evaluate_achievements(db: Database, user_id: int, now: datetime) -> list[UnlockedAchievement]:
    user = db.get_user(user_id)
    if user is None:
        raise NotFound(f"User {user_id} not found")

    catalog = db.list_achievements()
    unlocked_ids = {ua.achievement_id for ua in db.list_user_achievements(user_id)}
    rank_by_name = {a.name: a.level for a in catalog}
    current_rank = rank_by_name.get(user.level, 0)

    created: list[UnlockedAchievement] = []
    for achievement in qualifying_tiers(user.total_study_time, catalog):
        if achievement.id in unlocked_ids:
            continue
        user_achievement = db.add_user_achievement(user_id, achievement.id, now)
        if user_achievement is None:
            # another request unlocked it first
            continue
        notification = db.create_notification(
            user_id,
            "achievement",
            achievement_unlocked_message(achievement.name),
            now,
        )
        if achievement.level >= current_rank:
            db.update_user_level(user_id, achievement.name)
            current_rank = achievement.level
        created.append(UnlockedAchievement(achievement, user_achievement, notification))
        logger.info("achievement unlocked user_id=%s achievement=%s", user_id, achievement.name)
    return created


def achievements_with_status(db: Database, user_id: int) -> list[AchievementStatus]:
    unlocked_ids = {ua.achievement_id for ua in db.list_user_achievements(user_id)}
    return [AchievementStatus(a, a.id in unlocked_ids) for a in db.list_achievements()]
