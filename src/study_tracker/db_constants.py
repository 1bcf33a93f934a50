from __future__ import annotations

from typing import Any

# (name, description, icon, required seconds, level)
ACHIEVEMENT_TIERS: list[tuple[str, str, str, int, int]] = [
    ("Student", "Studied for 1 hour", "school", 3600, 1),
    ("Specs Nerd", "Studied for 3 hours", "smart_toy", 10800, 2),
    ("Hardcore Student", "Studied for 6 hours", "psychology", 21600, 3),
    ("Workaholic", "Studied for 8 hours", "work", 28800, 4),
    ("King", "Studied for 10 hours", "military_tech", 36000, 5),
    ("God-level Studier", "Studied for 12 hours", "self_improvement", 43200, 6),
]

DEFAULT_LEVEL = "Student"
DEFAULT_DAILY_GOAL_SECONDS = 8 * 3600
DEFAULT_BREAK_TAG = "rest"
DEFAULT_SUBJECT_COLOR = "#3b82f6"

BREAK_THRESHOLD_SECONDS = 15 * 60
SLEEP_THRESHOLD_SECONDS = 30 * 60

LEADERBOARD_TIMEFRAMES = ("today", "week", "month", "all")

APP_CONFIG_DEFAULTS: dict[str, Any] = {
    "feature.achievements_enabled": True,
    "feature.gap_notifications_enabled": True,
    "job.reminders_enabled": True,
    "timer.break_threshold_seconds": BREAK_THRESHOLD_SECONDS,
    "timer.sleep_threshold_seconds": SLEEP_THRESHOLD_SECONDS,
    "notifications.default_limit": 10,
}

JOB_CONFIG_KEYS = {
    "reminders": "job.reminders_enabled",
}
