from __future__ import annotations

from study_tracker.session_types import SessionType


def format_seconds_hm(seconds: int) -> str:
    sign = "-" if seconds < 0 else ""
    total_minutes = abs(seconds) // 60
    h, m = divmod(total_minutes, 60)
    if h == 0:
        return f"{sign}{m}m"
    if m == 0:
        return f"{sign}{h}h"
    return f"{sign}{h}h {m}m"


def achievement_unlocked_message(name: str) -> str:
    return f"You've unlocked a new achievement: {name}!"


def gap_recorded_message(kind: SessionType, gap_seconds: int) -> str:
    away = format_seconds_hm(gap_seconds)
    if kind is SessionType.SLEEP:
        return f"Sleep detected: you were away for {away}. This has been recorded as sleep time."
    return f"Break detected: you were away for {away}. This has been recorded as break time."


def inactivity_reminder_message() -> str:
    return "Reminder: no study time logged yet today. Start a session to keep your progress going."


def daily_goal_reminder_message(missing_seconds: int) -> str:
    return f"Daily goal reminder: you are {format_seconds_hm(missing_seconds)} short of your goal."
