from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from study_tracker.errors import ValidationError

DEFAULT_STATS_TZ = "UTC"


def now_utc() -> datetime:
    return datetime.now(tz=timezone.utc)


def now_local(tz_name: str = DEFAULT_STATS_TZ) -> datetime:
    return datetime.now(tz=ZoneInfo(tz_name))


def resolve_tz(tz_name: str) -> ZoneInfo:
    try:
        return ZoneInfo(tz_name)
    except (ZoneInfoNotFoundError, ValueError):
        raise ValidationError(f"Unknown timezone: {tz_name}") from None


def stats_day(dt: datetime, tz_name: str = DEFAULT_STATS_TZ) -> date:
    """Calendar date of `dt` in the stats timezone (naive values are taken as UTC)."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(ZoneInfo(tz_name)).date()


def parse_day(raw: str) -> date:
    try:
        return date.fromisoformat(raw.strip())
    except (AttributeError, ValueError):
        raise ValidationError("Dates must use YYYY-MM-DD format") from None


@dataclass(frozen=True)
class WeekRange:
    start: datetime
    end: datetime


def week_range_for(dt: datetime) -> WeekRange:
    local_midnight = dt.replace(hour=0, minute=0, second=0, microsecond=0)
    start = local_midnight - timedelta(days=local_midnight.weekday())
    end = start + timedelta(days=7)
    return WeekRange(start=start, end=end)


def parse_hhmm(value: str) -> time:
    hour_str, minute_str = value.split(":", maxsplit=1)
    return time(hour=int(hour_str), minute=int(minute_str))
