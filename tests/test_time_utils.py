from datetime import date, datetime, timezone
from zoneinfo import ZoneInfo

import pytest

from study_tracker.errors import ValidationError
from study_tracker.time_utils import parse_day, parse_hhmm, resolve_tz, stats_day, week_range_for


def test_week_range_monday_start_oslo() -> None:
    dt = datetime(2026, 2, 4, 10, 30, tzinfo=ZoneInfo("Europe/Oslo"))  # Wednesday
    week = week_range_for(dt)
    assert week.start.strftime("%Y-%m-%d %H:%M") == "2026-02-02 00:00"
    assert week.end.strftime("%Y-%m-%d %H:%M") == "2026-02-09 00:00"


def test_stats_day_converts_to_stats_timezone() -> None:
    late = datetime(2026, 2, 4, 23, 30, tzinfo=timezone.utc)
    assert stats_day(late) == date(2026, 2, 4)
    assert stats_day(late, "Europe/Oslo") == date(2026, 2, 5)
    assert stats_day(datetime(2026, 2, 4, 23, 30)) == date(2026, 2, 4)


def test_parse_day() -> None:
    assert parse_day(" 2026-02-04 ") == date(2026, 2, 4)
    with pytest.raises(ValidationError):
        parse_day("04.02.2026")


def test_resolve_tz_rejects_unknown_zone() -> None:
    assert str(resolve_tz("Europe/Oslo")) == "Europe/Oslo"
    with pytest.raises(ValidationError):
        resolve_tz("Mars/Olympus")


def test_parse_hhmm() -> None:
    assert parse_hhmm("21:30").hour == 21
    assert parse_hhmm("21:30").minute == 30
