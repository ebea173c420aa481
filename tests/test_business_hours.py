"""Tests for the business hours calculator."""

from datetime import datetime, time, timezone
from zoneinfo import ZoneInfo

import pytest

from voicedesk.schemas.tenant import BusinessHoursSchedule, DayHours, default_business_hours
from voicedesk.utils.business_hours import (
    NoBusinessHoursError,
    is_within_business_hours,
    next_business_hour,
    requires_business_hours,
)

NY = "America/New_York"


def _local(*args) -> datetime:
    return datetime(*args, tzinfo=ZoneInfo(NY))


@pytest.mark.parametrize(
    "local_time, expected",
    [
        ((9, 0), True),
        ((16, 59), True),
        ((17, 0), False),
        ((8, 59), False),
    ],
)
def test_open_window_is_half_open(weekday_hours, local_time, expected):
    # 2025-03-12 is a Wednesday
    instant = _local(2025, 3, 12, *local_time)
    assert is_within_business_hours(instant, weekday_hours, NY) is expected


def test_closed_day_is_never_within_hours(weekday_hours):
    assert is_within_business_hours(_local(2025, 3, 16, 12, 0), weekday_hours, NY) is False


def test_evaluated_in_tenant_timezone(weekday_hours):
    # 14:30 UTC on a Wednesday in March (after DST) is 10:30 in New York
    instant = datetime(2025, 3, 12, 14, 30, tzinfo=timezone.utc)
    assert is_within_business_hours(instant, weekday_hours, NY) is True
    assert is_within_business_hours(instant, weekday_hours, "Asia/Tokyo") is False


def test_naive_instant_rejected(weekday_hours):
    with pytest.raises(ValueError):
        is_within_business_hours(datetime(2025, 3, 12, 10, 0), weekday_hours, NY)


def test_next_business_hour_skips_closed_day():
    schedule = BusinessHoursSchedule(
        monday=DayHours(open=time(9, 0), close=time(17, 0)),
        sunday=DayHours(closed=True),
    )
    # Sunday 10:00 local
    result = next_business_hour(_local(2025, 3, 16, 10, 0), schedule, NY)
    assert result.astimezone(ZoneInfo(NY)) == _local(2025, 3, 17, 9, 0)


def _closed_wednesday() -> BusinessHoursSchedule:
    weekday = DayHours(open=time(9, 0), close=time(17, 0))
    return BusinessHoursSchedule(
        tuesday=weekday,
        wednesday=DayHours(open=time(9, 0), close=time(17, 0), closed=True),
        thursday=weekday,
    )


def test_closed_flag_wins_over_listed_times():
    # Wednesday 12:00, inside the listed window but flagged closed
    assert is_within_business_hours(_local(2025, 3, 12, 12, 0), _closed_wednesday(), NY) is False


def test_next_business_hour_skips_closed_day_with_times():
    # Tuesday after close -> Thursday open, Wednesday skipped
    result = next_business_hour(_local(2025, 3, 11, 18, 0), _closed_wednesday(), NY)
    assert result == _local(2025, 3, 13, 9, 0)

    result = next_business_hour(_local(2025, 3, 12, 8, 0), _closed_wednesday(), NY)
    assert result == _local(2025, 3, 13, 9, 0)


def test_next_business_hour_inside_hours_returns_instant(weekday_hours):
    instant = _local(2025, 3, 12, 11, 15)
    assert next_business_hour(instant, weekday_hours, NY) == instant


def test_next_business_hour_before_open_returns_same_day_open(weekday_hours):
    result = next_business_hour(_local(2025, 3, 12, 6, 0), weekday_hours, NY)
    assert result == _local(2025, 3, 12, 9, 0)
    assert result.tzinfo == ZoneInfo("UTC")


def test_next_business_hour_after_close_rolls_to_next_open_day(weekday_hours):
    # Friday 18:00 -> Monday 09:00
    result = next_business_hour(_local(2025, 3, 14, 18, 0), weekday_hours, NY)
    assert result == _local(2025, 3, 17, 9, 0)


def test_next_business_hour_handles_dst_transition(weekday_hours):
    # Friday evening before spring-forward (EST, UTC-5) -> Monday open in EDT (UTC-4)
    result = next_business_hour(_local(2025, 3, 7, 20, 0), weekday_hours, NY)
    assert result == datetime(2025, 3, 10, 13, 0, tzinfo=timezone.utc)


def test_no_open_day_raises():
    schedule = BusinessHoursSchedule(sunday=DayHours(closed=True))
    with pytest.raises(NoBusinessHoursError):
        next_business_hour(_local(2025, 3, 12, 10, 0), schedule, NY)


def test_observed_holidays_are_closed():
    schedule = default_business_hours().model_copy(update={"observed_holidays": "US"})
    # 2025-07-04 (Friday) is Independence Day
    assert is_within_business_hours(_local(2025, 7, 4, 10, 0), schedule, NY) is False
    assert next_business_hour(_local(2025, 7, 4, 10, 0), schedule, NY) == _local(2025, 7, 5, 10, 0)


def test_day_hours_accepts_start_end_aliases():
    hours = DayHours.model_validate({"start": "08:30", "end": "12:00"})
    assert hours.open == time(8, 30)
    assert hours.close == time(12, 0)


def test_day_hours_requires_open_before_close():
    with pytest.raises(ValueError):
        DayHours(open=time(17, 0), close=time(9, 0))


def test_requires_business_hours_by_message_type():
    assert requires_business_hours("nurture_day1") is True
    assert requires_business_hours("reminder_24h") is False
    assert requires_business_hours("confirmation") is False
