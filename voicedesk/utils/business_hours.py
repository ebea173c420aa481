"""Business hours calculator for per-tenant weekly schedules.

Schedules are local wall-clock windows per weekday, half-open [open, close),
evaluated in the tenant's IANA timezone. DST-safe via zoneinfo. Tenants may
opt into a country's public holidays, which are then treated as closed days.
"""

from datetime import date, datetime, timedelta
from functools import lru_cache
from zoneinfo import ZoneInfo

import holidays

from voicedesk.core.constants import ANYTIME_MESSAGE_TYPES, BUSINESS_HOURS_SCAN_DAYS
from voicedesk.schemas.tenant import BusinessHoursSchedule, DayHours

UTC = ZoneInfo("UTC")


class NoBusinessHoursError(Exception):
    """Schedule has no open window within the scan horizon."""

    def __init__(self, instant: datetime, timezone: str):
        self.instant = instant
        self.timezone = timezone
        super().__init__(
            f"No business hours within {BUSINESS_HOURS_SCAN_DAYS} days of "
            f"{instant.isoformat()} ({timezone})"
        )


@lru_cache(maxsize=32)
def get_public_holidays(country: str, year: int) -> frozenset[date]:
    """Cache holiday sets per country/year for performance."""
    return frozenset(holidays.country_holidays(country, years=year).keys())


def _to_local(instant: datetime, timezone: str) -> datetime:
    if instant.tzinfo is None:
        raise ValueError("instant must be timezone-aware")
    return instant.astimezone(ZoneInfo(timezone))


def _open_window(schedule: BusinessHoursSchedule, day: date) -> DayHours | None:
    """The day's open window, or None when the business is closed that day."""
    entry = schedule.for_weekday(day.weekday())
    if entry is None or not entry.is_open_day:
        return None
    if schedule.observed_holidays and day in get_public_holidays(
        schedule.observed_holidays, day.year
    ):
        return None
    return entry


def is_within_business_hours(
    instant: datetime, schedule: BusinessHoursSchedule, timezone: str
) -> bool:
    """Check if instant falls inside the schedule's open hours for its local weekday."""
    local = _to_local(instant, timezone)
    window = _open_window(schedule, local.date())
    if window is None:
        return False
    return window.open <= local.time() < window.close


def next_business_hour(
    instant: datetime, schedule: BusinessHoursSchedule, timezone: str
) -> datetime:
    """
    Get the first open instant at or after `instant`.

    Returns `instant` unchanged when it is already inside open hours, otherwise
    the opening time of the next open day (returned in UTC).

    Raises:
        NoBusinessHoursError: no open day within BUSINESS_HOURS_SCAN_DAYS
    """
    tz = ZoneInfo(timezone)
    local = _to_local(instant, timezone)

    for offset in range(BUSINESS_HOURS_SCAN_DAYS):
        day = local.date() + timedelta(days=offset)
        window = _open_window(schedule, day)
        if window is None:
            continue

        opens_at = datetime.combine(day, window.open, tzinfo=tz)
        if offset == 0:
            closes_at = datetime.combine(day, window.close, tzinfo=tz)
            if local < opens_at:
                return opens_at.astimezone(UTC)
            if local < closes_at:
                return instant
            # Past close today, keep scanning
            continue
        return opens_at.astimezone(UTC)

    raise NoBusinessHoursError(instant, timezone)


def requires_business_hours(message_type: str) -> bool:
    """Check if a message type must wait for business hours (reminders and confirmations don't)."""
    return message_type not in ANYTIME_MESSAGE_TYPES
