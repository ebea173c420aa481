"""Pydantic schemas for tenant configuration and business hours."""

from datetime import time
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)

WEEKDAYS = (
    "monday",
    "tuesday",
    "wednesday",
    "thursday",
    "friday",
    "saturday",
    "sunday",
)


class DayHours(BaseModel):
    """
    Open window for one weekday, local wall-clock, half-open [open, close).

    Accepts "start"/"end" as aliases for "open"/"close". A day with
    closed=True is closed even when times are present.
    """
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    open: time | None = Field(default=None, validation_alias=AliasChoices("open", "start"))
    close: time | None = Field(default=None, validation_alias=AliasChoices("close", "end"))
    closed: bool = False

    @model_validator(mode="after")
    def validate_window(self) -> "DayHours":
        if self.closed:
            return self
        if self.open is None or self.close is None:
            raise ValueError("open and close are required unless the day is closed")
        if self.open >= self.close:
            raise ValueError("open must be earlier than close")
        return self

    @property
    def is_open_day(self) -> bool:
        return not self.closed and self.open is not None and self.close is not None


class BusinessHoursSchedule(BaseModel):
    """Weekly schedule. A missing weekday means closed."""
    model_config = ConfigDict(frozen=True)

    monday: DayHours | None = None
    tuesday: DayHours | None = None
    wednesday: DayHours | None = None
    thursday: DayHours | None = None
    friday: DayHours | None = None
    saturday: DayHours | None = None
    sunday: DayHours | None = None

    # ISO country code (e.g. "US"); public holidays are treated as closed days
    observed_holidays: str | None = None

    def for_weekday(self, weekday: int) -> DayHours | None:
        """Entry for a Python weekday number (Monday == 0)."""
        return getattr(self, WEEKDAYS[weekday])


def default_business_hours() -> BusinessHoursSchedule:
    """Mon-Fri 09:00-17:00, Sat 10:00-14:00, Sun closed."""
    weekday = DayHours(open=time(9, 0), close=time(17, 0))
    return BusinessHoursSchedule(
        monday=weekday,
        tuesday=weekday,
        wednesday=weekday,
        thursday=weekday,
        friday=weekday,
        saturday=DayHours(open=time(10, 0), close=time(14, 0)),
        sunday=DayHours(closed=True),
    )


class TenantConfig(BaseModel):
    """Per-tenant configuration loaded from the tenant config directory."""
    model_config = ConfigDict(frozen=True)

    tenant_id: str
    name: str
    timezone: str = "America/New_York"
    business_hours: BusinessHoursSchedule = Field(default_factory=default_business_hours)

    notification_email: str | None = None
    notification_phone: str | None = None
    booking_url: str | None = None
    portal_url: str | None = None
    crm_enabled: bool = False
    webhook_secret: str | None = None  # Overrides RETELL_WEBHOOK_SECRET

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, value: str) -> str:
        try:
            ZoneInfo(value)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise ValueError(f"Unknown timezone: {value}") from exc
        return value
