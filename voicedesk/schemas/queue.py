"""Pydantic schemas for the message queue API."""

from datetime import datetime, timezone
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator, model_validator

from voicedesk.db.enums import MessageChannel


def _assume_utc(value: datetime | None) -> datetime | None:
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class QueuedMessageRead(BaseModel):
    """Queued message response schema."""
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    tenant_id: str
    channel: str
    recipient: str
    subject: str | None
    body: str
    message_type: str
    scheduled_for: datetime
    status: str
    attempts: int
    max_attempts: int
    last_attempt_at: datetime | None
    last_error: str | None
    dead_lettered_at: datetime | None
    dead_letter_reason: str | None
    provider_message_id: str | None
    provider_status: str | None
    provider_name: str | None
    cost: Decimal | None
    customer_id: UUID | None
    conversation_id: UUID | None
    appointment_id: str | None
    created_at: datetime
    processed_at: datetime | None


class QueueStats(BaseModel):
    pending: int = 0
    processing: int = 0
    sent: int = 0
    failed: int = 0
    dead_letter: int = 0
    cancelled: int = 0
    total: int = 0


class ManualMessageCreate(BaseModel):
    """Ad-hoc message queued by an operator."""
    tenant_id: str = Field(min_length=1)
    channel: MessageChannel
    recipient: str = Field(min_length=1)
    body: str = Field(min_length=1)
    subject: str | None = None
    scheduled_for: datetime | None = None
    sent_by: str | None = None

    @field_validator("scheduled_for")
    @classmethod
    def validate_scheduled_for(cls, value: datetime | None) -> datetime | None:
        return _assume_utc(value)

    @model_validator(mode="after")
    def validate_subject(self) -> "ManualMessageCreate":
        if self.channel == MessageChannel.EMAIL and not self.subject:
            raise ValueError("subject is required for email")
        return self


class MessageRetry(BaseModel):
    """Optional edits applied before a manual retry."""
    body: str | None = Field(default=None, min_length=1)
    subject: str | None = None
    recipient: str | None = None
    edited_by: str | None = None


class ProcessResult(BaseModel):
    processed: int
    succeeded: int
    failed: int


class AppointmentReminderCreate(BaseModel):
    tenant_id: str = Field(min_length=1)
    appointment_id: str = Field(min_length=1)
    start_time: datetime
    phone: str = Field(min_length=1)
    email: EmailStr | None = None
    customer_name: str | None = None
    customer_id: UUID | None = None

    @field_validator("start_time")
    @classmethod
    def validate_start_time(cls, value: datetime) -> datetime:
        return _assume_utc(value)


class ReminderScheduleResult(BaseModel):
    scheduled: list[QueuedMessageRead]


class CancelResult(BaseModel):
    cancelled: int
