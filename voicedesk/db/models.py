"""SQLAlchemy ORM models."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import (
    JSON,
    Boolean,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    Uuid,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from voicedesk.db.base import Base
from voicedesk.db.enums import DEFAULT_MESSAGE_STATUS, ConversationStatus

JSONType = JSON().with_variant(JSONB(), "postgresql")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class QueuedMessage(Base):
    """
    Outbound SMS/email waiting for (or done with) delivery.

    Rows are never deleted; status carries the lifecycle. customer_id,
    conversation_id and appointment_id are weak references (no cascade).
    """

    __tablename__ = "message_queue"
    __table_args__ = (
        Index(
            "idx_message_queue_due",
            "status",
            "scheduled_for",
            postgresql_where=text("status = 'pending'"),
        ),
        Index("idx_message_queue_tenant", "tenant_id", "created_at"),
        Index("idx_message_queue_appointment", "appointment_id"),
        Index("idx_message_queue_status", "status"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    tenant_id: Mapped[str] = mapped_column(String(100), nullable=False)

    channel: Mapped[str] = mapped_column(String(10), nullable=False)
    recipient: Mapped[str] = mapped_column(String(255), nullable=False)
    subject: Mapped[str | None] = mapped_column(String(500), nullable=True)
    body: Mapped[str] = mapped_column(Text, nullable=False)
    message_type: Mapped[str] = mapped_column(String(50), nullable=False)

    scheduled_for: Mapped[datetime] = mapped_column(nullable=False, default=_utcnow)
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=DEFAULT_MESSAGE_STATUS.value,
        server_default=text(f"'{DEFAULT_MESSAGE_STATUS.value}'"),
    )

    attempts: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, server_default=text("0")
    )
    max_attempts: Mapped[int] = mapped_column(
        Integer, nullable=False, default=3, server_default=text("3")
    )
    last_attempt_at: Mapped[datetime | None] = mapped_column(nullable=True)
    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)

    dead_lettered_at: Mapped[datetime | None] = mapped_column(nullable=True)
    dead_letter_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    provider_message_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    provider_status: Mapped[str | None] = mapped_column(String(50), nullable=True)
    provider_name: Mapped[str | None] = mapped_column(String(50), nullable=True)
    cost: Mapped[Decimal | None] = mapped_column(Numeric(10, 4), nullable=True)

    customer_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)
    conversation_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)
    appointment_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    call_id: Mapped[str | None] = mapped_column(String(255), nullable=True)

    # Free-form audit data (editor, source); never used for lookups
    metadata_: Mapped[dict] = mapped_column("metadata", JSONType, nullable=False, default=dict)

    created_at: Mapped[datetime] = mapped_column(nullable=False, default=_utcnow)
    processed_at: Mapped[datetime | None] = mapped_column(nullable=True)


class WebhookEvent(Base):
    """
    Idempotency ledger row for an inbound webhook delivery.

    idempotency_key = "{tenant_id}:{call_id}:{event_type}" (unique).
    """

    __tablename__ = "webhook_events"
    __table_args__ = (
        Index("uq_webhook_events_idempotency", "idempotency_key", unique=True),
        Index("idx_webhook_events_call", "tenant_id", "call_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    tenant_id: Mapped[str] = mapped_column(String(100), nullable=False)
    call_id: Mapped[str] = mapped_column(String(255), nullable=False)
    event_type: Mapped[str] = mapped_column(String(50), nullable=False)
    idempotency_key: Mapped[str] = mapped_column(String(512), nullable=False)
    payload: Mapped[dict] = mapped_column(JSONType, nullable=False, default=dict)

    processed: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default=text("false")
    )
    processed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    created_at: Mapped[datetime] = mapped_column(nullable=False, default=_utcnow)


class Customer(Base):
    """Caller known to a tenant, keyed by phone number."""

    __tablename__ = "customers"
    __table_args__ = (
        Index("uq_customers_tenant_phone", "tenant_id", "phone", unique=True),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    tenant_id: Mapped[str] = mapped_column(String(100), nullable=False)
    phone: Mapped[str] = mapped_column(String(30), nullable=False)
    name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    crm_contact_id: Mapped[str | None] = mapped_column(String(255), nullable=True)

    created_at: Mapped[datetime] = mapped_column(nullable=False, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        nullable=False, default=_utcnow, onupdate=_utcnow
    )


class Conversation(Base):
    """A single voice call and what was learned from it."""

    __tablename__ = "conversations"
    __table_args__ = (
        Index("uq_conversations_call", "tenant_id", "call_id", unique=True),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    tenant_id: Mapped[str] = mapped_column(String(100), nullable=False)
    call_id: Mapped[str] = mapped_column(String(255), nullable=False)
    customer_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("customers.id", ondelete="SET NULL"), nullable=True
    )

    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=ConversationStatus.IN_PROGRESS.value
    )
    direction: Mapped[str | None] = mapped_column(String(20), nullable=True)
    from_number: Mapped[str | None] = mapped_column(String(30), nullable=True)
    to_number: Mapped[str | None] = mapped_column(String(30), nullable=True)
    duration_seconds: Mapped[int | None] = mapped_column(Integer, nullable=True)
    transcript: Mapped[str | None] = mapped_column(Text, nullable=True)

    intent: Mapped[str | None] = mapped_column(String(50), nullable=True)
    intent_confidence: Mapped[float | None] = mapped_column(nullable=True)
    urgency: Mapped[str | None] = mapped_column(String(20), nullable=True)
    sentiment: Mapped[str | None] = mapped_column(String(20), nullable=True)
    summary: Mapped[str | None] = mapped_column(Text, nullable=True)
    analysis: Mapped[dict | None] = mapped_column(JSONType, nullable=True)

    started_at: Mapped[datetime | None] = mapped_column(nullable=True)
    ended_at: Mapped[datetime | None] = mapped_column(nullable=True)
    created_at: Mapped[datetime] = mapped_column(nullable=False, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        nullable=False, default=_utcnow, onupdate=_utcnow
    )
