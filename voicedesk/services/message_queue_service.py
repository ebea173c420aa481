"""Message queue store - durable outbound SMS/email with lifecycle status.

Rows are only ever mutated through these functions; status changes that race
with the processor (claim, sent) are conditional updates on the current
status so concurrent cancels are never overwritten.
"""

import logging
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from uuid import UUID

from sqlalchemy import func
from sqlalchemy.orm import Session

from voicedesk.core.config import settings
from voicedesk.db.enums import MessageChannel, MessageStatus, MessageType, ProviderStatus
from voicedesk.db.models import QueuedMessage

logger = logging.getLogger(__name__)

RETRYABLE_STATUSES = (MessageStatus.FAILED.value, MessageStatus.DEAD_LETTER.value)
CANCELLABLE_STATUSES = (
    MessageStatus.PENDING.value,
    MessageStatus.PROCESSING.value,
    MessageStatus.FAILED.value,
    MessageStatus.DEAD_LETTER.value,
)


class MessageNotFoundError(Exception):
    def __init__(self, message_id: UUID):
        self.message_id = message_id
        super().__init__(f"Queued message {message_id} not found")


class InvalidTransitionError(Exception):
    def __init__(self, message_id: UUID, current: str, target: str):
        self.message_id = message_id
        self.current = current
        self.target = target
        super().__init__(f"Message {message_id} cannot move from {current} to {target}")


def _now() -> datetime:
    return datetime.now(timezone.utc)


# =============================================================================
# Enqueue
# =============================================================================


def enqueue(
    db: Session,
    tenant_id: str,
    channel: MessageChannel,
    recipient: str,
    body: str,
    *,
    subject: str | None = None,
    message_type: MessageType = MessageType.MANUAL,
    scheduled_for: datetime | None = None,
    max_attempts: int | None = None,
    customer_id: UUID | None = None,
    conversation_id: UUID | None = None,
    appointment_id: str | None = None,
    call_id: str | None = None,
    metadata: dict | None = None,
) -> QueuedMessage:
    """
    Queue a message for delivery.

    If scheduled_for is None, the message is due immediately.
    """
    if channel == MessageChannel.EMAIL and not subject:
        raise ValueError("Email messages require a subject")

    message = QueuedMessage(
        tenant_id=tenant_id,
        channel=channel.value,
        recipient=recipient,
        subject=subject,
        body=body,
        message_type=message_type.value,
        scheduled_for=scheduled_for or _now(),
        status=MessageStatus.PENDING.value,
        attempts=0,
        max_attempts=max_attempts or settings.QUEUE_MAX_ATTEMPTS,
        customer_id=customer_id,
        conversation_id=conversation_id,
        appointment_id=appointment_id,
        call_id=call_id,
        metadata_=metadata or {},
    )
    db.add(message)
    db.commit()
    db.refresh(message)
    return message


def enqueue_sms(db: Session, tenant_id: str, phone: str, body: str, **options) -> QueuedMessage:
    return enqueue(db, tenant_id, MessageChannel.SMS, phone, body, **options)


def enqueue_email(
    db: Session, tenant_id: str, email: str, subject: str, body: str, **options
) -> QueuedMessage:
    return enqueue(db, tenant_id, MessageChannel.EMAIL, email, body, subject=subject, **options)


# =============================================================================
# Queries
# =============================================================================


def get_message(db: Session, message_id: UUID, tenant_id: str | None = None) -> QueuedMessage | None:
    """Get a message by ID, optionally scoped to tenant."""
    query = db.query(QueuedMessage).filter(QueuedMessage.id == message_id)
    if tenant_id:
        query = query.filter(QueuedMessage.tenant_id == tenant_id)
    return query.first()


def get_due_messages(
    db: Session, now: datetime | None = None, limit: int = 50
) -> list[QueuedMessage]:
    """
    Get pending messages that are due for delivery.

    Returns messages where status='pending', scheduled_for <= now and
    attempts < max_attempts, ordered by scheduled_for.
    """
    now = now or _now()
    return (
        db.query(QueuedMessage)
        .filter(
            QueuedMessage.status == MessageStatus.PENDING.value,
            QueuedMessage.scheduled_for <= now,
            QueuedMessage.attempts < QueuedMessage.max_attempts,
        )
        .order_by(QueuedMessage.scheduled_for)
        .limit(limit)
        .all()
    )


def get_stats(db: Session, tenant_id: str | None = None) -> dict[str, int]:
    """Count messages grouped by status (every status present, zero-filled)."""
    query = db.query(QueuedMessage.status, func.count(QueuedMessage.id))
    if tenant_id:
        query = query.filter(QueuedMessage.tenant_id == tenant_id)
    rows = query.group_by(QueuedMessage.status).all()

    stats = {status.value: 0 for status in MessageStatus}
    for status, count in rows:
        stats[status] = count
    stats["total"] = sum(count for _, count in rows)
    return stats


def get_scheduled(
    db: Session,
    hours_ahead: int = 48,
    tenant_id: str | None = None,
    now: datetime | None = None,
) -> list[QueuedMessage]:
    """Pending messages due between now and now + hours_ahead (operator view)."""
    now = now or _now()
    query = db.query(QueuedMessage).filter(
        QueuedMessage.status == MessageStatus.PENDING.value,
        QueuedMessage.scheduled_for >= now,
        QueuedMessage.scheduled_for <= now + timedelta(hours=hours_ahead),
    )
    if tenant_id:
        query = query.filter(QueuedMessage.tenant_id == tenant_id)
    return query.order_by(QueuedMessage.scheduled_for).all()


def list_recent(db: Session, tenant_id: str | None = None, limit: int = 50) -> list[QueuedMessage]:
    query = db.query(QueuedMessage)
    if tenant_id:
        query = query.filter(QueuedMessage.tenant_id == tenant_id)
    return query.order_by(QueuedMessage.created_at.desc()).limit(limit).all()


def list_failed(db: Session, tenant_id: str | None = None, limit: int = 100) -> list[QueuedMessage]:
    """Messages needing attention (failed or dead-lettered)."""
    query = db.query(QueuedMessage).filter(QueuedMessage.status.in_(RETRYABLE_STATUSES))
    if tenant_id:
        query = query.filter(QueuedMessage.tenant_id == tenant_id)
    return query.order_by(QueuedMessage.created_at.desc()).limit(limit).all()


def list_dead_letters(
    db: Session, tenant_id: str | None = None, limit: int = 100
) -> list[QueuedMessage]:
    query = db.query(QueuedMessage).filter(
        QueuedMessage.status == MessageStatus.DEAD_LETTER.value
    )
    if tenant_id:
        query = query.filter(QueuedMessage.tenant_id == tenant_id)
    return query.order_by(QueuedMessage.dead_lettered_at.desc()).limit(limit).all()


# =============================================================================
# Processor transitions
# =============================================================================


def mark_processing(db: Session, message_id: UUID, now: datetime | None = None) -> bool:
    """
    Claim a pending message for delivery (pending -> processing).

    Attempts are not incremented here. Returns False if the message is no
    longer pending (cancelled or claimed elsewhere).
    """
    updated = (
        db.query(QueuedMessage)
        .filter(
            QueuedMessage.id == message_id,
            QueuedMessage.status == MessageStatus.PENDING.value,
        )
        .update(
            {
                QueuedMessage.status: MessageStatus.PROCESSING.value,
                QueuedMessage.last_attempt_at: now or _now(),
            },
            synchronize_session=False,
        )
    )
    db.commit()
    return updated == 1


def mark_sent(
    db: Session,
    message_id: UUID,
    *,
    provider_name: str | None,
    provider_message_id: str | None,
    cost: Decimal | None,
    now: datetime | None = None,
) -> bool:
    """
    Record a successful delivery (processing -> sent).

    Returns False when the message left 'processing' mid-flight (cancelled);
    the cancel stands even though the provider accepted the send.
    """
    now = now or _now()
    updated = (
        db.query(QueuedMessage)
        .filter(
            QueuedMessage.id == message_id,
            QueuedMessage.status == MessageStatus.PROCESSING.value,
        )
        .update(
            {
                QueuedMessage.status: MessageStatus.SENT.value,
                QueuedMessage.provider_name: provider_name,
                QueuedMessage.provider_message_id: provider_message_id,
                QueuedMessage.provider_status: ProviderStatus.DELIVERED.value,
                QueuedMessage.cost: cost,
                QueuedMessage.processed_at: now,
                QueuedMessage.last_error: None,
            },
            synchronize_session=False,
        )
    )
    db.commit()
    return updated == 1


def mark_failed(
    db: Session, message_id: UUID, error: str, now: datetime | None = None
) -> QueuedMessage | None:
    """
    Record a failed delivery attempt (processing -> failed, attempts + 1).

    Returns None when the message is no longer processing (cancelled mid-flight).
    """
    message = db.get(QueuedMessage, message_id, populate_existing=True)
    if message is None or message.status != MessageStatus.PROCESSING.value:
        return None
    message.status = MessageStatus.FAILED.value
    message.attempts += 1
    message.last_error = error[:2000]
    message.last_attempt_at = now or _now()
    message.provider_status = ProviderStatus.FAILED.value
    db.commit()
    db.refresh(message)
    return message


def schedule_retry(db: Session, message: QueuedMessage, retry_at: datetime) -> QueuedMessage:
    """Return a failed message to pending for another automatic attempt."""
    if message.status != MessageStatus.FAILED.value:
        raise InvalidTransitionError(message.id, message.status, MessageStatus.PENDING.value)
    if message.attempts >= message.max_attempts:
        raise InvalidTransitionError(message.id, message.status, MessageStatus.PENDING.value)
    message.status = MessageStatus.PENDING.value
    message.scheduled_for = retry_at
    db.commit()
    db.refresh(message)
    return message


def move_to_dead_letter(
    db: Session, message: QueuedMessage, reason: str, now: datetime | None = None
) -> QueuedMessage:
    """Terminal failure. Only an explicit retry_message() brings it back."""
    if message.status != MessageStatus.FAILED.value:
        raise InvalidTransitionError(
            message.id, message.status, MessageStatus.DEAD_LETTER.value
        )
    message.status = MessageStatus.DEAD_LETTER.value
    message.dead_lettered_at = now or _now()
    message.dead_letter_reason = reason[:2000]
    db.commit()
    db.refresh(message)
    return message


def release_stale_processing(db: Session, older_than: datetime) -> int:
    """
    Return messages stuck in 'processing' (process died mid-send) to pending.

    Attempts are left as-is; the interrupted attempt was never recorded.
    """
    released = (
        db.query(QueuedMessage)
        .filter(
            QueuedMessage.status == MessageStatus.PROCESSING.value,
            QueuedMessage.last_attempt_at < older_than,
        )
        .update(
            {QueuedMessage.status: MessageStatus.PENDING.value},
            synchronize_session=False,
        )
    )
    db.commit()
    if released:
        logger.warning("Released %s stale processing messages back to pending", released)
    return released


# =============================================================================
# Operator actions
# =============================================================================


def cancel_message(db: Session, message_id: UUID, tenant_id: str | None = None) -> QueuedMessage:
    """
    Cancel a message that has not been sent.

    Cancelling an in-flight (processing) message does not retract a send the
    provider already accepted. Cancelling twice is a no-op.
    """
    message = get_message(db, message_id, tenant_id)
    if message is None:
        raise MessageNotFoundError(message_id)
    if message.status == MessageStatus.CANCELLED.value:
        return message
    if message.status not in CANCELLABLE_STATUSES:
        raise InvalidTransitionError(message_id, message.status, MessageStatus.CANCELLED.value)

    message.status = MessageStatus.CANCELLED.value
    db.commit()
    db.refresh(message)
    logger.info("Message %s cancelled", message_id)
    return message


def retry_message(
    db: Session,
    message_id: UUID,
    *,
    tenant_id: str | None = None,
    body: str | None = None,
    subject: str | None = None,
    recipient: str | None = None,
    edited_by: str | None = None,
    now: datetime | None = None,
) -> QueuedMessage:
    """
    Manually re-queue a failed or dead-lettered message.

    Resets attempts to 0, clears error and dead-letter fields and makes the
    message due now. Optional edits replace body/subject/recipient and are
    noted in metadata.
    """
    message = get_message(db, message_id, tenant_id)
    if message is None:
        raise MessageNotFoundError(message_id)
    if message.status not in RETRYABLE_STATUSES:
        raise InvalidTransitionError(message_id, message.status, MessageStatus.PENDING.value)

    now = now or _now()
    edited = {}
    if body is not None:
        message.body = body
        edited["body"] = True
    if subject is not None:
        message.subject = subject
        edited["subject"] = True
    if recipient is not None:
        message.recipient = recipient
        edited["recipient"] = True

    metadata = dict(message.metadata_ or {})
    metadata["retried_at"] = now.isoformat()
    if edited:
        metadata["edited_fields"] = sorted(edited)
        metadata["edited_at"] = now.isoformat()
        if edited_by:
            metadata["edited_by"] = edited_by
    message.metadata_ = metadata

    message.status = MessageStatus.PENDING.value
    message.attempts = 0
    message.scheduled_for = now
    message.last_error = None
    message.dead_lettered_at = None
    message.dead_letter_reason = None
    message.provider_status = None
    message.processed_at = None
    db.commit()
    db.refresh(message)
    logger.info("Message %s queued for manual retry", message_id)
    return message


def cancel_by_appointment(
    db: Session, appointment_id: str, tenant_id: str | None = None
) -> int:
    """Cancel every still-pending message linked to an appointment."""
    query = db.query(QueuedMessage).filter(
        QueuedMessage.appointment_id == appointment_id,
        QueuedMessage.status == MessageStatus.PENDING.value,
    )
    if tenant_id:
        query = query.filter(QueuedMessage.tenant_id == tenant_id)
    cancelled = query.update(
        {QueuedMessage.status: MessageStatus.CANCELLED.value},
        synchronize_session=False,
    )
    db.commit()
    return cancelled


def has_messages_for_call(
    db: Session, tenant_id: str, call_id: str, message_types: list[MessageType]
) -> bool:
    """Whether messages of these types were already queued for a call (any status)."""
    return (
        db.query(QueuedMessage.id)
        .filter(
            QueuedMessage.tenant_id == tenant_id,
            QueuedMessage.call_id == call_id,
            QueuedMessage.message_type.in_([t.value for t in message_types]),
        )
        .first()
        is not None
    )
