"""Nurture follow-ups for callers who showed interest but did not book."""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from uuid import UUID

from sqlalchemy.orm import Session

from voicedesk.core.config import settings
from voicedesk.core.constants import NURTURE_OFFSETS_DAYS
from voicedesk.core.structured_logging import build_log_context
from voicedesk.db.enums import MessageType
from voicedesk.db.models import QueuedMessage
from voicedesk.schemas.tenant import TenantConfig
from voicedesk.services import message_queue_service, message_templates
from voicedesk.services.send_time import resolve_send_time

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NurtureContext:
    tenant_id: str
    phone: str
    email: str | None = None
    customer_name: str | None = None
    customer_id: UUID | None = None
    conversation_id: UUID | None = None
    call_id: str | None = None
    call_summary: str | None = None
    reference_time: datetime | None = None  # When the call ended; defaults to now


def _nurture_content(
    message_type: MessageType, context: NurtureContext, tenant: TenantConfig
) -> tuple[str, message_templates.EmailContent]:
    name = message_templates.first_name(context.customer_name)
    booking_url = tenant.booking_url or settings.BOOKING_URL or None
    portal_url = tenant.portal_url or settings.PORTAL_URL or None
    if message_type == MessageType.NURTURE_DAY1:
        return (
            message_templates.nurture_day1_sms(name, tenant.name, booking_url),
            message_templates.nurture_day1_email(
                name, tenant.name, booking_url, portal_url, context.call_summary
            ),
        )
    return (
        message_templates.nurture_day4_sms(name, tenant.name, booking_url),
        message_templates.nurture_day4_email(name, tenant.name, booking_url, portal_url),
    )


def schedule_nurture_sequence(
    db: Session,
    context: NurtureContext,
    tenant: TenantConfig,
    now: datetime | None = None,
) -> list[QueuedMessage]:
    """
    Queue day-1 and day-4 follow-ups, each moved into business hours.

    A call that already has nurture messages queued is left alone, so the
    sequence is started at most once per call.
    """
    now = now or datetime.now(timezone.utc)
    reference = context.reference_time or now
    log_context = build_log_context(tenant_id=context.tenant_id, call_id=context.call_id)

    if context.call_id and message_queue_service.has_messages_for_call(
        db, context.tenant_id, context.call_id, list(NURTURE_OFFSETS_DAYS)
    ):
        logger.info("Nurture sequence already scheduled for call", extra=log_context)
        return []

    scheduled: list[QueuedMessage] = []
    for message_type, days_after in NURTURE_OFFSETS_DAYS.items():
        send_at = resolve_send_time(reference + timedelta(days=days_after), message_type, tenant)
        if send_at < now:
            logger.info("Skipping %s: send time already passed", message_type.value, extra=log_context)
            continue

        sms_body, email = _nurture_content(message_type, context, tenant)
        options = dict(
            message_type=message_type,
            scheduled_for=send_at,
            customer_id=context.customer_id,
            conversation_id=context.conversation_id,
            call_id=context.call_id,
            metadata={"source": "nurture_sequence"},
        )
        scheduled.append(
            message_queue_service.enqueue_sms(db, context.tenant_id, context.phone, sms_body, **options)
        )
        if context.email:
            scheduled.append(
                message_queue_service.enqueue_email(
                    db, context.tenant_id, context.email, email.subject, email.body, **options
                )
            )

    logger.info("Scheduled %s nurture messages", len(scheduled), extra=log_context)
    return scheduled
