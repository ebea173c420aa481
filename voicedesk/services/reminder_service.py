"""Appointment reminders (T-24h and T-1h) and their cancellation."""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from uuid import UUID
from zoneinfo import ZoneInfo

from sqlalchemy.orm import Session

from voicedesk.core.constants import REMINDER_OFFSETS_HOURS
from voicedesk.core.structured_logging import build_log_context
from voicedesk.db.enums import MessageType
from voicedesk.db.models import QueuedMessage
from voicedesk.schemas.tenant import TenantConfig
from voicedesk.services import message_queue_service, message_templates
from voicedesk.services.send_time import resolve_send_time

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AppointmentDetails:
    tenant_id: str
    appointment_id: str
    start_time: datetime
    phone: str
    email: str | None = None
    customer_name: str | None = None
    customer_id: UUID | None = None


def _reminder_content(
    message_type: MessageType, appointment: AppointmentDetails, tenant: TenantConfig
) -> tuple[str, message_templates.EmailContent]:
    name = message_templates.first_name(appointment.customer_name)
    local_start = appointment.start_time.astimezone(ZoneInfo(tenant.timezone))
    if message_type == MessageType.REMINDER_24H:
        return (
            message_templates.reminder_24h_sms(name, tenant.name, local_start, tenant.booking_url),
            message_templates.reminder_24h_email(name, tenant.name, local_start, tenant.booking_url),
        )
    return (
        message_templates.reminder_1h_sms(name, tenant.name, local_start),
        message_templates.reminder_1h_email(name, tenant.name, local_start),
    )


def schedule_appointment_reminders(
    db: Session,
    appointment: AppointmentDetails,
    tenant: TenantConfig,
    now: datetime | None = None,
) -> list[QueuedMessage]:
    """
    Queue the 24h and 1h reminders for an appointment.

    SMS always, email only when an address is known. Reminders whose send
    time has already passed are skipped.
    """
    now = now or datetime.now(timezone.utc)
    scheduled: list[QueuedMessage] = []
    log_context = build_log_context(tenant_id=appointment.tenant_id)

    for message_type, hours_before in REMINDER_OFFSETS_HOURS.items():
        send_at = resolve_send_time(
            appointment.start_time - timedelta(hours=hours_before), message_type, tenant
        )
        if send_at < now:
            logger.info(
                "Skipping %s for appointment %s: send time already passed",
                message_type.value,
                appointment.appointment_id,
                extra=log_context,
            )
            continue

        sms_body, email = _reminder_content(message_type, appointment, tenant)
        options = dict(
            message_type=message_type,
            scheduled_for=send_at,
            appointment_id=appointment.appointment_id,
            customer_id=appointment.customer_id,
            metadata={"source": "appointment_reminder"},
        )
        scheduled.append(
            message_queue_service.enqueue_sms(
                db, appointment.tenant_id, appointment.phone, sms_body, **options
            )
        )
        if appointment.email:
            scheduled.append(
                message_queue_service.enqueue_email(
                    db, appointment.tenant_id, appointment.email, email.subject, email.body, **options
                )
            )

    logger.info(
        "Scheduled %s reminders for appointment %s",
        len(scheduled),
        appointment.appointment_id,
        extra=log_context,
    )
    return scheduled


def cancel_by_appointment(db: Session, appointment_id: str, tenant_id: str | None = None) -> int:
    """Cancel pending reminders for a cancelled or rescheduled appointment."""
    cancelled = message_queue_service.cancel_by_appointment(db, appointment_id, tenant_id)
    logger.info(
        "Cancelled %s pending messages for appointment %s",
        cancelled,
        appointment_id,
        extra=build_log_context(tenant_id=tenant_id),
    )
    return cancelled
