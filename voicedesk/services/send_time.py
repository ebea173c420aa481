"""Resolve when a scheduled message may actually go out."""

import logging
from datetime import datetime

from voicedesk.db.enums import MessageType
from voicedesk.schemas.tenant import TenantConfig
from voicedesk.utils.business_hours import (
    NoBusinessHoursError,
    is_within_business_hours,
    next_business_hour,
    requires_business_hours,
)

logger = logging.getLogger(__name__)


def resolve_send_time(
    instant: datetime, message_type: MessageType, tenant: TenantConfig
) -> datetime:
    """
    Push `instant` into the tenant's business hours when the message type needs it.

    Anytime types (confirmations, reminders) are returned unchanged. A tenant
    without any open hours in the scan window keeps the computed time; that
    configuration problem is logged rather than silently absorbed.
    """
    if not requires_business_hours(message_type.value):
        return instant
    if is_within_business_hours(instant, tenant.business_hours, tenant.timezone):
        return instant
    try:
        return next_business_hour(instant, tenant.business_hours, tenant.timezone)
    except NoBusinessHoursError:
        logger.warning(
            "Tenant %s has no open business hours; %s keeps its computed time %s",
            tenant.tenant_id,
            message_type.value,
            instant.isoformat(),
        )
        return instant
