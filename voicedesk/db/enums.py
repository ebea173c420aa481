"""Enum definitions for queue, webhook and alerting state."""

from enum import Enum


class MessageChannel(str, Enum):
    """Outbound delivery channels."""

    SMS = "sms"
    EMAIL = "email"


class MessageStatus(str, Enum):
    """
    Queued message lifecycle.

    pending → processing → sent
                         ↘ failed → pending (retry) | dead_letter
    pending/processing/failed → cancelled
    failed/dead_letter → pending (manual retry only)
    """

    PENDING = "pending"
    PROCESSING = "processing"
    SENT = "sent"
    FAILED = "failed"
    DEAD_LETTER = "dead_letter"
    CANCELLED = "cancelled"


class MessageType(str, Enum):
    """Classification tag on queued messages (drives business-hours rules)."""

    CONFIRMATION = "confirmation"
    REMINDER_24H = "reminder_24h"
    REMINDER_1H = "reminder_1h"
    NURTURE_DAY1 = "nurture_day1"
    NURTURE_DAY4 = "nurture_day4"
    POST_CALL_FOLLOWUP = "post_call_followup"
    MANUAL = "manual"


class ProviderStatus(str, Enum):
    """Delivery status reported back for a sent message."""

    DELIVERED = "delivered"
    FAILED = "failed"


class AlertSeverity(str, Enum):
    """Alert severity (controls which notification channels fire)."""

    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class WebhookEventType(str, Enum):
    """Retell webhook event types handled by the router."""

    CALL_STARTED = "call_started"
    CALL_ENDED = "call_ended"
    CALL_ANALYZED = "call_analyzed"


class ConversationStatus(str, Enum):
    """Status of a voice call conversation."""

    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    ANALYZED = "analyzed"
    ERROR = "error"


DEFAULT_MESSAGE_STATUS = MessageStatus.PENDING
