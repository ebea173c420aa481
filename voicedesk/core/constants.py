"""Application constants."""

from voicedesk.db.enums import MessageType

# Message types that may go out at any hour (time-sensitive, customer-expected).
# Everything else is held until the tenant's business hours.
ANYTIME_MESSAGE_TYPES = frozenset(
    {
        MessageType.CONFIRMATION.value,
        MessageType.REMINDER_24H.value,
        MessageType.REMINDER_1H.value,
    }
)

# Intents that warrant a nurture follow-up when the call did not convert
FOLLOW_UP_INTENTS = frozenset(
    {
        "booking_request",
        "information_inquiry",
        "pricing_question",
        "callback_request",
    }
)

SMS_SEGMENT_LENGTH = 160

# Appointment reminder offsets (hours before start)
REMINDER_OFFSETS_HOURS = {
    MessageType.REMINDER_24H: 24,
    MessageType.REMINDER_1H: 1,
}

# Nurture offsets (days after the call)
NURTURE_OFFSETS_DAYS = {
    MessageType.NURTURE_DAY1: 1,
    MessageType.NURTURE_DAY4: 4,
}

# Business-hours scan window (days, inclusive of today)
BUSINESS_HOURS_SCAN_DAYS = 8
