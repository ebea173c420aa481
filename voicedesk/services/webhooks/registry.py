"""Webhook event handler registry."""

from __future__ import annotations

from voicedesk.db.enums import WebhookEventType
from voicedesk.services.webhooks.base import EventHandler
from voicedesk.services.webhooks.handlers import (
    CallAnalyzedHandler,
    CallEndedHandler,
    CallStartedHandler,
)

_HANDLERS: dict[str, EventHandler] = {
    WebhookEventType.CALL_STARTED.value: CallStartedHandler(),
    WebhookEventType.CALL_ENDED.value: CallEndedHandler(),
    WebhookEventType.CALL_ANALYZED.value: CallAnalyzedHandler(),
}


def get_handler(event_type: str) -> EventHandler | None:
    """Handler for an event type, or None for types this service doesn't act on."""
    return _HANDLERS.get(event_type)


def registered_event_types() -> list[str]:
    return sorted(_HANDLERS)
