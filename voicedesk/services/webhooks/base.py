"""Webhook event handler interface."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Callable, Protocol

from sqlalchemy.orm import Session

from voicedesk.jobs.runner import JobFactory
from voicedesk.schemas.retell import RetellWebhookEvent
from voicedesk.schemas.tenant import TenantConfig

if TYPE_CHECKING:
    from voicedesk.services.post_call_processor import PostCallProcessor

HandlerResult = dict[str, Any]
Defer = Callable[[str, JobFactory, dict[str, Any]], Any]


@dataclass
class HandlerContext:
    db: Session
    tenant: TenantConfig
    defer: Defer  # Schedule work outside the request/response cycle
    post_call: "PostCallProcessor | None" = None


class EventHandler(Protocol):
    async def handle(self, event: RetellWebhookEvent, ctx: HandlerContext) -> HandlerResult:
        """Handle one validated event. Must return quickly."""
