"""
Webhook event router.

route() pipeline:
    1. Validate the event shape (WebhookValidationError on malformed input)
    2. Unknown event types: acknowledged, nothing else happens
    3. Claim the (tenant, call_id, event) idempotency key; duplicates are a no-op,
       storage errors become an error decision
    4. Run the handler; failures are logged, alerted and turned into an
       error decision instead of propagating
    5. Mark the ledger row processed
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from voicedesk.core.structured_logging import build_log_context
from voicedesk.db.enums import AlertSeverity
from voicedesk.jobs.runner import BackgroundJobRunner
from voicedesk.schemas.retell import RetellWebhookEvent
from voicedesk.schemas.tenant import TenantConfig
from voicedesk.services import idempotency_service
from voicedesk.services.alert_service import AlertingService
from voicedesk.services.post_call_processor import PostCallProcessor
from voicedesk.services.webhooks.base import HandlerContext
from voicedesk.services.webhooks.registry import get_handler
from voicedesk.utils.pii_mask import mask_text

logger = logging.getLogger(__name__)


class WebhookValidationError(Exception):
    """Inbound event does not have the expected structure."""

    def __init__(self, errors: list[dict[str, Any]]):
        self.errors = errors
        super().__init__(f"Invalid webhook event ({len(errors)} errors)")


@dataclass(frozen=True)
class WebhookDecision:
    outcome: str  # processed | duplicate | ignored | error
    body: dict[str, Any] = field(default_factory=dict)
    record_id: Any = None

    @property
    def is_duplicate(self) -> bool:
        return self.outcome == "duplicate"


class WebhookRouter:
    def __init__(
        self,
        jobs: BackgroundJobRunner,
        post_call: PostCallProcessor | None = None,
        alerts: AlertingService | None = None,
    ):
        self.jobs = jobs
        self.post_call = post_call
        self.alerts = alerts

    @staticmethod
    def validate(raw_event: Any) -> RetellWebhookEvent:
        try:
            return RetellWebhookEvent.model_validate(raw_event)
        except ValidationError as exc:
            raise WebhookValidationError(
                exc.errors(include_url=False, include_context=False, include_input=False)
            ) from exc

    async def route(self, raw_event: Any, tenant: TenantConfig, db: Session) -> WebhookDecision:
        event = self.validate(raw_event)
        call_id = event.call.call_id
        log_context = build_log_context(
            tenant_id=tenant.tenant_id, call_id=call_id, event_type=event.event
        )

        handler = get_handler(event.event)
        if handler is None:
            logger.info("Unhandled webhook event type", extra=log_context)
            return WebhookDecision(
                outcome="ignored",
                body={"status": "received", "message": "Event type not handled"},
            )

        try:
            claim = idempotency_service.check_and_claim(
                db, tenant.tenant_id, call_id, event.event, payload=raw_event
            )
        except SQLAlchemyError as exc:
            db.rollback()
            logger.exception("Webhook idempotency claim failed", extra=log_context)
            await self._alert_failure(
                f"{event.event} claim raised {type(exc).__name__}: {mask_text(str(exc))}",
                log_context,
            )
            return WebhookDecision(
                outcome="error",
                body={"status": "error", "message": "Internal processing error"},
            )

        if claim.is_duplicate:
            logger.info("Duplicate webhook delivery skipped", extra=log_context)
            return WebhookDecision(
                outcome="duplicate",
                body={"status": "duplicate", "message": "Event already received"},
                record_id=claim.record_id,
            )

        ctx = HandlerContext(
            db=db,
            tenant=tenant,
            defer=self.jobs.submit,
            post_call=self.post_call,
        )
        try:
            result = await handler.handle(event, ctx)
        except Exception as exc:
            db.rollback()
            logger.exception("Webhook handler failed", extra=log_context)
            await self._alert_failure(
                f"{event.event} handler raised {type(exc).__name__}: {mask_text(str(exc))}",
                log_context,
            )
            return WebhookDecision(
                outcome="error",
                body={"status": "error", "message": "Internal processing error"},
                record_id=claim.record_id,
            )

        idempotency_service.mark_processed(db, claim.record_id)
        return WebhookDecision(outcome="processed", body=result, record_id=claim.record_id)

    async def _alert_failure(self, message: str, log_context: dict[str, Any]) -> None:
        if self.alerts is not None:
            await self.alerts.notify(
                AlertSeverity.ERROR, "Webhook processing failed", message, {**log_context}
            )
