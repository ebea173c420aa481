"""Retell call event handlers."""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from voicedesk.core.structured_logging import build_log_context
from voicedesk.db.enums import ConversationStatus
from voicedesk.schemas.retell import RetellWebhookEvent
from voicedesk.services import customer_service
from voicedesk.services.post_call_processor import (
    build_transcript_text,
    caller_number,
    epoch_ms_to_datetime,
)
from voicedesk.services.webhooks.base import HandlerContext, HandlerResult

logger = logging.getLogger(__name__)


class CallStartedHandler:
    async def handle(self, event: RetellWebhookEvent, ctx: HandlerContext) -> HandlerResult:
        call = event.call
        tenant_id = ctx.tenant.tenant_id
        customer = None
        phone = caller_number(call)
        if phone:
            customer = customer_service.get_or_create_customer(ctx.db, tenant_id, phone)

        customer_service.upsert_conversation(
            ctx.db,
            tenant_id,
            call.call_id,
            customer_id=customer.id if customer else None,
            status=ConversationStatus.IN_PROGRESS.value,
            direction=call.direction,
            from_number=call.from_number,
            to_number=call.to_number,
            started_at=epoch_ms_to_datetime(call.start_timestamp) or datetime.now(timezone.utc),
        )
        logger.info(
            "Call started",
            extra=build_log_context(tenant_id=tenant_id, call_id=call.call_id),
        )
        return {"status": "ok", "message": "Call started"}


class CallEndedHandler:
    """Records the end of the call and defers the heavy post-call work."""

    async def handle(self, event: RetellWebhookEvent, ctx: HandlerContext) -> HandlerResult:
        call = event.call
        tenant_id = ctx.tenant.tenant_id
        log_context = build_log_context(tenant_id=tenant_id, call_id=call.call_id)

        transcript = build_transcript_text(call)
        customer_service.upsert_conversation(
            ctx.db,
            tenant_id,
            call.call_id,
            status=(
                ConversationStatus.ERROR.value
                if call.call_status == "error"
                else ConversationStatus.COMPLETED.value
            ),
            direction=call.direction,
            from_number=call.from_number,
            to_number=call.to_number,
            duration_seconds=call.duration_ms // 1000 if call.duration_ms is not None else None,
            transcript=transcript or None,
            ended_at=epoch_ms_to_datetime(call.end_timestamp) or datetime.now(timezone.utc),
        )

        if ctx.post_call is None:
            logger.warning("No post-call processor configured; skipping", extra=log_context)
            return {"status": "ok", "message": "Call ended"}

        post_call = ctx.post_call
        ctx.defer(
            f"post_call:{tenant_id}:{call.call_id}",
            lambda: post_call.process(tenant_id, call),
            log_context,
        )
        return {"status": "ok", "message": "Call ended, processing queued"}


class CallAnalyzedHandler:
    async def handle(self, event: RetellWebhookEvent, ctx: HandlerContext) -> HandlerResult:
        call = event.call
        analysis = call.call_analysis
        if analysis is None:
            return {"status": "ok", "message": "No analysis in event"}

        customer_service.upsert_conversation(
            ctx.db,
            ctx.tenant.tenant_id,
            call.call_id,
            status=ConversationStatus.ANALYZED.value,
            summary=analysis.call_summary,
            sentiment=analysis.user_sentiment.lower() if analysis.user_sentiment else None,
            analysis=analysis.model_dump(),
        )
        return {"status": "ok", "message": "Call analysis stored"}
