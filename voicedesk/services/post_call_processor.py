"""
Post-call processing (runs in the background after call_ended).

Steps:
    1. Resolve the caller and get/create the customer
    2. Build transcript text and classify intent
    3. Update the conversation with transcript, duration and classification
    4. Sync to the tenant's CRM (optional, non-fatal)
    5. Start the nurture sequence for interested callers who did not book
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Protocol
from uuid import UUID

from sqlalchemy.orm import Session

from voicedesk.core.constants import FOLLOW_UP_INTENTS
from voicedesk.core.structured_logging import build_log_context
from voicedesk.db.enums import AlertSeverity, ConversationStatus
from voicedesk.db.models import Conversation, Customer
from voicedesk.schemas.retell import RetellCall
from voicedesk.schemas.tenant import TenantConfig
from voicedesk.services import customer_service
from voicedesk.services.alert_service import AlertingService
from voicedesk.services.intent_classifier import Classification, IntentClassifier
from voicedesk.services.nurture_service import NurtureContext, schedule_nurture_sequence
from voicedesk.services.tenant_config_service import TenantConfigService
from voicedesk.utils.pii_mask import mask_text

logger = logging.getLogger(__name__)

SPEAKER_LABELS = {"agent": "AI", "user": "Customer"}


class CRMClient(Protocol):
    async def sync_contact(
        self, tenant: TenantConfig, customer: Customer, conversation: Conversation
    ) -> str | None:
        """Push the contact + call to the CRM. Returns the CRM contact id."""


@dataclass(frozen=True)
class PostCallResult:
    conversation_id: UUID
    classification: Classification | None
    nurture_scheduled: int


def build_transcript_text(call: RetellCall) -> str:
    """'AI: ...' / 'Customer: ...' lines, or the raw transcript when turns are missing."""
    if call.transcript_object:
        return "\n".join(
            f"{SPEAKER_LABELS.get(turn.role, turn.role.title())}: {turn.content}"
            for turn in call.transcript_object
        )
    return call.transcript or ""


def caller_number(call: RetellCall) -> str | None:
    """The customer's number: from_number on inbound calls, to_number on outbound."""
    if call.direction == "outbound":
        return call.to_number
    return call.from_number


def epoch_ms_to_datetime(value: int | None) -> datetime | None:
    if value is None:
        return None
    return datetime.fromtimestamp(value / 1000, tz=timezone.utc)


def should_nurture(classification: Classification | None, call: RetellCall) -> bool:
    """Interested caller (by intent or analysis outcome) who did not book."""
    custom = call.call_analysis.custom_analysis_data if call.call_analysis else {}
    if custom.get("appointment_booked"):
        return False
    if custom.get("outcome") == "interested":
        return True
    return classification is not None and classification.intent in FOLLOW_UP_INTENTS


class PostCallProcessor:
    def __init__(
        self,
        session_factory: Callable[[], Session],
        classifier: IntentClassifier,
        tenants: TenantConfigService,
        alerts: AlertingService | None = None,
        crm: CRMClient | None = None,
    ):
        self.session_factory = session_factory
        self.classifier = classifier
        self.tenants = tenants
        self.alerts = alerts
        self.crm = crm

    async def process(self, tenant_id: str, call: RetellCall) -> PostCallResult:
        tenant = self.tenants.get_config(tenant_id)
        log_context = build_log_context(tenant_id=tenant_id, call_id=call.call_id)
        transcript = build_transcript_text(call)

        classification = None
        if transcript.strip():
            classification = await self.classifier.classify(transcript)
            logger.info(
                "Call classified as %s (%.2f, %s)",
                classification.intent,
                classification.confidence,
                classification.source,
                extra=log_context,
            )

        with self.session_factory() as db:
            customer = None
            phone = caller_number(call)
            if phone:
                entities = classification.entities if classification else {}
                customer = customer_service.get_or_create_customer(
                    db,
                    tenant_id,
                    phone,
                    name=entities.get("name"),
                    email=entities.get("email"),
                )

            analysis = call.call_analysis
            conversation = customer_service.upsert_conversation(
                db,
                tenant_id,
                call.call_id,
                customer_id=customer.id if customer else None,
                status=ConversationStatus.COMPLETED.value,
                direction=call.direction,
                from_number=call.from_number,
                to_number=call.to_number,
                duration_seconds=call.duration_ms // 1000 if call.duration_ms is not None else None,
                transcript=transcript or None,
                intent=classification.intent if classification else None,
                intent_confidence=classification.confidence if classification else None,
                urgency=classification.urgency if classification else None,
                sentiment=(analysis.user_sentiment if analysis else None)
                or (classification.sentiment if classification else None),
                summary=(analysis.call_summary if analysis else None)
                or (classification.summary if classification else None),
                ended_at=epoch_ms_to_datetime(call.end_timestamp),
            )

            if customer is not None and self.crm is not None and tenant.crm_enabled:
                await self._sync_crm(db, tenant, customer, conversation, log_context)

            scheduled = []
            if customer is not None and should_nurture(classification, call):
                scheduled = schedule_nurture_sequence(
                    db,
                    NurtureContext(
                        tenant_id=tenant_id,
                        phone=customer.phone,
                        email=customer.email,
                        customer_name=customer.name,
                        customer_id=customer.id,
                        conversation_id=conversation.id,
                        call_id=call.call_id,
                        call_summary=conversation.summary,
                        reference_time=epoch_ms_to_datetime(call.end_timestamp),
                    ),
                    tenant,
                )

            return PostCallResult(
                conversation_id=conversation.id,
                classification=classification,
                nurture_scheduled=len(scheduled),
            )

    async def _sync_crm(
        self,
        db: Session,
        tenant: TenantConfig,
        customer: Customer,
        conversation: Conversation,
        log_context: dict,
    ) -> None:
        try:
            crm_contact_id = await self.crm.sync_contact(tenant, customer, conversation)
        except Exception as exc:
            logger.warning("CRM sync failed: %s", type(exc).__name__, extra=log_context)
            if self.alerts is not None:
                await self.alerts.notify(
                    AlertSeverity.WARNING,
                    "CRM sync failed",
                    f"{type(exc).__name__}: {mask_text(str(exc))}",
                    {"tenant_id": tenant.tenant_id, "call_id": conversation.call_id},
                )
            return
        if crm_contact_id and crm_contact_id != customer.crm_contact_id:
            customer_service.set_crm_contact_id(db, customer, crm_contact_id)
