"""Tests for post-call processing."""

from datetime import datetime, timedelta, timezone

import pytest

from voicedesk.db.models import Conversation, Customer, QueuedMessage
from voicedesk.schemas.retell import RetellCall
from voicedesk.services.intent_classifier import RuleBasedClassifier
from voicedesk.services.post_call_processor import (
    PostCallProcessor,
    build_transcript_text,
    caller_number,
    should_nurture,
)


def _call(transcript: list[tuple[str, str]], **fields) -> RetellCall:
    ended = datetime.now(timezone.utc) - timedelta(minutes=5)
    values = dict(
        call_id="call_777",
        direction="inbound",
        from_number="555-123-4567",
        to_number="+15557654321",
        end_timestamp=int(ended.timestamp() * 1000),
        duration_ms=95000,
        transcript_object=[{"role": role, "content": content} for role, content in transcript],
    )
    values.update(fields)
    return RetellCall.model_validate(values)


class FakeCRM:
    def __init__(self, error: Exception | None = None):
        self.error = error
        self.synced = []

    async def sync_contact(self, tenant, customer, conversation):
        self.synced.append(customer.phone)
        if self.error is not None:
            raise self.error
        return "crm-1"


def test_transcript_text_labels_speakers():
    call = _call([("agent", "Hello"), ("user", "Hi")])
    assert build_transcript_text(call) == "AI: Hello\nCustomer: Hi"


def test_caller_number_by_direction():
    assert caller_number(_call([], direction="outbound")) == "+15557654321"
    assert caller_number(_call([])) == "555-123-4567"


def test_should_nurture_rules():
    classifier = RuleBasedClassifier()
    pricing = classifier.classify_sync("How much is a cleaning?")
    booked = _call([], call_analysis={"custom_analysis_data": {"appointment_booked": True}})
    interested = _call([], call_analysis={"custom_analysis_data": {"outcome": "interested"}})

    assert should_nurture(pricing, _call([])) is True
    assert should_nurture(pricing, booked) is False
    assert should_nurture(None, interested) is True
    assert should_nurture(classifier.classify_sync("You are terrible"), _call([])) is False


@pytest.mark.asyncio
async def test_process_classifies_and_starts_nurture(session_factory, db, tenants, alerts):
    processor = PostCallProcessor(session_factory, RuleBasedClassifier(), tenants, alerts)
    call = _call(
        [
            ("agent", "Thanks for calling Acme Dental."),
            ("user", "How much does whitening cost? My name is Dana Smith."),
        ]
    )

    result = await processor.process("acme", call)

    assert result.classification.intent == "pricing_question"
    assert result.nurture_scheduled == 2

    conversation = db.get(Conversation, result.conversation_id)
    assert conversation.intent == "pricing_question"
    assert conversation.duration_seconds == 95
    customer = db.query(Customer).filter_by(tenant_id="acme").one()
    assert customer.phone == "+15551234567"
    assert customer.name == "Dana Smith"
    assert db.query(QueuedMessage).filter_by(call_id="call_777").count() == 2


@pytest.mark.asyncio
async def test_crm_sync_failure_is_non_fatal(session_factory, db, tenant, tenants, alerts):
    tenants.register(tenant.model_copy(update={"crm_enabled": True}))
    crm = FakeCRM(error=RuntimeError("CRM down"))
    processor = PostCallProcessor(session_factory, RuleBasedClassifier(), tenants, alerts, crm)

    result = await processor.process("acme", _call([("user", "I'd like to book an appointment")]))

    assert result.classification.intent == "booking_request"
    assert crm.synced == ["+15551234567"]
    assert "CRM sync failed" in alerts.titles()


@pytest.mark.asyncio
async def test_crm_contact_id_recorded(session_factory, db, tenant, tenants, alerts):
    tenants.register(tenant.model_copy(update={"crm_enabled": True}))
    processor = PostCallProcessor(session_factory, RuleBasedClassifier(), tenants, alerts, FakeCRM())

    await processor.process("acme", _call([("user", "Thank you, great service")]))

    customer = db.query(Customer).filter_by(tenant_id="acme").one()
    assert customer.crm_contact_id == "crm-1"


@pytest.mark.asyncio
async def test_crm_sync_alert_masks_contact_details(session_factory, db, tenant, tenants, alerts):
    tenants.register(tenant.model_copy(update={"crm_enabled": True}))
    crm = FakeCRM(error=RuntimeError("duplicate contact +15551234567"))
    processor = PostCallProcessor(session_factory, RuleBasedClassifier(), tenants, alerts, crm)

    await processor.process("acme", _call([("user", "I'd like to book an appointment")]))

    message = next(msg for _, title, msg, _ in alerts.calls if title == "CRM sync failed")
    assert "+15551234567" not in message
    assert "***4567" in message
