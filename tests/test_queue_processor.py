"""Tests for the queue processor retry/dead-letter state machine."""

import asyncio
from datetime import timedelta
from decimal import Decimal

import pytest

from voicedesk.db.enums import AlertSeverity, MessageStatus
from voicedesk.services import message_queue_service
from voicedesk.services.delivery.base import DeliveryError, FailoverChain
from voicedesk.services.queue_processor import DispatchResult, QueueProcessor, estimate_cost

from tests.conftest import FakeProvider, failed


def _enqueue_now(db, clock, **options):
    return message_queue_service.enqueue_sms(
        db, "acme", "+15551234567", "Your appointment is tomorrow", scheduled_for=clock(), **options
    )


async def _run_passes(processor, clock, passes: int):
    for _ in range(passes):
        await processor.process_due_batch()
        clock.now += timedelta(seconds=61)


@pytest.mark.asyncio
async def test_two_failures_then_success_ends_sent(db, processor, sms_provider, clock):
    sms_provider.outcomes = [failed(), failed()]
    message = _enqueue_now(db, clock)

    await _run_passes(processor, clock, 3)

    db.refresh(message)
    assert message.status == MessageStatus.SENT.value
    assert message.attempts == 2
    assert message.provider_name == "fake_sms"
    assert message.cost == Decimal("0.0079")
    assert len(sms_provider.sent) == 3


@pytest.mark.asyncio
async def test_three_failures_end_in_dead_letter(db, processor, sms_provider, alerts, clock):
    sms_provider.outcomes = [failed(), failed(), failed("HTTP 500")]
    message = _enqueue_now(db, clock)

    await _run_passes(processor, clock, 5)

    db.refresh(message)
    assert message.status == MessageStatus.DEAD_LETTER.value
    assert message.attempts == 3
    assert message.dead_letter_reason == "HTTP 500 (after 3 attempts)"
    # Never attempted past max_attempts
    assert len(sms_provider.sent) == 3

    critical = [call for call in alerts.calls if call[0] == AlertSeverity.CRITICAL]
    assert len(critical) == 1
    assert critical[0][1] == "Message delivery failed permanently"


@pytest.mark.asyncio
async def test_failure_schedules_retry_after_fixed_delay(db, processor, sms_provider, clock):
    sms_provider.outcomes = [failed()]
    message = _enqueue_now(db, clock)
    started = clock()

    result = await processor.process_message(message.id)

    db.refresh(message)
    assert result == DispatchResult.RETRY_SCHEDULED
    assert message.status == MessageStatus.PENDING.value
    assert message.attempts == 1
    assert message.scheduled_for == started + timedelta(seconds=60)

    # Not due again until the delay has passed
    batch = await processor.process_due_batch()
    assert batch.processed == 0


@pytest.mark.asyncio
async def test_provider_exception_counts_as_failed_attempt(db, processor, sms_provider, clock):
    sms_provider.outcomes = [DeliveryError("fake_sms", "HTTP 502", 502)]
    message = _enqueue_now(db, clock)

    await processor.process_due_batch()

    db.refresh(message)
    assert message.attempts == 1
    assert "HTTP 502" in message.last_error


@pytest.mark.asyncio
async def test_slow_provider_times_out(db, session_factory, alerts, clock):
    class SlowProvider(FakeProvider):
        async def send(self, recipient, body, subject=None):
            await asyncio.sleep(1)
            return await super().send(recipient, body, subject)

    processor = QueueProcessor(
        session_factory, {"sms": SlowProvider()}, alerts, delivery_timeout=0.05, clock=clock
    )
    message = _enqueue_now(db, clock)

    await processor.process_due_batch()

    db.refresh(message)
    assert message.attempts == 1
    assert "timed out" in message.last_error


@pytest.mark.asyncio
async def test_batch_counts_and_retry_alert(db, processor, sms_provider, alerts, clock):
    sms_provider.outcomes = [failed()]
    for _ in range(3):
        _enqueue_now(db, clock)

    batch = await processor.process_due_batch()

    assert batch.as_dict() == {"processed": 3, "succeeded": 2, "failed": 1}
    assert "Message delivery failures" in alerts.titles()


@pytest.mark.asyncio
async def test_cancelled_message_is_skipped(db, processor, sms_provider, clock):
    message = _enqueue_now(db, clock)
    message_queue_service.cancel_message(db, message.id)

    assert await processor.process_message(message.id) == DispatchResult.SKIPPED
    assert sms_provider.sent == []


@pytest.mark.asyncio
async def test_overlapping_pass_requests_a_rerun(db, processor, clock):
    _enqueue_now(db, clock)
    processor._processing = True
    batch = await processor.process_due_batch()
    assert batch.processed == 0
    assert processor._rerun_requested is True


@pytest.mark.asyncio
async def test_manual_retry_triggers_immediate_pass(db, processor, sms_provider, clock):
    sms_provider.outcomes = [failed()]
    message = _enqueue_now(db, clock, max_attempts=1)
    await processor.process_due_batch()
    db.refresh(message)
    assert message.status == MessageStatus.DEAD_LETTER.value

    processor.retry_message(db, message.id, body="Edited body")
    await asyncio.gather(*processor._triggered)

    db.refresh(message)
    assert message.status == MessageStatus.SENT.value
    assert sms_provider.sent[-1][1] == "Edited body"


@pytest.mark.asyncio
async def test_hung_primary_fails_over_within_delivery_budget(db, session_factory, alerts, clock):
    class HungPrimary(FakeProvider):
        async def send(self, recipient, body, subject=None):
            await asyncio.sleep(10)
            return await super().send(recipient, body, subject)

    fallback = FakeProvider("fallback")
    chain = FailoverChain("sms", [HungPrimary("primary"), fallback], timeout=0.2)
    processor = QueueProcessor(
        session_factory, {"sms": chain}, alerts, delivery_timeout=0.2, clock=clock
    )
    message = _enqueue_now(db, clock)

    await processor.process_due_batch()

    db.refresh(message)
    assert message.status == MessageStatus.SENT.value
    assert message.provider_name == "fallback"
    assert message.attempts == 0
    assert len(fallback.sent) == 1


@pytest.mark.asyncio
async def test_manual_retry_during_running_pass_is_picked_up(
    db, session_factory, processor, sms_provider, alerts, clock
):
    class GatedProvider(FakeProvider):
        def __init__(self):
            super().__init__("gated")
            self.entered = asyncio.Event()
            self.gate = asyncio.Event()

        async def send(self, recipient, body, subject=None):
            self.entered.set()
            await self.gate.wait()
            return await super().send(recipient, body, subject)

    sms_provider.outcomes = [failed()]
    dead = _enqueue_now(db, clock, max_attempts=1)
    await processor.process_due_batch()
    db.refresh(dead)
    assert dead.status == MessageStatus.DEAD_LETTER.value

    gated = GatedProvider()
    busy = QueueProcessor(session_factory, {"sms": gated}, alerts, clock=clock)
    _enqueue_now(db, clock)
    running = asyncio.create_task(busy.process_due_batch())
    await gated.entered.wait()

    busy.retry_message(db, dead.id)
    assert busy._triggered == set()
    gated.gate.set()
    batch = await running

    db.refresh(dead)
    assert dead.status == MessageStatus.SENT.value
    assert dead.provider_name == "gated"
    assert batch.succeeded == 2


def test_estimate_cost_by_segments():
    kwargs = dict(sms_segment_cost=Decimal("0.0079"), email_cost=Decimal("0.0001"))
    assert estimate_cost("sms", "x" * 160, **kwargs) == Decimal("0.0079")
    assert estimate_cost("sms", "x" * 161, **kwargs) == Decimal("0.0158")
    assert estimate_cost("email", "x" * 5000, **kwargs) == Decimal("0.0001")
