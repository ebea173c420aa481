"""Tests for alert throttling and severity routing."""

import json
from datetime import datetime, timedelta, timezone

import httpx
import pytest

from voicedesk.db.enums import AlertSeverity
from voicedesk.services.alert_service import AlertingService, AlertThrottle
from voicedesk.services.delivery.base import FailoverChain

from tests.conftest import FakeProvider, ManualClock


def _throttle(clock: ManualClock) -> AlertThrottle:
    return AlertThrottle(15, clock=clock)


def test_throttle_counts_repeats_and_sends_digest():
    clock = ManualClock(datetime(2025, 3, 12, 12, 0, tzinfo=timezone.utc))
    throttle = _throttle(clock)
    key = AlertThrottle.key_for("Webhook processing failed", "acme")

    assert throttle.check(key, AlertSeverity.ERROR).send is True
    clock.now += timedelta(minutes=1)
    assert throttle.check(key, AlertSeverity.ERROR).send is False
    clock.now += timedelta(minutes=1)
    assert throttle.check(key, AlertSeverity.ERROR).send is False

    clock.now += timedelta(minutes=15)
    digest = throttle.check(key, AlertSeverity.ERROR)
    assert digest.send is True
    assert digest.occurrences == 4

    # New window starts after the digest
    clock.now += timedelta(minutes=1)
    assert throttle.check(key, AlertSeverity.ERROR).send is False


def test_throttle_keys_by_tenant():
    clock = ManualClock(datetime(2025, 3, 12, tzinfo=timezone.utc))
    throttle = _throttle(clock)
    assert throttle.check(AlertThrottle.key_for("X", "acme"), AlertSeverity.WARNING).send
    assert throttle.check(AlertThrottle.key_for("X", "globex"), AlertSeverity.WARNING).send
    assert throttle.check(AlertThrottle.key_for("X", None), AlertSeverity.WARNING).send


def test_critical_alerts_are_never_throttled():
    clock = ManualClock(datetime(2025, 3, 12, tzinfo=timezone.utc))
    throttle = _throttle(clock)
    key = AlertThrottle.key_for("Message delivery failed permanently", "acme")
    assert all(throttle.check(key, AlertSeverity.CRITICAL).send for _ in range(3))


def _service(slack_requests: list, **overrides) -> AlertingService:
    def handler(request: httpx.Request) -> httpx.Response:
        slack_requests.append(json.loads(request.content))
        return httpx.Response(200, text="ok")

    values = dict(
        throttle=AlertThrottle(15),
        slack_webhook_url="https://hooks.slack.example/T000",
        email_chain=FailoverChain("email", [FakeProvider("fake_email")]),
        sms_chain=FailoverChain("sms", [FakeProvider("fake_sms")]),
        email_recipients=["ops@example.com"],
        sms_recipients=["+15550001111"],
        environment="test",
        transport=httpx.MockTransport(handler),
    )
    values.update(overrides)
    return AlertingService(**values)


@pytest.mark.asyncio
async def test_warning_goes_to_slack_only():
    slack: list = []
    service = _service(slack)
    await service.notify(AlertSeverity.WARNING, "CRM sync failed", "timeout", {"tenant_id": "acme"})

    assert len(slack) == 1
    assert slack[0]["attachments"][0]["title"] == "[WARNING] CRM sync failed"
    assert service.email_chain.providers[0].sent == []
    assert service.sms_chain.providers[0].sent == []


@pytest.mark.asyncio
async def test_error_adds_email():
    slack: list = []
    service = _service(slack)
    await service.notify(AlertSeverity.ERROR, "Webhook processing failed", "boom", {"tenant_id": "acme"})

    recipient, body, subject = service.email_chain.providers[0].sent[0]
    assert recipient == "ops@example.com"
    assert subject == "[ERROR] Webhook processing failed"
    assert "tenant_id: acme" in body
    assert service.sms_chain.providers[0].sent == []


@pytest.mark.asyncio
async def test_critical_adds_truncated_sms():
    slack: list = []
    service = _service(slack)
    await service.notify(AlertSeverity.CRITICAL, "Message delivery failed permanently", "x" * 150)

    recipient, body, _ = service.sms_chain.providers[0].sent[0]
    assert recipient == "+15550001111"
    assert body == "CRITICAL: Message delivery failed permanently\n" + "x" * 100 + "..."


@pytest.mark.asyncio
async def test_notify_never_raises_on_slack_error():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(500)

    service = _service([], transport=httpx.MockTransport(handler))
    await service.notify(AlertSeverity.ERROR, "Background job failed", "boom")
    # Email still went out even though Slack failed
    assert len(service.email_chain.providers[0].sent) == 1
