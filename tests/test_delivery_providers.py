"""Tests for SMS/email providers and failover chains."""

import asyncio
import json

import httpx
import pytest

from voicedesk.services.delivery import (
    DeliveryError,
    FailoverChain,
    ResendProvider,
    Text180Provider,
    TwilioProvider,
)
from voicedesk.services.delivery.email import RESEND_SEND_URL

from tests.conftest import FakeProvider, failed


def _transport(status: int, payload: dict, seen: list):
    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(status, json=payload)

    return httpx.MockTransport(handler)


@pytest.mark.asyncio
async def test_txt180_sends_json_with_bearer_auth():
    seen: list = []
    provider = Text180Provider(
        "txt-key", "+15550000000", transport=_transport(200, {"id": "txt_1"}, seen)
    )

    outcome = await provider.send("(555) 123-4567", "Hello")

    request = seen[0]
    assert str(request.url) == "https://api.txt180.com/v1/messages"
    assert request.headers["Authorization"] == "Bearer txt-key"
    assert json.loads(request.content) == {"to": "+15551234567", "body": "Hello", "from": "+15550000000"}
    assert outcome.success is True
    assert outcome.provider_message_id == "txt_1"


@pytest.mark.asyncio
async def test_twilio_sends_form_with_basic_auth():
    seen: list = []
    provider = TwilioProvider(
        "AC123", "token", "+15550000000", transport=_transport(201, {"sid": "SM1"}, seen)
    )

    outcome = await provider.send("+15551234567", "Hello")

    request = seen[0]
    assert request.url.path == "/2010-04-01/Accounts/AC123/Messages.json"
    assert request.headers["Authorization"].startswith("Basic ")
    assert b"To=%2B15551234567" in request.content
    assert outcome.provider_message_id == "SM1"


@pytest.mark.asyncio
async def test_provider_error_status_raises():
    provider = Text180Provider("txt-key", transport=_transport(503, {"message": "down"}, []))
    with pytest.raises(DeliveryError) as exc_info:
        await provider.send("+15551234567", "Hello")
    assert exc_info.value.status_code == 503
    assert "down" in str(exc_info.value)


@pytest.mark.asyncio
async def test_resend_email_payload():
    seen: list = []
    provider = ResendProvider(
        "re_key", "Acme <noreply@acme.test>", transport=_transport(200, {"id": "em_1"}, seen)
    )
    outcome = await provider.send("pat@example.com", "Body", "Subject")

    assert str(seen[0].url) == RESEND_SEND_URL
    assert json.loads(seen[0].content)["to"] == ["pat@example.com"]
    assert outcome.provider == "resend"


@pytest.mark.asyncio
async def test_chain_falls_back_to_next_provider():
    primary = FakeProvider("primary", [DeliveryError("primary", "HTTP 500", 500)])
    secondary = FakeProvider("secondary")
    outcome = await FailoverChain("sms", [primary, secondary]).send("+15551234567", "Hi")

    assert outcome.success is True
    assert outcome.provider == "secondary"


@pytest.mark.asyncio
async def test_chain_skips_unconfigured_providers():
    unconfigured = FakeProvider("primary", configured=False)
    secondary = FakeProvider("secondary")
    outcome = await FailoverChain("sms", [unconfigured, secondary]).send("+15551234567", "Hi")

    assert outcome.provider == "secondary"
    assert unconfigured.sent == []


@pytest.mark.asyncio
async def test_chain_reports_all_errors():
    chain = FailoverChain(
        "email",
        [FakeProvider("a", [failed("HTTP 500")]), FakeProvider("b", [failed("timeout")])],
    )
    outcome = await chain.send("pat@example.com", "Hi", "Subject")
    assert outcome.success is False
    assert outcome.error == "a: HTTP 500; b: timeout"


@pytest.mark.asyncio
async def test_chain_with_nothing_configured():
    chain = FailoverChain("sms", [FakeProvider(configured=False)])
    outcome = await chain.send("+15551234567", "Hi")
    assert outcome.error == "No sms provider configured"
    assert chain.is_configured() is False


class HungProvider(FakeProvider):
    async def send(self, recipient, body, subject=None):
        await asyncio.sleep(10)
        return await super().send(recipient, body, subject)


@pytest.mark.asyncio
async def test_chain_times_out_hung_provider_and_falls_back():
    secondary = FakeProvider("secondary")
    chain = FailoverChain("sms", [HungProvider("primary"), secondary], timeout=0.05)

    outcome = await chain.send("+15551234567", "Hi")

    assert outcome.success is True
    assert outcome.provider == "secondary"
    assert len(secondary.sent) == 1


@pytest.mark.asyncio
async def test_chain_reports_provider_timeout():
    chain = FailoverChain("sms", [HungProvider("primary")], timeout=0.05)
    outcome = await chain.send("+15551234567", "Hi")
    assert outcome.success is False
    assert outcome.error == "primary: timed out after 0.05s"
