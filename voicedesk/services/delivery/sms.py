"""SMS providers: TXT180 (primary) and Twilio (fallback)."""

from __future__ import annotations

import logging

import httpx

from voicedesk.core.config import settings
from voicedesk.services.delivery.base import DeliveryError, DeliveryOutcome, FailoverChain
from voicedesk.utils.phone import normalize_phone
from voicedesk.utils.pii_mask import mask_phone

logger = logging.getLogger(__name__)

TXT180_API_URL = "https://api.txt180.com/v1"
TWILIO_API_URL = "https://api.twilio.com/2010-04-01"


def _error_detail(response: httpx.Response) -> str:
    try:
        data = response.json()
    except ValueError:
        return f"HTTP {response.status_code}"
    if isinstance(data, dict):
        detail = data.get("message") or data.get("error")
        if detail:
            return f"HTTP {response.status_code}: {detail}"
    return f"HTTP {response.status_code}"


class Text180Provider:
    name = "txt180"

    def __init__(
        self,
        api_key: str,
        from_number: str = "",
        *,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.api_key = api_key
        self.from_number = from_number
        self.timeout = timeout
        self._transport = transport

    def is_configured(self) -> bool:
        return bool(self.api_key)

    async def send(self, recipient: str, body: str, subject: str | None = None) -> DeliveryOutcome:
        to = normalize_phone(recipient)
        payload = {"to": to, "body": body}
        if self.from_number:
            payload["from"] = normalize_phone(self.from_number)

        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            response = await client.post(
                f"{TXT180_API_URL}/messages",
                json=payload,
                headers={"Authorization": f"Bearer {self.api_key}"},
            )

        if response.status_code >= 400:
            raise DeliveryError(self.name, _error_detail(response), response.status_code)

        message_id = response.json().get("id")
        logger.info("SMS sent via TXT180 to %s message_id=%s", mask_phone(to), message_id)
        return DeliveryOutcome(success=True, provider=self.name, provider_message_id=message_id)


class TwilioProvider:
    name = "twilio"

    def __init__(
        self,
        account_sid: str,
        auth_token: str,
        from_number: str,
        *,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.account_sid = account_sid
        self.auth_token = auth_token
        self.from_number = from_number
        self.timeout = timeout
        self._transport = transport

    def is_configured(self) -> bool:
        return bool(self.account_sid and self.auth_token and self.from_number)

    async def send(self, recipient: str, body: str, subject: str | None = None) -> DeliveryOutcome:
        to = normalize_phone(recipient)
        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            response = await client.post(
                f"{TWILIO_API_URL}/Accounts/{self.account_sid}/Messages.json",
                data={"To": to, "From": normalize_phone(self.from_number), "Body": body},
                auth=(self.account_sid, self.auth_token),
            )

        if response.status_code >= 400:
            raise DeliveryError(self.name, _error_detail(response), response.status_code)

        sid = response.json().get("sid")
        logger.info("SMS sent via Twilio to %s sid=%s", mask_phone(to), sid)
        return DeliveryOutcome(success=True, provider=self.name, provider_message_id=sid)


def build_sms_chain(transport: httpx.AsyncBaseTransport | None = None) -> FailoverChain:
    """SMS chain from settings: TXT180 first, Twilio as fallback."""
    return FailoverChain(
        "sms",
        [
            Text180Provider(
                settings.TXT180_API_KEY,
                settings.TXT180_FROM_NUMBER,
                timeout=settings.DELIVERY_TIMEOUT_SECONDS,
                transport=transport,
            ),
            TwilioProvider(
                settings.TWILIO_ACCOUNT_SID,
                settings.TWILIO_AUTH_TOKEN,
                settings.TWILIO_FROM_NUMBER,
                timeout=settings.DELIVERY_TIMEOUT_SECONDS,
                transport=transport,
            ),
        ],
        timeout=settings.DELIVERY_TIMEOUT_SECONDS,
    )
