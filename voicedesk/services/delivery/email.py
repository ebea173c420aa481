"""Email providers: Resend API (primary) and SMTP (fallback)."""

from __future__ import annotations

import logging
import smtplib
import ssl
from email.message import EmailMessage
from email.utils import make_msgid

import anyio
import httpx

from voicedesk.core.config import settings
from voicedesk.services.delivery.base import DeliveryError, DeliveryOutcome, FailoverChain
from voicedesk.utils.pii_mask import mask_email

logger = logging.getLogger(__name__)

RESEND_SEND_URL = "https://api.resend.com/emails"


class ResendProvider:
    name = "resend"

    def __init__(
        self,
        api_key: str,
        from_email: str,
        *,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.api_key = api_key
        self.from_email = from_email
        self.timeout = timeout
        self._transport = transport

    def is_configured(self) -> bool:
        return bool(self.api_key and self.from_email)

    async def send(self, recipient: str, body: str, subject: str | None = None) -> DeliveryOutcome:
        payload = {
            "from": self.from_email,
            "to": [recipient],
            "subject": subject or "",
            "text": body,
        }
        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            response = await client.post(
                RESEND_SEND_URL,
                json=payload,
                headers={"Authorization": f"Bearer {self.api_key}"},
            )

        if response.status_code >= 400:
            raise DeliveryError(
                self.name, f"HTTP {response.status_code}", response.status_code
            )

        message_id = response.json().get("id")
        logger.info("Email sent via Resend to %s message_id=%s", mask_email(recipient), message_id)
        return DeliveryOutcome(success=True, provider=self.name, provider_message_id=message_id)


class SmtpProvider:
    """Plain SMTP relay. smtplib blocks, so sends run in a worker thread."""

    name = "smtp"

    def __init__(
        self,
        host: str,
        port: int,
        from_email: str,
        *,
        username: str = "",
        password: str = "",
        use_tls: bool = True,
        timeout: float = 10.0,
    ):
        self.host = host
        self.port = port
        self.from_email = from_email
        self.username = username
        self.password = password
        self.use_tls = use_tls
        self.timeout = timeout

    def is_configured(self) -> bool:
        return bool(self.host and self.from_email)

    def _build_message(self, recipient: str, body: str, subject: str | None) -> EmailMessage:
        msg = EmailMessage()
        msg["Subject"] = subject or ""
        msg["From"] = self.from_email
        msg["To"] = recipient
        msg["Message-ID"] = make_msgid()
        msg.set_content(body)
        return msg

    def _send_blocking(self, msg: EmailMessage) -> None:
        try:
            with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as server:
                if self.use_tls:
                    server.starttls(context=ssl.create_default_context())
                if self.username and self.password:
                    server.login(self.username, self.password)
                server.send_message(msg)
        except (smtplib.SMTPException, OSError) as exc:
            raise DeliveryError(self.name, f"{type(exc).__name__}: {exc}") from exc

    async def send(self, recipient: str, body: str, subject: str | None = None) -> DeliveryOutcome:
        msg = self._build_message(recipient, body, subject)
        await anyio.to_thread.run_sync(self._send_blocking, msg)
        logger.info("Email sent via SMTP to %s", mask_email(recipient))
        return DeliveryOutcome(
            success=True, provider=self.name, provider_message_id=msg["Message-ID"]
        )


def build_email_chain(transport: httpx.AsyncBaseTransport | None = None) -> FailoverChain:
    """Email chain from settings: Resend first, SMTP as fallback."""
    return FailoverChain(
        "email",
        [
            ResendProvider(
                settings.RESEND_API_KEY,
                settings.EMAIL_FROM,
                timeout=settings.DELIVERY_TIMEOUT_SECONDS,
                transport=transport,
            ),
            SmtpProvider(
                settings.SMTP_HOST,
                settings.SMTP_PORT,
                settings.EMAIL_FROM,
                username=settings.SMTP_USERNAME,
                password=settings.SMTP_PASSWORD,
                use_tls=settings.SMTP_USE_TLS,
                timeout=settings.DELIVERY_TIMEOUT_SECONDS,
            ),
        ],
        timeout=settings.DELIVERY_TIMEOUT_SECONDS,
    )
