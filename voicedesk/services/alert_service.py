"""
Operational alerting.

Routes alerts by severity (info/warning -> Slack; error -> Slack + email;
critical -> Slack + email + SMS) and dampens repeats with an in-memory
throttle keyed by title and tenant.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any

import httpx

from voicedesk.core.cache import Clock, utc_now
from voicedesk.core.config import settings
from voicedesk.db.enums import AlertSeverity
from voicedesk.services.delivery.base import FailoverChain

logger = logging.getLogger(__name__)

SEVERITY_COLORS = {
    AlertSeverity.INFO: "#36a64f",
    AlertSeverity.WARNING: "#f2c744",
    AlertSeverity.ERROR: "#e01e5a",
    AlertSeverity.CRITICAL: "#8b0000",
}
SMS_ALERT_MAX_MESSAGE = 100


@dataclass
class ThrottleEntry:
    count: int
    first_seen: datetime
    last_seen: datetime


@dataclass(frozen=True)
class ThrottleDecision:
    send: bool
    occurrences: int


class AlertThrottle:
    """
    Per-key alert dampener.

    The first alert for a key sends immediately. Repeats inside the window
    are only counted. The first repeat after the window sends a digest
    carrying the total count and starts a new window. Critical alerts always
    send (they are still counted).
    """

    def __init__(self, window_minutes: int = 15, *, clock: Clock = utc_now):
        self.window = timedelta(minutes=window_minutes)
        self._clock = clock
        self._entries: dict[str, ThrottleEntry] = {}
        self._lock = threading.Lock()

    @staticmethod
    def key_for(title: str, tenant_id: str | None) -> str:
        return f"{title}:{tenant_id or 'global'}"

    def check(self, key: str, severity: AlertSeverity) -> ThrottleDecision:
        now = self._clock()
        with self._lock:
            entry = self._entries.get(key)
            if entry is None or severity == AlertSeverity.CRITICAL:
                self._entries[key] = ThrottleEntry(count=1, first_seen=now, last_seen=now)
                return ThrottleDecision(send=True, occurrences=1)

            if now - entry.first_seen >= self.window:
                occurrences = entry.count + 1
                self._entries[key] = ThrottleEntry(count=1, first_seen=now, last_seen=now)
                return ThrottleDecision(send=True, occurrences=occurrences)

            entry.count += 1
            entry.last_seen = now
            return ThrottleDecision(send=False, occurrences=entry.count)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


@dataclass
class AlertingService:
    """Alerting collaborator: notify() never raises into the caller."""

    throttle: AlertThrottle
    slack_webhook_url: str = ""
    email_chain: FailoverChain | None = None
    sms_chain: FailoverChain | None = None
    email_recipients: list[str] = field(default_factory=list)
    sms_recipients: list[str] = field(default_factory=list)
    environment: str = "dev"
    transport: httpx.AsyncBaseTransport | None = None

    async def notify(
        self,
        severity: AlertSeverity,
        title: str,
        message: str,
        context: dict[str, Any] | None = None,
    ) -> None:
        try:
            await self._dispatch(severity, title, message, context or {})
        except Exception:
            logger.exception("Alert dispatch failed for %r", title)

    async def _dispatch(
        self,
        severity: AlertSeverity,
        title: str,
        message: str,
        context: dict[str, Any],
    ) -> None:
        key = AlertThrottle.key_for(title, context.get("tenant_id"))
        decision = self.throttle.check(key, severity)
        if not decision.send:
            logger.debug("Alert throttled key=%s count=%s", key, decision.occurrences)
            return

        display_title = title
        if decision.occurrences > 1:
            display_title = f"{title} ({decision.occurrences} occurrences)"

        logger.log(
            logging.ERROR if severity in (AlertSeverity.ERROR, AlertSeverity.CRITICAL) else logging.WARNING,
            "Alert [%s] %s",
            severity.value,
            display_title,
        )

        await self._send_slack(severity, display_title, message, context)
        if severity in (AlertSeverity.ERROR, AlertSeverity.CRITICAL):
            await self._send_email(severity, title, message, context, decision.occurrences)
        if severity == AlertSeverity.CRITICAL:
            await self._send_sms(title, message)

    async def _send_slack(
        self,
        severity: AlertSeverity,
        title: str,
        message: str,
        context: dict[str, Any],
    ) -> bool:
        if not self.slack_webhook_url:
            return False
        fields = [
            {"title": name, "value": str(value), "short": True}
            for name, value in context.items()
            if value is not None
        ]
        payload = {
            "attachments": [
                {
                    "color": SEVERITY_COLORS[severity],
                    "title": f"[{severity.value.upper()}] {title}",
                    "text": message,
                    "fields": fields,
                    "footer": self.environment,
                }
            ]
        }
        try:
            async with httpx.AsyncClient(timeout=5.0, transport=self.transport) as client:
                response = await client.post(self.slack_webhook_url, json=payload)
                response.raise_for_status()
        except httpx.HTTPError as exc:
            logger.warning("Slack alert failed: %s", type(exc).__name__)
            return False
        return True

    def _format_email_body(
        self, severity: AlertSeverity, title: str, message: str, context: dict[str, Any], occurrences: int
    ) -> str:
        lines = [f"Severity: {severity.value.upper()}", f"Title: {title}"]
        if occurrences > 1:
            lines.append(f"Occurrences: {occurrences}")
        lines.extend(["", "Message:", message, ""])
        for name, value in context.items():
            if value is not None:
                lines.append(f"{name}: {value}")
        lines.append(f"Time: {utc_now().isoformat()}")
        lines.append(f"Environment: {self.environment}")
        return "\n".join(lines)

    async def _send_email(
        self,
        severity: AlertSeverity,
        title: str,
        message: str,
        context: dict[str, Any],
        occurrences: int,
    ) -> bool:
        if not self.email_recipients or self.email_chain is None:
            return False
        subject = f"[{severity.value.upper()}] {title}"
        body = self._format_email_body(severity, title, message, context, occurrences)
        all_sent = True
        for recipient in self.email_recipients:
            outcome = await self.email_chain.send(recipient, body, subject)
            all_sent = all_sent and outcome.success
        return all_sent

    async def _send_sms(self, title: str, message: str) -> bool:
        if not self.sms_recipients or self.sms_chain is None:
            return False
        excerpt = message[:SMS_ALERT_MAX_MESSAGE]
        if len(message) > SMS_ALERT_MAX_MESSAGE:
            excerpt += "..."
        body = f"CRITICAL: {title}\n{excerpt}"
        all_sent = True
        for recipient in self.sms_recipients:
            outcome = await self.sms_chain.send(recipient, body)
            all_sent = all_sent and outcome.success
        return all_sent


def _split_recipients(value: str) -> list[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


def build_alerting_service(
    email_chain: FailoverChain | None = None,
    sms_chain: FailoverChain | None = None,
    throttle: AlertThrottle | None = None,
) -> AlertingService:
    """Alerting service wired from settings."""
    return AlertingService(
        throttle=throttle or AlertThrottle(settings.ALERT_THROTTLE_MINUTES),
        slack_webhook_url=settings.SLACK_WEBHOOK_URL,
        email_chain=email_chain,
        sms_chain=sms_chain,
        email_recipients=_split_recipients(settings.ALERT_EMAIL_TO),
        sms_recipients=_split_recipients(settings.ALERT_SMS_TO),
        environment=settings.ENV,
    )
