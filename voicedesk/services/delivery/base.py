"""Delivery provider interface + failover chain."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Protocol, Sequence

from voicedesk.utils.pii_mask import mask_recipient

logger = logging.getLogger(__name__)


class DeliveryError(Exception):
    """Provider rejected the message or could not be reached."""

    def __init__(self, provider: str, message: str, status_code: int | None = None):
        self.provider = provider
        self.status_code = status_code
        super().__init__(message)


@dataclass(frozen=True)
class DeliveryOutcome:
    success: bool
    provider: str | None = None
    provider_message_id: str | None = None
    error: str | None = None


class DeliveryProvider(Protocol):
    name: str

    def is_configured(self) -> bool:
        """Whether credentials for this provider are present."""

    async def send(
        self, recipient: str, body: str, subject: str | None = None
    ) -> DeliveryOutcome:
        """Send one message. May raise DeliveryError or httpx errors."""


class FailoverChain:
    """
    Ordered list of providers for one channel, tried until one succeeds.

    Unconfigured providers are skipped. Provider exceptions and timeouts are
    converted to failed outcomes so the next provider gets its turn; send()
    itself never raises for provider errors. `timeout` bounds each provider
    call separately.
    """

    def __init__(
        self,
        channel: str,
        providers: Sequence[DeliveryProvider],
        timeout: float | None = None,
    ):
        self.channel = channel
        self.providers = list(providers)
        self.timeout = timeout

    def is_configured(self) -> bool:
        return any(provider.is_configured() for provider in self.providers)

    def configured_providers(self) -> list[DeliveryProvider]:
        return [provider for provider in self.providers if provider.is_configured()]

    async def send(
        self, recipient: str, body: str, subject: str | None = None
    ) -> DeliveryOutcome:
        errors: list[str] = []
        for provider in self.configured_providers():
            try:
                outcome = await asyncio.wait_for(
                    provider.send(recipient, body, subject), timeout=self.timeout
                )
            except asyncio.TimeoutError:
                logger.warning(
                    "%s provider %s timed out after %ss",
                    self.channel,
                    provider.name,
                    self.timeout,
                )
                outcome = DeliveryOutcome(
                    success=False,
                    provider=provider.name,
                    error=f"timed out after {self.timeout:g}s",
                )
            except Exception as exc:
                logger.warning(
                    "%s provider %s raised %s",
                    self.channel,
                    provider.name,
                    type(exc).__name__,
                )
                outcome = DeliveryOutcome(
                    success=False, provider=provider.name, error=str(exc) or type(exc).__name__
                )

            if outcome.success:
                if errors:
                    logger.info(
                        "%s to %s delivered via fallback provider %s",
                        self.channel,
                        mask_recipient(recipient),
                        provider.name,
                    )
                return outcome

            errors.append(f"{provider.name}: {outcome.error}")
            logger.warning(
                "%s provider %s failed for %s",
                self.channel,
                provider.name,
                mask_recipient(recipient),
            )

        if not errors:
            return DeliveryOutcome(
                success=False, error=f"No {self.channel} provider configured"
            )
        return DeliveryOutcome(success=False, error="; ".join(errors))
