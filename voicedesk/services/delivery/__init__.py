"""Outbound delivery providers (SMS and email) with ordered failover."""

from voicedesk.services.delivery.base import (
    DeliveryError,
    DeliveryOutcome,
    DeliveryProvider,
    FailoverChain,
)
from voicedesk.services.delivery.email import ResendProvider, SmtpProvider, build_email_chain
from voicedesk.services.delivery.sms import Text180Provider, TwilioProvider, build_sms_chain

__all__ = [
    "DeliveryError",
    "DeliveryOutcome",
    "DeliveryProvider",
    "FailoverChain",
    "ResendProvider",
    "SmtpProvider",
    "Text180Provider",
    "TwilioProvider",
    "build_email_chain",
    "build_sms_chain",
]
