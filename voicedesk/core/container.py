"""Service composition for the API process and the standalone worker."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable

from sqlalchemy.orm import Session

from voicedesk.core.config import settings
from voicedesk.db.enums import MessageChannel
from voicedesk.jobs.runner import BackgroundJobRunner
from voicedesk.services.ai_provider import OpenAIProvider
from voicedesk.services.alert_service import AlertingService, build_alerting_service
from voicedesk.services.delivery import build_email_chain, build_sms_chain
from voicedesk.services.intent_classifier import build_intent_classifier
from voicedesk.services.post_call_processor import PostCallProcessor
from voicedesk.services.queue_processor import QueueProcessor, build_queue_processor
from voicedesk.services.tenant_config_service import (
    TenantConfigService,
    build_tenant_config_service,
)
from voicedesk.services.webhooks.router import WebhookRouter


@dataclass
class Services:
    tenants: TenantConfigService
    alerts: AlertingService
    processor: QueueProcessor
    jobs: BackgroundJobRunner
    post_call: PostCallProcessor
    webhooks: WebhookRouter


def build_services(session_factory: Callable[[], Session]) -> Services:
    sms_chain = build_sms_chain()
    email_chain = build_email_chain()
    alerts = build_alerting_service(email_chain=email_chain, sms_chain=sms_chain)
    tenants = build_tenant_config_service()

    ai_provider = None
    if settings.OPENAI_API_KEY:
        ai_provider = OpenAIProvider(
            settings.OPENAI_API_KEY,
            settings.OPENAI_MODEL,
            timeout=settings.AI_TIMEOUT_SECONDS,
        )

    processor = build_queue_processor(
        session_factory,
        {MessageChannel.SMS.value: sms_chain, MessageChannel.EMAIL.value: email_chain},
        alerts,
    )
    jobs = BackgroundJobRunner(alerts)
    post_call = PostCallProcessor(
        session_factory,
        build_intent_classifier(ai_provider),
        tenants,
        alerts,
    )
    return Services(
        tenants=tenants,
        alerts=alerts,
        processor=processor,
        jobs=jobs,
        post_call=post_call,
        webhooks=WebhookRouter(jobs, post_call, alerts),
    )
