"""Webhooks router - Retell voice-call events."""

import json
import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.orm import Session

from voicedesk.core.config import settings
from voicedesk.core.container import Services
from voicedesk.core.deps import get_db, get_services, get_tenant
from voicedesk.core.rate_limit import limiter, webhook_limit
from voicedesk.core.structured_logging import build_log_context
from voicedesk.schemas.tenant import TenantConfig
from voicedesk.services.webhooks.router import WebhookValidationError
from voicedesk.services.webhooks.signature import verify_signature

router = APIRouter()
logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "x-retell-signature"


@router.post("/retell/{tenant_id}")
@limiter.limit(webhook_limit)
async def receive_retell_webhook(
    request: Request,
    tenant: TenantConfig = Depends(get_tenant),
    services: Services = Depends(get_services),
    db: Session = Depends(get_db),
):
    """
    Receive a Retell call event for a tenant.

    Security:
    - Validates x-retell-signature HMAC (unless signature checks are disabled)
    - Validates payload size

    Processing:
    - Duplicate deliveries are acknowledged without reprocessing
    - call_ended work is deferred; the response returns immediately
    """
    log_context = build_log_context(
        tenant_id=tenant.tenant_id, route="/webhooks/retell", method="POST"
    )

    # 1. Check payload size
    content_length = request.headers.get("content-length", "0")
    try:
        if int(content_length) > settings.WEBHOOK_MAX_PAYLOAD_BYTES:
            raise HTTPException(413, "Payload too large")
    except ValueError:
        pass

    # 2. Validate signature
    body = await request.body()
    if settings.webhook_signature_required:
        secret = tenant.webhook_secret or settings.RETELL_WEBHOOK_SECRET
        signature = request.headers.get(SIGNATURE_HEADER, "")
        if not signature:
            logger.warning("Retell webhook missing signature", extra=log_context)
            raise HTTPException(403, "Missing signature")
        if not verify_signature(body, signature, secret):
            logger.warning("Retell webhook invalid signature", extra=log_context)
            raise HTTPException(403, "Invalid signature")

    # 3. Parse payload
    try:
        data = json.loads(body)
    except (json.JSONDecodeError, UnicodeDecodeError):
        raise HTTPException(400, "Invalid JSON")

    # 4. Route
    try:
        decision = await services.webhooks.route(data, tenant, db)
    except WebhookValidationError as exc:
        logger.warning("Retell webhook failed validation", extra=log_context)
        raise HTTPException(
            400, detail={"message": "Invalid webhook payload", "errors": exc.errors}
        )
    return decision.body
