"""Queue router - operator view and actions on the outbound message queue."""

import logging
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from voicedesk.core.container import Services
from voicedesk.core.deps import get_db, get_services, require_operator
from voicedesk.core.structured_logging import build_log_context
from voicedesk.db.enums import MessageType
from voicedesk.schemas.queue import (
    ManualMessageCreate,
    MessageRetry,
    ProcessResult,
    QueuedMessageRead,
    QueueStats,
)
from voicedesk.services import message_queue_service
from voicedesk.services.message_queue_service import (
    InvalidTransitionError,
    MessageNotFoundError,
)

router = APIRouter(prefix="/queue", tags=["queue"], dependencies=[Depends(require_operator)])
logger = logging.getLogger(__name__)


@router.get("/stats", response_model=QueueStats)
def get_queue_stats(tenant_id: str | None = None, db: Session = Depends(get_db)):
    """Message counts by status."""
    return message_queue_service.get_stats(db, tenant_id)


@router.get("/scheduled", response_model=list[QueuedMessageRead])
def list_scheduled(
    tenant_id: str | None = None,
    hours_ahead: int = Query(48, ge=1, le=24 * 14),
    db: Session = Depends(get_db),
):
    """Pending messages due within the next hours_ahead hours."""
    return message_queue_service.get_scheduled(db, hours_ahead=hours_ahead, tenant_id=tenant_id)


@router.get("/messages", response_model=list[QueuedMessageRead])
def list_messages(
    tenant_id: str | None = None,
    limit: int = Query(50, ge=1, le=500),
    db: Session = Depends(get_db),
):
    return message_queue_service.list_recent(db, tenant_id, limit)


@router.get("/failed", response_model=list[QueuedMessageRead])
def list_failed(
    tenant_id: str | None = None,
    limit: int = Query(100, ge=1, le=500),
    db: Session = Depends(get_db),
):
    return message_queue_service.list_failed(db, tenant_id, limit)


@router.get("/dead-letter", response_model=list[QueuedMessageRead])
def list_dead_letter(
    tenant_id: str | None = None,
    limit: int = Query(100, ge=1, le=500),
    db: Session = Depends(get_db),
):
    return message_queue_service.list_dead_letters(db, tenant_id, limit)


@router.post("/messages/{message_id}/retry", response_model=QueuedMessageRead)
async def retry_message(
    message_id: UUID,
    data: MessageRetry | None = None,
    tenant_id: str | None = None,
    db: Session = Depends(get_db),
    services: Services = Depends(get_services),
):
    """
    Re-queue a failed or dead-lettered message, optionally with edits.

    Attempts are reset and an immediate processing pass is triggered.
    """
    edits = data.model_dump(exclude_none=True) if data else {}
    try:
        return services.processor.retry_message(db, message_id, tenant_id=tenant_id, **edits)
    except MessageNotFoundError:
        raise HTTPException(status_code=404, detail="Message not found")
    except InvalidTransitionError as exc:
        raise HTTPException(status_code=409, detail=str(exc))


@router.post("/messages/{message_id}/cancel", response_model=QueuedMessageRead)
def cancel_message(
    message_id: UUID,
    tenant_id: str | None = None,
    db: Session = Depends(get_db),
):
    try:
        return message_queue_service.cancel_message(db, message_id, tenant_id)
    except MessageNotFoundError:
        raise HTTPException(status_code=404, detail="Message not found")
    except InvalidTransitionError as exc:
        raise HTTPException(status_code=409, detail=str(exc))


@router.post("/manual", response_model=QueuedMessageRead, status_code=201)
async def queue_manual_message(
    data: ManualMessageCreate,
    db: Session = Depends(get_db),
    services: Services = Depends(get_services),
):
    """Queue an ad-hoc message. Due immediately unless scheduled_for is set."""
    if not services.tenants.exists(data.tenant_id):
        raise HTTPException(status_code=404, detail="Unknown tenant")

    metadata = {"source": "manual"}
    if data.sent_by:
        metadata["sent_by"] = data.sent_by
    message = message_queue_service.enqueue(
        db,
        data.tenant_id,
        data.channel,
        data.recipient,
        data.body,
        subject=data.subject,
        message_type=MessageType.MANUAL,
        scheduled_for=data.scheduled_for,
        metadata=metadata,
    )
    logger.info(
        "Manual %s message %s queued for tenant %s",
        data.channel.value,
        message.id,
        data.tenant_id,
        extra=build_log_context(tenant_id=data.tenant_id, message_id=message.id),
    )
    if data.scheduled_for is None:
        services.processor.trigger()
    return message


@router.post("/process", response_model=ProcessResult)
async def process_queue(services: Services = Depends(get_services)):
    """Run one processing pass now (cron fallback when the poller is disabled)."""
    result = await services.processor.process_due_batch()
    return result.as_dict()
