"""Webhook idempotency ledger.

Claim-then-process: a webhook is claimed by inserting a row keyed on
"{tenant}:{call_id}:{event_type}" before any work happens. The unique index
is the real guard against concurrent duplicate deliveries; the lookup in
check() just short-circuits the common repeat-delivery case.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from uuid import UUID

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from voicedesk.core.structured_logging import build_log_context
from voicedesk.db.models import WebhookEvent

logger = logging.getLogger(__name__)


class DuplicateClaimError(Exception):
    """Another delivery already claimed this webhook event."""

    def __init__(self, idempotency_key: str):
        self.idempotency_key = idempotency_key
        super().__init__(f"Webhook event already claimed: {idempotency_key}")


@dataclass(frozen=True)
class IdempotencyCheck:
    is_duplicate: bool
    existing_id: UUID | None = None
    processed_at: datetime | None = None


@dataclass(frozen=True)
class ClaimResult:
    """Outcome of check_and_claim: either a fresh claim or a duplicate signal."""

    claimed: bool
    record_id: UUID | None = None
    processed_at: datetime | None = None

    @property
    def is_duplicate(self) -> bool:
        return not self.claimed


def build_idempotency_key(tenant_id: str, call_id: str, event_type: str) -> str:
    return f"{tenant_id}:{call_id}:{event_type}"


def check(db: Session, tenant_id: str, call_id: str, event_type: str) -> IdempotencyCheck:
    """
    Look up an existing claim.

    Fails open: a storage error is logged and reported as "not a duplicate" so
    a database hiccup never drops a legitimate webhook.
    """
    key = build_idempotency_key(tenant_id, call_id, event_type)
    try:
        existing = (
            db.query(WebhookEvent)
            .filter(WebhookEvent.idempotency_key == key)
            .first()
        )
    except SQLAlchemyError:
        db.rollback()
        logger.warning(
            "Idempotency check failed, treating event as new",
            exc_info=True,
            extra=build_log_context(
                tenant_id=tenant_id, call_id=call_id, event_type=event_type
            ),
        )
        return IdempotencyCheck(is_duplicate=False)

    if existing is None:
        return IdempotencyCheck(is_duplicate=False)
    return IdempotencyCheck(
        is_duplicate=True,
        existing_id=existing.id,
        processed_at=existing.processed_at,
    )


def claim(
    db: Session,
    tenant_id: str,
    call_id: str,
    event_type: str,
    payload: dict | None = None,
) -> UUID:
    """
    Insert the ledger row for this event.

    Raises:
        DuplicateClaimError: the idempotency key already exists
    """
    key = build_idempotency_key(tenant_id, call_id, event_type)
    event = WebhookEvent(
        tenant_id=tenant_id,
        call_id=call_id,
        event_type=event_type,
        idempotency_key=key,
        payload=payload or {},
        processed=False,
    )
    db.add(event)
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise DuplicateClaimError(key) from exc
    return event.id


def mark_processed(db: Session, record_id: UUID) -> None:
    """Mark a claimed event processed. No-op when already processed."""
    event = db.get(WebhookEvent, record_id)
    if event is None:
        logger.warning("Webhook event %s not found when marking processed", record_id)
        return
    if event.processed:
        return
    event.processed = True
    event.processed_at = datetime.now(timezone.utc)
    db.commit()


def check_and_claim(
    db: Session,
    tenant_id: str,
    call_id: str,
    event_type: str,
    payload: dict | None = None,
) -> ClaimResult:
    """Check for an existing claim, then claim. Exactly one concurrent caller wins."""
    existing = check(db, tenant_id, call_id, event_type)
    if existing.is_duplicate:
        return ClaimResult(
            claimed=False,
            record_id=existing.existing_id,
            processed_at=existing.processed_at,
        )

    try:
        record_id = claim(db, tenant_id, call_id, event_type, payload)
    except DuplicateClaimError:
        logger.info(
            "Concurrent duplicate webhook delivery skipped",
            extra=build_log_context(
                tenant_id=tenant_id, call_id=call_id, event_type=event_type
            ),
        )
        return ClaimResult(claimed=False)

    return ClaimResult(claimed=True, record_id=record_id)
