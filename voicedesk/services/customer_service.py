"""Customer and conversation persistence for voice calls."""

import logging

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from voicedesk.db.models import Conversation, Customer
from voicedesk.utils.phone import normalize_phone

logger = logging.getLogger(__name__)

CONVERSATION_FIELDS = frozenset(
    {
        "customer_id",
        "status",
        "direction",
        "from_number",
        "to_number",
        "duration_seconds",
        "transcript",
        "intent",
        "intent_confidence",
        "urgency",
        "sentiment",
        "summary",
        "analysis",
        "started_at",
        "ended_at",
    }
)


def get_customer_by_phone(db: Session, tenant_id: str, phone: str) -> Customer | None:
    return (
        db.query(Customer)
        .filter(Customer.tenant_id == tenant_id, Customer.phone == normalize_phone(phone))
        .first()
    )


def get_or_create_customer(
    db: Session,
    tenant_id: str,
    phone: str,
    *,
    name: str | None = None,
    email: str | None = None,
) -> Customer:
    """
    Find a customer by tenant + phone, creating one if needed.

    Missing name/email are filled in from what the call revealed; known
    values are never overwritten.
    """
    customer = get_customer_by_phone(db, tenant_id, phone)
    if customer is None:
        customer = Customer(
            tenant_id=tenant_id, phone=normalize_phone(phone), name=name, email=email
        )
        db.add(customer)
        try:
            db.commit()
        except IntegrityError:
            # Created concurrently by another event for the same caller
            db.rollback()
            customer = get_customer_by_phone(db, tenant_id, phone)
            if customer is None:
                raise
        else:
            db.refresh(customer)
            logger.info("Created customer %s for tenant %s", customer.id, tenant_id)
            return customer

    changed = False
    if name and not customer.name:
        customer.name = name
        changed = True
    if email and not customer.email:
        customer.email = email
        changed = True
    if changed:
        db.commit()
        db.refresh(customer)
    return customer


def set_crm_contact_id(db: Session, customer: Customer, crm_contact_id: str) -> Customer:
    customer.crm_contact_id = crm_contact_id
    db.commit()
    db.refresh(customer)
    return customer


def get_conversation(db: Session, tenant_id: str, call_id: str) -> Conversation | None:
    return (
        db.query(Conversation)
        .filter(Conversation.tenant_id == tenant_id, Conversation.call_id == call_id)
        .first()
    )


def upsert_conversation(db: Session, tenant_id: str, call_id: str, **fields) -> Conversation:
    """Create or update the conversation for a call. None values don't clear fields."""
    unknown = set(fields) - CONVERSATION_FIELDS
    if unknown:
        raise ValueError(f"Unknown conversation fields: {sorted(unknown)}")
    updates = {key: value for key, value in fields.items() if value is not None}

    conversation = get_conversation(db, tenant_id, call_id)
    if conversation is None:
        conversation = Conversation(tenant_id=tenant_id, call_id=call_id, **updates)
        db.add(conversation)
        try:
            db.commit()
        except IntegrityError:
            db.rollback()
            conversation = get_conversation(db, tenant_id, call_id)
            if conversation is None:
                raise
        else:
            db.refresh(conversation)
            return conversation

    for key, value in updates.items():
        setattr(conversation, key, value)
    db.commit()
    db.refresh(conversation)
    return conversation
