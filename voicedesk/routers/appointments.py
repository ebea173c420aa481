"""Appointments router - reminder scheduling hooks for the booking flow."""

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from voicedesk.core.container import Services
from voicedesk.core.deps import get_db, get_services, require_operator
from voicedesk.schemas.queue import (
    AppointmentReminderCreate,
    CancelResult,
    ReminderScheduleResult,
)
from voicedesk.services import reminder_service
from voicedesk.services.reminder_service import AppointmentDetails
from voicedesk.services.tenant_config_service import TenantNotFoundError
from voicedesk.utils.phone import normalize_phone

router = APIRouter(
    prefix="/appointments", tags=["appointments"], dependencies=[Depends(require_operator)]
)


@router.post("/reminders", response_model=ReminderScheduleResult, status_code=201)
async def schedule_reminders(
    data: AppointmentReminderCreate,
    db: Session = Depends(get_db),
    services: Services = Depends(get_services),
):
    """Queue 24h and 1h reminders for a booked appointment."""
    try:
        tenant = services.tenants.get_config(data.tenant_id)
    except TenantNotFoundError:
        raise HTTPException(status_code=404, detail="Unknown tenant")

    appointment = AppointmentDetails(
        tenant_id=data.tenant_id,
        appointment_id=data.appointment_id,
        start_time=data.start_time,
        phone=normalize_phone(data.phone),
        email=data.email,
        customer_name=data.customer_name,
        customer_id=data.customer_id,
    )
    scheduled = reminder_service.schedule_appointment_reminders(db, appointment, tenant)
    return {"scheduled": scheduled}


@router.delete("/{appointment_id}/reminders", response_model=CancelResult)
def cancel_reminders(
    appointment_id: str,
    tenant_id: str | None = None,
    db: Session = Depends(get_db),
):
    """Cancel pending reminders for a cancelled or rescheduled appointment."""
    return {"cancelled": reminder_service.cancel_by_appointment(db, appointment_id, tenant_id)}
