# backend/agenda/routers/appointments.py
# DELETE = 405: appointments are never removed, they end in a terminal status

from datetime import date
from typing import Literal, Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Query, status
from sqlalchemy.orm import Session

from ..database import get_db, read_with_retry
from ..dependencies import get_caller, get_lock_redis, get_optional_caller
from ..schemas.appointments import (
    AppointmentCreate,
    AppointmentRead,
    AppointmentReschedule,
    AppointmentStats,
    AppointmentUpdate,
)
from ..services.scheduling import (
    Caller,
    book_appointment,
    reschedule_appointment,
    update_appointment_status,
)
from ..services.scheduling.queries import (
    appointment_stats,
    get_appointment_for_caller,
    list_appointments,
)

router = APIRouter(prefix="/appointments", tags=["appointments"])


@router.post("/", response_model=AppointmentRead, status_code=status.HTTP_201_CREATED)
def create_appointment(
    data: AppointmentCreate,
    idempotency_key: Optional[str] = Header(None, max_length=200),
    db: Session = Depends(get_db),
    caller: Optional[Caller] = Depends(get_optional_caller),
    lock_redis=Depends(get_lock_redis),
):
    """Book a slot. Anonymous callers create a guest booking."""
    return book_appointment(
        db,
        agent_id=data.agent_id,
        client_id=caller.user_id if caller else None,
        scheduled_date=data.scheduled_date,
        scheduled_time=data.scheduled_time,
        appointment_type=data.appointment_type,
        contact_name=data.contact_details.name,
        contact_email=data.contact_details.email,
        contact_phone=data.contact_details.phone,
        duration=data.duration,
        property_details=data.property_details.model_dump(exclude_none=True) if data.property_details else None,
        notes=data.notes,
        idempotency_key=idempotency_key,
        lock_redis=lock_redis,
    )


@router.get("/", response_model=list[AppointmentRead])
def list_my_appointments(
    status_filter: Optional[
        Literal["all", "pending", "confirmed", "completed", "cancelled", "rejected"]
    ] = Query(None, alias="status"),
    start_date: date | None = None,
    end_date: date | None = None,
    db: Session = Depends(get_db),
    caller: Caller = Depends(get_caller),
):
    return read_with_retry(
        db, list_appointments, caller,
        status=status_filter, start_date=start_date, end_date=end_date,
    )


@router.get("/stats", response_model=AppointmentStats)
def get_appointment_stats(
    db: Session = Depends(get_db),
    caller: Caller = Depends(get_caller),
):
    return read_with_retry(db, appointment_stats, caller)


@router.get("/{id}", response_model=AppointmentRead)
def get_appointment(
    id: int,
    db: Session = Depends(get_db),
    caller: Caller = Depends(get_caller),
):
    return get_appointment_for_caller(db, id, caller)


@router.patch("/{id}", response_model=AppointmentRead)
def update_appointment(
    id: int,
    data: AppointmentUpdate,
    db: Session = Depends(get_db),
    caller: Caller = Depends(get_caller),
):
    """Confirm / reject / complete / cancel, or edit the agent's notes."""
    return update_appointment_status(
        db,
        id,
        caller,
        status=data.status,
        agent_notes=data.agent_notes,
        cancellation_reason=data.cancellation_reason,
    )


@router.post("/{id}/reschedule", response_model=AppointmentRead)
def reschedule(
    id: int,
    data: AppointmentReschedule,
    db: Session = Depends(get_db),
    caller: Caller = Depends(get_caller),
    lock_redis=Depends(get_lock_redis),
):
    return reschedule_appointment(
        db,
        id,
        caller,
        scheduled_date=data.scheduled_date,
        scheduled_time=data.scheduled_time,
        reason=data.reason,
        lock_redis=lock_redis,
    )


@router.delete("/{id}")
def delete_not_allowed():
    raise HTTPException(
        status_code=status.HTTP_405_METHOD_NOT_ALLOWED,
        detail="Method not allowed",
    )
