# backend/agenda/services/scheduling/booking.py
"""
Booking service: reserve, reschedule and move appointments through their lifecycle.

Every slot-taking write follows the same shape:
  1. policy checks (booking window) outside the lock
  2. under the per-agent lock: authoritative re-check + insert/update + commit
  3. event emitted after commit

An IntegrityError from the partial unique index means another writer took the
exact same slot first; it is reported as a ConflictError like any other race.
Writes are never retried here.
"""

import json
import logging
from datetime import date, datetime, timedelta, timezone
from typing import Optional

from redis import Redis
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ...config import settings
from ...models.generated import Appointments as DBAppointments
from ..events import emit_event
from .availability import ensure_slot_bookable, resolve_duration
from .config import local_today, normalize_time_str
from .errors import ConflictError, ForbiddenError, PolicyError, ScheduleValidationError
from .lifecycle import (
    AGENT,
    CANCELLED,
    CONFIRMED,
    PENDING,
    REJECTED,
    Caller,
    check_reschedule,
    check_transition,
    require_actor,
)
from .locks import agent_booking_lock
from .rules import AvailabilityConfig
from .store import (
    find_by_idempotency_key,
    get_appointment_row,
    load_availability_config,
    utc_timestamp,
)

logger = logging.getLogger(__name__)

APPOINTMENT_TYPES = ("estimation", "vente", "achat", "conseil")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def check_booking_window(config: AvailabilityConfig, target_date: date, now: datetime) -> None:
    """
    Raises:
        PolicyError(past_date): target_date is before today in the agent timezone
        PolicyError(out_of_window): target_date is after today + advance_booking_days
    """
    today = local_today(config.timezone, now)
    if target_date < today:
        raise PolicyError("past_date", "Cannot book a date in the past")

    horizon = today + timedelta(days=config.policy.advance_booking_days)
    if target_date > horizon:
        raise PolicyError(
            "out_of_window",
            f"Appointments can be booked at most {config.policy.advance_booking_days} days ahead",
        )


def _commit_or_conflict(db: Session, agent_id: int) -> None:
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        logger.warning(f"Slot taken concurrently for agent={agent_id} (unique index)")
        raise ConflictError() from None


def _appointment_payload(obj: DBAppointments) -> dict:
    return {
        "appointment_id": obj.id,
        "agent_id": obj.agent_id,
        "client_id": obj.client_id,
        "status": obj.status,
        "scheduled_date": obj.scheduled_date,
        "scheduled_time": obj.scheduled_time,
    }


def _idempotent_replay(
    existing: DBAppointments,
    agent_id: int,
    client_id: Optional[int],
    scheduled_date: date,
    scheduled_time: str,
) -> DBAppointments:
    """Return the first booking made with a key, if the request matches it."""
    if (existing.agent_id, existing.client_id) != (agent_id, client_id):
        raise PolicyError("idempotency_key_reused", "Idempotency key already used for another booking")
    if (existing.scheduled_date, existing.scheduled_time) != (scheduled_date.isoformat(), scheduled_time):
        raise PolicyError("idempotency_key_reused", "Idempotency key already used for a different slot")
    logger.info(f"Idempotent replay for key={existing.idempotency_key}: appointment={existing.id}")
    return existing


# ── Book ────────────────────────────────────────────────────────────────


def book_appointment(
    db: Session,
    *,
    agent_id: int,
    client_id: Optional[int],
    scheduled_date: date,
    scheduled_time: str,
    appointment_type: str,
    contact_name: str,
    contact_email: str,
    contact_phone: str,
    duration: Optional[int] = None,
    property_details: Optional[dict] = None,
    notes: Optional[str] = None,
    idempotency_key: Optional[str] = None,
    now: Optional[datetime] = None,
    lock_redis: Redis | None = None,
) -> DBAppointments:
    """
    Reserve one slot for a client (or a guest when client_id is None).

    Checks, first failure wins:
      past_date / out_of_window  -> PolicyError
      max_per_day_reached        -> PolicyError
      slot not free              -> ConflictError(slot_unavailable)

    A repeated call with the same idempotency_key returns the appointment
    created by the first call. Reusing a key for another agent, client or
    slot is a PolicyError(idempotency_key_reused).
    """
    scheduled_time = normalize_time_str(scheduled_time)
    if idempotency_key:
        existing = find_by_idempotency_key(db, idempotency_key)
        if existing is not None:
            return _idempotent_replay(existing, agent_id, client_id, scheduled_date, scheduled_time)

    if appointment_type not in APPOINTMENT_TYPES:
        raise ScheduleValidationError(
            "invalid_appointment_type",
            f"appointment_type must be one of {', '.join(APPOINTMENT_TYPES)}",
        )

    now = now or _utcnow()
    config = load_availability_config(db, agent_id)
    duration = resolve_duration(config, duration)

    check_booking_window(config, scheduled_date, now)

    with agent_booking_lock(agent_id, lock_redis, settings.booking_lock_timeout_seconds):
        ensure_slot_bookable(db, config, scheduled_date, scheduled_time, duration, now)

        timestamp = utc_timestamp(now)
        obj = DBAppointments(
            agent_id=agent_id,
            client_id=client_id,
            appointment_type=appointment_type,
            scheduled_date=scheduled_date.isoformat(),
            scheduled_time=scheduled_time,
            duration=duration,
            status=PENDING,
            contact_name=contact_name.strip(),
            contact_email=contact_email.strip().lower(),
            contact_phone=contact_phone.strip(),
            is_guest_booking=1 if client_id is None else 0,
            property_details=json.dumps(property_details) if property_details else None,
            notes=notes,
            idempotency_key=idempotency_key,
            created_at=timestamp,
            updated_at=timestamp,
        )
        db.add(obj)

        try:
            db.commit()
        except IntegrityError:
            db.rollback()
            # Same key sent twice at the same time: the other request won
            if idempotency_key:
                existing = find_by_idempotency_key(db, idempotency_key)
                if existing is not None:
                    return _idempotent_replay(
                        existing, agent_id, client_id, scheduled_date, scheduled_time,
                    )
            logger.warning(
                f"Slot {scheduled_date} {scheduled_time} taken concurrently for agent={agent_id}"
            )
            raise ConflictError() from None

        db.refresh(obj)

    logger.info(
        f"Appointment {obj.id} booked: agent={agent_id} client={client_id} "
        f"{obj.scheduled_date} {obj.scheduled_time} ({duration} min)"
    )
    emit_event("appointment_created", _appointment_payload(obj))
    return obj


# ── Reschedule ──────────────────────────────────────────────────────────


def reschedule_appointment(
    db: Session,
    appointment_id: int,
    caller: Caller,
    scheduled_date: date,
    scheduled_time: str,
    reason: Optional[str] = None,
    now: Optional[datetime] = None,
    lock_redis: Redis | None = None,
) -> DBAppointments:
    """
    Move an appointment to a new slot and reset it to pending.

    The new slot is validated exactly like a fresh booking, ignoring the
    appointment's own reservation, so moving to the current slot succeeds.
    """
    obj = get_appointment_row(db, appointment_id)
    actor = require_actor(obj, caller)
    check_reschedule(obj.status, actor)

    now = now or _utcnow()
    config = load_availability_config(db, obj.agent_id)
    scheduled_time = normalize_time_str(scheduled_time)

    check_booking_window(config, scheduled_date, now)

    with agent_booking_lock(obj.agent_id, lock_redis, settings.booking_lock_timeout_seconds):
        # Status may have moved (cancel, reject, complete) while waiting for the lock
        db.refresh(obj)
        previous = obj.status
        check_reschedule(previous, actor)

        ensure_slot_bookable(
            db, config, scheduled_date, scheduled_time, obj.duration, now,
            exclude_appointment_id=obj.id,
        )

        values: dict = {"status": PENDING, "updated_at": utc_timestamp(now)}
        new_date = scheduled_date.isoformat()
        if (obj.scheduled_date, obj.scheduled_time) != (new_date, scheduled_time):
            if obj.original_scheduled_date is None:
                values["original_scheduled_date"] = obj.scheduled_date
                values["original_scheduled_time"] = obj.scheduled_time
            values["scheduled_date"] = new_date
            values["scheduled_time"] = scheduled_time
            values["is_rescheduled"] = 1
        if reason is not None:
            values["reschedule_reason"] = reason

        try:
            updated = (
                db.query(DBAppointments)
                .filter(DBAppointments.id == obj.id, DBAppointments.status == previous)
                .update(values, synchronize_session=False)
            )
        except IntegrityError:
            db.rollback()
            logger.warning(f"Slot taken concurrently for agent={obj.agent_id} (unique index)")
            raise ConflictError() from None
        if not updated:
            db.rollback()
            logger.warning(f"Appointment {obj.id} changed concurrently, reschedule rejected")
            raise ConflictError("status_changed", "The appointment was modified meanwhile, please reload it")

        _commit_or_conflict(db, obj.agent_id)
        db.refresh(obj)

    logger.info(
        f"Appointment {obj.id} rescheduled by {actor} to {obj.scheduled_date} {obj.scheduled_time}"
    )
    emit_event("appointment_rescheduled", {**_appointment_payload(obj), "rescheduled_by": caller.user_id})
    return obj


# ── Status ──────────────────────────────────────────────────────────────


def update_appointment_status(
    db: Session,
    appointment_id: int,
    caller: Caller,
    status: Optional[str] = None,
    agent_notes: Optional[str] = None,
    cancellation_reason: Optional[str] = None,
    now: Optional[datetime] = None,
) -> DBAppointments:
    """
    Apply a lifecycle transition and/or update the agent's private notes.

    The status write is a compare-and-set on the status read at the start, so
    two concurrent transitions (confirm vs cancel) cannot both succeed.
    """
    obj = get_appointment_row(db, appointment_id)
    actor = require_actor(obj, caller)
    now = now or _utcnow()

    previous = obj.status
    values: dict = {}

    if agent_notes is not None:
        if actor != AGENT:
            raise ForbiddenError("forbidden", "Only the agent can edit agent notes")
        values["agent_notes"] = agent_notes

    if status is not None:
        check_transition(previous, status, actor)
        values["status"] = status
        if status in (CONFIRMED, REJECTED):
            values["responded_at"] = utc_timestamp(now)
        if status == CANCELLED:
            values["cancellation_reason"] = cancellation_reason
            values["cancelled_by"] = caller.user_id
            values["cancelled_at"] = utc_timestamp(now)

    if not values:
        return obj

    values["updated_at"] = utc_timestamp(now)
    updated = (
        db.query(DBAppointments)
        .filter(DBAppointments.id == obj.id, DBAppointments.status == previous)
        .update(values, synchronize_session=False)
    )
    if not updated:
        db.rollback()
        logger.warning(f"Appointment {obj.id} changed concurrently, status update rejected")
        raise ConflictError("status_changed", "The appointment was modified meanwhile, please reload it")

    db.commit()
    db.refresh(obj)

    if status is not None:
        logger.info(f"Appointment {obj.id}: {previous} -> {obj.status} by {actor} (user={caller.user_id})")
        emit_event("appointment_updated", {**_appointment_payload(obj), "previous_status": previous})
    return obj
