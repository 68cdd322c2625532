# backend/agenda/services/scheduling/queries.py
"""Read side for appointments, scoped to the caller."""

from datetime import date, datetime, timedelta, timezone
from typing import Optional

from sqlalchemy import func
from sqlalchemy.orm import Query, Session

from ...config import settings
from ...models.generated import (
    AgentAvailability as DBAgentAvailability,
    Appointments as DBAppointments,
)
from .config import local_today
from .lifecycle import ACTIVE_STATUSES, AGENT, STATUSES, Caller, require_actor
from .store import get_appointment_row

STATUS_ALL = "all"


def get_appointment_for_caller(db: Session, appointment_id: int, caller: Caller) -> DBAppointments:
    obj = get_appointment_row(db, appointment_id)
    require_actor(obj, caller)
    return obj


def _owner_criterion(caller: Caller):
    # Agents see their calendar, everyone else what they booked
    if caller.role == AGENT:
        return DBAppointments.agent_id == caller.user_id
    return DBAppointments.client_id == caller.user_id


def _own_appointments(db: Session, caller: Caller) -> Query:
    return db.query(DBAppointments).filter(_owner_criterion(caller))


def list_appointments(
    db: Session,
    caller: Caller,
    status: Optional[str] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
) -> list[DBAppointments]:
    query = _own_appointments(db, caller)

    if status and status != STATUS_ALL:
        query = query.filter(DBAppointments.status == status)
    if start_date is not None:
        query = query.filter(DBAppointments.scheduled_date >= start_date.isoformat())
    if end_date is not None:
        query = query.filter(DBAppointments.scheduled_date <= end_date.isoformat())

    return query.order_by(DBAppointments.scheduled_date, DBAppointments.scheduled_time).all()


def appointment_stats(db: Session, caller: Caller, now: Optional[datetime] = None) -> dict:
    """
    {"total", "upcoming", "by_status"} for the caller's side of the calendar.

    "upcoming" counts live appointments from today on, today being taken in
    each agent's own timezone.
    """
    now = now or datetime.now(timezone.utc)

    own = _own_appointments(db, caller).subquery()
    rows = (
        db.query(own.c.status, func.count())
        .group_by(own.c.status)
        .all()
    )
    by_status = {status: 0 for status in STATUSES}
    by_status.update({status: count for status, count in rows})

    # Prefilter one day early, every agent timezone is within a day of UTC
    earliest = (now.astimezone(timezone.utc).date() - timedelta(days=1)).isoformat()
    candidates = (
        db.query(DBAppointments.scheduled_date, DBAgentAvailability.timezone)
        .outerjoin(DBAgentAvailability, DBAgentAvailability.agent_id == DBAppointments.agent_id)
        .filter(
            _owner_criterion(caller),
            DBAppointments.status.in_(ACTIVE_STATUSES),
            DBAppointments.scheduled_date >= earliest,
        )
        .all()
    )
    today_by_zone: dict[str, str] = {}
    upcoming = 0
    for scheduled_date, tz_name in candidates:
        tz_name = tz_name or settings.timezone
        if tz_name not in today_by_zone:
            today_by_zone[tz_name] = local_today(tz_name, now).isoformat()
        if scheduled_date >= today_by_zone[tz_name]:
            upcoming += 1

    return {
        "total": sum(by_status.values()),
        "upcoming": upcoming,
        "by_status": by_status,
    }
