# backend/agenda/services/scheduling/store.py
"""
Persistence for availability settings and live appointments.

Settings are read fresh on every request and turned into an immutable
AvailabilityConfig; nothing here is cached in process memory.
"""

import logging
from datetime import date, datetime, timezone
from typing import Iterable, Optional

from sqlalchemy.orm import Session

from ...config import settings
from ...models.generated import (
    AgentAvailability as DBAgentAvailability,
    Appointments as DBAppointments,
    DateOverrides as DBDateOverrides,
)
from .config import AvailabilityPolicy, get_default_policy, get_zone
from .errors import NotFoundError
from .lifecycle import ACTIVE_STATUSES
from .rules import (
    AvailabilityConfig,
    DateOverride,
    WeeklyDayRule,
    default_weekly_schedule,
    dump_override_slots,
    dump_weekly_schedule,
    parse_override_slots,
    parse_weekly_schedule,
)

logger = logging.getLogger(__name__)


def utc_timestamp(now: datetime | None = None) -> str:
    """Same shape as SQLite CURRENT_TIMESTAMP."""
    now = now or datetime.now(timezone.utc)
    return now.astimezone(timezone.utc).strftime("%Y-%m-%d %H:%M:%S")


# ── Availability settings ───────────────────────────────────────────────


def get_availability_row(db: Session, agent_id: int) -> Optional[DBAgentAvailability]:
    return (
        db.query(DBAgentAvailability)
        .filter(DBAgentAvailability.agent_id == agent_id)
        .first()
    )


def require_availability_row(db: Session, agent_id: int) -> DBAgentAvailability:
    row = get_availability_row(db, agent_id)
    if row is None:
        raise NotFoundError("agent_not_found", f"Agent {agent_id} has no availability configured")
    return row


def config_from_row(row: DBAgentAvailability) -> AvailabilityConfig:
    policy = AvailabilityPolicy(
        default_duration=row.default_duration,
        buffer_time=row.buffer_time,
        max_appointments_per_day=row.max_appointments_per_day,
        advance_booking_days=row.advance_booking_days,
    )
    overrides = {}
    for ovr in row.date_overrides:
        override_date = date.fromisoformat(ovr.date)
        overrides[override_date] = DateOverride(
            date=override_date,
            is_available=bool(ovr.is_available),
            slots=parse_override_slots(ovr.slots),
            reason=ovr.reason,
        )

    return AvailabilityConfig(
        agent_id=row.agent_id,
        timezone=row.timezone or settings.timezone,
        policy=policy,
        weekly=parse_weekly_schedule(row.weekly_schedule),
        overrides=overrides,
    )


def load_availability_config(db: Session, agent_id: int) -> AvailabilityConfig:
    return config_from_row(require_availability_row(db, agent_id))


def ensure_agent_availability(db: Session, agent_id: int) -> DBAgentAvailability:
    """Provision default availability for an agent (Mon-Fri 09:00-18:00)."""
    row = get_availability_row(db, agent_id)
    if row is not None:
        return row

    policy = get_default_policy()
    row = DBAgentAvailability(
        agent_id=agent_id,
        weekly_schedule=dump_weekly_schedule(default_weekly_schedule()),
        default_duration=policy.default_duration,
        buffer_time=policy.buffer_time,
        max_appointments_per_day=policy.max_appointments_per_day,
        advance_booking_days=policy.advance_booking_days,
        timezone=settings.timezone,
    )
    db.add(row)
    db.flush()

    logger.info(f"Provisioned default availability for agent={agent_id}")
    return row


def save_availability_settings(
    db: Session,
    agent_id: int,
    weekly_rules: Optional[Iterable[WeeklyDayRule]] = None,
    date_overrides: Optional[Iterable[DateOverride]] = None,
    policy_updates: Optional[dict] = None,
    tz_name: Optional[str] = None,
) -> DBAgentAvailability:
    """
    Upsert an agent's settings.

    - weekly_rules: listed days replace the stored ones, other days are kept
    - date_overrides: replace the whole override set
    - policy_updates: partial, validated together with the stored values

    Does not commit.
    """
    row = ensure_agent_availability(db, agent_id)
    current = config_from_row(row)

    if weekly_rules is not None:
        weekly = dict(current.weekly)
        for rule in weekly_rules:
            weekly[rule.day_of_week] = rule
        row.weekly_schedule = dump_weekly_schedule(weekly)

    if policy_updates:
        fields = {
            "default_duration": current.policy.default_duration,
            "buffer_time": current.policy.buffer_time,
            "max_appointments_per_day": current.policy.max_appointments_per_day,
            "advance_booking_days": current.policy.advance_booking_days,
        }
        fields.update({k: v for k, v in policy_updates.items() if v is not None})
        policy = AvailabilityPolicy(**fields)
        row.default_duration = policy.default_duration
        row.buffer_time = policy.buffer_time
        row.max_appointments_per_day = policy.max_appointments_per_day
        row.advance_booking_days = policy.advance_booking_days

    if tz_name is not None:
        get_zone(tz_name)
        row.timezone = tz_name

    if date_overrides is not None:
        row.date_overrides.clear()
        db.flush()
        for ovr in date_overrides:
            row.date_overrides.append(DBDateOverrides(
                date=ovr.date.isoformat(),
                is_available=1 if ovr.is_available else 0,
                slots=dump_override_slots(ovr.slots),
                reason=ovr.reason,
            ))

    row.updated_at = utc_timestamp()
    db.flush()
    return row


# ── Appointments ────────────────────────────────────────────────────────


def list_active_appointments(
    db: Session,
    agent_id: int,
    date_from: date,
    date_to: Optional[date] = None,
    exclude_id: Optional[int] = None,
) -> list[DBAppointments]:
    """Pending/confirmed appointments of an agent on [date_from, date_to]."""
    date_to = date_to or date_from
    query = db.query(DBAppointments).filter(
        DBAppointments.agent_id == agent_id,
        DBAppointments.scheduled_date >= date_from.isoformat(),
        DBAppointments.scheduled_date <= date_to.isoformat(),
        DBAppointments.status.in_(ACTIVE_STATUSES),
    )
    if exclude_id is not None:
        query = query.filter(DBAppointments.id != exclude_id)

    return query.order_by(DBAppointments.scheduled_date, DBAppointments.scheduled_time).all()


def get_appointment_row(db: Session, appointment_id: int) -> DBAppointments:
    obj = db.get(DBAppointments, appointment_id)
    if not obj:
        raise NotFoundError("appointment_not_found", f"Appointment {appointment_id} not found")
    return obj


def find_by_idempotency_key(db: Session, key: str) -> Optional[DBAppointments]:
    return (
        db.query(DBAppointments)
        .filter(DBAppointments.idempotency_key == key)
        .first()
    )
