"""
Appointment reminder checker.

Periodically checks for upcoming confirmed appointments and emits
appointment_reminder events so both parties are notified beforehand.

The reminder lead time is global (REMIND_BEFORE_MINUTES, 0 = disabled).
Appointment times are agent-local wall-clock times, converted through the
agent's timezone.

Runs as an asyncio task in backend lifespan.
Uses synchronous DB and Redis (via asyncio.to_thread).
"""

import asyncio
import logging
from datetime import date, datetime, timedelta, timezone

from redis import Redis
from sqlalchemy.orm import Session

from ..config import settings
from ..database import SessionLocal
from ..models.generated import AgentAvailability, Appointments
from ..redis_client import redis_client
from .events import emit_event
from .scheduling.config import slot_timestamp, time_str_to_minutes
from .scheduling.lifecycle import CONFIRMED

logger = logging.getLogger(__name__)

CHECK_INTERVAL = 60  # seconds between checks
SENT_KEY_TTL = 86400  # 24 hours, reminder is sent once per appointment


async def reminder_checker_loop() -> None:
    """
    Periodic loop that checks for appointments needing a reminder.

    For each confirmed appointment where start - remind_before <= now < start:
    - Emit appointment_reminder event to events:p2p
    - Mark as sent in Redis to avoid duplicates
    """
    logger.info("reminder_checker_loop started")

    try:
        while True:
            try:
                await asyncio.to_thread(_run_check)
            except asyncio.CancelledError:
                logger.info("reminder_checker_loop cancelled")
                raise
            except Exception:
                logger.exception("reminder_checker_loop error")

            await asyncio.sleep(CHECK_INTERVAL)
    except asyncio.CancelledError:
        pass


def _run_check() -> None:
    db = SessionLocal()
    try:
        check_upcoming_appointments(db, redis_client)
    finally:
        db.close()


def check_upcoming_appointments(
    db: Session,
    redis: Redis,
    now: datetime | None = None,
    remind_before: int | None = None,
) -> list[int]:
    """Emit due reminders. Returns the ids that were reminded on this pass."""
    remind_before = settings.remind_before_minutes if remind_before is None else remind_before
    if remind_before <= 0:
        return []

    now = now or datetime.now(timezone.utc)
    # Agent-local dates can lag UTC by a day
    earliest = (now - timedelta(days=1)).date().isoformat()

    rows = (
        db.query(Appointments, AgentAvailability.timezone)
        .outerjoin(AgentAvailability, AgentAvailability.agent_id == Appointments.agent_id)
        .filter(
            Appointments.status == CONFIRMED,
            # Prefilter, the exact window is checked per appointment
            Appointments.scheduled_date >= earliest,
        )
        .all()
    )

    reminded = []
    for appointment, tz_name in rows:
        try:
            if _process_single_appointment(appointment, tz_name or settings.timezone, remind_before, now, redis):
                reminded.append(appointment.id)
        except Exception:
            logger.exception(
                f"Error processing appointment {appointment.id} for reminder"
            )
    return reminded


def _process_single_appointment(
    appointment, tz_name: str, remind_before: int, now: datetime, redis: Redis
) -> bool:
    """Check a single appointment and emit reminder if within the reminder window."""
    appointment_id = appointment.id

    # Check if already sent
    sent_key = f"apptremind:sent:{appointment_id}"
    if redis.exists(sent_key):
        return False

    start_ts = slot_timestamp(
        date.fromisoformat(appointment.scheduled_date),
        time_str_to_minutes(appointment.scheduled_time),
        tz_name,
    )
    now_ts = now.timestamp()

    # Reminder window: start - remind_before <= now < start
    if now_ts < start_ts - remind_before * 60 or now_ts >= start_ts:
        return False

    # Emit event and mark as sent
    emit_event("appointment_reminder", {
        "appointment_id": appointment_id,
        "agent_id": appointment.agent_id,
        "client_id": appointment.client_id,
    })
    redis.setex(sent_key, SENT_KEY_TTL, "1")

    logger.info(
        f"appointment_reminder emitted for appointment={appointment_id} "
        f"(starts at {appointment.scheduled_time}, "
        f"reminded {remind_before} min before)"
    )
    return True
