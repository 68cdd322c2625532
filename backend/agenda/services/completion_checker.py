"""
Appointment completion checker.

Periodically checks for appointments whose time slot has ended
(start + duration <= now) and emits appointment_done events, prompting the
agent to mark them completed. Status is never changed here.

Runs as an asyncio task in backend lifespan.
Uses synchronous DB and Redis (via asyncio.to_thread).
"""

import asyncio
import logging
from datetime import date, datetime, timezone

from redis import Redis
from sqlalchemy.orm import Session

from ..config import settings
from ..database import SessionLocal
from ..models.generated import AgentAvailability, Appointments
from ..redis_client import redis_client
from .events import emit_event
from .scheduling.config import slot_timestamp, time_str_to_minutes
from .scheduling.lifecycle import ACTIVE_STATUSES

logger = logging.getLogger(__name__)

CHECK_INTERVAL = 60  # seconds between checks
SENT_KEY_TTL = 900  # 15 minutes, re-send until the agent closes it


async def completion_checker_loop() -> None:
    """
    Periodic loop that checks for appointments needing completion.

    For each appointment where start + duration <= now
    and status is still active (pending/confirmed):
    - Emit appointment_done event to events:p2p
    - Mark as sent in Redis to avoid duplicates
    """
    logger.info("completion_checker_loop started")

    try:
        while True:
            try:
                await asyncio.to_thread(_run_check)
            except asyncio.CancelledError:
                logger.info("completion_checker_loop cancelled")
                raise
            except Exception:
                logger.exception("completion_checker_loop error")

            await asyncio.sleep(CHECK_INTERVAL)
    except asyncio.CancelledError:
        pass


def _run_check() -> None:
    db = SessionLocal()
    try:
        check_completed_appointments(db, redis_client)
    finally:
        db.close()


def check_completed_appointments(
    db: Session,
    redis: Redis,
    now: datetime | None = None,
) -> list[int]:
    """Emit appointment_done for ended live appointments. Returns the notified ids."""
    now = now or datetime.now(timezone.utc)

    rows = (
        db.query(Appointments, AgentAvailability.timezone)
        .outerjoin(AgentAvailability, AgentAvailability.agent_id == Appointments.agent_id)
        .filter(Appointments.status.in_(ACTIVE_STATUSES))
        .all()
    )

    notified = []
    for appointment, tz_name in rows:
        try:
            if _process_single_appointment(appointment, tz_name or settings.timezone, now, redis):
                notified.append(appointment.id)
        except Exception:
            logger.exception(
                f"Error processing appointment {appointment.id} for completion"
            )
    return notified


def _process_single_appointment(appointment, tz_name: str, now: datetime, redis: Redis) -> bool:
    """Check a single appointment and emit event if its time slot has ended."""
    appointment_id = appointment.id

    # Check if already sent
    sent_key = f"apptdone:sent:{appointment_id}"
    if redis.exists(sent_key):
        return False

    start = time_str_to_minutes(appointment.scheduled_time)
    end_ts = slot_timestamp(
        date.fromisoformat(appointment.scheduled_date), start, tz_name
    ) + appointment.duration * 60

    if end_ts > now.timestamp():
        return False

    # Emit event and mark as sent
    emit_event("appointment_done", {
        "appointment_id": appointment_id,
        "agent_id": appointment.agent_id,
    })
    redis.setex(sent_key, SENT_KEY_TTL, "1")

    logger.info(
        f"appointment_done emitted for appointment={appointment_id} "
        f"(ended {appointment.scheduled_date} {appointment.scheduled_time} "
        f"+ {appointment.duration} min)"
    )
    return True
