# backend/agenda/routers/availability.py
"""
Availability API endpoints.

GET  /availability/{agent_id}/slots      - Free slots over a date range
GET  /availability/{agent_id}/day        - Free slots for one date, with reason when blocked
GET  /availability/{agent_id}/settings   - Weekly schedule, overrides, policy
PUT  /availability/{agent_id}/settings   - Update settings (the agent or an admin)
POST /availability/{agent_id}/invalidate - Drop cached slot lists (admin)
"""

import logging
from datetime import date, datetime, timedelta, timezone

from fastapi import APIRouter, Depends, Query
from redis.exceptions import RedisError
from sqlalchemy.orm import Session

from ..database import get_db, read_with_retry
from ..config import settings
from ..dependencies import get_cache_redis, get_caller, require_admin
from ..models.generated import AgentAvailability as DBAgentAvailability
from ..redis_client import redis_client
from ..schemas.availability import (
    AvailabilitySettingsRead,
    AvailabilitySettingsUpdate,
    AvailabilitySlotsResponse,
    DateOverrideRead,
    DaySlotsResponse,
    InvalidateResponse,
    SlotRead,
    TimeRangeSchema,
    WeeklyDayRead,
)
from ..services.scheduling import (
    Caller,
    ForbiddenError,
    calculate_agent_availability,
    get_day_slots,
    invalidate_agent_cache,
)
from ..services.scheduling.config import local_today
from ..services.scheduling.store import (
    config_from_row,
    load_availability_config,
    require_availability_row,
    save_availability_settings,
)
from ..utils.weekdays import weekday_label

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/availability", tags=["availability"])

DAY_MESSAGES = {
    "past_date": "This date is in the past",
    "date_override": "The agent is not available on this date",
    "weekly_rule": "The agent does not work on this day",
    "out_of_window": "This date is beyond the booking window",
}


def _ranges(ranges) -> list[TimeRangeSchema]:
    return [TimeRangeSchema(start_time=r.start_time, end_time=r.end_time) for r in ranges]


def _settings_response(row: DBAgentAvailability) -> AvailabilitySettingsRead:
    config = config_from_row(row)
    return AvailabilitySettingsRead(
        agent_id=config.agent_id,
        timezone=config.timezone,
        weekly_schedule=[
            WeeklyDayRead(
                day_of_week=day,
                label=weekday_label(day),
                is_available=rule.is_available,
                slots=_ranges(rule.slots),
            )
            for day, rule in sorted(config.weekly.items())
        ],
        date_overrides=[
            DateOverrideRead(
                date=ovr.date,
                is_available=ovr.is_available,
                slots=_ranges(ovr.slots) if ovr.slots is not None else None,
                reason=ovr.reason,
            )
            for ovr in sorted(config.overrides.values(), key=lambda o: o.date)
        ],
        default_duration=config.policy.default_duration,
        buffer_time=config.policy.buffer_time,
        max_appointments_per_day=config.policy.max_appointments_per_day,
        advance_booking_days=config.policy.advance_booking_days,
        updated_at=row.updated_at,
    )


@router.get("/{agent_id}/slots", response_model=AvailabilitySlotsResponse)
def get_availability_slots(
    agent_id: int,
    date_from: date | None = None,
    date_to: date | None = None,
    duration: int | None = Query(None, ge=15, le=480),
    db: Session = Depends(get_db),
    redis=Depends(get_cache_redis),
):
    """Free slots per date. Defaults to today .. today + advance_booking_days."""
    now = datetime.now(timezone.utc)
    config = read_with_retry(db, load_availability_config, agent_id)

    today = local_today(config.timezone, now)
    if date_from is None:
        date_from = today
    if date_to is None:
        date_to = max(date_from, today) + timedelta(days=config.policy.advance_booking_days)

    days = read_with_retry(
        db, calculate_agent_availability, config, date_from, date_to,
        duration=duration, now=now, redis=redis, cache_ttl=settings.slots_cache_ttl_seconds,
    )

    return AvailabilitySlotsResponse(
        agent_id=agent_id,
        timezone=config.timezone,
        date_from=date_from,
        date_to=date_to,
        duration=duration or config.policy.default_duration,
        slots={
            dt: [SlotRead.model_validate(slot) for slot in day.slots]
            for dt, day in days.items()
        },
    )


@router.get("/{agent_id}/day", response_model=DaySlotsResponse)
def get_availability_day(
    agent_id: int,
    target_date: date = Query(..., alias="date"),
    duration: int | None = Query(None, ge=15, le=480),
    db: Session = Depends(get_db),
    redis=Depends(get_cache_redis),
):
    """Free slots for one date (Level 2), with a message when the agent is unavailable."""
    now = datetime.now(timezone.utc)
    config = read_with_retry(db, load_availability_config, agent_id)
    day = read_with_retry(
        db, get_day_slots, config, target_date,
        duration=duration, now=now, redis=redis, cache_ttl=settings.slots_cache_ttl_seconds,
    )

    message = None
    if day.blocked_reason:
        message = DAY_MESSAGES.get(day.blocked_reason)
    elif day.is_full:
        message = "The agent is fully booked on this date"
    elif not day.slots:
        message = "No free slot left on this date"

    return DaySlotsResponse(
        agent_id=agent_id,
        date=target_date,
        duration=day.duration,
        is_available=day.is_available,
        blocked_reason=day.blocked_reason,
        message=message,
        slots=[SlotRead.model_validate(slot) for slot in day.slots],
    )


@router.get("/{agent_id}/settings", response_model=AvailabilitySettingsRead)
def get_availability_settings(agent_id: int, db: Session = Depends(get_db)):
    row = read_with_retry(db, require_availability_row, agent_id)
    return _settings_response(row)


@router.put("/{agent_id}/settings", response_model=AvailabilitySettingsRead)
def update_availability_settings(
    agent_id: int,
    data: AvailabilitySettingsUpdate,
    db: Session = Depends(get_db),
    caller: Caller = Depends(get_caller),
):
    """Create or update an agent's availability. Unknown agents get the defaults first."""
    if not caller.is_admin and not (caller.role == "agent" and caller.user_id == agent_id):
        raise ForbiddenError("forbidden", "Only the agent or an admin can edit this availability")

    row = save_availability_settings(
        db,
        agent_id,
        weekly_rules=data.weekly_rules(),
        date_overrides=data.overrides(),
        policy_updates=data.policy_updates(),
        tz_name=data.timezone,
    )
    db.commit()
    db.refresh(row)

    logger.info(f"Availability settings updated for agent={agent_id} by user={caller.user_id}")

    if settings.slots_cache_enabled:
        try:
            invalidate_agent_cache(redis_client, agent_id)
        except RedisError as e:
            # Keys expire on their own after slots_cache_ttl_seconds
            logger.warning(f"Slots cache invalidation failed for agent={agent_id}: {e}")

    return _settings_response(row)


@router.post("/{agent_id}/invalidate", response_model=InvalidateResponse)
def invalidate_slots_cache(
    agent_id: int,
    dates: list[date] | None = Query(None),
    _: Caller = Depends(require_admin),
):
    """Manually invalidate slots cache for an agent (admin endpoint)."""
    deleted = invalidate_agent_cache(redis_client, agent_id, dates)

    return InvalidateResponse(
        agent_id=agent_id,
        deleted_keys=deleted,
        dates=dates if dates else "all",
    )
