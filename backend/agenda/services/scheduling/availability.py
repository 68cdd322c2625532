# backend/agenda/services/scheduling/availability.py
"""
Agent availability calculation.

Level 1: generated slots (resolver + generator), cacheable in Redis
Level 2: free slots = Level 1 minus conflicts with live appointments,
         always computed on the fly from the database

`ensure_slot_bookable` is the authoritative commit-time check used by the
booking service; it never reads the cache.
"""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from typing import Optional

from redis import Redis
from redis.exceptions import RedisError
from sqlalchemy.orm import Session

from .config import DURATION_BOUNDS, check_bounds, local_today, slot_timestamp, time_str_to_minutes
from .conflicts import booked_intervals, filter_available, is_day_full
from .errors import ConflictError, PolicyError, ScheduleValidationError
from .generator import Slot, generate_slots
from .redis_store import SlotsRedisStore
from .resolver import DayAvailability, resolve_day
from .rules import AvailabilityConfig
from .store import list_active_appointments

logger = logging.getLogger(__name__)

MAX_RANGE_DAYS = 366


@dataclass
class DaySlots:
    date: date
    duration: int
    slots: list[Slot] = field(default_factory=list)
    blocked_reason: Optional[str] = None
    is_full: bool = False

    @property
    def is_available(self) -> bool:
        return self.blocked_reason is None and not self.is_full and bool(self.slots)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ── Level 1 ─────────────────────────────────────────────────────────────


def calculate_day_slots(
    config: AvailabilityConfig,
    day: DayAvailability,
    duration: int,
) -> list[tuple[str, float]]:
    """
    Generate slots for a resolved day.

    Returns:
        List of (time_str, start_ts) pairs. Empty list = no slots.
    """
    if not day.is_available:
        return []

    return [
        (slot.time, slot_timestamp(day.date, slot.start, config.timezone))
        for slot in generate_slots(day.windows, duration, config.policy.buffer_time)
    ]


def _get_base_slots(
    config: AvailabilityConfig,
    day: DayAvailability,
    duration: int,
    now: datetime,
    redis: Redis | None,
    cache_ttl: int,
) -> list[Slot]:
    """Generated slots that have not started yet, through the cache when available."""
    times: list[str] | None = None
    store = SlotsRedisStore(redis, cache_ttl) if redis is not None else None

    if store is not None:
        try:
            times = store.get_available_slots(config.agent_id, day.date, duration, now)
        except RedisError as e:
            logger.warning(f"Slots cache read failed for agent={config.agent_id}: {e}")
            store = None

    if times is None:
        slots = calculate_day_slots(config, day, duration)
        if store is not None:
            try:
                store.store_day_slots(config.agent_id, day.date, duration, slots)
            except RedisError as e:
                logger.warning(f"Slots cache write failed for agent={config.agent_id}: {e}")
        now_ts = now.timestamp()
        times = [time_str for time_str, start_ts in slots if start_ts > now_ts]

    result = []
    for time_str in times:
        start = time_str_to_minutes(time_str)
        result.append(Slot(start, start + duration))
    return result


# ── Level 2 ─────────────────────────────────────────────────────────────


def filter_agent_slots(
    db: Session,
    config: AvailabilityConfig,
    target_date: date,
    candidates: list[Slot],
    exclude_appointment_id: Optional[int] = None,
) -> list[Slot]:
    """Drop candidates that clash with the agent's live appointments on that date."""
    booked = booked_intervals(
        list_active_appointments(db, config.agent_id, target_date, exclude_id=exclude_appointment_id)
    )
    return filter_available(
        candidates, booked, config.policy.buffer_time, config.policy.max_appointments_per_day
    )


def resolve_duration(config: AvailabilityConfig, duration: Optional[int]) -> int:
    if duration is None:
        return config.policy.default_duration
    return check_bounds("duration", duration, DURATION_BOUNDS)


def calculate_agent_availability(
    db: Session,
    config: AvailabilityConfig,
    date_from: date,
    date_to: date,
    duration: Optional[int] = None,
    now: Optional[datetime] = None,
    redis: Redis | None = None,
    cache_ttl: int = 300,
) -> dict[date, DaySlots]:
    """
    Free slots per date on [date_from, date_to].

    The range is clamped to [today, today + advance_booking_days]; dates outside
    of it are not returned. Blocked or full days map to an empty slot list.
    """
    if date_to < date_from:
        raise ScheduleValidationError("invalid_date_range", "date_to must not be before date_from")

    now = now or _utcnow()
    duration = resolve_duration(config, duration)
    today = local_today(config.timezone, now)
    horizon = today + timedelta(days=config.policy.advance_booking_days)

    # Past dates are dropped before the span is measured
    start = max(date_from, today)
    if (date_to - start).days >= MAX_RANGE_DAYS:
        raise ScheduleValidationError(
            "invalid_date_range", f"Date range cannot exceed {MAX_RANGE_DAYS} days"
        )
    end = min(date_to, horizon)
    if end < start:
        return {}

    # One query for the whole range, grouped per date
    booked_by_date: dict[date, list[Slot]] = {}
    for appointment in list_active_appointments(db, config.agent_id, start, end):
        booked_by_date.setdefault(date.fromisoformat(appointment.scheduled_date), []).append(
            booked_intervals([appointment])[0]
        )

    days: dict[date, DaySlots] = {}
    current = start
    while current <= end:
        days[current] = _build_day(config, current, today, duration, now, redis, cache_ttl,
                                   booked_by_date.get(current, []))
        current += timedelta(days=1)

    return days


def get_day_slots(
    db: Session,
    config: AvailabilityConfig,
    target_date: date,
    duration: Optional[int] = None,
    now: Optional[datetime] = None,
    redis: Redis | None = None,
    cache_ttl: int = 300,
) -> DaySlots:
    """Free slots for a single date, with the reason when the agent is unavailable."""
    now = now or _utcnow()
    duration = resolve_duration(config, duration)
    today = local_today(config.timezone, now)

    if target_date > today + timedelta(days=config.policy.advance_booking_days):
        return DaySlots(target_date, duration, blocked_reason="out_of_window")

    booked = booked_intervals(list_active_appointments(db, config.agent_id, target_date))
    return _build_day(config, target_date, today, duration, now, redis, cache_ttl, booked)


def _build_day(
    config: AvailabilityConfig,
    target_date: date,
    today: date,
    duration: int,
    now: datetime,
    redis: Redis | None,
    cache_ttl: int,
    booked: list[Slot],
) -> DaySlots:
    day = resolve_day(config, target_date, today)
    if not day.is_available:
        return DaySlots(target_date, duration, blocked_reason=day.blocked_reason)

    policy = config.policy
    if is_day_full(len(booked), policy.max_appointments_per_day):
        return DaySlots(target_date, duration, is_full=True)

    candidates = _get_base_slots(config, day, duration, now, redis, cache_ttl)
    free = filter_available(candidates, booked, policy.buffer_time, policy.max_appointments_per_day)
    return DaySlots(target_date, duration, slots=free)


# ── Commit-time check ───────────────────────────────────────────────────


def ensure_slot_bookable(
    db: Session,
    config: AvailabilityConfig,
    target_date: date,
    scheduled_time: str,
    duration: int,
    now: datetime,
    exclude_appointment_id: Optional[int] = None,
) -> Slot:
    """
    Authoritative re-check of one slot against the database.

    Must run under the agent booking lock, right before the insert/update.

    Raises:
        PolicyError(max_per_day_reached): the day already holds the cap
        ConflictError(slot_unavailable): the time is not a free, future slot
    """
    today = local_today(config.timezone, now)
    day = resolve_day(config, target_date, today)
    if not day.is_available:
        raise ConflictError()

    booked_rows = list_active_appointments(db, config.agent_id, target_date, exclude_id=exclude_appointment_id)
    if is_day_full(len(booked_rows), config.policy.max_appointments_per_day):
        raise PolicyError(
            "max_per_day_reached",
            f"The agent accepts at most {config.policy.max_appointments_per_day} appointments per day",
        )

    candidates = generate_slots(day.windows, duration, config.policy.buffer_time)
    free = filter_available(
        candidates,
        booked_intervals(booked_rows),
        config.policy.buffer_time,
        config.policy.max_appointments_per_day,
    )

    start = time_str_to_minutes(scheduled_time)
    now_ts = now.timestamp()
    for slot in free:
        if slot.start == start and slot_timestamp(target_date, slot.start, config.timezone) > now_ts:
            return slot

    raise ConflictError()
