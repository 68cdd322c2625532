# backend/agenda/services/scheduling/invalidator.py
"""
Cache invalidation for agent slots.

Triggers:
✓ Weekly schedule or policy changed -> invalidate all dates
✓ Date overrides replaced -> invalidate all dates

Does NOT trigger:
✗ Appointment created/cancelled/rescheduled (conflicts are computed on the fly)
"""

from datetime import date, timedelta

from redis import Redis

from .redis_store import SlotsRedisStore


def invalidate_agent_cache(
    redis: Redis,
    agent_id: int,
    dates: list[date] | None = None,
) -> int:
    """
    Invalidate cached slots for an agent.

    Returns:
        Number of deleted cache keys
    """
    store = SlotsRedisStore(redis)
    return store.delete_agent_slots(agent_id, dates)


def get_affected_dates(
    date_start: date,
    date_end: date,
) -> list[date]:
    """
    Get list of dates in range [date_start, date_end].

    Also used to expand a ranged override ("vacation from X to Y") into one
    override per date.
    """
    if date_start > date_end:
        date_start, date_end = date_end, date_start

    dates = []
    current = date_start
    while current <= date_end:
        dates.append(current)
        current += timedelta(days=1)

    return dates
