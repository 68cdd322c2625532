# backend/agenda/services/scheduling/__init__.py
"""
Appointment scheduling module.

Level 1: generated slots per agent and day (cached in Redis Sorted Sets)
Level 2: free slots after conflicts with live appointments (on the fly)
Booking: locked re-check + insert, lifecycle transitions
"""

from .config import AvailabilityPolicy, get_default_policy
from .errors import (
    ConflictError,
    ForbiddenError,
    NotFoundError,
    PolicyError,
    ScheduleValidationError,
    SchedulingError,
)
from .rules import AvailabilityConfig, DateOverride, TimeRange, WeeklyDayRule
from .resolver import DayAvailability, resolve_day
from .generator import Slot, generate_slots
from .conflicts import filter_available
from .redis_store import SlotsRedisStore
from .invalidator import get_affected_dates, invalidate_agent_cache
from .availability import (
    DaySlots,
    calculate_agent_availability,
    ensure_slot_bookable,
    filter_agent_slots,
    get_day_slots,
)
from .lifecycle import Caller
from .booking import book_appointment, reschedule_appointment, update_appointment_status

__all__ = [
    "AvailabilityPolicy",
    "get_default_policy",
    "SchedulingError",
    "ScheduleValidationError",
    "PolicyError",
    "ConflictError",
    "NotFoundError",
    "ForbiddenError",
    "AvailabilityConfig",
    "DateOverride",
    "TimeRange",
    "WeeklyDayRule",
    "DayAvailability",
    "resolve_day",
    "Slot",
    "generate_slots",
    "filter_available",
    "SlotsRedisStore",
    "get_affected_dates",
    "invalidate_agent_cache",
    "DaySlots",
    "calculate_agent_availability",
    "ensure_slot_bookable",
    "filter_agent_slots",
    "get_day_slots",
    "Caller",
    "book_appointment",
    "reschedule_appointment",
    "update_appointment_status",
]
