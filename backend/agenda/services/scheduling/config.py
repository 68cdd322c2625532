# backend/agenda/services/scheduling/config.py
"""
Booking policy and time helpers for slot calculation.

All slot arithmetic is done in integer minutes since midnight, in the agent's
local civil time. Conversion to absolute instants only happens at the edges
(today's date, slot expiry), through the agent's IANA timezone.
"""

import re
from dataclasses import dataclass
from datetime import date, datetime, time
from functools import lru_cache
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from .errors import ScheduleValidationError

TIME_PATTERN = re.compile(r"^([01]?[0-9]|2[0-3]):([0-5][0-9])$")
MINUTES_PER_DAY = 24 * 60

DURATION_BOUNDS = (15, 480)
BUFFER_BOUNDS = (0, 60)
MAX_PER_DAY_BOUNDS = (1, 20)
ADVANCE_DAYS_BOUNDS = (1, 365)


def time_str_to_minutes(value: str) -> int:
    """Convert "HH:MM" (24h, leading zero optional) to minutes since midnight."""
    match = TIME_PATTERN.match(value or "")
    if not match:
        raise ScheduleValidationError("invalid_time", f"Time must be in HH:MM format, got {value!r}")
    return int(match.group(1)) * 60 + int(match.group(2))


def minutes_to_time_str(minutes: int) -> str:
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def normalize_time_str(value: str) -> str:
    """"9:05" -> "09:05"."""
    return minutes_to_time_str(time_str_to_minutes(value))


def check_bounds(name: str, value: int, bounds: tuple[int, int]) -> int:
    low, high = bounds
    if isinstance(value, bool) or not isinstance(value, int) or not low <= value <= high:
        raise ScheduleValidationError(
            "out_of_bounds",
            f"{name} must be an integer between {low} and {high}, got {value!r}",
        )
    return value


def get_zone(tz_name: str) -> ZoneInfo:
    try:
        return ZoneInfo(tz_name)
    except (ZoneInfoNotFoundError, ValueError):
        raise ScheduleValidationError("invalid_timezone", f"Unknown timezone {tz_name!r}") from None


def local_today(tz_name: str, now: datetime) -> date:
    """Calendar date of `now` (aware) in the given timezone."""
    return now.astimezone(get_zone(tz_name)).date()


def slot_timestamp(target_date: date, minutes: int, tz_name: str) -> float:
    """Unix timestamp of a local wall-clock minute on target_date."""
    local = datetime.combine(
        target_date,
        time(minutes // 60, minutes % 60),
        tzinfo=get_zone(tz_name),
    )
    return local.timestamp()


@dataclass(frozen=True)
class AvailabilityPolicy:
    """
    Per-agent booking policy.

    Attributes:
        default_duration: Slot length in minutes when the client does not pick one (15..480)
        buffer_time: Minimum gap between two appointments, in minutes (0..60)
        max_appointments_per_day: Pending + confirmed cap per day (1..20)
        advance_booking_days: How far ahead clients may book, in days (1..365)
    """
    default_duration: int = 60
    buffer_time: int = 15
    max_appointments_per_day: int = 8
    advance_booking_days: int = 60

    def __post_init__(self):
        check_bounds("default_duration", self.default_duration, DURATION_BOUNDS)
        check_bounds("buffer_time", self.buffer_time, BUFFER_BOUNDS)
        check_bounds("max_appointments_per_day", self.max_appointments_per_day, MAX_PER_DAY_BOUNDS)
        check_bounds("advance_booking_days", self.advance_booking_days, ADVANCE_DAYS_BOUNDS)


@lru_cache
def get_default_policy() -> AvailabilityPolicy:
    """Policy applied to newly provisioned agents."""
    return AvailabilityPolicy()


# Monday..Friday 09:00-18:00, weekend off. Keys: 0 = Sunday.
DEFAULT_WEEKLY_SCHEDULE: dict[int, list[tuple[str, str]]] = {
    0: [],
    1: [("09:00", "18:00")],
    2: [("09:00", "18:00")],
    3: [("09:00", "18:00")],
    4: [("09:00", "18:00")],
    5: [("09:00", "18:00")],
    6: [],
}
