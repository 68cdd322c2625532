# backend/agenda/services/scheduling/rules.py
"""
Availability value objects: time ranges, weekly rules, date overrides.

Storage format (JSON text columns):
  weekly schedule: {"0": [], "1": [["09:00", "18:00"]], ...}
                   key = day of week, 0 = Sunday; empty list = day off
  override slots:  [["10:00", "14:00"], ...] or NULL (keep weekly slots)

Everything is validated on construction, so the resolver and the generator
can assume well-formed, sorted, non-overlapping ranges.
"""

import json
from dataclasses import dataclass, field
from datetime import date
from typing import Iterable, Optional

from .config import (
    DEFAULT_WEEKLY_SCHEDULE,
    MINUTES_PER_DAY,
    AvailabilityPolicy,
    minutes_to_time_str,
    time_str_to_minutes,
)
from .errors import ScheduleValidationError


@dataclass(frozen=True, order=True)
class TimeRange:
    """[start, end) in minutes since local midnight."""
    start: int
    end: int

    def __post_init__(self):
        if not 0 <= self.start < self.end <= MINUTES_PER_DAY:
            raise ScheduleValidationError(
                "invalid_range",
                f"Start time must be before end time, got "
                f"{minutes_to_time_str(self.start)}-{minutes_to_time_str(self.end)}",
            )

    @classmethod
    def from_strings(cls, start_time: str, end_time: str) -> "TimeRange":
        return cls(time_str_to_minutes(start_time), time_str_to_minutes(end_time))

    @property
    def start_time(self) -> str:
        return minutes_to_time_str(self.start)

    @property
    def end_time(self) -> str:
        return minutes_to_time_str(self.end)

    def as_pair(self) -> list[str]:
        return [self.start_time, self.end_time]


def validate_ranges(ranges: Iterable[TimeRange]) -> tuple[TimeRange, ...]:
    """Sort ranges and reject overlaps. Touching ranges (09-12, 12-14) are fine."""
    ordered = tuple(sorted(ranges))
    for previous, current in zip(ordered, ordered[1:]):
        if current.start < previous.end:
            raise ScheduleValidationError(
                "overlapping_ranges",
                f"Time ranges {previous.start_time}-{previous.end_time} and "
                f"{current.start_time}-{current.end_time} overlap",
            )
    return ordered


def parse_ranges(raw: Iterable) -> tuple[TimeRange, ...]:
    """Parse [["09:00", "12:00"], ...] (or dicts with start_time/end_time)."""
    ranges = []
    for item in raw:
        if isinstance(item, dict):
            start = item.get("start_time") or item.get("startTime")
            end = item.get("end_time") or item.get("endTime")
        elif isinstance(item, (list, tuple)) and len(item) == 2:
            start, end = item
        else:
            raise ScheduleValidationError("invalid_range", f"Malformed time range: {item!r}")
        ranges.append(TimeRange.from_strings(start, end))
    return validate_ranges(ranges)


@dataclass(frozen=True)
class WeeklyDayRule:
    day_of_week: int  # 0 = Sunday .. 6 = Saturday
    is_available: bool
    slots: tuple[TimeRange, ...] = ()

    def __post_init__(self):
        if not 0 <= self.day_of_week <= 6:
            raise ScheduleValidationError("invalid_day", f"day_of_week must be 0..6, got {self.day_of_week}")
        if self.is_available and not self.slots:
            raise ScheduleValidationError(
                "missing_slots",
                f"Day {self.day_of_week} is marked available but has no time ranges",
            )
        if not self.is_available and self.slots:
            raise ScheduleValidationError(
                "unexpected_slots",
                f"Day {self.day_of_week} is marked unavailable but has time ranges",
            )
        object.__setattr__(self, "slots", validate_ranges(self.slots))


@dataclass(frozen=True)
class DateOverride:
    date: date
    is_available: bool
    slots: Optional[tuple[TimeRange, ...]] = None
    reason: Optional[str] = None

    def __post_init__(self):
        if self.slots is not None:
            object.__setattr__(self, "slots", validate_ranges(self.slots))

    @property
    def replaces_slots(self) -> bool:
        # Empty list counts as "no replacement": fall back to the weekly slots
        return self.is_available and bool(self.slots)


@dataclass(frozen=True)
class AvailabilityConfig:
    """Everything needed to compute an agent's free slots, loaded fresh per request."""
    agent_id: int
    timezone: str
    policy: AvailabilityPolicy
    weekly: dict[int, WeeklyDayRule]
    overrides: dict[date, DateOverride] = field(default_factory=dict)

    def rule_for(self, day_of_week: int) -> WeeklyDayRule:
        return self.weekly.get(day_of_week) or WeeklyDayRule(day_of_week, False)


# ── JSON (de)serialization ──────────────────────────────────────────────


def parse_weekly_schedule(raw: str | dict | None) -> dict[int, WeeklyDayRule]:
    """Parse the stored weekly schedule. Missing days are days off."""
    if isinstance(raw, str):
        try:
            schedule = json.loads(raw) if raw else {}
        except json.JSONDecodeError:
            raise ScheduleValidationError("invalid_schedule", "Weekly schedule is not valid JSON") from None
    else:
        schedule = raw or {}

    rules: dict[int, WeeklyDayRule] = {}
    for day in range(7):
        ranges = parse_ranges(schedule.get(str(day)) or schedule.get(day) or [])
        rules[day] = WeeklyDayRule(day, bool(ranges), ranges)
    return rules


def dump_weekly_schedule(rules: dict[int, WeeklyDayRule]) -> str:
    return json.dumps({
        str(day): [r.as_pair() for r in rules[day].slots] if day in rules else []
        for day in range(7)
    })


def default_weekly_schedule() -> dict[int, WeeklyDayRule]:
    return parse_weekly_schedule({str(day): ranges for day, ranges in DEFAULT_WEEKLY_SCHEDULE.items()})


def parse_override_slots(raw: str | None) -> Optional[tuple[TimeRange, ...]]:
    if raw is None:
        return None
    try:
        data = json.loads(raw)
    except json.JSONDecodeError:
        raise ScheduleValidationError("invalid_override", "Override slots are not valid JSON") from None
    return parse_ranges(data or [])


def dump_override_slots(slots: Optional[Iterable[TimeRange]]) -> str | None:
    if slots is None:
        return None
    return json.dumps([r.as_pair() for r in slots])
