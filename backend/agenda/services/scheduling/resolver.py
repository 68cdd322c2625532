# backend/agenda/services/scheduling/resolver.py
"""
Day resolution: weekly rule + date override -> effective windows for one date.

Precedence:
  1. date < today (agent timezone)      -> blocked (past_date)
  2. override, is_available = False     -> blocked (date_override)
  3. override with replacement slots    -> override slots
  4. otherwise weekly rule for weekday  -> weekly slots, or blocked (weekly_rule)

Pure: no I/O, input is assumed validated at write time.
"""

from dataclasses import dataclass
from datetime import date
from typing import Optional

from .rules import AvailabilityConfig, TimeRange

BLOCKED_PAST_DATE = "past_date"
BLOCKED_BY_OVERRIDE = "date_override"
BLOCKED_BY_WEEKLY_RULE = "weekly_rule"


@dataclass(frozen=True)
class DayAvailability:
    date: date
    windows: tuple[TimeRange, ...] = ()
    blocked_reason: Optional[str] = None

    @property
    def is_available(self) -> bool:
        return self.blocked_reason is None


def day_of_week(target_date: date) -> int:
    """0 = Sunday .. 6 = Saturday (date.weekday() is 0 = Monday)."""
    return (target_date.weekday() + 1) % 7


def resolve_day(config: AvailabilityConfig, target_date: date, today: date) -> DayAvailability:
    if target_date < today:
        return DayAvailability(target_date, blocked_reason=BLOCKED_PAST_DATE)

    override = config.overrides.get(target_date)
    if override is not None:
        if not override.is_available:
            return DayAvailability(target_date, blocked_reason=BLOCKED_BY_OVERRIDE)
        if override.replaces_slots:
            return DayAvailability(target_date, windows=override.slots)

    rule = config.rule_for(day_of_week(target_date))
    if not rule.is_available or not rule.slots:
        return DayAvailability(target_date, blocked_reason=BLOCKED_BY_WEEKLY_RULE)

    return DayAvailability(target_date, windows=rule.slots)
