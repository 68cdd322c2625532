# backend/agenda/schemas/availability.py
"""
Pydantic schemas for the availability API.

Write models are validated through the scheduling value objects, so a
request that passes here can be persisted as-is.
"""

from datetime import date
from typing import Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from ..services.scheduling.config import get_zone, normalize_time_str
from ..services.scheduling.invalidator import get_affected_dates
from ..services.scheduling.rules import DateOverride, TimeRange, WeeklyDayRule, validate_ranges

MAX_OVERRIDE_SPAN_DAYS = 366


class TimeRangeSchema(BaseModel):
    """Agent-local wall-clock range, "HH:MM" 24h."""
    start_time: str
    end_time: str

    model_config = {"from_attributes": True}

    @field_validator("start_time", "end_time")
    @classmethod
    def check_time(cls, v: str) -> str:
        return normalize_time_str(v)

    @model_validator(mode="after")
    def check_order(self):
        self.to_range()
        return self

    def to_range(self) -> TimeRange:
        return TimeRange.from_strings(self.start_time, self.end_time)


class WeeklyDayRuleSchema(BaseModel):
    day_of_week: int = Field(..., ge=0, le=6, description="0 = Sunday .. 6 = Saturday")
    is_available: bool
    slots: list[TimeRangeSchema] = []

    @model_validator(mode="after")
    def check_rule(self):
        self.to_rule()
        return self

    def to_rule(self) -> WeeklyDayRule:
        return WeeklyDayRule(
            day_of_week=self.day_of_week,
            is_available=self.is_available,
            slots=tuple(s.to_range() for s in self.slots),
        )


class DateOverrideSchema(BaseModel):
    date: date
    date_end: Optional[date] = Field(None, description="Inclusive end, expanded into one override per date")
    is_available: bool = False
    slots: Optional[list[TimeRangeSchema]] = None
    reason: Optional[str] = Field(None, max_length=200)

    @model_validator(mode="after")
    def check_override(self):
        if self.date_end is not None:
            if self.date_end < self.date:
                raise ValueError("date_end must not be before date")
            if (self.date_end - self.date).days >= MAX_OVERRIDE_SPAN_DAYS:
                raise ValueError(f"An override cannot span more than {MAX_OVERRIDE_SPAN_DAYS} days")
        if self.slots:
            validate_ranges(s.to_range() for s in self.slots)
        return self

    def to_overrides(self) -> list[DateOverride]:
        slots = tuple(s.to_range() for s in self.slots) if self.slots is not None else None
        return [
            DateOverride(date=d, is_available=self.is_available, slots=slots, reason=self.reason)
            for d in get_affected_dates(self.date, self.date_end or self.date)
        ]


class AvailabilitySettingsUpdate(BaseModel):
    """Partial update: omitted fields keep their stored value."""
    weekly_schedule: Optional[list[WeeklyDayRuleSchema]] = None
    date_overrides: Optional[list[DateOverrideSchema]] = Field(
        None, description="Replaces the whole override set"
    )

    default_duration: Optional[int] = Field(None, ge=15, le=480)
    buffer_time: Optional[int] = Field(None, ge=0, le=60)
    max_appointments_per_day: Optional[int] = Field(None, ge=1, le=20)
    advance_booking_days: Optional[int] = Field(None, ge=1, le=365)

    timezone: Optional[str] = None

    @field_validator("weekly_schedule")
    @classmethod
    def check_unique_days(cls, v):
        if v is not None:
            days = [rule.day_of_week for rule in v]
            if len(days) != len(set(days)):
                raise ValueError("weekly_schedule lists the same day twice")
        return v

    @field_validator("date_overrides")
    @classmethod
    def check_unique_dates(cls, v):
        if v is not None:
            dates = [o.date for item in v for o in item.to_overrides()]
            if len(dates) != len(set(dates)):
                raise ValueError("date_overrides cover the same date twice")
        return v

    @field_validator("timezone")
    @classmethod
    def check_timezone(cls, v):
        if v is not None:
            get_zone(v)
        return v

    def policy_updates(self) -> dict:
        return self.model_dump(
            include={"default_duration", "buffer_time", "max_appointments_per_day", "advance_booking_days"},
            exclude_none=True,
        )

    def weekly_rules(self) -> Optional[list[WeeklyDayRule]]:
        if self.weekly_schedule is None:
            return None
        return [rule.to_rule() for rule in self.weekly_schedule]

    def overrides(self) -> Optional[list[DateOverride]]:
        if self.date_overrides is None:
            return None
        return [o for item in self.date_overrides for o in item.to_overrides()]


class WeeklyDayRead(BaseModel):
    day_of_week: int
    label: str
    is_available: bool
    slots: list[TimeRangeSchema]


class DateOverrideRead(BaseModel):
    date: date
    is_available: bool
    slots: Optional[list[TimeRangeSchema]] = None
    reason: Optional[str] = None


class AvailabilitySettingsRead(BaseModel):
    agent_id: int
    timezone: str

    weekly_schedule: list[WeeklyDayRead]
    date_overrides: list[DateOverrideRead]

    default_duration: int
    buffer_time: int
    max_appointments_per_day: int
    advance_booking_days: int

    updated_at: Optional[str] = None


class SlotRead(BaseModel):
    """A bookable slot, agent-local time."""
    time: str  # "HH:MM"
    end_time: str
    duration: int

    model_config = {"from_attributes": True}


class AvailabilitySlotsResponse(BaseModel):
    agent_id: int
    timezone: str
    date_from: date
    date_to: date
    duration: int
    slots: dict[date, list[SlotRead]] = Field(
        description="Free slots per date; dates outside the booking window are omitted"
    )


class DaySlotsResponse(BaseModel):
    agent_id: int
    date: date
    duration: int
    is_available: bool
    blocked_reason: Optional[str] = None
    message: Optional[str] = None
    slots: list[SlotRead]


class InvalidateResponse(BaseModel):
    agent_id: int
    deleted_keys: int
    dates: list[date] | str
