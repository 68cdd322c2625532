# backend/agenda/services/scheduling/conflicts.py
"""
Conflict filtering: drop candidate slots that clash with live appointments.

A booked appointment [s2, e2) blocks [s2 - buffer, e2 + buffer): two
appointments must be at least `buffer` minutes apart, not merely disjoint.
Once the day holds max_per_day live (pending/confirmed) appointments, the
whole day is full.
"""

from typing import Iterable, Sequence

from .config import time_str_to_minutes
from .generator import Slot


def conflicts_with(slot: Slot, booked: Slot, buffer: int) -> bool:
    return slot.start < booked.end + buffer and slot.end > booked.start - buffer


def is_day_full(booked_count: int, max_per_day: int) -> bool:
    return booked_count >= max_per_day


def filter_available(
    candidates: Iterable[Slot],
    booked: Sequence[Slot],
    buffer: int,
    max_per_day: int,
) -> list[Slot]:
    if is_day_full(len(booked), max_per_day):
        return []

    return [
        slot for slot in candidates
        if not any(conflicts_with(slot, b, buffer) for b in booked)
    ]


def booked_intervals(appointments: Iterable) -> list[Slot]:
    """Appointments rows (scheduled_time, duration) -> occupied intervals."""
    intervals = []
    for appointment in appointments:
        start = time_str_to_minutes(appointment.scheduled_time)
        intervals.append(Slot(start, start + appointment.duration))
    return intervals
