# backend/agenda/services/scheduling/generator.py
"""
Slot generation: windows -> discrete bookable slots.

For each window the cursor starts at the window start, emits
[cursor, cursor + duration) and advances by duration + buffer, stopping when
the next slot would end after the window. The remainder is dropped.

When two windows are close together (09:00-10:00, 10:00-11:00) the cursor of
the second one never starts earlier than previous slot end + buffer, so any
two consecutive slots are at least `buffer` minutes apart.
"""

from dataclasses import dataclass
from typing import Iterable

from .config import minutes_to_time_str
from .rules import TimeRange


@dataclass(frozen=True, order=True)
class Slot:
    """[start, end) in minutes since local midnight."""
    start: int
    end: int

    @property
    def time(self) -> str:
        return minutes_to_time_str(self.start)

    @property
    def end_time(self) -> str:
        return minutes_to_time_str(self.end)

    @property
    def duration(self) -> int:
        return self.end - self.start


def generate_slots(windows: Iterable[TimeRange], duration: int, buffer: int) -> list[Slot]:
    if duration <= 0:
        raise ValueError(f"duration must be positive, got {duration}")
    if buffer < 0:
        raise ValueError(f"buffer must not be negative, got {buffer}")

    slots: list[Slot] = []
    step = duration + buffer

    for window in sorted(windows):
        cursor = window.start
        if slots:
            cursor = max(cursor, slots[-1].end + buffer)

        while cursor + duration <= window.end:
            slots.append(Slot(cursor, cursor + duration))
            cursor += step

    return slots
