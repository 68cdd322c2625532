import pytest

from agenda.services.scheduling.conflicts import (
    booked_intervals,
    conflicts_with,
    filter_available,
    is_day_full,
)
from agenda.services.scheduling.generator import Slot, generate_slots
from agenda.services.scheduling.rules import TimeRange


def hm(value: str) -> int:
    hours, minutes = value.split(':')
    return int(hours) * 60 + int(minutes)


def slot(start: str, end: str) -> Slot:
    return Slot(hm(start), hm(end))


@pytest.mark.parametrize(
    ('candidate', 'booked', 'buffer', 'expected'),
    [
        (('09:00', '10:00'), ('09:30', '10:30'), 0, True),
        (('09:00', '10:00'), ('10:00', '11:00'), 0, False),
        (('09:00', '10:00'), ('10:00', '11:00'), 15, True),
        (('09:00', '10:00'), ('10:15', '11:15'), 15, False),
        (('11:30', '12:30'), ('10:15', '11:15'), 15, False),
        (('11:20', '12:20'), ('10:15', '11:15'), 15, True),
    ],
)
def test_conflicts_with_expands_booking_by_buffer(candidate, booked, buffer: int, expected: bool) -> None:
    assert conflicts_with(slot(*candidate), slot(*booked), buffer) is expected


def test_filter_available_removes_overlapping_slots() -> None:
    candidates = generate_slots([TimeRange.from_strings('09:00', '12:00')], 60, 0)

    free = filter_available(candidates, [slot('10:00', '11:00')], buffer=0, max_per_day=8)

    assert [s.time for s in free] == ['09:00', '11:00']


def test_filter_available_returns_nothing_when_day_is_full() -> None:
    candidates = generate_slots([TimeRange.from_strings('09:00', '12:00')], 60, 15)

    assert candidates
    assert filter_available(candidates, [slot('14:00', '15:00')], buffer=15, max_per_day=1) == []


def test_is_day_full_at_cap() -> None:
    assert not is_day_full(0, 1)
    assert is_day_full(1, 1)
    assert is_day_full(3, 2)


def test_filtered_slots_never_overlap_a_booking() -> None:
    candidates = generate_slots([TimeRange.from_strings('08:00', '18:00')], 30, 0)
    booked = [slot('09:10', '09:40'), slot('13:00', '14:30')]

    free = filter_available(candidates, booked, buffer=10, max_per_day=8)

    for s in free:
        for b in booked:
            assert s.end <= b.start - 10 or s.start >= b.end + 10


def test_booked_intervals_reads_time_and_duration() -> None:
    class Row:
        scheduled_time = '14:30'
        duration = 45

    assert booked_intervals([Row()]) == [slot('14:30', '15:15')]
