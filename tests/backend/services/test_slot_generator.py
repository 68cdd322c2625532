import pytest

from agenda.services.scheduling.generator import Slot, generate_slots
from agenda.services.scheduling.rules import TimeRange


def window(start: str, end: str) -> TimeRange:
    return TimeRange.from_strings(start, end)


def test_generate_slots_drops_remainder() -> None:
    slots = generate_slots([window('09:00', '12:00')], duration=60, buffer=15)

    assert [(s.time, s.end_time) for s in slots] == [('09:00', '10:00'), ('10:15', '11:15')]


def test_generate_slots_without_buffer_fills_window() -> None:
    slots = generate_slots([window('09:00', '11:00')], duration=30, buffer=0)

    assert [s.time for s in slots] == ['09:00', '09:30', '10:00', '10:30']


def test_generate_slots_window_shorter_than_duration_yields_nothing() -> None:
    assert generate_slots([window('09:00', '09:45')], duration=60, buffer=0) == []


def test_generate_slots_is_deterministic() -> None:
    windows = [window('14:00', '18:00'), window('08:00', '12:00')]

    first = generate_slots(windows, duration=45, buffer=10)
    second = generate_slots(windows, duration=45, buffer=10)

    assert first == second
    assert first == sorted(first)


@pytest.mark.parametrize(
    ('windows', 'duration', 'buffer'),
    [
        ([('09:00', '18:00')], 60, 15),
        ([('09:00', '10:00'), ('10:00', '11:00')], 30, 20),
        ([('08:00', '12:00'), ('12:10', '17:00')], 45, 15),
        ([('00:00', '23:59')], 15, 0),
    ],
)
def test_consecutive_slots_are_separated_by_buffer(windows, duration: int, buffer: int) -> None:
    slots = generate_slots([window(s, e) for s, e in windows], duration, buffer)

    assert slots
    for previous, current in zip(slots, slots[1:]):
        assert current.start >= previous.end + buffer
    for slot in slots:
        assert slot.duration == duration
        assert any(w.start <= slot.start and slot.end <= w.end for w in [window(s, e) for s, e in windows])


def test_adjacent_windows_keep_buffer_across_boundary() -> None:
    slots = generate_slots([window('09:00', '10:00'), window('10:00', '11:30')], duration=60, buffer=15)

    assert [s.time for s in slots] == ['09:00', '10:15']


@pytest.mark.parametrize(('duration', 'buffer'), [(0, 0), (-15, 0), (30, -5)])
def test_generate_slots_rejects_bad_parameters(duration: int, buffer: int) -> None:
    with pytest.raises(ValueError):
        generate_slots([window('09:00', '12:00')], duration, buffer)


def test_slot_exposes_wall_clock_times() -> None:
    slot = Slot(9 * 60 + 5, 10 * 60 + 5)

    assert slot.time == '09:05'
    assert slot.end_time == '10:05'
    assert slot.duration == 60
