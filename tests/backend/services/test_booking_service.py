import threading
from contextlib import nullcontext
from datetime import timedelta

import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker

from conftest import AGENT_ID, CLIENT_ID, MONDAY, NOW, OTHER_CLIENT_ID, TUESDAY
from agenda.config import settings
from agenda.database import enable_sqlite_fk
from agenda.models.generated import Appointments, Base
from agenda.services.scheduling.booking import book_appointment
from agenda.services.scheduling.errors import (
    ConflictError,
    NotFoundError,
    PolicyError,
    ScheduleValidationError,
)
from agenda.services.scheduling.store import save_availability_settings
from agenda.services.scheduling.rules import TimeRange, WeeklyDayRule


def book(db, scheduled_time: str = '09:00', scheduled_date=MONDAY, **kwargs):
    params = {
        'agent_id': AGENT_ID,
        'client_id': CLIENT_ID,
        'scheduled_date': scheduled_date,
        'scheduled_time': scheduled_time,
        'appointment_type': 'estimation',
        'contact_name': ' Jeanne Martin ',
        'contact_email': ' Jeanne.Martin@Example.COM ',
        'contact_phone': '0601020304',
        'now': NOW,
    }
    params.update(kwargs)
    return book_appointment(db, **params)


def test_book_creates_pending_appointment(db, agent, events) -> None:
    appointment = book(db, notes='Maison 4 pièces', property_details={'city': 'Lyon'})

    assert appointment.id is not None
    assert appointment.status == 'pending'
    assert appointment.scheduled_date == MONDAY.isoformat()
    assert appointment.scheduled_time == '09:00'
    assert appointment.duration == 60
    assert appointment.contact_name == 'Jeanne Martin'
    assert appointment.contact_email == 'jeanne.martin@example.com'
    assert appointment.is_guest_booking == 0
    assert appointment.property_details == '{"city": "Lyon"}'
    assert events == [('appointment_created', {
        'appointment_id': appointment.id,
        'agent_id': AGENT_ID,
        'client_id': CLIENT_ID,
        'status': 'pending',
        'scheduled_date': '2026-03-02',
        'scheduled_time': '09:00',
    })]


def test_book_without_client_is_guest_booking(db, agent) -> None:
    appointment = book(db, client_id=None)

    assert appointment.client_id is None
    assert appointment.is_guest_booking == 1


def test_book_normalizes_time(db, agent) -> None:
    assert book(db, scheduled_time='9:00').scheduled_time == '09:00'


def test_book_past_date_is_rejected(db, agent) -> None:
    with pytest.raises(PolicyError) as exception_info:
        book(db, scheduled_date=NOW.date() - timedelta(days=1))

    assert exception_info.value.code == 'past_date'


def test_book_beyond_advance_window_is_rejected(db, agent) -> None:
    with pytest.raises(PolicyError) as exception_info:
        book(db, scheduled_date=NOW.date() + timedelta(days=61))

    assert exception_info.value.code == 'out_of_window'


def test_book_unknown_agent(db) -> None:
    with pytest.raises(NotFoundError) as exception_info:
        book(db)

    assert exception_info.value.code == 'agent_not_found'


def test_book_unknown_appointment_type(db, agent) -> None:
    with pytest.raises(ScheduleValidationError):
        book(db, appointment_type='location')


@pytest.mark.parametrize(('scheduled_time', 'scheduled_date'), [('09:00', TUESDAY), ('09:30', MONDAY)])
def test_book_slot_outside_availability_is_a_conflict(db, agent, scheduled_time: str, scheduled_date) -> None:
    with pytest.raises(ConflictError) as exception_info:
        book(db, scheduled_time=scheduled_time, scheduled_date=scheduled_date)

    assert exception_info.value.code == 'slot_unavailable'


def test_same_slot_cannot_be_booked_twice(db, agent, events) -> None:
    book(db)

    with pytest.raises(ConflictError):
        book(db, client_id=OTHER_CLIENT_ID)

    assert len(events) == 1
    assert db.query(Appointments).count() == 1


def test_cap_reached_is_a_policy_error(db, agent) -> None:
    save_availability_settings(db, AGENT_ID, policy_updates={'max_appointments_per_day': 1})
    db.commit()
    book(db)

    with pytest.raises(PolicyError) as exception_info:
        book(db, scheduled_time='10:15', client_id=OTHER_CLIENT_ID)

    assert exception_info.value.code == 'max_per_day_reached'


def test_cancelled_slot_can_be_booked_again(db, agent) -> None:
    first = book(db)
    first.status = 'cancelled'
    db.commit()

    second = book(db, client_id=OTHER_CLIENT_ID)

    assert second.id != first.id
    assert second.scheduled_time == '09:00'


def test_idempotency_key_returns_first_booking(db, agent, events) -> None:
    first = book(db, idempotency_key='req-123')
    again = book(db, idempotency_key='req-123')

    assert again.id == first.id
    assert db.query(Appointments).count() == 1
    assert len(events) == 1


def test_unique_index_backs_up_the_lock(db, agent, monkeypatch: pytest.MonkeyPatch) -> None:
    book(db)
    monkeypatch.setattr('agenda.services.scheduling.booking.agent_booking_lock', lambda *a, **kw: nullcontext())
    monkeypatch.setattr('agenda.services.scheduling.booking.ensure_slot_bookable', lambda *a, **kw: None)

    with pytest.raises(ConflictError):
        book(db, client_id=OTHER_CLIENT_ID)

    assert db.query(Appointments).count() == 1


def test_busy_redis_lock_is_a_conflict(db, agent, fake_redis, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(settings, 'booking_lock_timeout_seconds', 0.1)
    held = fake_redis.lock(f'lock:booking:{AGENT_ID}', timeout=5)
    assert held.acquire(blocking=False)

    with pytest.raises(ConflictError):
        book(db, lock_redis=fake_redis)

    held.release()
    assert book(db, lock_redis=fake_redis).status == 'pending'


def test_concurrent_bookings_for_same_slot(tmp_path) -> None:
    engine = create_engine(
        f'sqlite:///{tmp_path / "race.db"}',
        connect_args={'check_same_thread': False, 'timeout': 30},
    )
    event.listen(engine, 'connect', enable_sqlite_fk)
    Base.metadata.create_all(bind=engine)
    session_local = sessionmaker(autocommit=False, autoflush=False, bind=engine)

    setup = session_local()
    save_availability_settings(
        setup,
        AGENT_ID,
        weekly_rules=[WeeklyDayRule(1, True, (TimeRange.from_strings('09:00', '12:00'),))],
    )
    setup.commit()
    setup.close()

    barrier = threading.Barrier(2)
    results: dict[int, object] = {}

    def worker(client_id: int) -> None:
        db = session_local()
        try:
            barrier.wait()
            results[client_id] = book(db, client_id=client_id).status
        except ConflictError as e:
            results[client_id] = e.code
        finally:
            db.close()

    threads = [threading.Thread(target=worker, args=(cid,)) for cid in (CLIENT_ID, OTHER_CLIENT_ID)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert sorted(results.values()) == ['pending', 'slot_unavailable']

    check = session_local()
    try:
        assert check.query(Appointments).filter(Appointments.status == 'pending').count() == 1
    finally:
        check.close()
        engine.dispose()
