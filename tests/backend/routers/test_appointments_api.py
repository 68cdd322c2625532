import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from conftest import AGENT_ID, CLIENT_ID, MONDAY, NOW, OTHER_CLIENT_ID
from agenda.database import enable_sqlite_fk, get_db
from agenda.dependencies import get_cache_redis, get_lock_redis
from agenda.main import app
from agenda.models.generated import Base
from agenda.services.scheduling.store import save_availability_settings
from agenda.services.scheduling.rules import TimeRange, WeeklyDayRule

AGENT_HEADERS = {'X-User-Id': str(AGENT_ID), 'X-User-Role': 'agent'}
CLIENT_HEADERS = {'X-User-Id': str(CLIENT_ID), 'X-User-Role': 'client'}
OTHER_CLIENT_HEADERS = {'X-User-Id': str(OTHER_CLIENT_ID), 'X-User-Role': 'client'}


@pytest.fixture
def api(monkeypatch: pytest.MonkeyPatch):
    engine = create_engine(
        'sqlite://',
        connect_args={'check_same_thread': False},
        poolclass=StaticPool,
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

    def override_get_db():
        db = session_local()
        try:
            yield db
        finally:
            db.close()

    monkeypatch.setattr('agenda.services.scheduling.booking._utcnow', lambda: NOW)
    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_cache_redis] = lambda: None
    app.dependency_overrides[get_lock_redis] = lambda: None
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
        engine.dispose()


def booking_payload(**overrides) -> dict:
    payload = {
        'agent_id': AGENT_ID,
        'appointment_type': 'estimation',
        'scheduled_date': MONDAY.isoformat(),
        'scheduled_time': '09:00',
        'contact_details': {
            'name': 'Jeanne Martin',
            'email': 'Jeanne@Example.com',
            'phone': '06 01 02 03 04',
        },
        'property_details': {'address': '12 rue de la Paix', 'city': 'Paris', 'postal_code': '75002'},
    }
    payload.update(overrides)
    return payload


def test_guest_booking_then_conflict(api) -> None:
    response = api.post('/appointments/', json=booking_payload())

    assert response.status_code == 201
    body = response.json()
    assert body['status'] == 'pending'
    assert body['is_guest_booking'] is True
    assert body['client_id'] is None
    assert body['contact_email'] == 'jeanne@example.com'
    assert body['property_details']['city'] == 'Paris'

    response = api.post('/appointments/', json=booking_payload(), headers=CLIENT_HEADERS)

    assert response.status_code == 409
    assert response.json() == {'detail': 'This time slot is no longer available', 'code': 'slot_unavailable'}


def test_booking_past_date_is_unprocessable(api) -> None:
    response = api.post('/appointments/', json=booking_payload(scheduled_date='2026-02-27'), headers=CLIENT_HEADERS)

    assert response.status_code == 422
    assert response.json()['code'] == 'past_date'


@pytest.mark.parametrize(
    'overrides',
    [
        {'scheduled_time': '9h00'},
        {'appointment_type': 'location'},
        {'duration': 5},
        {'notes': 'x' * 2001},
        {'contact_details': {'name': '', 'email': 'a@b.fr', 'phone': '0601020304'}},
        {'contact_details': {'name': 'Jo', 'email': 'not-an-email', 'phone': '0601020304'}},
        {'contact_details': {'name': 'Jo', 'email': 'a@b.fr', 'phone': '0601'}},
    ],
)
def test_booking_payload_validation(api, overrides: dict) -> None:
    response = api.post('/appointments/', json=booking_payload(**overrides), headers=CLIENT_HEADERS)

    assert response.status_code == 422


@pytest.mark.parametrize('email', ['a@b..com', 'a@.b.c', 'a..b@c.com', 'jeanne.martin', 'jeanne@'])
def test_booking_rejects_invalid_contact_email(api, email: str) -> None:
    contact = {'name': 'Jo', 'email': email, 'phone': '0601020304'}

    response = api.post('/appointments/', json=booking_payload(contact_details=contact), headers=CLIENT_HEADERS)

    assert response.status_code == 422


def test_idempotency_key_header(api) -> None:
    headers = {**CLIENT_HEADERS, 'Idempotency-Key': 'form-42'}

    first = api.post('/appointments/', json=booking_payload(), headers=headers)
    second = api.post('/appointments/', json=booking_payload(), headers=headers)

    assert first.status_code == second.status_code == 201
    assert first.json()['id'] == second.json()['id']


@pytest.mark.parametrize(
    'overrides, headers',
    [
        ({'scheduled_time': '10:15'}, CLIENT_HEADERS),
        ({}, OTHER_CLIENT_HEADERS),
    ],
)
def test_idempotency_key_reused_for_another_booking(api, overrides: dict, headers: dict) -> None:
    api.post('/appointments/', json=booking_payload(), headers={**CLIENT_HEADERS, 'Idempotency-Key': 'form-42'})

    response = api.post(
        '/appointments/',
        json=booking_payload(**overrides),
        headers={**headers, 'Idempotency-Key': 'form-42'},
    )

    assert response.status_code == 422
    assert response.json()['code'] == 'idempotency_key_reused'
    assert 'contact_email' not in response.json()


def test_lifecycle_over_http(api) -> None:
    appointment_id = api.post('/appointments/', json=booking_payload(), headers=CLIENT_HEADERS).json()['id']

    response = api.patch(f'/appointments/{appointment_id}', json={'status': 'confirmed'}, headers=CLIENT_HEADERS)
    assert response.status_code == 403
    assert response.json()['code'] == 'forbidden'

    response = api.patch(f'/appointments/{appointment_id}', json={'status': 'confirmed'}, headers=AGENT_HEADERS)
    assert response.status_code == 200
    assert response.json()['status'] == 'confirmed'

    response = api.patch(f'/appointments/{appointment_id}', json={'status': 'rejected'}, headers=AGENT_HEADERS)
    assert response.status_code == 422
    assert response.json()['code'] == 'invalid_transition'

    response = api.post(
        f'/appointments/{appointment_id}/reschedule',
        json={'scheduled_date': MONDAY.isoformat(), 'scheduled_time': '10:15', 'reason': 'Train en retard'},
        headers=CLIENT_HEADERS,
    )
    assert response.status_code == 200
    assert (response.json()['status'], response.json()['scheduled_time']) == ('pending', '10:15')

    response = api.get(f'/appointments/{appointment_id}', headers={'X-User-Id': '999', 'X-User-Role': 'client'})
    assert response.status_code == 403


def test_patch_requires_something_to_update(api) -> None:
    response = api.patch('/appointments/1', json={}, headers=AGENT_HEADERS)

    assert response.status_code == 422


def test_listing_requires_identity(api) -> None:
    assert api.get('/appointments/').status_code == 401


def test_listing_and_stats(api) -> None:
    api.post('/appointments/', json=booking_payload(), headers=CLIENT_HEADERS)

    listing = api.get('/appointments/', params={'status': 'pending'}, headers=AGENT_HEADERS)
    stats = api.get('/appointments/stats', headers=CLIENT_HEADERS)

    assert [a['scheduled_time'] for a in listing.json()] == ['09:00']
    assert stats.json()['total'] == 1
    assert stats.json()['by_status']['pending'] == 1
    assert api.get('/appointments/', params={'status': 'unknown'}, headers=AGENT_HEADERS).status_code == 422


def test_unknown_agent_slots(api) -> None:
    response = api.get('/availability/404/slots')

    assert response.status_code == 404
    assert response.json()['code'] == 'agent_not_found'


def test_delete_not_allowed(api) -> None:
    assert api.delete('/appointments/1', headers=AGENT_HEADERS).status_code == 405


def test_database_unavailable_is_503(api, tmp_path) -> None:
    broken = sessionmaker(bind=create_engine(f'sqlite:///{tmp_path}/missing/dir/agenda.db'))

    def broken_db():
        db = broken()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = broken_db

    response = api.get(f'/availability/{AGENT_ID}/settings')

    assert response.status_code == 503
    assert response.json()['code'] == 'database_unavailable'
