import os
from datetime import date, datetime, timezone

import fakeredis
import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker

os.environ.setdefault('DATABASE_URL', 'sqlite:///:memory:')
os.environ.setdefault('CHECKERS_ENABLED', 'false')
os.environ.setdefault('TIMEZONE', 'Europe/Paris')

from agenda.database import enable_sqlite_fk  # noqa: E402
from agenda.models.generated import Base  # noqa: E402
from agenda.services.scheduling.lifecycle import Caller  # noqa: E402
from agenda.services.scheduling.rules import TimeRange, WeeklyDayRule  # noqa: E402
from agenda.services.scheduling.store import save_availability_settings  # noqa: E402

# Sunday 2026-03-01, 11:00 in Paris. Monday 2026-03-02 is the first working day.
NOW = datetime(2026, 3, 1, 10, 0, tzinfo=timezone.utc)
MONDAY = date(2026, 3, 2)
TUESDAY = date(2026, 3, 3)

AGENT_ID = 10
CLIENT_ID = 20
OTHER_CLIENT_ID = 21
ADMIN_ID = 1


@pytest.fixture
def db():
    engine = create_engine('sqlite:///:memory:')
    event.listen(engine, 'connect', enable_sqlite_fk)
    testing_session_local = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    Base.metadata.create_all(bind=engine)

    session = testing_session_local()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture
def fake_redis():
    return fakeredis.FakeRedis()


@pytest.fixture(autouse=True)
def events(monkeypatch: pytest.MonkeyPatch) -> list:
    emitted = []

    def capture(event_type: str, payload: dict) -> None:
        emitted.append((event_type, payload))

    monkeypatch.setattr('agenda.services.scheduling.booking.emit_event', capture)
    monkeypatch.setattr('agenda.services.reminder_checker.emit_event', capture)
    monkeypatch.setattr('agenda.services.completion_checker.emit_event', capture)
    return emitted


@pytest.fixture
def agent(db):
    """Agent with Monday 09:00-12:00 only, 60 min slots, 15 min buffer."""
    row = save_availability_settings(
        db,
        AGENT_ID,
        weekly_rules=[
            WeeklyDayRule(day, False) for day in range(7) if day != 1
        ] + [WeeklyDayRule(1, True, (TimeRange.from_strings('09:00', '12:00'),))],
        policy_updates={'default_duration': 60, 'buffer_time': 15},
    )
    db.commit()
    return row


@pytest.fixture
def agent_caller() -> Caller:
    return Caller(user_id=AGENT_ID, role='agent')


@pytest.fixture
def client_caller() -> Caller:
    return Caller(user_id=CLIENT_ID, role='client')


@pytest.fixture
def admin_caller() -> Caller:
    return Caller(user_id=ADMIN_ID, role='admin')
