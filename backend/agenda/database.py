import logging
from pathlib import Path

from sqlalchemy import create_engine, event
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session, sessionmaker

from .config import settings

logger = logging.getLogger(__name__)

DATABASE_URL = settings.resolved_database_url
IS_SQLITE = DATABASE_URL.startswith("sqlite")

if IS_SQLITE and DATABASE_URL.startswith("sqlite:////"):
    Path(DATABASE_URL.replace("sqlite:///", "", 1)).parent.mkdir(parents=True, exist_ok=True)

# check_same_thread=False is required for SQLite across FastAPI worker threads
engine = create_engine(
    DATABASE_URL,
    connect_args={"check_same_thread": False} if IS_SQLITE else {},
)


def enable_sqlite_fk(dbapi_connection, _):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


if IS_SQLITE:
    event.listen(engine, "connect", enable_sqlite_fk)

SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine
)


# Dependency for FastAPI
def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def read_with_retry(db: Session, fn, *args, attempts: int | None = None, **kwargs):
    """
    Run a read-only query function, retrying transient connection failures.

    Never use this for writes: a retried commit can double-book.
    """
    attempts = attempts or settings.read_retry_attempts

    for attempt in range(1, attempts + 1):
        try:
            return fn(db, *args, **kwargs)
        except OperationalError:
            db.rollback()
            if attempt >= attempts:
                raise
            logger.warning(
                f"Transient database error in {fn.__name__} "
                f"(attempt {attempt}/{attempts}), retrying"
            )
