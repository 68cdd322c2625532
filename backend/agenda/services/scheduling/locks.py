# backend/agenda/services/scheduling/locks.py
"""
Per-agent serialization point for booking commits.

The availability re-check and the insert run under this lock, so two callers
can never both reserve overlapping slots for the same agent. The partial unique
index on appointments(agent_id, scheduled_date, scheduled_time) is the
database-level backstop for exact-slot collisions.

- redis given: shared Redis lock (multi-process / multi-host deployments)
- no redis: process-local lock (single-process deployments, tests)
"""

import logging
import threading
from contextlib import contextmanager

from redis import Redis
from redis.exceptions import LockError

from .errors import ConflictError

logger = logging.getLogger(__name__)

LOCK_KEY_PREFIX = "lock:booking"

_local_locks: dict[int, threading.Lock] = {}
_local_locks_guard = threading.Lock()


def _get_local_lock(agent_id: int) -> threading.Lock:
    with _local_locks_guard:
        lock = _local_locks.get(agent_id)
        if lock is None:
            lock = _local_locks[agent_id] = threading.Lock()
        return lock


@contextmanager
def agent_booking_lock(agent_id: int, redis: Redis | None = None, timeout: float = 10.0):
    if redis is not None:
        lock = redis.lock(f"{LOCK_KEY_PREFIX}:{agent_id}", timeout=timeout, blocking_timeout=timeout)
        if not lock.acquire():
            logger.warning(f"Booking lock busy for agent={agent_id}")
            raise ConflictError("slot_unavailable", "The agent calendar is busy, please retry")
        try:
            yield
        finally:
            try:
                lock.release()
            except LockError:
                # Lock expired while we held it; the unique index still guards the insert
                logger.warning(f"Booking lock for agent={agent_id} expired before release")
        return

    lock = _get_local_lock(agent_id)
    if not lock.acquire(timeout=timeout):
        logger.warning(f"Booking lock busy for agent={agent_id}")
        raise ConflictError("slot_unavailable", "The agent calendar is busy, please retry")
    try:
        yield
    finally:
        lock.release()
