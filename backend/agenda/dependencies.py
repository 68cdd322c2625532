# backend/agenda/dependencies.py
"""
Caller identity.

Authentication happens upstream: the gateway verifies the session and
forwards the user as X-User-Id / X-User-Role headers.
"""

from typing import Optional

from fastapi import Depends, Header, HTTPException, status

from .config import settings
from .redis_client import redis_client
from .services.scheduling.lifecycle import Caller

ROLES = ("agent", "client", "partner", "admin")


def get_optional_caller(
    x_user_id: Optional[int] = Header(None),
    x_user_role: Optional[str] = Header(None),
) -> Optional[Caller]:
    if x_user_id is None:
        return None
    role = (x_user_role or "client").lower()
    if role not in ROLES:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unknown user role")
    return Caller(user_id=x_user_id, role=role)


def get_caller(caller: Optional[Caller] = Depends(get_optional_caller)) -> Caller:
    if caller is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")
    return caller


def require_admin(caller: Caller = Depends(get_caller)) -> Caller:
    if not caller.is_admin:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin only")
    return caller


def get_cache_redis():
    """Redis for the slot cache, None when caching is disabled."""
    return redis_client if settings.slots_cache_enabled else None


def get_lock_redis():
    """Redis for the booking lock, None for the process-local lock."""
    return redis_client if settings.booking_lock_backend == "redis" else None
