# backend/agenda/services/scheduling/lifecycle.py
"""
Appointment lifecycle.

    pending   --agent confirms-->   confirmed
    pending   --agent rejects-->    rejected   (terminal)
    confirmed --agent completes-->  completed  (terminal)
    pending / confirmed --agent, client or admin cancels--> cancelled (terminal)
    pending / confirmed --agent or client reschedules-->  pending

Appointments are never deleted: a terminal status is the end of the road.
"""

from dataclasses import dataclass
from typing import Optional

from .errors import ForbiddenError, PolicyError

PENDING = "pending"
CONFIRMED = "confirmed"
COMPLETED = "completed"
CANCELLED = "cancelled"
REJECTED = "rejected"

STATUSES = (PENDING, CONFIRMED, COMPLETED, CANCELLED, REJECTED)
ACTIVE_STATUSES = (PENDING, CONFIRMED)

# Actors relative to one appointment
AGENT = "agent"
CLIENT = "client"
ADMIN = "admin"

# (from, to) -> actors allowed to perform it
TRANSITIONS: dict[tuple[str, str], frozenset[str]] = {
    (PENDING, CONFIRMED): frozenset({AGENT}),
    (PENDING, REJECTED): frozenset({AGENT}),
    (PENDING, CANCELLED): frozenset({AGENT, CLIENT, ADMIN}),
    (CONFIRMED, COMPLETED): frozenset({AGENT}),
    (CONFIRMED, CANCELLED): frozenset({AGENT, CLIENT, ADMIN}),
}

RESCHEDULE_FROM = ACTIVE_STATUSES
RESCHEDULE_ACTORS = frozenset({AGENT, CLIENT})


@dataclass(frozen=True)
class Caller:
    """Authenticated user as forwarded by the gateway."""
    user_id: int
    role: str

    @property
    def is_admin(self) -> bool:
        return self.role == ADMIN


def actor_for(appointment, caller: Caller) -> Optional[str]:
    """Role the caller plays on this appointment, None if unrelated."""
    if appointment.agent_id == caller.user_id:
        return AGENT
    if appointment.client_id is not None and appointment.client_id == caller.user_id:
        return CLIENT
    if caller.is_admin:
        return ADMIN
    return None


def require_actor(appointment, caller: Caller) -> str:
    actor = actor_for(appointment, caller)
    if actor is None:
        raise ForbiddenError("forbidden", "You are not a participant of this appointment")
    return actor


def check_transition(current: str, target: str, actor: str) -> None:
    """
    Raises:
        PolicyError(invalid_transition): the move is not in the state machine
        ForbiddenError: the move exists but this actor may not perform it
    """
    allowed = TRANSITIONS.get((current, target))
    if allowed is None:
        raise PolicyError(
            "invalid_transition",
            f"Cannot change status from {current} to {target}",
        )
    if actor not in allowed:
        raise ForbiddenError(
            "forbidden",
            f"Only {' or '.join(sorted(allowed))} can change status from {current} to {target}",
        )


def check_reschedule(current: str, actor: str) -> None:
    if current not in RESCHEDULE_FROM:
        raise PolicyError(
            "invalid_transition",
            f"Cannot reschedule an appointment with status {current}",
        )
    if actor not in RESCHEDULE_ACTORS:
        raise ForbiddenError("forbidden", "Only the agent or the client can reschedule")
