# backend/agenda/services/scheduling/errors.py
"""
Typed scheduling failures.

Every failure carries a stable reason `code` the client can branch on, and the
HTTP status the API layer renders it with. Nothing here is retried
automatically: the caller decides, after re-fetching availability.
"""


class SchedulingError(Exception):
    status_code = 400

    def __init__(self, code: str, message: str | None = None):
        self.code = code
        self.message = message or code.replace("_", " ").capitalize()
        super().__init__(self.message)


class ScheduleValidationError(SchedulingError, ValueError):
    """Malformed input. Subclasses ValueError so pydantic validators surface it."""
    status_code = 422


class PolicyError(SchedulingError):
    """Business rule rejection: out_of_window, past_date, max_per_day_reached, invalid_transition."""
    status_code = 422


class ConflictError(SchedulingError):
    """The slot is (or just became) unavailable. Safe to retry with a fresh slot list."""
    status_code = 409

    def __init__(self, code: str = "slot_unavailable", message: str | None = None):
        super().__init__(code, message or "This time slot is no longer available")


class NotFoundError(SchedulingError):
    status_code = 404


class ForbiddenError(SchedulingError):
    status_code = 403

    def __init__(self, code: str = "forbidden", message: str | None = None):
        super().__init__(code, message or "Access denied")
