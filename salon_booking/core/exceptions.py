# salon_booking/core/exceptions.py
"""
Error taxonomy for the scheduling core.

Every rejection names the constraint that was violated so the caller can
decide whether to re-query availability, wait, or abandon the booking.
"""
from typing import Optional


class SchedulingError(Exception):
    """Base class for all domain errors raised by the scheduling core"""

    code = "scheduling_error"
    status_code = 400

    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code

    def to_dict(self) -> dict:
        return {"error": self.code, "detail": self.message}


class ValidationError(SchedulingError):
    """Malformed input, rejected before any side effect"""

    code = "validation_error"
    status_code = 400


class InvalidTransition(ValidationError):
    """Requested status change is not in the transition table"""

    code = "invalid_transition"

    def __init__(self, current: str, target: str):
        super().__init__(f"Cannot move appointment from '{current}' to '{target}'")
        self.current = current
        self.target = target


class PolicyViolation(SchedulingError):
    """Request breaks a salon booking rule"""

    code = "policy_violation"
    status_code = 422

    LEAD_TIME = "lead_time"
    HORIZON = "horizon"
    MAX_PER_DAY = "max_per_day"
    MAX_CONCURRENT = "max_concurrent"
    DEPOSIT_INCONSISTENT = "deposit_inconsistent"

    MESSAGES = {
        LEAD_TIME: "Too close to appointment time",
        HORIZON: "Too far in the future to book",
        MAX_PER_DAY: "The salon is fully booked for this day",
        MAX_CONCURRENT: "Too many open reservations for this customer",
        DEPOSIT_INCONSISTENT: "A deposit is required but no deposit amount is configured",
    }

    def __init__(self, kind: str, message: Optional[str] = None):
        super().__init__(message or self.MESSAGES.get(kind, kind))
        self.kind = kind

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["kind"] = self.kind
        return data


class ConflictError(SchedulingError):
    """The slot was taken between availability lookup and reservation"""

    code = "slot_unavailable"
    status_code = 409

    def __init__(self, message: str = "Slot no longer available"):
        super().__init__(message)


class ReservationExpired(SchedulingError):
    """Confirm attempted after the hold ran out"""

    code = "reservation_expired"
    status_code = 410

    def __init__(self, message: str = "Reservation has expired, please select a new slot"):
        super().__init__(message)


class AuthorizationError(SchedulingError):
    """Cross-tenant reference or insufficient role"""

    code = "forbidden"
    status_code = 403


class NotFoundError(SchedulingError):
    code = "not_found"
    status_code = 404
