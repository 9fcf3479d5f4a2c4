# salon_booking/services/appointment/transitions.py
"""Appointment status transition table"""
from datetime import datetime
from typing import Dict, FrozenSet

from salon_booking.core.exceptions import InvalidTransition
from salon_booking.models.appointment import Appointment, AppointmentStatus

S = AppointmentStatus

ALLOWED_TRANSITIONS: Dict[AppointmentStatus, FrozenSet[AppointmentStatus]] = {
    S.RESERVED: frozenset({S.REQUESTED, S.PENDING_DEPOSIT, S.CONFIRMED, S.CANCELLED, S.NO_SHOW}),
    S.REQUESTED: frozenset({S.PENDING_DEPOSIT, S.CONFIRMED, S.CANCELLED, S.NO_SHOW}),
    S.PENDING_DEPOSIT: frozenset({S.CONFIRMED, S.CANCELLED, S.NO_SHOW}),
    S.CONFIRMED: frozenset({S.CHECKED_IN, S.CANCELLED, S.NO_SHOW}),
    S.CHECKED_IN: frozenset({S.IN_PROGRESS, S.CANCELLED, S.NO_SHOW}),
    S.IN_PROGRESS: frozenset({S.COMPLETED, S.CANCELLED, S.NO_SHOW}),
    S.COMPLETED: frozenset(),
    S.CANCELLED: frozenset(),
    S.NO_SHOW: frozenset(),
}

# Lifecycle timestamp written when entering a status
_TIMESTAMP_FIELDS = {
    S.CONFIRMED: "confirmed_at",
    S.CHECKED_IN: "checked_in_at",
    S.IN_PROGRESS: "started_at",
    S.COMPLETED: "completed_at",
    S.CANCELLED: "cancelled_at",
    S.NO_SHOW: "no_show_at",
}


def can_transition(current, target) -> bool:
    return S(target) in ALLOWED_TRANSITIONS[S(current)]


def is_terminal(status) -> bool:
    return not ALLOWED_TRANSITIONS[S(status)]


def apply_transition(appointment: Appointment, target, now: datetime) -> AppointmentStatus:
    """
    Move the appointment to `target` after a single table lookup.
    Returns the previous status. Does not flush or commit.
    """
    current = S(appointment.status)
    target = S(target)
    if target not in ALLOWED_TRANSITIONS[current]:
        raise InvalidTransition(current.value, target.value)

    appointment.status = target.value
    if current == S.RESERVED:
        appointment.reserved_until = None

    timestamp_field = _TIMESTAMP_FIELDS.get(target)
    if timestamp_field:
        setattr(appointment, timestamp_field, now)

    return current
