# salon_booking/models/__init__.py
from .base import Base
from .salon import Salon, BookingRules, NoShowPolicy
from .staff import StaffMember, StaffServiceSkill
from .service import Service
from .schedule import OpeningHours, WorkingHours, WorkingHoursOverride, Absence, BlockedTime
from .appointment import (
    Appointment,
    AppointmentService,
    AppointmentStatus,
    BLOCKING_STATUSES,
    TERMINAL_STATUSES,
)
from .waitlist import WaitlistEntry, WaitlistStatus, TimeOfDay

__all__ = [
    "Base",
    "Salon",
    "BookingRules",
    "NoShowPolicy",
    "StaffMember",
    "StaffServiceSkill",
    "Service",
    "OpeningHours",
    "WorkingHours",
    "WorkingHoursOverride",
    "Absence",
    "BlockedTime",
    "Appointment",
    "AppointmentService",
    "AppointmentStatus",
    "BLOCKING_STATUSES",
    "TERMINAL_STATUSES",
    "WaitlistEntry",
    "WaitlistStatus",
    "TimeOfDay",
]
