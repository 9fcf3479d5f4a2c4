# salon_booking/schemas/__init__.py
from .task_payloads import NotificationPayload

from .booking import (
    ReservationCreate,
    ConfirmRequest,
    CancelRequest,
    RescheduleRequest,
    TransitionRequest,
    DepositPaidRequest,
    WaitlistCreate,
    WaitlistMatchRequest,
    SlotResponse,
    DaySlotsResponse,
    AvailabilityResponse,
    CancellationResponse,
    WaitlistEntryResponse,
)
