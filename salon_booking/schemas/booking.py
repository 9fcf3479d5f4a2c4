"""
Pydantic schemas for the booking API
"""
from datetime import date, datetime
from typing import List, Literal, Optional
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

from salon_booking.models.appointment import AppointmentStatus


# ============================================================================
# Request Schemas
# ============================================================================

class ReservationCreate(BaseModel):
    """Hold a slot for a customer"""
    staff_id: UUID
    starts_at: datetime = Field(..., description="Slot start, timezone-aware")
    service_ids: List[UUID] = Field(..., min_length=1)
    customer_id: Optional[UUID] = Field(None, description="Defaults to the caller for customers")
    booked_via: Literal["online", "phone", "walk_in", "admin"] = "online"
    customer_notes: Optional[str] = Field(None, max_length=2000)

    @field_validator("starts_at")
    @classmethod
    def require_timezone(cls, v: datetime) -> datetime:
        if v.tzinfo is None:
            raise ValueError("starts_at must include a timezone offset")
        return v


class ConfirmRequest(BaseModel):
    auto_confirm: Optional[bool] = None


class CancelRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=500)
    apply_no_show_policy: bool = False


class RescheduleRequest(BaseModel):
    starts_at: datetime
    staff_id: Optional[UUID] = None

    @field_validator("starts_at")
    @classmethod
    def require_timezone(cls, v: datetime) -> datetime:
        if v.tzinfo is None:
            raise ValueError("starts_at must include a timezone offset")
        return v


class TransitionRequest(BaseModel):
    target: AppointmentStatus
    reason: Optional[str] = Field(None, max_length=500)
    payment_reference: Optional[str] = Field(None, max_length=100)
    apply_no_show_policy: bool = False


class DepositPaidRequest(BaseModel):
    payment_reference: Optional[str] = Field(None, max_length=100)


class WaitlistCreate(BaseModel):
    service_id: UUID
    customer_id: Optional[UUID] = None
    date_range_start: Optional[date] = None
    date_range_end: Optional[date] = None
    preferred_time_of_day: List[Literal["morning", "afternoon", "evening"]] = Field(default_factory=list)
    preferred_weekdays: List[int] = Field(default_factory=list, description="ISO weekdays, 1=Monday")
    preferred_staff_id: Optional[UUID] = None
    customer_notes: Optional[str] = Field(None, max_length=2000)
    auto_expire_days: Optional[int] = Field(None, gt=0, le=365)

    @field_validator("preferred_weekdays")
    @classmethod
    def validate_weekdays(cls, v: List[int]) -> List[int]:
        if any(day < 1 or day > 7 for day in v):
            raise ValueError("Weekdays must be between 1 (Monday) and 7 (Sunday)")
        return v


class WaitlistMatchRequest(BaseModel):
    staff_id: UUID
    starts_at: datetime
    ends_at: datetime
    service_ids: List[UUID] = Field(..., min_length=1)


# ============================================================================
# Response Schemas
# ============================================================================

class SlotResponse(BaseModel):
    time: str
    starts_at: datetime
    ends_at: datetime
    staff_id: UUID
    available: bool = True


class DaySlotsResponse(BaseModel):
    date: date
    slots: List[SlotResponse]


class AvailabilityResponse(BaseModel):
    salon_id: UUID
    staff_id: str
    service_ids: List[UUID]
    days: List[DaySlotsResponse]


class CancellationResponse(BaseModel):
    appointment: dict
    within_cutoff: bool


class WaitlistEntryResponse(BaseModel):
    id: str
    salon_id: str
    customer_id: str
    desired_service_id: str
    date_range_start: Optional[str] = None
    date_range_end: Optional[str] = None
    preferred_time_of_day: List[str]
    preferred_weekdays: List[int]
    preferred_staff_id: Optional[str] = None
    status: str
    notified_at: Optional[str] = None
    notification_count: int
    expires_at: Optional[str] = None
    created_at: Optional[str] = None
