# ============================================================================
# salon_booking/api/v1/waitlist.py
# ============================================================================
from fastapi import APIRouter, Depends, Path, Query, status
from sqlalchemy.orm import Session
from typing import List, Optional
from uuid import UUID

from salon_booking.api.dependencies import get_notifier, get_tenant_context
from salon_booking.config.database import get_db
from salon_booking.core.exceptions import ValidationError
from salon_booking.core.tenancy import Role, TenantContext
from salon_booking.schemas.booking import WaitlistCreate, WaitlistEntryResponse, WaitlistMatchRequest
from salon_booking.services.collaborators.notifications import NotificationDispatcher
from salon_booking.services.waitlist.waitlist_manager import WaitlistManager

router = APIRouter(prefix="/waitlist", tags=["waitlist"])


def get_waitlist_manager(
        db: Session = Depends(get_db),
        notifier: NotificationDispatcher = Depends(get_notifier),
) -> WaitlistManager:
    return WaitlistManager(db, notifier)


@router.post("", status_code=status.HTTP_201_CREATED, response_model=WaitlistEntryResponse)
def submit_entry(
        body: WaitlistCreate,
        ctx: TenantContext = Depends(get_tenant_context),
        manager: WaitlistManager = Depends(get_waitlist_manager)
):
    customer_id = body.customer_id
    if customer_id is None:
        if ctx.role != Role.CUSTOMER:
            raise ValidationError("customer_id is required when adding a customer to the waitlist")
        customer_id = ctx.principal_id

    entry = manager.submit(
        ctx,
        customer_id=customer_id,
        service_id=body.service_id,
        date_range_start=body.date_range_start,
        date_range_end=body.date_range_end,
        preferred_time_of_day=body.preferred_time_of_day,
        preferred_weekdays=body.preferred_weekdays,
        preferred_staff_id=body.preferred_staff_id,
        customer_notes=body.customer_notes,
        auto_expire_days=body.auto_expire_days,
    )
    return entry.to_dict()


@router.delete("/{entry_id}", response_model=WaitlistEntryResponse)
def withdraw_entry(
        entry_id: UUID = Path(...),
        ctx: TenantContext = Depends(get_tenant_context),
        manager: WaitlistManager = Depends(get_waitlist_manager)
):
    return manager.withdraw(ctx, entry_id).to_dict()


@router.get("", response_model=List[WaitlistEntryResponse])
def list_entries(
        status: Optional[str] = Query(None, description="active, notified, expired, booked or cancelled"),
        customer_id: Optional[UUID] = Query(None),
        ctx: TenantContext = Depends(get_tenant_context),
        manager: WaitlistManager = Depends(get_waitlist_manager)
):
    return [entry.to_dict() for entry in manager.list_entries(ctx, status=status, customer_id=customer_id)]


@router.post("/match", response_model=List[WaitlistEntryResponse])
def match_freed_slot(
        body: WaitlistMatchRequest,
        ctx: TenantContext = Depends(get_tenant_context),
        manager: WaitlistManager = Depends(get_waitlist_manager)
):
    """Entries matching a freed interval, oldest first. Staff only."""
    matched = manager.match_new_slot(ctx, body.staff_id, body.starts_at, body.ends_at, body.service_ids)
    return [entry.to_dict() for entry in matched]
