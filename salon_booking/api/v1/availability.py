# ============================================================================
# salon_booking/api/v1/availability.py
# Slot lookup - read-only
# ============================================================================
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from datetime import date
from typing import List
from uuid import UUID

from salon_booking.api.dependencies import get_tenant_context
from salon_booking.config.database import get_db
from salon_booking.core.tenancy import TenantContext
from salon_booking.schemas.booking import AvailabilityResponse, DaySlotsResponse, SlotResponse
from salon_booking.services.availability.availability_service import ANY_STAFF, AvailabilityCalculator

router = APIRouter(prefix="/availability", tags=["availability"])


@router.get("/slots", response_model=AvailabilityResponse)
def get_slots(
        service_ids: List[UUID] = Query(..., description="Services to book together"),
        date_from: date = Query(..., description="First salon-local date"),
        date_to: date = Query(..., description="Last salon-local date (inclusive)"),
        staff_id: str = Query(ANY_STAFF, description="Staff member ID or 'any'"),
        ctx: TenantContext = Depends(get_tenant_context),
        db: Session = Depends(get_db)
):
    """Available start times per day for the requested services."""
    slots_by_day = AvailabilityCalculator(db).compute_slots(ctx, service_ids, staff_id, date_from, date_to)

    return AvailabilityResponse(
        salon_id=ctx.salon_id,
        staff_id=staff_id,
        service_ids=service_ids,
        days=[
            DaySlotsResponse(date=day, slots=[SlotResponse(**slot.to_dict()) for slot in slots])
            for day, slots in sorted(slots_by_day.items())
        ],
    )


@router.get("/next")
def get_next_available_slot(
        service_ids: List[UUID] = Query(...),
        staff_id: str = Query(ANY_STAFF),
        ctx: TenantContext = Depends(get_tenant_context),
        db: Session = Depends(get_db)
):
    """Earliest bookable slot within the booking horizon, or null."""
    slot = AvailabilityCalculator(db).find_next_available_slot(ctx, service_ids, staff_id)
    return {"slot": slot.to_dict() if slot else None}
