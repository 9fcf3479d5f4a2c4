# ============================================================================
# salon_booking/api/v1/appointments.py
# Appointment lookup and lifecycle - thin HTTP layer
# ============================================================================
from fastapi import APIRouter, Depends, Query, Path
from sqlalchemy.orm import Session
from datetime import date
from typing import Optional
from uuid import UUID

from salon_booking.api.dependencies import (
    get_freed_slot_publisher,
    get_notifier,
    get_payment_processor,
    get_tenant_context,
)
from salon_booking.config.database import get_db
from salon_booking.core.tenancy import TenantContext
from salon_booking.schemas.booking import (
    CancelRequest,
    CancellationResponse,
    DepositPaidRequest,
    RescheduleRequest,
    TransitionRequest,
)
from salon_booking.services.appointment.appointment_query_service import AppointmentQueryService
from salon_booking.services.appointment.appointment_state_machine import AppointmentStateMachine
from salon_booking.services.collaborators.notifications import FreedSlotPublisher, NotificationDispatcher
from salon_booking.services.collaborators.payment import PaymentProcessor

router = APIRouter(prefix="/appointments", tags=["appointments"])


def get_state_machine(
        db: Session = Depends(get_db),
        payment_processor: PaymentProcessor = Depends(get_payment_processor),
        notifier: NotificationDispatcher = Depends(get_notifier),
        freed_slot_publisher: FreedSlotPublisher = Depends(get_freed_slot_publisher),
) -> AppointmentStateMachine:
    return AppointmentStateMachine(db, payment_processor, notifier, freed_slot_publisher)


@router.get("")
def list_appointments(
        start_date: Optional[date] = Query(None, description="Filter appointments on or after this date"),
        end_date: Optional[date] = Query(None, description="Filter appointments on or before this date"),
        status: Optional[str] = Query(None, description="Filter by status"),
        staff_id: Optional[UUID] = Query(None, description="Filter by staff member"),
        customer_id: Optional[UUID] = Query(None, description="Filter by customer"),
        skip: int = Query(0, ge=0, description="Number of records to skip"),
        limit: int = Query(50, ge=1, le=100, description="Number of records to return"),
        ctx: TenantContext = Depends(get_tenant_context),
        db: Session = Depends(get_db)
):
    """Appointments of the caller's salon. Customers only see their own."""
    return AppointmentQueryService.list_appointments(
        db=db,
        ctx=ctx,
        start_date=start_date,
        end_date=end_date,
        status=status,
        staff_id=staff_id,
        customer_id=customer_id,
        skip=skip,
        limit=limit
    )


@router.get("/{appointment_id}")
def get_appointment(
        appointment_id: UUID = Path(..., description="The appointment ID"),
        ctx: TenantContext = Depends(get_tenant_context),
        db: Session = Depends(get_db)
):
    return AppointmentQueryService.get_appointment_by_id(db, ctx, appointment_id)


@router.post("/{appointment_id}/cancel", response_model=CancellationResponse)
def cancel_appointment(
        body: CancelRequest = CancelRequest(),
        appointment_id: UUID = Path(...),
        ctx: TenantContext = Depends(get_tenant_context),
        machine: AppointmentStateMachine = Depends(get_state_machine)
):
    result = machine.cancel(
        ctx,
        appointment_id,
        reason=body.reason,
        apply_no_show_policy=body.apply_no_show_policy,
    )
    return CancellationResponse(
        appointment=AppointmentQueryService.serialize_appointment(result.appointment, detailed=True),
        within_cutoff=result.within_cutoff,
    )


@router.post("/{appointment_id}/reschedule")
def reschedule_appointment(
        body: RescheduleRequest,
        appointment_id: UUID = Path(...),
        ctx: TenantContext = Depends(get_tenant_context),
        machine: AppointmentStateMachine = Depends(get_state_machine)
):
    appointment = machine.reschedule(ctx, appointment_id, body.starts_at, new_staff_id=body.staff_id)
    return AppointmentQueryService.serialize_appointment(appointment, detailed=True)


@router.post("/{appointment_id}/transition")
def transition_appointment(
        body: TransitionRequest,
        appointment_id: UUID = Path(...),
        ctx: TenantContext = Depends(get_tenant_context),
        machine: AppointmentStateMachine = Depends(get_state_machine)
):
    """Check-in, start, complete, no-show and the other lifecycle steps."""
    appointment = machine.transition(
        ctx,
        appointment_id,
        body.target,
        reason=body.reason,
        payment_reference=body.payment_reference,
        apply_no_show_policy=body.apply_no_show_policy,
    )
    return AppointmentQueryService.serialize_appointment(appointment, detailed=True)


@router.post("/{appointment_id}/deposit-paid")
def record_deposit_payment(
        body: DepositPaidRequest = DepositPaidRequest(),
        appointment_id: UUID = Path(...),
        ctx: TenantContext = Depends(get_tenant_context),
        machine: AppointmentStateMachine = Depends(get_state_machine)
):
    """Called by the payment side once a pending deposit has been captured."""
    appointment = machine.record_deposit_payment(ctx, appointment_id, body.payment_reference)
    return AppointmentQueryService.serialize_appointment(appointment, detailed=True)
