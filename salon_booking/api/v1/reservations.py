# ============================================================================
# salon_booking/api/v1/reservations.py
# Holding, confirming and releasing slots
# ============================================================================
from fastapi import APIRouter, Depends, Path, status
from sqlalchemy.orm import Session
from uuid import UUID

from salon_booking.api.dependencies import get_notifier, get_payment_processor, get_tenant_context
from salon_booking.config.database import get_db
from salon_booking.core.exceptions import ValidationError
from salon_booking.core.tenancy import Role, TenantContext
from salon_booking.schemas.booking import ConfirmRequest, ReservationCreate
from salon_booking.services.appointment.appointment_query_service import AppointmentQueryService
from salon_booking.services.collaborators.notifications import NotificationDispatcher
from salon_booking.services.collaborators.payment import PaymentProcessor
from salon_booking.services.reservation.reservation_manager import ReservationManager

router = APIRouter(prefix="/reservations", tags=["reservations"])


def get_reservation_manager(
        db: Session = Depends(get_db),
        payment_processor: PaymentProcessor = Depends(get_payment_processor),
        notifier: NotificationDispatcher = Depends(get_notifier),
) -> ReservationManager:
    return ReservationManager(db, payment_processor, notifier)


@router.post("", status_code=status.HTTP_201_CREATED)
def create_reservation(
        body: ReservationCreate,
        ctx: TenantContext = Depends(get_tenant_context),
        manager: ReservationManager = Depends(get_reservation_manager)
):
    """
    Hold a slot. Returns 409 when the slot was taken in the meantime;
    re-query availability before trying again.
    """
    customer_id = body.customer_id
    if customer_id is None:
        if ctx.role != Role.CUSTOMER:
            raise ValidationError("customer_id is required when booking on behalf of a customer")
        customer_id = ctx.principal_id

    appointment = manager.reserve(
        ctx,
        staff_id=body.staff_id,
        starts_at=body.starts_at,
        service_ids=body.service_ids,
        customer_id=customer_id,
        booked_via=body.booked_via,
        customer_notes=body.customer_notes,
    )
    return AppointmentQueryService.serialize_appointment(appointment, detailed=True)


@router.post("/{appointment_id}/confirm")
def confirm_reservation(
        body: ConfirmRequest = ConfirmRequest(),
        appointment_id: UUID = Path(..., description="The reservation ID"),
        ctx: TenantContext = Depends(get_tenant_context),
        manager: ReservationManager = Depends(get_reservation_manager)
):
    """Confirm a hold. Returns 410 when the hold has expired."""
    appointment = manager.confirm(ctx, appointment_id, auto_confirm=body.auto_confirm)
    return AppointmentQueryService.serialize_appointment(appointment, detailed=True)


@router.post("/{appointment_id}/release")
def release_reservation(
        appointment_id: UUID = Path(..., description="The reservation ID"),
        ctx: TenantContext = Depends(get_tenant_context),
        manager: ReservationManager = Depends(get_reservation_manager)
):
    appointment = manager.release(ctx, appointment_id)
    return AppointmentQueryService.serialize_appointment(appointment)
