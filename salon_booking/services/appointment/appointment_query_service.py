# ============================================================================
# salon_booking/services/appointment/appointment_query_service.py
# Read side for appointments - no FastAPI dependencies
# ============================================================================
from sqlalchemy.orm import Session
from datetime import date, timedelta
from typing import Optional, Dict, Any
from uuid import UUID

from salon_booking.core.exceptions import ValidationError
from salon_booking.core.tenancy import Role, TenantContext, TenantScopeGuard
from salon_booking.models.appointment import Appointment, AppointmentStatus
from salon_booking.services.catalog.catalog_service import CatalogService
from salon_booking.services.scheduling.time_ranges import day_window, ensure_utc, salon_zone


class AppointmentQueryService:
    """Listing and lookup of appointments within one salon."""

    @staticmethod
    def list_appointments(
            db: Session,
            ctx: TenantContext,
            start_date: Optional[date] = None,
            end_date: Optional[date] = None,
            status: Optional[str] = None,
            staff_id: Optional[UUID] = None,
            customer_id: Optional[UUID] = None,
            skip: int = 0,
            limit: int = 50
    ) -> Dict[str, Any]:
        """Get paginated list of appointments with filters. Dates are salon-local."""
        salon = CatalogService.get_salon(db, ctx)
        tz = salon_zone(salon.timezone)
        query = db.query(Appointment).filter(Appointment.salon_id == salon.id)

        if ctx.role == Role.CUSTOMER:
            customer_id = ctx.principal_id
        if start_date:
            query = query.filter(Appointment.starts_at >= day_window(start_date, tz)[0])
        if end_date:
            query = query.filter(Appointment.starts_at < day_window(end_date + timedelta(days=1), tz)[0])
        if status:
            if status not in {s.value for s in AppointmentStatus}:
                raise ValidationError(f"Unknown appointment status '{status}'")
            query = query.filter(Appointment.status == status)
        if staff_id:
            query = query.filter(Appointment.staff_id == staff_id)
        if customer_id:
            query = query.filter(Appointment.customer_id == customer_id)

        query = query.order_by(Appointment.starts_at.asc(), Appointment.id.asc())
        total = query.count()
        appointments = query.offset(skip).limit(limit).all()

        return {
            "salon_id": str(salon.id),
            "total_appointments": total,
            "page": {
                "skip": skip,
                "limit": limit,
                "total_pages": (total + limit - 1) // limit if total > 0 else 0
            },
            "filters": {
                "start_date": start_date.isoformat() if start_date else None,
                "end_date": end_date.isoformat() if end_date else None,
                "status": status,
                "staff_id": str(staff_id) if staff_id else None,
                "customer_id": str(customer_id) if customer_id else None
            },
            "appointments": [AppointmentQueryService.serialize_appointment(appt) for appt in appointments]
        }

    @staticmethod
    def get_appointment_by_id(
            db: Session,
            ctx: TenantContext,
            appointment_id: UUID
    ) -> Dict[str, Any]:
        """Get a single appointment with its service snapshots."""
        appointment = TenantScopeGuard.load(db, ctx, Appointment, appointment_id, "Appointment")
        TenantScopeGuard.ensure_customer_access(ctx, appointment.customer_id)
        return AppointmentQueryService.serialize_appointment(appointment, detailed=True)

    @staticmethod
    def serialize_appointment(appointment: Appointment, detailed: bool = False) -> Dict[str, Any]:
        """Convert Appointment model to dictionary."""
        base = {
            "id": str(appointment.id),
            "salon_id": str(appointment.salon_id),
            "customer_id": str(appointment.customer_id),
            "staff_id": str(appointment.staff_id),
            "starts_at": _iso(appointment.starts_at),
            "ends_at": _iso(appointment.ends_at),
            "total_duration_minutes": appointment.total_duration_minutes,
            "status": appointment.status,
            "reserved_until": _iso(appointment.reserved_until),
            "confirmation_number": appointment.confirmation_number,
            "booked_via": appointment.booked_via,
            "total_price_chf": str(appointment.total_price_chf),
            "deposit_required": appointment.deposit_required,
            "deposit_amount_chf": str(appointment.deposit_amount_chf) if appointment.deposit_amount_chf is not None else None,
            "deposit_paid": appointment.deposit_paid,
        }

        if detailed:
            base.update({
                "buffer_before_minutes": appointment.buffer_before_minutes,
                "buffer_after_minutes": appointment.buffer_after_minutes,
                "total_tax_chf": str(appointment.total_tax_chf),
                "customer_notes": appointment.customer_notes,
                "confirmed_at": _iso(appointment.confirmed_at),
                "checked_in_at": _iso(appointment.checked_in_at),
                "started_at": _iso(appointment.started_at),
                "completed_at": _iso(appointment.completed_at),
                "cancelled_at": _iso(appointment.cancelled_at),
                "cancelled_by": appointment.cancelled_by,
                "cancellation_reason": appointment.cancellation_reason,
                "cancelled_within_cutoff": appointment.cancelled_within_cutoff,
                "no_show_at": _iso(appointment.no_show_at),
                "no_show_charged": appointment.no_show_charged,
                "rescheduled_from_id": str(appointment.rescheduled_from_id) if appointment.rescheduled_from_id else None,
                "services": [
                    {
                        "service_id": str(line.service_id),
                        "name": line.snapshot_service_name,
                        "price_chf": str(line.snapshot_price_chf),
                        "tax_rate_percent": str(line.snapshot_tax_rate_percent) if line.snapshot_tax_rate_percent is not None else None,
                        "tax_chf": str(line.snapshot_tax_chf),
                        "duration_minutes": line.snapshot_duration_minutes,
                    }
                    for line in appointment.services
                ],
            })

        return base


def _iso(value) -> Optional[str]:
    return ensure_utc(value).isoformat() if value else None
