# salon_booking/services/reservation/reservation_manager.py
"""
Time-boxed holds on slots.

reserve() is the only place appointments are created. Overlap checking and
insertion happen in one transaction after the staff row is locked; the
database exclusion constraint catches anything that slips past.
"""
import logging
import secrets
from datetime import datetime, timedelta, timezone
from decimal import Decimal, ROUND_HALF_UP
from typing import List, Optional, Sequence
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from salon_booking.core.exceptions import (
    ConflictError,
    InvalidTransition,
    ReservationExpired,
    SchedulingError,
    ValidationError,
)
from salon_booking.core.tenancy import Role, TenantContext, TenantScopeGuard
from salon_booking.models.appointment import Appointment, AppointmentService, AppointmentStatus
from salon_booking.models.salon import Salon
from salon_booking.models.schedule import BlockedTime
from salon_booking.models.service import Service
from salon_booking.models.staff import StaffMember
from salon_booking.services.appointment.transitions import apply_transition
from salon_booking.services.availability.availability_service import (
    AvailabilityCalculator,
    blocking_clause,
    stale_hold_clause,
)
from salon_booking.services.booking_rules.booking_rules_engine import BookingRequest, BookingRulesEngine
from salon_booking.services.catalog.catalog_service import CatalogService
from salon_booking.services.collaborators.notifications import CeleryNotificationDispatcher, NotificationDispatcher
from salon_booking.services.collaborators.payment import HttpPaymentProcessor, PaymentProcessor
from salon_booking.services.scheduling.time_ranges import (
    contains_range,
    day_window,
    ensure_utc,
    local_date,
    minute_of_day,
    salon_zone,
)
from salon_booking.services.scheduling.working_hours_resolver import WorkingHoursResolver

logger = logging.getLogger(__name__)

CENTS = Decimal("0.01")
CONFIRMATION_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
SYSTEM_ACTOR = "system"
EXPIRED_REASON = "expired"


def generate_confirmation_number(length: int = 8) -> str:
    return "".join(secrets.choice(CONFIRMATION_ALPHABET) for _ in range(length))


def included_tax(price: Decimal, rate_percent: Optional[Decimal]) -> Decimal:
    """VAT contained in a gross CHF price"""
    if not rate_percent:
        return Decimal("0.00")
    rate = Decimal(rate_percent)
    return (Decimal(price) * rate / (Decimal(100) + rate)).quantize(CENTS, rounding=ROUND_HALF_UP)


class ReservationManager:
    """Creates, confirms, releases and expires reservations"""

    def __init__(
            self,
            db: Session,
            payment_processor: Optional[PaymentProcessor] = None,
            notifier: Optional[NotificationDispatcher] = None,
    ):
        self.db = db
        self.payment_processor = payment_processor or HttpPaymentProcessor()
        self.notifier = notifier or CeleryNotificationDispatcher()
        self.resolver = WorkingHoursResolver(db)

    # ------------------------------------------------------------------
    # Reserve
    # ------------------------------------------------------------------

    def reserve(
            self,
            ctx: TenantContext,
            staff_id: UUID,
            starts_at: datetime,
            service_ids: Sequence[UUID],
            customer_id: UUID,
            now: Optional[datetime] = None,
            booked_via: str = "online",
            customer_notes: Optional[str] = None,
    ) -> Appointment:
        """
        Place a hold on [starts_at, starts_at + total duration) for the staff member.

        Raises PolicyViolation or ValidationError before anything is written,
        ConflictError when the interval is no longer free.
        """
        try:
            appointment = self.create_hold(
                ctx, staff_id, starts_at, service_ids, customer_id, now,
                booked_via=booked_via, customer_notes=customer_notes,
            )
            self.db.commit()
        except SchedulingError:
            self.db.rollback()
            raise
        except IntegrityError as e:
            self.db.rollback()
            logger.warning(f"Reservation for staff {staff_id} at {starts_at} rejected by database: {e.orig}")
            raise ConflictError()

        self.db.refresh(appointment)
        logger.info(
            f"Reserved appointment {appointment.id} for staff {appointment.staff_id} "
            f"{appointment.starts_at} - {appointment.ends_at} until {appointment.reserved_until}"
        )
        return appointment

    def create_hold(
            self,
            ctx: TenantContext,
            staff_id: UUID,
            starts_at: datetime,
            service_ids: Sequence[UUID],
            customer_id: UUID,
            now: Optional[datetime] = None,
            booked_via: str = "online",
            customer_notes: Optional[str] = None,
            exclude_appointment_id: Optional[UUID] = None,
            rescheduled_from_id: Optional[UUID] = None,
    ) -> Appointment:
        """Insert the hold and its snapshots in the current transaction without committing."""
        now = ensure_utc(now or datetime.now(timezone.utc))
        starts_at = ensure_utc(starts_at)

        TenantScopeGuard.ensure_customer_access(ctx, customer_id)
        salon = CatalogService.get_salon(self.db, ctx)
        rules = CatalogService.get_rules(self.db, salon.id)
        services = CatalogService.get_services(self.db, ctx, service_ids)

        staff = TenantScopeGuard.load(self.db, ctx, StaffMember, staff_id, "Staff member")
        if not staff.is_active or not staff.can_perform([service.id for service in services]):
            raise ValidationError("Staff member cannot perform the requested services")
        if ctx.role == Role.CUSTOMER and not staff.is_bookable:
            raise ValidationError("Staff member is not available for online booking")

        duration = AvailabilityCalculator.compute_duration(staff, services, rules)
        ends_at = starts_at + timedelta(minutes=duration.total_minutes)

        total_price = sum((Decimal(service.price_chf) for service in services), Decimal("0"))
        deposit_amount = BookingRulesEngine.resolve_deposit_amount(rules, services, total_price)

        request = BookingRequest(
            starts_at=starts_at,
            service_ids=[service.id for service in services],
            salon_bookings_on_day=self._salon_bookings_on_day(salon, starts_at, now, exclude_appointment_id),
            deposit_required=deposit_amount is not None,
            deposit_amount_chf=deposit_amount,
        )
        BookingRulesEngine.validate(
            salon.id,
            rules,
            request,
            now,
            customer_existing_reservation_count=self.count_active_reservations(
                ctx, customer_id, now, exclude_appointment_id=exclude_appointment_id
            ),
        )

        self._ensure_within_working_hours(ctx, salon, staff, starts_at, ends_at)

        # Serialize competing reservations for this staff member
        self.db.execute(select(StaffMember.id).where(StaffMember.id == staff.id).with_for_update())

        expired = self._expire_overlapping_stale_holds(staff.id, starts_at, ends_at, now)
        if expired:
            logger.info(f"Expired {expired} stale hold(s) overlapping {starts_at} for staff {staff.id}")

        self._ensure_no_overlap(salon.id, staff.id, starts_at, ends_at, now, exclude_appointment_id)

        appointment = Appointment(
            salon_id=salon.id,
            customer_id=customer_id,
            staff_id=staff.id,
            starts_at=starts_at,
            ends_at=ends_at,
            buffer_before_minutes=duration.buffer_before_minutes,
            buffer_after_minutes=duration.buffer_after_minutes,
            total_duration_minutes=duration.total_minutes,
            status=AppointmentStatus.RESERVED.value,
            reserved_until=now + timedelta(minutes=rules.reservation_timeout_minutes),
            booked_via=booked_via,
            confirmation_number=generate_confirmation_number(),
            total_price_chf=total_price.quantize(CENTS),
            deposit_required=deposit_amount is not None,
            deposit_amount_chf=deposit_amount,
            customer_notes=customer_notes,
            rescheduled_from_id=rescheduled_from_id,
        )
        self.db.add(appointment)
        self.db.flush()

        appointment.total_tax_chf = self._add_snapshots(appointment, staff, services)
        self.db.flush()
        return appointment

    # ------------------------------------------------------------------
    # Confirm / release
    # ------------------------------------------------------------------

    def confirm(
            self,
            ctx: TenantContext,
            appointment_id: UUID,
            now: Optional[datetime] = None,
            auto_confirm: Optional[bool] = None,
    ) -> Appointment:
        """
        Turn a hold into a booking.

        The result is confirmed, requested (salon approves manually) or
        pending_deposit (deposit could not be captured yet).
        """
        now = ensure_utc(now or datetime.now(timezone.utc))
        appointment = TenantScopeGuard.load(self.db, ctx, Appointment, appointment_id, "Appointment")
        TenantScopeGuard.ensure_customer_access(ctx, appointment.customer_id)

        # The sweep may already have cancelled the hold
        if appointment.status == AppointmentStatus.CANCELLED.value and appointment.cancellation_reason == EXPIRED_REASON:
            logger.info(f"Confirm attempted on swept reservation {appointment.id}")
            raise ReservationExpired()

        if appointment.status != AppointmentStatus.RESERVED.value:
            raise InvalidTransition(appointment.status, AppointmentStatus.CONFIRMED.value)

        if ensure_utc(appointment.reserved_until) < now:
            self._expire(appointment, now)
            self.db.commit()
            logger.info(f"Confirm attempted on expired reservation {appointment.id}")
            raise ReservationExpired()

        BookingRulesEngine.check_deposit(appointment.deposit_required, appointment.deposit_amount_chf)

        salon = CatalogService.get_salon(self.db, ctx)
        if auto_confirm is None:
            auto_confirm = salon.auto_confirm_bookings and not salon.require_manual_approval

        if auto_confirm:
            self.settle_deposit_and_confirm(appointment, now)
        else:
            apply_transition(appointment, AppointmentStatus.REQUESTED, now)

        self.db.commit()
        self.db.refresh(appointment)

        logger.info(f"Reservation {appointment.id} moved to {appointment.status}")
        self.notify(appointment, f"appointment.{appointment.status}")
        return appointment

    def settle_deposit_and_confirm(self, appointment: Appointment, now: datetime) -> None:
        """Confirm, or park in pending_deposit when the deposit charge does not go through."""
        if appointment.deposit_required and not appointment.deposit_paid:
            result = self.payment_processor.charge_deposit(appointment, Decimal(appointment.deposit_amount_chf))
            if not result.success:
                logger.warning(f"Deposit capture failed for appointment {appointment.id}: {result.error}")
                apply_transition(appointment, AppointmentStatus.PENDING_DEPOSIT, now)
                return
            appointment.deposit_paid = True
            appointment.deposit_payment_reference = result.reference

        apply_transition(appointment, AppointmentStatus.CONFIRMED, now)

    def release(self, ctx: TenantContext, appointment_id: UUID, now: Optional[datetime] = None) -> Appointment:
        """Customer abandoned the booking flow; give the slot back immediately."""
        now = ensure_utc(now or datetime.now(timezone.utc))
        appointment = TenantScopeGuard.load(self.db, ctx, Appointment, appointment_id, "Appointment")
        TenantScopeGuard.ensure_customer_access(ctx, appointment.customer_id)

        if appointment.status != AppointmentStatus.RESERVED.value:
            raise ValidationError("Only reservations can be released")

        apply_transition(appointment, AppointmentStatus.CANCELLED, now)
        appointment.cancelled_by = str(ctx.principal_id) if ctx.principal_id else ctx.role.value
        appointment.cancellation_reason = "released"
        self.db.commit()
        self.db.refresh(appointment)

        logger.info(f"Reservation {appointment.id} released")
        return appointment

    # ------------------------------------------------------------------
    # Sweep / counters
    # ------------------------------------------------------------------

    def expire_stale(self, now: Optional[datetime] = None) -> int:
        """
        Cancel every hold whose reserved_until has passed.

        The WHERE clause repeats the status check, so concurrent sweeps
        never touch the same row twice.
        """
        now = ensure_utc(now or datetime.now(timezone.utc))
        result = self.db.execute(
            update(Appointment)
            .where(stale_hold_clause(now))
            .values(
                status=AppointmentStatus.CANCELLED.value,
                reserved_until=None,
                cancelled_at=now,
                cancelled_by=SYSTEM_ACTOR,
                cancellation_reason=EXPIRED_REASON,
            )
            .execution_options(synchronize_session=False)
        )
        self.db.commit()

        count = result.rowcount or 0
        if count:
            logger.info(f"Expired {count} stale reservation(s)")
        return count

    def count_active_reservations(
            self,
            ctx: TenantContext,
            customer_id: UUID,
            now: Optional[datetime] = None,
            exclude_appointment_id: Optional[UUID] = None,
    ) -> int:
        """Live holds the customer currently has in this salon"""
        now = ensure_utc(now or datetime.now(timezone.utc))
        query = self.db.query(func.count(Appointment.id)).filter(
            Appointment.salon_id == ctx.salon_id,
            Appointment.customer_id == customer_id,
            Appointment.status == AppointmentStatus.RESERVED.value,
            Appointment.reserved_until >= now,
        )
        if exclude_appointment_id is not None:
            query = query.filter(Appointment.id != exclude_appointment_id)
        return query.scalar() or 0

    def notify(self, appointment: Appointment, event_type: str) -> None:
        self.notifier.dispatch(event_type, appointment.salon_id, {
            "appointment_id": str(appointment.id),
            "customer_id": str(appointment.customer_id),
            "staff_id": str(appointment.staff_id),
            "starts_at": ensure_utc(appointment.starts_at).isoformat(),
            "status": appointment.status,
            "confirmation_number": appointment.confirmation_number,
        })

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _expire(self, appointment: Appointment, now: datetime) -> None:
        apply_transition(appointment, AppointmentStatus.CANCELLED, now)
        appointment.cancelled_by = SYSTEM_ACTOR
        appointment.cancellation_reason = EXPIRED_REASON

    def _salon_bookings_on_day(self, salon: Salon, starts_at: datetime, now: datetime, exclude_id=None) -> int:
        tz = salon_zone(salon.timezone)
        day_start, day_end = day_window(local_date(starts_at, tz), tz)
        query = self.db.query(func.count(Appointment.id)).filter(
            Appointment.salon_id == salon.id,
            Appointment.starts_at >= day_start,
            Appointment.starts_at < day_end,
            blocking_clause(now),
        )
        if exclude_id is not None:
            query = query.filter(Appointment.id != exclude_id)
        return query.scalar() or 0

    def _ensure_within_working_hours(self, ctx, salon: Salon, staff: StaffMember, starts_at, ends_at) -> None:
        tz = salon_zone(salon.timezone)
        day = local_date(starts_at, tz)
        open_ranges = self.resolver.resolve_many(ctx, [staff.id], day, day)[staff.id].get(day, [])
        start_minute = minute_of_day(starts_at, day, tz)
        end_minute = minute_of_day(ends_at, day, tz)
        if not contains_range(open_ranges, start_minute, end_minute):
            raise ConflictError("Slot is outside the salon's opening hours or the staff member's working hours")

        blocked = self.db.query(BlockedTime.id).filter(
            BlockedTime.salon_id == salon.id,
            (BlockedTime.staff_id.is_(None)) | (BlockedTime.staff_id == staff.id),
            BlockedTime.starts_at < ends_at,
            BlockedTime.ends_at > starts_at,
        ).first()
        if blocked:
            raise ConflictError("Slot overlaps a blocked time")

    def _expire_overlapping_stale_holds(self, staff_id, starts_at, ends_at, now) -> int:
        result = self.db.execute(
            update(Appointment)
            .where(
                Appointment.staff_id == staff_id,
                Appointment.starts_at < ends_at,
                Appointment.ends_at > starts_at,
                stale_hold_clause(now),
            )
            .values(
                status=AppointmentStatus.CANCELLED.value,
                reserved_until=None,
                cancelled_at=now,
                cancelled_by=SYSTEM_ACTOR,
                cancellation_reason=EXPIRED_REASON,
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount or 0

    def _ensure_no_overlap(self, salon_id, staff_id, starts_at, ends_at, now, exclude_id=None) -> None:
        query = self.db.query(Appointment.id).filter(
            Appointment.salon_id == salon_id,
            Appointment.staff_id == staff_id,
            Appointment.starts_at < ends_at,
            Appointment.ends_at > starts_at,
            blocking_clause(now),
        )
        if exclude_id is not None:
            query = query.filter(Appointment.id != exclude_id)
        if query.first() is not None:
            raise ConflictError()

    def _add_snapshots(self, appointment: Appointment, staff: StaffMember, services: List[Service]) -> Decimal:
        total_tax = Decimal("0.00")
        for position, service in enumerate(services):
            tax = included_tax(service.price_chf, service.tax_rate_percent)
            total_tax += tax
            self.db.add(AppointmentService(
                salon_id=appointment.salon_id,
                appointment_id=appointment.id,
                service_id=service.id,
                snapshot_service_name=service.name,
                snapshot_price_chf=service.price_chf,
                snapshot_tax_rate_percent=service.tax_rate_percent,
                snapshot_tax_chf=tax,
                snapshot_duration_minutes=CatalogService.service_duration(staff, service),
                sort_order=position,
            ))
        return total_tax
