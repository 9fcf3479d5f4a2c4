# salon_booking/services/appointment/appointment_state_machine.py
"""
Appointment lifecycle after the reservation step.

Every status change goes through transitions.apply_transition, which
consults ALLOWED_TRANSITIONS exactly once per attempt.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from salon_booking.core.exceptions import AuthorizationError, ConflictError, InvalidTransition, SchedulingError
from salon_booking.core.tenancy import STAFF_ROLES, Role, TenantContext, TenantScopeGuard
from salon_booking.models.appointment import Appointment, AppointmentStatus
from salon_booking.models.salon import NoShowPolicy
from salon_booking.services.appointment.transitions import ALLOWED_TRANSITIONS, apply_transition
from salon_booking.services.booking_rules.booking_rules_engine import BookingRulesEngine
from salon_booking.services.catalog.catalog_service import CatalogService
from salon_booking.services.collaborators.notifications import (
    CeleryFreedSlotPublisher,
    CeleryNotificationDispatcher,
    FreedSlotPublisher,
    NotificationDispatcher,
)
from salon_booking.services.collaborators.payment import HttpPaymentProcessor, PaymentProcessor
from salon_booking.services.reservation.reservation_manager import ReservationManager
from salon_booking.services.scheduling.time_ranges import ensure_utc

logger = logging.getLogger(__name__)

S = AppointmentStatus


@dataclass
class CancellationResult:
    appointment: Appointment
    within_cutoff: bool = False


class AppointmentStateMachine:
    """Drives appointments through approval, deposit, visit and cancellation"""

    def __init__(
            self,
            db: Session,
            payment_processor: Optional[PaymentProcessor] = None,
            notifier: Optional[NotificationDispatcher] = None,
            freed_slot_publisher: Optional[FreedSlotPublisher] = None,
    ):
        self.db = db
        self.payment_processor = payment_processor or HttpPaymentProcessor()
        self.notifier = notifier or CeleryNotificationDispatcher()
        self.freed_slot_publisher = freed_slot_publisher or CeleryFreedSlotPublisher()
        self.reservations = ReservationManager(db, self.payment_processor, self.notifier)

    def transition(self, ctx: TenantContext, appointment_id: UUID, target, now: Optional[datetime] = None,
                   **metadata):
        """Generic entry point; routes to the operation that owns the target status."""
        target = S(target)
        appointment = self._load(ctx, appointment_id)
        current = S(appointment.status)
        if target not in ALLOWED_TRANSITIONS[current]:
            raise InvalidTransition(current.value, target.value)

        if target == S.CONFIRMED and current == S.RESERVED:
            return self.reservations.confirm(ctx, appointment_id, now, auto_confirm=metadata.get("auto_confirm"))
        if target == S.CONFIRMED and current == S.PENDING_DEPOSIT:
            return self.record_deposit_payment(ctx, appointment_id, metadata.get("payment_reference"), now)
        if target in (S.CONFIRMED, S.PENDING_DEPOSIT) and current == S.REQUESTED:
            return self.approve(ctx, appointment_id, now)
        if target == S.CHECKED_IN:
            return self.check_in(ctx, appointment_id, now)
        if target == S.IN_PROGRESS:
            return self.start(ctx, appointment_id, now)
        if target == S.COMPLETED:
            return self.complete(ctx, appointment_id, now)
        if target == S.CANCELLED:
            return self.cancel(
                ctx, appointment_id, now,
                cancelled_by=metadata.get("cancelled_by"),
                reason=metadata.get("reason"),
                apply_no_show_policy=metadata.get("apply_no_show_policy", False),
            ).appointment
        if target == S.NO_SHOW:
            return self.mark_no_show(ctx, appointment_id, now)

        TenantScopeGuard.require_role(ctx, *STAFF_ROLES)
        apply_transition(appointment, target, self._now(now))
        self.db.commit()
        self.db.refresh(appointment)
        return appointment

    def approve(self, ctx: TenantContext, appointment_id: UUID, now: Optional[datetime] = None) -> Appointment:
        """Staff accept a requested booking; the deposit is taken at this point."""
        TenantScopeGuard.require_role(ctx, *STAFF_ROLES)
        now = self._now(now)
        appointment = self._load(ctx, appointment_id)
        if appointment.status != S.REQUESTED.value:
            raise InvalidTransition(appointment.status, S.CONFIRMED.value)

        self.reservations.settle_deposit_and_confirm(appointment, now)
        self.db.commit()
        self.db.refresh(appointment)

        logger.info(f"Appointment {appointment.id} approved, now {appointment.status}")
        self.reservations.notify(appointment, f"appointment.{appointment.status}")
        return appointment

    def record_deposit_payment(
            self,
            ctx: TenantContext,
            appointment_id: UUID,
            payment_reference: Optional[str] = None,
            now: Optional[datetime] = None,
    ) -> Appointment:
        """Callback from the payment side once the deposit has been captured."""
        TenantScopeGuard.require_role(ctx, *STAFF_ROLES)
        now = self._now(now)
        appointment = self._load(ctx, appointment_id)
        if appointment.status != S.PENDING_DEPOSIT.value:
            raise InvalidTransition(appointment.status, S.CONFIRMED.value)

        appointment.deposit_paid = True
        appointment.deposit_payment_reference = payment_reference
        apply_transition(appointment, S.CONFIRMED, now)
        self.db.commit()
        self.db.refresh(appointment)

        logger.info(f"Deposit recorded for appointment {appointment.id} (ref={payment_reference})")
        self.reservations.notify(appointment, "appointment.confirmed")
        return appointment

    def check_in(self, ctx: TenantContext, appointment_id: UUID, now: Optional[datetime] = None) -> Appointment:
        return self._staff_transition(ctx, appointment_id, S.CHECKED_IN, now)

    def start(self, ctx: TenantContext, appointment_id: UUID, now: Optional[datetime] = None) -> Appointment:
        return self._staff_transition(ctx, appointment_id, S.IN_PROGRESS, now)

    def complete(self, ctx: TenantContext, appointment_id: UUID, now: Optional[datetime] = None) -> Appointment:
        return self._staff_transition(ctx, appointment_id, S.COMPLETED, now)

    def cancel(
            self,
            ctx: TenantContext,
            appointment_id: UUID,
            now: Optional[datetime] = None,
            cancelled_by: Optional[str] = None,
            reason: Optional[str] = None,
            apply_no_show_policy: bool = False,
    ) -> CancellationResult:
        """
        Cancel an appointment.

        Late cancellations of confirmed or checked-in appointments are flagged
        with within_cutoff=True. Passing apply_no_show_policy=True turns such a
        late cancellation into a no-show instead.
        """
        now = self._now(now)
        appointment = self._load(ctx, appointment_id)
        TenantScopeGuard.ensure_customer_access(ctx, appointment.customer_id)

        rules = CatalogService.get_rules(self.db, appointment.salon_id)
        if ctx.role == Role.CUSTOMER and not rules.allow_customer_cancellation:
            raise AuthorizationError("Customers cannot cancel appointments in this salon, please contact the salon")

        previous = S(appointment.status)
        if S.CANCELLED not in ALLOWED_TRANSITIONS[previous]:
            raise InvalidTransition(previous.value, S.CANCELLED.value)

        within_cutoff = previous in (S.CONFIRMED, S.CHECKED_IN) and \
            BookingRulesEngine.is_within_cancellation_cutoff(rules, appointment.starts_at, now)

        if within_cutoff and apply_no_show_policy:
            appointment = self._record_no_show(appointment, rules, now)
            return CancellationResult(appointment=appointment, within_cutoff=True)

        apply_transition(appointment, S.CANCELLED, now)
        appointment.cancelled_by = cancelled_by or self._actor(ctx)
        appointment.cancellation_reason = reason
        appointment.cancelled_within_cutoff = within_cutoff
        self.db.commit()
        self.db.refresh(appointment)

        logger.info(
            f"Appointment {appointment.id} cancelled from {previous.value} "
            f"by {appointment.cancelled_by} (within_cutoff={within_cutoff})"
        )
        self.reservations.notify(appointment, "appointment.cancelled")
        if previous != S.RESERVED:
            self.freed_slot_publisher.publish(appointment)

        return CancellationResult(appointment=appointment, within_cutoff=within_cutoff)

    def mark_no_show(self, ctx: TenantContext, appointment_id: UUID, now: Optional[datetime] = None) -> Appointment:
        TenantScopeGuard.require_role(ctx, *STAFF_ROLES)
        now = self._now(now)
        appointment = self._load(ctx, appointment_id)
        rules = CatalogService.get_rules(self.db, appointment.salon_id)
        return self._record_no_show(appointment, rules, now)

    def reschedule(
            self,
            ctx: TenantContext,
            appointment_id: UUID,
            new_starts_at: datetime,
            now: Optional[datetime] = None,
            new_staff_id: Optional[UUID] = None,
    ) -> Appointment:
        """
        Move an appointment to a new interval.

        The old appointment is cancelled with reason "rescheduled", the new
        slot is held and brought to the old appointment's status, all in
        one commit.
        """
        now = self._now(now)
        old = self._load(ctx, appointment_id)
        TenantScopeGuard.ensure_customer_access(ctx, old.customer_id)

        previous = S(old.status)
        if previous not in (S.RESERVED, S.REQUESTED, S.PENDING_DEPOSIT, S.CONFIRMED):
            raise InvalidTransition(previous.value, "rescheduled")

        try:
            apply_transition(old, S.CANCELLED, now)
            old.cancelled_by = self._actor(ctx)
            old.cancellation_reason = "rescheduled"
            self.db.flush()

            new = self.reservations.create_hold(
                ctx,
                new_staff_id or old.staff_id,
                new_starts_at,
                old.service_ids,
                old.customer_id,
                now,
                booked_via=old.booked_via,
                customer_notes=old.customer_notes,
                exclude_appointment_id=old.id,
                rescheduled_from_id=old.id,
            )

            if previous != S.RESERVED:
                if old.deposit_paid:
                    new.deposit_paid = True
                    new.deposit_payment_reference = old.deposit_payment_reference
                if previous == S.CONFIRMED and new.deposit_required and not new.deposit_paid:
                    self.reservations.settle_deposit_and_confirm(new, now)
                else:
                    apply_transition(new, previous, now)

            self.db.commit()
        except SchedulingError:
            self.db.rollback()
            raise
        except IntegrityError as e:
            self.db.rollback()
            logger.warning(f"Reschedule of appointment {appointment_id} rejected by database: {e.orig}")
            raise ConflictError()

        self.db.refresh(new)
        logger.info(f"Appointment {old.id} rescheduled to {new.id} at {new.starts_at}")
        self.reservations.notify(new, "appointment.rescheduled")
        if previous != S.RESERVED:
            self.freed_slot_publisher.publish(old)
        return new

    # ------------------------------------------------------------------

    def _staff_transition(self, ctx, appointment_id, target: AppointmentStatus, now) -> Appointment:
        TenantScopeGuard.require_role(ctx, *STAFF_ROLES)
        appointment = self._load(ctx, appointment_id)
        apply_transition(appointment, target, self._now(now))
        self.db.commit()
        self.db.refresh(appointment)
        logger.info(f"Appointment {appointment.id} moved to {appointment.status}")
        return appointment

    def _record_no_show(self, appointment: Appointment, rules, now: datetime) -> Appointment:
        """Transition to no_show and charge according to the salon policy."""
        apply_transition(appointment, S.NO_SHOW, now)
        self.db.flush()

        amount = self._no_show_amount(appointment, rules.no_show_policy)
        if amount is None:
            # Nothing to collect beyond what was already paid
            appointment.no_show_charged = rules.no_show_policy != NoShowPolicy.NONE.value and appointment.deposit_paid
        else:
            result = self.payment_processor.charge_no_show(appointment, amount)
            appointment.no_show_charged = result.success
            if not result.success:
                logger.error(f"No-show charge of CHF {amount} failed for appointment {appointment.id}: {result.error}")

        self.db.commit()
        self.db.refresh(appointment)
        logger.info(f"Appointment {appointment.id} marked no-show (charged={appointment.no_show_charged})")
        self.reservations.notify(appointment, "appointment.no_show")
        return appointment

    @staticmethod
    def _no_show_amount(appointment: Appointment, policy: str) -> Optional[Decimal]:
        """Outstanding amount to charge, or None when nothing is owed."""
        paid = Decimal(appointment.deposit_amount_chf or 0) if appointment.deposit_paid else Decimal("0")

        if policy == NoShowPolicy.CHARGE_DEPOSIT.value:
            if not appointment.deposit_required or appointment.deposit_paid:
                return None
            return Decimal(appointment.deposit_amount_chf)

        if policy == NoShowPolicy.CHARGE_FULL.value:
            outstanding = Decimal(appointment.total_price_chf) - paid
            return outstanding if outstanding > 0 else None

        return None

    def _load(self, ctx: TenantContext, appointment_id: UUID) -> Appointment:
        return TenantScopeGuard.load(self.db, ctx, Appointment, appointment_id, "Appointment")

    @staticmethod
    def _actor(ctx: TenantContext) -> str:
        return str(ctx.principal_id) if ctx.principal_id else ctx.role.value

    @staticmethod
    def _now(now: Optional[datetime]) -> datetime:
        return ensure_utc(now or datetime.now(timezone.utc))
