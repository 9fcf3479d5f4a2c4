from datetime import timedelta
from decimal import Decimal
from uuid import uuid4

import pytest

from salon_booking.core.exceptions import AuthorizationError, ConflictError, InvalidTransition
from salon_booking.core.tenancy import Role, TenantContext
from salon_booking.models import Appointment, AppointmentStatus
from salon_booking.services.appointment.appointment_state_machine import AppointmentStateMachine
from salon_booking.services.appointment.transitions import ALLOWED_TRANSITIONS, can_transition, is_terminal
from salon_booking.services.reservation.reservation_manager import ReservationManager
from tests.conftest import FakePaymentProcessor, MONDAY, TUESDAY, local

NOW = local(MONDAY, 10)


@pytest.fixture
def machine(db, payments, notifier, freed_slots):
    return AppointmentStateMachine(db, payments, notifier, freed_slots)


def book(machine, salon, starts_at=None, confirm=True):
    manager = machine.reservations
    appointment = manager.reserve(
        salon.customer_ctx, salon.anna_id, starts_at or local(TUESDAY, 10), [salon.cut_id], salon.customer_id,
        now=NOW,
    )
    if confirm:
        appointment = manager.confirm(salon.customer_ctx, appointment.id, now=NOW)
    return appointment


class TestTransitionTable:
    def test_terminal_states_have_no_exits(self):
        for status in (AppointmentStatus.COMPLETED, AppointmentStatus.CANCELLED, AppointmentStatus.NO_SHOW):
            assert is_terminal(status)
            assert ALLOWED_TRANSITIONS[status] == frozenset()

    def test_visit_flow(self):
        assert can_transition("confirmed", "checked_in")
        assert can_transition("checked_in", "in_progress")
        assert can_transition("in_progress", "completed")
        assert not can_transition("confirmed", "completed")
        assert not can_transition("reserved", "checked_in")


class TestVisit:
    def test_full_visit(self, machine, salon):
        appointment = book(machine, salon)
        visit_day = local(TUESDAY, 10)

        machine.check_in(salon.staff_ctx, appointment.id, now=visit_day)
        machine.start(salon.staff_ctx, appointment.id, now=visit_day + timedelta(minutes=2))
        done = machine.complete(salon.staff_ctx, appointment.id, now=visit_day + timedelta(minutes=30))

        assert done.status == "completed"
        assert done.checked_in_at is not None
        assert done.started_at is not None
        assert done.completed_at is not None

    def test_skipping_a_step_is_rejected(self, machine, salon):
        appointment = book(machine, salon)
        with pytest.raises(InvalidTransition):
            machine.complete(salon.staff_ctx, appointment.id, now=NOW)

    def test_customers_cannot_drive_the_visit(self, machine, salon):
        appointment = book(machine, salon)
        with pytest.raises(AuthorizationError):
            machine.check_in(salon.customer_ctx, appointment.id, now=NOW)

    def test_generic_transition_routes_to_operation(self, machine, salon):
        appointment = book(machine, salon)
        checked_in = machine.transition(salon.staff_ctx, appointment.id, "checked_in", now=local(TUESDAY, 10))
        assert checked_in.status == "checked_in"

    def test_generic_transition_rejects_unknown_edges(self, machine, salon):
        appointment = book(machine, salon)
        with pytest.raises(InvalidTransition):
            machine.transition(salon.staff_ctx, appointment.id, "in_progress", now=NOW)


class TestApprovalAndDeposit:
    def test_staff_approve_requested_booking(self, db, make_salon, payments, notifier, freed_slots):
        salon = make_salon(require_manual_approval=True)
        machine = AppointmentStateMachine(db, payments, notifier, freed_slots)
        appointment = book(machine, salon)
        assert appointment.status == "requested"

        with pytest.raises(AuthorizationError):
            machine.approve(salon.customer_ctx, appointment.id, now=NOW)

        assert machine.approve(salon.staff_ctx, appointment.id, now=NOW).status == "confirmed"

    def test_deposit_payment_confirms_pending_booking(self, db, make_salon, notifier, freed_slots):
        salon = make_salon(rules={"deposit_required_percent": Decimal("50")})
        machine = AppointmentStateMachine(db, FakePaymentProcessor(succeed=False), notifier, freed_slots)
        appointment = book(machine, salon)
        assert appointment.status == "pending_deposit"

        confirmed = machine.record_deposit_payment(salon.staff_ctx, appointment.id, "pay-123", now=NOW)

        assert confirmed.status == "confirmed"
        assert confirmed.deposit_paid
        assert confirmed.deposit_payment_reference == "pay-123"


class TestCancel:
    def test_early_cancellation(self, machine, salon, notifier, freed_slots):
        appointment = book(machine, salon)
        result = machine.cancel(salon.customer_ctx, appointment.id, now=NOW, reason="Sick")

        assert result.appointment.status == "cancelled"
        assert result.appointment.cancellation_reason == "Sick"
        assert result.appointment.cancelled_by == str(salon.customer_id)
        assert not result.within_cutoff
        assert "appointment.cancelled" in notifier.event_types
        assert freed_slots.published == [appointment.id]

    def test_cancelling_a_hold_does_not_publish_a_freed_slot(self, machine, salon, freed_slots):
        appointment = book(machine, salon, confirm=False)
        machine.cancel(salon.customer_ctx, appointment.id, now=NOW)
        assert freed_slots.published == []

    def test_late_cancellation_is_flagged(self, machine, salon):
        appointment = book(machine, salon)
        result = machine.cancel(salon.customer_ctx, appointment.id, now=local(TUESDAY, 8))

        assert result.within_cutoff
        assert result.appointment.status == "cancelled"
        assert result.appointment.cancelled_within_cutoff

    def test_late_cancellation_can_become_a_no_show(self, db, make_salon, payments, notifier, freed_slots):
        salon = make_salon(rules={"no_show_policy": "charge_full"})
        machine = AppointmentStateMachine(db, payments, notifier, freed_slots)
        appointment = book(machine, salon)

        result = machine.cancel(salon.staff_ctx, appointment.id, now=local(TUESDAY, 8), apply_no_show_policy=True)

        assert result.within_cutoff
        assert result.appointment.status == "no_show"
        assert result.appointment.no_show_charged
        assert payments.no_show_charges == [(appointment.id, Decimal("60.00"))]

    def test_customer_cancellation_can_be_disabled(self, db, make_salon, payments, notifier, freed_slots):
        salon = make_salon(rules={"allow_customer_cancellation": False})
        machine = AppointmentStateMachine(db, payments, notifier, freed_slots)
        appointment = book(machine, salon)

        with pytest.raises(AuthorizationError):
            machine.cancel(salon.customer_ctx, appointment.id, now=NOW)
        assert machine.cancel(salon.staff_ctx, appointment.id, now=NOW).appointment.status == "cancelled"

    def test_terminal_appointment_cannot_be_cancelled(self, machine, salon):
        appointment = book(machine, salon)
        machine.cancel(salon.customer_ctx, appointment.id, now=NOW)

        with pytest.raises(InvalidTransition):
            machine.cancel(salon.customer_ctx, appointment.id, now=NOW)

    def test_other_customers_cannot_cancel(self, machine, salon):
        appointment = book(machine, salon)
        stranger = TenantContext(salon_id=salon.salon_id, principal_id=uuid4(), role=Role.CUSTOMER)

        with pytest.raises(AuthorizationError):
            machine.cancel(stranger, appointment.id, now=NOW)


class TestNoShow:
    def test_charge_deposit_when_unpaid(self, db, make_salon, notifier, freed_slots):
        salon = make_salon(rules={"deposit_required_percent": Decimal("20"), "no_show_policy": "charge_deposit"})
        payments = FakePaymentProcessor(succeed=False)
        machine = AppointmentStateMachine(db, payments, notifier, freed_slots)
        appointment = book(machine, salon)
        assert appointment.status == "pending_deposit"

        payments.succeed = True
        no_show = machine.mark_no_show(salon.staff_ctx, appointment.id, now=local(TUESDAY, 10, 30))

        assert no_show.status == "no_show"
        assert no_show.no_show_charged
        assert payments.no_show_charges == [(appointment.id, Decimal("12.00"))]

    def test_paid_deposit_is_kept(self, db, make_salon, payments, notifier, freed_slots):
        salon = make_salon(rules={"deposit_required_percent": Decimal("20"), "no_show_policy": "charge_deposit"})
        machine = AppointmentStateMachine(db, payments, notifier, freed_slots)
        appointment = book(machine, salon)

        no_show = machine.mark_no_show(salon.staff_ctx, appointment.id, now=local(TUESDAY, 10, 30))

        assert no_show.no_show_charged
        assert payments.no_show_charges == []

    def test_charge_full_subtracts_paid_deposit(self, db, make_salon, payments, notifier, freed_slots):
        salon = make_salon(rules={"deposit_required_percent": Decimal("20"), "no_show_policy": "charge_full"})
        machine = AppointmentStateMachine(db, payments, notifier, freed_slots)
        appointment = book(machine, salon)

        machine.mark_no_show(salon.staff_ctx, appointment.id, now=local(TUESDAY, 10, 30))

        assert payments.no_show_charges == [(appointment.id, Decimal("48.00"))]

    def test_policy_none_charges_nothing(self, machine, salon, payments):
        appointment = book(machine, salon)
        no_show = machine.mark_no_show(salon.staff_ctx, appointment.id, now=local(TUESDAY, 10, 30))

        assert no_show.status == "no_show"
        assert not no_show.no_show_charged
        assert payments.no_show_charges == []


class TestReschedule:
    def test_reschedule_confirmed_appointment(self, machine, salon, freed_slots):
        old = book(machine, salon)

        new = machine.reschedule(salon.customer_ctx, old.id, local(TUESDAY, 14), now=NOW)

        assert new.status == "confirmed"
        assert new.rescheduled_from_id == old.id
        assert new.id != old.id
        refreshed_old = machine.db.get(Appointment, old.id)
        assert refreshed_old.status == "cancelled"
        assert refreshed_old.cancellation_reason == "rescheduled"
        assert freed_slots.published == [old.id]

    def test_reschedule_into_overlapping_own_interval(self, machine, salon):
        old = book(machine, salon)
        new = machine.reschedule(salon.customer_ctx, old.id, local(TUESDAY, 10, 15), now=NOW)
        assert new.status == "confirmed"

    def test_reschedule_to_another_staff_member(self, machine, salon):
        old = book(machine, salon)
        new = machine.reschedule(salon.staff_ctx, old.id, local(TUESDAY, 10), now=NOW, new_staff_id=salon.ben_id)
        assert new.staff_id == salon.ben_id

    def test_failed_reschedule_leaves_original_untouched(self, machine, salon):
        old = book(machine, salon)
        other_id = uuid4()
        other_ctx = TenantContext(salon_id=salon.salon_id, principal_id=other_id, role=Role.CUSTOMER)
        machine.reservations.reserve(other_ctx, salon.anna_id, local(TUESDAY, 14), [salon.cut_id], other_id, now=NOW)

        with pytest.raises(ConflictError):
            machine.reschedule(salon.customer_ctx, old.id, local(TUESDAY, 14), now=NOW)

        assert machine.db.get(Appointment, old.id).status == "confirmed"
        assert machine.db.query(Appointment).count() == 2

    def test_database_rejection_surfaces_as_conflict(self, machine, salon, monkeypatch):
        old = book(machine, salon)
        taken = old.confirmation_number
        monkeypatch.setattr(
            "salon_booking.services.reservation.reservation_manager.generate_confirmation_number", lambda: taken,
        )

        with pytest.raises(ConflictError):
            machine.reschedule(salon.customer_ctx, old.id, local(TUESDAY, 14), now=NOW)

        assert machine.db.get(Appointment, old.id).status == "confirmed"
        assert machine.db.query(Appointment).count() == 1

    def test_deposit_carries_over(self, db, make_salon, payments, notifier, freed_slots):
        salon = make_salon(rules={"deposit_required_percent": Decimal("20")})
        machine = AppointmentStateMachine(db, payments, notifier, freed_slots)
        old = book(machine, salon)

        new = machine.reschedule(salon.customer_ctx, old.id, local(TUESDAY, 14), now=NOW)

        assert new.status == "confirmed"
        assert new.deposit_paid
        assert len(payments.deposits) == 1

    def test_completed_appointment_cannot_be_rescheduled(self, machine, salon):
        appointment = book(machine, salon)
        for step in (machine.check_in, machine.start, machine.complete):
            step(salon.staff_ctx, appointment.id, now=local(TUESDAY, 10))

        with pytest.raises(InvalidTransition):
            machine.reschedule(salon.staff_ctx, appointment.id, local(TUESDAY, 14), now=NOW)
