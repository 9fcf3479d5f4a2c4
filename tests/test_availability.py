from datetime import timedelta

import pytest

from salon_booking.core.exceptions import AuthorizationError, ValidationError
from salon_booking.models import BlockedTime
from salon_booking.services.appointment.appointment_state_machine import AppointmentStateMachine
from salon_booking.services.availability.availability_service import ANY_STAFF, AvailabilityCalculator
from salon_booking.services.reservation.reservation_manager import ReservationManager
from tests.conftest import MONDAY, TUESDAY, local, utc


def slot_times(slots_by_day, day):
    return [slot.time for slot in slots_by_day.get(day, [])]


def test_morning_shift_with_lead_time(db, make_salon):
    salon = make_salon(rules={"slot_granularity_minutes": 30, "min_lead_time_minutes": 120}, hours=(540, 720))

    slots = AvailabilityCalculator(db).compute_slots(
        salon.customer_ctx, [salon.cut_id], salon.anna_id, TUESDAY, TUESDAY, now=local(TUESDAY, 8),
    )

    assert slot_times(slots, TUESDAY) == ["10:00", "10:30", "11:00", "11:30"]
    first = slots[TUESDAY][0]
    assert first.starts_at == utc(local(TUESDAY, 10))
    assert first.ends_at - first.starts_at == timedelta(minutes=30)


def test_slots_respect_lead_time_and_horizon(db, make_salon):
    salon = make_salon(rules={"min_lead_time_minutes": 60, "max_booking_horizon_days": 1})
    now = local(MONDAY, 8)

    slots = AvailabilityCalculator(db).compute_slots(
        salon.staff_ctx, [salon.cut_id], salon.anna_id, MONDAY, TUESDAY + timedelta(days=1), now=now,
    )

    all_slots = [slot for day_slots in slots.values() for slot in day_slots]
    assert all_slots
    assert min(slot.starts_at for slot in all_slots) >= utc(now + timedelta(minutes=60))
    assert max(slot.starts_at for slot in all_slots) <= utc(now + timedelta(days=1))
    assert TUESDAY + timedelta(days=1) not in slots


def test_break_and_end_of_day_are_respected(db, make_salon):
    salon = make_salon(rules={"slot_granularity_minutes": 30, "min_lead_time_minutes": 0}, hours=(540, 720),
                       break_minutes=(600, 630))

    slots = AvailabilityCalculator(db).compute_slots(
        salon.staff_ctx, [salon.color_id], salon.anna_id, TUESDAY, TUESDAY, now=local(MONDAY, 8),
    )

    # 65 minutes (45 + 10 + 10) only fit after the break
    assert slot_times(slots, TUESDAY) == ["10:30"]


def test_any_staff_returns_every_eligible_staff_member(db, salon):
    slots = AvailabilityCalculator(db).compute_slots(
        salon.customer_ctx, [salon.cut_id], ANY_STAFF, TUESDAY, TUESDAY, now=local(MONDAY, 8),
    )

    day_slots = slots[TUESDAY]
    assert {slot.staff_id for slot in day_slots} == {salon.anna_id, salon.ben_id}
    assert day_slots == sorted(day_slots, key=lambda s: (s.starts_at, str(s.staff_id)))
    nine = [slot for slot in day_slots if slot.time == "09:00"]
    assert len(nine) == 2


def test_any_staff_only_considers_staff_with_every_skill(db, salon):
    slots = AvailabilityCalculator(db).compute_slots(
        salon.customer_ctx, [salon.cut_id, salon.color_id], ANY_STAFF, TUESDAY, TUESDAY, now=local(MONDAY, 8),
    )

    assert {slot.staff_id for slot in slots[TUESDAY]} == {salon.anna_id}


def test_days_without_slots_are_omitted(db, salon):
    saturday = MONDAY + timedelta(days=5)
    slots = AvailabilityCalculator(db).compute_slots(
        salon.customer_ctx, [salon.cut_id], salon.anna_id, TUESDAY, saturday, now=local(MONDAY, 8),
    )

    assert TUESDAY in slots
    assert saturday not in slots


def test_blocked_time_removes_slots(db, salon):
    db.add(BlockedTime(
        salon_id=salon.salon_id, staff_id=None, block_type="private_event", title="Team lunch",
        starts_at=utc(local(TUESDAY, 12)), ends_at=utc(local(TUESDAY, 13)),
    ))
    db.commit()

    slots = AvailabilityCalculator(db).compute_slots(
        salon.customer_ctx, [salon.cut_id], salon.anna_id, TUESDAY, TUESDAY, now=local(MONDAY, 8),
    )

    times = slot_times(slots, TUESDAY)
    assert "11:30" in times
    assert "11:45" not in times
    assert "12:30" not in times
    assert "13:00" in times


def test_stale_hold_does_not_block(db, salon, payments, notifier):
    now = local(MONDAY, 10)
    ReservationManager(db, payments, notifier).reserve(
        salon.customer_ctx, salon.anna_id, local(TUESDAY, 10), [salon.cut_id], salon.customer_id, now=now,
    )
    calculator = AvailabilityCalculator(db)

    held = calculator.compute_slots(salon.customer_ctx, [salon.cut_id], salon.anna_id, TUESDAY, TUESDAY,
                                    now=now + timedelta(minutes=5))
    stale = calculator.compute_slots(salon.customer_ctx, [salon.cut_id], salon.anna_id, TUESDAY, TUESDAY,
                                     now=now + timedelta(minutes=16))

    assert "10:00" not in slot_times(held, TUESDAY)
    assert "10:00" in slot_times(stale, TUESDAY)


def test_cancelled_confirmed_appointment_frees_its_interval(db, salon, payments, notifier, freed_slots):
    now = local(MONDAY, 10)
    manager = ReservationManager(db, payments, notifier)
    appointment = manager.reserve(
        salon.customer_ctx, salon.anna_id, local(TUESDAY, 10), [salon.cut_id], salon.customer_id, now=now,
    )
    manager.confirm(salon.customer_ctx, appointment.id, now=now)
    calculator = AvailabilityCalculator(db)

    before = calculator.compute_slots(salon.staff_ctx, [salon.cut_id], salon.anna_id, TUESDAY, TUESDAY, now=now)
    AppointmentStateMachine(db, payments, notifier, freed_slots).cancel(salon.staff_ctx, appointment.id, now=now)
    after = calculator.compute_slots(salon.staff_ctx, [salon.cut_id], salon.anna_id, TUESDAY, TUESDAY, now=now)

    assert "10:00" not in slot_times(before, TUESDAY)
    assert "10:00" in slot_times(after, TUESDAY)
    assert freed_slots.published == [appointment.id]


def test_total_duration_includes_largest_buffers(db, salon):
    duration = AvailabilityCalculator(db).total_duration_for(
        salon.staff_ctx, salon.anna_id, [salon.cut_id, salon.color_id],
    )

    assert duration.service_minutes == 75
    assert duration.total_minutes == 95


def test_find_next_available_slot(db, salon):
    slot = AvailabilityCalculator(db).find_next_available_slot(
        salon.customer_ctx, [salon.cut_id], ANY_STAFF, now=local(MONDAY, 16, 30),
    )

    # Monday is over after lead time, Tuesday 09:00 is the first opening
    assert slot.starts_at == utc(local(TUESDAY, 9))


def test_date_range_validation(db, salon):
    calculator = AvailabilityCalculator(db)
    with pytest.raises(ValidationError):
        calculator.compute_slots(salon.customer_ctx, [salon.cut_id], ANY_STAFF, TUESDAY, MONDAY)
    with pytest.raises(ValidationError):
        calculator.compute_slots(salon.customer_ctx, [salon.cut_id], ANY_STAFF, MONDAY, MONDAY + timedelta(days=60))


def test_services_from_another_salon_are_rejected(db, make_salon):
    ours = make_salon()
    theirs = make_salon()

    with pytest.raises(AuthorizationError):
        AvailabilityCalculator(db).compute_slots(
            ours.customer_ctx, [theirs.cut_id], ANY_STAFF, TUESDAY, TUESDAY, now=local(MONDAY, 8),
        )


def test_slots_stay_within_salon_opening_hours(db, make_salon):
    tuesday = TUESDAY.weekday()
    salon = make_salon(hours=(480, 1080), opening_hours=[(tuesday, 600, 720), (tuesday, 780, 1020)])

    slots = AvailabilityCalculator(db).compute_slots(
        salon.customer_ctx, [salon.cut_id], salon.anna_id, TUESDAY, TUESDAY + timedelta(days=1),
        now=local(MONDAY, 8),
    )

    times = slot_times(slots, TUESDAY)
    assert times[0] == "10:00"
    assert "11:30" in times
    assert "11:45" not in times
    assert "12:30" not in times
    assert "13:00" in times
    assert times[-1] == "16:30"
    # Open on Tuesdays only
    assert TUESDAY + timedelta(days=1) not in slots
