from datetime import timedelta
from uuid import uuid4

import pytest

from salon_booking.core.exceptions import AuthorizationError, ValidationError
from salon_booking.core.tenancy import Role, TenantContext
from salon_booking.models import TimeOfDay, WaitlistEntry
from salon_booking.services.scheduling.time_ranges import ensure_utc
from salon_booking.services.waitlist.waitlist_manager import WaitlistManager
from tests.conftest import MONDAY, TUESDAY, local, utc

NOW = local(MONDAY, 9)


@pytest.fixture
def waitlist(db, notifier):
    return WaitlistManager(db, notifier)


def submit(waitlist, salon, minutes_later=0, customer_id=None, **preferences):
    customer_id = customer_id or salon.customer_id
    ctx = TenantContext(salon_id=salon.salon_id, principal_id=customer_id, role=Role.CUSTOMER)
    return waitlist.submit(ctx, customer_id, salon.cut_id, now=NOW + timedelta(minutes=minutes_later), **preferences)


def match(waitlist, salon, starts_at, staff_id=None, now=NOW):
    return waitlist.match_new_slot(
        salon.staff_ctx, staff_id or salon.anna_id, starts_at, starts_at + timedelta(minutes=30), [salon.cut_id],
        now=now,
    )


def test_time_of_day_buckets():
    assert TimeOfDay.for_minute(11 * 60 + 59) == TimeOfDay.MORNING
    assert TimeOfDay.for_minute(12 * 60) == TimeOfDay.AFTERNOON
    assert TimeOfDay.for_minute(17 * 60) == TimeOfDay.EVENING


def test_submit_sets_expiry(waitlist, salon):
    entry = submit(waitlist, salon, preferred_time_of_day=["morning"], preferred_weekdays=[2, 2, 4])

    assert entry.status == "active"
    assert entry.preferred_weekdays == [2, 4]
    assert ensure_utc(entry.expires_at) == utc(NOW) + timedelta(days=30)


def test_submit_rejects_unknown_time_of_day(waitlist, salon):
    with pytest.raises(ValidationError):
        submit(waitlist, salon, preferred_time_of_day=["night"])


def test_morning_entry_is_not_offered_an_afternoon_slot(waitlist, salon):
    morning = submit(waitlist, salon, preferred_time_of_day=["morning"])
    afternoon = submit(waitlist, salon, 1, customer_id=uuid4(), preferred_time_of_day=["afternoon"])

    matched = match(waitlist, salon, local(TUESDAY, 14))

    assert [entry.id for entry in matched] == [afternoon.id]
    assert waitlist.db.get(WaitlistEntry, morning.id).status == "active"


def test_matches_are_returned_oldest_first(waitlist, salon, notifier):
    first = submit(waitlist, salon, 0, customer_id=uuid4())
    second = submit(waitlist, salon, 5, customer_id=uuid4())
    third = submit(waitlist, salon, 10, customer_id=uuid4())

    matched = match(waitlist, salon, local(TUESDAY, 10))

    assert [entry.id for entry in matched] == [first.id, second.id, third.id]
    assert all(entry.status == "notified" and entry.notification_count == 1 for entry in matched)
    assert notifier.event_types == ["waitlist.matched"] * 3


def test_notified_entries_are_not_matched_again(waitlist, salon):
    submit(waitlist, salon)
    assert len(match(waitlist, salon, local(TUESDAY, 10))) == 1
    assert match(waitlist, salon, local(TUESDAY, 11)) == []


def test_weekday_staff_and_date_range_filters(waitlist, salon):
    submit(waitlist, salon, 0, customer_id=uuid4(), preferred_weekdays=[1])
    submit(waitlist, salon, 1, customer_id=uuid4(), preferred_staff_id=salon.ben_id)
    submit(waitlist, salon, 2, customer_id=uuid4(), date_range_start=TUESDAY + timedelta(days=1))
    wanted = submit(waitlist, salon, 3, customer_id=uuid4(), preferred_weekdays=[2],
                    date_range_start=MONDAY, date_range_end=TUESDAY)

    matched = match(waitlist, salon, local(TUESDAY, 10))

    assert [entry.id for entry in matched] == [wanted.id]


def test_other_services_are_ignored(waitlist, salon):
    submit(waitlist, salon)
    matched = waitlist.match_new_slot(
        salon.staff_ctx, salon.anna_id, local(TUESDAY, 10), local(TUESDAY, 11), [salon.color_id], now=NOW,
    )
    assert matched == []


def test_expired_entries_are_skipped(waitlist, salon):
    entry = submit(waitlist, salon, auto_expire_days=1)

    matched = match(waitlist, salon, local(TUESDAY, 10), now=NOW + timedelta(days=2))

    assert matched == []
    assert waitlist.db.get(WaitlistEntry, entry.id).status == "expired"


def test_only_staff_can_trigger_matching(waitlist, salon):
    with pytest.raises(AuthorizationError):
        waitlist.match_new_slot(
            salon.customer_ctx, salon.anna_id, local(TUESDAY, 10), local(TUESDAY, 11), [salon.cut_id], now=NOW,
        )


def test_withdraw(waitlist, salon):
    entry = submit(waitlist, salon)

    assert waitlist.withdraw(salon.customer_ctx, entry.id).status == "cancelled"
    with pytest.raises(ValidationError):
        waitlist.withdraw(salon.customer_ctx, entry.id)


def test_preferences_are_immutable(waitlist, salon):
    entry = submit(waitlist, salon, preferred_weekdays=[2])

    with pytest.raises(ValueError):
        entry.preferred_weekdays = [3]
    entry.status = "cancelled"


def test_expiry_sweep_is_idempotent(waitlist, salon):
    submit(waitlist, salon, auto_expire_days=1)
    submit(waitlist, salon, 1, customer_id=uuid4(), date_range_end=MONDAY)
    submit(waitlist, salon, 2, customer_id=uuid4())

    later = NOW + timedelta(days=2)
    assert waitlist.expire_stale_entries(later) == 2
    assert waitlist.expire_stale_entries(later) == 0


def test_customers_only_list_their_own_entries(waitlist, salon):
    mine = submit(waitlist, salon)
    submit(waitlist, salon, 1, customer_id=uuid4())

    assert [entry.id for entry in waitlist.list_entries(salon.customer_ctx)] == [mine.id]
    assert len(waitlist.list_entries(salon.staff_ctx)) == 2
    assert len(waitlist.list_entries(salon.staff_ctx, status="notified")) == 0
