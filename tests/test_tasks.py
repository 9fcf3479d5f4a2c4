import httpx
import pytest

from salon_booking.config.settings import settings
from salon_booking.models import Appointment, WaitlistEntry
from salon_booking.services.appointment.appointment_state_machine import AppointmentStateMachine
from salon_booking.services.reservation.reservation_manager import ReservationManager
from salon_booking.services.waitlist.waitlist_manager import WaitlistManager
from salon_booking.tasks import notification_tasks, reservation_tasks, waitlist_tasks
from tests.conftest import MONDAY, TUESDAY, local

NOW = local(MONDAY, 10)


@pytest.fixture(autouse=True)
def task_sessions(monkeypatch, session_factory):
    monkeypatch.setattr(reservation_tasks, "SessionLocal", session_factory)
    monkeypatch.setattr(waitlist_tasks, "SessionLocal", session_factory)


def test_expire_stale_reservations(db, salon, payments, notifier):
    appointment = ReservationManager(db, payments, notifier).reserve(
        salon.customer_ctx, salon.anna_id, local(TUESDAY, 10), [salon.cut_id], salon.customer_id, now=NOW,
    )
    db.close()

    assert reservation_tasks.expire_stale_reservations() == {"status": "completed", "expired": 1}
    assert reservation_tasks.expire_stale_reservations()["expired"] == 0
    assert db.get(Appointment, appointment.id).cancellation_reason == "expired"


def test_match_freed_slot(monkeypatch, db, salon, payments, notifier, freed_slots):
    monkeypatch.setattr(waitlist_tasks, "WaitlistManager", lambda session: WaitlistManager(session, notifier))
    machine = AppointmentStateMachine(db, payments, notifier, freed_slots)
    appointment = machine.reservations.reserve(
        salon.customer_ctx, salon.anna_id, local(TUESDAY, 10), [salon.cut_id], salon.customer_id, now=NOW,
    )
    appointment_id = appointment.id
    machine.reservations.confirm(salon.customer_ctx, appointment_id, now=NOW)
    machine.cancel(salon.customer_ctx, appointment_id, now=NOW)
    entry_id = WaitlistManager(db, notifier).submit(salon.customer_ctx, salon.customer_id, salon.cut_id).id
    db.close()

    result = waitlist_tasks.match_freed_slot(str(appointment_id), str(salon.salon_id))

    assert result == {"status": "completed", "matched": [str(entry_id)]}
    assert db.get(WaitlistEntry, entry_id).status == "notified"
    assert "waitlist.matched" in notifier.event_types


def test_match_freed_slot_for_unknown_appointment(salon):
    result = waitlist_tasks.match_freed_slot(str(salon.anna_id), str(salon.salon_id))
    assert result["status"] == "failed"


def test_notification_without_endpoint_is_skipped(monkeypatch):
    monkeypatch.setattr(settings, "NOTIFICATION_WEBHOOK_URL", None)
    result = notification_tasks.dispatch_notification("appointment.confirmed", "salon-1", {"a": 1})
    assert result["status"] == "skipped"


def test_notification_is_posted(monkeypatch):
    sent = []

    def fake_post(url, content, headers, timeout):
        sent.append((url, headers["X-Event-Type"]))
        return httpx.Response(202, request=httpx.Request("POST", url))

    monkeypatch.setattr(settings, "NOTIFICATION_WEBHOOK_URL", "https://notify.example.test/events")
    monkeypatch.setattr(notification_tasks.httpx, "post", fake_post)

    result = notification_tasks.dispatch_notification("appointment.confirmed", "salon-1", {"a": 1})

    assert result == {"status": "delivered", "event_type": "appointment.confirmed", "status_code": 202}
    assert sent == [("https://notify.example.test/events", "appointment.confirmed")]
