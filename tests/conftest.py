"""Shared fixtures: a throwaway SQLite database per test and a seeded salon"""
import os

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("NOTIFICATION_WEBHOOK_URL", "")

from datetime import date, datetime, time, timedelta, timezone
from decimal import Decimal
from types import SimpleNamespace
from uuid import uuid4
from zoneinfo import ZoneInfo

import pytest
from sqlalchemy.orm import sessionmaker

from salon_booking.config.database import build_engine, create_tables
from salon_booking.core.tenancy import Role, TenantContext
from salon_booking.models import (
    BookingRules,
    OpeningHours,
    Salon,
    Service,
    StaffMember,
    StaffServiceSkill,
    WorkingHours,
)
from salon_booking.services.collaborators.payment import PaymentResult

ZURICH = ZoneInfo("Europe/Zurich")

# Monday; all salon-local times below are in CET (UTC+1)
MONDAY = date(2026, 3, 2)
TUESDAY = MONDAY + timedelta(days=1)


def local(day: date, hour: int, minute: int = 0) -> datetime:
    return datetime.combine(day, time(hour, minute), tzinfo=ZURICH)


def utc(value: datetime) -> datetime:
    return value.astimezone(timezone.utc)


class FakePaymentProcessor:
    def __init__(self, succeed: bool = True):
        self.succeed = succeed
        self.deposits = []
        self.no_show_charges = []

    def charge_deposit(self, appointment, amount):
        self.deposits.append((appointment.id, Decimal(amount)))
        return self._result("dep")

    def charge_no_show(self, appointment, amount):
        self.no_show_charges.append((appointment.id, Decimal(amount)))
        return self._result("ns")

    def _result(self, prefix):
        if self.succeed:
            return PaymentResult(success=True, reference=f"{prefix}-{uuid4().hex[:8]}")
        return PaymentResult(success=False, error="card declined")


class RecordingNotifier:
    def __init__(self):
        self.events = []

    def dispatch(self, event_type, salon_id, payload):
        self.events.append((event_type, salon_id, payload))

    @property
    def event_types(self):
        return [event_type for event_type, _, _ in self.events]


class RecordingFreedSlotPublisher:
    def __init__(self):
        self.published = []

    def publish(self, appointment):
        self.published.append(appointment.id)


@pytest.fixture
def engine(tmp_path):
    engine = build_engine(f"sqlite:///{tmp_path / 'salon.db'}")
    create_tables(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def payments():
    return FakePaymentProcessor()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def freed_slots():
    return RecordingFreedSlotPublisher()


@pytest.fixture
def make_salon(session_factory):
    """
    Seed a salon and return its ids.

    Anna can do a cut and a colour, Ben only cuts. Both work Monday to
    Friday within `hours` (minutes since local midnight). `opening_hours`
    is a list of (weekday, open_minute, close_minute); none by default.
    """

    def _make(rules=None, hours=(540, 1020), break_minutes=None, opening_hours=(), **salon_fields):
        session = session_factory()
        try:
            salon = Salon(name="Salon Lina", timezone="Europe/Zurich", **salon_fields)
            session.add(salon)
            session.flush()

            rule_values = dict(BookingRules.DEFAULTS)
            rule_values.update(rules or {})
            session.add(BookingRules(salon_id=salon.id, **rule_values))

            cut = Service(
                salon_id=salon.id, name="Haircut", price_chf=Decimal("60.00"),
                tax_rate_percent=Decimal("8.1"), duration_minutes=30,
            )
            color = Service(
                salon_id=salon.id, name="Colour", price_chf=Decimal("120.00"),
                tax_rate_percent=Decimal("8.1"), duration_minutes=45,
                buffer_before_minutes=10, buffer_after_minutes=10,
            )
            anna = StaffMember(salon_id=salon.id, display_name="Anna")
            ben = StaffMember(salon_id=salon.id, display_name="Ben")
            session.add_all([cut, color, anna, ben])
            session.flush()

            session.add_all([
                StaffServiceSkill(salon_id=salon.id, staff_id=anna.id, service_id=cut.id),
                StaffServiceSkill(salon_id=salon.id, staff_id=anna.id, service_id=color.id),
                StaffServiceSkill(salon_id=salon.id, staff_id=ben.id, service_id=cut.id),
            ])

            break_start, break_end = break_minutes or (None, None)
            for staff in (anna, ben):
                for weekday in range(5):
                    session.add(WorkingHours(
                        salon_id=salon.id, staff_id=staff.id, day_of_week=weekday,
                        start_minute=hours[0], end_minute=hours[1],
                        break_start_minute=break_start, break_end_minute=break_end,
                    ))
            for weekday, open_minute, close_minute in opening_hours:
                session.add(OpeningHours(
                    salon_id=salon.id, day_of_week=weekday, open_minute=open_minute, close_minute=close_minute,
                ))
            session.commit()

            customer_id = uuid4()
            return SimpleNamespace(
                salon_id=salon.id,
                anna_id=anna.id,
                ben_id=ben.id,
                cut_id=cut.id,
                color_id=color.id,
                customer_id=customer_id,
                staff_ctx=TenantContext(salon_id=salon.id, principal_id=uuid4(), role=Role.STAFF),
                customer_ctx=TenantContext(salon_id=salon.id, principal_id=customer_id, role=Role.CUSTOMER),
            )
        finally:
            session.close()

    return _make


@pytest.fixture
def salon(make_salon):
    return make_salon()
