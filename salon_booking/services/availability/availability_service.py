# salon_booking/services/availability/availability_service.py
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from typing import Dict, List, Optional, Sequence, Union
from uuid import UUID
import logging

from sqlalchemy import and_, not_, or_
from sqlalchemy.orm import Session

from salon_booking.config.settings import get_settings
from salon_booking.core.exceptions import ValidationError
from salon_booking.core.tenancy import TenantContext, TenantScopeGuard
from salon_booking.models.appointment import Appointment, AppointmentStatus, BLOCKING_STATUSES
from salon_booking.models.salon import BookingRules
from salon_booking.models.schedule import BlockedTime
from salon_booking.models.service import Service
from salon_booking.models.staff import StaffMember
from salon_booking.services.catalog.catalog_service import CatalogService
from salon_booking.services.scheduling.time_ranges import (
    TimeRange,
    day_window,
    daterange,
    ensure_utc,
    format_minute,
    local_date,
    local_datetime,
    minute_of_day,
    salon_zone,
    subtract_ranges,
)
from salon_booking.services.scheduling.working_hours_resolver import WorkingHoursResolver

logger = logging.getLogger(__name__)
settings = get_settings()

ANY_STAFF = "any"


@dataclass
class Slot:
    """A bookable start time for one staff member"""
    time: str  # local HH:MM
    starts_at: datetime
    ends_at: datetime
    staff_id: UUID
    available: bool = True

    def to_dict(self):
        return {
            "time": self.time,
            "starts_at": self.starts_at.isoformat(),
            "ends_at": self.ends_at.isoformat(),
            "staff_id": str(self.staff_id),
            "available": self.available,
        }


@dataclass
class DurationBreakdown:
    service_minutes: int
    buffer_before_minutes: int
    buffer_after_minutes: int

    @property
    def total_minutes(self) -> int:
        return self.service_minutes + self.buffer_before_minutes + self.buffer_after_minutes


def stale_hold_clause(now: datetime):
    """SQL condition for reserved rows whose hold has run out"""
    return and_(
        Appointment.status == AppointmentStatus.RESERVED.value,
        Appointment.reserved_until < ensure_utc(now),
    )


def blocking_clause(now: datetime):
    """SQL condition for appointments that occupy staff time at `now`"""
    return and_(Appointment.status.in_(BLOCKING_STATUSES), not_(stale_hold_clause(now)))


class AvailabilityCalculator:
    """
    Computes bookable slots from working hours, existing appointments and
    blocked times. Read-only: never writes and never takes locks.
    """

    def __init__(self, db: Session):
        self.db = db
        self.resolver = WorkingHoursResolver(db)

    @staticmethod
    def compute_duration(staff: StaffMember, services: Sequence[Service], rules: BookingRules) -> DurationBreakdown:
        """Service time plus the largest buffers; the salon default raises the after-buffer."""
        return DurationBreakdown(
            service_minutes=sum(CatalogService.service_duration(staff, service) for service in services),
            buffer_before_minutes=max((service.buffer_before_minutes or 0) for service in services),
            buffer_after_minutes=max(
                max((service.buffer_after_minutes or 0) for service in services),
                rules.default_buffer_minutes or 0,
            ),
        )

    def total_duration_for(
            self,
            ctx: TenantContext,
            staff_id: UUID,
            service_ids: Sequence[UUID],
            rules: Optional[BookingRules] = None,
    ) -> DurationBreakdown:
        staff = TenantScopeGuard.load(self.db, ctx, StaffMember, staff_id, "Staff member")
        services = CatalogService.get_services(self.db, ctx, service_ids)
        rules = rules or CatalogService.get_rules(self.db, ctx.salon_id)
        return self.compute_duration(staff, services, rules)

    def compute_slots(
            self,
            ctx: TenantContext,
            service_ids: Sequence[UUID],
            staff_id: Union[UUID, str, None],
            date_from: date,
            date_to: date,
            rules: Optional[BookingRules] = None,
            now: Optional[datetime] = None,
    ) -> Dict[date, List[Slot]]:
        """
        Slots per local date for one staff member or "any".

        Days without slots are omitted. With "any", identical times from
        different staff are all returned, ordered by time then staff id.
        """
        if date_to < date_from:
            raise ValidationError("date_to must not be before date_from")
        if (date_to - date_from).days + 1 > settings.MAX_SLOT_QUERY_DAYS:
            raise ValidationError(f"Slot queries are limited to {settings.MAX_SLOT_QUERY_DAYS} days")

        now = ensure_utc(now or datetime.now(timezone.utc))
        salon = CatalogService.get_salon(self.db, ctx)
        rules = rules or CatalogService.get_rules(self.db, salon.id)
        services = CatalogService.get_services(self.db, ctx, service_ids)
        requested_ids = [service.id for service in services]

        single_staff = None if staff_id in (None, ANY_STAFF) else staff_id
        staff_members = CatalogService.eligible_staff(self.db, ctx, requested_ids, single_staff)
        if not staff_members:
            logger.info(f"No eligible staff for services {requested_ids} in salon {salon.id}")
            return {}

        tz = salon_zone(salon.timezone)
        staff_ids = [staff.id for staff in staff_members]
        window_start, _ = day_window(date_from, tz)
        _, window_end = day_window(date_to, tz)

        open_ranges = self.resolver.resolve_many(ctx, staff_ids, date_from, date_to)
        appointments = self._blocking_appointments(salon.id, staff_ids, window_start, window_end, now)
        blocked_times = self._blocked_times(salon.id, staff_ids, window_start, window_end)

        earliest = now + timedelta(minutes=rules.min_lead_time_minutes)
        latest = now + timedelta(days=rules.max_booking_horizon_days)
        granularity = rules.slot_granularity_minutes

        slots_by_day: Dict[date, List[Slot]] = {}
        for day in daterange(date_from, date_to):
            day_start, day_end = day_window(day, tz)
            day_slots: List[Slot] = []

            for staff in staff_members:
                total = self.compute_duration(staff, services, rules).total_minutes
                busy: List[TimeRange] = [
                    (minute_of_day(a.starts_at, day, tz), minute_of_day(a.ends_at, day, tz))
                    for a in appointments
                    if a.staff_id == staff.id and _overlaps(a.starts_at, a.ends_at, day_start, day_end)
                ]
                busy.extend(
                    (minute_of_day(b.starts_at, day, tz), minute_of_day(b.ends_at, day, tz))
                    for b in blocked_times
                    if b.staff_id in (None, staff.id) and _overlaps(b.starts_at, b.ends_at, day_start, day_end)
                )
                free = subtract_ranges(open_ranges[staff.id].get(day, []), busy)

                for start_minute in self._candidate_starts(free, total, granularity):
                    starts_at = local_datetime(day, start_minute, tz)
                    if starts_at < earliest or starts_at > latest:
                        continue
                    day_slots.append(Slot(
                        time=format_minute(start_minute),
                        starts_at=starts_at,
                        ends_at=starts_at + timedelta(minutes=total),
                        staff_id=staff.id,
                    ))

            if day_slots:
                day_slots.sort(key=lambda s: (s.starts_at, str(s.staff_id)))
                slots_by_day[day] = day_slots

        logger.info(
            f"Computed {sum(len(s) for s in slots_by_day.values())} slots for salon {salon.id}, "
            f"{date_from} to {date_to}"
        )
        return slots_by_day

    def find_next_available_slot(
            self,
            ctx: TenantContext,
            service_ids: Sequence[UUID],
            staff_id: Union[UUID, str, None] = ANY_STAFF,
            rules: Optional[BookingRules] = None,
            now: Optional[datetime] = None,
    ) -> Optional[Slot]:
        """Earliest slot within the booking horizon, searched a window at a time."""
        now = ensure_utc(now or datetime.now(timezone.utc))
        salon = CatalogService.get_salon(self.db, ctx)
        rules = rules or CatalogService.get_rules(self.db, salon.id)
        tz = salon_zone(salon.timezone)

        window_from = local_date(now, tz)
        horizon_end = local_date(now + timedelta(days=rules.max_booking_horizon_days), tz)
        step = timedelta(days=settings.MAX_SLOT_QUERY_DAYS - 1)

        while window_from <= horizon_end:
            window_to = min(window_from + step, horizon_end)
            slots = self.compute_slots(ctx, service_ids, staff_id, window_from, window_to, rules, now)
            if slots:
                return slots[min(slots)][0]
            window_from = window_to + timedelta(days=1)
        return None

    @staticmethod
    def _candidate_starts(free: Sequence[TimeRange], total_minutes: int, granularity: int):
        """Granularity-aligned starts whose full duration fits inside one free range."""
        for range_start, range_end in free:
            start = -(-range_start // granularity) * granularity  # round up to the grid
            while start + total_minutes <= range_end:
                yield start
                start += granularity

    def _blocking_appointments(self, salon_id, staff_ids, window_start, window_end, now) -> List[Appointment]:
        return self.db.query(Appointment).filter(
            Appointment.salon_id == salon_id,
            Appointment.staff_id.in_(staff_ids),
            Appointment.starts_at < window_end,
            Appointment.ends_at > window_start,
            blocking_clause(now),
        ).all()

    def _blocked_times(self, salon_id, staff_ids, window_start, window_end) -> List[BlockedTime]:
        return self.db.query(BlockedTime).filter(
            BlockedTime.salon_id == salon_id,
            or_(BlockedTime.staff_id.is_(None), BlockedTime.staff_id.in_(staff_ids)),
            BlockedTime.starts_at < window_end,
            BlockedTime.ends_at > window_start,
        ).all()


def _overlaps(starts_at: datetime, ends_at: datetime, window_start: datetime, window_end: datetime) -> bool:
    return ensure_utc(starts_at) < window_end and ensure_utc(ends_at) > window_start
