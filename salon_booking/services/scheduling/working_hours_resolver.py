# salon_booking/services/scheduling/working_hours_resolver.py
"""Resolves a staff member's open intervals for a date"""
import logging
from collections import defaultdict
from datetime import date
from typing import Dict, Iterable, List, Optional, Sequence
from uuid import UUID

from sqlalchemy.orm import Session

from salon_booking.core.exceptions import ValidationError
from salon_booking.core.tenancy import TenantContext, TenantScopeGuard
from salon_booking.models.schedule import Absence, OpeningHours, WorkingHours, WorkingHoursOverride
from salon_booking.models.staff import StaffMember
from salon_booking.services.scheduling.time_ranges import (
    MINUTES_PER_DAY,
    TimeRange,
    daterange,
    intersect_ranges,
    merge_ranges,
    subtract_ranges,
)

logger = logging.getLogger(__name__)


class WorkingHoursResolver:
    """
    Combines recurring hours, dated overrides, salon opening hours and absences.

    Order of precedence for a date:
    1. Recurring hours valid on that weekday
    2. Any override valid on that date replaces them (day off = nothing)
    3. Breaks are cut out
    4. The result is limited to the salon's opening hours, if the salon has any
    5. Absences always subtract
    """

    def __init__(self, db: Session):
        self.db = db

    def resolve(self, ctx: TenantContext, staff_id: UUID, day: date) -> List[TimeRange]:
        staff = TenantScopeGuard.load(self.db, ctx, StaffMember, staff_id, "Staff member")
        return self.resolve_many(ctx, [staff.id], day, day)[staff.id].get(day, [])

    def resolve_many(
            self,
            ctx: TenantContext,
            staff_ids: Sequence[UUID],
            date_from: date,
            date_to: date,
    ) -> Dict[UUID, Dict[date, List[TimeRange]]]:
        """Open intervals per staff and date, loading schedule rows once for the range."""
        if date_to < date_from:
            raise ValidationError("date_to must not be before date_from")

        result: Dict[UUID, Dict[date, List[TimeRange]]] = {staff_id: {} for staff_id in staff_ids}
        if not staff_ids:
            return result

        recurring = self.db.query(WorkingHours).filter(
            WorkingHours.salon_id == ctx.salon_id,
            WorkingHours.staff_id.in_(staff_ids),
            WorkingHours.is_active.is_(True),
        ).all()

        overrides = self.db.query(WorkingHoursOverride).filter(
            WorkingHoursOverride.salon_id == ctx.salon_id,
            WorkingHoursOverride.staff_id.in_(staff_ids),
            WorkingHoursOverride.valid_from <= date_to,
            WorkingHoursOverride.valid_to >= date_from,
        ).all()

        absences = self.db.query(Absence).filter(
            Absence.salon_id == ctx.salon_id,
            Absence.staff_id.in_(staff_ids),
            Absence.start_date <= date_to,
            Absence.end_date >= date_from,
        ).all()

        opening_hours = self.db.query(OpeningHours).filter(
            OpeningHours.salon_id == ctx.salon_id,
            OpeningHours.is_active.is_(True),
        ).all()

        recurring_by_staff = _group_by_staff(recurring)
        overrides_by_staff = _group_by_staff(overrides)
        absences_by_staff = _group_by_staff(absences)

        for staff_id in staff_ids:
            for day in daterange(date_from, date_to):
                result[staff_id][day] = self.resolve_day(
                    recurring_by_staff.get(staff_id, []),
                    overrides_by_staff.get(staff_id, []),
                    absences_by_staff.get(staff_id, []),
                    day,
                    opening_hours=opening_hours or None,
                )

        logger.debug(f"Resolved working hours for {len(staff_ids)} staff, {date_from} to {date_to}")
        return result

    @staticmethod
    def resolve_day(
            recurring: Iterable[WorkingHours],
            overrides: Iterable[WorkingHoursOverride],
            absences: Iterable[Absence],
            day: date,
            opening_hours: Optional[Iterable[OpeningHours]] = None,
    ) -> List[TimeRange]:
        """
        Pure resolution for a single date from already loaded rows.

        opening_hours=None means the salon has no opening hours configured
        and staff hours are used as they are. A salon with opening hours but
        no range on that weekday is closed.
        """
        day_overrides = [o for o in overrides if o.applies_on(day)]

        if day_overrides:
            if any(not o.is_working for o in day_overrides):
                return []
            sources = day_overrides
        else:
            sources = [r for r in recurring if r.applies_on(day)]

        open_ranges: List[TimeRange] = []
        for source in sources:
            shift = [(source.start_minute, source.end_minute)]
            if source.break_start_minute is not None and source.break_end_minute is not None:
                shift = subtract_ranges(shift, [(source.break_start_minute, source.break_end_minute)])
            open_ranges.extend(shift)

        if opening_hours is not None:
            salon_open = [(o.open_minute, o.close_minute) for o in opening_hours if o.applies_on(day)]
            open_ranges = intersect_ranges(open_ranges, salon_open)

        closed: List[TimeRange] = []
        for absence in absences:
            if not absence.covers(day):
                continue
            if absence.is_full_day:
                return []
            closed.append((absence.start_minute or 0, absence.end_minute or MINUTES_PER_DAY))

        return subtract_ranges(merge_ranges(open_ranges), closed)


def _group_by_staff(rows) -> Dict[UUID, list]:
    grouped = defaultdict(list)
    for row in rows:
        grouped[row.staff_id].append(row)
    return grouped
