from datetime import date, timedelta

from salon_booking.models import Absence, OpeningHours, WorkingHours, WorkingHoursOverride
from salon_booking.services.scheduling.time_ranges import (
    contains_range,
    intersect_ranges,
    local_datetime,
    merge_ranges,
    minute_of_day,
    subtract_ranges,
)
from salon_booking.services.scheduling.working_hours_resolver import WorkingHoursResolver
from tests.conftest import MONDAY, TUESDAY, ZURICH

resolve_day = WorkingHoursResolver.resolve_day


def weekly(day_of_week, start, end, break_start=None, break_end=None, **kwargs):
    return WorkingHours(
        day_of_week=day_of_week, start_minute=start, end_minute=end,
        break_start_minute=break_start, break_end_minute=break_end, is_active=True, **kwargs
    )


class TestRangeArithmetic:
    def test_merge_joins_touching_and_overlapping(self):
        assert merge_ranges([(600, 660), (540, 600), (650, 700), (800, 800)]) == [(540, 700)]

    def test_subtract_splits_around_blocks(self):
        assert subtract_ranges([(540, 1020)], [(600, 660), (840, 900)]) == [(540, 600), (660, 840), (900, 1020)]

    def test_subtract_is_half_open(self):
        assert subtract_ranges([(540, 600)], [(600, 660)]) == [(540, 600)]

    def test_intersect(self):
        assert intersect_ranges([(540, 720), (780, 1020)], [(600, 900)]) == [(600, 720), (780, 900)]

    def test_contains_range_requires_single_range(self):
        assert contains_range([(540, 720)], 600, 720)
        assert not contains_range([(540, 600), (600, 660)], 570, 630)

    def test_local_minutes_across_dst_change(self):
        # 29 March 2026: clocks jump from 02:00 to 03:00 in Zurich
        dst_day = date(2026, 3, 29)
        ten_am = local_datetime(dst_day, 600, ZURICH)
        assert ten_am.hour == 8  # UTC+2
        assert minute_of_day(ten_am, dst_day, ZURICH) == 600


class TestResolveDay:
    def test_recurring_hours_with_break(self):
        recurring = [weekly(MONDAY.weekday(), 540, 1020, 720, 780)]
        assert resolve_day(recurring, [], [], MONDAY) == [(540, 720), (780, 1020)]

    def test_other_weekday_is_closed(self):
        recurring = [weekly(MONDAY.weekday(), 540, 1020)]
        assert resolve_day(recurring, [], [], TUESDAY) == []

    def test_validity_window(self):
        recurring = [weekly(MONDAY.weekday(), 540, 1020, valid_from=MONDAY + timedelta(days=7))]
        assert resolve_day(recurring, [], [], MONDAY) == []
        assert resolve_day(recurring, [], [], MONDAY + timedelta(days=7)) == [(540, 1020)]

    def test_override_replaces_recurring(self):
        recurring = [weekly(MONDAY.weekday(), 540, 1020)]
        override = WorkingHoursOverride(
            valid_from=MONDAY, valid_to=MONDAY, is_working=True, start_minute=720, end_minute=1200,
        )
        assert resolve_day(recurring, [override], [], MONDAY) == [(720, 1200)]

    def test_day_off_override_wins_over_other_overrides(self):
        recurring = [weekly(MONDAY.weekday(), 540, 1020)]
        shift = WorkingHoursOverride(
            valid_from=MONDAY, valid_to=MONDAY, is_working=True, start_minute=720, end_minute=1200,
        )
        day_off = WorkingHoursOverride(valid_from=MONDAY, valid_to=MONDAY + timedelta(days=6), is_working=False)
        assert resolve_day(recurring, [shift, day_off], [], MONDAY) == []

    def test_override_restricted_to_weekday(self):
        recurring = [weekly(d, 540, 1020) for d in range(5)]
        override = WorkingHoursOverride(
            valid_from=MONDAY, valid_to=MONDAY + timedelta(days=6), day_of_week=TUESDAY.weekday(),
            is_working=True, start_minute=600, end_minute=660,
        )
        assert resolve_day(recurring, [override], [], MONDAY) == [(540, 1020)]
        assert resolve_day(recurring, [override], [], TUESDAY) == [(600, 660)]

    def test_full_day_absence_closes_the_day(self):
        recurring = [weekly(MONDAY.weekday(), 540, 1020)]
        absence = Absence(start_date=MONDAY, end_date=MONDAY)
        assert resolve_day(recurring, [], [absence], MONDAY) == []

    def test_partial_absence_subtracts_on_each_covered_day(self):
        recurring = [weekly(d, 540, 1020) for d in range(5)]
        absence = Absence(start_date=MONDAY, end_date=TUESDAY, start_minute=540, end_minute=660)
        assert resolve_day(recurring, [], [absence], MONDAY) == [(660, 1020)]
        assert resolve_day(recurring, [], [absence], TUESDAY) == [(660, 1020)]

    def test_absence_applies_on_top_of_override(self):
        override = WorkingHoursOverride(
            valid_from=MONDAY, valid_to=MONDAY, is_working=True, start_minute=720, end_minute=1200,
        )
        absence = Absence(start_date=MONDAY, end_date=MONDAY, start_minute=1080, end_minute=1200)
        assert resolve_day([], [override], [absence], MONDAY) == [(720, 1080)]

    def test_opening_hours_limit_staff_hours(self):
        recurring = [weekly(MONDAY.weekday(), 480, 1140)]
        opening = [
            OpeningHours(day_of_week=MONDAY.weekday(), open_minute=540, close_minute=720, is_active=True),
            OpeningHours(day_of_week=MONDAY.weekday(), open_minute=780, close_minute=1080, is_active=True),
        ]
        assert resolve_day(recurring, [], [], MONDAY, opening_hours=opening) == [(540, 720), (780, 1080)]

    def test_salon_closed_on_weekday_without_opening_hours(self):
        recurring = [weekly(d, 540, 1020) for d in range(5)]
        opening = [OpeningHours(day_of_week=MONDAY.weekday(), open_minute=540, close_minute=1020, is_active=True)]
        assert resolve_day(recurring, [], [], TUESDAY, opening_hours=opening) == []
        assert resolve_day(recurring, [], [], TUESDAY) == [(540, 1020)]


def test_resolve_many_is_scoped_to_the_salon(db, make_salon):
    first = make_salon()
    second = make_salon()

    resolver = WorkingHoursResolver(db)
    result = resolver.resolve_many(first.staff_ctx, [first.anna_id, second.anna_id], MONDAY, TUESDAY)

    assert result[first.anna_id][MONDAY] == [(540, 1020)]
    assert result[second.anna_id][MONDAY] == []
