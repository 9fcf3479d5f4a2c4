# salon_booking/models/schedule.py
"""
Salon opening hours and staff schedules: recurring weekly hours, dated
overrides, absences and blocked times.
Times of day are stored as minutes since local midnight (0-1440) in the salon timezone.
"""
from sqlalchemy import Column, String, Integer, Boolean, Date, DateTime, Text, ForeignKey, CheckConstraint, Uuid
from sqlalchemy.sql import func
import uuid

from salon_booking.models.base import Base


class OpeningHours(Base):
    """Regular weekly opening hours of a salon, one row per range"""
    __tablename__ = "opening_hours"
    __table_args__ = (
        CheckConstraint("day_of_week >= 0 AND day_of_week <= 6", name="opening_hours_day_range"),
        CheckConstraint(
            "open_minute >= 0 AND close_minute <= 1440 AND close_minute > open_minute",
            name="opening_hours_time_order",
        ),
    )

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    salon_id = Column(Uuid(as_uuid=True), ForeignKey("salons.id", ondelete="CASCADE"), nullable=False, index=True)

    day_of_week = Column(Integer, nullable=False)  # 0=Monday, 6=Sunday
    open_minute = Column(Integer, nullable=False)
    close_minute = Column(Integer, nullable=False)

    label = Column(String(100), nullable=True)  # "Morning", "Late opening"
    is_active = Column(Boolean, default=True, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now())

    def applies_on(self, day) -> bool:
        return self.is_active and self.day_of_week == day.weekday()


class WorkingHours(Base):
    """Recurring weekly working hours for a staff member"""
    __tablename__ = "staff_working_hours"
    __table_args__ = (
        CheckConstraint("day_of_week >= 0 AND day_of_week <= 6", name="staff_working_hours_day_range"),
        CheckConstraint(
            "start_minute >= 0 AND end_minute <= 1440 AND end_minute > start_minute",
            name="staff_working_hours_time_order",
        ),
        CheckConstraint(
            "(break_start_minute IS NULL AND break_end_minute IS NULL) OR "
            "(break_start_minute >= start_minute AND break_end_minute <= end_minute "
            "AND break_end_minute > break_start_minute)",
            name="staff_working_hours_break_order",
        ),
    )

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    salon_id = Column(Uuid(as_uuid=True), ForeignKey("salons.id", ondelete="CASCADE"), nullable=False)
    staff_id = Column(Uuid(as_uuid=True), ForeignKey("staff_members.id", ondelete="CASCADE"), nullable=False, index=True)

    day_of_week = Column(Integer, nullable=False)  # 0=Monday, 6=Sunday
    start_minute = Column(Integer, nullable=False)
    end_minute = Column(Integer, nullable=False)
    break_start_minute = Column(Integer, nullable=True)
    break_end_minute = Column(Integer, nullable=True)

    # Validity (NULL = open ended)
    valid_from = Column(Date, nullable=True)
    valid_to = Column(Date, nullable=True)

    is_active = Column(Boolean, default=True, nullable=False)

    def applies_on(self, day) -> bool:
        if not self.is_active or self.day_of_week != day.weekday():
            return False
        if self.valid_from and day < self.valid_from:
            return False
        if self.valid_to and day > self.valid_to:
            return False
        return True


class WorkingHoursOverride(Base):
    """Dated replacement of the recurring hours (special hours, day off)"""
    __tablename__ = "staff_working_hours_overrides"
    __table_args__ = (
        CheckConstraint("valid_to >= valid_from", name="staff_overrides_valid_period"),
        CheckConstraint(
            "is_working = false OR (start_minute IS NOT NULL AND end_minute IS NOT NULL "
            "AND end_minute > start_minute)",
            name="staff_overrides_time_order",
        ),
    )

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    salon_id = Column(Uuid(as_uuid=True), ForeignKey("salons.id", ondelete="CASCADE"), nullable=False)
    staff_id = Column(Uuid(as_uuid=True), ForeignKey("staff_members.id", ondelete="CASCADE"), nullable=False, index=True)

    valid_from = Column(Date, nullable=False)
    valid_to = Column(Date, nullable=False)
    day_of_week = Column(Integer, nullable=True)  # NULL = every day in the range

    is_working = Column(Boolean, nullable=False, default=True)  # False = day off
    start_minute = Column(Integer, nullable=True)
    end_minute = Column(Integer, nullable=True)
    break_start_minute = Column(Integer, nullable=True)
    break_end_minute = Column(Integer, nullable=True)

    reason = Column(String, nullable=True)  # "Holiday", "Late shift", etc.

    def applies_on(self, day) -> bool:
        if day < self.valid_from or day > self.valid_to:
            return False
        return self.day_of_week is None or self.day_of_week == day.weekday()


class Absence(Base):
    """Dates when a staff member is unavailable, optionally only part of the day"""
    __tablename__ = "staff_absences"
    __table_args__ = (
        CheckConstraint("end_date >= start_date", name="staff_absences_date_order"),
        CheckConstraint(
            "(start_minute IS NULL AND end_minute IS NULL) OR "
            "(start_minute >= 0 AND end_minute <= 1440 AND end_minute > start_minute)",
            name="staff_absences_time_range",
        ),
    )

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    salon_id = Column(Uuid(as_uuid=True), ForeignKey("salons.id", ondelete="CASCADE"), nullable=False)
    staff_id = Column(Uuid(as_uuid=True), ForeignKey("staff_members.id", ondelete="CASCADE"), nullable=False, index=True)

    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)

    # NULL = full day
    start_minute = Column(Integer, nullable=True)
    end_minute = Column(Integer, nullable=True)

    reason = Column(String(20), nullable=False, default="other")  # vacation, sick, training, personal, other
    notes = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())

    @property
    def is_full_day(self) -> bool:
        return self.start_minute is None and self.end_minute is None

    def covers(self, day) -> bool:
        return self.start_date <= day <= self.end_date


class BlockedTime(Base):
    """Absolute time blocks, salon-wide (staff_id NULL) or for one staff member"""
    __tablename__ = "blocked_times"
    __table_args__ = (
        CheckConstraint("ends_at > starts_at", name="blocked_times_time_order"),
    )

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    salon_id = Column(Uuid(as_uuid=True), ForeignKey("salons.id", ondelete="CASCADE"), nullable=False, index=True)
    staff_id = Column(Uuid(as_uuid=True), ForeignKey("staff_members.id", ondelete="CASCADE"), nullable=True)

    block_type = Column(String(20), nullable=False, default="other")  # salon_closed, maintenance, private_event, other
    starts_at = Column(DateTime(timezone=True), nullable=False)
    ends_at = Column(DateTime(timezone=True), nullable=False)
    title = Column(String(200), nullable=False)
