# salon_booking/models/waitlist.py
"""
Waitlist Model - customers asking to be told when a matching slot frees up
"""
from sqlalchemy import (
    Column, String, Integer, Text, Date, DateTime, ForeignKey, CheckConstraint, Index, JSON, Uuid, inspect
)
from sqlalchemy.orm import validates
from sqlalchemy.sql import func
import enum
import uuid

from salon_booking.models.base import Base


class WaitlistStatus(str, enum.Enum):
    ACTIVE = "active"
    NOTIFIED = "notified"
    EXPIRED = "expired"
    BOOKED = "booked"
    CANCELLED = "cancelled"


class TimeOfDay(str, enum.Enum):
    """Local-time buckets: morning < 12:00 <= afternoon < 17:00 <= evening"""
    MORNING = "morning"
    AFTERNOON = "afternoon"
    EVENING = "evening"

    @classmethod
    def for_minute(cls, minute_of_day: int) -> "TimeOfDay":
        if minute_of_day < 12 * 60:
            return cls.MORNING
        if minute_of_day < 17 * 60:
            return cls.AFTERNOON
        return cls.EVENING


class WaitlistEntry(Base):
    __tablename__ = "waitlist_entries"
    __table_args__ = (
        CheckConstraint(
            "date_range_end IS NULL OR date_range_start IS NULL OR date_range_end >= date_range_start",
            name="waitlist_date_range_order",
        ),
        CheckConstraint("auto_expire_days > 0", name="waitlist_auto_expire_positive"),
        Index("idx_waitlist_salon_status_created", "salon_id", "status", "created_at"),
    )

    # Preferences are fixed once the entry exists; only the status moves
    IMMUTABLE_FIELDS = (
        "customer_id",
        "desired_service_id",
        "date_range_start",
        "date_range_end",
        "preferred_time_of_day",
        "preferred_weekdays",
        "preferred_staff_id",
    )

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    salon_id = Column(Uuid(as_uuid=True), ForeignKey("salons.id", ondelete="CASCADE"), nullable=False)
    customer_id = Column(Uuid(as_uuid=True), nullable=False, index=True)
    desired_service_id = Column(Uuid(as_uuid=True), ForeignKey("services.id", ondelete="CASCADE"), nullable=False)

    # Preferences (NULL / empty = any)
    date_range_start = Column(Date, nullable=True)
    date_range_end = Column(Date, nullable=True)
    preferred_time_of_day = Column(JSON, nullable=False, default=list)  # ["morning", "evening"]
    preferred_weekdays = Column(JSON, nullable=False, default=list)  # ISO 1=Monday .. 7=Sunday
    preferred_staff_id = Column(Uuid(as_uuid=True), ForeignKey("staff_members.id", ondelete="SET NULL"), nullable=True)
    customer_notes = Column(Text, nullable=True)

    # Status
    status = Column(String(20), nullable=False, default=WaitlistStatus.ACTIVE.value)
    notified_at = Column(DateTime(timezone=True), nullable=True)
    notification_count = Column(Integer, nullable=False, default=0)

    # Expiry
    expires_at = Column(DateTime(timezone=True), nullable=True)
    auto_expire_days = Column(Integer, nullable=False, default=30)

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    @validates(*IMMUTABLE_FIELDS)
    def _guard_preferences(self, key, value):
        if inspect(self).persistent and getattr(self, key) != value:
            raise ValueError(f"Waitlist preference '{key}' cannot be changed after creation")
        return value

    def to_dict(self):
        return {
            "id": str(self.id),
            "salon_id": str(self.salon_id),
            "customer_id": str(self.customer_id),
            "desired_service_id": str(self.desired_service_id),
            "date_range_start": self.date_range_start.isoformat() if self.date_range_start else None,
            "date_range_end": self.date_range_end.isoformat() if self.date_range_end else None,
            "preferred_time_of_day": list(self.preferred_time_of_day or []),
            "preferred_weekdays": list(self.preferred_weekdays or []),
            "preferred_staff_id": str(self.preferred_staff_id) if self.preferred_staff_id else None,
            "status": self.status,
            "notified_at": self.notified_at.isoformat() if self.notified_at else None,
            "notification_count": self.notification_count,
            "expires_at": self.expires_at.isoformat() if self.expires_at else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<WaitlistEntry(id={self.id}, customer_id={self.customer_id}, status={self.status})>"
