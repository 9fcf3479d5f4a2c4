# salon_booking/models/salon.py
"""
Salon Model - tenant boundary
Every other scheduling row carries a salon_id and is only ever read through it.
"""
from sqlalchemy import Column, String, Boolean, DateTime, Integer, Numeric, ForeignKey, CheckConstraint, Uuid
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import enum
import uuid

from salon_booking.models.base import Base


class NoShowPolicy(str, enum.Enum):
    """What happens financially when a customer does not show up."""
    NONE = "none"
    CHARGE_DEPOSIT = "charge_deposit"
    CHARGE_FULL = "charge_full"


class Salon(Base):
    __tablename__ = "salons"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name = Column(String(200), nullable=False)
    timezone = Column(String(50), nullable=False, default="Europe/Zurich")

    # Confirmation behaviour
    auto_confirm_bookings = Column(Boolean, default=True, nullable=False)
    require_manual_approval = Column(Boolean, default=False, nullable=False)

    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    booking_rules = relationship("BookingRules", back_populates="salon", uselist=False)

    def __repr__(self):
        return f"<Salon(id={self.id}, name={self.name})>"


class BookingRules(Base):
    """Per-salon booking configuration"""
    __tablename__ = "booking_rules"
    __table_args__ = (
        CheckConstraint("min_lead_time_minutes >= 0", name="booking_rules_lead_time_positive"),
        CheckConstraint("max_booking_horizon_days > 0", name="booking_rules_horizon_positive"),
        CheckConstraint("slot_granularity_minutes IN (5, 10, 15, 30, 60)", name="booking_rules_granularity_valid"),
        CheckConstraint(
            "deposit_required_percent >= 0 AND deposit_required_percent <= 100",
            name="booking_rules_deposit_range",
        ),
        CheckConstraint("reservation_timeout_minutes > 0", name="booking_rules_timeout_positive"),
    )

    DEFAULTS = {
        "min_lead_time_minutes": 60,
        "max_booking_horizon_days": 90,
        "slot_granularity_minutes": 15,
        "default_buffer_minutes": 0,
        "reservation_timeout_minutes": 15,
        "cancellation_cutoff_hours": 24,
        "max_bookings_per_day": None,
        "max_concurrent_reservations_per_customer": 2,
        "max_services_per_appointment": 5,
        "deposit_required_percent": 0,
        "no_show_policy": NoShowPolicy.NONE.value,
        "allow_customer_cancellation": True,
    }

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    salon_id = Column(Uuid(as_uuid=True), ForeignKey("salons.id", ondelete="CASCADE"), nullable=False, unique=True)

    # Lead time and horizon
    min_lead_time_minutes = Column(Integer, nullable=False, default=60)
    max_booking_horizon_days = Column(Integer, nullable=False, default=90)

    # Slot settings
    slot_granularity_minutes = Column(Integer, nullable=False, default=15)
    default_buffer_minutes = Column(Integer, nullable=False, default=0)

    # Holds and cancellation
    reservation_timeout_minutes = Column(Integer, nullable=False, default=15)
    cancellation_cutoff_hours = Column(Integer, nullable=False, default=24)
    allow_customer_cancellation = Column(Boolean, nullable=False, default=True)

    # Limits (NULL = unlimited)
    max_bookings_per_day = Column(Integer, nullable=True)
    max_concurrent_reservations_per_customer = Column(Integer, nullable=True, default=2)
    max_services_per_appointment = Column(Integer, nullable=True, default=5)

    # Deposit and no-show
    deposit_required_percent = Column(Numeric(5, 2), nullable=False, default=0)
    no_show_policy = Column(String(20), nullable=False, default=NoShowPolicy.NONE.value)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    salon = relationship("Salon", back_populates="booking_rules")

    @classmethod
    def defaults(cls, salon_id) -> "BookingRules":
        """Unsaved rules object used when a salon has not configured its own"""
        return cls(salon_id=salon_id, **cls.DEFAULTS)

    def to_dict(self):
        return {
            "salon_id": str(self.salon_id),
            "min_lead_time_minutes": self.min_lead_time_minutes,
            "max_booking_horizon_days": self.max_booking_horizon_days,
            "slot_granularity_minutes": self.slot_granularity_minutes,
            "default_buffer_minutes": self.default_buffer_minutes,
            "reservation_timeout_minutes": self.reservation_timeout_minutes,
            "cancellation_cutoff_hours": self.cancellation_cutoff_hours,
            "max_bookings_per_day": self.max_bookings_per_day,
            "max_concurrent_reservations_per_customer": self.max_concurrent_reservations_per_customer,
            "deposit_required_percent": float(self.deposit_required_percent or 0),
            "no_show_policy": self.no_show_policy,
        }

    def __repr__(self):
        return f"<BookingRules(salon_id={self.salon_id})>"
