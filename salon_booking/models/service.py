# salon_booking/models/service.py
"""
Service Model - bookable catalog entries
Source of truth for price, tax and duration at booking time. Appointments
copy these values into AppointmentService snapshots and never read them again.
"""
from sqlalchemy import Column, String, Numeric, Integer, ForeignKey, Boolean, DateTime, Text, Uuid
from sqlalchemy.sql import func
import uuid

from salon_booking.models.base import Base


class Service(Base):
    __tablename__ = "services"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    salon_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("salons.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    # Core service details
    name = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)

    # Pricing
    price_chf = Column(Numeric(10, 2), nullable=False)
    tax_rate_percent = Column(Numeric(5, 2), nullable=True)

    # Duration and buffers in minutes
    duration_minutes = Column(Integer, nullable=False)
    buffer_before_minutes = Column(Integer, default=0, nullable=False)
    buffer_after_minutes = Column(Integer, default=0, nullable=False)

    # Deposit
    requires_deposit = Column(Boolean, default=False, nullable=False)
    deposit_amount_chf = Column(Numeric(10, 2), nullable=True)

    # Status
    is_active = Column(Boolean, default=True, index=True)
    online_bookable = Column(Boolean, default=True)

    # Timestamps
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now()
    )

    def __repr__(self):
        return f"<Service(id={self.id}, name={self.name}, salon_id={self.salon_id})>"

    def to_dict(self):
        """Convert to dictionary for API responses"""
        return {
            "id": str(self.id),
            "salon_id": str(self.salon_id),
            "name": self.name,
            "price_chf": float(self.price_chf) if self.price_chf is not None else None,
            "tax_rate_percent": float(self.tax_rate_percent) if self.tax_rate_percent is not None else None,
            "duration_minutes": self.duration_minutes,
            "buffer_before_minutes": self.buffer_before_minutes,
            "buffer_after_minutes": self.buffer_after_minutes,
            "requires_deposit": self.requires_deposit,
            "is_active": self.is_active,
        }
