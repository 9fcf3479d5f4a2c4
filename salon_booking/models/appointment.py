# salon_booking/models/appointment.py
import enum
import uuid

from sqlalchemy import (
    Column, String, Integer, Text, DateTime, Boolean, Numeric, ForeignKey, CheckConstraint, Index, Uuid, event
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from salon_booking.models.base import Base


class AppointmentStatus(str, enum.Enum):
    """Appointment lifecycle states"""
    RESERVED = "reserved"                # Temporary hold, expires at reserved_until
    REQUESTED = "requested"              # Awaiting manual staff approval
    PENDING_DEPOSIT = "pending_deposit"  # Accepted, deposit not captured yet
    CONFIRMED = "confirmed"
    CHECKED_IN = "checked_in"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    NO_SHOW = "no_show"


# Statuses that occupy the staff member's time
BLOCKING_STATUSES = (
    AppointmentStatus.RESERVED.value,
    AppointmentStatus.REQUESTED.value,
    AppointmentStatus.PENDING_DEPOSIT.value,
    AppointmentStatus.CONFIRMED.value,
    AppointmentStatus.CHECKED_IN.value,
    AppointmentStatus.IN_PROGRESS.value,
)

TERMINAL_STATUSES = (
    AppointmentStatus.COMPLETED.value,
    AppointmentStatus.CANCELLED.value,
    AppointmentStatus.NO_SHOW.value,
)


class Appointment(Base):
    __tablename__ = "appointments"
    __table_args__ = (
        CheckConstraint("ends_at > starts_at", name="appointments_time_order"),
        CheckConstraint(
            "(status = 'reserved' AND reserved_until IS NOT NULL) OR "
            "(status != 'reserved' AND reserved_until IS NULL)",
            name="appointments_reserved_until_logic",
        ),
        CheckConstraint(
            "NOT deposit_required OR deposit_amount_chf IS NOT NULL",
            name="appointments_deposit_logic",
        ),
        Index("idx_appointments_staff_window", "staff_id", "starts_at", "ends_at"),
        Index("idx_appointments_salon_status", "salon_id", "status"),
        Index("idx_appointments_reserved_until", "status", "reserved_until"),
    )

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)

    # References
    salon_id = Column(Uuid(as_uuid=True), ForeignKey("salons.id", ondelete="CASCADE"), nullable=False)
    customer_id = Column(Uuid(as_uuid=True), nullable=False, index=True)  # owned by the CRM
    staff_id = Column(Uuid(as_uuid=True), ForeignKey("staff_members.id", ondelete="RESTRICT"), nullable=False)

    # Timing, half-open [starts_at, ends_at), buffers included
    starts_at = Column(DateTime(timezone=True), nullable=False)
    ends_at = Column(DateTime(timezone=True), nullable=False)
    buffer_before_minutes = Column(Integer, nullable=False, default=0)
    buffer_after_minutes = Column(Integer, nullable=False, default=0)
    total_duration_minutes = Column(Integer, nullable=False)

    # Status tracking
    status = Column(String(20), nullable=False, default=AppointmentStatus.RESERVED.value)
    reserved_until = Column(DateTime(timezone=True), nullable=True)
    booked_via = Column(String(20), default="online")  # online, phone, walk_in, admin
    confirmation_number = Column(String(12), nullable=False, unique=True)

    # Pricing totals (sum of the snapshots)
    total_price_chf = Column(Numeric(10, 2), nullable=False, default=0)
    total_tax_chf = Column(Numeric(10, 2), nullable=False, default=0)

    # Deposit
    deposit_required = Column(Boolean, nullable=False, default=False)
    deposit_amount_chf = Column(Numeric(10, 2), nullable=True)
    deposit_paid = Column(Boolean, nullable=False, default=False)
    deposit_payment_reference = Column(String(100), nullable=True)

    customer_notes = Column(Text, nullable=True)

    # Lifecycle timestamps
    confirmed_at = Column(DateTime(timezone=True), nullable=True)
    checked_in_at = Column(DateTime(timezone=True), nullable=True)
    started_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)

    # Cancellation
    cancelled_at = Column(DateTime(timezone=True), nullable=True)
    cancelled_by = Column(String(64), nullable=True)  # principal id, or "system"
    cancellation_reason = Column(Text, nullable=True)
    cancelled_within_cutoff = Column(Boolean, nullable=False, default=False)

    # No-show
    no_show_at = Column(DateTime(timezone=True), nullable=True)
    no_show_charged = Column(Boolean, nullable=False, default=False)

    rescheduled_from_id = Column(Uuid(as_uuid=True), ForeignKey("appointments.id"), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    services = relationship(
        "AppointmentService",
        back_populates="appointment",
        order_by="AppointmentService.sort_order",
        lazy="selectin",
    )

    @property
    def service_ids(self):
        return [line.service_id for line in self.services]

    def __repr__(self):
        return f"<Appointment(id={self.id}, staff_id={self.staff_id}, status={self.status})>"


class AppointmentService(Base):
    """
    Immutable snapshot of a booked service line.
    Captured when the reservation is made; catalog edits never reach it.
    """
    __tablename__ = "appointment_services"
    __table_args__ = (
        CheckConstraint("snapshot_price_chf >= 0", name="appointment_services_price_positive"),
        CheckConstraint("snapshot_duration_minutes > 0", name="appointment_services_duration_positive"),
    )

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    salon_id = Column(Uuid(as_uuid=True), ForeignKey("salons.id", ondelete="CASCADE"), nullable=False)
    appointment_id = Column(Uuid(as_uuid=True), ForeignKey("appointments.id", ondelete="CASCADE"), nullable=False, index=True)
    service_id = Column(Uuid(as_uuid=True), ForeignKey("services.id", ondelete="RESTRICT"), nullable=False)

    snapshot_service_name = Column(String(200), nullable=False)
    snapshot_price_chf = Column(Numeric(10, 2), nullable=False)
    snapshot_tax_rate_percent = Column(Numeric(5, 2), nullable=True)
    snapshot_tax_chf = Column(Numeric(10, 2), nullable=False, default=0)
    snapshot_duration_minutes = Column(Integer, nullable=False)
    sort_order = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime(timezone=True), server_default=func.now())

    appointment = relationship("Appointment", back_populates="services")


@event.listens_for(AppointmentService, "before_update")
def _refuse_snapshot_update(mapper, connection, target):
    raise ValueError("AppointmentService snapshots are append-only")
