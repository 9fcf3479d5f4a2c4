# salon_booking/models/staff.py
from sqlalchemy import Column, String, Integer, Boolean, DateTime, ForeignKey, UniqueConstraint, Uuid
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import uuid

from salon_booking.models.base import Base


class StaffMember(Base):
    __tablename__ = "staff_members"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    salon_id = Column(Uuid(as_uuid=True), ForeignKey("salons.id", ondelete="CASCADE"), nullable=False, index=True)

    display_name = Column(String(200), nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    is_bookable = Column(Boolean, default=True, nullable=False)  # shown in online booking

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    skills = relationship("StaffServiceSkill", back_populates="staff", lazy="selectin")

    def skill_for(self, service_id):
        """Return the active skill row for a service, if any."""
        for skill in self.skills:
            if skill.service_id == service_id and skill.is_active:
                return skill
        return None

    def can_perform(self, service_ids) -> bool:
        return all(self.skill_for(service_id) is not None for service_id in service_ids)

    def __repr__(self):
        return f"<StaffMember(id={self.id}, name={self.display_name})>"


class StaffServiceSkill(Base):
    """Which services a staff member can perform, with an optional duration override"""
    __tablename__ = "staff_service_skills"
    __table_args__ = (
        UniqueConstraint("staff_id", "service_id", name="staff_skills_unique"),
    )

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    salon_id = Column(Uuid(as_uuid=True), ForeignKey("salons.id", ondelete="CASCADE"), nullable=False)
    staff_id = Column(Uuid(as_uuid=True), ForeignKey("staff_members.id", ondelete="CASCADE"), nullable=False, index=True)
    service_id = Column(Uuid(as_uuid=True), ForeignKey("services.id", ondelete="CASCADE"), nullable=False, index=True)

    custom_duration_minutes = Column(Integer, nullable=True)  # NULL = use service duration
    is_active = Column(Boolean, default=True, nullable=False)

    staff = relationship("StaffMember", back_populates="skills")
