# salon_booking/services/catalog/catalog_service.py
"""Read-only access to salon, rules, services and staff skills"""
from typing import List, Sequence
from uuid import UUID

from sqlalchemy.orm import Session

from salon_booking.core.exceptions import NotFoundError, ValidationError
from salon_booking.core.tenancy import Role, TenantContext, TenantScopeGuard, as_uuid
from salon_booking.models.salon import BookingRules, Salon
from salon_booking.models.service import Service
from salon_booking.models.staff import StaffMember


class CatalogService:
    """Loads catalog rows scoped to the caller's salon"""

    @staticmethod
    def get_salon(db: Session, ctx: TenantContext) -> Salon:
        salon = db.get(Salon, as_uuid(ctx.salon_id))
        if not salon or not salon.is_active:
            raise NotFoundError("Salon not found")
        return salon

    @staticmethod
    def get_rules(db: Session, salon_id: UUID) -> BookingRules:
        """Stored rules for the salon, or an unsaved defaults instance."""
        rules = db.query(BookingRules).filter(BookingRules.salon_id == salon_id).first()
        return rules or BookingRules.defaults(salon_id)

    @staticmethod
    def get_services(db: Session, ctx: TenantContext, service_ids: Sequence) -> List[Service]:
        """Active services in the order requested. Customers only get online-bookable ones."""
        if not service_ids:
            raise ValidationError("At least one service is required")

        ids = [as_uuid(service_id) for service_id in service_ids]
        if len(set(ids)) != len(ids):
            raise ValidationError("Duplicate services in request")

        services = []
        for service_id in ids:
            service = TenantScopeGuard.load(db, ctx, Service, service_id, "Service")
            if not service.is_active:
                raise ValidationError(f"Service '{service.name}' is not bookable")
            if ctx.role == Role.CUSTOMER and not service.online_bookable:
                raise ValidationError(f"Service '{service.name}' cannot be booked online")
            services.append(service)
        return services

    @staticmethod
    def eligible_staff(db: Session, ctx: TenantContext, service_ids: Sequence[UUID], staff_id=None) -> List[StaffMember]:
        """
        Active, bookable staff holding active skills for every requested service.

        When staff_id is given only that staff member is considered.
        """
        if staff_id is not None:
            staff = TenantScopeGuard.load(db, ctx, StaffMember, staff_id, "Staff member")
            candidates = [staff]
        else:
            candidates = db.query(StaffMember).filter(
                StaffMember.salon_id == ctx.salon_id,
                StaffMember.is_active.is_(True),
                StaffMember.is_bookable.is_(True),
            ).order_by(StaffMember.id).all()

        return [
            staff for staff in candidates
            if staff.is_active and staff.is_bookable and staff.can_perform(service_ids)
        ]

    @staticmethod
    def service_duration(staff: StaffMember, service: Service) -> int:
        """Duration for this staff member, honouring a custom skill duration."""
        skill = staff.skill_for(service.id)
        if skill and skill.custom_duration_minutes:
            return skill.custom_duration_minutes
        return service.duration_minutes
