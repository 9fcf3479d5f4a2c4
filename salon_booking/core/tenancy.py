# salon_booking/core/tenancy.py
"""
Tenant scoping.

The identity provider resolves who is calling and for which salon; this core
only receives that as an explicit TenantContext argument on every call.
There is no module-level "current salon".
"""
import enum
from dataclasses import dataclass
from typing import Optional, Union
from uuid import UUID

from salon_booking.core.exceptions import AuthorizationError, NotFoundError


class Role(str, enum.Enum):
    """Roles a principal can hold within a salon."""
    CUSTOMER = "customer"
    STAFF = "staff"
    MANAGER = "manager"
    ADMIN = "admin"
    SYSTEM = "system"  # background workers


STAFF_ROLES = (Role.STAFF, Role.MANAGER, Role.ADMIN, Role.SYSTEM)


@dataclass(frozen=True)
class TenantContext:
    """Validated (salon, principal, role) tuple for a single call"""
    salon_id: UUID
    principal_id: Optional[UUID]
    role: Role

    @classmethod
    def system(cls, salon_id: UUID) -> "TenantContext":
        return cls(salon_id=salon_id, principal_id=None, role=Role.SYSTEM)

    @property
    def is_staff(self) -> bool:
        return self.role in STAFF_ROLES


class TenantScopeGuard:
    """Checks shared by every service before touching a tenant-owned row"""

    @staticmethod
    def ensure_same_salon(ctx: TenantContext, entity, label: str = "Resource"):
        """Reject references to rows that belong to another salon."""
        if entity is None:
            raise NotFoundError(f"{label} not found")
        if as_uuid(entity.salon_id) != as_uuid(ctx.salon_id):
            raise AuthorizationError(f"{label} belongs to a different salon")
        return entity

    @staticmethod
    def require_role(ctx: TenantContext, *roles: Role) -> None:
        if ctx.role not in roles:
            allowed = ", ".join(r.value for r in roles)
            raise AuthorizationError(f"Role '{ctx.role.value}' not permitted (requires one of: {allowed})")

    @staticmethod
    def ensure_customer_access(ctx: TenantContext, customer_id) -> None:
        """Customers may only act on their own bookings; staff may act on any."""
        if ctx.is_staff:
            return
        if ctx.role == Role.CUSTOMER and ctx.principal_id is not None \
                and as_uuid(ctx.principal_id) == as_uuid(customer_id):
            return
        raise AuthorizationError("Not allowed to act on behalf of this customer")

    @staticmethod
    def load(db, ctx: TenantContext, model, entity_id, label: Optional[str] = None):
        """Fetch a row by id and verify it belongs to the caller's salon."""
        label = label or model.__name__
        entity = db.get(model, as_uuid(entity_id))
        return TenantScopeGuard.ensure_same_salon(ctx, entity, label)


def as_uuid(value: Union[str, UUID]) -> UUID:
    if isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except ValueError:
        raise NotFoundError(f"Invalid identifier: {value}")
