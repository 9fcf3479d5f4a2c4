# ============================================================================
# FILE: salon_booking/api/dependencies.py
# Tenant context from JWT bearer tokens, plus service collaborators
# ============================================================================
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from typing import Optional
from jose import JWTError, jwt
from uuid import UUID
import logging

from salon_booking.config.settings import settings
from salon_booking.core.tenancy import Role, TenantContext
from salon_booking.services.collaborators.notifications import (
    CeleryFreedSlotPublisher,
    CeleryNotificationDispatcher,
    FreedSlotPublisher,
    NotificationDispatcher,
)
from salon_booking.services.collaborators.payment import HttpPaymentProcessor, PaymentProcessor

logger = logging.getLogger(__name__)

# ============================================================================
# Security Schemes
# ============================================================================

# Tokens are issued by the identity provider; this service only verifies them
jwt_security = HTTPBearer(
    scheme_name="JWT Bearer Token",
    description="Access token carrying sub, salon_id and role claims"
)


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


# ============================================================================
# JWT Token Functions
# ============================================================================

def verify_access_token(token: str) -> dict:
    """
    Verify and decode a JWT access token.

    Raises:
        HTTPException: If token is invalid or expired
    """
    try:
        return jwt.decode(
            token,
            settings.JWT_SECRET_KEY,
            algorithms=[settings.JWT_ALGORITHM]
        )
    except JWTError as e:
        raise _unauthorized(f"Could not validate credentials: {str(e)}")


def tenant_context_from_claims(payload: dict) -> TenantContext:
    """Build the per-request TenantContext from token claims."""
    salon_id_str: Optional[str] = payload.get("salon_id")
    role_str: Optional[str] = payload.get("role")
    if not salon_id_str or not role_str:
        raise _unauthorized("Token is missing salon_id or role")

    try:
        salon_id = UUID(salon_id_str)
    except ValueError:
        raise _unauthorized("Invalid salon ID in token")

    try:
        role = Role(role_str)
    except ValueError:
        raise _unauthorized(f"Unknown role '{role_str}'")

    principal_id = None
    sub = payload.get("sub")
    if sub:
        try:
            principal_id = UUID(sub)
        except ValueError:
            raise _unauthorized("Invalid subject in token")

    if role == Role.CUSTOMER and principal_id is None:
        raise _unauthorized("Customer tokens must carry a subject")

    return TenantContext(salon_id=salon_id, principal_id=principal_id, role=role)


# ============================================================================
# Dependencies
# ============================================================================

async def get_tenant_context(
        credentials: HTTPAuthorizationCredentials = Depends(jwt_security)
) -> TenantContext:
    """
    Dependency resolving the caller's salon, identity and role.

    Usage in routes:
        @router.get("/appointments")
        async def list_appointments(ctx: TenantContext = Depends(get_tenant_context)):
            ...
    """
    return tenant_context_from_claims(verify_access_token(credentials.credentials))


def get_payment_processor() -> PaymentProcessor:
    return HttpPaymentProcessor()


def get_notifier() -> NotificationDispatcher:
    return CeleryNotificationDispatcher()


def get_freed_slot_publisher() -> FreedSlotPublisher:
    return CeleryFreedSlotPublisher()
