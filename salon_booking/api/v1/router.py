"""
API v1 router setup
All routes require a bearer token issued by the identity provider
"""
from fastapi import APIRouter

from salon_booking.api.v1 import appointments, availability, reservations, waitlist

api_v1_router = APIRouter()

# ============================================================================
# BOOKING ROUTES (JWT with salon_id, sub and role claims)
# ============================================================================
api_v1_router.include_router(availability.router, tags=["Availability"])
api_v1_router.include_router(reservations.router, tags=["Reservations"])
api_v1_router.include_router(appointments.router, tags=["Appointments"])
api_v1_router.include_router(waitlist.router, tags=["Waitlist"])


# ============================================================================
# ROOT ENDPOINT - API Info
# ============================================================================
@api_v1_router.get("/", tags=["Info"])
async def api_info():
    """API information and route groups."""
    return {
        "version": "1.0",
        "authentication": "JWT Bearer token carrying salon_id, sub and role",
        "routes": {
            "availability": "/availability/slots, /availability/next",
            "reservations": "/reservations",
            "appointments": "/appointments",
            "waitlist": "/waitlist",
        }
    }


@api_v1_router.get("/health", tags=["Info"])
async def health_check():
    return {
        "status": "healthy",
        "version": "1.0",
        "service": "Salon Booking API"
    }
