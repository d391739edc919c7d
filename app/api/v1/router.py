"""API v1 router configuration."""

from fastapi import APIRouter

from app.api.v1.endpoints import (
    appointments,
    booking_links,
    health,
    notifications,
    realtime,
    settings,
    verify,
)

api_router = APIRouter()

# Include routers
api_router.include_router(health.router, tags=["Health"])
api_router.include_router(appointments.router, prefix="/appointments", tags=["Appointments"])
api_router.include_router(verify.router, prefix="/verify", tags=["Approval Links"])
api_router.include_router(booking_links.router)
api_router.include_router(booking_links.public_router)
api_router.include_router(notifications.router, tags=["Notifications"])
api_router.include_router(settings.router, tags=["Settings"])
api_router.include_router(realtime.router, tags=["Realtime"])
