"""API v1 router configuration."""

from fastapi import APIRouter

from app.api.v1.endpoints import (
    appointments,
    departments,
    health,
    notifications,
    queue,
)

api_router = APIRouter()

# Include routers
api_router.include_router(health.router, tags=["Health"])
api_router.include_router(appointments.router, prefix="/appointments", tags=["Appointments"])
api_router.include_router(queue.router, tags=["Queue"])
api_router.include_router(departments.router, tags=["Departments"])
api_router.include_router(notifications.router, tags=["Notifications"])
