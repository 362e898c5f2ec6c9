"""Liveness and readiness checks."""

from datetime import date
from typing import Literal

from fastapi import APIRouter, status
from pydantic import BaseModel

from app.config import settings
from app.core.firebase import is_firebase_initialized
from app.database import check_database_connection
from app.dependencies import ClinicToday

router = APIRouter()


class HealthResponse(BaseModel):
    status: Literal["healthy", "degraded"]
    version: str
    environment: str


class DetailedHealthResponse(HealthResponse):
    """Readiness: storage, push delivery and the clinic's current date."""

    database: Literal["healthy", "unhealthy"]
    push_notifications: Literal["healthy", "disabled", "unavailable"]
    clinic_date: date
    clinic_timezone: str


def push_status() -> str:
    if not settings.push_notifications_enabled:
        return "disabled"
    return "healthy" if is_firebase_initialized() else "unavailable"


@router.get("/health", response_model=HealthResponse, summary="Liveness check")
async def health_check() -> HealthResponse:
    return HealthResponse(
        status="healthy",
        version=settings.app_version,
        environment=settings.environment,
    )


@router.get(
    "/health/detailed",
    response_model=DetailedHealthResponse,
    summary="Readiness check",
)
async def detailed_health_check(today: ClinicToday) -> DetailedHealthResponse:
    """
    Report whether bookings can be taken right now.

    The service is ``degraded`` when the database is unreachable. Push delivery
    being off or unavailable does not degrade it, since notifications are
    still stored for the in-app feed.
    """
    db_healthy = await check_database_connection()
    return DetailedHealthResponse(
        status="healthy" if db_healthy else "degraded",
        version=settings.app_version,
        environment=settings.environment,
        database="healthy" if db_healthy else "unhealthy",
        push_notifications=push_status(),
        clinic_date=today,
        clinic_timezone=settings.clinic_timezone,
    )


@router.get("/ping", status_code=status.HTTP_200_OK, summary="Simple ping")
async def ping() -> dict[str, str]:
    return {"message": "pong"}
