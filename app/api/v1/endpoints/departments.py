"""Department directory endpoints."""

from datetime import date
from uuid import UUID

from fastapi import APIRouter, Query, status

from app.dependencies import ClinicToday, CurrentUser, DatabaseSession
from app.schemas.departments import DepartmentDoctorResponse, DepartmentResponse
from app.services.department_service import DepartmentService

router = APIRouter(prefix="/departments")


@router.get(
    "/",
    response_model=list[DepartmentResponse],
    status_code=status.HTTP_200_OK,
    summary="List departments",
)
async def list_departments(db: DatabaseSession) -> list[DepartmentResponse]:
    """Active departments patients can book into."""
    departments = await DepartmentService.list_departments(db)
    return [DepartmentResponse.model_validate(department) for department in departments]


@router.get(
    "/{department_id}/doctors",
    response_model=list[DepartmentDoctorResponse],
    status_code=status.HTTP_200_OK,
    summary="Doctors in a department",
)
async def list_department_doctors(
    department_id: UUID,
    current_user: CurrentUser,
    db: DatabaseSession,
    today: ClinicToday,
    on_date: date | None = Query(None, alias="date"),
) -> list[DepartmentDoctorResponse]:
    """
    Active doctors of a department with their load on a date.

    Args:
        department_id: Department ID
        current_user: Authenticated user
        db: Database session
        today: Clinic calendar date
        on_date: Date to report load for, today when omitted

    Returns:
        Doctors, least loaded first
    """
    doctors = await DepartmentService.list_department_doctors(db, department_id, on_date or today)
    return [DepartmentDoctorResponse(**doctor) for doctor in doctors]
