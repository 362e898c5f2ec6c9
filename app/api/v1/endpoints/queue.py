"""Staff queue management endpoints."""

from datetime import date
from uuid import UUID

from fastapi import APIRouter, BackgroundTasks, Query, status

from app.dependencies import ClinicToday, CurrentStaff, CurrentUser, DatabaseSession
from app.schemas.appointments import AppointmentResponse, AppointmentStatusUpdate
from app.schemas.queue import (
    CapacityResponse,
    DoctorQueueResponse,
    NoShowResponse,
    PriorityInsertRequest,
    PriorityInsertResponse,
)
from app.services.appointment_service import AppointmentService
from app.services.notification_service import NotificationService
from app.services.scheduling.absence import AbsenceHandler
from app.services.scheduling.priority import PriorityInsertion

router = APIRouter(prefix="/queue")


@router.post(
    "/priority",
    response_model=PriorityInsertResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Insert a priority patient",
)
async def insert_priority(
    data: PriorityInsertRequest,
    current_user: CurrentStaff,
    db: DatabaseSession,
    today: ClinicToday,
    background_tasks: BackgroundTasks,
) -> PriorityInsertResponse:
    """
    Insert an emergency patient at a queue position.

    Everyone at or after the position moves back one place. Displaced
    patients are notified of their new number and time.

    Args:
        data: Patient, doctor, date and target position
        current_user: Authenticated staff member
        db: Database session
        today: Clinic calendar date
        background_tasks: Post-response push delivery

    Returns:
        New appointment and displaced patients
    """
    insertion = PriorityInsertion(db, today=today)
    result = await insertion.insert_priority(
        patient_id=data.patient_id,
        doctor_id=data.doctor_id,
        reason=data.reason,
        appointment_date=data.appointment_date,
        target_position=data.target_position,
        department_id=data.department_id,
    )
    NotificationService.schedule_push(background_tasks, insertion.outbox)
    return result


@router.post(
    "/{appointment_id}/no-show",
    response_model=NoShowResponse,
    status_code=status.HTTP_200_OK,
    summary="Mark no-show and rebook",
)
async def mark_no_show(
    appointment_id: UUID,
    current_user: CurrentStaff,
    db: DatabaseSession,
    today: ClinicToday,
    background_tasks: BackgroundTasks,
) -> NoShowResponse:
    """Mark a missed appointment and rebook the patient on the next day with room."""
    handler = AbsenceHandler(db, today=today)
    result = await handler.mark_no_show(appointment_id)
    NotificationService.schedule_push(background_tasks, handler.outbox)
    return result


@router.patch(
    "/{appointment_id}/status",
    response_model=AppointmentResponse,
    status_code=status.HTTP_200_OK,
    summary="Update appointment status",
)
async def update_appointment_status(
    appointment_id: UUID,
    data: AppointmentStatusUpdate,
    current_user: CurrentStaff,
    db: DatabaseSession,
    background_tasks: BackgroundTasks,
) -> AppointmentResponse:
    """
    Move an appointment along ``scheduled → called → in-progress → completed``
    or cancel a scheduled one.
    """
    service = AppointmentService(db)
    result = await service.update_appointment_status(appointment_id, data)
    NotificationService.schedule_push(background_tasks, service.outbox)
    return result


@router.get(
    "/doctors/{doctor_id}",
    response_model=DoctorQueueResponse,
    status_code=status.HTTP_200_OK,
    summary="Doctor's queue for a date",
)
async def get_doctor_queue(
    doctor_id: UUID,
    current_user: CurrentStaff,
    db: DatabaseSession,
    today: ClinicToday,
    on_date: date | None = Query(None, alias="date"),
) -> DoctorQueueResponse:
    """Active appointments of a doctor ordered by queue number. Defaults to today."""
    service = AppointmentService(db)
    return await service.get_doctor_queue(doctor_id, on_date or today)


@router.get(
    "/doctors/{doctor_id}/capacity",
    response_model=CapacityResponse,
    status_code=status.HTTP_200_OK,
    summary="Doctor's capacity for a date",
)
async def get_doctor_capacity(
    doctor_id: UUID,
    current_user: CurrentUser,
    db: DatabaseSession,
    today: ClinicToday,
    on_date: date | None = Query(None, alias="date"),
) -> CapacityResponse:
    """Current load, limit and next queue position. Defaults to today."""
    service = AppointmentService(db)
    return await service.get_doctor_capacity(doctor_id, on_date or today)
