"""Patient appointment endpoints."""

from datetime import date
from uuid import UUID

from fastapi import APIRouter, BackgroundTasks, Query, status

from app.dependencies import ClinicToday, CurrentPatient, CurrentUser, DatabaseSession
from app.schemas.appointments import (
    AppointmentFilters,
    AppointmentListResponse,
    AppointmentResponse,
    AppointmentStatus,
)
from app.schemas.queue import (
    BookingRequest,
    BookingResponse,
    QueuePositionResponse,
    RescheduleResponse,
)
from app.services.appointment_service import AppointmentService
from app.services.notification_service import NotificationService
from app.services.scheduling.allocator import QueueAllocator
from app.services.scheduling.reschedule import RescheduleFinder

router = APIRouter()


@router.post(
    "/book",
    response_model=BookingResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Book an appointment",
)
async def book_appointment(
    data: BookingRequest,
    current_user: CurrentPatient,
    db: DatabaseSession,
    today: ClinicToday,
    background_tasks: BackgroundTasks,
) -> BookingResponse:
    """
    Book the authenticated patient into a department's queue.

    The least loaded doctor in the department is chosen unless a preferred
    doctor is given. Weekend dates move to the following Monday.
    """
    allocator = QueueAllocator(db, today=today)
    booking = await allocator.book_appointment(
        patient_id=current_user["id"],
        appointment_date=data.appointment_date,
        reason=data.reason,
        department_id=data.department_id,
        department=data.department,
        preferred_doctor_id=data.preferred_doctor_id,
    )
    NotificationService.schedule_push(background_tasks, allocator.outbox)
    return booking


@router.get(
    "/",
    response_model=AppointmentListResponse,
    status_code=status.HTTP_200_OK,
    summary="List appointments",
)
async def list_appointments(
    current_user: CurrentUser,
    db: DatabaseSession,
    status_filter: AppointmentStatus | None = Query(None, alias="status"),
    doctor_id: UUID | None = Query(None),
    department_id: UUID | None = Query(None),
    from_date: date | None = Query(None),
    to_date: date | None = Query(None),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
) -> AppointmentListResponse:
    """The authenticated user's appointment history, newest date first."""
    filters = AppointmentFilters(
        status=status_filter,
        doctor_id=doctor_id,
        department_id=department_id,
        from_date=from_date,
        to_date=to_date,
        page=page,
        page_size=page_size,
    )

    service = AppointmentService(db)
    return await service.list_appointments(current_user["id"], filters)


@router.get(
    "/active",
    response_model=list[AppointmentResponse],
    status_code=status.HTTP_200_OK,
    summary="Upcoming appointments",
)
async def list_active_appointments(
    current_user: CurrentUser,
    db: DatabaseSession,
    today: ClinicToday,
) -> list[AppointmentResponse]:
    """Upcoming appointments that still hold a place in a queue."""
    service = AppointmentService(db)
    return await service.list_active(current_user["id"], today)


@router.get(
    "/active/position",
    response_model=QueuePositionResponse,
    status_code=status.HTTP_200_OK,
    summary="My place in the queue",
)
async def get_queue_position(
    current_user: CurrentPatient,
    db: DatabaseSession,
    today: ClinicToday,
    appointment_date: date | None = Query(None),
) -> QueuePositionResponse:
    """Queue number, patients ahead and estimated wait for today's appointment."""
    service = AppointmentService(db)
    return await service.get_queue_position(current_user["id"], appointment_date or today)


@router.get(
    "/{appointment_id}",
    response_model=AppointmentResponse,
    status_code=status.HTTP_200_OK,
    summary="Get appointment by ID",
)
async def get_appointment(
    appointment_id: UUID,
    current_user: CurrentUser,
    db: DatabaseSession,
) -> AppointmentResponse:
    """Get a specific appointment. Patients only see their own."""
    service = AppointmentService(db)
    return await service.get_appointment(appointment_id, current_user)


@router.post(
    "/{appointment_id}/reschedule",
    response_model=RescheduleResponse,
    status_code=status.HTTP_200_OK,
    summary="Move appointment to the next available day",
)
async def reschedule_appointment(
    appointment_id: UUID,
    current_user: CurrentPatient,
    db: DatabaseSession,
    today: ClinicToday,
    background_tasks: BackgroundTasks,
) -> RescheduleResponse:
    """
    Move the appointment to the first later weekday on which the same
    doctor still has room.
    """
    finder = RescheduleFinder(db, today=today)
    result = await finder.reschedule(appointment_id, current_user["id"])
    NotificationService.schedule_push(background_tasks, finder.outbox)
    return result


@router.post(
    "/{appointment_id}/cancel",
    response_model=AppointmentResponse,
    status_code=status.HTTP_200_OK,
    summary="Cancel appointment",
)
async def cancel_appointment(
    appointment_id: UUID,
    current_user: CurrentPatient,
    db: DatabaseSession,
) -> AppointmentResponse:
    """Cancel one of the patient's own scheduled appointments."""
    service = AppointmentService(db)
    return await service.cancel_appointment(appointment_id, current_user["id"])
