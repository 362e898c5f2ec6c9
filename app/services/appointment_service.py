"""Appointment service: read projections and status transitions."""

from datetime import UTC, date, datetime
from typing import Any
from uuid import UUID

import structlog
from sqlalchemy import and_, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import (
    ForbiddenException,
    InvalidStatusTransitionException,
    NotFoundException,
)
from app.core.security import is_staff
from app.models.appointments import ACTIVE_STATUSES, appointments
from app.models.departments import departments
from app.models.doctors import doctors
from app.models.users import users
from app.schemas.appointments import (
    ALLOWED_STATUS_TRANSITIONS,
    AppointmentFilters,
    AppointmentListResponse,
    AppointmentResponse,
    AppointmentStatus,
    AppointmentStatusUpdate,
)
from app.schemas.queue import (
    CapacityResponse,
    DoctorQueueResponse,
    QueueEntry,
    QueuePositionResponse,
)
from app.services.notification_service import NotificationService, QueueNotification
from app.services.scheduling.base import append_note
from app.services.scheduling.capacity import CapacityGate, active_on
from app.services.scheduling.slots import format_wait

logger = structlog.get_logger(__name__)


class AppointmentService:
    """Service for reading appointments and moving them through their lifecycle."""

    def __init__(self, db: AsyncSession):
        """Initialize service with database session."""
        self.db = db
        self.outbox: list[QueueNotification] = []

    async def _get_row(self, appointment_id: UUID) -> dict[str, Any]:
        result = await self.db.execute(select(appointments).where(appointments.c.id == appointment_id))
        row = result.mappings().first()
        if not row:
            raise NotFoundException("Appointment not found")
        return dict(row)

    async def get_appointment(
        self,
        appointment_id: UUID,
        user: dict[str, Any],
    ) -> AppointmentResponse:
        """
        Get appointment by ID.

        Args:
            appointment_id: Appointment ID
            user: Requesting user

        Returns:
            Appointment details

        Raises:
            NotFoundException: If appointment not found
            ForbiddenException: If a patient asks for someone else's appointment
        """
        row = await self._get_row(appointment_id)

        if not is_staff(user) and row["patient_id"] != user["id"]:
            raise ForbiddenException("Access denied to this appointment")

        return AppointmentResponse.model_validate(row)

    async def list_appointments(
        self,
        patient_id: UUID,
        filters: AppointmentFilters,
    ) -> AppointmentListResponse:
        """
        List a patient's appointments with filtering and pagination.

        Args:
            patient_id: Patient's user ID
            filters: Filter and pagination parameters

        Returns:
            Paginated list of appointments, newest first
        """
        conditions = [appointments.c.patient_id == patient_id]

        if filters.status:
            conditions.append(appointments.c.status == filters.status.value)

        if filters.doctor_id:
            conditions.append(appointments.c.doctor_id == filters.doctor_id)

        if filters.department_id:
            conditions.append(appointments.c.department_id == filters.department_id)

        if filters.from_date:
            conditions.append(appointments.c.appointment_date >= filters.from_date)

        if filters.to_date:
            conditions.append(appointments.c.appointment_date <= filters.to_date)

        count_stmt = select(func.count()).select_from(appointments).where(and_(*conditions))
        total = (await self.db.execute(count_stmt)).scalar() or 0

        offset = (filters.page - 1) * filters.page_size
        stmt = (
            select(appointments)
            .where(and_(*conditions))
            .order_by(
                appointments.c.appointment_date.desc(),
                appointments.c.queue_number.asc(),
            )
            .limit(filters.page_size)
            .offset(offset)
        )
        rows = (await self.db.execute(stmt)).mappings().all()

        return AppointmentListResponse(
            total=total,
            page=filters.page,
            page_size=filters.page_size,
            items=[AppointmentResponse.model_validate(dict(row)) for row in rows],
        )

    async def list_active(self, patient_id: UUID, today: date) -> list[AppointmentResponse]:
        """A patient's upcoming appointments that still hold a queue slot."""
        stmt = (
            select(appointments)
            .where(
                appointments.c.patient_id == patient_id,
                appointments.c.status.in_(ACTIVE_STATUSES),
                appointments.c.appointment_date >= today,
            )
            .order_by(appointments.c.appointment_date, appointments.c.queue_number)
        )
        rows = (await self.db.execute(stmt)).mappings().all()
        return [AppointmentResponse.model_validate(dict(row)) for row in rows]

    async def get_queue_position(self, patient_id: UUID, on_date: date) -> QueuePositionResponse:
        """
        The patient's place in their doctor's queue on ``on_date``.

        When the patient holds more than one active appointment that day the
        earliest slot is reported. The wait estimate is the number of active
        patients ahead multiplied by the doctor's consultation length.

        Raises:
            NotFoundException: If the patient has no active appointment that day
        """
        doctor_user = users.alias("doctor_user")
        stmt = (
            select(
                appointments,
                doctor_user.c.full_name.label("doctor_name"),
                departments.c.name.label("department_name"),
            )
            .outerjoin(doctors, doctors.c.id == appointments.c.doctor_id)
            .outerjoin(doctor_user, doctor_user.c.id == doctors.c.user_id)
            .outerjoin(departments, departments.c.id == appointments.c.department_id)
            .where(
                appointments.c.patient_id == patient_id,
                appointments.c.appointment_date == on_date,
                appointments.c.status.in_(ACTIVE_STATUSES),
                appointments.c.doctor_id.is_not(None),
            )
            .order_by(appointments.c.appointment_time, appointments.c.queue_number)
            .limit(1)
        )
        row = (await self.db.execute(stmt)).mappings().first()
        if not row:
            raise NotFoundException(
                "No active appointment found for this date",
                details={"appointment_date": on_date.isoformat()},
            )

        gate = CapacityGate(self.db)
        doctor_id = row["doctor_id"]
        shift = await gate.get_shift(doctor_id, on_date)
        ahead = await gate.count_ahead(doctor_id, on_date, row["queue_number"])
        total = (
            await self.db.execute(
                select(func.count())
                .select_from(appointments)
                .where(
                    appointments.c.doctor_id == doctor_id,
                    appointments.c.appointment_date == on_date,
                    appointments.c.status.in_((*ACTIVE_STATUSES, AppointmentStatus.COMPLETED.value)),
                )
            )
        ).scalar() or 0
        wait_minutes = ahead * shift.duration_minutes

        return QueuePositionResponse(
            appointment_id=row["id"],
            appointment_date=row["appointment_date"],
            appointment_time=row["appointment_time"],
            status=row["status"],
            queue_number=row["queue_number"],
            position=ahead + 1,
            patients_ahead=ahead,
            total_patients=total,
            estimated_wait_minutes=wait_minutes,
            estimated_wait=format_wait(wait_minutes),
            doctor_id=doctor_id,
            doctor_name=row["doctor_name"],
            department_name=row["department_name"],
        )

    async def get_doctor_queue(self, doctor_id: UUID, on_date: date) -> DoctorQueueResponse:
        """
        Ordered active queue of one doctor on one date.

        Raises:
            NotFoundException: If the doctor does not exist
        """
        # Validates the doctor
        await CapacityGate(self.db).get_shift(doctor_id, on_date)

        stmt = (
            select(appointments, users.c.full_name.label("patient_name"))
            .join(users, users.c.id == appointments.c.patient_id)
            .where(active_on(doctor_id, on_date))
            .order_by(appointments.c.queue_number)
        )
        rows = (await self.db.execute(stmt)).mappings().all()
        queue = [QueueEntry.model_validate(dict(row)) for row in rows]

        return DoctorQueueResponse(
            doctor_id=doctor_id,
            date=on_date,
            total_patients=len(queue),
            queue=queue,
        )

    async def get_doctor_capacity(self, doctor_id: UUID, on_date: date) -> CapacityResponse:
        """Capacity snapshot for a doctor on a date."""
        snapshot = await CapacityGate(self.db).check(doctor_id, on_date)
        return CapacityResponse(
            doctor_id=doctor_id,
            date=on_date,
            has_capacity=snapshot.has_capacity,
            next_queue_number=snapshot.next_queue_number,
            current_load=snapshot.current_load,
            max_patients=snapshot.max_patients,
            shift_start=snapshot.shift.start,
            shift_end=snapshot.shift.end,
            consultation_duration_minutes=snapshot.shift.duration_minutes,
        )

    async def update_appointment_status(
        self,
        appointment_id: UUID,
        data: AppointmentStatusUpdate,
    ) -> AppointmentResponse:
        """
        Apply a staff status transition.

        Args:
            appointment_id: Appointment ID
            data: Target status and optional note

        Returns:
            Updated appointment

        Raises:
            NotFoundException: If appointment not found
            InvalidStatusTransitionException: If the lifecycle does not allow it
        """
        current = await self._get_row(appointment_id)
        old_status = AppointmentStatus(current["status"])

        if data.status == AppointmentStatus.NO_SHOW:
            raise InvalidStatusTransitionException(
                "Use the no-show endpoint to mark an absence",
                details={"appointment_id": str(appointment_id), "status": old_status.value},
            )
        if data.status not in ALLOWED_STATUS_TRANSITIONS[old_status]:
            raise InvalidStatusTransitionException(
                f"Cannot change status from {old_status.value} to {data.status.value}",
                details={
                    "appointment_id": str(appointment_id),
                    "status": old_status.value,
                    "requested_status": data.status.value,
                },
            )

        row = await self._set_status(current, data.status, data.notes)

        if data.status == AppointmentStatus.CALLED:
            await self._notify(
                row,
                title="Your Appointment is Ready",
                message=f"Please proceed to the consultation room. Queue number {row['queue_number']}.",
                category="appointment_call",
            )
        elif data.status == AppointmentStatus.CANCELLED:
            await self._notify(
                row,
                title="Appointment Cancelled",
                message=(
                    f"Your appointment on {row['appointment_date'].isoformat()} at "
                    f"{row['appointment_time']} has been cancelled."
                ),
                category="appointment_cancelled",
            )

        await self.db.commit()

        logger.info(
            "appointment_status_changed",
            appointment_id=str(appointment_id),
            old_status=old_status.value,
            new_status=data.status.value,
        )
        return AppointmentResponse.model_validate(row)

    async def cancel_appointment(
        self,
        appointment_id: UUID,
        patient_id: UUID,
    ) -> AppointmentResponse:
        """
        Cancel a patient's own scheduled appointment.

        Raises:
            NotFoundException: If appointment not found
            ForbiddenException: If the patient does not own it
            InvalidStatusTransitionException: If it is no longer scheduled
        """
        current = await self._get_row(appointment_id)

        if current["patient_id"] != patient_id:
            raise ForbiddenException("Access denied to this appointment")
        if current["status"] != AppointmentStatus.SCHEDULED.value:
            raise InvalidStatusTransitionException(
                f"Cannot cancel a {current['status']} appointment",
                details={"appointment_id": str(appointment_id), "status": current["status"]},
            )

        row = await self._set_status(current, AppointmentStatus.CANCELLED, "Cancelled by patient")
        await self.db.commit()

        logger.info(
            "appointment_cancelled",
            appointment_id=str(appointment_id),
            patient_id=str(patient_id),
        )
        return AppointmentResponse.model_validate(row)

    async def _set_status(
        self,
        current: dict[str, Any],
        new_status: AppointmentStatus,
        note: str | None,
    ) -> dict[str, Any]:
        now = datetime.now(UTC)
        values: dict[str, Any] = {"status": new_status.value, "updated_at": now}
        if note:
            values["notes"] = append_note(current["notes"], note)
        if new_status == AppointmentStatus.CANCELLED:
            values["cancelled_at"] = now

        # Guarded on the old status so a concurrent transition cannot be overwritten
        result = await self.db.execute(
            update(appointments)
            .where(
                appointments.c.id == current["id"],
                appointments.c.status == current["status"],
            )
            .values(**values)
            .returning(appointments)
        )
        row = result.mappings().first()
        if not row:
            await self.db.rollback()
            raise InvalidStatusTransitionException(
                "Appointment status changed concurrently, reload and try again",
                details={"appointment_id": str(current["id"])},
            )
        return dict(row)

    async def _notify(self, row: dict[str, Any], title: str, message: str, category: str) -> None:
        self.outbox.append(
            await NotificationService.record(
                self.db,
                QueueNotification(
                    user_id=row["patient_id"],
                    title=title,
                    message=message,
                    category=category,
                    appointment_id=row["id"],
                ),
            )
        )
