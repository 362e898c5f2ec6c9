"""Priority insertion: put an emergency patient ahead of the existing queue."""

from datetime import date
from uuid import UUID

import structlog
from sqlalchemy import insert, select, update

from app.core.exceptions import ValidationException
from app.models.appointments import appointments
from app.models.doctors import doctor_departments
from app.schemas.appointments import AppointmentResponse, AppointmentStatus
from app.schemas.queue import DisplacedAppointment, PriorityInsertResponse
from app.services.notification_service import QueueNotification
from app.services.scheduling.base import QueueOperation, append_note
from app.services.scheduling.capacity import active_on
from app.services.scheduling.slots import is_weekend

logger = structlog.get_logger(__name__)

PUSHBACK_NOTE = "[Pushed back due to priority insertion]"
PRIORITY_NOTE = "[PRIORITY]"
SECOND_IN_LINE = 2


class PriorityInsertion(QueueOperation):
    """Inserts a patient at a chosen queue position, shifting later patients back."""

    async def insert_priority(
        self,
        patient_id: UUID,
        doctor_id: UUID,
        reason: str,
        appointment_date: date | None = None,
        target_position: int = 1,
        department_id: UUID | None = None,
    ) -> PriorityInsertResponse:
        """
        Insert a patient at ``target_position`` in a doctor's queue.

        Every active appointment at or after the target moves back one place
        and gets its time recomputed. Capacity is not checked.

        Args:
            patient_id: Patient's user ID
            doctor_id: Doctor whose queue receives the patient
            reason: Reason for the priority visit
            appointment_date: Queue date, today when omitted
            target_position: 1-based position for the new patient
            department_id: Department to record, the doctor's first one when omitted

        Returns:
            The new appointment and the displaced appointments

        Raises:
            ValidationException: Bad date or position
            NotFoundException: Unknown patient or doctor
            DuplicateBookingException: Patient already booked that day
        """
        on_date = appointment_date or self.today

        if not reason or not reason.strip():
            raise ValidationException("Reason for the visit is required")
        if on_date < self.today:
            raise ValidationException(
                "Appointment date must not be in the past",
                details={"appointment_date": on_date.isoformat(), "today": self.today.isoformat()},
            )
        if is_weekend(on_date):
            raise ValidationException(
                "Appointments can only be placed on weekdays",
                details={"appointment_date": on_date.isoformat()},
            )
        if target_position < 1:
            raise ValidationException(
                "Target position must be at least 1",
                details={"target_position": target_position},
            )

        return await self.run_in_transaction(
            self._insert,
            patient_id=patient_id,
            doctor_id=doctor_id,
            reason=reason.strip(),
            on_date=on_date,
            target_position=target_position,
            department_id=department_id,
        )

    async def _insert(
        self,
        patient_id: UUID,
        doctor_id: UUID,
        reason: str,
        on_date: date,
        target_position: int,
        department_id: UUID | None,
    ) -> PriorityInsertResponse:
        await self.require_patient(patient_id)
        await self.lock_doctors([doctor_id])

        # Raises NotFoundException for an unknown doctor
        shift = await self.capacity_gate.get_shift(doctor_id, on_date)
        tail = await self.capacity_gate.next_queue_number(doctor_id, on_date)
        if target_position > tail:
            raise ValidationException(
                "Target position is beyond the end of the queue",
                details={"target_position": target_position, "max_position": tail},
            )

        await self.ensure_no_duplicate(patient_id, on_date)

        if department_id is None:
            department_id = await self._doctor_department(doctor_id)

        # Highest first so no two active rows ever share a number
        result = await self.db.execute(
            select(appointments)
            .where(
                active_on(doctor_id, on_date),
                appointments.c.queue_number >= target_position,
            )
            .order_by(appointments.c.queue_number.desc())
        )
        to_shift = [dict(row) for row in result.mappings().all()]

        displaced: list[DisplacedAppointment] = []
        for row in to_shift:
            new_number = row["queue_number"] + 1
            new_time = shift.slot_time(new_number)
            await self.db.execute(
                update(appointments)
                .where(appointments.c.id == row["id"])
                .values(
                    queue_number=new_number,
                    appointment_time=new_time,
                    notes=append_note(row["notes"], PUSHBACK_NOTE),
                    updated_at=self.now(),
                )
            )
            displaced.append(
                DisplacedAppointment(
                    appointment_id=row["id"],
                    patient_id=row["patient_id"],
                    previous_queue_number=row["queue_number"],
                    queue_number=new_number,
                    previous_time=row["appointment_time"],
                    appointment_time=new_time,
                )
            )

        appointment_time = shift.slot_time(target_position)
        result = await self.db.execute(
            insert(appointments)
            .values(
                patient_id=patient_id,
                doctor_id=doctor_id,
                department_id=department_id,
                appointment_date=on_date,
                appointment_time=appointment_time,
                queue_number=target_position,
                status=AppointmentStatus.SCHEDULED.value,
                is_priority=True,
                reason=reason,
                notes=f"{PRIORITY_NOTE} Inserted at queue position {target_position}",
            )
            .returning(appointments)
        )
        row = result.mappings().first()

        displaced.reverse()
        for moved in displaced:
            await self.notify(
                QueueNotification(
                    user_id=moved.patient_id,
                    title="Queue Update",
                    message=(
                        f"A priority patient was added ahead of you. Your queue number on "
                        f"{on_date.isoformat()} is now {moved.queue_number} "
                        f"at {moved.appointment_time}."
                    ),
                    category="queue_update",
                    appointment_id=moved.appointment_id,
                )
            )

        if displaced:
            await self._notify_second_in_line(doctor_id, on_date, displaced[0])

        logger.info(
            "priority_inserted",
            appointment_id=str(row["id"]),
            patient_id=str(patient_id),
            doctor_id=str(doctor_id),
            appointment_date=on_date.isoformat(),
            target_position=target_position,
            displaced_count=len(displaced),
        )

        return PriorityInsertResponse(
            appointment=AppointmentResponse.model_validate(dict(row)),
            displaced_count=len(displaced),
            displaced=displaced,
        )

    async def _doctor_department(self, doctor_id: UUID) -> UUID | None:
        result = await self.db.execute(
            select(doctor_departments.c.department_id)
            .where(doctor_departments.c.doctor_id == doctor_id)
            .order_by(doctor_departments.c.department_id)
            .limit(1)
        )
        return result.scalar()

    async def _notify_second_in_line(
        self, doctor_id: UUID, on_date: date, moved: DisplacedAppointment
    ) -> None:
        """Tell the patient who now stands second in the queue that they are up soon."""
        ahead = await self.capacity_gate.count_ahead(doctor_id, on_date, moved.queue_number)
        if ahead + 1 != SECOND_IN_LINE:
            return
        await self.notify(
            QueueNotification(
                user_id=moved.patient_id,
                title="Queue Update",
                message="You are now 2nd in the queue! Your appointment will be called soon.",
                category="queue_position",
                appointment_id=moved.appointment_id,
            )
        )
