"""Absence handler: mark a no-show and rebook the patient on a later day."""

from datetime import date
from typing import Any
from uuid import UUID

import structlog
from sqlalchemy import insert, select, update

from app.config import settings
from app.core.exceptions import (
    DepartmentFullException,
    InvalidStatusTransitionException,
    NoSlotAvailableException,
)
from app.models.appointments import appointments
from app.models.doctors import doctors
from app.models.users import users
from app.schemas.appointments import AppointmentResponse, AppointmentStatus
from app.schemas.queue import NoShowResponse
from app.services.notification_service import QueueNotification
from app.services.scheduling.base import QueueOperation, append_note
from app.services.scheduling.load_balancer import DoctorAssignment, DoctorLoadBalancer
from app.services.scheduling.slots import iter_weekdays_after

logger = structlog.get_logger(__name__)

NO_SHOW_ELIGIBLE = frozenset({AppointmentStatus.SCHEDULED.value, AppointmentStatus.CALLED.value})


class AbsenceHandler(QueueOperation):
    """Turns a missed appointment into a new booking on the next day with room."""

    async def mark_no_show(self, appointment_id: UUID) -> NoShowResponse:
        """
        Mark an appointment as no-show and create its replacement.

        The original keeps its queue number and the rest of its queue is not
        renumbered. The replacement stays with the same doctor unless that
        doctor is gone or inactive, in which case the department's least
        loaded doctor takes it.

        Args:
            appointment_id: Appointment the patient missed

        Returns:
            The no-show row and the new appointment

        Raises:
            NotFoundException: If the appointment does not exist
            InvalidStatusTransitionException: If it is not scheduled or called
            NoSlotAvailableException: If no day inside the horizon has room
        """
        return await self.run_in_transaction(self._mark, appointment_id=appointment_id)

    async def _mark(self, appointment_id: UUID) -> NoShowResponse:
        original = await self.get_appointment(appointment_id)
        if original["status"] not in NO_SHOW_ELIGIBLE:
            raise InvalidStatusTransitionException(
                f"Cannot mark a {original['status']} appointment as no-show",
                details={"appointment_id": str(appointment_id), "status": original["status"]},
            )

        keep_doctor = await self._lock_for_rebooking(original)

        result = await self.db.execute(
            update(appointments)
            .where(appointments.c.id == appointment_id)
            .values(
                status=AppointmentStatus.NO_SHOW.value,
                notes=append_note(original["notes"], "[Marked as no-show]"),
                updated_at=self.now(),
            )
            .returning(appointments)
        )
        no_show = dict(result.mappings().first())

        search_from = max(self.today, original["appointment_date"])
        target = await self._find_target(original, keep_doctor, search_from)
        if target is None:
            raise NoSlotAvailableException(
                "No day with free capacity was found to rebook this patient",
                details={
                    "appointment_id": str(appointment_id),
                    "searched_from": search_from.isoformat(),
                    "horizon_days": settings.reschedule_horizon_days,
                },
            )

        new_date, assignment = target
        queue_number = assignment.capacity.next_queue_number
        appointment_time = assignment.capacity.shift.slot_time(queue_number)

        result = await self.db.execute(
            insert(appointments)
            .values(
                patient_id=original["patient_id"],
                doctor_id=assignment.doctor_id,
                department_id=original["department_id"],
                appointment_date=new_date,
                appointment_time=appointment_time,
                queue_number=queue_number,
                status=AppointmentStatus.SCHEDULED.value,
                is_priority=False,
                reason=original["reason"],
                notes=(
                    f"Rescheduled from {original['appointment_date'].isoformat()} due to "
                    f"absence (appointment {appointment_id})"
                ),
                rescheduled_from_id=appointment_id,
            )
            .returning(appointments)
        )
        rescheduled = dict(result.mappings().first())

        await self.notify(
            QueueNotification(
                user_id=original["patient_id"],
                title="Appointment Rescheduled",
                message=(
                    f"You missed your appointment on {original['appointment_date'].isoformat()}. "
                    f"It has been moved to {new_date.isoformat()} at {appointment_time}, "
                    f"queue number {queue_number}."
                ),
                category="appointment_rescheduled",
                appointment_id=rescheduled["id"],
            )
        )

        logger.info(
            "no_show_rescheduled",
            appointment_id=str(appointment_id),
            new_appointment_id=str(rescheduled["id"]),
            patient_id=str(original["patient_id"]),
            previous_doctor_id=str(original["doctor_id"]) if original["doctor_id"] else None,
            doctor_id=str(assignment.doctor_id),
            previous_date=original["appointment_date"].isoformat(),
            appointment_date=new_date.isoformat(),
            queue_number=queue_number,
        )

        return NoShowResponse(
            original=AppointmentResponse.model_validate(no_show),
            rescheduled=AppointmentResponse.model_validate(rescheduled),
        )

    async def _lock_for_rebooking(self, original: dict[str, Any]) -> bool:
        """
        Lock the doctors the rebooking may land on, in a single id-ordered pass.

        Returns:
            True when the original doctor can keep the patient
        """
        doctor_id = original["doctor_id"]
        if doctor_id is not None:
            result = await self.db.execute(
                select(doctors.c.is_active).where(doctors.c.id == doctor_id)
            )
            if result.scalar():
                await self.lock_doctors([doctor_id])
                return True

        if original["department_id"] is None:
            raise NoSlotAvailableException(
                "The appointment has no doctor or department to rebook with",
                details={"appointment_id": str(original["id"])},
            )

        await self.lock_department_doctors(original["department_id"])
        return False

    async def _find_target(
        self,
        original: dict[str, Any],
        keep_doctor: bool,
        search_from: date,
    ) -> tuple[date, DoctorAssignment] | None:
        balancer = DoctorLoadBalancer(self.db, self.capacity_gate)

        for candidate in iter_weekdays_after(search_from, settings.reschedule_horizon_days):
            if await self.active_booking_for(original["patient_id"], candidate):
                continue

            if keep_doctor:
                capacity = await self.capacity_gate.check(original["doctor_id"], candidate)
                if capacity.has_capacity:
                    full_name = await self._doctor_name(original["doctor_id"])
                    return candidate, DoctorAssignment(
                        doctor_id=original["doctor_id"],
                        full_name=full_name,
                        capacity=capacity,
                    )
                continue

            try:
                return candidate, await balancer.pick_doctor(original["department_id"], candidate)
            except DepartmentFullException:
                continue

        return None

    async def _doctor_name(self, doctor_id: UUID) -> str:
        result = await self.db.execute(
            select(users.c.full_name)
            .join(doctors, doctors.c.user_id == users.c.id)
            .where(doctors.c.id == doctor_id)
        )
        return result.scalar() or ""
