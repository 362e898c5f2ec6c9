"""Reschedule finder: move a patient's appointment to the next day their doctor has room."""

from uuid import UUID

import structlog
from sqlalchemy import update

from app.config import settings
from app.core.exceptions import (
    ForbiddenException,
    InvalidStatusTransitionException,
    NoSlotAvailableException,
    ValidationException,
)
from app.models.appointments import TERMINAL_STATUSES, appointments
from app.schemas.queue import RescheduleResponse
from app.services.notification_service import QueueNotification
from app.services.scheduling.base import QueueOperation, append_note
from app.services.scheduling.slots import iter_weekdays_after

logger = structlog.get_logger(__name__)


class RescheduleFinder(QueueOperation):
    """Patient-initiated move of an appointment to a later weekday."""

    async def reschedule(self, appointment_id: UUID, patient_id: UUID) -> RescheduleResponse:
        """
        Move an appointment to the first later weekday with capacity.

        The patient keeps the same doctor and the row is updated in place.

        Args:
            appointment_id: Appointment to move
            patient_id: Requesting patient, must own the appointment

        Returns:
            New date, time and queue number

        Raises:
            NotFoundException: If the appointment does not exist
            ForbiddenException: If the patient does not own it
            InvalidStatusTransitionException: If it is completed, cancelled or no-show
            ValidationException: If it has no doctor
            NoSlotAvailableException: If the horizon holds no day with room
        """
        return await self.run_in_transaction(
            self._reschedule, appointment_id=appointment_id, patient_id=patient_id
        )

    async def _reschedule(self, appointment_id: UUID, patient_id: UUID) -> RescheduleResponse:
        appointment = await self.get_appointment(appointment_id)

        if appointment["patient_id"] != patient_id:
            raise ForbiddenException("Access denied to this appointment")
        if appointment["status"] in TERMINAL_STATUSES:
            raise InvalidStatusTransitionException(
                f"Cannot reschedule a {appointment['status']} appointment",
                details={"appointment_id": str(appointment_id), "status": appointment["status"]},
            )
        doctor_id = appointment["doctor_id"]
        if doctor_id is None:
            raise ValidationException(
                "Appointment has no doctor assigned",
                details={"appointment_id": str(appointment_id)},
            )

        await self.lock_doctors([doctor_id])

        original_date = appointment["appointment_date"]
        # A stale row from a past day still moves forward from today
        search_from = max(self.today, original_date)
        for candidate in iter_weekdays_after(search_from, settings.reschedule_horizon_days):
            if await self.active_booking_for(patient_id, candidate, exclude_id=appointment_id):
                continue

            capacity = await self.capacity_gate.check(doctor_id, candidate)
            if not capacity.has_capacity:
                continue

            queue_number = capacity.next_queue_number
            appointment_time = capacity.shift.slot_time(queue_number)
            await self.db.execute(
                update(appointments)
                .where(appointments.c.id == appointment_id)
                .values(
                    appointment_date=candidate,
                    appointment_time=appointment_time,
                    queue_number=queue_number,
                    notes=append_note(
                        appointment["notes"],
                        f"Rescheduled from {original_date.isoformat()} by patient",
                    ),
                    updated_at=self.now(),
                )
            )

            await self.notify(
                QueueNotification(
                    user_id=patient_id,
                    title="Appointment Rescheduled",
                    message=(
                        f"Your appointment has been moved to {candidate.isoformat()} at "
                        f"{appointment_time}, queue number {queue_number}."
                    ),
                    category="appointment_rescheduled",
                    appointment_id=appointment_id,
                )
            )

            days_from_original = (candidate - original_date).days
            logger.info(
                "appointment_rescheduled",
                appointment_id=str(appointment_id),
                doctor_id=str(doctor_id),
                previous_date=original_date.isoformat(),
                appointment_date=candidate.isoformat(),
                queue_number=queue_number,
                days_from_original=days_from_original,
            )

            return RescheduleResponse(
                appointment_id=appointment_id,
                previous_date=original_date,
                new_date=candidate,
                new_time=appointment_time,
                new_queue_number=queue_number,
                days_from_original=days_from_original,
            )

        raise NoSlotAvailableException(
            f"No available slot found in the next {settings.reschedule_horizon_days} days",
            details={
                "appointment_id": str(appointment_id),
                "searched_from": search_from.isoformat(),
                "horizon_days": settings.reschedule_horizon_days,
            },
        )
