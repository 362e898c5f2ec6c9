"""Queue allocator: patient self-booking into a doctor's daily queue."""

from datetime import date
from uuid import UUID

import structlog
from sqlalchemy import insert, select

from app.core.exceptions import PreferredDoctorUnavailableException, ValidationException
from app.models.appointments import appointments
from app.models.doctors import doctor_departments, doctors
from app.models.users import users
from app.schemas.appointments import AppointmentResponse, AppointmentStatus
from app.schemas.queue import BookingResponse, DoctorSummary
from app.services.department_service import DepartmentService
from app.services.notification_service import QueueNotification
from app.services.scheduling.base import QueueOperation, append_note
from app.services.scheduling.load_balancer import DoctorAssignment, DoctorLoadBalancer
from app.services.scheduling.slots import adjust_to_weekday, is_weekend

logger = structlog.get_logger(__name__)


class QueueAllocator(QueueOperation):
    """Creates new appointments at the tail of a doctor's queue."""

    async def book_appointment(
        self,
        patient_id: UUID,
        appointment_date: date,
        reason: str,
        department_id: UUID | None = None,
        department: str | None = None,
        preferred_doctor_id: UUID | None = None,
    ) -> BookingResponse:
        """
        Book the patient into a department on a date.

        A Saturday or Sunday is moved to the following Monday. The doctor is
        the preferred one when given, otherwise the least loaded doctor in
        the department.

        Args:
            patient_id: Booking patient's user ID
            appointment_date: Requested date
            reason: Symptoms / reason for visit
            department_id: Department ID
            department: Department slug or name when no ID is given
            preferred_doctor_id: Optional doctor the patient asked for

        Returns:
            The booked appointment with its doctor and department

        Raises:
            ValidationException: Past date or empty reason
            NotFoundException: Unknown patient or department
            DuplicateBookingException: Patient already booked that day
            PreferredDoctorUnavailableException: Preferred doctor cannot take the booking
            NoDoctorAvailableException: Department has no active doctors
            DepartmentFullException: Every doctor in the department is full
            ConcurrencyConflictException: Lost the race on every retry
        """
        if not reason or not reason.strip():
            raise ValidationException("Reason for the visit is required")

        if appointment_date < self.today:
            raise ValidationException(
                "Appointment date must not be in the past",
                details={
                    "appointment_date": appointment_date.isoformat(),
                    "today": self.today.isoformat(),
                },
            )

        booking_date = adjust_to_weekday(appointment_date)

        return await self.run_in_transaction(
            self._book,
            patient_id=patient_id,
            requested_date=appointment_date,
            booking_date=booking_date,
            reason=reason.strip(),
            department_id=department_id,
            department=department,
            preferred_doctor_id=preferred_doctor_id,
        )

    async def _book(
        self,
        patient_id: UUID,
        requested_date: date,
        booking_date: date,
        reason: str,
        department_id: UUID | None,
        department: str | None,
        preferred_doctor_id: UUID | None,
    ) -> BookingResponse:
        await self.require_patient(patient_id)
        dept = await DepartmentService.resolve_department(
            self.db, department_id=department_id, key=department
        )

        if preferred_doctor_id is not None:
            await self.lock_doctors([preferred_doctor_id])
        else:
            await self.lock_department_doctors(dept["id"])

        await self.ensure_no_duplicate(patient_id, booking_date)

        if preferred_doctor_id is not None:
            assignment = await self._preferred_doctor(preferred_doctor_id, dept["id"], booking_date)
        else:
            assignment = await DoctorLoadBalancer(self.db, self.capacity_gate).pick_doctor(
                dept["id"], booking_date
            )

        queue_number = assignment.capacity.next_queue_number
        appointment_time = assignment.capacity.shift.slot_time(queue_number)

        notes = f"Queue number: {queue_number}"
        weekend_adjusted = is_weekend(requested_date)
        if weekend_adjusted:
            notes = append_note(
                notes,
                f"Requested {requested_date.isoformat()} falls on a weekend, "
                f"moved to {booking_date.isoformat()}",
            )

        result = await self.db.execute(
            insert(appointments)
            .values(
                patient_id=patient_id,
                doctor_id=assignment.doctor_id,
                department_id=dept["id"],
                appointment_date=booking_date,
                appointment_time=appointment_time,
                queue_number=queue_number,
                status=AppointmentStatus.SCHEDULED.value,
                is_priority=False,
                reason=reason,
                notes=notes,
            )
            .returning(appointments)
        )
        row = result.mappings().first()

        await self.notify(
            QueueNotification(
                user_id=patient_id,
                title="Appointment Confirmed",
                message=(
                    f"Your {dept['name']} appointment with Dr. {assignment.full_name} is on "
                    f"{booking_date.isoformat()} at {appointment_time}. "
                    f"Queue number: {queue_number}."
                ),
                category="appointment_confirmation",
                appointment_id=row["id"],
            )
        )

        logger.info(
            "appointment_booked",
            appointment_id=str(row["id"]),
            patient_id=str(patient_id),
            doctor_id=str(assignment.doctor_id),
            department_id=str(dept["id"]),
            appointment_date=booking_date.isoformat(),
            queue_number=queue_number,
            appointment_time=appointment_time,
            weekend_adjusted=weekend_adjusted,
        )

        return BookingResponse(
            appointment=AppointmentResponse.model_validate(dict(row)),
            doctor=DoctorSummary(id=assignment.doctor_id, full_name=assignment.full_name),
            department_name=dept["name"],
            weekend_adjusted=weekend_adjusted,
        )

    async def _preferred_doctor(
        self,
        doctor_id: UUID,
        department_id: UUID,
        on_date: date,
    ) -> DoctorAssignment:
        """
        Validate the patient's preferred doctor for this booking.

        Raises:
            PreferredDoctorUnavailableException: With ``reason`` in details
        """
        in_department = (
            select(doctor_departments.c.doctor_id)
            .where(
                doctor_departments.c.doctor_id == doctors.c.id,
                doctor_departments.c.department_id == department_id,
            )
            .exists()
        )
        result = await self.db.execute(
            select(
                doctors.c.id,
                doctors.c.is_active,
                users.c.full_name,
                in_department.label("in_department"),
            )
            .join(users, users.c.id == doctors.c.user_id)
            .where(doctors.c.id == doctor_id)
        )
        doctor = result.first()

        details = {"doctor_id": str(doctor_id), "date": on_date.isoformat()}
        if doctor is None:
            raise PreferredDoctorUnavailableException(
                "The selected doctor does not exist", details={**details, "reason": "not_found"}
            )
        if not doctor.is_active:
            raise PreferredDoctorUnavailableException(
                "The selected doctor is not taking bookings",
                details={**details, "reason": "inactive"},
            )
        if not doctor.in_department:
            raise PreferredDoctorUnavailableException(
                "The selected doctor does not work in this department",
                details={**details, "reason": "not_in_department"},
            )

        capacity = await self.capacity_gate.check(doctor_id, on_date)
        if not capacity.has_capacity:
            raise PreferredDoctorUnavailableException(
                "The selected doctor is fully booked on this date",
                details={
                    **details,
                    "reason": "fully_booked",
                    "current_load": capacity.current_load,
                    "max_patients": capacity.max_patients,
                },
            )

        return DoctorAssignment(doctor_id=doctor_id, full_name=doctor.full_name, capacity=capacity)
