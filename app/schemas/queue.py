"""Request and response schemas for queue scheduling operations."""

from datetime import date
from uuid import UUID

from pydantic import BaseModel, Field, model_validator

from app.schemas.appointments import AppointmentResponse


class BookingRequest(BaseModel):
    """Patient self-booking request.

    The department may be given by id or by a routing key (slug or display
    name, e.g. ``"cardiology"`` or ``"General Medicine"``).
    """

    department_id: UUID | None = None
    department: str | None = Field(None, min_length=1, max_length=120)
    appointment_date: date
    reason: str = Field(..., min_length=1, max_length=1000)
    preferred_doctor_id: UUID | None = None

    @model_validator(mode="after")
    def require_department(self) -> "BookingRequest":
        """Either a department id or a routing key must be supplied."""
        if self.department_id is None and not self.department:
            raise ValueError("department_id or department is required")
        return self


class DoctorSummary(BaseModel):
    """Doctor assigned to a booking."""

    id: UUID
    full_name: str


class BookingResponse(BaseModel):
    """Result of a successful booking."""

    appointment: AppointmentResponse
    doctor: DoctorSummary
    department_name: str
    weekend_adjusted: bool = False


class PriorityInsertRequest(BaseModel):
    """Staff request to insert a patient ahead of the existing queue."""

    patient_id: UUID
    doctor_id: UUID
    appointment_date: date | None = None
    reason: str = Field(..., min_length=1, max_length=1000)
    target_position: int = Field(default=1, ge=1)
    department_id: UUID | None = None


class DisplacedAppointment(BaseModel):
    """An appointment moved back by a priority insertion."""

    appointment_id: UUID
    patient_id: UUID
    previous_queue_number: int
    queue_number: int
    previous_time: str
    appointment_time: str


class PriorityInsertResponse(BaseModel):
    """Result of a priority insertion."""

    appointment: AppointmentResponse
    displaced_count: int
    displaced: list[DisplacedAppointment]


class NoShowResponse(BaseModel):
    """Original no-show row and the appointment created to replace it."""

    original: AppointmentResponse
    rescheduled: AppointmentResponse


class RescheduleResponse(BaseModel):
    """Result of a patient-initiated reschedule."""

    appointment_id: UUID
    previous_date: date
    new_date: date
    new_time: str
    new_queue_number: int
    days_from_original: int


class CapacityResponse(BaseModel):
    """Capacity of one doctor on one date."""

    doctor_id: UUID
    date: date
    has_capacity: bool
    next_queue_number: int
    current_load: int
    max_patients: int
    shift_start: str
    shift_end: str
    consultation_duration_minutes: int


class QueueEntry(AppointmentResponse):
    """Appointment row in a doctor's queue with the patient's name."""

    patient_name: str | None = None


class DoctorQueueResponse(BaseModel):
    """Ordered queue for one doctor on one date."""

    doctor_id: UUID
    date: date
    total_patients: int
    queue: list[QueueEntry]


class QueuePositionResponse(BaseModel):
    """Where a patient stands in today's queue."""

    appointment_id: UUID
    appointment_date: date
    appointment_time: str
    status: str
    queue_number: int
    position: int
    patients_ahead: int
    total_patients: int
    estimated_wait_minutes: int
    estimated_wait: str
    doctor_id: UUID
    doctor_name: str | None = None
    department_name: str | None = None
