"""Capacity gate: how many patients a doctor can still take on a date."""

from dataclasses import dataclass
from datetime import date
from uuid import UUID

from sqlalchemy import and_, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.core.exceptions import NotFoundException
from app.models.appointments import ACTIVE_STATUSES, appointments
from app.models.doctors import doctor_schedules, doctors
from app.services.scheduling.slots import calculate_slot_time, shift_capacity


@dataclass(frozen=True)
class DoctorShift:
    """A doctor's working window on one weekday."""

    start: str
    end: str
    duration_minutes: int
    max_patients: int

    def slot_time(self, queue_number: int) -> str:
        return calculate_slot_time(queue_number, self.start, self.duration_minutes)


@dataclass(frozen=True)
class CapacityCheck:
    """Snapshot of one (doctor, date) queue."""

    doctor_id: UUID
    on_date: date
    current_load: int
    next_queue_number: int
    shift: DoctorShift

    @property
    def max_patients(self) -> int:
        return self.shift.max_patients

    @property
    def has_capacity(self) -> bool:
        return self.current_load < self.shift.max_patients


def active_on(doctor_id: UUID, on_date: date):
    """Filter for the active queue of a doctor on a date."""
    return and_(
        appointments.c.doctor_id == doctor_id,
        appointments.c.appointment_date == on_date,
        appointments.c.status.in_(ACTIVE_STATUSES),
    )


class CapacityGate:
    """
    Reads a doctor's shift and active queue to decide whether they can take
    another patient.

    Results are only meaningful inside the caller's transaction once the
    doctor row is locked; nothing here is cached.
    """

    def __init__(self, db: AsyncSession):
        """Initialize gate with database session."""
        self.db = db

    async def get_shift(self, doctor_id: UUID, on_date: date) -> DoctorShift:
        """
        Resolve the doctor's shift for the weekday of ``on_date``.

        Without a schedule row the configured default shift applies. A row
        marked unavailable means the doctor does not work that weekday.

        Raises:
            NotFoundException: If the doctor does not exist
        """
        stmt = (
            select(
                doctors.c.consultation_duration_minutes,
                doctor_schedules.c.start_time,
                doctor_schedules.c.end_time,
                doctor_schedules.c.is_available,
            )
            .select_from(
                doctors.outerjoin(
                    doctor_schedules,
                    and_(
                        doctor_schedules.c.doctor_id == doctors.c.id,
                        doctor_schedules.c.day_of_week == on_date.weekday(),
                    ),
                )
            )
            .where(doctors.c.id == doctor_id)
        )
        row = (await self.db.execute(stmt)).first()
        if row is None:
            raise NotFoundException("Doctor not found", details={"doctor_id": str(doctor_id)})

        duration = row.consultation_duration_minutes or settings.consultation_duration_minutes

        if row.start_time is None:
            return DoctorShift(
                start=settings.default_shift_start,
                end=settings.default_shift_end,
                duration_minutes=duration,
                max_patients=settings.default_max_patients_per_day,
            )

        max_patients = (
            shift_capacity(row.start_time, row.end_time, duration) if row.is_available else 0
        )
        return DoctorShift(
            start=row.start_time,
            end=row.end_time,
            duration_minutes=duration,
            max_patients=max_patients,
        )

    async def count_active(self, doctor_id: UUID, on_date: date) -> int:
        """Count appointments holding a queue slot."""
        stmt = select(func.count()).select_from(appointments).where(active_on(doctor_id, on_date))
        return (await self.db.execute(stmt)).scalar() or 0

    async def count_ahead(self, doctor_id: UUID, on_date: date, queue_number: int) -> int:
        """Active appointments in front of ``queue_number``; finished ones no longer count."""
        stmt = (
            select(func.count())
            .select_from(appointments)
            .where(active_on(doctor_id, on_date), appointments.c.queue_number < queue_number)
        )
        return (await self.db.execute(stmt)).scalar() or 0

    async def next_queue_number(self, doctor_id: UUID, on_date: date) -> int:
        """Position after the last active appointment in the queue."""
        stmt = select(func.max(appointments.c.queue_number)).where(active_on(doctor_id, on_date))
        tail = (await self.db.execute(stmt)).scalar()
        return (tail or 0) + 1

    async def check(self, doctor_id: UUID, on_date: date) -> CapacityCheck:
        """
        Full capacity snapshot for a doctor and date.

        Args:
            doctor_id: Doctor ID
            on_date: Calendar date

        Returns:
            Capacity snapshot
        """
        shift = await self.get_shift(doctor_id, on_date)
        return CapacityCheck(
            doctor_id=doctor_id,
            on_date=on_date,
            current_load=await self.count_active(doctor_id, on_date),
            next_queue_number=await self.next_queue_number(doctor_id, on_date),
            shift=shift,
        )

    async def has_capacity(self, doctor_id: UUID, on_date: date) -> tuple[bool, int]:
        """Whether the doctor can take one more patient, and at which position."""
        snapshot = await self.check(doctor_id, on_date)
        return snapshot.has_capacity, snapshot.next_queue_number
