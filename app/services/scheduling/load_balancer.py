"""Doctor load balancer: spread a department's bookings across its doctors."""

from dataclasses import dataclass
from datetime import date
from uuid import UUID

import structlog
from sqlalchemy import and_, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import DepartmentFullException, NoDoctorAvailableException
from app.models.appointments import ACTIVE_STATUSES, appointments
from app.models.doctors import doctor_departments, doctors
from app.models.users import users
from app.services.scheduling.capacity import CapacityCheck, CapacityGate

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class DoctorLoad:
    """Active appointment count for one doctor on one date."""

    doctor_id: UUID
    full_name: str
    specialization: str | None
    current_load: int


@dataclass(frozen=True)
class DoctorAssignment:
    """Doctor chosen for a booking, with the capacity snapshot used to choose."""

    doctor_id: UUID
    full_name: str
    capacity: CapacityCheck


class DoctorLoadBalancer:
    """Chooses the least loaded active doctor in a department."""

    def __init__(self, db: AsyncSession, capacity_gate: CapacityGate | None = None):
        """Initialize with database session and capacity gate."""
        self.db = db
        self.capacity_gate = capacity_gate or CapacityGate(db)

    async def department_loads(self, department_id: UUID, on_date: date) -> list[DoctorLoad]:
        """
        Active doctors in a department with their load on ``on_date``.

        Ordered by load ascending, then by doctor id so ties resolve the
        same way on every call.
        """
        load = func.count(appointments.c.id).label("current_load")
        stmt = (
            select(
                doctors.c.id,
                users.c.full_name,
                doctors.c.specialization,
                load,
            )
            .select_from(
                doctors.join(doctor_departments, doctor_departments.c.doctor_id == doctors.c.id)
                .join(users, users.c.id == doctors.c.user_id)
                .outerjoin(
                    appointments,
                    and_(
                        appointments.c.doctor_id == doctors.c.id,
                        appointments.c.appointment_date == on_date,
                        appointments.c.status.in_(ACTIVE_STATUSES),
                    ),
                )
            )
            .where(
                doctor_departments.c.department_id == department_id,
                doctors.c.is_active.is_(True),
            )
            .group_by(doctors.c.id, users.c.full_name, doctors.c.specialization)
            .order_by(load.asc(), doctors.c.id.asc())
        )
        rows = (await self.db.execute(stmt)).all()
        return [
            DoctorLoad(
                doctor_id=row.id,
                full_name=row.full_name,
                specialization=row.specialization,
                current_load=row.current_load,
            )
            for row in rows
        ]

    async def pick_doctor(self, department_id: UUID, on_date: date) -> DoctorAssignment:
        """
        Pick the doctor who receives a new booking.

        Args:
            department_id: Department ID
            on_date: Appointment date

        Returns:
            The chosen doctor and their capacity snapshot

        Raises:
            NoDoctorAvailableException: If the department has no active doctors
            DepartmentFullException: If every active doctor is at capacity
        """
        candidates = await self.department_loads(department_id, on_date)
        if not candidates:
            raise NoDoctorAvailableException(
                "No active doctors in this department",
                details={"department_id": str(department_id), "date": on_date.isoformat()},
            )

        for candidate in candidates:
            capacity = await self.capacity_gate.check(candidate.doctor_id, on_date)
            if capacity.has_capacity:
                logger.debug(
                    "doctor_selected",
                    department_id=str(department_id),
                    doctor_id=str(candidate.doctor_id),
                    current_load=capacity.current_load,
                    max_patients=capacity.max_patients,
                )
                return DoctorAssignment(
                    doctor_id=candidate.doctor_id,
                    full_name=candidate.full_name,
                    capacity=capacity,
                )

        raise DepartmentFullException(
            "All doctors in this department are fully booked for this date",
            details={
                "department_id": str(department_id),
                "date": on_date.isoformat(),
                "doctors_checked": len(candidates),
            },
        )
