"""Department directory and booking routing."""

from datetime import date
from uuid import UUID

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import NotFoundException
from app.models.departments import departments
from app.services.scheduling.load_balancer import DoctorLoadBalancer

# Routing keys sent by the booking clients, mapped to department names
DEPARTMENT_ALIASES = {
    "general-medicine": "General Medicine",
    "general-practice": "General Medicine",
    "cardiology": "Cardiology",
    "pediatrics": "Pediatrics",
    "orthopedics": "Orthopedics",
    "dermatology": "Dermatology",
    "neurology": "Neurology",
    "gynecology": "Obstetrics & Gynecology",
    "obstetrics-gynecology": "Obstetrics & Gynecology",
    "emergency": "Emergency Medicine",
    "emergency-medicine": "Emergency Medicine",
    "internal-medicine": "Internal Medicine",
    "surgery": "Surgery",
}


class DepartmentService:
    """Service for department lookups."""

    @staticmethod
    async def resolve_department(
        db: AsyncSession,
        department_id: UUID | None = None,
        key: str | None = None,
    ) -> dict:
        """
        Resolve a department from an id or a routing key.

        The key may be a UUID string, a slug (``"cardiology"``), a known alias
        (``"general-practice"``) or a display name, matched case-insensitively.

        Args:
            db: Database session
            department_id: Department ID
            key: Slug, alias or name

        Returns:
            Active department row

        Raises:
            NotFoundException: If nothing active matches
        """
        conditions = []
        if department_id is not None:
            conditions.append(departments.c.id == department_id)
        elif key:
            normalized = key.strip()
            try:
                conditions.append(departments.c.id == UUID(normalized))
            except ValueError:
                name = DEPARTMENT_ALIASES.get(normalized.lower(), normalized)
                conditions.append(
                    or_(
                        departments.c.slug == normalized.lower(),
                        func.lower(departments.c.name) == name.lower(),
                    )
                )

        if not conditions:
            raise NotFoundException("Department not found")

        result = await db.execute(
            select(departments).where(*conditions, departments.c.is_active.is_(True)).limit(1)
        )
        department = result.mappings().first()
        if not department:
            raise NotFoundException(
                "Department not found",
                details={"department": str(department_id or key)},
            )
        return dict(department)

    @staticmethod
    async def list_departments(db: AsyncSession) -> list[dict]:
        """List active departments by name."""
        result = await db.execute(
            select(departments).where(departments.c.is_active.is_(True)).order_by(departments.c.name)
        )
        return [dict(row) for row in result.mappings().all()]

    @staticmethod
    async def list_department_doctors(
        db: AsyncSession,
        department_id: UUID,
        on_date: date,
    ) -> list[dict]:
        """
        Active doctors of a department with their load on a date.

        Ordered the way the load balancer would consider them.
        """
        await DepartmentService.resolve_department(db, department_id=department_id)

        balancer = DoctorLoadBalancer(db)
        doctors = []
        for load in await balancer.department_loads(department_id, on_date):
            capacity = await balancer.capacity_gate.check(load.doctor_id, on_date)
            doctors.append(
                {
                    "id": load.doctor_id,
                    "full_name": load.full_name,
                    "specialization": load.specialization,
                    "current_load": capacity.current_load,
                    "max_patients": capacity.max_patients,
                    "has_capacity": capacity.has_capacity,
                }
            )
        return doctors
