"""Transaction, retry and locking plumbing shared by the queue writers."""

from collections.abc import Awaitable, Callable, Iterable
from datetime import UTC, date, datetime
from typing import Any, TypeVar
from uuid import UUID

import structlog
from sqlalchemy import and_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.core.exceptions import (
    ConcurrencyConflictException,
    DuplicateBookingException,
    NotFoundException,
)
from app.models.appointments import ACTIVE_STATUSES, QUEUE_UNIQUE_INDEXES, appointments
from app.models.doctors import doctor_departments, doctors
from app.models.users import users
from app.services.notification_service import NotificationService, QueueNotification
from app.services.scheduling.capacity import CapacityGate
from app.services.scheduling.slots import clinic_today

logger = structlog.get_logger(__name__)

T = TypeVar("T")

# SQLite reports the columns instead of the index name
_SQLITE_APPOINTMENT_UNIQUE = "UNIQUE constraint failed: appointments."


def is_queue_conflict(exc: IntegrityError) -> bool:
    """Whether a write lost a race on a queue slot or a patient-day slot."""
    message = str(exc.orig)
    return _SQLITE_APPOINTMENT_UNIQUE in message or any(
        name in message for name in QUEUE_UNIQUE_INDEXES
    )


def append_note(existing: str | None, note: str) -> str:
    """Append a system note on its own line."""
    return f"{existing}\n{note}" if existing else note


class QueueOperation:
    """
    Base class for operations that mutate a doctor's daily queue.

    Each public operation runs its body through :meth:`run_in_transaction`,
    which commits once at the end, rolls back on any error, and retries the
    whole body when a concurrent writer took the same queue slot first.
    """

    def __init__(self, db: AsyncSession, today: date | None = None):
        """Initialize operation with database session and the clinic's today."""
        self.db = db
        self.today = today or clinic_today()
        self.capacity_gate = CapacityGate(db)
        self.outbox: list[QueueNotification] = []

    async def run_in_transaction(
        self,
        operation: Callable[..., Awaitable[T]],
        *args: Any,
        **kwargs: Any,
    ) -> T:
        """
        Run ``operation`` as one transaction with bounded retry on queue conflicts.

        Args:
            operation: Coroutine function doing the reads and writes
            *args: Positional arguments for ``operation``
            **kwargs: Keyword arguments for ``operation``

        Returns:
            Whatever ``operation`` returns, after commit

        Raises:
            ConcurrencyConflictException: If every attempt hit a unique-index race
        """
        max_attempts = settings.queue_conflict_max_retries
        for attempt in range(1, max_attempts + 1):
            self.outbox = []
            try:
                result = await operation(*args, **kwargs)
                await self.db.commit()
                return result
            except IntegrityError as e:
                await self.db.rollback()
                if not is_queue_conflict(e):
                    raise
                logger.warning(
                    "queue_conflict_retry",
                    operation=operation.__name__,
                    attempt=attempt,
                    max_attempts=max_attempts,
                    error=str(e.orig),
                )
            except Exception:
                await self.db.rollback()
                raise

        self.outbox = []
        raise ConcurrencyConflictException(
            "The queue changed while the request was processed, please try again",
            details={"attempts": max_attempts},
        )

    async def lock_doctors(self, doctor_ids: Iterable[UUID]) -> None:
        """Take row locks on the given doctors, in id order."""
        ids = sorted(set(doctor_ids))
        if not ids:
            return
        await self.db.execute(
            select(doctors.c.id).where(doctors.c.id.in_(ids)).order_by(doctors.c.id).with_for_update()
        )

    async def lock_department_doctors(self, department_id: UUID) -> None:
        """Take row locks on every doctor in a department, in id order."""
        await self.db.execute(
            select(doctors.c.id)
            .join(doctor_departments, doctor_departments.c.doctor_id == doctors.c.id)
            .where(doctor_departments.c.department_id == department_id)
            .order_by(doctors.c.id)
            .with_for_update(of=doctors)
        )

    async def get_appointment(self, appointment_id: UUID) -> dict[str, Any]:
        """
        Load an appointment row.

        Raises:
            NotFoundException: If the appointment does not exist
        """
        result = await self.db.execute(select(appointments).where(appointments.c.id == appointment_id))
        row = result.mappings().first()
        if not row:
            raise NotFoundException(
                "Appointment not found", details={"appointment_id": str(appointment_id)}
            )
        return dict(row)

    async def require_patient(self, patient_id: UUID) -> dict[str, Any]:
        """
        Load the patient's user row.

        Raises:
            NotFoundException: If the user does not exist or is inactive
        """
        result = await self.db.execute(
            select(users).where(users.c.id == patient_id, users.c.is_active.is_(True))
        )
        row = result.mappings().first()
        if not row:
            raise NotFoundException("Patient not found", details={"patient_id": str(patient_id)})
        return dict(row)

    async def active_booking_for(
        self,
        patient_id: UUID,
        on_date: date,
        exclude_id: UUID | None = None,
    ) -> dict[str, Any] | None:
        """The patient's active appointment on a date, with any doctor."""
        conditions = [
            appointments.c.patient_id == patient_id,
            appointments.c.appointment_date == on_date,
            appointments.c.status.in_(ACTIVE_STATUSES),
        ]
        if exclude_id is not None:
            conditions.append(appointments.c.id != exclude_id)

        result = await self.db.execute(select(appointments).where(and_(*conditions)))
        row = result.mappings().first()
        return dict(row) if row else None

    async def ensure_no_duplicate(self, patient_id: UUID, on_date: date) -> None:
        """
        Enforce one active appointment per patient per day.

        Raises:
            DuplicateBookingException: If the patient already holds a slot that day
        """
        existing = await self.active_booking_for(patient_id, on_date)
        if existing:
            raise DuplicateBookingException(
                "You already have an appointment on this date",
                details={
                    "existing_appointment_id": str(existing["id"]),
                    "appointment_date": existing["appointment_date"].isoformat(),
                    "appointment_time": existing["appointment_time"],
                    "queue_number": existing["queue_number"],
                },
            )

    async def notify(self, notification: QueueNotification) -> None:
        """Record an in-app notification and queue it for push after commit."""
        self.outbox.append(await NotificationService.record(self.db, notification))

    @staticmethod
    def now() -> datetime:
        return datetime.now(UTC)
