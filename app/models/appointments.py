"""Appointments table model using SQLAlchemy Core."""

from uuid import uuid4

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Table,
    Text,
    Uuid,
    false,
    func,
    text,
)

from app.models.metadata import metadata

ACTIVE_STATUSES = ("scheduled", "called", "in-progress")
TERMINAL_STATUSES = ("completed", "cancelled", "no-show")

_ACTIVE_PREDICATE = text("status IN ('scheduled', 'called', 'in-progress')")

appointments = Table(
    "appointments",
    metadata,
    Column("id", Uuid, primary_key=True, default=uuid4),
    # Ownership / references
    Column(
        "patient_id",
        Uuid,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    ),
    Column("doctor_id", Uuid, ForeignKey("doctors.id", ondelete="SET NULL"), nullable=True),
    Column(
        "department_id",
        Uuid,
        ForeignKey("departments.id", ondelete="SET NULL"),
        nullable=True,
    ),
    # Queue placement
    Column("appointment_date", Date, nullable=False),
    Column("appointment_time", String(5), nullable=False),
    Column("queue_number", Integer, nullable=False),
    Column("status", String(20), nullable=False, server_default="scheduled"),
    Column("is_priority", Boolean, nullable=False, default=False, server_default=false()),
    # Details
    Column("reason", Text, nullable=False),
    Column("notes", Text, nullable=True),
    # Set on the row created when a no-show is rebooked
    Column(
        "rescheduled_from_id",
        Uuid,
        ForeignKey("appointments.id", ondelete="SET NULL"),
        nullable=True,
    ),
    # Audit fields
    Column("created_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
    Column("updated_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
    Column("cancelled_at", DateTime(timezone=True), nullable=True),
    CheckConstraint(
        "status IN ('scheduled', 'called', 'in-progress', 'completed', 'cancelled', 'no-show')",
        name="status",
    ),
    CheckConstraint("queue_number >= 1", name="queue_number_positive"),
)

Index(
    "ix_appointments_doctor_date",
    appointments.c.doctor_id,
    appointments.c.appointment_date,
)

# Only active rows hold a queue slot; terminal rows keep their old number.
Index(
    "uq_appointments_active_queue_slot",
    appointments.c.doctor_id,
    appointments.c.appointment_date,
    appointments.c.queue_number,
    unique=True,
    postgresql_where=_ACTIVE_PREDICATE,
    sqlite_where=_ACTIVE_PREDICATE,
)

Index(
    "uq_appointments_active_patient_day",
    appointments.c.patient_id,
    appointments.c.appointment_date,
    unique=True,
    postgresql_where=_ACTIVE_PREDICATE,
    sqlite_where=_ACTIVE_PREDICATE,
)

QUEUE_UNIQUE_INDEXES = (
    "uq_appointments_active_queue_slot",
    "uq_appointments_active_patient_day",
)
