"""Doctor directory tables: profiles, department membership and weekly shifts."""

from uuid import uuid4

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Table,
    UniqueConstraint,
    Uuid,
    func,
    true,
)

from app.models.metadata import metadata

doctors = Table(
    "doctors",
    metadata,
    Column("id", Uuid, primary_key=True, default=uuid4),
    Column(
        "user_id",
        Uuid,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    ),
    Column("specialization", String(200)),
    Column("consultation_duration_minutes", Integer, nullable=True),
    # Inactive doctors keep their history but receive no new bookings
    Column("is_active", Boolean, nullable=False, default=True, server_default=true(), index=True),
    Column("created_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
    Column("updated_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
)

doctor_departments = Table(
    "doctor_departments",
    metadata,
    Column(
        "doctor_id",
        Uuid,
        ForeignKey("doctors.id", ondelete="CASCADE"),
        primary_key=True,
    ),
    Column(
        "department_id",
        Uuid,
        ForeignKey("departments.id", ondelete="CASCADE"),
        primary_key=True,
        index=True,
    ),
)

doctor_schedules = Table(
    "doctor_schedules",
    metadata,
    Column("id", Uuid, primary_key=True, default=uuid4),
    Column(
        "doctor_id",
        Uuid,
        ForeignKey("doctors.id", ondelete="CASCADE"),
        nullable=False,
    ),
    # 0 = Monday ... 6 = Sunday (date.weekday())
    Column("day_of_week", Integer, nullable=False),
    Column("start_time", String(5), nullable=False),
    Column("end_time", String(5), nullable=False),
    Column("is_available", Boolean, nullable=False, default=True, server_default=true()),
    UniqueConstraint("doctor_id", "day_of_week", name="uq_doctor_schedules_doctor_day"),
    CheckConstraint("day_of_week BETWEEN 0 AND 6", name="day_of_week"),
)
