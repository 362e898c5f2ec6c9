"""Department model definition using SQLAlchemy Core."""

from uuid import uuid4

from sqlalchemy import Boolean, Column, DateTime, String, Table, Text, Uuid, func, true

from app.models.metadata import metadata

departments = Table(
    "departments",
    metadata,
    Column("id", Uuid, primary_key=True, default=uuid4),
    Column("name", String(120), nullable=False, unique=True),
    # URL-safe routing key, e.g. "general-medicine"
    Column("slug", String(120), nullable=False, unique=True, index=True),
    Column("description", Text),
    Column("is_active", Boolean, nullable=False, default=True, server_default=true()),
    Column("created_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
)
