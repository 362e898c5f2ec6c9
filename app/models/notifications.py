"""In-app notification and push token tables."""

from uuid import uuid4

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    String,
    Table,
    Text,
    Uuid,
    false,
    func,
    true,
)

from app.models.metadata import metadata

NOTIFICATION_CATEGORIES = (
    "appointment_confirmation",
    "appointment_rescheduled",
    "queue_update",
    "appointment_cancelled",
    "appointment_call",
    "queue_position",
)

notifications = Table(
    "notifications",
    metadata,
    Column("id", Uuid, primary_key=True, default=uuid4),
    Column(
        "user_id",
        Uuid,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    ),
    Column("title", Text, nullable=False),
    Column("message", Text, nullable=False),
    Column("category", String(50), nullable=False),
    Column(
        "appointment_id",
        Uuid,
        ForeignKey("appointments.id", ondelete="SET NULL"),
        nullable=True,
    ),
    # Push delivery state; the in-app row is visible regardless
    Column("status", String(20), nullable=False, server_default="pending"),
    Column("failure_reason", Text, nullable=True),
    Column("is_read", Boolean, nullable=False, default=False, server_default=false()),
    Column("sent_at", DateTime(timezone=True), nullable=True),
    Column("read_at", DateTime(timezone=True), nullable=True),
    Column("created_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
    CheckConstraint(
        "category IN ('appointment_confirmation', 'appointment_rescheduled', "
        "'queue_update', 'appointment_cancelled', 'appointment_call', 'queue_position')",
        name="category",
    ),
    CheckConstraint(
        "status IN ('pending', 'sent', 'failed', 'skipped')",
        name="status",
    ),
    Index("ix_notifications_user_read", "user_id", "is_read"),
)

push_tokens = Table(
    "push_tokens",
    metadata,
    Column("id", Uuid, primary_key=True, default=uuid4),
    Column(
        "user_id",
        Uuid,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    ),
    Column("fcm_token", Text, nullable=False),
    Column("platform", String(10), nullable=False),
    Column("is_active", Boolean, nullable=False, default=True, server_default=true()),
    Column("last_used_at", DateTime(timezone=True), nullable=True),
    Column("created_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
    CheckConstraint(
        "platform IN ('android', 'ios', 'web')",
        name="platform",
    ),
)
