"""Notification schemas."""

from datetime import datetime
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, Field


class Platform(str, Enum):
    """Push token platform."""

    ANDROID = "android"
    IOS = "ios"
    WEB = "web"


class NotificationResponse(BaseModel):
    """In-app notification."""

    id: UUID
    title: str
    message: str
    category: str
    appointment_id: UUID | None = None
    is_read: bool
    created_at: datetime
    read_at: datetime | None = None

    model_config = {"from_attributes": True}


class NotificationListResponse(BaseModel):
    """Notifications for the current user."""

    unread_count: int
    items: list[NotificationResponse]


class PushTokenRegister(BaseModel):
    """FCM token registration."""

    fcm_token: str = Field(..., min_length=10, max_length=4096)
    platform: Platform


class PushTokenResponse(BaseModel):
    """Registered push token."""

    id: UUID
    user_id: UUID
    fcm_token: str
    platform: Platform
    is_active: bool

    model_config = {"from_attributes": True}
