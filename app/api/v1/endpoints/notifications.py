"""Notification endpoints."""

from uuid import UUID

from fastapi import APIRouter, Query, status

from app.dependencies import CurrentUser, DatabaseSession
from app.schemas.notifications import (
    NotificationListResponse,
    NotificationResponse,
    PushTokenRegister,
    PushTokenResponse,
)
from app.services.notification_service import NotificationService

router = APIRouter(prefix="/notifications", tags=["Notifications"])


@router.get(
    "/",
    response_model=NotificationListResponse,
    status_code=status.HTTP_200_OK,
    summary="List my notifications",
)
async def list_notifications(
    current_user: CurrentUser,
    db: DatabaseSession,
    unread_only: bool = Query(False),
    limit: int = Query(50, ge=1, le=200),
) -> NotificationListResponse:
    """In-app notifications for the authenticated user, newest first."""
    unread_count, items = await NotificationService.list_notifications(
        db=db,
        user_id=current_user["id"],
        unread_only=unread_only,
        limit=limit,
    )
    return NotificationListResponse(
        unread_count=unread_count,
        items=[NotificationResponse.model_validate(item) for item in items],
    )


@router.patch(
    "/{notification_id}/read",
    response_model=NotificationResponse,
    status_code=status.HTTP_200_OK,
    summary="Mark notification as read",
)
async def mark_notification_read(
    notification_id: UUID,
    current_user: CurrentUser,
    db: DatabaseSession,
) -> NotificationResponse:
    """Mark one of the authenticated user's notifications as read."""
    notification = await NotificationService.mark_read(db, current_user["id"], notification_id)
    return NotificationResponse.model_validate(notification)


@router.post(
    "/register-token",
    response_model=PushTokenResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Register FCM token",
)
async def register_fcm_token(
    token_data: PushTokenRegister,
    current_user: CurrentUser,
    db: DatabaseSession,
) -> PushTokenResponse:
    """
    Register a device for push delivery of queue notifications.

    Older tokens for the same platform are deactivated; re-registering a
    known token reactivates it.
    """
    token = await NotificationService.register_token(
        db=db,
        user_id=current_user["id"],
        fcm_token=token_data.fcm_token,
        platform=token_data.platform.value,
    )
    return PushTokenResponse.model_validate(token)
