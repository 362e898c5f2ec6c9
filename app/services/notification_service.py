"""Notification service: in-app notification rows and FCM push fan-out."""

from dataclasses import dataclass, replace
from datetime import UTC, datetime
from typing import Any
from uuid import UUID

import structlog
from fastapi import BackgroundTasks
from firebase_admin import messaging
from sqlalchemy import func, insert, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.core.exceptions import NotFoundException
from app.core.firebase import is_firebase_initialized
from app.database import AsyncSessionLocal
from app.models.notifications import notifications, push_tokens

logger = structlog.get_logger(__name__)

# Android channel the patient app registers for queue updates
ANDROID_CHANNEL_ID = "appointment_queue"


@dataclass(frozen=True)
class QueueNotification:
    """A message for one user about one appointment."""

    user_id: UUID
    title: str
    message: str
    category: str
    appointment_id: UUID | None = None
    notification_id: UUID | None = None

    def push_data(self) -> dict[str, str]:
        """FCM data payload; values must be strings."""
        data = {"type": self.category}
        if self.appointment_id:
            data["appointment_id"] = str(self.appointment_id)
            data["screen"] = f"/appointments/{self.appointment_id}"
        return data


def build_multicast(tokens: list[str], notification: QueueNotification) -> messaging.MulticastMessage:
    """One FCM message addressed to every active device of the recipient."""
    return messaging.MulticastMessage(
        tokens=tokens,
        notification=messaging.Notification(title=notification.title, body=notification.message),
        data=notification.push_data(),
        android=messaging.AndroidConfig(
            priority="high",
            notification=messaging.AndroidNotification(
                channel_id=ANDROID_CHANNEL_ID,
                sound="default",
            ),
        ),
        apns=messaging.APNSConfig(
            payload=messaging.APNSPayload(aps=messaging.Aps(sound="default", badge=1)),
        ),
    )


class NotificationService:
    """Service for in-app notifications and push delivery."""

    @staticmethod
    async def record(db: AsyncSession, notification: QueueNotification) -> QueueNotification:
        """
        Insert the in-app row inside the caller's transaction.

        Nothing is committed here; the row becomes visible together with the
        queue change that produced it. Returns the notification with its
        stored id.
        """
        stmt = (
            insert(notifications)
            .values(
                user_id=notification.user_id,
                title=notification.title,
                message=notification.message,
                category=notification.category,
                appointment_id=notification.appointment_id,
                status="pending",
            )
            .returning(notifications.c.id)
        )
        notification_id = (await db.execute(stmt)).scalar_one()
        return replace(notification, notification_id=notification_id)

    @staticmethod
    def send_to_devices(tokens: list[str], notification: QueueNotification) -> tuple[int, int]:
        """Send to FCM; returns (success_count, failure_count)."""
        response = messaging.send_each_for_multicast(build_multicast(tokens, notification))
        logger.info(
            "push_notification_sent",
            notification_id=str(notification.notification_id),
            category=notification.category,
            success_count=response.success_count,
            failure_count=response.failure_count,
        )
        return response.success_count, response.failure_count

    @staticmethod
    async def deliver_push(notification: QueueNotification) -> None:
        """
        Fan a committed notification out to the user's devices.

        Runs after the response has been sent, in its own session. Delivery
        failures are recorded on the notification row and never reach the
        request that produced it.
        """
        if not settings.push_notifications_enabled or not is_firebase_initialized():
            logger.debug(
                "push_delivery_skipped",
                user_id=str(notification.user_id),
                category=notification.category,
            )
            return

        async with AsyncSessionLocal() as db:
            result = await db.execute(
                select(push_tokens.c.fcm_token).where(
                    push_tokens.c.user_id == notification.user_id,
                    push_tokens.c.is_active.is_(True),
                )
            )
            tokens = list(result.scalars().all())

            if not tokens:
                logger.info("no_active_tokens_for_user", user_id=str(notification.user_id))
                values: dict[str, Any] = {
                    "status": "skipped",
                    "failure_reason": "No active tokens for user",
                }
            else:
                try:
                    success_count, failure_count = NotificationService.send_to_devices(
                        tokens, notification
                    )
                except Exception as e:
                    logger.error(
                        "push_notification_failed",
                        error=str(e),
                        notification_id=str(notification.notification_id),
                    )
                    values = {"status": "failed", "failure_reason": str(e)}
                else:
                    values = (
                        {"status": "sent", "sent_at": datetime.now(UTC)}
                        if success_count > 0
                        else {
                            "status": "failed",
                            "failure_reason": f"{failure_count} device(s) rejected the message",
                        }
                    )

            if notification.notification_id is not None:
                await db.execute(
                    update(notifications)
                    .where(notifications.c.id == notification.notification_id)
                    .values(**values)
                )
                await db.commit()

    @staticmethod
    def schedule_push(background_tasks: BackgroundTasks, outbox: list[QueueNotification]) -> None:
        """Queue push delivery of committed notifications to run after the response."""
        for notification in outbox:
            background_tasks.add_task(NotificationService.deliver_push, notification)

    @staticmethod
    async def list_notifications(
        db: AsyncSession,
        user_id: UUID,
        unread_only: bool = False,
        limit: int = 50,
    ) -> tuple[int, list[dict[str, Any]]]:
        """
        List a user's notifications, newest first.

        Returns:
            Tuple of (unread_count, notifications)
        """
        conditions = [notifications.c.user_id == user_id]
        if unread_only:
            conditions.append(notifications.c.is_read.is_(False))

        result = await db.execute(
            select(notifications)
            .where(*conditions)
            .order_by(notifications.c.created_at.desc(), notifications.c.id)
            .limit(limit)
        )
        items = [dict(row) for row in result.mappings().all()]

        unread_count = (
            await db.execute(
                select(func.count())
                .select_from(notifications)
                .where(
                    notifications.c.user_id == user_id,
                    notifications.c.is_read.is_(False),
                )
            )
        ).scalar() or 0

        return unread_count, items

    @staticmethod
    async def mark_read(db: AsyncSession, user_id: UUID, notification_id: UUID) -> dict[str, Any]:
        """
        Mark one of the user's notifications as read.

        Raises:
            NotFoundException: If the notification does not belong to the user
        """
        result = await db.execute(
            update(notifications)
            .where(
                notifications.c.id == notification_id,
                notifications.c.user_id == user_id,
            )
            .values(is_read=True, read_at=datetime.now(UTC))
            .returning(notifications)
        )
        row = result.mappings().first()
        if not row:
            raise NotFoundException("Notification not found")

        await db.commit()
        return dict(row)

    @staticmethod
    async def register_token(
        db: AsyncSession,
        user_id: UUID,
        fcm_token: str,
        platform: str,
    ) -> dict[str, Any]:
        """Upsert a device token; other tokens on the same platform are deactivated."""
        await db.execute(
            update(push_tokens)
            .where(
                push_tokens.c.user_id == user_id,
                push_tokens.c.platform == platform,
                push_tokens.c.fcm_token != fcm_token,
            )
            .values(is_active=False)
        )

        existing = (
            await db.execute(
                select(push_tokens.c.id).where(
                    push_tokens.c.user_id == user_id,
                    push_tokens.c.fcm_token == fcm_token,
                )
            )
        ).first()

        if existing:
            stmt = (
                update(push_tokens)
                .where(push_tokens.c.id == existing.id)
                .values(is_active=True, platform=platform, last_used_at=datetime.now(UTC))
                .returning(push_tokens)
            )
        else:
            stmt = (
                insert(push_tokens)
                .values(
                    user_id=user_id,
                    fcm_token=fcm_token,
                    platform=platform,
                    is_active=True,
                    last_used_at=datetime.now(UTC),
                )
                .returning(push_tokens)
            )

        row = (await db.execute(stmt)).mappings().first()
        await db.commit()

        logger.info("push_token_registered", user_id=str(user_id), platform=platform)
        return dict(row)
