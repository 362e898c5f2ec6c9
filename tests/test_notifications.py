"""Tests for notification endpoints and push delivery."""

from unittest.mock import MagicMock, patch
from uuid import uuid4

import pytest
from httpx import AsyncClient
from sqlalchemy import insert, select

from app.models import notifications, push_tokens
from app.services.notification_service import (
    NotificationService,
    QueueNotification,
    build_multicast,
)


@pytest.fixture
def make_notification(db_session):
    """Factory inserting a committed notification row."""

    async def _make_notification(user, title="Queue Update", is_read=False):
        notification = await NotificationService.record(
            db_session,
            QueueNotification(
                user_id=user["id"],
                title=title,
                message="Your queue number is now 2.",
                category="queue_update",
            ),
        )
        if is_read:
            await db_session.execute(
                notifications.update()
                .where(notifications.c.id == notification.notification_id)
                .values(is_read=True)
            )
        await db_session.commit()
        return notification

    return _make_notification


@pytest.fixture
def push_enabled(session_factory):
    """Enable push delivery against the test database."""
    with (
        patch("app.services.notification_service.settings.push_notifications_enabled", True),
        patch("app.services.notification_service.is_firebase_initialized", return_value=True),
        patch("app.services.notification_service.AsyncSessionLocal", session_factory),
    ):
        yield


async def register(db_session, user, token, platform="android"):
    await db_session.execute(
        insert(push_tokens).values(user_id=user["id"], fcm_token=token, platform=platform)
    )
    await db_session.commit()


async def stored(db_session, notification):
    result = await db_session.execute(
        select(notifications).where(notifications.c.id == notification.notification_id)
    )
    return result.mappings().one()


@pytest.mark.asyncio
async def test_register_fcm_token(
    client: AsyncClient, auth_headers: dict, patient: dict
) -> None:
    """Test registering a new FCM token."""
    response = await client.post(
        "/api/v1/notifications/register-token",
        json={"fcm_token": "test_fcm_token_12345", "platform": "android"},
        headers=auth_headers,
    )

    assert response.status_code == 201
    data = response.json()
    assert data["fcm_token"] == "test_fcm_token_12345"
    assert data["platform"] == "android"
    assert data["is_active"] is True
    assert data["user_id"] == str(patient["id"])


@pytest.mark.asyncio
async def test_register_token_deactivates_old_tokens(
    client: AsyncClient, db_session, auth_headers: dict, patient: dict
) -> None:
    """Registering a new token deactivates older tokens on the same platform."""
    for token in ("old_android_token_1", "new_android_token_2"):
        await client.post(
            "/api/v1/notifications/register-token",
            json={"fcm_token": token, "platform": "android"},
            headers=auth_headers,
        )
    await client.post(
        "/api/v1/notifications/register-token",
        json={"fcm_token": "ios_token_abcdef", "platform": "ios"},
        headers=auth_headers,
    )

    result = await db_session.execute(
        select(push_tokens.c.fcm_token, push_tokens.c.is_active).where(
            push_tokens.c.user_id == patient["id"]
        )
    )
    states = dict(result.all())
    assert states == {
        "old_android_token_1": False,
        "new_android_token_2": True,
        "ios_token_abcdef": True,
    }


@pytest.mark.asyncio
async def test_register_same_token_twice(
    client: AsyncClient, auth_headers: dict
) -> None:
    payload = {"fcm_token": "repeat_token_123", "platform": "web"}
    first = await client.post("/api/v1/notifications/register-token", json=payload, headers=auth_headers)
    second = await client.post("/api/v1/notifications/register-token", json=payload, headers=auth_headers)

    assert second.status_code == 201
    assert second.json()["id"] == first.json()["id"]


@pytest.mark.asyncio
async def test_invalid_platform(client: AsyncClient, auth_headers: dict) -> None:
    response = await client.post(
        "/api/v1/notifications/register-token",
        json={"fcm_token": "test_fcm_token_12345", "platform": "blackberry"},
        headers=auth_headers,
    )
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_register_token_unauthorized(client: AsyncClient) -> None:
    response = await client.post(
        "/api/v1/notifications/register-token",
        json={"fcm_token": "test_fcm_token_12345", "platform": "android"},
    )
    assert response.status_code in (401, 403)


@pytest.mark.asyncio
async def test_list_notifications(
    client: AsyncClient, auth_headers: dict, patient: dict, make_user, make_notification
) -> None:
    await make_notification(patient, title="First")
    await make_notification(patient, title="Second", is_read=True)
    await make_notification(await make_user(), title="Someone else")

    response = await client.get("/api/v1/notifications/", headers=auth_headers)
    assert response.status_code == 200
    data = response.json()
    assert data["unread_count"] == 1
    assert {item["title"] for item in data["items"]} == {"First", "Second"}

    response = await client.get(
        "/api/v1/notifications/", params={"unread_only": True}, headers=auth_headers
    )
    assert [item["title"] for item in response.json()["items"]] == ["First"]


@pytest.mark.asyncio
async def test_mark_notification_read(
    client: AsyncClient, auth_headers: dict, patient: dict, make_notification
) -> None:
    notification = await make_notification(patient)

    response = await client.patch(
        f"/api/v1/notifications/{notification.notification_id}/read", headers=auth_headers
    )
    assert response.status_code == 200
    data = response.json()
    assert data["is_read"] is True
    assert data["read_at"] is not None


@pytest.mark.asyncio
async def test_mark_other_users_notification(
    client: AsyncClient, auth_headers: dict, make_user, make_notification
) -> None:
    notification = await make_notification(await make_user())

    response = await client.patch(
        f"/api/v1/notifications/{notification.notification_id}/read", headers=auth_headers
    )
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_booking_notification_visible_in_feed(
    client: AsyncClient, auth_headers: dict, department: dict, doctor: dict, monday
) -> None:
    await client.post(
        "/api/v1/appointments/book",
        json={
            "department_id": str(department["id"]),
            "appointment_date": monday.isoformat(),
            "reason": "Sore throat",
        },
        headers=auth_headers,
    )

    response = await client.get("/api/v1/notifications/", headers=auth_headers)
    items = response.json()["items"]
    assert [item["category"] for item in items] == ["appointment_confirmation"]
    assert items[0]["title"] == "Appointment Confirmed"


@pytest.mark.asyncio
@patch("app.services.notification_service.messaging.send_each_for_multicast")
async def test_deliver_push_skipped_when_disabled(mock_send, db_session, patient, make_notification):
    notification = await make_notification(patient)

    await NotificationService.deliver_push(notification)

    mock_send.assert_not_called()
    assert (await stored(db_session, notification))["status"] == "pending"


@pytest.mark.asyncio
@patch("app.services.notification_service.messaging.send_each_for_multicast")
async def test_deliver_push_sends_to_active_tokens(
    mock_send, push_enabled, db_session, patient, make_notification
):
    mock_response = MagicMock()
    mock_response.success_count = 1
    mock_response.failure_count = 0
    mock_send.return_value = mock_response

    await register(db_session, patient, "device_token_123456")
    notification = await make_notification(patient)

    await NotificationService.deliver_push(notification)

    mock_send.assert_called_once()
    message = mock_send.call_args[0][0]
    assert message.tokens == ["device_token_123456"]
    assert message.data == {"type": "queue_update"}
    row = await stored(db_session, notification)
    assert row["status"] == "sent"
    assert row["sent_at"] is not None


@pytest.mark.asyncio
@patch("app.services.notification_service.messaging.send_each_for_multicast")
async def test_deliver_push_without_tokens(
    mock_send, push_enabled, db_session, patient, make_notification
):
    notification = await make_notification(patient)

    await NotificationService.deliver_push(notification)

    mock_send.assert_not_called()
    row = await stored(db_session, notification)
    assert row["status"] == "skipped"


@pytest.mark.asyncio
@patch("app.services.notification_service.messaging.send_each_for_multicast")
async def test_deliver_push_failure_is_recorded(
    mock_send, push_enabled, db_session, patient, make_notification
):
    mock_send.side_effect = Exception("FCM service unavailable")

    await register(db_session, patient, "device_token_123456")
    notification = await make_notification(patient)

    await NotificationService.deliver_push(notification)

    row = await stored(db_session, notification)
    assert row["status"] == "failed"
    assert "FCM service unavailable" in row["failure_reason"]


@pytest.mark.asyncio
@patch("app.services.notification_service.messaging.send_each_for_multicast")
async def test_deliver_push_all_devices_rejected(
    mock_send, push_enabled, db_session, patient, make_notification
):
    mock_response = MagicMock()
    mock_response.success_count = 0
    mock_response.failure_count = 2
    mock_send.return_value = mock_response

    await register(db_session, patient, "device_token_aaaaaa")
    await register(db_session, patient, "device_token_bbbbbb", platform="ios")
    notification = await make_notification(patient)

    await NotificationService.deliver_push(notification)

    row = await stored(db_session, notification)
    assert row["status"] == "failed"
    assert row["failure_reason"] == "2 device(s) rejected the message"


def test_push_data_links_appointment():
    appointment_id = uuid4()
    notification = QueueNotification(
        user_id=uuid4(),
        title="Appointment Confirmed",
        message="See you Monday",
        category="appointment_confirmation",
        appointment_id=appointment_id,
    )

    assert notification.push_data() == {
        "type": "appointment_confirmation",
        "appointment_id": str(appointment_id),
        "screen": f"/appointments/{appointment_id}",
    }


def test_multicast_targets_queue_channel():
    notification = QueueNotification(
        user_id=uuid4(), title="Queue Update", message="You are now number 2", category="queue_update"
    )

    message = build_multicast(["token_a", "token_b"], notification)

    assert message.tokens == ["token_a", "token_b"]
    assert message.notification.title == "Queue Update"
    assert message.android.notification.channel_id == "appointment_queue"
    assert message.data == {"type": "queue_update"}
