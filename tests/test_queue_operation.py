"""Tests for the transaction and retry plumbing shared by queue writers."""

import pytest
from sqlalchemy.exc import IntegrityError

from app.config import settings
from app.core.exceptions import ConcurrencyConflictException, ValidationException
from app.services.notification_service import QueueNotification
from app.services.scheduling.base import QueueOperation, append_note, is_queue_conflict


def integrity_error(message: str) -> IntegrityError:
    return IntegrityError("INSERT INTO appointments ...", {}, Exception(message))


def test_append_note():
    assert append_note(None, "Queue number: 1") == "Queue number: 1"
    assert append_note("", "Queue number: 1") == "Queue number: 1"
    assert append_note("Queue number: 1", "[Marked as no-show]") == (
        "Queue number: 1\n[Marked as no-show]"
    )


def test_queue_conflicts_are_recognised():
    assert is_queue_conflict(
        integrity_error(
            "UNIQUE constraint failed: appointments.doctor_id, "
            "appointments.appointment_date, appointments.queue_number"
        )
    )
    assert is_queue_conflict(
        integrity_error(
            'duplicate key value violates unique constraint "uq_appointments_active_patient_day"'
        )
    )
    assert not is_queue_conflict(
        integrity_error('insert or update on table "appointments" violates foreign key constraint')
    )


@pytest.mark.asyncio
async def test_retries_queue_conflicts_then_succeeds(db_session, today):
    operation = QueueOperation(db_session, today=today)
    attempts = []

    async def flaky():
        attempts.append(len(attempts) + 1)
        if len(attempts) < 2:
            raise integrity_error("UNIQUE constraint failed: appointments.queue_number")
        return "booked"

    assert await operation.run_in_transaction(flaky) == "booked"
    assert attempts == [1, 2]


@pytest.mark.asyncio
async def test_gives_up_after_max_retries(db_session, today):
    operation = QueueOperation(db_session, today=today)
    calls = 0

    async def always_conflicts():
        nonlocal calls
        calls += 1
        operation.outbox.append(
            QueueNotification(user_id=None, title="t", message="m", category="queue_update")
        )
        raise integrity_error("uq_appointments_active_queue_slot")

    with pytest.raises(ConcurrencyConflictException) as exc_info:
        await operation.run_in_transaction(always_conflicts)

    assert calls == settings.queue_conflict_max_retries
    assert exc_info.value.details["attempts"] == settings.queue_conflict_max_retries
    assert operation.outbox == []


@pytest.mark.asyncio
async def test_other_integrity_errors_propagate(db_session, today):
    operation = QueueOperation(db_session, today=today)
    calls = 0

    async def broken():
        nonlocal calls
        calls += 1
        raise integrity_error("FOREIGN KEY constraint failed")

    with pytest.raises(IntegrityError):
        await operation.run_in_transaction(broken)

    assert calls == 1


@pytest.mark.asyncio
async def test_business_errors_are_not_retried(db_session, today):
    operation = QueueOperation(db_session, today=today)
    calls = 0

    async def invalid():
        nonlocal calls
        calls += 1
        raise ValidationException("bad input")

    with pytest.raises(ValidationException):
        await operation.run_in_transaction(invalid)

    assert calls == 1
