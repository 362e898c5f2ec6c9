"""Tests for priority insertion into a doctor's queue."""

from datetime import date
from uuid import uuid4

import pytest
from sqlalchemy import select

from app.core.exceptions import DuplicateBookingException, NotFoundException, ValidationException
from app.models import appointments, notifications
from app.services.scheduling.allocator import QueueAllocator
from app.services.scheduling.priority import PUSHBACK_NOTE, PriorityInsertion


@pytest.fixture
def insertion(db_session, today):
    return PriorityInsertion(db_session, today=today)


async def queue_of(db_session, doctor_id, on_date):
    result = await db_session.execute(
        select(appointments)
        .where(
            appointments.c.doctor_id == doctor_id,
            appointments.c.appointment_date == on_date,
        )
        .order_by(appointments.c.queue_number)
    )
    return [dict(row) for row in result.mappings().all()]


@pytest.mark.asyncio
async def test_emergency_patient_goes_first(
    db_session, insertion, make_user, department, doctor, monday, today
):
    """Three bookings then a priority insert at position 1."""
    allocator = QueueAllocator(db_session, today=today)
    booked = []
    for _ in range(3):
        patient = await make_user()
        result = await allocator.book_appointment(
            patient_id=patient["id"],
            appointment_date=monday,
            reason="Check-up",
            department_id=department["id"],
        )
        booked.append(result.appointment)

    emergency = await make_user(full_name="Emergency Patient")
    result = await insertion.insert_priority(
        patient_id=emergency["id"],
        doctor_id=doctor["id"],
        reason="Chest pain",
        appointment_date=monday,
        target_position=1,
    )

    assert result.appointment.queue_number == 1
    assert result.appointment.appointment_time == "08:00"
    assert result.appointment.is_priority is True
    assert result.appointment.department_id == department["id"]
    assert result.appointment.notes == "[PRIORITY] Inserted at queue position 1"
    assert result.displaced_count == 3

    rows = await queue_of(db_session, doctor["id"], monday)
    assert [(r["queue_number"], r["appointment_time"]) for r in rows] == [
        (1, "08:00"),
        (2, "08:25"),
        (3, "08:50"),
        (4, "09:15"),
    ]
    assert [r["id"] for r in rows[1:]] == [a.id for a in booked]
    assert all(PUSHBACK_NOTE in r["notes"] for r in rows[1:])


@pytest.mark.asyncio
async def test_insert_in_middle_keeps_earlier_patients(
    db_session, insertion, make_user, doctor, make_appointment, monday
):
    first = await make_appointment(doctor, monday, 1)
    second = await make_appointment(doctor, monday, 2)
    third = await make_appointment(doctor, monday, 3)
    patient = await make_user()

    result = await insertion.insert_priority(
        patient_id=patient["id"],
        doctor_id=doctor["id"],
        reason="Asthma attack",
        appointment_date=monday,
        target_position=2,
    )

    assert result.appointment.appointment_time == "08:25"
    assert {d.appointment_id for d in result.displaced} == {second["id"], third["id"]}

    rows = {r["id"]: r for r in await queue_of(db_session, doctor["id"], monday)}
    assert rows[first["id"]]["queue_number"] == 1
    assert rows[first["id"]]["notes"] is None
    assert rows[second["id"]]["queue_number"] == 3
    assert rows[third["id"]]["queue_number"] == 4
    assert rows[third["id"]]["appointment_time"] == "09:15"


@pytest.mark.asyncio
async def test_insert_at_tail(db_session, insertion, make_user, doctor, make_appointment, monday):
    await make_appointment(doctor, monday, 1)
    patient = await make_user()

    result = await insertion.insert_priority(
        patient_id=patient["id"],
        doctor_id=doctor["id"],
        reason="Fracture",
        appointment_date=monday,
        target_position=2,
    )

    assert result.appointment.queue_number == 2
    assert result.displaced_count == 0


@pytest.mark.asyncio
async def test_terminal_rows_are_not_shifted(
    db_session, insertion, make_user, doctor, make_appointment, monday
):
    done = await make_appointment(doctor, monday, 1, status="completed")
    waiting = await make_appointment(doctor, monday, 2)
    patient = await make_user()

    result = await insertion.insert_priority(
        patient_id=patient["id"],
        doctor_id=doctor["id"],
        reason="Bleeding",
        appointment_date=monday,
        target_position=1,
    )

    assert [d.appointment_id for d in result.displaced] == [waiting["id"]]
    rows = {r["id"]: r for r in await queue_of(db_session, doctor["id"], monday)}
    assert rows[done["id"]]["queue_number"] == 1
    assert rows[waiting["id"]]["queue_number"] == 3


@pytest.mark.asyncio
async def test_capacity_is_not_checked(
    db_session, insertion, make_user, make_doctor, department, make_appointment, monday
):
    doctor = await make_doctor([department["id"]], shift=("08:00", "08:25"))
    await make_appointment(doctor, monday, 1)
    patient = await make_user()

    result = await insertion.insert_priority(
        patient_id=patient["id"],
        doctor_id=doctor["id"],
        reason="Seizure",
        appointment_date=monday,
    )

    assert result.appointment.queue_number == 1
    assert result.displaced[0].queue_number == 2


@pytest.mark.asyncio
async def test_defaults_to_today(insertion, make_user, doctor, today):
    patient = await make_user()

    result = await insertion.insert_priority(
        patient_id=patient["id"], doctor_id=doctor["id"], reason="Burn"
    )

    assert result.appointment.appointment_date == today


@pytest.mark.asyncio
async def test_displaced_patients_are_notified(
    db_session, insertion, make_user, doctor, make_appointment, monday
):
    waiting_patient = await make_user()
    waiting = await make_appointment(doctor, monday, 1, patient=waiting_patient)
    patient = await make_user()

    await insertion.insert_priority(
        patient_id=patient["id"],
        doctor_id=doctor["id"],
        reason="Allergic reaction",
        appointment_date=monday,
    )

    assert [(n.user_id, n.category) for n in insertion.outbox] == [
        (waiting_patient["id"], "queue_update"),
        (waiting_patient["id"], "queue_position"),
    ]
    row = (
        await db_session.execute(
            select(notifications).where(
                notifications.c.user_id == waiting_patient["id"],
                notifications.c.category == "queue_update",
            )
        )
    ).mappings().one()
    assert row["appointment_id"] == waiting["id"]
    assert "08:25" in row["message"]


@pytest.mark.asyncio
async def test_no_second_in_line_notice_further_back(
    insertion, make_user, doctor, make_appointment, monday
):
    first = await make_user()
    second = await make_user()
    await make_appointment(doctor, monday, 1, patient=first)
    await make_appointment(doctor, monday, 2, patient=second)

    await insertion.insert_priority(
        patient_id=(await make_user())["id"],
        doctor_id=doctor["id"],
        reason="Fracture",
        appointment_date=monday,
        target_position=2,
    )

    assert [(n.user_id, n.category) for n in insertion.outbox] == [
        (second["id"], "queue_update")
    ]


@pytest.mark.asyncio
async def test_second_in_line_ignores_finished_appointments(
    insertion, make_user, doctor, make_appointment, monday
):
    waiting_patient = await make_user()
    await make_appointment(doctor, monday, 1, status="completed")
    waiting = await make_appointment(doctor, monday, 2, patient=waiting_patient)

    await insertion.insert_priority(
        patient_id=(await make_user())["id"],
        doctor_id=doctor["id"],
        reason="Fracture",
        appointment_date=monday,
        target_position=2,
    )

    notice = insertion.outbox[-1]
    assert notice.category == "queue_position"
    assert notice.user_id == waiting_patient["id"]
    assert notice.appointment_id == waiting["id"]
    assert "2nd in the queue" in notice.message


@pytest.mark.parametrize("position", [0, -1])
@pytest.mark.asyncio
async def test_position_below_one(insertion, make_user, doctor, monday, position):
    patient = await make_user()

    with pytest.raises(ValidationException):
        await insertion.insert_priority(
            patient_id=patient["id"],
            doctor_id=doctor["id"],
            reason="Pain",
            appointment_date=monday,
            target_position=position,
        )


@pytest.mark.asyncio
async def test_position_beyond_tail(insertion, make_user, doctor, make_appointment, monday):
    await make_appointment(doctor, monday, 1)
    patient = await make_user()

    with pytest.raises(ValidationException) as exc_info:
        await insertion.insert_priority(
            patient_id=patient["id"],
            doctor_id=doctor["id"],
            reason="Pain",
            appointment_date=monday,
            target_position=3,
        )

    assert exc_info.value.details["max_position"] == 2


@pytest.mark.asyncio
async def test_weekend_and_past_dates_rejected(insertion, make_user, doctor):
    patient = await make_user()

    for on_date in (date(2025, 5, 31), date(2025, 5, 29)):
        with pytest.raises(ValidationException):
            await insertion.insert_priority(
                patient_id=patient["id"],
                doctor_id=doctor["id"],
                reason="Pain",
                appointment_date=on_date,
            )


@pytest.mark.asyncio
async def test_patient_already_booked_that_day(
    db_session, insertion, patient, doctor, make_appointment, monday
):
    await make_appointment(doctor, monday, 1, patient=patient)

    with pytest.raises(DuplicateBookingException):
        await insertion.insert_priority(
            patient_id=patient["id"],
            doctor_id=doctor["id"],
            reason="Pain",
            appointment_date=monday,
        )

    rows = await queue_of(db_session, doctor["id"], monday)
    assert [r["queue_number"] for r in rows] == [1]


@pytest.mark.asyncio
async def test_unknown_doctor(insertion, patient, monday):
    with pytest.raises(NotFoundException):
        await insertion.insert_priority(
            patient_id=patient["id"],
            doctor_id=uuid4(),
            reason="Pain",
            appointment_date=monday,
        )
