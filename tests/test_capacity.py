"""Tests for the capacity gate."""

from uuid import uuid4

import pytest
from sqlalchemy import update

from app.core.exceptions import NotFoundException
from app.models import doctor_schedules
from app.services.scheduling.capacity import CapacityGate


@pytest.mark.asyncio
async def test_default_shift_without_schedule(db_session, doctor, monday):
    """Doctors without a schedule row work the default 08:00-16:00 shift."""
    snapshot = await CapacityGate(db_session).check(doctor["id"], monday)

    assert snapshot.max_patients == 19
    assert snapshot.current_load == 0
    assert snapshot.next_queue_number == 1
    assert snapshot.has_capacity is True
    assert snapshot.shift.start == "08:00"
    assert snapshot.shift.slot_time(4) == "09:15"


@pytest.mark.asyncio
async def test_schedule_row_sets_capacity(db_session, make_doctor, department, monday):
    doctor = await make_doctor([department["id"]], shift=("09:00", "13:00"))

    snapshot = await CapacityGate(db_session).check(doctor["id"], monday)

    assert snapshot.max_patients == 9
    assert snapshot.shift.slot_time(1) == "09:00"
    assert snapshot.shift.slot_time(2) == "09:25"


@pytest.mark.asyncio
async def test_custom_consultation_duration(db_session, make_doctor, department, monday):
    doctor = await make_doctor(
        [department["id"]], shift=("08:00", "12:00"), consultation_duration_minutes=30
    )

    snapshot = await CapacityGate(db_session).check(doctor["id"], monday)

    assert snapshot.max_patients == 8
    assert snapshot.shift.slot_time(3) == "09:00"


@pytest.mark.asyncio
async def test_unavailable_weekday_has_no_capacity(db_session, make_doctor, department, monday):
    doctor = await make_doctor([department["id"]], shift=("08:00", "16:00"))
    await db_session.execute(
        update(doctor_schedules)
        .where(
            doctor_schedules.c.doctor_id == doctor["id"],
            doctor_schedules.c.day_of_week == monday.weekday(),
        )
        .values(is_available=False)
    )
    await db_session.commit()

    snapshot = await CapacityGate(db_session).check(doctor["id"], monday)

    assert snapshot.max_patients == 0
    assert snapshot.has_capacity is False


@pytest.mark.asyncio
async def test_next_queue_number_follows_highest_active(
    db_session, doctor, make_appointment, monday
):
    """Gaps left by terminal rows are not reused."""
    await make_appointment(doctor, monday, 1)
    await make_appointment(doctor, monday, 2, status="cancelled")
    await make_appointment(doctor, monday, 3)

    snapshot = await CapacityGate(db_session).check(doctor["id"], monday)

    assert snapshot.current_load == 2
    assert snapshot.next_queue_number == 4


@pytest.mark.asyncio
async def test_terminal_rows_do_not_count(db_session, doctor, make_appointment, monday):
    await make_appointment(doctor, monday, 1, status="completed")
    await make_appointment(doctor, monday, 2, status="no-show")

    snapshot = await CapacityGate(db_session).check(doctor["id"], monday)

    assert snapshot.current_load == 0
    assert snapshot.next_queue_number == 1


@pytest.mark.asyncio
async def test_other_dates_do_not_count(db_session, doctor, make_appointment, monday, today):
    await make_appointment(doctor, today, 1)

    snapshot = await CapacityGate(db_session).check(doctor["id"], monday)

    assert snapshot.current_load == 0


@pytest.mark.asyncio
async def test_full_doctor_has_no_capacity(db_session, make_doctor, department, make_appointment, monday):
    doctor = await make_doctor([department["id"]], shift=("08:00", "08:50"))
    await make_appointment(doctor, monday, 1)
    await make_appointment(doctor, monday, 2)

    has_capacity, next_number = await CapacityGate(db_session).has_capacity(doctor["id"], monday)

    assert has_capacity is False
    assert next_number == 3


@pytest.mark.asyncio
async def test_unknown_doctor(db_session, monday):
    with pytest.raises(NotFoundException):
        await CapacityGate(db_session).check(uuid4(), monday)
