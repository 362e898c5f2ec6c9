"""Seed departments, doctors and a demo patient for local development."""

import asyncio
import re

import structlog
from sqlalchemy import insert, select

from app.core.security import create_access_token
from app.database import AsyncSessionLocal, engine
from app.middleware.logging import configure_logging
from app.models import departments, doctor_departments, doctor_schedules, doctors, users

logger = structlog.get_logger(__name__)

DEPARTMENTS = [
    ("Cardiology", "Heart and cardiovascular care"),
    ("Emergency Medicine", "Emergency and urgent care services"),
    ("Pediatrics", "Child and adolescent healthcare"),
    ("Orthopedics", "Bone, joint, and muscle care"),
    ("Neurology", "Brain and nervous system care"),
    ("General Medicine", "General medical consultation"),
    ("Internal Medicine", "Diagnosis and care of adult diseases"),
    ("Surgery", "Surgical procedures and operations"),
    ("Obstetrics & Gynecology", "Women's health and maternity care"),
    ("Dermatology", "Skin, hair, and nail care"),
]

# (full name, email, specialization, department, weekday shifts or None for the default)
DOCTORS = [
    ("Tendai Moyo", "t.moyo@hospital.test", "General Practitioner", "General Medicine", None),
    ("Rudo Chikwanha", "r.chikwanha@hospital.test", "General Practitioner", "General Medicine", None),
    ("Farai Ndlovu", "f.ndlovu@hospital.test", "Cardiologist", "Cardiology", ("09:00", "13:00")),
    ("Nyasha Dube", "n.dube@hospital.test", "Emergency Physician", "Emergency Medicine", None),
]


def slugify(name: str) -> str:
    return re.sub(r"[^a-z0-9]+", "-", name.lower().replace("&", "")).strip("-")


async def seed() -> None:
    """Insert demo rows that are not present yet."""
    async with AsyncSessionLocal() as db:
        department_ids = {}
        for name, description in DEPARTMENTS:
            existing = (
                await db.execute(select(departments.c.id).where(departments.c.name == name))
            ).scalar()
            if existing is None:
                existing = (
                    await db.execute(
                        insert(departments)
                        .values(name=name, slug=slugify(name), description=description)
                        .returning(departments.c.id)
                    )
                ).scalar_one()
                logger.info("department_seeded", name=name)
            department_ids[name] = existing

        for full_name, email, specialization, department, shift in DOCTORS:
            if (await db.execute(select(users.c.id).where(users.c.email == email))).scalar():
                continue

            user_id = (
                await db.execute(
                    insert(users)
                    .values(email=email, full_name=full_name, role="doctor")
                    .returning(users.c.id)
                )
            ).scalar_one()
            doctor_id = (
                await db.execute(
                    insert(doctors)
                    .values(user_id=user_id, specialization=specialization)
                    .returning(doctors.c.id)
                )
            ).scalar_one()
            await db.execute(
                insert(doctor_departments).values(
                    doctor_id=doctor_id, department_id=department_ids[department]
                )
            )
            if shift:
                await db.execute(
                    insert(doctor_schedules),
                    [
                        {
                            "doctor_id": doctor_id,
                            "day_of_week": day,
                            "start_time": shift[0],
                            "end_time": shift[1],
                        }
                        for day in range(5)
                    ],
                )
            logger.info("doctor_seeded", name=full_name, department=department)

        patient_email = "patient@hospital.test"
        patient_id = (
            await db.execute(select(users.c.id).where(users.c.email == patient_email))
        ).scalar()
        if patient_id is None:
            patient_id = (
                await db.execute(
                    insert(users)
                    .values(email=patient_email, full_name="Demo Patient", role="patient")
                    .returning(users.c.id)
                )
            ).scalar_one()

        await db.commit()

    await engine.dispose()

    print("✓ Demo data seeded")
    print(f"  Patient token: {create_access_token({'sub': str(patient_id)})}")


if __name__ == "__main__":
    configure_logging()
    asyncio.run(seed())
