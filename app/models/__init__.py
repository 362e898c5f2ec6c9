"""Database models."""

from app.models.appointments import appointments
from app.models.departments import departments
from app.models.doctors import doctor_departments, doctor_schedules, doctors
from app.models.metadata import metadata
from app.models.notifications import notifications, push_tokens
from app.models.users import users

__all__ = [
    "appointments",
    "departments",
    "doctor_departments",
    "doctor_schedules",
    "doctors",
    "metadata",
    "notifications",
    "push_tokens",
    "users",
]
