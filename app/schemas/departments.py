"""Department directory schemas."""

from uuid import UUID

from pydantic import BaseModel


class DepartmentResponse(BaseModel):
    """Department listing entry."""

    id: UUID
    name: str
    slug: str
    description: str | None = None

    model_config = {"from_attributes": True}


class DepartmentDoctorResponse(BaseModel):
    """Doctor in a department with today's load."""

    id: UUID
    full_name: str
    specialization: str | None = None
    current_load: int
    max_patients: int
    has_capacity: bool
