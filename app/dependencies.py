"""Request dependencies: caller identity, role guards and the clinic clock."""

from datetime import date
from typing import Annotated
from uuid import UUID

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.security import PATIENT_ROLE, decode_access_token, is_staff
from app.database import get_db
from app.services.scheduling.slots import clinic_today
from app.services.user_service import UserService

bearer_scheme = HTTPBearer()


def credentials_error(detail: str = "Could not validate credentials") -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def forbidden(detail: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=detail)


async def get_current_user_id(
    credentials: Annotated[HTTPAuthorizationCredentials, Depends(bearer_scheme)],
) -> UUID:
    """
    Resolve the caller's user id from the bearer token's ``sub`` claim.

    Raises:
        HTTPException: 401 for a missing, expired or malformed token
    """
    payload = decode_access_token(credentials.credentials)
    subject = payload.get("sub") if payload else None
    if not isinstance(subject, str):
        raise credentials_error()

    try:
        return UUID(subject)
    except ValueError:
        raise credentials_error("Invalid user ID format") from None


async def get_current_user(
    user_id: Annotated[UUID, Depends(get_current_user_id)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> dict:
    """Load the caller's user row; unknown ids are 401, deactivated accounts 403."""
    user = await UserService.get_user_by_id(db, user_id)
    if not user:
        raise credentials_error("User not found")
    if not user["is_active"]:
        raise forbidden("User account is deactivated")
    return user


async def require_patient(
    user: Annotated[dict, Depends(get_current_user)],
) -> dict:
    """Only patients may book or move their own appointments."""
    if user["role"] != PATIENT_ROLE:
        raise forbidden("Patient access required")
    return user


async def require_staff(
    user: Annotated[dict, Depends(get_current_user)],
) -> dict:
    """Front-desk and clinical staff only."""
    if not is_staff(user):
        raise forbidden("Staff access required")
    return user


def get_clinic_today() -> date:
    """The clinic's calendar date, used for past-date checks and defaults."""
    return clinic_today()


DatabaseSession = Annotated[AsyncSession, Depends(get_db)]
CurrentUser = Annotated[dict, Depends(get_current_user)]
CurrentPatient = Annotated[dict, Depends(require_patient)]
CurrentStaff = Annotated[dict, Depends(require_staff)]
ClinicToday = Annotated[date, Depends(get_clinic_today)]
