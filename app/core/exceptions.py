"""Custom application exceptions."""

from typing import Any


class AppException(Exception):
    """Base application exception."""

    def __init__(
        self,
        message: str,
        status_code: int = 500,
        details: dict[str, Any] | None = None,
    ):
        """Initialize exception with message, status code and context."""
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        super().__init__(self.message)


class NotFoundException(AppException):
    """Resource not found exception."""

    def __init__(self, message: str = "Resource not found", details: dict[str, Any] | None = None):
        """Initialize with 404 status code."""
        super().__init__(message, status_code=404, details=details)


class UnauthorizedException(AppException):
    """Unauthorized access exception."""

    def __init__(self, message: str = "Unauthorized"):
        """Initialize with 401 status code."""
        super().__init__(message, status_code=401)


class ForbiddenException(AppException):
    """Forbidden access exception."""

    def __init__(self, message: str = "Forbidden"):
        """Initialize with 403 status code."""
        super().__init__(message, status_code=403)


class ConflictException(AppException):
    """Conflict exception."""

    def __init__(self, message: str = "Conflict", details: dict[str, Any] | None = None):
        """Initialize with 409 status code."""
        super().__init__(message, status_code=409, details=details)


class ValidationException(AppException):
    """Validation error exception."""

    def __init__(self, message: str = "Validation error", details: dict[str, Any] | None = None):
        """Initialize with 422 status code."""
        super().__init__(message, status_code=422, details=details)


# Scheduling outcomes. These are expected business results and are never retried.


class DuplicateBookingException(ConflictException):
    """Patient already holds an active appointment on the requested date."""


class PreferredDoctorUnavailableException(ConflictException):
    """Requested doctor is inactive, outside the department or fully booked."""


class NoDoctorAvailableException(ConflictException):
    """No active doctor in the department can take the booking."""


class DepartmentFullException(NoDoctorAvailableException):
    """Every active doctor in the department is at capacity for the date."""


class NoSlotAvailableException(ConflictException):
    """No date with capacity was found inside the search horizon."""


class InvalidStatusTransitionException(ConflictException):
    """Appointment status does not allow the requested operation."""


class ConcurrencyConflictException(ConflictException):
    """Queue write kept colliding with concurrent writers after all retries."""
