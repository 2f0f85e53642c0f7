"""
Error taxonomy for the scheduling system.

Every error is an ``HTTPException`` carrying a stable ``error`` code so the
client can tell the outcomes apart; ``app.main`` renders them as
``{"error": ..., "message": ...}``.
"""
from typing import Dict, Optional

from fastapi import HTTPException, status


class AppointmentSystemError(HTTPException):
    """Base class for all user-displayable domain errors."""

    error_code: str = "error"
    default_status: int = status.HTTP_400_BAD_REQUEST
    default_detail: str = "Request could not be completed"

    def __init__(
        self,
        detail: Optional[str] = None,
        status_code: Optional[int] = None,
        headers: Optional[Dict[str, str]] = None,
    ):
        super().__init__(
            status_code=status_code or self.default_status,
            detail=detail or self.default_detail,
            headers=headers,
        )

    @property
    def error(self) -> str:
        return self.error_code


class Unauthenticated(AppointmentSystemError):
    error_code = "unauthenticated"
    default_status = status.HTTP_401_UNAUTHORIZED
    default_detail = "Could not validate credentials"

    def __init__(self, detail: Optional[str] = None):
        super().__init__(detail, headers={"WWW-Authenticate": "Bearer"})


class UserNotFound(Unauthenticated):
    error_code = "user_not_found"
    default_detail = "User not found"


class Forbidden(AppointmentSystemError):
    error_code = "forbidden"
    default_status = status.HTTP_403_FORBIDDEN
    default_detail = "Not enough permissions"


class NotFound(AppointmentSystemError):
    error_code = "not_found"
    default_status = status.HTTP_404_NOT_FOUND
    default_detail = "Resource not found"


class SlotUnavailable(AppointmentSystemError):
    error_code = "slot_unavailable"
    default_status = status.HTTP_409_CONFLICT
    default_detail = "The requested time slot is no longer available"


class InvalidTransition(AppointmentSystemError):
    error_code = "invalid_transition"
    default_status = status.HTTP_409_CONFLICT
    default_detail = "Appointment status change is not allowed"


class ValidationError(AppointmentSystemError):
    error_code = "validation_error"
    default_status = 422
    default_detail = "Invalid request"


class RateLimited(AppointmentSystemError):
    error_code = "rate_limited"
    default_status = status.HTTP_429_TOO_MANY_REQUESTS
    default_detail = "Too many requests. Please try again later."
