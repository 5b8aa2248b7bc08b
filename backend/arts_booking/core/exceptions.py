"""
Domain exceptions for the booking subsystem.

Services raise these; the group booking orchestrator turns them into
OperationResult values and the plain booking routes let the exception
handler registered in main.py render them as {"error": ...} responses.
"""

from enum import Enum
from typing import Any, Dict, Optional


class ErrorCode(str, Enum):
    VALIDATION_ERROR = "VALIDATION_ERROR"
    NOT_FOUND = "NOT_FOUND"
    BOOKING_CONFLICT = "BOOKING_CONFLICT"
    INSUFFICIENT_CAPACITY = "INSUFFICIENT_CAPACITY"
    EXPIRED = "EXPIRED"
    DATABASE_ERROR = "DATABASE_ERROR"


class BookingError(Exception):
    """Base class for every error the booking services raise on purpose."""

    error_code: ErrorCode = ErrorCode.VALIDATION_ERROR
    status_code: int = 400

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"error": self.message, "error_code": self.error_code.value}
        if self.details:
            payload["details"] = self.details
        return payload


class ValidationError(BookingError):
    """Missing or malformed input. Not retried."""

    error_code = ErrorCode.VALIDATION_ERROR
    status_code = 400


class NotFoundError(BookingError):
    """Booking, participant, waitlist entry or invitation does not exist (or is the wrong kind)."""

    error_code = ErrorCode.NOT_FOUND
    status_code = 404


class ConflictError(BookingError):
    """Slot already taken or the user is already on the booking."""

    error_code = ErrorCode.BOOKING_CONFLICT
    status_code = 409


class CapacityError(BookingError):
    """No free spot left."""

    error_code = ErrorCode.INSUFFICIENT_CAPACITY
    status_code = 409


class BookingFullError(CapacityError):
    """Group booking is full and does not keep a waitlist."""


class ExpiredError(BookingError):
    """
    Invitation or waitlist entry past its expiry.

    The service that raises it has already moved the row to `expired`;
    callers must commit that transition before reporting the failure.
    """

    error_code = ErrorCode.EXPIRED
    status_code = 410


class BackendError(BookingError):
    """The relational store failed. Callers may retry the whole request."""

    error_code = ErrorCode.DATABASE_ERROR
    status_code = 500
