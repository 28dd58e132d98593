from typing import Any, Optional

from fastapi import status
from sqlalchemy.exc import IntegrityError


class AppError(Exception):
    """Base class for business-rule failures surfaced to API clients."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    code = "internal_error"
    message = "Internal server error"

    def __init__(self, code: Optional[str] = None, message: Optional[str] = None, data: Any = None):
        self.code = code or self.code
        self.message = message or self.message
        self.data = data
        super().__init__(f"{self.code}: {self.message}")


class ValidationError(AppError):
    status_code = status.HTTP_400_BAD_REQUEST
    code = "validation_error"
    message = "Invalid request"


class AuthError(AppError):
    status_code = status.HTTP_401_UNAUTHORIZED
    code = "signature_mismatch"
    message = "Unauthorized - signature mismatch"


class NotFoundError(AppError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "not_found"
    message = "Resource not found"

    def __init__(self, entity: str, message: Optional[str] = None):
        self.entity = entity
        super().__init__(code=f"{entity}_not_found", message=message or f"{entity.replace('_', ' ').capitalize()} not found")


class ConflictError(AppError):
    status_code = status.HTTP_409_CONFLICT
    code = "conflict"
    message = "Request conflicts with current state"


class GatewayError(AppError):
    status_code = status.HTTP_502_BAD_GATEWAY
    code = "gateway_error"
    message = "Payment gateway request failed"


class PayoutError(GatewayError):
    code = "payout_failed"
    message = "Payout to library operator failed"


class ConfigurationError(AppError):
    code = "configuration_error"
    message = "Server configuration error"


class PersistenceError(AppError):
    code = "persistence_error"
    message = "Could not record the operation"


# psycopg2 SQLSTATE codes
_UNIQUE_VIOLATION = "23505"
_FOREIGN_KEY_VIOLATION = "23503"


def translate_integrity_error(exc: IntegrityError, unique_code: str = "duplicate_booking") -> AppError:
    """Map a datastore constraint violation onto the error taxonomy."""
    orig = getattr(exc, "orig", None)
    pgcode = getattr(orig, "pgcode", None)
    text = str(orig or exc).lower()

    if pgcode == _UNIQUE_VIOLATION or "unique" in text:
        return ConflictError(unique_code, "Seat is already booked for this time slot")
    if pgcode == _FOREIGN_KEY_VIOLATION or "foreign key" in text:
        return ValidationError("invalid_reference", "One or more referenced records do not exist")
    return PersistenceError()
