"""
# Service Error Taxonomy

Every failure that can reach the HTTP boundary is one of a closed set of kinds:

| Kind                  | Exception            | HTTP |
|-----------------------|----------------------|------|
| `validation_failure`  | `ValidationFailure`  | 400  |
| `not_found`           | `NotFound`           | 404  |
| `storage_unavailable` | `StorageUnavailable` | 503  |
| `duplicate_key`       | `DuplicateKey`       | 400  |
| `unknown`             | `UnknownError`       | 500  |

The repository and the database manager translate raw PyMongo errors with
`classify_driver_error()` before anything propagates, so the exception handlers
only ever match on `ServiceError`.
"""

from enum import Enum
from typing import Any, Dict, List, Optional

from bson.errors import InvalidId
from pymongo.errors import (
    ConnectionFailure,
    DuplicateKeyError,
    NetworkTimeout,
    PyMongoError,
    ServerSelectionTimeoutError,
    WriteError,
)

# MongoDB server error code for a document failing collection validation
DOCUMENT_VALIDATION_FAILURE = 121


class ErrorKind(str, Enum):
    """Closed set of failure kinds surfaced by the service layer."""

    VALIDATION_FAILURE = "validation_failure"
    NOT_FOUND = "not_found"
    STORAGE_UNAVAILABLE = "storage_unavailable"
    DUPLICATE_KEY = "duplicate_key"
    UNKNOWN = "unknown"


STATUS_CODES: Dict[ErrorKind, int] = {
    ErrorKind.VALIDATION_FAILURE: 400,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.STORAGE_UNAVAILABLE: 503,
    ErrorKind.DUPLICATE_KEY: 400,
    ErrorKind.UNKNOWN: 500,
}


class ServiceError(Exception):
    """
    Base class for typed service failures.

    Attributes:
        message: Human readable summary, safe to return to callers.
        details: Optional list of per-field messages.
        cause: The low-level exception this error was derived from, if any.
    """

    kind: ErrorKind = ErrorKind.UNKNOWN
    default_message: str = "Internal server error"

    def __init__(
        self,
        message: Optional[str] = None,
        details: Optional[List[str]] = None,
        cause: Optional[BaseException] = None,
    ):
        self.message = message or self.default_message
        self.details = details
        self.cause = cause
        super().__init__(self.message)

    @property
    def status_code(self) -> int:
        return STATUS_CODES[self.kind]


class ValidationFailure(ServiceError):
    kind = ErrorKind.VALIDATION_FAILURE
    default_message = "Validation error"


class NotFound(ServiceError):
    kind = ErrorKind.NOT_FOUND
    default_message = "Project not found"


class StorageUnavailable(ServiceError):
    kind = ErrorKind.STORAGE_UNAVAILABLE
    default_message = "Database service unavailable. Please try again later."


class DuplicateKey(ServiceError):
    kind = ErrorKind.DUPLICATE_KEY
    default_message = "Duplicate field value"


class UnknownError(ServiceError):
    kind = ErrorKind.UNKNOWN
    default_message = "Internal server error"


def classify_driver_error(exc: BaseException) -> ServiceError:
    """
    Map a low-level storage exception onto the service taxonomy.

    Already-classified errors pass through unchanged.

    Args:
        exc: Exception raised by PyMongo/Motor or BSON.

    Returns:
        ServiceError: The typed error, with `cause` set to `exc`.
    """
    if isinstance(exc, ServiceError):
        return exc
    if isinstance(exc, DuplicateKeyError):
        return DuplicateKey(cause=exc)
    if isinstance(exc, (ServerSelectionTimeoutError, NetworkTimeout, ConnectionFailure)):
        return StorageUnavailable(cause=exc)
    if isinstance(exc, InvalidId):
        return ValidationFailure("Invalid ID format", cause=exc)
    if isinstance(exc, WriteError) and exc.code == DOCUMENT_VALIDATION_FAILURE:
        return ValidationFailure(details=[str(exc)], cause=exc)
    if isinstance(exc, PyMongoError):
        return UnknownError("Database operation failed", cause=exc)
    return UnknownError(cause=exc)


def error_summary(exc: ServiceError) -> Dict[str, Any]:
    """Compact, loggable description of a service error."""
    return {
        "kind": exc.kind.value,
        "message": exc.message,
        "cause": type(exc.cause).__name__ if exc.cause else None,
    }
