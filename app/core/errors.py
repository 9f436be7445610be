from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    UNAUTHENTICATED = "unauthenticated"
    FORBIDDEN = "forbidden"
    NOT_FOUND = "not_found"
    VALIDATION_ERROR = "validation_error"
    QUOTA_EXCEEDED = "quota_exceeded"
    ALREADY_FINALIZED = "already_finalized"
    NO_SCHEDULED_DATE = "no_scheduled_date"
    TOO_EARLY = "too_early"
    CONFLICT = "conflict"
    STORAGE_ERROR = "storage_error"


HTTP_STATUS_BY_KIND = {
    ErrorKind.UNAUTHENTICATED: 401,
    ErrorKind.FORBIDDEN: 403,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.VALIDATION_ERROR: 400,
    ErrorKind.QUOTA_EXCEEDED: 409,
    ErrorKind.ALREADY_FINALIZED: 409,
    ErrorKind.NO_SCHEDULED_DATE: 409,
    ErrorKind.TOO_EARLY: 409,
    ErrorKind.CONFLICT: 409,
    ErrorKind.STORAGE_ERROR: 503,
}


class RaffleError(Exception):
    """Base class for every failure the API reports to a caller.

    Subclasses fix ``kind``; ``message`` is the human readable text shown to
    the user.
    """

    kind: ErrorKind = ErrorKind.VALIDATION_ERROR
    default_message = "Request failed"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)

    @property
    def status_code(self) -> int:
        return HTTP_STATUS_BY_KIND[self.kind]


class Unauthenticated(RaffleError):
    kind = ErrorKind.UNAUTHENTICATED
    default_message = "Authentication required"


class Forbidden(RaffleError):
    kind = ErrorKind.FORBIDDEN
    default_message = "Not allowed to modify this raffle"


class NotFound(RaffleError):
    kind = ErrorKind.NOT_FOUND
    default_message = "Raffle not found"


class ValidationError(RaffleError):
    kind = ErrorKind.VALIDATION_ERROR
    default_message = "Invalid request"


class QuotaExceeded(RaffleError):
    kind = ErrorKind.QUOTA_EXCEEDED
    default_message = "Active raffle limit reached"


class AlreadyFinalized(RaffleError):
    kind = ErrorKind.ALREADY_FINALIZED
    default_message = "Raffle is already finalized"


class NoScheduledDate(RaffleError):
    kind = ErrorKind.NO_SCHEDULED_DATE
    default_message = "Raffle has no finalization date"


class TooEarly(RaffleError):
    kind = ErrorKind.TOO_EARLY
    default_message = "Raffle cannot be finalized before its finalization date"


class Conflict(RaffleError):
    kind = ErrorKind.CONFLICT
    default_message = "Resource already exists"


class StorageError(RaffleError):
    kind = ErrorKind.STORAGE_ERROR
    default_message = "Storage is unavailable"
