"""Application exceptions.

Each exception maps to an HTTP status code and a stable error ``code`` that
clients switch on. Messages are user-facing; technical detail belongs in
``details`` and in the logs.
"""

from typing import Any


class AppException(Exception):
    """Base exception for all application errors.

    Attributes:
        message: Human-readable error message.
        status_code: HTTP status code to return.
        code: Machine-readable error code.
        details: Additional error context.
    """

    status_code = 500
    code = "server_error"

    def __init__(
        self,
        message: str = "Something went wrong. Please try again.",
        details: dict[str, Any] | None = None,
    ) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(self.message)

    @property
    def retryable(self) -> bool:
        return self.status_code >= 500

    def to_error(self) -> dict[str, Any]:
        """Render the ``error`` object of the response body"""
        error: dict[str, Any] = {"code": self.code, "message": self.message}
        if self.retryable:
            error["retryable"] = True
        return error


class MissingFieldsError(AppException):
    """Raised when a request lacks required identifiers."""

    status_code = 400
    code = "missing_fields"

    def __init__(self, fields: list[str]) -> None:
        self.fields = fields
        super().__init__(
            f"Missing required fields: {', '.join(fields)}",
            details={"fields": fields},
        )


class InvalidCoordinates(AppException):
    """Raised for non-numeric, non-finite or out-of-range coordinates."""

    status_code = 400
    code = "invalid_coordinates"

    def __init__(self, message: str = "Missing required coordinates or station ID") -> None:
        super().__init__(message)


class InvalidRequestError(AppException):
    """Raised when the request body cannot be parsed."""

    status_code = 400
    code = "invalid_request"


class NotFoundError(AppException):
    """Raised when a referenced station or activity does not exist."""

    status_code = 404

    def __init__(self, code: str, message: str) -> None:
        self.code = code
        super().__init__(message)


class ForbiddenError(AppException):
    """Raised when a user records a visit against someone else's activity."""

    status_code = 403
    code = "forbidden"

    def __init__(self, message: str = "You can't check in to this activity.") -> None:
        super().__init__(message)


class DuplicateVisitError(AppException):
    """Raised when the station was already checked in for the activity.

    ``code`` is ``duplicate_visit`` for a conflict seen before any work was
    done and ``duplicate_visit_race`` for one caught by the store's unique
    constraint at insert time. Callers treat both the same.
    """

    status_code = 409

    def __init__(
        self,
        existing_visit_id: str,
        station_name: str,
        visited_at: str | None,
        race: bool = False,
    ) -> None:
        self.code = "duplicate_visit_race" if race else "duplicate_visit"
        self.existing_visit_id = existing_visit_id
        self.station_name = station_name
        self.visited_at = visited_at
        super().__init__(f"Already checked in to {station_name} for this activity.")

    def to_error(self) -> dict[str, Any]:
        error = super().to_error()
        error["duplicate"] = {
            "existing_visit_id": self.existing_visit_id,
            "station_name": self.station_name,
            "visited_at": self.visited_at,
        }
        return error


class StoreUnavailableError(AppException):
    """Raised when the visit store cannot be reached or a lock wait expires."""

    status_code = 503
    code = "store_unavailable"

    def __init__(
        self,
        message: str = "We couldn't save your check-in right now. Please try again.",
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, details)


class OcrError(Exception):
    """Base class for roundel reader failures. Never shown to users."""


class OcrTimeout(OcrError):
    """The vision model did not answer within the configured timeout."""


class OcrUnavailable(OcrError):
    """The vision model is not configured, unreachable or returned an error."""


class OcrMalformedResponse(OcrError):
    """The vision model answered with something that is not the expected JSON."""
