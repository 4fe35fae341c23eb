"""Domain exceptions raised by the service layer.

Route handlers let these propagate; main.py maps each class to an HTTP
status and renders {"detail": message}, the same body shape FastAPI uses
for HTTPException.
"""

from fastapi import status


class ClubError(Exception):
    """Base exception for all tennis club domain errors."""

    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str, details: dict | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict:
        body = {"detail": self.message}
        if self.details:
            body["details"] = self.details
        return body


class InvalidRequestError(ClubError):
    """Missing or invalid input (bad amount, unknown player, past date...)."""


class NotFoundError(ClubError):
    status_code = status.HTTP_404_NOT_FOUND

    def __init__(self, resource: str, identifier=None):
        message = f"{resource} not found" if identifier is None else f"{resource} not found: {identifier}"
        super().__init__(message, {"resource": resource})


class PermissionDeniedError(ClubError):
    status_code = status.HTTP_403_FORBIDDEN


class StateConflictError(ClubError):
    """The requested payment transition is not allowed from the current status."""
