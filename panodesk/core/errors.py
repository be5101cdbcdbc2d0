"""
Error taxonomy shared by every feature.

Routes and helpers raise these; the handlers registered in ``panodesk.main``
turn them into ``{"success": false, "message": ..., "errors": ...}`` bodies.
"""
from typing import Any

from fastapi import status


class PanoDeskError(Exception):
    """Base class for errors that are safe to show to the caller."""
    status_code: int = status.HTTP_400_BAD_REQUEST
    default_message: str = "Request failed"

    def __init__(self, message: str | None = None, errors: dict[str, Any] | None = None):
        self.message = message or self.default_message
        self.errors = errors
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {"success": False, "message": self.message}
        if self.errors:
            body["errors"] = self.errors
        return body


class ValidationError(PanoDeskError):
    """Malformed or missing input the caller can fix."""
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Validation errors"

    @classmethod
    def for_field(cls, field: str, message: str) -> "ValidationError":
        return cls(message, errors={field: message})


class AuthenticationError(PanoDeskError):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Authentication required"


class AccessDenied(PanoDeskError):
    status_code = status.HTTP_403_FORBIDDEN
    default_message = "Access denied"


class NotFoundOrExpired(PanoDeskError):
    """
    Missing resource, or a token that cannot be used.

    Unknown, already used and expired tokens all produce the same message.
    """
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Not found"


class ConflictError(PanoDeskError):
    status_code = status.HTTP_409_CONFLICT
    default_message = "Conflict"


class InvalidStateError(ConflictError):
    """Transition not allowed from the record's current status."""
    default_message = "Invalid state for this operation"


class InternalError(PanoDeskError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message = "Internal server error"
