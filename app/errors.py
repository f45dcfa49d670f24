"""Typed errors raised by the service and data layers.

Every error carries the HTTP status it maps to. The boundary layer
(:mod:`app.responses`) turns them into the failure envelope.
"""

from fastapi import status


class AppError(Exception):
    """Base class for errors surfaced to API clients."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message = "Internal server error"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(AppError):
    """Malformed input."""

    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Validation failed"


class AuthError(AppError):
    """Missing or bad credentials or token."""

    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Unauthorized access"


class ForbiddenError(AppError):
    """Authenticated but not allowed to touch the resource."""

    status_code = status.HTTP_403_FORBIDDEN
    default_message = "You do not have permission to access this resource"


class NotFoundError(AppError):
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Resource not found"


class ConflictError(AppError):
    """Duplicate value of a unique field."""

    status_code = status.HTTP_409_CONFLICT
    default_message = "Resource already exists"


class ServerError(AppError):
    pass
