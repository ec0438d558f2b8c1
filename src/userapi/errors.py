"""Application exceptions and their HTTP mapping."""

from fastapi import status


class ServiceError(Exception):
    """Base class for errors turned into ``{"error": message}`` responses."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class ValidationError(ServiceError):
    """Raised when request input is malformed or missing."""

    status_code = status.HTTP_400_BAD_REQUEST


class ConflictError(ServiceError):
    """Raised when a write would duplicate a unique value."""

    status_code = status.HTTP_400_BAD_REQUEST


class UnauthorizedError(ServiceError):
    """Raised when a credential is missing, malformed or rejected."""

    status_code = status.HTTP_401_UNAUTHORIZED


class NotFoundError(ServiceError):
    """Raised when no record matches the given identifier."""

    status_code = status.HTTP_404_NOT_FOUND


class InternalError(ServiceError):
    """Raised when the store fails unexpectedly."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
