"""Errors surfaced to API callers as ``{"message": ...}`` bodies."""

from typing import Optional


class ApiError(Exception):
    """Base error carrying an HTTP status code and a public message."""

    status_code = 500
    message = "Internal server error"

    def __init__(self, message: Optional[str] = None):
        if message is not None:
            self.message = message
        super().__init__(self.message)


class InvalidCredentials(ApiError):
    status_code = 401
    message = "Invalid credentials"


class Unauthorized(ApiError):
    status_code = 401
    message = "Unauthorized"


class Forbidden(ApiError):
    status_code = 403
    message = "Forbidden"


class NotFound(ApiError):
    status_code = 404
    message = "Not found"


class MethodNotSupported(ApiError):
    status_code = 405
    message = "Method not allowed"


class Conflict(ApiError):
    status_code = 409
    message = "Conflict"


class InvalidAction(ApiError):
    status_code = 400
    message = "Invalid action"


class InternalError(ApiError):
    status_code = 500
    message = "Internal server error"
