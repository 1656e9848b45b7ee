"""
Domain Error Taxonomy

Every service operation fails fast with one of these typed errors. The API
layer maps them to HTTP responses through ``status_code``; nothing in the
services layer knows about HTTP beyond that attribute.
"""

from typing import Optional


class TablesideError(Exception):
    """Base class for all expected failures."""

    status_code: int = 500
    error: str = "Internal Server Error"

    def __init__(self, message: str, detail: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.detail = detail

    def __str__(self) -> str:
        return self.message


class ValidationError(TablesideError):
    """Missing or malformed input. The caller must resubmit."""
    status_code = 400
    error = "Bad Request"


class InvalidCustomizationError(ValidationError):
    """A customization does not match the product's configured options."""


class InvalidTransitionError(TablesideError):
    """Order status change outside the allowed transition table."""
    status_code = 400
    error = "Invalid Transition"

    def __init__(self, current: str, requested: str):
        super().__init__(f"Cannot transition from {current} to {requested}")
        self.current = current
        self.requested = requested


class UnavailableError(TablesideError):
    """The product exists but is not currently offered."""
    status_code = 400
    error = "Unavailable"


class AuthenticationError(TablesideError):
    status_code = 401
    error = "Unauthorized"


class PermissionDeniedError(TablesideError):
    status_code = 403
    error = "Forbidden"


class NotFoundError(TablesideError):
    """Entity absent, or scoped away from the caller."""
    status_code = 404
    error = "Not Found"


class ConflictError(TablesideError):
    """Uniqueness or dependent-record conflict."""
    status_code = 409
    error = "Conflict"


class UnexpectedError(TablesideError):
    """Storage or infrastructure failure. Never retried by the core."""
    status_code = 500
    error = "Internal Server Error"
