"""Typed errors raised by the journal services.

Services raise these instead of returning sentinel values so callers can
tell "no matches" apart from "failed to compute". The HTTP layer maps each
class to its status code and the ``{success, error, message}`` envelope.
"""

from typing import Any


class JournalError(Exception):
    """Base class for all journal errors."""

    http_status = 500
    error = "Internal error"

    def __init__(self, message: str, *, error: str | None = None, context: dict[str, Any] | None = None):
        self.message = message
        if error:
            self.error = error
        self.context = context or {}
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        return {"success": False, "error": self.error, "message": self.message}


class ValidationError(JournalError):
    """Caller supplied missing or invalid input. Never retried."""

    http_status = 400
    error = "Validation failed"


class NotFoundError(JournalError):
    http_status = 404
    error = "Not found"


class ConflictError(JournalError):
    """Request is valid but clashes with the current state of a record."""

    http_status = 409
    error = "Conflict"


class StoreError(JournalError):
    """Underlying SQLite failure, propagated without retry."""

    http_status = 500
    error = "Storage failure"

    def __init__(self, message: str, original_error: Exception | None = None, **kwargs):
        self.original_error = original_error
        super().__init__(message, **kwargs)
