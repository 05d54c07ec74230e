"""Error taxonomy for acknowledgment operations.

Every error carries the HTTP status the API layer answers with, so routes can
raise domain errors directly and a single exception handler shapes the response.
"""

from typing import Any, Dict, Optional


class AcknowledgmentError(Exception):
    """Base class for all acknowledgment service errors."""

    status_code = 500

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class InvalidInput(AcknowledgmentError):
    """Malformed identifier or request body."""
    status_code = 400


class Unauthenticated(AcknowledgmentError):
    """No resolvable caller identity."""
    status_code = 401


class PermissionDenied(AcknowledgmentError):
    """Caller lacks the role required for the operation."""
    status_code = 403


class NotFound(AcknowledgmentError):
    status_code = 404


class InvalidState(AcknowledgmentError):
    """A business rule forbids the operation (e.g. document not approved)."""
    status_code = 400


class InternalError(AcknowledgmentError):
    """Storage failure or unexpected exception, surfaced with a generic message."""
    status_code = 500

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.cause = cause


class RosterSyncError(AcknowledgmentError):
    """The staff directory could not be read or the roster could not be replaced."""
    status_code = 500
