"""Error Taxonomy - Exceptions raised by the stores and services.

Every error carries the HTTP status and the message shown to the caller,
so the web layer can render any of them with a single handler.
"""


class FitLogError(Exception):
    """Base class for all errors surfaced to callers."""

    status_code = 500
    default_message = "Internal error"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class InvalidInput(FitLogError):
    """Missing or malformed required fields."""

    status_code = 400
    default_message = "Required fields missing"


class Unauthenticated(FitLogError):
    """No session, unknown session, or expired session."""

    status_code = 401
    default_message = "Not authenticated"


class DuplicateUsername(FitLogError):
    status_code = 400
    default_message = "Username already exists"


class InvalidCredentials(FitLogError):
    """Unknown username or wrong password. Both render identically."""

    status_code = 401
    default_message = "Invalid credentials"


class NotFound(FitLogError):
    status_code = 404
    default_message = "Entry not found"


class StorageFailure(FitLogError):
    """Underlying persistence I/O failed. Details go to the log only."""

    status_code = 500
    default_message = "Storage failure"
