"""
Domain errors raised by the service layer.

Each error carries the HTTP status it maps to; the handlers registered in
app.main turn them into ``{"detail": message}`` responses.
"""
from fastapi import status


class PumpkinPatchError(Exception):
    """Base class for every error the service layer raises on purpose."""
    status_code: int = status.HTTP_400_BAD_REQUEST
    default_message: str = "Request failed"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class NotAuthenticated(PumpkinPatchError):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "You must be logged in to do that"


class NotAuthorized(PumpkinPatchError):
    status_code = status.HTTP_403_FORBIDDEN
    default_message = "Admin access required"


class NotFound(PumpkinPatchError):
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Pumpkin not found"


class InvalidTransition(PumpkinPatchError):
    status_code = status.HTTP_409_CONFLICT
    default_message = "Status change not allowed"


class Conflict(PumpkinPatchError):
    """A transaction lost a race. Retried by run_transaction, never shown to callers."""
    status_code = status.HTTP_409_CONFLICT
    default_message = "Concurrent update detected"


class TransientFailure(PumpkinPatchError):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    default_message = "The server is busy, please try again"


class StoreUnavailable(PumpkinPatchError):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    default_message = "Database unavailable"
