"""
Domain exceptions for bill-splitting sessions.

Every operation on a session either applies completely or raises one of
these before touching any state. Each class carries the HTTP status the API
layer answers with and a ``detail`` payload for the response body.
"""
from typing import Any, Dict, Optional


class SplitSessionError(Exception):
    """Base exception for session and settlement errors."""
    status_code = 400

    def __init__(self, message: str, extra: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.extra = extra or {}

    @property
    def detail(self) -> Any:
        if not self.extra:
            return self.message
        return {"message": self.message, **self.extra}


class NotFoundError(SplitSessionError):
    """Session, participant or bill item does not exist."""
    status_code = 404


class InvalidConfigurationError(SplitSessionError):
    """Bad participant count, wrong split mode or a second main booker."""
    status_code = 422


class OverClaimedError(SplitSessionError):
    """Requested claim quantity exceeds what is still available."""
    status_code = 409

    def __init__(self, message: str, available: Dict[str, int]):
        super().__init__(message, {"available": available})
        self.available = available


class SessionClosedError(SplitSessionError):
    """Session is completed and accepts no further joins, claims or payments."""
    status_code = 409


class NotMainBookerError(SplitSessionError):
    status_code = 403


class ConfirmationRequiredError(SplitSessionError):
    """Pay-full-outstanding was not confirmed against the current balance."""
    status_code = 409

    def __init__(self, message: str, summary: Dict[str, Any]):
        super().__init__(message, {"outstanding": summary})
        self.summary = summary


class ConcurrentUpdateError(SplitSessionError):
    """Session document changed between read and write (version conflict)."""
    status_code = 409


class AuthFailedError(SplitSessionError):
    """External bank authentication rejected the request."""
    status_code = 401


class TransientUnavailableError(SplitSessionError):
    """External collaborator (POS, bank) timed out; caller may retry."""
    status_code = 503
