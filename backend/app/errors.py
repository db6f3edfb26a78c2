"""Error taxonomy shared by the live layer and the REST routers.

Every failure that can be reported back to a client derives from
``RealtimeError``. The WebSocket loop turns these into scoped error
events (``groupError``, ``privateChatError``, ``chatError``) and keeps the
connection open; REST routers turn them into ``HTTPException``s using the
carried ``status_code``.
"""
from fastapi import HTTPException


class RealtimeError(Exception):
    """Base exception for realtime and notification errors."""

    code = "error"

    def __init__(self, message: str, status_code: int = 500):
        self.message = message
        self.status_code = status_code
        super().__init__(message)


class UnauthenticatedError(RealtimeError):
    """Raised when no bearer credential was presented."""

    code = "unauthenticated"

    def __init__(self, message: str = "Authentication error: No token provided"):
        super().__init__(message, status_code=401)


class InvalidCredentialError(RealtimeError):
    """Raised when a credential is malformed, expired or points at a missing user."""

    code = "invalid_credential"

    def __init__(self, message: str = "Authentication error: Invalid token"):
        super().__init__(message, status_code=401)


class NotFoundError(RealtimeError):
    code = "not_found"

    def __init__(self, message: str = "Not found"):
        super().__init__(message, status_code=404)


class ForbiddenError(RealtimeError):
    code = "forbidden"

    def __init__(self, message: str = "Forbidden"):
        super().__init__(message, status_code=403)


class InvalidInputError(RealtimeError):
    code = "invalid_input"

    def __init__(self, message: str = "Invalid input"):
        super().__init__(message, status_code=400)


class InvalidTargetError(RealtimeError):
    """Raised when a user targets themselves (private message, friend request)."""

    code = "invalid_target"

    def __init__(self, message: str = "You cannot target yourself"):
        super().__init__(message, status_code=400)


class PersistenceError(RealtimeError):
    """Raised when the document store is unavailable or rejects a write."""

    code = "persistence_failure"

    def __init__(self, message: str = "Document store unavailable"):
        super().__init__(message, status_code=503)


def to_http_exception(exc: RealtimeError) -> HTTPException:
    """Convert a realtime error into the equivalent HTTP error."""
    return HTTPException(status_code=exc.status_code, detail=exc.message)
