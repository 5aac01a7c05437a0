"""Custom exception hierarchy for livedraw.

Provides structured error types that the centralized error handler
translates into consistent JSON responses, and that the WebSocket chat
path translates into error frames.
"""

from __future__ import annotations


class LiveDrawError(Exception):
    """Base exception for all livedraw errors."""

    status_code: int = 500
    error_type: str = "internal_error"

    def __init__(self, message: str = "An internal error occurred") -> None:
        self.message = message
        super().__init__(message)


class StorageError(LiveDrawError):
    """Database or storage layer failure."""

    status_code = 503
    error_type = "storage_error"


class NotFoundError(LiveDrawError):
    """Requested resource was not found."""

    status_code = 404
    error_type = "not_found"


class ValidationError(LiveDrawError):
    """Input validation failure beyond Pydantic constraints."""

    status_code = 400
    error_type = "validation_error"


class AuthenticationError(LiveDrawError):
    """Identity token missing, malformed, or rejected by the verifier."""

    status_code = 401
    error_type = "authentication_error"


class BannedError(LiveDrawError):
    """Sender is on the chat ban list."""

    status_code = 403
    error_type = "banned"

    def __init__(self, message: str = "You have been banned from the chat") -> None:
        super().__init__(message)
