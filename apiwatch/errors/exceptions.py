"""Application error taxonomy.

Every error carries the HTTP status intended for the client and a stable
``code`` tag used for grouping in error statistics.
"""

from __future__ import annotations

from typing import Any


class AppError(Exception):
    """Base class for errors that map onto an HTTP response."""

    status: int = 500
    code: str = "INTERNAL_ERROR"

    def __init__(
        self,
        message: str,
        *,
        status: int | None = None,
        code: str | None = None,
        details: dict[str, Any] | None = None,
        endpoint: str | None = None,
        request_id: str | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        if status is not None:
            self.status = status
        if code is not None:
            self.code = code
        self.details = details or {}
        self.endpoint = endpoint
        self.request_id = request_id


class ValidationError(AppError):
    status = 400
    code = "VALIDATION_ERROR"

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message, details=details)


class AuthenticationError(AppError):
    status = 401
    code = "AUTHENTICATION_ERROR"

    def __init__(self, message: str = "Authentication required") -> None:
        super().__init__(message)


class AuthorizationError(AppError):
    status = 403
    code = "AUTHORIZATION_ERROR"

    def __init__(self, message: str = "Insufficient permissions") -> None:
        super().__init__(message)


class NotFoundError(AppError):
    status = 404
    code = "NOT_FOUND_ERROR"

    def __init__(self, message: str = "Resource not found") -> None:
        super().__init__(message)


class DatabaseError(AppError):
    status = 500
    code = "DATABASE_ERROR"

    def __init__(self, message: str, original: BaseException | None = None) -> None:
        details = {"original_error": str(original)} if original else {}
        super().__init__(message, details=details)


class ApiError(AppError):
    code = "API_ERROR"

    def __init__(
        self, message: str, status: int = 500, original: BaseException | None = None,
    ) -> None:
        details = {"original_error": str(original)} if original else {}
        super().__init__(message, status=status, details=details)


# ── Subsystem errors ─────────────────────────────────────────────────────────


class InvalidTimeframe(ValidationError, ValueError):
    """Raised for a timeframe string that is not ``<n><m|h|d|w>``."""

    def __init__(self, timeframe: str) -> None:
        super().__init__(
            f"Invalid timeframe: {timeframe!r} (expected e.g. '30m', '24h', '7d', '2w')",
            details={"timeframe": timeframe},
        )


class AggregationQueryError(DatabaseError):
    """A read against the health or error store failed."""
