"""Error subsystem: taxonomy, error records, stats service."""

from .exceptions import (
    AggregationQueryError,
    ApiError,
    AppError,
    AuthenticationError,
    AuthorizationError,
    DatabaseError,
    InvalidTimeframe,
    NotFoundError,
    ValidationError,
)
from .models import ErrorRecord

__all__ = [
    "AggregationQueryError",
    "ApiError",
    "AppError",
    "AuthenticationError",
    "AuthorizationError",
    "DatabaseError",
    "ErrorRecord",
    "InvalidTimeframe",
    "NotFoundError",
    "ValidationError",
]
