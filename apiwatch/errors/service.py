"""Error stats service: records uncaught request errors and reports on them.

Shares the health aggregator's windowing, so error statistics use the same
timeframe grammar and the same read-path failure semantics.
"""

from __future__ import annotations

import logging
import sqlite3
import traceback
from typing import Any

from apiwatch.health.aggregator import Aggregator
from apiwatch.health.recorder import ResultRecorder
from apiwatch.health.store import HealthStore

from .exceptions import AggregationQueryError, AppError, NotFoundError
from .models import ErrorRecord

logger = logging.getLogger(__name__)


def error_record_from(
    exc: BaseException,
    *,
    endpoint: str | None = None,
    request_id: str | None = None,
    user_id: str | None = None,
) -> ErrorRecord:
    """Normalize any exception into an ErrorRecord."""
    if isinstance(exc, AppError):
        code, status, details = exc.code, exc.status, dict(exc.details)
        message = exc.message
        endpoint = endpoint or exc.endpoint
        request_id = request_id or exc.request_id
    else:
        code, status, details = "INTERNAL_ERROR", 500, {"exception": type(exc).__name__}
        message = str(exc) or type(exc).__name__
    return ErrorRecord(
        code=code,
        message=message,
        status=status,
        endpoint=endpoint,
        request_id=request_id,
        details=details,
        stack_trace="".join(traceback.format_exception(type(exc), exc, exc.__traceback__)),
        user_id=user_id,
    )


class ErrorStatsService:
    """Write and read paths for the system_errors store."""

    def __init__(self, recorder: ResultRecorder, aggregator: Aggregator, store: HealthStore) -> None:
        self.recorder = recorder
        self.aggregator = aggregator
        self.store = store

    def record_exception(
        self,
        exc: BaseException,
        *,
        endpoint: str | None = None,
        request_id: str | None = None,
        user_id: str | None = None,
    ) -> ErrorRecord | None:
        """Best-effort: returns the stored record, or None if it could not be built/stored."""
        try:
            record = error_record_from(
                exc, endpoint=endpoint, request_id=request_id, user_id=user_id,
            )
        except Exception:
            logger.exception("Could not build error record for %r", exc)
            return None
        return record if self.recorder.record_error(record) else None

    def get_error_stats(self, timeframe: str = "24h", limit: int | None = None) -> dict[str, Any]:
        return self.aggregator.get_error_stats(timeframe, limit)

    def get_error(self, error_id: str) -> ErrorRecord:
        try:
            record = self.store.get_error(error_id)
        except sqlite3.Error as e:
            raise AggregationQueryError("Failed to load error record", e) from e
        if record is None:
            raise NotFoundError(f"Error record {error_id} not found")
        return record
