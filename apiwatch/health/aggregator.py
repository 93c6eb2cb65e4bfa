"""Aggregator: windowed summaries over health checks and error records.

Nothing is cached: every call re-queries the store, so results always reflect
the rows present at call time. Read failures propagate to the caller as
AggregationQueryError because there is no sensible fallback for a read.
"""

from __future__ import annotations

import logging
import re
import sqlite3
from collections.abc import Callable
from datetime import datetime, timedelta
from typing import Any

from apiwatch.errors.exceptions import AggregationQueryError, InvalidTimeframe

from .models import Status, to_iso, utc_now
from .store import HealthStore

logger = logging.getLogger(__name__)

_TIMEFRAME_RE = re.compile(r"^\s*(\d+)\s*([a-z]+)\s*$", re.IGNORECASE)
_UNITS = {
    "m": "minutes", "min": "minutes", "mins": "minutes", "minute": "minutes", "minutes": "minutes",
    "h": "hours", "hr": "hours", "hrs": "hours", "hour": "hours", "hours": "hours",
    "d": "days", "day": "days", "days": "days",
    "w": "weeks", "week": "weeks", "weeks": "weeks",
}


# Longest window a caller may ask for
MAX_TIMEFRAME = timedelta(days=3650)


def parse_timeframe(timeframe: str | timedelta) -> timedelta:
    """Turn '30m' / '24h' / '7d' / '2w' into a timedelta."""
    if isinstance(timeframe, timedelta):
        if timeframe <= timedelta(0) or timeframe > MAX_TIMEFRAME:
            raise InvalidTimeframe(str(timeframe))
        return timeframe
    match = _TIMEFRAME_RE.match(timeframe or "")
    if not match:
        raise InvalidTimeframe(timeframe)
    amount, unit = int(match.group(1)), _UNITS.get(match.group(2).lower())
    if unit is None or amount <= 0:
        raise InvalidTimeframe(timeframe)
    try:
        delta = timedelta(**{unit: amount})
    except OverflowError:
        raise InvalidTimeframe(timeframe) from None
    if delta > MAX_TIMEFRAME:
        raise InvalidTimeframe(timeframe)
    return delta


def _stats_row(row: dict[str, Any]) -> dict[str, Any]:
    avg = row.get("avg_response_time_ms")
    return {
        "total_checks": row.get("total_checks") or 0,
        "passed_checks": row.get("passed_checks") or 0,
        "failed_checks": row.get("failed_checks") or 0,
        "avg_response_time_ms": round(avg) if avg is not None else None,
    }


class Aggregator:
    """Computes health summaries, history and error statistics on demand."""

    def __init__(
        self,
        store: HealthStore,
        recent_limit: int = 10,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.store = store
        self.recent_limit = recent_limit
        self._clock = clock

    def window_start(self, timeframe: str | timedelta) -> str:
        """Oldest created_at still inside the trailing window."""
        return to_iso(self._clock() - parse_timeframe(timeframe))

    # ── Health checks ─────────────────────────────────────────────────────

    def get_health_summary(self, timeframe: str = "24h") -> dict[str, Any]:
        """Overall, per-category and per-endpoint stats plus recent failures."""
        since = self.window_start(timeframe)
        try:
            overall = self.store.check_stats(since)
            categories = self.store.check_stats(since, group_by="category")
            endpoints = self.store.check_stats(since, group_by="endpoint")
            failures = self.store.query_checks(
                since, status=Status.FAIL.value, limit=self.recent_limit,
            )
        except sqlite3.Error as e:
            logger.error("Health summary query failed: %s", e)
            raise AggregationQueryError("Failed to compute health summary", e) from e

        return {
            "timeframe": timeframe,
            "overall": _stats_row(overall[0] if overall else {}),
            "categories": [
                {"category": r["category"], **_stats_row(r)} for r in categories
            ],
            "endpoints": [
                {
                    "endpoint": r["endpoint"],
                    "category": r["category"],
                    **_stats_row(r),
                    "last_check": r["last_check"],
                }
                for r in endpoints
            ],
            "recent_failures": [
                {
                    "id": f.id,
                    "endpoint": f.endpoint,
                    "category": f.category,
                    "status_code": f.status_code,
                    "error_message": f.error_message,
                    "failure": f.failure.value if f.failure else None,
                    "created_at": f.created_at,
                }
                for f in failures
            ],
        }

    def get_health_history(
        self,
        timeframe: str = "24h",
        category: str | None = None,
        endpoint: str | None = None,
        limit: int = 100,
    ) -> list[dict[str, Any]]:
        """Individual check rows inside the window, newest first."""
        since = self.window_start(timeframe)
        try:
            rows = self.store.query_checks(
                since, category=category, endpoint=endpoint, limit=limit,
            )
        except sqlite3.Error as e:
            logger.error("Health history query failed: %s", e)
            raise AggregationQueryError("Failed to load health history", e) from e
        return [r.to_dict() for r in rows]

    # ── Errors ────────────────────────────────────────────────────────────

    def get_error_stats(self, timeframe: str = "24h", limit: int | None = None) -> dict[str, Any]:
        """Counts by endpoint and code, most recent errors, total in window."""
        limit = limit or self.recent_limit
        since = self.window_start(timeframe)
        try:
            by_endpoint = self.store.error_counts(since, "endpoint", limit)
            by_code = self.store.error_counts(since, "code", limit)
            recent = self.store.recent_errors(since, limit)
            total = self.store.count_errors(since)
        except sqlite3.Error as e:
            logger.error("Error stats query failed: %s", e)
            raise AggregationQueryError("Failed to compute error statistics", e) from e

        return {
            "timeframe": timeframe,
            "endpoint_stats": by_endpoint,
            "code_stats": [{"code": r["code"], "count": r["count"]} for r in by_code],
            "recent_errors": [
                {
                    "id": e.id,
                    "code": e.code,
                    "message": e.message,
                    "status": e.status,
                    "endpoint": e.endpoint,
                    "request_id": e.request_id,
                    "user_id": e.user_id,
                    "created_at": e.created_at,
                }
                for e in recent
            ],
            "total_count": total,
        }
