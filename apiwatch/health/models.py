"""Health check data models: CheckResult rows and probe-cycle summaries."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def to_iso(dt: datetime) -> str:
    """Fixed-width UTC ISO-8601 so stored timestamps sort lexically."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).isoformat(timespec="microseconds")


class Status(str, Enum):
    PASS = "PASS"
    FAIL = "FAIL"


class FailureKind(str, Enum):
    """Why a probe failed. Stored alongside the row for inspection."""

    HTTP_STATUS = "http_status"
    TIMEOUT = "timeout"
    CONNECTION = "connection"
    AUTH_UNAVAILABLE = "auth_unavailable"
    ERROR = "error"


AUTH_UNAVAILABLE_MESSAGE = "authentication unavailable"


@dataclass
class CheckResult:
    """Outcome of a single probe. Immutable once persisted."""

    endpoint: str
    category: str
    status: Status
    response_time_ms: int | None = None
    status_code: int | None = None
    error_message: str | None = None
    method: str = "GET"
    failure: FailureKind | None = None
    response_data: dict[str, Any] | None = None
    id: str = ""
    created_at: str = ""

    @property
    def passed(self) -> bool:
        return self.status == Status.PASS

    def to_row(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "endpoint": self.endpoint,
            "category": self.category,
            "method": self.method,
            "status": self.status.value,
            "response_time_ms": self.response_time_ms,
            "status_code": self.status_code,
            "error_message": self.error_message,
            "failure": self.failure.value if self.failure else None,
            "response_data": (
                json.dumps(self.response_data) if self.response_data is not None else None
            ),
            "created_at": self.created_at,
        }

    def to_dict(self) -> dict[str, Any]:
        d = self.to_row()
        d["response_data"] = self.response_data
        return d

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "CheckResult":
        data = row.get("response_data")
        if isinstance(data, str):
            try:
                data = json.loads(data)
            except ValueError:
                data = None
        failure = row.get("failure")
        return cls(
            id=row["id"],
            endpoint=row["endpoint"],
            category=row["category"],
            method=row.get("method") or "GET",
            status=Status(row["status"]),
            response_time_ms=row.get("response_time_ms"),
            status_code=row.get("status_code"),
            error_message=row.get("error_message"),
            failure=FailureKind(failure) if failure else None,
            response_data=data,
            created_at=row.get("created_at", ""),
        )


@dataclass
class CategorySummary:
    total: int = 0
    passed: int = 0
    failed: int = 0
    avg_response_time_ms: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "total": self.total,
            "pass": self.passed,
            "fail": self.failed,
            "avg_response_time_ms": self.avg_response_time_ms,
        }


@dataclass
class BatchSummary:
    """Result of one probe cycle across the whole registry."""

    total: int = 0
    passed: int = 0
    failed: int = 0
    avg_response_time_ms: int | None = None
    categories: dict[str, CategorySummary] = field(default_factory=dict)
    results: list[CheckResult] = field(default_factory=list)

    @classmethod
    def fold(cls, results: list[CheckResult]) -> "BatchSummary":
        """Sequentially accumulate individual results into one summary."""
        summary = cls(results=list(results))
        timings: dict[str, list[int]] = {}
        all_timings: list[int] = []

        for r in results:
            cat = summary.categories.setdefault(r.category, CategorySummary())
            summary.total += 1
            cat.total += 1
            if r.passed:
                summary.passed += 1
                cat.passed += 1
            else:
                summary.failed += 1
                cat.failed += 1
            if r.response_time_ms is not None:
                timings.setdefault(r.category, []).append(r.response_time_ms)
                all_timings.append(r.response_time_ms)

        for name, values in timings.items():
            summary.categories[name].avg_response_time_ms = round(sum(values) / len(values))
        if all_timings:
            summary.avg_response_time_ms = round(sum(all_timings) / len(all_timings))
        return summary

    def to_dict(self) -> dict[str, Any]:
        return {
            "summary": {
                "total": self.total,
                "pass": self.passed,
                "fail": self.failed,
                "avg_response_time_ms": self.avg_response_time_ms,
            },
            "categories": {k: v.to_dict() for k, v in sorted(self.categories.items())},
            "endpoints": [r.to_dict() for r in self.results],
        }
