"""ErrorRecord: one row per unhandled request error."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any


@dataclass
class ErrorRecord:
    code: str
    message: str
    status: int = 500
    endpoint: str | None = None
    request_id: str | None = None
    details: dict[str, Any] = field(default_factory=dict)
    stack_trace: str | None = None
    user_id: str | None = None
    id: str = ""
    created_at: str = ""

    def to_row(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "code": self.code,
            "message": self.message,
            "status": self.status,
            "endpoint": self.endpoint,
            "request_id": self.request_id,
            "details": json.dumps(self.details, default=str),
            "stack_trace": self.stack_trace,
            "user_id": self.user_id,
            "created_at": self.created_at,
        }

    def to_dict(self) -> dict[str, Any]:
        d = self.to_row()
        d["details"] = self.details
        return d

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "ErrorRecord":
        details = row.get("details") or "{}"
        if isinstance(details, str):
            try:
                details = json.loads(details)
            except ValueError:
                details = {}
        return cls(
            id=row["id"],
            code=row["code"],
            message=row.get("message", ""),
            status=row.get("status", 500),
            endpoint=row.get("endpoint"),
            request_id=row.get("request_id"),
            details=details,
            stack_trace=row.get("stack_trace"),
            user_id=row.get("user_id"),
            created_at=row.get("created_at", ""),
        )
