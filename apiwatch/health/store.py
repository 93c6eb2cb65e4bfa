"""SQLite storage for health check results, error records and runtime settings.

Every operation opens its own short-lived connection, runs one statement and
closes it, so the scheduler, probe workers and API requests can share the
database file without holding locks. All filters are bound parameters; only
whitelisted column names are ever interpolated into SQL.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

from apiwatch.config import settings
from apiwatch.errors.models import ErrorRecord

from .models import CheckResult, to_iso, utc_now

logger = logging.getLogger(__name__)

# Filterable / groupable columns, keyed by the name callers use
CHECK_FILTERS = {"category": "category", "endpoint": "endpoint", "status": "status"}
CHECK_GROUPINGS: dict[str, tuple[str, ...]] = {
    "overall": (),
    "category": ("category",),
    "endpoint": ("endpoint", "category"),
}
ERROR_GROUPINGS = {"endpoint": "endpoint", "code": "code"}

_SCHEMA = """
    CREATE TABLE IF NOT EXISTS health_checks (
        id               TEXT PRIMARY KEY,
        endpoint         TEXT NOT NULL,
        category         TEXT NOT NULL,
        method           TEXT NOT NULL DEFAULT 'GET',
        status           TEXT NOT NULL CHECK (status IN ('PASS', 'FAIL')),
        response_time_ms INTEGER,
        status_code      INTEGER,
        error_message    TEXT,
        failure          TEXT,
        response_data    TEXT,
        created_at       TEXT NOT NULL
    );

    CREATE INDEX IF NOT EXISTS idx_checks_created
        ON health_checks (created_at DESC);
    CREATE INDEX IF NOT EXISTS idx_checks_category
        ON health_checks (category, created_at DESC);
    CREATE INDEX IF NOT EXISTS idx_checks_endpoint
        ON health_checks (endpoint, created_at DESC);

    CREATE TABLE IF NOT EXISTS system_errors (
        id          TEXT PRIMARY KEY,
        code        TEXT NOT NULL,
        message     TEXT NOT NULL DEFAULT '',
        status      INTEGER NOT NULL DEFAULT 500,
        endpoint    TEXT,
        request_id  TEXT,
        details     TEXT NOT NULL DEFAULT '{}',
        stack_trace TEXT,
        user_id     TEXT,
        created_at  TEXT NOT NULL
    );

    CREATE INDEX IF NOT EXISTS idx_errors_created
        ON system_errors (created_at DESC);

    CREATE TABLE IF NOT EXISTS settings (
        category   TEXT NOT NULL,
        key        TEXT NOT NULL,
        value      TEXT NOT NULL,
        updated_at TEXT NOT NULL,
        PRIMARY KEY (category, key)
    );
"""


def _where(since: str, filters: dict[str, Any] | None = None) -> tuple[str, list[Any]]:
    """Build a WHERE clause for a time window plus whitelisted equality filters."""
    clauses = ["created_at >= ?"]
    params: list[Any] = [since]
    for name, value in (filters or {}).items():
        if value is None:
            continue
        column = CHECK_FILTERS.get(name)
        if column is None:
            raise ValueError(f"Unsupported filter: {name}")
        clauses.append(f"{column} = ?")
        params.append(value)
    return " AND ".join(clauses), params


class HealthStore:
    """SQLite-backed storage shared by recorder, aggregator and sweeper."""

    def __init__(self, db_path: Path | str | None = None) -> None:
        self._db_path = Path(db_path or settings.db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    @property
    def path(self) -> Path:
        return self._db_path

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        conn = sqlite3.connect(str(self._db_path), timeout=10)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        finally:
            conn.close()

    def _init_db(self) -> None:
        with self._connect() as conn:
            conn.execute("PRAGMA journal_mode=WAL")
            conn.executescript(_SCHEMA)

    # ── Inserts ───────────────────────────────────────────────────────────

    def insert_check(self, result: CheckResult) -> None:
        with self._connect() as conn:
            conn.execute("""
                INSERT INTO health_checks (id, endpoint, category, method, status,
                                           response_time_ms, status_code, error_message,
                                           failure, response_data, created_at)
                VALUES (:id, :endpoint, :category, :method, :status,
                        :response_time_ms, :status_code, :error_message,
                        :failure, :response_data, :created_at)
            """, result.to_row())

    def insert_error(self, record: ErrorRecord) -> None:
        with self._connect() as conn:
            conn.execute("""
                INSERT INTO system_errors (id, code, message, status, endpoint,
                                           request_id, details, stack_trace,
                                           user_id, created_at)
                VALUES (:id, :code, :message, :status, :endpoint,
                        :request_id, :details, :stack_trace,
                        :user_id, :created_at)
            """, record.to_row())

    # ── Health check reads ────────────────────────────────────────────────

    def get_check(self, check_id: str) -> CheckResult | None:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM health_checks WHERE id = ?", (check_id,),
            ).fetchone()
        return CheckResult.from_row(dict(row)) if row else None

    def list_checks(self, limit: int = 100, offset: int = 0) -> list[CheckResult]:
        """Raw rows, newest first, paginated."""
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM health_checks ORDER BY created_at DESC, id LIMIT ? OFFSET ?",
                (limit, offset),
            ).fetchall()
        return [CheckResult.from_row(dict(r)) for r in rows]

    def count_checks(self) -> int:
        with self._connect() as conn:
            return conn.execute("SELECT COUNT(*) FROM health_checks").fetchone()[0]

    def query_checks(
        self,
        since: str,
        *,
        category: str | None = None,
        endpoint: str | None = None,
        status: str | None = None,
        limit: int = 100,
    ) -> list[CheckResult]:
        """Rows inside the window matching the optional filters, newest first."""
        where, params = _where(
            since, {"category": category, "endpoint": endpoint, "status": status},
        )
        with self._connect() as conn:
            rows = conn.execute(
                f"SELECT * FROM health_checks WHERE {where} "
                "ORDER BY created_at DESC LIMIT ?",
                (*params, limit),
            ).fetchall()
        return [CheckResult.from_row(dict(r)) for r in rows]

    def check_stats(self, since: str, group_by: str = "overall") -> list[dict[str, Any]]:
        """Pass/fail counts and mean latency inside the window, optionally grouped."""
        columns = CHECK_GROUPINGS.get(group_by)
        if columns is None:
            raise ValueError(f"Unsupported grouping: {group_by}")

        select = "".join(f"{c}, " for c in columns)
        group = f" GROUP BY {', '.join(columns)} ORDER BY {', '.join(columns)}" if columns else ""
        with self._connect() as conn:
            rows = conn.execute(
                f"SELECT {select}"
                "COUNT(*) AS total_checks, "
                "SUM(CASE WHEN status = 'PASS' THEN 1 ELSE 0 END) AS passed_checks, "
                "SUM(CASE WHEN status = 'FAIL' THEN 1 ELSE 0 END) AS failed_checks, "
                "AVG(response_time_ms) AS avg_response_time_ms, "
                "MAX(created_at) AS last_check "
                f"FROM health_checks WHERE created_at >= ?{group}",
                (since,),
            ).fetchall()
        return [dict(r) for r in rows]

    # ── Health check deletes ──────────────────────────────────────────────

    def delete_check(self, check_id: str) -> bool:
        with self._connect() as conn:
            cursor = conn.execute("DELETE FROM health_checks WHERE id = ?", (check_id,))
        return cursor.rowcount > 0

    def delete_all_checks(self) -> int:
        with self._connect() as conn:
            cursor = conn.execute("DELETE FROM health_checks")
        return cursor.rowcount

    def delete_checks_before(self, cutoff: str) -> int:
        with self._connect() as conn:
            cursor = conn.execute(
                "DELETE FROM health_checks WHERE created_at < ?", (cutoff,),
            )
        return cursor.rowcount

    # ── Error records ─────────────────────────────────────────────────────

    def get_error(self, error_id: str) -> ErrorRecord | None:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM system_errors WHERE id = ?", (error_id,),
            ).fetchone()
        return ErrorRecord.from_row(dict(row)) if row else None

    def error_counts(self, since: str, group_by: str, limit: int) -> list[dict[str, Any]]:
        """Error counts per endpoint or code, most frequent first."""
        column = ERROR_GROUPINGS.get(group_by)
        if column is None:
            raise ValueError(f"Unsupported grouping: {group_by}")
        with self._connect() as conn:
            rows = conn.execute(
                f"SELECT {column}, COUNT(*) AS count, "
                "MIN(created_at) AS first_occurrence, "
                "MAX(created_at) AS last_occurrence "
                "FROM system_errors WHERE created_at >= ? "
                f"GROUP BY {column} ORDER BY count DESC, {column} LIMIT ?",
                (since, limit),
            ).fetchall()
        return [dict(r) for r in rows]

    def recent_errors(self, since: str, limit: int) -> list[ErrorRecord]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM system_errors WHERE created_at >= ? "
                "ORDER BY created_at DESC LIMIT ?",
                (since, limit),
            ).fetchall()
        return [ErrorRecord.from_row(dict(r)) for r in rows]

    def count_errors(self, since: str) -> int:
        with self._connect() as conn:
            return conn.execute(
                "SELECT COUNT(*) FROM system_errors WHERE created_at >= ?", (since,),
            ).fetchone()[0]

    def delete_errors_before(self, cutoff: str) -> int:
        with self._connect() as conn:
            cursor = conn.execute(
                "DELETE FROM system_errors WHERE created_at < ?", (cutoff,),
            )
        return cursor.rowcount

    # ── Settings ──────────────────────────────────────────────────────────

    def get_setting(self, category: str, key: str) -> Any:
        """Return the JSON-decoded setting value, or None when unset."""
        with self._connect() as conn:
            row = conn.execute(
                "SELECT value FROM settings WHERE category = ? AND key = ?",
                (category, key),
            ).fetchone()
        if not row:
            return None
        try:
            return json.loads(row["value"])
        except ValueError:
            logger.warning("Ignoring non-JSON setting %s.%s", category, key)
            return None

    def set_setting(self, category: str, key: str, value: Any) -> None:
        with self._connect() as conn:
            conn.execute("""
                INSERT INTO settings (category, key, value, updated_at)
                VALUES (?, ?, ?, ?)
                ON CONFLICT (category, key)
                DO UPDATE SET value = excluded.value, updated_at = excluded.updated_at
            """, (category, key, json.dumps(value), to_iso(utc_now())))
