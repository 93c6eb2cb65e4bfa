"""Shared test fixtures."""

from __future__ import annotations

from collections.abc import Callable
from datetime import timedelta
from pathlib import Path

import httpx
import pytest

from apiwatch.errors.models import ErrorRecord
from apiwatch.health.models import CheckResult, Status, to_iso, utc_now
from apiwatch.health.recorder import ResultRecorder
from apiwatch.health.store import HealthStore
from apiwatch.registry.endpoints import EndpointDescriptor, EndpointRegistry

BASE_URL = "http://monitored.test/api"


@pytest.fixture
def store(tmp_path: Path) -> HealthStore:
    """HealthStore backed by a temp SQLite file."""
    return HealthStore(db_path=tmp_path / "test_health.db")


@pytest.fixture
def recorder(store: HealthStore) -> ResultRecorder:
    return ResultRecorder(store)


@pytest.fixture
def registry() -> EndpointRegistry:
    return EndpointRegistry(endpoints=[
        EndpointDescriptor("/system/health", "GET", "system", False, key="health"),
        EndpointDescriptor("/deals", "GET", "deals", True, key="getDeals"),
        EndpointDescriptor("/deals", "POST", "deals", True, key="createDeal"),
        EndpointDescriptor("/carriers", "GET", "carriers", True, key="getCarriers"),
    ])


@pytest.fixture
def ok_transport() -> httpx.MockTransport:
    """Monitored API where login works and every route returns 200."""

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("/auth/login"):
            return httpx.Response(200, json={"token": "probe-token"})
        return httpx.Response(200, json={"status": "ok"})

    return httpx.MockTransport(handler)


@pytest.fixture
def add_check(store: HealthStore) -> Callable[..., CheckResult]:
    """Insert a CheckResult aged ``age`` before now."""
    counter = {"n": 0}

    def _add(
        endpoint: str = "/system/health",
        category: str = "system",
        status: Status = Status.PASS,
        age: timedelta = timedelta(0),
        response_time_ms: int | None = 10,
        status_code: int | None = 200,
        error_message: str | None = None,
    ) -> CheckResult:
        counter["n"] += 1
        result = CheckResult(
            endpoint=endpoint,
            category=category,
            status=status,
            response_time_ms=response_time_ms,
            status_code=status_code,
            error_message=error_message,
            id=f"chk-{counter['n']}",
            created_at=to_iso(utc_now() - age),
        )
        store.insert_check(result)
        return result

    return _add


@pytest.fixture
def add_error(store: HealthStore) -> Callable[..., ErrorRecord]:
    """Insert an ErrorRecord aged ``age`` before now."""
    counter = {"n": 0}

    def _add(
        code: str = "INTERNAL_ERROR",
        endpoint: str | None = "/api/deals",
        age: timedelta = timedelta(0),
        message: str = "boom",
        status: int = 500,
    ) -> ErrorRecord:
        counter["n"] += 1
        record = ErrorRecord(
            code=code,
            message=message,
            status=status,
            endpoint=endpoint,
            request_id=f"req-{counter['n']}",
            id=f"err-{counter['n']}",
            created_at=to_iso(utc_now() - age),
        )
        store.insert_error(record)
        return record

    return _add
