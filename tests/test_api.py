"""Tests for the FastAPI routes."""

from __future__ import annotations

from datetime import timedelta

import pytest
from fastapi.testclient import TestClient

from apiwatch.api.server import create_app
from apiwatch.api.server import settings as server_settings
from apiwatch.health.models import Status
from apiwatch.monitor import build_monitor


@pytest.fixture
def monitor(registry, store, ok_transport):
    return build_monitor(
        registry=registry, store=store, transport=ok_transport, probe_on_start=False,
    )


@pytest.fixture
def client(monitor) -> TestClient:
    # No lifespan: the monitor is attached directly and the scheduler stays idle
    app = create_app()
    monitor.attach(app.state)
    return TestClient(app)


# ── Status ───────────────────────────────────────────────────────────────────


class TestStatusAPI:
    def test_status(self, client: TestClient) -> None:
        resp = client.get("/api/status")
        assert resp.status_code == 200
        data = resp.json()
        assert data["status"] == "ok"
        assert data["scheduler_running"] is False
        assert resp.headers["X-Request-ID"]

    def test_request_id_echoed(self, client: TestClient) -> None:
        resp = client.get("/api/status", headers={"X-Request-ID": "abc-123"})
        assert resp.headers["X-Request-ID"] == "abc-123"

    def test_lifespan_starts_and_stops_scheduler(self, monitor, monkeypatch) -> None:
        monkeypatch.setattr(server_settings, "scheduler_enabled", True)
        app = create_app()
        monitor.attach(app.state)
        with TestClient(app) as client:
            assert client.get("/api/status").json()["scheduler_running"] is True
        assert not monitor.scheduler.is_running
        assert not hasattr(monitor.store, "close")


# ── Health ───────────────────────────────────────────────────────────────────


class TestHealthAPI:
    def test_summary(self, client: TestClient, add_check) -> None:
        add_check("/deals", "deals", response_time_ms=40)
        add_check("/deals", "deals", Status.FAIL, response_time_ms=60, status_code=500,
                  error_message="down")
        resp = client.get("/api/health/summary", params={"timeframe": "1h"})
        assert resp.status_code == 200
        data = resp.json()
        assert data["timeframe"] == "1h"
        assert data["overall"]["total_checks"] == 2
        assert data["overall"]["avg_response_time_ms"] == 50
        assert data["recent_failures"][0]["error_message"] == "down"

    def test_summary_default_timeframe(self, client: TestClient) -> None:
        data = client.get("/api/health/summary").json()
        assert data["timeframe"] == "24h"
        assert data["overall"]["total_checks"] == 0

    def test_invalid_timeframe_is_400_and_recorded(self, client: TestClient) -> None:
        resp = client.get("/api/health/summary", params={"timeframe": "forever"})
        assert resp.status_code == 400
        err = resp.json()["error"]
        assert err["code"] == "VALIDATION_ERROR"
        assert err["details"] == {"timeframe": "forever"}
        assert err["request_id"] == resp.headers["X-Request-ID"]

        stats = client.get("/api/errors/stats").json()
        assert stats["total_count"] == 1
        assert stats["code_stats"] == [{"code": "VALIDATION_ERROR", "count": 1}]
        assert stats["recent_errors"][0]["endpoint"] == "/api/health/summary"
        assert stats["recent_errors"][0]["request_id"] == err["request_id"]

    def test_history_filters(self, client: TestClient, add_check) -> None:
        add_check("/deals", "deals", age=timedelta(minutes=1))
        add_check("/carriers", "carriers")
        data = client.get("/api/health/history", params={"category": "deals"}).json()
        assert data["count"] == 1
        assert data["history"][0]["endpoint"] == "/deals"

    def test_history_limit_validated(self, client: TestClient) -> None:
        assert client.get("/api/health/history", params={"limit": 0}).status_code == 422

    def test_oversized_timeframe_is_400(self, client: TestClient) -> None:
        resp = client.get("/api/health/summary", params={"timeframe": "99999999w"})
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "VALIDATION_ERROR"
        stats = client.get("/api/errors/stats").json()
        assert stats["code_stats"] == [{"code": "VALIDATION_ERROR", "count": 1}]

    def test_oversized_offset_rejected(self, client: TestClient) -> None:
        resp = client.get("/api/health/checks", params={"offset": 10**30})
        assert resp.status_code == 422

    def test_checks_pagination(self, client: TestClient, add_check) -> None:
        for i in range(3):
            add_check(f"/e{i}", age=timedelta(minutes=i))
        data = client.get("/api/health/checks", params={"limit": 2, "offset": 1}).json()
        assert data["total"] == 3
        assert [c["endpoint"] for c in data["checks"]] == ["/e1", "/e2"]

    def test_get_and_delete_check(self, client: TestClient, add_check) -> None:
        check = add_check("/deals", "deals")
        resp = client.get(f"/api/health/checks/{check.id}")
        assert resp.status_code == 200
        assert resp.json()["endpoint"] == "/deals"

        assert client.delete(f"/api/health/checks/{check.id}").json() == {
            "deleted": 1, "id": check.id,
        }
        missing = client.get(f"/api/health/checks/{check.id}")
        assert missing.status_code == 404
        assert missing.json()["error"]["code"] == "NOT_FOUND_ERROR"
        assert client.delete(f"/api/health/checks/{check.id}").status_code == 404

    def test_delete_all_checks(self, client: TestClient, add_check, store) -> None:
        add_check("/a")
        add_check("/b")
        assert client.delete("/api/health/checks").json() == {"deleted": 2}
        assert store.count_checks() == 0

    def test_run_checks(self, client: TestClient, store) -> None:
        resp = client.post("/api/health/checks/run")
        assert resp.status_code == 200
        data = resp.json()
        assert data["status"] == "completed"
        assert data["summary"] == {
            "total": 3, "pass": 3, "fail": 0,
            "avg_response_time_ms": data["summary"]["avg_response_time_ms"],
        }
        assert set(data["categories"]) == {"carriers", "deals", "system"}
        assert store.count_checks() == 3

    def test_run_checks_while_running(self, client: TestClient, monitor) -> None:
        task = monitor.scheduler.get_task("probe-cycle")
        assert task.begin()  # simulate an in-flight cycle
        try:
            resp = client.post("/api/health/checks/run")
        finally:
            task.finish()
        assert resp.status_code == 202
        assert resp.json()["status"] == "already_running"

    def test_endpoints(self, client: TestClient) -> None:
        data = client.get("/api/health/endpoints").json()
        assert data["total"] == 4
        assert data["probeable"] == 3
        assert {e["method"] for e in data["categories"]["deals"]} == {"GET", "POST"}

    def test_retention_policy(self, client: TestClient) -> None:
        assert client.get("/api/health/retention").json() == {"health_checks": 7, "errors": 30}

        resp = client.put("/api/health/retention", json={"health_checks": 14})
        assert resp.status_code == 200
        assert resp.json() == {"health_checks": 14, "errors": 30}
        assert client.get("/api/health/retention").json()["health_checks"] == 14

    def test_retention_policy_rejects_zero(self, client: TestClient) -> None:
        resp = client.put("/api/health/retention", json={"errors": 0})
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "VALIDATION_ERROR"

    def test_scheduler_status(self, client: TestClient) -> None:
        data = client.get("/api/health/scheduler").json()
        assert data["running"] is False
        assert {t["name"] for t in data["tasks"]} == {
            "probe-cycle", "health-check-retention", "error-retention", "daily-error-report",
        }


# ── Errors ───────────────────────────────────────────────────────────────────


class TestErrorsAPI:
    def test_unexpected_exception_is_500_and_recorded(
        self, client: TestClient, monitor, monkeypatch,
    ) -> None:
        def explode(timeframe: str = "24h"):
            raise RuntimeError("aggregation exploded")

        monkeypatch.setattr(monitor.aggregator, "get_health_summary", explode)

        resp = client.get("/api/health/summary", headers={"X-User-Id": "user-9"})
        assert resp.status_code == 500
        err = resp.json()["error"]
        assert err["code"] == "INTERNAL_ERROR"
        assert err["message"] == "Internal server error"

        stats = client.get("/api/errors/stats").json()
        assert stats["total_count"] == 1
        recorded = stats["recent_errors"][0]
        assert recorded["user_id"] == "user-9"
        assert recorded["message"] == "aggregation exploded"

        detail = client.get(f"/api/errors/{recorded['id']}").json()
        assert detail["code"] == "INTERNAL_ERROR"
        assert "RuntimeError" in detail["stack_trace"]

    def test_error_stats_window(self, client: TestClient, add_error) -> None:
        add_error("DATABASE_ERROR", "/api/deals")
        add_error("DATABASE_ERROR", "/api/deals", age=timedelta(days=2))
        assert client.get("/api/errors/stats", params={"timeframe": "1h"}).json()["total_count"] == 1
        assert client.get("/api/errors/stats", params={"timeframe": "7d"}).json()["total_count"] == 2

    def test_missing_error(self, client: TestClient) -> None:
        resp = client.get("/api/errors/does-not-exist")
        assert resp.status_code == 404
