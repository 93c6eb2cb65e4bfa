"""API routes for health checks.

Endpoints:
  GET    /api/health/summary      overall / per-category / per-endpoint stats
  GET    /api/health/history      individual results in a window, filterable
  GET    /api/health/checks       raw results, paginated
  GET    /api/health/checks/{id}  single result
  POST   /api/health/checks/run   trigger an immediate probe cycle
  DELETE /api/health/checks/{id}  delete one stored result
  DELETE /api/health/checks       delete all stored results
  GET    /api/health/endpoints    registry grouped by category
  GET    /api/health/retention    effective retention policy
  PUT    /api/health/retention    persist a retention override
  GET    /api/health/scheduler    scheduled task status

Callers are assumed to be authorized by the fronting request layer.
"""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Query, Request, Response
from pydantic import BaseModel

from apiwatch.errors.exceptions import NotFoundError, ValidationError

logger = logging.getLogger(__name__)

health_router = APIRouter(prefix="/health", tags=["health"])


class RetentionBody(BaseModel):
    health_checks: int | None = None
    errors: int | None = None


# ── Aggregates ───────────────────────────────────────────────────────────────


@health_router.get("/summary")
def health_summary(timeframe: str = "24h", request: Request = None) -> dict[str, Any]:
    """Windowed health summary."""
    return request.app.state.aggregator.get_health_summary(timeframe)


@health_router.get("/history")
def health_history(
    timeframe: str = "24h",
    category: str | None = None,
    endpoint: str | None = None,
    limit: int = Query(100, ge=1, le=1000),
    request: Request = None,
) -> dict[str, Any]:
    """Individual check results, newest first."""
    history = request.app.state.aggregator.get_health_history(
        timeframe=timeframe, category=category, endpoint=endpoint, limit=limit,
    )
    return {"timeframe": timeframe, "count": len(history), "history": history}


# ── Raw results ──────────────────────────────────────────────────────────────


@health_router.get("/checks")
def list_checks(
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0, le=1_000_000),
    request: Request = None,
) -> dict[str, Any]:
    store = request.app.state.health_store
    checks = store.list_checks(limit=limit, offset=offset)
    return {
        "checks": [c.to_dict() for c in checks],
        "total": store.count_checks(),
        "limit": limit,
        "offset": offset,
    }


@health_router.post("/checks/run")
async def run_checks(request: Request, response: Response) -> dict[str, Any]:
    """Run a probe cycle now. Dropped (202) if one is already in flight."""
    summary = await request.app.state.health_scheduler.trigger_probe_cycle()
    if summary is None:
        response.status_code = 202
        return {"status": "already_running", "message": "A probe cycle is already in progress"}
    return {"status": "completed", **summary.to_dict()}


@health_router.get("/checks/{check_id}")
def get_check(check_id: str, request: Request) -> dict[str, Any]:
    check = request.app.state.health_store.get_check(check_id)
    if check is None:
        raise NotFoundError(f"Health check {check_id} not found")
    return check.to_dict()


@health_router.delete("/checks/{check_id}")
def delete_check(check_id: str, request: Request) -> dict[str, Any]:
    if not request.app.state.health_store.delete_check(check_id):
        raise NotFoundError(f"Health check {check_id} not found")
    logger.info("Deleted health check %s", check_id)
    return {"deleted": 1, "id": check_id}


@health_router.delete("/checks")
def delete_all_checks(request: Request) -> dict[str, Any]:
    deleted = request.app.state.health_store.delete_all_checks()
    logger.info("Deleted all %d stored health checks", deleted)
    return {"deleted": deleted}


# ── Registry / policy / scheduler ────────────────────────────────────────────


@health_router.get("/endpoints")
def list_endpoints(request: Request) -> dict[str, Any]:
    registry = request.app.state.registry
    return {
        "categories": registry.to_dict(),
        "total": len(registry.all_endpoints()),
        "probeable": len(registry.list_get_endpoints()),
    }


@health_router.get("/retention")
def get_retention(request: Request) -> dict[str, Any]:
    return request.app.state.sweeper.get_policy()


@health_router.put("/retention")
def update_retention(body: RetentionBody, request: Request) -> dict[str, Any]:
    try:
        return request.app.state.sweeper.set_policy(
            health_checks=body.health_checks, errors=body.errors,
        )
    except ValueError as e:
        raise ValidationError(str(e), details=body.model_dump()) from e


@health_router.get("/scheduler")
def scheduler_status(request: Request) -> dict[str, Any]:
    return request.app.state.health_scheduler.status()
