"""API routes for recorded request errors.

Endpoints:
  GET /api/errors/stats  counts by endpoint / code, recent errors, total
  GET /api/errors/{id}   single error record
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Query, Request

error_router = APIRouter(prefix="/errors", tags=["errors"])


@error_router.get("/stats")
def error_stats(
    timeframe: str = "24h",
    limit: int = Query(10, ge=1, le=500),
    request: Request = None,
) -> dict[str, Any]:
    return request.app.state.error_service.get_error_stats(timeframe, limit)


@error_router.get("/{error_id}")
def error_details(error_id: str, request: Request) -> dict[str, Any]:
    return request.app.state.error_service.get_error(error_id).to_dict()
