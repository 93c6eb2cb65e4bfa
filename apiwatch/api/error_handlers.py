"""Request-level error handling: request ids, JSON error bodies, error recording.

Every error that escapes a route becomes a standard body:

    {"error": {"code": ..., "message": ..., "request_id": ..., "details": ...}}

and is recorded in the error store (best-effort) so it shows up in
``/api/errors/stats``. ``details`` are hidden in production.
"""

from __future__ import annotations

import logging
import uuid
from typing import Any

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool

from apiwatch.config import settings
from apiwatch.errors.exceptions import AppError

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"


def _user_id(request: Request) -> str | None:
    # Set by the fronting auth layer; this service never authenticates callers
    return getattr(request.state, "user_id", None) or request.headers.get("X-User-Id")


def _request_id(request: Request) -> str:
    rid = getattr(request.state, "request_id", None)
    if not rid:
        rid = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
        request.state.request_id = rid
    return rid


async def _record_and_respond(request: Request, exc: Exception) -> JSONResponse:
    request_id = _request_id(request)
    if isinstance(exc, AppError):
        status, code, message, details = exc.status, exc.code, exc.message, exc.details
    else:
        status, code, message, details = 500, "INTERNAL_ERROR", "Internal server error", {}

    if status >= 500:
        logger.error(
            "[ERROR] %s - %s - %s (%s)", request_id, code, exc, request.url.path,
            exc_info=exc,
        )
    else:
        logger.warning("[ERROR] %s - %s - %s (%s)", request_id, code, message, request.url.path)

    service = getattr(request.app.state, "error_service", None)
    if service is not None:
        await run_in_threadpool(
            service.record_exception,
            exc,
            endpoint=request.url.path,
            request_id=request_id,
            user_id=_user_id(request),
        )

    body: dict[str, Any] = {"code": code, "message": message, "request_id": request_id}
    if settings.environment != "production":
        body["details"] = details
    return JSONResponse(
        status_code=status,
        content={"error": body},
        headers={REQUEST_ID_HEADER: request_id},
    )


def install_error_handlers(app: FastAPI) -> None:
    """Register the AppError handler and the catch-all error boundary."""

    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
        return await _record_and_respond(request, exc)

    @app.middleware("http")
    async def error_boundary(request: Request, call_next):
        request_id = _request_id(request)
        try:
            response = await call_next(request)
        except Exception as exc:
            return await _record_and_respond(request, exc)
        response.headers[REQUEST_ID_HEADER] = request_id
        return response
