"""FastAPI server for the health monitor."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any

from fastapi import APIRouter, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from apiwatch.api.error_handlers import install_error_handlers
from apiwatch.api.error_routes import error_router
from apiwatch.api.health_routes import health_router
from apiwatch.config import settings
from apiwatch.monitor import build_monitor

logger = logging.getLogger(__name__)

status_router = APIRouter()


@status_router.get("/status")
def monitor_status(request: Request) -> dict[str, Any]:
    """Liveness of the monitor itself."""
    scheduler = request.app.state.health_scheduler
    return {
        "status": "ok",
        "scheduler_running": scheduler.is_running,
        "notifications": request.app.state.notifier.status(),
    }


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build the monitor and start the scheduler on startup."""
    monitor = getattr(app.state, "monitor", None)
    if monitor is None:
        monitor = build_monitor(settings)
        monitor.attach(app.state)

    if settings.scheduler_enabled:
        try:
            await monitor.scheduler.start()
        except Exception:
            logger.exception("Health scheduler failed to start")
    else:
        logger.info("Scheduler disabled: manual triggers only")

    yield

    # Shutdown
    await monitor.scheduler.stop()


def create_app() -> FastAPI:
    app = FastAPI(
        title="apiwatch - API Health Monitor",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    install_error_handlers(app)

    app.include_router(status_router, prefix="/api")
    app.include_router(health_router, prefix="/api")
    app.include_router(error_router, prefix="/api")

    return app


app = create_app()
