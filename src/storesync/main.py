"""FastAPI application factory.

Creates the app with logging and metrics middleware, Sentry, the v1 router
and a lifespan that builds the sync services and starts the scheduler.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from fastapi.requests import Request
from fastapi.responses import Response

from src.storesync.api.middleware.logging import LoggingMiddleware
from src.storesync.api.v1.router import router as v1_router
from src.storesync.config import get_settings
from src.storesync.core.database import close_db, init_db
from src.storesync.core.logging import configure_structlog
from src.storesync.core.monitoring import MetricsMiddleware, get_metrics_response, init_sentry
from src.storesync.services import build_services


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Build services and start background jobs on startup; stop them on shutdown."""
    log = structlog.get_logger(__name__)
    settings = get_settings()
    configure_structlog()
    await init_db()

    if settings.SENTRY_DSN:
        init_sentry(dsn=settings.SENTRY_DSN, environment=settings.ENVIRONMENT.value)

    services = build_services(settings)
    app.state.services = services
    app.state.oauth_states = {}

    scheduler = None
    if settings.SYNC_SCHEDULER_ENABLED:
        scheduler = services.scheduler()
        if not scheduler.start():
            log.warning("app.scheduler_not_started")
    app.state.scheduler = scheduler

    log.info("app.started", environment=settings.ENVIRONMENT.value, scheduler=scheduler is not None)

    yield

    if scheduler is not None:
        scheduler.stop()
    await close_db()
    log.info("app.stopped")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="Storefront Sync API",
        version="0.1.0",
        description="Outbound sync of storefront events to the external CRM and accounting services",
        lifespan=lifespan,
    )

    # Middleware is added in reverse order (last added = outermost)
    app.add_middleware(LoggingMiddleware)
    app.add_middleware(MetricsMiddleware)

    app.include_router(v1_router)

    # Prometheus metrics endpoint (infrastructure route, outside v1 router)
    @app.get("/metrics", include_in_schema=False)
    async def metrics(request: Request) -> Response:
        """Prometheus metrics endpoint."""
        return get_metrics_response()

    return app


# Module-level app for uvicorn
app = create_app()
