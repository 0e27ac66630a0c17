"""Prometheus metrics for the sync subsystem and Sentry integration.

Provides:
- sync task outcome counters (success / skipped / retrying / failed)
- track_sync_task(): Context manager timing a single task execution
- token refresh and inventory reconciliation counters
- init_sentry(): Initialize Sentry for the API process
- MetricsMiddleware: HTTP request count and duration
- get_metrics_response(): Prometheus exposition for /metrics
"""

from __future__ import annotations

import time
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

import sentry_sdk
from prometheus_client import REGISTRY, Counter, Gauge, Histogram, generate_latest
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.starlette import StarletteIntegration
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

# ── HTTP Metrics ─────────────────────────────────────────────────────────────

http_requests_total = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "endpoint", "status_code"],
)

http_request_duration_seconds = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "endpoint"],
)

# ── Sync Queue Metrics ───────────────────────────────────────────────────────

sync_tasks_total = Counter(
    "sync_tasks_total",
    "Sync task executions by outcome",
    ["entity_type", "target_service", "outcome"],
)

sync_task_duration_seconds = Histogram(
    "sync_task_duration_seconds",
    "Time spent executing a single sync task",
    ["entity_type", "target_service"],
    buckets=(0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0),
)

sync_tasks_claimed = Gauge(
    "sync_tasks_claimed",
    "Tasks claimed by the most recent dispatch pass",
)

# ── External Service Metrics ─────────────────────────────────────────────────

oauth_token_refresh_total = Counter(
    "oauth_token_refresh_total",
    "OAuth token refresh attempts",
    ["service", "status"],
)

inventory_sync_total = Counter(
    "inventory_sync_total",
    "Inventory reconciliation attempts",
    ["operation", "status"],
)


@asynccontextmanager
async def track_sync_task(
    entity_type: str,
    target_service: str,
) -> AsyncGenerator[dict[str, Any], None]:
    """Context manager that records duration and outcome of one task.

    Usage:
        async with track_sync_task("order", "accounting") as tracker:
            result = await handler(task)
            tracker["outcome"] = "skipped" if result.skipped else "success"

    The outcome defaults to "failed" if the body raises and no outcome was set.
    """
    tracker: dict[str, Any] = {"outcome": None}
    start_time = time.perf_counter()

    try:
        yield tracker
    except Exception:
        tracker["outcome"] = tracker["outcome"] or "failed"
        raise
    finally:
        duration = time.perf_counter() - start_time

        sync_task_duration_seconds.labels(
            entity_type=entity_type,
            target_service=target_service,
        ).observe(duration)

        sync_tasks_total.labels(
            entity_type=entity_type,
            target_service=target_service,
            outcome=tracker["outcome"] or "success",
        ).inc()


class MetricsMiddleware(BaseHTTPMiddleware):
    """Records request count and duration per method and route template.

    Skips the /metrics endpoint itself.
    """

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        if request.url.path == "/metrics":
            return await call_next(request)

        start_time = time.perf_counter()
        response = await call_next(request)
        duration = time.perf_counter() - start_time

        # Route template keeps task ids and services out of the label set
        route = request.scope.get("route")
        endpoint = getattr(route, "path", request.url.path)

        http_requests_total.labels(
            method=request.method,
            endpoint=endpoint,
            status_code=str(response.status_code),
        ).inc()
        http_request_duration_seconds.labels(
            method=request.method,
            endpoint=endpoint,
        ).observe(duration)

        return response


# ── Sentry Integration ───────────────────────────────────────────────────────


def init_sentry(dsn: str, environment: str) -> None:
    """Initialize Sentry SDK.

    Args:
        dsn: Sentry DSN string.
        environment: Deployment environment (development, staging, production).
    """
    traces_sample_rate = 0.1 if environment == "production" else 1.0

    sentry_sdk.init(
        dsn=dsn,
        environment=environment,
        traces_sample_rate=traces_sample_rate,
        integrations=[
            StarletteIntegration(),
            FastApiIntegration(),
        ],
    )


# ── Metrics Endpoint ─────────────────────────────────────────────────────────


def get_metrics_response() -> Response:
    """Generate Prometheus exposition format response."""
    return Response(
        content=generate_latest(REGISTRY),
        media_type="text/plain; version=0.0.4; charset=utf-8",
    )
