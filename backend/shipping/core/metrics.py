"""
Prometheus metrics for observability.

Exposes metrics for:
- HTTP request latency and counts
- Delivery lifecycle transitions
- Manual coordination reminders and overdue alerts
- Event sink and external service health
"""

import time
from functools import wraps
from typing import Callable

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    REGISTRY,
    Counter,
    Gauge,
    Histogram,
    Info,
    generate_latest,
)
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from shipping.core.config import settings

# ============================================================
# HTTP Metrics
# ============================================================

HTTP_REQUEST_DURATION = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "endpoint", "status_code"],
    buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
)

HTTP_REQUEST_TOTAL = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "endpoint", "status_code"],
)


# ============================================================
# Delivery Metrics
# ============================================================

DELIVERIES_CREATED = Counter(
    "deliveries_created_total",
    "Delivery orders created",
    ["delivery_method"],
)

DELIVERY_TRANSITIONS = Counter(
    "delivery_status_transitions_total",
    "Delivery status transitions",
    ["from_status", "to_status"],
)

DELIVERY_FEE = Histogram(
    "delivery_fee_amount",
    "Quoted delivery fee",
    ["delivery_method"],
    buckets=[0, 25, 50, 75, 100, 150, 250, 500, 1000],
)


# ============================================================
# Manual Coordination Metrics
# ============================================================

REMINDERS_SENT = Counter(
    "manual_task_reminders_total",
    "Reminders sent for manual coordination tasks",
    ["task_type"],
)

OVERDUE_TASKS = Counter(
    "manual_task_overdue_total",
    "Manual coordination tasks detected overdue",
    ["task_type"],
)

SWEEP_DURATION = Histogram(
    "manual_task_sweep_duration_seconds",
    "Reminder sweep execution time",
    buckets=[0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
)


# ============================================================
# External Service Metrics
# ============================================================

EXTERNAL_REQUEST_DURATION = Histogram(
    "external_request_duration_seconds",
    "External service request duration",
    ["service", "operation"],
    buckets=[0.1, 0.25, 0.5, 1.0, 2.0, 5.0, 10.0, 30.0],
)

EXTERNAL_REQUEST_TOTAL = Counter(
    "external_requests_total",
    "Total external service requests",
    ["service", "operation", "status"],
)

EVENT_PUBLISH_FAILURES = Counter(
    "event_publish_failures_total",
    "Lifecycle events that could not be delivered to a sink",
    ["event_type"],
)

SERVICE_HEALTH = Gauge(
    "service_health",
    "External service health (1=healthy, 0=unhealthy)",
    ["service"],
)


# ============================================================
# Application Info
# ============================================================

APP_INFO = Info(
    "app",
    "Application information",
)
APP_INFO.info(
    {
        "name": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "environment": settings.ENVIRONMENT,
    }
)


# ============================================================
# Middleware
# ============================================================


class PrometheusMiddleware(BaseHTTPMiddleware):
    """Collect HTTP request duration and counts per normalized endpoint."""

    async def dispatch(self, request: Request, call_next) -> Response:
        if request.url.path == settings.METRICS_PATH:
            return await call_next(request)

        method = request.method
        endpoint = self._normalize_path(request.url.path)

        start_time = time.perf_counter()
        status_code = "500"
        try:
            response = await call_next(request)
            status_code = str(response.status_code)
        finally:
            duration = time.perf_counter() - start_time
            HTTP_REQUEST_DURATION.labels(
                method=method,
                endpoint=endpoint,
                status_code=status_code,
            ).observe(duration)
            HTTP_REQUEST_TOTAL.labels(
                method=method,
                endpoint=endpoint,
                status_code=status_code,
            ).inc()

        return response

    def _normalize_path(self, path: str) -> str:
        """
        Normalize path by replacing dynamic segments with placeholders.

        /api/v1/deliveries/<uuid>/status -> /api/v1/deliveries/{id}/status
        """
        parts = [p for p in path.split("/") if p]
        normalized = ["{id}" if self._is_id(p) else p for p in parts]
        return "/" + "/".join(normalized) if normalized else "/"

    def _is_id(self, part: str) -> bool:
        """Check if path part is likely an ID."""
        if len(part) == 36 and part.count("-") == 4:
            return True
        return part.isdigit()


# ============================================================
# Helper Functions
# ============================================================


def track_external_request(service: str, operation: str):
    """
    Decorator to track external service requests.

    Usage:
        @track_external_request("customer_service", "address")
        async def resolve(...):
            ...
    """

    def decorator(func: Callable):
        @wraps(func)
        async def wrapper(*args, **kwargs):
            start_time = time.perf_counter()
            try:
                result = await func(*args, **kwargs)
                EXTERNAL_REQUEST_TOTAL.labels(
                    service=service,
                    operation=operation,
                    status="success",
                ).inc()
                return result
            except Exception:
                EXTERNAL_REQUEST_TOTAL.labels(
                    service=service,
                    operation=operation,
                    status="error",
                ).inc()
                raise
            finally:
                EXTERNAL_REQUEST_DURATION.labels(
                    service=service,
                    operation=operation,
                ).observe(time.perf_counter() - start_time)

        return wrapper

    return decorator


def record_transition(from_status: str, to_status: str) -> None:
    """Count a delivery status transition."""
    DELIVERY_TRANSITIONS.labels(from_status=from_status, to_status=to_status).inc()


def update_service_health(service: str, healthy: bool):
    """Update external service health status."""
    SERVICE_HEALTH.labels(service=service).set(1 if healthy else 0)


# ============================================================
# Metrics Endpoint
# ============================================================


async def metrics_endpoint(request: Request) -> Response:
    """Prometheus metrics endpoint."""
    return Response(
        content=generate_latest(REGISTRY),
        media_type=CONTENT_TYPE_LATEST,
    )
