"""Prometheus metrics and request tracing"""
import time
import uuid
from typing import Callable

from fastapi import Request, Response
from prometheus_client import Counter, Histogram
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.routing import Match

from policy_service.utils.logger import logger

SLOW_REQUEST_SECONDS = 1.0

# ===== HTTP =====

http_requests_total = Counter(
    "policy_service_http_requests_total",
    "HTTP requests by route template and status",
    ["method", "route", "status"],
)

http_request_duration_seconds = Histogram(
    "policy_service_http_request_duration_seconds",
    "HTTP request latency in seconds",
    ["method", "route"],
    buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5),
)

# ===== Policy lifecycle =====

policy_operations_total = Counter(
    "policy_service_policy_operations_total",
    "Policy lifecycle operations",
    ["operation", "outcome"],  # success, not_found, conflict, validation, store_error
)

policy_events_total = Counter(
    "policy_service_policy_events_total",
    "Policy event notifications",
    ["event", "outcome"],  # delivered, failed, skipped
)


def route_template(request: Request) -> str:
    """Path template of the matched route, so policy ids don't become label values"""
    for route in request.app.router.routes:
        match, _ = route.matches(request.scope)
        if match == Match.FULL:
            return getattr(route, "path", request.url.path)
    return "unmatched"


class MonitoringMiddleware(BaseHTTPMiddleware):
    """Counts and times every request and stamps it with a request id"""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get("x-request-id") or uuid.uuid4().hex
        request.state.request_id = request_id
        route = route_template(request)
        started = time.perf_counter()

        try:
            response = await call_next(request)
        except Exception as exc:
            http_requests_total.labels(method=request.method, route=route, status=500).inc()
            logger.error(
                f"Request failed: {request.method} {route}",
                extra={"request_id": request_id, "error": str(exc)},
                exc_info=True,
            )
            raise

        elapsed = time.perf_counter() - started
        http_requests_total.labels(method=request.method, route=route, status=response.status_code).inc()
        http_request_duration_seconds.labels(method=request.method, route=route).observe(elapsed)

        if elapsed > SLOW_REQUEST_SECONDS:
            logger.warning(
                f"Slow request: {request.method} {route} took {elapsed:.2f}s",
                extra={"request_id": request_id, "action": f"{request.method} {route}"},
            )

        response.headers["X-Request-ID"] = request_id
        response.headers["X-Response-Time"] = f"{elapsed:.3f}s"
        return response


def record_policy_operation(operation: str, outcome: str):
    policy_operations_total.labels(operation=operation, outcome=outcome).inc()


def record_event_delivery(event: str, outcome: str):
    policy_events_total.labels(event=event, outcome=outcome).inc()
