"""Prometheus metrics for the HTTP layer and the merchant callback protocol."""

from __future__ import annotations

import time
from collections.abc import Awaitable, Callable

from fastapi import APIRouter, Request, Response
from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest
from starlette.middleware.base import BaseHTTPMiddleware

REQUEST_LATENCY_SECONDS = Histogram(
    "http_request_latency_seconds",
    "Latency of HTTP requests in seconds.",
    labelnames=("method", "path"),
)
REQUEST_COUNTER = Counter(
    "http_requests_total",
    "Total number of HTTP requests processed.",
    labelnames=("method", "path", "status"),
)
REQUEST_ERROR_COUNTER = Counter(
    "http_request_errors_total",
    "Total number of HTTP requests that resulted in server errors.",
    labelnames=("method", "path", "status"),
)
PAYME_CALL_COUNTER = Counter(
    "payme_calls_total",
    "Merchant API calls handled, by protocol method and outcome.",
    labelnames=("method", "outcome"),
)
PAYME_ERROR_COUNTER = Counter(
    "payme_errors_total",
    "Merchant API error responses, by protocol method and error code.",
    labelnames=("method", "code"),
)
PAYME_RATE_LIMITED_COUNTER = Counter(
    "payme_rate_limited_total",
    "Merchant callbacks rejected by the per-source rate limiter.",
)
ENTITLEMENT_RECONCILED_COUNTER = Counter(
    "entitlement_reconciled_total",
    "Pending entitlement changes processed by the reconciliation sweep.",
    labelnames=("action", "outcome"),
)


class PrometheusMiddleware(BaseHTTPMiddleware):
    """Middleware that records request metrics for Prometheus scraping."""

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:  # type: ignore[override]
        method = request.method
        path = request.url.path
        start_time = time.perf_counter()
        status = "500"

        try:
            response = await call_next(request)
            status = str(response.status_code)
            if response.status_code >= 500:
                REQUEST_ERROR_COUNTER.labels(method=method, path=path, status=status).inc()
            return response
        except Exception:
            REQUEST_ERROR_COUNTER.labels(method=method, path=path, status="500").inc()
            raise
        finally:
            latency = time.perf_counter() - start_time
            REQUEST_LATENCY_SECONDS.labels(method=method, path=path).observe(latency)
            REQUEST_COUNTER.labels(method=method, path=path, status=status).inc()


metrics_router = APIRouter(tags=["observability"])


@metrics_router.get("/metrics", include_in_schema=False)
def metrics_endpoint() -> Response:
    """Expose Prometheus metrics for scraping."""
    payload = generate_latest()
    return Response(content=payload, media_type=CONTENT_TYPE_LATEST)


def record_payme_call(method: str, error_code: int | None) -> None:
    """Count one merchant API call; ``error_code`` is ``None`` on success."""
    if error_code is None:
        PAYME_CALL_COUNTER.labels(method=method, outcome="ok").inc()
        return
    PAYME_CALL_COUNTER.labels(method=method, outcome="error").inc()
    PAYME_ERROR_COUNTER.labels(method=method, code=str(error_code)).inc()


__all__ = [
    "ENTITLEMENT_RECONCILED_COUNTER",
    "PAYME_CALL_COUNTER",
    "PAYME_ERROR_COUNTER",
    "PAYME_RATE_LIMITED_COUNTER",
    "PrometheusMiddleware",
    "REQUEST_COUNTER",
    "REQUEST_ERROR_COUNTER",
    "REQUEST_LATENCY_SECONDS",
    "metrics_endpoint",
    "metrics_router",
    "record_payme_call",
]
