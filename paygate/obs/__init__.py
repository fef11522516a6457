"""Observability utilities."""

from .audit import AuditLogRecord, AuditMiddleware, mask_payload
from .metrics import (
    ENTITLEMENT_RECONCILED_COUNTER,
    PAYME_CALL_COUNTER,
    PAYME_ERROR_COUNTER,
    PAYME_RATE_LIMITED_COUNTER,
    REQUEST_COUNTER,
    REQUEST_ERROR_COUNTER,
    REQUEST_LATENCY_SECONDS,
    PrometheusMiddleware,
    metrics_router,
    record_payme_call,
)
from .tracing import (
    initialise_tracing,
    instrument_fastapi_app,
    instrument_sqlalchemy_engine,
    mark_span_error,
    payme_span,
    span_from_traceparent,
)

__all__ = [
    "AuditLogRecord",
    "AuditMiddleware",
    "ENTITLEMENT_RECONCILED_COUNTER",
    "PAYME_CALL_COUNTER",
    "PAYME_ERROR_COUNTER",
    "PAYME_RATE_LIMITED_COUNTER",
    "PrometheusMiddleware",
    "REQUEST_COUNTER",
    "REQUEST_ERROR_COUNTER",
    "REQUEST_LATENCY_SECONDS",
    "initialise_tracing",
    "instrument_fastapi_app",
    "instrument_sqlalchemy_engine",
    "mark_span_error",
    "mask_payload",
    "metrics_router",
    "payme_span",
    "record_payme_call",
    "span_from_traceparent",
]
