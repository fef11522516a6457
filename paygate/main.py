"""FastAPI application entrypoint."""
from __future__ import annotations

from fastapi import FastAPI

from paygate.api.routes import register_routes
from paygate.core.config import Settings, get_settings
from paygate.core.logging import configure_logging
from paygate.obs import (
    AuditMiddleware,
    PrometheusMiddleware,
    initialise_tracing,
    instrument_fastapi_app,
    metrics_router,
)
from paygate.services.rate_limiter import RateLimiter


def create_application(settings: Settings | None = None) -> FastAPI:
    """Application factory used by ASGI servers and tests."""
    explicit_settings = settings is not None
    settings = settings or get_settings()
    configure_logging(settings)

    if settings.enable_tracing:
        initialise_tracing(service_name=settings.app_name, endpoint=settings.otel_exporter_endpoint)

    application = FastAPI(
        title=settings.app_name,
        version=settings.version,
        docs_url=settings.docs_url,
        redoc_url=settings.redoc_url,
        openapi_url=settings.openapi_url,
    )
    if explicit_settings:
        application.dependency_overrides[get_settings] = lambda: settings
    application.state.payme_rate_limiter = RateLimiter(
        window_ms=settings.payme_rate_limit_window_ms,
        max_requests=settings.payme_rate_limit_max_requests,
    )

    application.add_middleware(AuditMiddleware, settings=settings)
    if settings.enable_metrics:
        application.add_middleware(PrometheusMiddleware)
        application.include_router(metrics_router)
    register_routes(application)

    if settings.enable_tracing:
        instrument_fastapi_app(application)

    return application


app = create_application()
