"""One-shot sweep that retries pending entitlement grants and revokes."""

from __future__ import annotations

import logging
import sys

from paygate.core.config import get_settings
from paygate.core.logging import configure_logging
from paygate.db.session import get_session
from paygate.obs import initialise_tracing, span_from_traceparent
from paygate.services.reconciliation import EntitlementReconciler, ReconciliationReport

LOGGER = logging.getLogger(__name__)


def run_once() -> ReconciliationReport:
    settings = get_settings()
    with span_from_traceparent("reconciliation.sweep", None), get_session() as session:
        return EntitlementReconciler(session, settings=settings).run()


def main() -> int:
    settings = get_settings()
    configure_logging(settings)
    if settings.enable_tracing:
        initialise_tracing(
            service_name="paygate-reconciliation",
            endpoint=settings.otel_exporter_endpoint,
            instrument_logging=False,
        )
    report = run_once()
    LOGGER.info(
        "reconciliation sweep finished",
        extra={"granted": report.granted, "revoked": report.revoked, "failed": report.failed},
    )
    return 1 if report.failed else 0


if __name__ == "__main__":
    sys.exit(main())
