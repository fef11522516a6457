"""Sweep that finishes entitlement changes left pending by failed callbacks."""
from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy.orm import Session

from paygate.core.config import Settings, get_settings
from paygate.models import EntitlementStatus, TransactionState
from paygate.obs import ENTITLEMENT_RECONCILED_COUNTER
from paygate.services.entitlements import EntitlementError, EntitlementManager
from paygate.services.stores import SqlTransactionStore, StoreError

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class ReconciliationReport:
    """Summary of a reconciliation sweep."""

    granted: int = 0
    revoked: int = 0
    failed: int = 0

    def total_processed(self) -> int:
        return self.granted + self.revoked + self.failed


class EntitlementReconciler:
    """Retries grant/revoke steps for transactions stuck in a pending status."""

    def __init__(
        self,
        session: Session,
        *,
        settings: Settings | None = None,
        entitlements: EntitlementManager | None = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._transactions = SqlTransactionStore(session)
        self._entitlements = entitlements or EntitlementManager(
            session, settings=self._settings, transactions=self._transactions
        )

    def run(self) -> ReconciliationReport:
        report = ReconciliationReport()
        pending_ids = [transaction.id for transaction in self._transactions.pending_entitlements()]
        for transaction_id in pending_ids:
            transaction = self._transactions.get_by_id(transaction_id)
            if transaction is None:
                continue
            entitlement = transaction.entitlement
            action = "grant" if entitlement == EntitlementStatus.PENDING_GRANT else "revoke"
            try:
                if action == "grant" and transaction.state == TransactionState.PERFORMED:
                    self._entitlements.grant(transaction)
                    report.granted += 1
                elif action == "revoke":
                    self._entitlements.revoke(transaction)
                    report.revoked += 1
                else:
                    continue
            except (EntitlementError, StoreError) as exc:
                report.failed += 1
                ENTITLEMENT_RECONCILED_COUNTER.labels(action=action, outcome="failed").inc()
                logger.warning(
                    "entitlement reconciliation failed",
                    extra={"transaction_id": transaction_id, "action": action, "error": str(exc)},
                )
                continue
            ENTITLEMENT_RECONCILED_COUNTER.labels(action=action, outcome="applied").inc()

        logger.info(
            "entitlement reconciliation complete",
            extra={"granted": report.granted, "revoked": report.revoked, "failed": report.failed},
        )
        return report


__all__ = ["EntitlementReconciler", "ReconciliationReport"]
