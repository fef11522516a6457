"""Operator endpoints for inspecting transactions and reconciling entitlements."""
from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from paygate.api.auth import AuthenticatedPrincipal, require_role
from paygate.api.deps import get_db_session
from paygate.core.config import Settings, get_settings
from paygate.models import PaymentTransaction
from paygate.schemas import ReconciliationReportRead, TransactionRead
from paygate.services.reconciliation import EntitlementReconciler

router = APIRouter(prefix="/admin/payments")


@router.get("/transactions/{transaction_id}", response_model=TransactionRead)
def read_transaction(
    transaction_id: str,
    session: Session = Depends(get_db_session),
    _: AuthenticatedPrincipal = Depends(require_role("admin")),
) -> TransactionRead:
    transaction = session.get(PaymentTransaction, transaction_id)
    if transaction is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Transaction not found")
    return TransactionRead.model_validate(transaction)


@router.post("/reconcile", response_model=ReconciliationReportRead)
def reconcile_entitlements(
    session: Session = Depends(get_db_session),
    settings: Settings = Depends(get_settings),
    _: AuthenticatedPrincipal = Depends(require_role("admin")),
) -> ReconciliationReportRead:
    """Retry entitlement grants and revokes left pending by failed callbacks."""

    report = EntitlementReconciler(session, settings=settings).run()
    return ReconciliationReportRead(granted=report.granted, revoked=report.revoked, failed=report.failed)


__all__ = ["read_transaction", "reconcile_entitlements", "router"]
