"""Persistent audit trail of merchant callbacks."""
from __future__ import annotations

import logging
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from paygate.models import PaymentAuditLog
from paygate.obs import mask_payload

logger = logging.getLogger(__name__)


class PaymentAuditTrail:
    """Writes one ``PaymentAuditLog`` row per callback; failures are only logged."""

    def __init__(self, session: Session) -> None:
        self._session = session

    def record(
        self,
        *,
        method: str,
        params: Any,
        error_code: int | None,
        request_id: str | None = None,
        ip_address: str | None = None,
    ) -> None:
        transaction_id = params.get("id") if isinstance(params, dict) else None
        entry = PaymentAuditLog(
            request_id=request_id,
            method=method[:64],
            transaction_id=transaction_id[:64] if isinstance(transaction_id, str) else None,
            error_code=error_code,
            params=mask_payload(params) if isinstance(params, dict) else None,
            ip_address=ip_address[:64] if ip_address else None,
        )
        try:
            self._session.add(entry)
            self._session.commit()
        except SQLAlchemyError as exc:
            self._session.rollback()
            logger.error("failed to write payment audit log", extra={"error": str(exc), "method": method})


__all__ = ["PaymentAuditTrail"]
