"""Payment callback audit log ORM model."""
from __future__ import annotations

import uuid

from sqlalchemy import JSON, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from paygate.models.base import Base, TimestampMixin


class PaymentAuditLog(TimestampMixin, Base):
    """One row per merchant callback processed by the gateway endpoint."""

    __tablename__ = "payment_audit_logs"
    __table_args__ = (
        Index("ix_payment_audit_logs_transaction_id", "transaction_id"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    request_id: Mapped[str | None] = mapped_column(String(64))
    method: Mapped[str] = mapped_column(String(64), nullable=False)
    transaction_id: Mapped[str | None] = mapped_column(String(64))
    error_code: Mapped[int | None] = mapped_column(Integer)
    params: Mapped[dict | None] = mapped_column(JSON)
    ip_address: Mapped[str | None] = mapped_column(String(64))


__all__ = ["PaymentAuditLog"]
