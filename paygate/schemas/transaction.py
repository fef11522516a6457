"""Pydantic schemas for operator-facing transaction resources."""
from __future__ import annotations

from pydantic import BaseModel, ConfigDict

from paygate.models import EntitlementStatus


class TransactionRead(BaseModel):
    model_config = ConfigDict(from_attributes=True, use_enum_values=True)

    id: str
    user_id: str
    plan: str
    amount: int
    state: int
    create_time: int
    perform_time: int | None
    cancel_time: int | None
    cancel_reason: int | None
    provider: str
    entitlement: EntitlementStatus


class ReconciliationReportRead(BaseModel):
    granted: int
    revoked: int
    failed: int


__all__ = ["ReconciliationReportRead", "TransactionRead"]
