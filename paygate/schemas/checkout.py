"""Pydantic schemas for the plan checkout endpoint."""
from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class CheckoutRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    plan_id: str = Field(alias="planId", min_length=1)


class CheckoutRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    payment_url: str
    amount: int
    currency: str


__all__ = ["CheckoutRead", "CheckoutRequest"]
