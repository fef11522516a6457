"""Subscription ORM model."""
from __future__ import annotations

from datetime import datetime

from sqlalchemy import JSON, DateTime, Enum, String
from sqlalchemy.orm import Mapped, mapped_column

from paygate.models.base import Base, TimestampMixin
from paygate.models.user import SubscriptionStatus


class Subscription(TimestampMixin, Base):
    """Current subscription period for a principal, one row per user."""

    __tablename__ = "subscriptions"

    user_id: Mapped[str] = mapped_column(String(128), primary_key=True)
    plan: Mapped[str] = mapped_column(String(32), nullable=False)
    status: Mapped[SubscriptionStatus] = mapped_column(
        Enum(SubscriptionStatus, name="subscription_status"), nullable=False
    )
    start_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    end_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    provider: Mapped[str] = mapped_column(String(32), nullable=False)
    payment_history: Mapped[list | None] = mapped_column(JSON)


__all__ = ["Subscription"]
