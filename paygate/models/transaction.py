"""Gateway transaction ORM model."""
from __future__ import annotations

import enum

from sqlalchemy import BigInteger, Enum as SAEnum
from sqlalchemy import Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from paygate.models.base import Base, TimestampMixin


class TransactionState(enum.IntEnum):
    """Lifecycle codes shared with the Payme merchant protocol."""

    CREATED = 1
    PERFORMED = 2
    CANCELLED = -1
    CANCELLED_AFTER_PERFORM = -2

    @property
    def is_cancelled(self) -> bool:
        return self < 0


class EntitlementStatus(str, enum.Enum):
    """Progress of the principal-side mutation that follows a transition.

    ``PENDING_GRANT`` and ``PENDING_REVOKE`` mark a transaction whose own state
    was committed while the principal update has not been applied yet.
    """

    NONE = "NONE"
    PENDING_GRANT = "PENDING_GRANT"
    GRANTED = "GRANTED"
    PENDING_REVOKE = "PENDING_REVOKE"
    REVOKED = "REVOKED"


class PaymentTransaction(TimestampMixin, Base):
    """One gateway payment attempt keyed by the gateway-issued id."""

    __tablename__ = "payment_transactions"
    __table_args__ = (
        Index("ix_payment_transactions_user_id", "user_id"),
        Index("ix_payment_transactions_entitlement", "entitlement"),
    )

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    user_id: Mapped[str] = mapped_column(String(128), nullable=False)
    plan: Mapped[str] = mapped_column(String(32), nullable=False)
    amount: Mapped[int] = mapped_column(BigInteger, nullable=False)
    state: Mapped[int] = mapped_column(Integer, nullable=False, default=TransactionState.CREATED)
    create_time: Mapped[int] = mapped_column(BigInteger, nullable=False)
    perform_time: Mapped[int | None] = mapped_column(BigInteger)
    cancel_time: Mapped[int | None] = mapped_column(BigInteger)
    cancel_reason: Mapped[int | None] = mapped_column(Integer)
    provider: Mapped[str] = mapped_column(String(32), nullable=False, default="payme")
    entitlement: Mapped[EntitlementStatus] = mapped_column(
        SAEnum(EntitlementStatus, name="entitlement_status"),
        nullable=False,
        default=EntitlementStatus.NONE,
    )
    lock_version: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    __mapper_args__ = {"version_id_col": lock_version}

    @property
    def lifecycle_state(self) -> TransactionState:
        return TransactionState(self.state)


__all__ = ["EntitlementStatus", "PaymentTransaction", "TransactionState"]
