"""Principals, gateway transactions, subscriptions and the callback audit log."""
from __future__ import annotations

from collections.abc import Iterable

import sqlalchemy as sa
from alembic import op

revision = "20261018_01"
down_revision = None
branch_labels = None
depends_on: Iterable[str] | None = None


def _drop_enum(name: str) -> None:
    bind = op.get_bind()
    if bind.dialect.name == "postgresql":
        op.execute(sa.text(f"DROP TYPE IF EXISTS {name}"))


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    ]


def upgrade() -> None:  # noqa: D401
    """Create payment tables."""

    user_role = sa.Enum("PATIENT", "DOCTOR", "ADMIN", name="user_role")
    subscription_status = sa.Enum("ACTIVE", "CANCELED", "INACTIVE", name="subscription_status")
    entitlement_status = sa.Enum(
        "NONE", "PENDING_GRANT", "GRANTED", "PENDING_REVOKE", "REVOKED", name="entitlement_status"
    )
    for enum_type in (user_role, subscription_status, entitlement_status):
        enum_type.create(op.get_bind(), checkfirst=True)

    op.create_table(
        "users",
        sa.Column("id", sa.String(length=128), nullable=False),
        sa.Column("email", sa.String(length=320), nullable=True),
        sa.Column("role", user_role, nullable=False),
        sa.Column("plan", sa.String(length=32), nullable=False, server_default="free"),
        sa.Column(
            "subscription_status",
            subscription_status,
            nullable=False,
            server_default="INACTIVE",
        ),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id", name="pk_users"),
    )

    op.create_table(
        "payment_transactions",
        sa.Column("id", sa.String(length=64), nullable=False),
        sa.Column("user_id", sa.String(length=128), nullable=False),
        sa.Column("plan", sa.String(length=32), nullable=False),
        sa.Column("amount", sa.BigInteger(), nullable=False),
        sa.Column("state", sa.Integer(), nullable=False),
        sa.Column("create_time", sa.BigInteger(), nullable=False),
        sa.Column("perform_time", sa.BigInteger(), nullable=True),
        sa.Column("cancel_time", sa.BigInteger(), nullable=True),
        sa.Column("cancel_reason", sa.Integer(), nullable=True),
        sa.Column("provider", sa.String(length=32), nullable=False),
        sa.Column(
            "entitlement",
            entitlement_status,
            nullable=False,
            server_default="NONE",
        ),
        sa.Column("lock_version", sa.Integer(), nullable=False, server_default="0"),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id", name="pk_payment_transactions"),
    )
    op.create_index("ix_payment_transactions_user_id", "payment_transactions", ["user_id"])
    op.create_index("ix_payment_transactions_entitlement", "payment_transactions", ["entitlement"])

    op.create_table(
        "subscriptions",
        sa.Column("user_id", sa.String(length=128), nullable=False),
        sa.Column("plan", sa.String(length=32), nullable=False),
        sa.Column("status", subscription_status, nullable=False),
        sa.Column("start_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("end_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("provider", sa.String(length=32), nullable=False),
        sa.Column("payment_history", sa.JSON(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("user_id", name="pk_subscriptions"),
    )

    op.create_table(
        "payment_audit_logs",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("request_id", sa.String(length=64), nullable=True),
        sa.Column("method", sa.String(length=64), nullable=False),
        sa.Column("transaction_id", sa.String(length=64), nullable=True),
        sa.Column("error_code", sa.Integer(), nullable=True),
        sa.Column("params", sa.JSON(), nullable=True),
        sa.Column("ip_address", sa.String(length=64), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id", name="pk_payment_audit_logs"),
    )
    op.create_index("ix_payment_audit_logs_transaction_id", "payment_audit_logs", ["transaction_id"])


def downgrade() -> None:  # noqa: D401
    """Drop payment tables."""

    op.drop_index("ix_payment_audit_logs_transaction_id", table_name="payment_audit_logs")
    op.drop_table("payment_audit_logs")
    op.drop_table("subscriptions")
    op.drop_index("ix_payment_transactions_entitlement", table_name="payment_transactions")
    op.drop_index("ix_payment_transactions_user_id", table_name="payment_transactions")
    op.drop_table("payment_transactions")
    op.drop_table("users")

    for name in ("entitlement_status", "subscription_status", "user_role"):
        _drop_enum(name)
