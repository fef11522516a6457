"""Persistence collaborators for principals and gateway transactions."""
from __future__ import annotations

from typing import Any, Protocol

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from paygate.models import EntitlementStatus, PaymentTransaction, User


class StoreError(RuntimeError):
    """Raised when the underlying persistence operation fails."""


class StoreConflictError(StoreError):
    """Raised when a write lost an optimistic-concurrency race."""


class PrincipalStore(Protocol):
    def get_by_id(self, user_id: str) -> User | None:
        """Return the principal or ``None`` when it does not exist."""

    def update(self, principal: User, **fields: Any) -> User:
        """Apply ``fields`` to the principal."""


class TransactionStore(Protocol):
    def get_by_id(self, transaction_id: str) -> PaymentTransaction | None:
        """Return the transaction or ``None`` when it does not exist."""

    def create(self, record: PaymentTransaction) -> PaymentTransaction:
        """Insert a new transaction, failing if the id is already taken."""

    def update(self, record: PaymentTransaction, **fields: Any) -> PaymentTransaction:
        """Apply ``fields`` conditional on the version the record was loaded at."""


def _flush(session: Session) -> None:
    try:
        session.flush()
    except (StaleDataError, IntegrityError) as exc:
        session.rollback()
        raise StoreConflictError("Record was modified concurrently") from exc
    except SQLAlchemyError as exc:
        session.rollback()
        raise StoreError("Failed to write record") from exc


class SqlPrincipalStore:
    """Principal store backed by the ``users`` table."""

    def __init__(self, session: Session) -> None:
        self._session = session

    def get_by_id(self, user_id: str) -> User | None:
        try:
            return self._session.get(User, user_id)
        except SQLAlchemyError as exc:
            raise StoreError(f"Failed to load user '{user_id}'") from exc

    def update(self, principal: User, **fields: Any) -> User:
        for name, value in fields.items():
            setattr(principal, name, value)
        _flush(self._session)
        return principal


class SqlTransactionStore:
    """Transaction store backed by ``payment_transactions``.

    Updates rely on the mapper's ``version_id_col`` so that a write based on a
    stale read fails with :class:`StoreConflictError` instead of overwriting.
    """

    def __init__(self, session: Session) -> None:
        self._session = session

    def get_by_id(self, transaction_id: str) -> PaymentTransaction | None:
        try:
            return self._session.get(PaymentTransaction, transaction_id)
        except SQLAlchemyError as exc:
            raise StoreError(f"Failed to load transaction '{transaction_id}'") from exc

    def create(self, record: PaymentTransaction) -> PaymentTransaction:
        self._session.add(record)
        _flush(self._session)
        return record

    def update(self, record: PaymentTransaction, **fields: Any) -> PaymentTransaction:
        for name, value in fields.items():
            setattr(record, name, value)
        _flush(self._session)
        return record

    def pending_entitlements(self) -> list[PaymentTransaction]:
        statement = (
            select(PaymentTransaction)
            .where(
                PaymentTransaction.entitlement.in_(
                    [EntitlementStatus.PENDING_GRANT, EntitlementStatus.PENDING_REVOKE]
                )
            )
            .order_by(PaymentTransaction.create_time)
        )
        try:
            return list(self._session.scalars(statement))
        except SQLAlchemyError as exc:
            raise StoreError("Failed to list pending entitlements") from exc


def commit(session: Session) -> None:
    """Commit the unit of work, mapping driver failures to store errors."""
    try:
        session.commit()
    except (StaleDataError, IntegrityError) as exc:
        session.rollback()
        raise StoreConflictError("Record was modified concurrently") from exc
    except SQLAlchemyError as exc:
        session.rollback()
        raise StoreError("Failed to commit changes") from exc


__all__ = [
    "PrincipalStore",
    "SqlPrincipalStore",
    "SqlTransactionStore",
    "StoreConflictError",
    "StoreError",
    "TransactionStore",
    "commit",
]
