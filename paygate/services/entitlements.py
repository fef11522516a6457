"""Principal entitlement side effects of performed and cancelled transactions."""
from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import timedelta

from sqlalchemy.orm import Session

from paygate.core.config import Settings, get_settings
from paygate.core.timeutil import current_time_ms, from_epoch_ms
from paygate.models import (
    EntitlementStatus,
    PaymentTransaction,
    Subscription,
    SubscriptionStatus,
)
from paygate.services.stores import (
    PrincipalStore,
    SqlPrincipalStore,
    SqlTransactionStore,
    TransactionStore,
    commit,
)

logger = logging.getLogger(__name__)


class EntitlementError(RuntimeError):
    """Raised when an entitlement change cannot be applied to the principal."""


class EntitlementManager:
    """Applies grant and revoke steps and marks the transaction accordingly.

    Each step commits the principal, the subscription and the transaction's
    ``entitlement`` marker in one unit of work, so a failed step leaves the
    transaction in its ``PENDING_*`` status for a later retry.
    """

    def __init__(
        self,
        session: Session,
        *,
        settings: Settings | None = None,
        principals: PrincipalStore | None = None,
        transactions: TransactionStore | None = None,
        clock: Callable[[], int] | None = None,
    ) -> None:
        self._session = session
        self._settings = settings or get_settings()
        self._principals = principals or SqlPrincipalStore(session)
        self._transactions = transactions or SqlTransactionStore(session)
        self._clock = clock or current_time_ms

    def grant(self, transaction: PaymentTransaction) -> None:
        if transaction.entitlement != EntitlementStatus.PENDING_GRANT:
            return
        principal = self._principals.get_by_id(transaction.user_id)
        if principal is None:
            raise EntitlementError(f"User '{transaction.user_id}' was not found")

        self._principals.update(
            principal,
            plan=transaction.plan,
            subscription_status=SubscriptionStatus.ACTIVE,
        )
        self._activate_subscription(transaction)
        self._transactions.update(transaction, entitlement=EntitlementStatus.GRANTED)
        commit(self._session)
        logger.info(
            "entitlement granted",
            extra={"transaction_id": transaction.id, "user_id": transaction.user_id, "plan": transaction.plan},
        )

    def revoke(self, transaction: PaymentTransaction) -> None:
        if transaction.entitlement != EntitlementStatus.PENDING_REVOKE:
            return
        principal = self._principals.get_by_id(transaction.user_id)
        if principal is None:
            logger.warning(
                "entitlement revoke skipped for missing user",
                extra={"transaction_id": transaction.id, "user_id": transaction.user_id},
            )
        else:
            self._principals.update(
                principal,
                plan=self._settings.free_plan,
                subscription_status=SubscriptionStatus.CANCELED,
            )
            self._cancel_subscription(transaction)
        self._transactions.update(transaction, entitlement=EntitlementStatus.REVOKED)
        commit(self._session)
        logger.info(
            "entitlement revoked",
            extra={"transaction_id": transaction.id, "user_id": transaction.user_id},
        )

    def _activate_subscription(self, transaction: PaymentTransaction) -> None:
        started_at = from_epoch_ms(transaction.perform_time or self._clock())
        entry = {
            "payment_id": transaction.id,
            "amount": transaction.amount,
            "date": started_at.isoformat(),
            "status": "completed",
        }
        subscription = self._session.get(Subscription, transaction.user_id)
        if subscription is None:
            subscription = Subscription(user_id=transaction.user_id, payment_history=[])
            self._session.add(subscription)

        subscription.plan = transaction.plan
        subscription.status = SubscriptionStatus.ACTIVE
        subscription.start_at = started_at
        subscription.end_at = started_at + timedelta(days=self._settings.subscription_period_days)
        subscription.provider = transaction.provider
        subscription.payment_history = [*(subscription.payment_history or []), entry]

    def _cancel_subscription(self, transaction: PaymentTransaction) -> None:
        subscription = self._session.get(Subscription, transaction.user_id)
        if subscription is None:
            return
        history = []
        for entry in subscription.payment_history or []:
            if entry.get("payment_id") == transaction.id:
                entry = {**entry, "status": "refunded"}
            history.append(entry)

        subscription.status = SubscriptionStatus.CANCELED
        subscription.end_at = from_epoch_ms(transaction.cancel_time or self._clock())
        subscription.payment_history = history


__all__ = ["EntitlementError", "EntitlementManager"]
