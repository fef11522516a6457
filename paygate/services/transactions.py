"""Payme merchant transaction lifecycle.

Every transition reads the current state first and treats a request for a
state the transaction has already reached as a replay. Writes are guarded by
the optimistic version column; a lost race re-reads and re-evaluates.
"""
from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from typing import Any, TypeVar

from pydantic import BaseModel, ValidationError
from sqlalchemy.orm import Session

from paygate.core.config import Settings, get_settings
from paygate.core.timeutil import current_time_ms
from paygate.models import EntitlementStatus, PaymentTransaction, TransactionState
from paygate.schemas import (
    CancelTransactionParams,
    CancelTransactionResult,
    CheckPerformTransactionParams,
    CheckPerformTransactionResult,
    CheckTransactionResult,
    CreateTransactionParams,
    CreateTransactionResult,
    PaymeAccount,
    PerformTransactionResult,
    TransactionIdParams,
)
from paygate.services.entitlements import EntitlementError, EntitlementManager
from paygate.services.errors import (
    AccountNotFoundError,
    InvalidAmountError,
    InvalidParamsError,
    TransactionAlreadyPerformedError,
    TransactionNotFoundError,
    UnableToCompleteError,
)
from paygate.services.pricing import PriceTable
from paygate.services.stores import (
    PrincipalStore,
    SqlPrincipalStore,
    SqlTransactionStore,
    StoreConflictError,
    StoreError,
    TransactionStore,
    commit,
)

logger = logging.getLogger(__name__)

ParamsT = TypeVar("ParamsT", bound=BaseModel)


class PaymeMerchantService:
    """Implements the merchant API methods against the stores.

    One instance serves one gateway: ``provider`` tags the records it creates
    and scopes the ones it will load, and ``allow_cancel_after_perform``
    overrides the configured refund policy for that gateway.
    """

    def __init__(
        self,
        session: Session,
        *,
        settings: Settings | None = None,
        prices: PriceTable | None = None,
        principals: PrincipalStore | None = None,
        transactions: TransactionStore | None = None,
        entitlements: EntitlementManager | None = None,
        clock: Callable[[], int] | None = None,
        provider: str | None = None,
        allow_cancel_after_perform: bool | None = None,
    ) -> None:
        self._session = session
        self._settings = settings or get_settings()
        self._provider = provider or self._settings.payme_provider
        self._allow_cancel_after_perform = (
            self._settings.allow_cancel_after_perform
            if allow_cancel_after_perform is None
            else allow_cancel_after_perform
        )
        self._prices = prices or PriceTable.from_settings(self._settings)
        self._principals = principals or SqlPrincipalStore(session)
        self._transactions = transactions or SqlTransactionStore(session)
        self._clock = clock or current_time_ms
        self._entitlements = entitlements or EntitlementManager(
            session,
            settings=self._settings,
            principals=self._principals,
            transactions=self._transactions,
            clock=self._clock,
        )

    def check_perform_transaction(self, params: Mapping[str, Any]) -> dict[str, Any]:
        parsed = _parse(CheckPerformTransactionParams, params)
        try:
            self._validate_purchase(parsed.account, parsed.amount)
        except StoreError as exc:
            logger.exception("failed to validate purchase")
            raise UnableToCompleteError("Unable to check transaction") from exc
        return CheckPerformTransactionResult(allow=True).model_dump()

    def create_transaction(self, params: Mapping[str, Any]) -> dict[str, Any]:
        parsed = _parse(CreateTransactionParams, params)
        if not parsed.id or parsed.account is None or parsed.amount is None or parsed.time is None:
            raise InvalidParamsError()

        def operation() -> dict[str, Any]:
            existing = self._transactions.get_by_id(parsed.id)
            if existing is not None:
                if existing.provider != self._provider or existing.state != TransactionState.CREATED:
                    raise UnableToCompleteError("Unable to create transaction")
                logger.info("create replay", extra={"transaction_id": existing.id})
                return _created(existing)

            user_id, plan = self._validate_purchase(parsed.account, parsed.amount)
            transaction = PaymentTransaction(
                id=parsed.id,
                user_id=user_id,
                plan=plan,
                amount=parsed.amount,
                state=TransactionState.CREATED,
                create_time=parsed.time,
                provider=self._provider,
                entitlement=EntitlementStatus.NONE,
            )
            self._transactions.create(transaction)
            commit(self._session)
            logger.info(
                "transaction created",
                extra={"transaction_id": transaction.id, "user_id": user_id, "plan": plan},
            )
            return _created(transaction)

        return self._run_transition(operation, failure_message="Unable to create transaction")

    def perform_transaction(self, params: Mapping[str, Any]) -> dict[str, Any]:
        transaction_id = _require_id(_parse(TransactionIdParams, params).id)

        def operation() -> dict[str, Any]:
            transaction = self._load(transaction_id)
            state = transaction.lifecycle_state
            if state is TransactionState.CREATED:
                self._transactions.update(
                    transaction,
                    state=TransactionState.PERFORMED,
                    perform_time=self._clock(),
                    entitlement=EntitlementStatus.PENDING_GRANT,
                )
                commit(self._session)
                logger.info("transaction performed", extra={"transaction_id": transaction_id})
            elif state is not TransactionState.PERFORMED:
                raise UnableToCompleteError("Unable to perform transaction")

            if transaction.entitlement == EntitlementStatus.PENDING_GRANT:
                self._apply(self._entitlements.grant, transaction, "Unable to perform transaction")

            return PerformTransactionResult(
                perform_time=transaction.perform_time or 0,
                transaction=transaction.id,
                state=transaction.state,
            ).model_dump()

        return self._run_transition(operation, failure_message="Unable to perform transaction")

    def cancel_transaction(self, params: Mapping[str, Any]) -> dict[str, Any]:
        parsed = _parse(CancelTransactionParams, params)
        transaction_id = _require_id(parsed.id)

        def operation() -> dict[str, Any]:
            transaction = self._load(transaction_id)
            state = transaction.lifecycle_state
            if not state.is_cancelled:
                if state is TransactionState.PERFORMED and not self._allow_cancel_after_perform:
                    raise TransactionAlreadyPerformedError()

                fields: dict[str, Any] = {
                    "cancel_time": self._clock(),
                    "cancel_reason": parsed.reason,
                }
                if state is TransactionState.CREATED:
                    fields["state"] = TransactionState.CANCELLED
                else:
                    fields["state"] = TransactionState.CANCELLED_AFTER_PERFORM
                    fields["entitlement"] = EntitlementStatus.PENDING_REVOKE
                self._transactions.update(transaction, **fields)
                commit(self._session)
                logger.info(
                    "transaction cancelled",
                    extra={"transaction_id": transaction_id, "state": int(fields["state"]), "reason": parsed.reason},
                )

            if transaction.entitlement == EntitlementStatus.PENDING_REVOKE:
                self._apply(self._entitlements.revoke, transaction, "Unable to cancel transaction")

            return CancelTransactionResult(
                cancel_time=transaction.cancel_time or 0,
                transaction=transaction.id,
                state=transaction.state,
            ).model_dump()

        return self._run_transition(operation, failure_message="Unable to cancel transaction")

    def check_transaction(self, params: Mapping[str, Any]) -> dict[str, Any]:
        transaction_id = _require_id(_parse(TransactionIdParams, params).id)
        try:
            transaction = self._load(transaction_id)
        except StoreError as exc:
            logger.exception("failed to load transaction", extra={"transaction_id": transaction_id})
            raise UnableToCompleteError("Unable to check transaction") from exc

        return CheckTransactionResult(
            create_time=transaction.create_time,
            perform_time=transaction.perform_time or 0,
            cancel_time=transaction.cancel_time or 0,
            transaction=transaction.id,
            state=transaction.state,
            reason=transaction.cancel_reason,
        ).model_dump()

    def _validate_purchase(self, account: PaymeAccount | None, amount: int | None) -> tuple[str, str]:
        if account is None or account.user_id in (None, "") or not account.plan:
            raise InvalidParamsError("Invalid account")
        if amount is None:
            raise InvalidParamsError()

        user_id = str(account.user_id)
        plan = account.plan
        if plan not in self._prices:
            raise AccountNotFoundError("Plan not found")
        if self._principals.get_by_id(user_id) is None:
            raise AccountNotFoundError("User not found")
        if amount != self._prices.price_for(plan):
            raise InvalidAmountError()
        return user_id, plan

    def _load(self, transaction_id: str) -> PaymentTransaction:
        transaction = self._transactions.get_by_id(transaction_id)
        if transaction is None or transaction.provider != self._provider:
            raise TransactionNotFoundError()
        return transaction

    def _apply(
        self,
        step: Callable[[PaymentTransaction], None],
        transaction: PaymentTransaction,
        failure_message: str,
    ) -> None:
        try:
            step(transaction)
        except EntitlementError as exc:
            logger.error(
                "entitlement step left pending",
                extra={"transaction_id": transaction.id, "error": str(exc)},
            )
            raise UnableToCompleteError(failure_message) from exc

    def _run_transition(
        self,
        operation: Callable[[], dict[str, Any]],
        *,
        failure_message: str,
    ) -> dict[str, Any]:
        attempts = max(1, self._settings.transition_max_attempts)
        for attempt in range(1, attempts + 1):
            try:
                return operation()
            except StoreConflictError:
                logger.info("transition conflict, re-reading", extra={"attempt": attempt})
            except StoreError as exc:
                logger.exception("transition failed at the store")
                raise UnableToCompleteError(failure_message) from exc
        logger.error("transition conflicts exhausted", extra={"attempts": attempts})
        raise UnableToCompleteError(failure_message)


def _parse(model: type[ParamsT], params: Mapping[str, Any]) -> ParamsT:
    try:
        return model.model_validate(params)
    except ValidationError as exc:
        field = ".".join(str(part) for part in exc.errors()[0]["loc"])
        raise InvalidParamsError(data=field) from exc


def _require_id(transaction_id: str | None) -> str:
    if not transaction_id:
        raise InvalidParamsError("Invalid transaction ID")
    return transaction_id


def _created(transaction: PaymentTransaction) -> dict[str, Any]:
    return CreateTransactionResult(
        create_time=transaction.create_time,
        transaction=transaction.id,
        state=transaction.state,
    ).model_dump()


__all__ = ["PaymeMerchantService"]
