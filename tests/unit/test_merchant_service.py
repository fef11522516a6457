from __future__ import annotations

from typing import Any, Callable

import pytest
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from paygate.core.config import Settings
from paygate.models import (
    EntitlementStatus,
    PaymentAuditLog,
    PaymentTransaction,
    Subscription,
    SubscriptionStatus,
    TransactionState,
    User,
)
from paygate.services.errors import (
    AccountNotFoundError,
    InvalidAmountError,
    InvalidParamsError,
    PaymeError,
    TransactionAlreadyPerformedError,
    TransactionNotFoundError,
    UnableToCompleteError,
)
from paygate.services.stores import SqlTransactionStore, StoreConflictError
from paygate.services.transactions import PaymeMerchantService
from tests.conftest import START_TIME_MS, FakeClock, TestingSessionLocal

PRO_PRICE = 999


def _create_params(transaction_id: str = "tx1", *, user_id: str = "u1", time: int = 1000) -> dict[str, Any]:
    return {
        "id": transaction_id,
        "time": time,
        "amount": PRO_PRICE,
        "account": {"user_id": user_id, "plan": "pro"},
    }


def _transaction_count(session: Session) -> int:
    return session.scalar(select(func.count()).select_from(PaymentTransaction)) or 0


def test_check_perform_allows_valid_purchase(service: PaymeMerchantService, db_session: Session) -> None:
    result = service.check_perform_transaction({"amount": PRO_PRICE, "account": {"user_id": "u1", "plan": "pro"}})

    assert result == {"allow": True}
    assert _transaction_count(db_session) == 0


@pytest.mark.parametrize(
    ("params", "error_type", "code"),
    [
        ({"amount": 500, "account": {"user_id": "u1", "plan": "pro"}}, InvalidAmountError, -31001),
        ({"amount": PRO_PRICE, "account": {"user_id": "nobody", "plan": "pro"}}, AccountNotFoundError, -31050),
        ({"amount": PRO_PRICE, "account": {"user_id": "u1", "plan": "platinum"}}, AccountNotFoundError, -31050),
        ({"amount": PRO_PRICE}, InvalidParamsError, -31001),
        ({"account": {"user_id": "u1", "plan": "pro"}}, InvalidParamsError, -31001),
    ],
)
def test_check_perform_rejects_invalid_purchase(
    service: PaymeMerchantService, params: dict[str, Any], error_type: type[Exception], code: int
) -> None:
    with pytest.raises(error_type) as excinfo:
        service.check_perform_transaction(params)
    assert excinfo.value.code == code


def test_non_integer_amount_reports_offending_field(service: PaymeMerchantService) -> None:
    with pytest.raises(InvalidParamsError) as excinfo:
        service.check_perform_transaction({"amount": "999", "account": {"user_id": "u1", "plan": "pro"}})

    assert excinfo.value.data == "amount"


def test_create_records_created_transaction(service: PaymeMerchantService, db_session: Session) -> None:
    result = service.create_transaction(_create_params())

    assert result == {"create_time": 1000, "transaction": "tx1", "state": 1}
    stored = db_session.get(PaymentTransaction, "tx1")
    assert stored is not None
    assert stored.amount == PRO_PRICE
    assert stored.provider == "payme"
    assert stored.entitlement == EntitlementStatus.NONE


def test_create_replay_returns_original_record(service: PaymeMerchantService, db_session: Session) -> None:
    first = service.create_transaction(_create_params(time=1000))
    second = service.create_transaction(_create_params(time=5000))

    assert second == first
    assert _transaction_count(db_session) == 1


def test_create_requires_time(service: PaymeMerchantService, db_session: Session) -> None:
    params = _create_params()
    del params["time"]

    with pytest.raises(InvalidParamsError):
        service.create_transaction(params)
    assert _transaction_count(db_session) == 0


def test_create_for_unknown_user_is_rejected(service: PaymeMerchantService, db_session: Session) -> None:
    with pytest.raises(AccountNotFoundError):
        service.create_transaction(_create_params(user_id="nobody"))
    assert _transaction_count(db_session) == 0


def test_create_on_performed_transaction_is_rejected(service: PaymeMerchantService) -> None:
    service.create_transaction(_create_params())
    service.perform_transaction({"id": "tx1"})

    with pytest.raises(UnableToCompleteError) as excinfo:
        service.create_transaction(_create_params())
    assert excinfo.value.code == -31008


def test_perform_grants_plan_and_subscription(
    service: PaymeMerchantService,
    db_session: Session,
    load_user: Callable[[str], User],
    settings: Settings,
) -> None:
    service.create_transaction(_create_params())

    result = service.perform_transaction({"id": "tx1"})

    assert result == {"perform_time": START_TIME_MS, "transaction": "tx1", "state": 2}
    user = load_user("u1")
    assert user.plan == "pro"
    assert user.subscription_status == SubscriptionStatus.ACTIVE

    subscription = db_session.get(Subscription, "u1")
    assert subscription is not None
    assert subscription.status == SubscriptionStatus.ACTIVE
    assert (subscription.end_at - subscription.start_at).days == settings.subscription_period_days
    assert subscription.payment_history == [
        {
            "payment_id": "tx1",
            "amount": PRO_PRICE,
            "date": subscription.payment_history[0]["date"],
            "status": "completed",
        }
    ]
    stored = db_session.get(PaymentTransaction, "tx1")
    assert stored is not None
    assert stored.entitlement == EntitlementStatus.GRANTED


def test_perform_replay_does_not_mutate_principal_again(
    service: PaymeMerchantService,
    clock: FakeClock,
    db_session: Session,
    load_user: Callable[[str], User],
) -> None:
    service.create_transaction(_create_params())
    first = service.perform_transaction({"id": "tx1"})

    user = load_user("u1")
    user.plan = "free"
    db_session.commit()
    clock.advance(60_000)

    second = service.perform_transaction({"id": "tx1"})

    assert second == first
    assert load_user("u1").plan == "free"


def test_perform_unknown_transaction_is_not_found(service: PaymeMerchantService) -> None:
    with pytest.raises(TransactionNotFoundError) as excinfo:
        service.perform_transaction({"id": "missing"})
    assert excinfo.value.code == -31003


def test_perform_cancelled_transaction_is_rejected(service: PaymeMerchantService) -> None:
    service.create_transaction(_create_params())
    service.cancel_transaction({"id": "tx1", "reason": 3})

    with pytest.raises(UnableToCompleteError):
        service.perform_transaction({"id": "tx1"})


def test_failed_grant_stays_pending_and_retry_completes(
    service: PaymeMerchantService,
    clock: FakeClock,
    db_session: Session,
    load_user: Callable[[str], User],
) -> None:
    service.create_transaction(_create_params())
    db_session.delete(load_user("u1"))
    db_session.commit()

    with pytest.raises(UnableToCompleteError):
        service.perform_transaction({"id": "tx1"})

    db_session.expire_all()
    stored = db_session.get(PaymentTransaction, "tx1")
    assert stored is not None
    assert stored.state == TransactionState.PERFORMED
    assert stored.entitlement == EntitlementStatus.PENDING_GRANT

    db_session.add(User(id="u1", email="patient@example.com"))
    db_session.commit()
    clock.advance(5_000)

    result = service.perform_transaction({"id": "tx1"})

    assert result["perform_time"] == START_TIME_MS
    assert load_user("u1").plan == "pro"


def test_cancel_created_transaction(service: PaymeMerchantService, load_user: Callable[[str], User]) -> None:
    service.create_transaction(_create_params())

    result = service.cancel_transaction({"id": "tx1", "reason": 3})

    assert result == {"cancel_time": START_TIME_MS, "transaction": "tx1", "state": -1}
    assert load_user("u1").plan == "free"


def test_cancel_performed_transaction_revokes_entitlement(
    service: PaymeMerchantService,
    clock: FakeClock,
    db_session: Session,
    load_user: Callable[[str], User],
) -> None:
    service.create_transaction(_create_params())
    service.perform_transaction({"id": "tx1"})
    cancel_time = clock.advance(60_000)

    result = service.cancel_transaction({"id": "tx1", "reason": 5})

    assert result == {"cancel_time": cancel_time, "transaction": "tx1", "state": -2}
    user = load_user("u1")
    assert user.plan == "free"
    assert user.subscription_status == SubscriptionStatus.CANCELED

    subscription = db_session.get(Subscription, "u1")
    assert subscription is not None
    assert subscription.status == SubscriptionStatus.CANCELED
    assert [entry["status"] for entry in subscription.payment_history] == ["refunded"]


def test_cancel_replay_returns_original_cancel_time(service: PaymeMerchantService, clock: FakeClock) -> None:
    service.create_transaction(_create_params())
    first = service.cancel_transaction({"id": "tx1", "reason": 3})
    clock.advance(10_000)

    second = service.cancel_transaction({"id": "tx1", "reason": 4})

    assert second == first


def test_cancel_after_perform_can_be_forbidden(
    db_session: Session, settings: Settings, clock: FakeClock
) -> None:
    strict = settings.model_copy(update={"allow_cancel_after_perform": False})
    service = PaymeMerchantService(db_session, settings=strict, clock=clock)
    service.create_transaction(_create_params())
    service.perform_transaction({"id": "tx1"})

    with pytest.raises(TransactionAlreadyPerformedError) as excinfo:
        service.cancel_transaction({"id": "tx1", "reason": 5})
    assert excinfo.value.code == -31007


def test_check_transaction_reports_all_fields(service: PaymeMerchantService, clock: FakeClock) -> None:
    service.create_transaction(_create_params())
    assert service.check_transaction({"id": "tx1"}) == {
        "create_time": 1000,
        "perform_time": 0,
        "cancel_time": 0,
        "transaction": "tx1",
        "state": 1,
        "reason": None,
    }

    service.perform_transaction({"id": "tx1"})
    cancel_time = clock.advance(1_000)
    service.cancel_transaction({"id": "tx1", "reason": 5})

    assert service.check_transaction({"id": "tx1"}) == {
        "create_time": 1000,
        "perform_time": START_TIME_MS,
        "cancel_time": cancel_time,
        "transaction": "tx1",
        "state": -2,
        "reason": 5,
    }


def test_missing_transaction_id_is_invalid(service: PaymeMerchantService) -> None:
    with pytest.raises(InvalidParamsError):
        service.check_transaction({})


def test_concurrent_perform_resolves_as_replay(
    service: PaymeMerchantService, db_session: Session, settings: Settings, clock: FakeClock
) -> None:
    service.create_transaction(_create_params())
    stale = db_session.get(PaymentTransaction, "tx1")
    assert stale is not None and stale.state == TransactionState.CREATED

    other_session = TestingSessionLocal()
    try:
        winner = PaymeMerchantService(other_session, settings=settings, clock=clock).perform_transaction({"id": "tx1"})
    finally:
        other_session.close()

    clock.advance(30_000)
    result = service.perform_transaction({"id": "tx1"})

    assert result == winner
    db_session.expire_all()
    subscription = db_session.get(Subscription, "u1")
    assert subscription is not None
    assert len(subscription.payment_history) == 1


class FirstReadMissesStore(SqlTransactionStore):
    """Hides the record on the first read, as a racing insert would."""

    def __init__(self, session: Session) -> None:
        super().__init__(session)
        self.reads = 0

    def get_by_id(self, transaction_id: str) -> PaymentTransaction | None:
        self.reads += 1
        if self.reads == 1:
            return None
        return super().get_by_id(transaction_id)


class AlwaysConflictingStore(SqlTransactionStore):
    def __init__(self, session: Session) -> None:
        super().__init__(session)
        self.updates = 0

    def update(self, record: PaymentTransaction, **fields: Any) -> PaymentTransaction:
        self.updates += 1
        self._session.rollback()
        raise StoreConflictError("Record was modified concurrently")


def test_concurrent_create_resolves_as_replay(db_session: Session, settings: Settings, clock: FakeClock) -> None:
    other_session = TestingSessionLocal()
    try:
        PaymeMerchantService(other_session, settings=settings, clock=clock).create_transaction(
            _create_params(time=1000)
        )
    finally:
        other_session.close()

    store = FirstReadMissesStore(db_session)
    service = PaymeMerchantService(db_session, settings=settings, clock=clock, transactions=store)

    result = service.create_transaction(_create_params(time=5000))

    assert result == {"create_time": 1000, "transaction": "tx1", "state": 1}
    assert store.reads == 2
    assert _transaction_count(db_session) == 1


def test_exhausted_conflict_retries_report_unable_to_complete(
    service: PaymeMerchantService, db_session: Session, settings: Settings, clock: FakeClock
) -> None:
    service.create_transaction(_create_params())
    store = AlwaysConflictingStore(db_session)
    conflicting = PaymeMerchantService(db_session, settings=settings, clock=clock, transactions=store)

    with pytest.raises(UnableToCompleteError) as excinfo:
        conflicting.perform_transaction({"id": "tx1"})

    assert excinfo.value.code == -31008
    assert store.updates == settings.transition_max_attempts
    db_session.expire_all()
    stored = db_session.get(PaymentTransaction, "tx1")
    assert stored is not None
    assert stored.state == TransactionState.CREATED


def _store_snapshot(session: Session) -> tuple[Any, ...]:
    session.expire_all()
    users = session.execute(select(User.id, User.plan, User.subscription_status).order_by(User.id)).all()
    return (
        tuple(users),
        session.scalar(select(func.count()).select_from(Subscription)),
        _transaction_count(session),
        session.scalar(select(func.count()).select_from(PaymentAuditLog)),
    )


@pytest.mark.parametrize(
    "params",
    [
        {"amount": PRO_PRICE, "account": {"user_id": "u1", "plan": "pro"}},
        {"amount": 1, "account": {"user_id": "u1", "plan": "pro"}},
        {"amount": PRO_PRICE, "account": {"user_id": "ghost", "plan": "pro"}},
        {"amount": PRO_PRICE, "account": {"user_id": "u1", "plan": "gold"}},
        {"amount": "999", "account": {"user_id": "u1", "plan": "pro"}},
        {},
    ],
)
def test_check_perform_never_mutates_stores(
    service: PaymeMerchantService, db_session: Session, params: dict[str, Any]
) -> None:
    service.create_transaction(_create_params("tx-existing", user_id="u2"))
    before = _store_snapshot(db_session)

    try:
        service.check_perform_transaction(params)
    except PaymeError:
        pass

    assert _store_snapshot(db_session) == before


def test_transaction_of_another_gateway_is_not_replayed(
    service: PaymeMerchantService, db_session: Session, settings: Settings, clock: FakeClock
) -> None:
    service.create_transaction(_create_params())
    click = PaymeMerchantService(db_session, settings=settings, clock=clock, provider="click")

    with pytest.raises(UnableToCompleteError):
        click.create_transaction(_create_params())
    with pytest.raises(TransactionNotFoundError):
        click.check_transaction({"id": "tx1"})
