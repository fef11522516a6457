from __future__ import annotations

import base64
from collections.abc import Callable, Iterator
from pathlib import Path
import sys
from typing import Any

import pytest
from fastapi.testclient import TestClient
from httpx import Response
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from paygate.api.deps import get_db_session
from paygate.core.config import Settings
from paygate.main import create_application
from paygate.models import Base, User, UserRole
from paygate.services.transactions import PaymeMerchantService

DATABASE_URL = "sqlite+pysqlite:///:memory:"
MERCHANT_LOGIN = "Paycom"
MERCHANT_KEY = "test-merchant-key"
CLICK_LOGIN = "Click"
CLICK_KEY = "test-click-key"
MERCHANT_ID = "merchant-123"
JWT_SECRET = "test-jwt-secret"
START_TIME_MS = 1_700_000_000_000


engine = create_engine(
    DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)


class FakeClock:
    """Millisecond clock advanced explicitly by tests."""

    def __init__(self, start: int = START_TIME_MS) -> None:
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, milliseconds: int) -> int:
        self.now += milliseconds
        return self.now


@pytest.fixture()
def settings() -> Settings:
    return Settings(
        _env_file=None,
        database_url=DATABASE_URL,
        enable_metrics=True,
        enable_tracing=False,
        payme_merchant_login=MERCHANT_LOGIN,
        payme_merchant_key=MERCHANT_KEY,
        payme_merchant_id=MERCHANT_ID,
        click_merchant_login=CLICK_LOGIN,
        click_merchant_key=CLICK_KEY,
        jwt_secret_key=JWT_SECRET,
    )


@pytest.fixture()
def db_session() -> Iterator[Session]:
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()

    session.add_all(
        [
            User(id="u1", email="patient@example.com", role=UserRole.PATIENT),
            User(id="u2", email="other@example.com", role=UserRole.PATIENT),
            User(id="ops", email="ops@example.com", role=UserRole.ADMIN),
        ]
    )
    session.commit()

    yield session
    session.close()


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def service(db_session: Session, settings: Settings, clock: FakeClock) -> PaymeMerchantService:
    return PaymeMerchantService(db_session, settings=settings, clock=clock)


@pytest.fixture()
def load_user(db_session: Session) -> Callable[[str], User]:
    def _load(user_id: str) -> User:
        db_session.expire_all()
        user = db_session.get(User, user_id)
        assert user is not None
        return user

    return _load


@pytest.fixture()
def client_for(db_session: Session) -> Callable[[Settings], TestClient]:
    """Build a client for an application created with the given settings."""

    def _build(app_settings: Settings) -> TestClient:
        app = create_application(app_settings)

        def override_get_db() -> Iterator[Session]:
            try:
                yield db_session
            finally:
                db_session.rollback()

        app.dependency_overrides[get_db_session] = override_get_db
        return TestClient(app)

    return _build


@pytest.fixture()
def client(client_for: Callable[[Settings], TestClient], settings: Settings) -> Iterator[TestClient]:
    with client_for(settings) as test_client:
        yield test_client


def merchant_headers(login: str = MERCHANT_LOGIN, key: str = MERCHANT_KEY) -> dict[str, str]:
    token = base64.b64encode(f"{login}:{key}".encode("utf-8")).decode("ascii")
    return {"Authorization": f"Basic {token}"}


@pytest.fixture()
def payme(client: TestClient) -> Callable[..., Response]:
    """Post a merchant API envelope to the callback endpoint."""

    def _call(
        method: str,
        params: dict[str, Any] | None = None,
        *,
        request_id: int = 1,
        headers: dict[str, str] | None = None,
    ) -> Response:
        body: dict[str, Any] = {"method": method, "params": params or {}, "id": request_id}
        return client.post(
            "/api/payments/payme",
            json=body,
            headers=headers if headers is not None else merchant_headers(),
        )

    return _call

