from __future__ import annotations

import base64

import pytest

from paygate.api.merchant_auth import verify_merchant_authorization
from tests.conftest import MERCHANT_KEY, MERCHANT_LOGIN, merchant_headers


def test_valid_credentials_are_accepted() -> None:
    header = merchant_headers()["Authorization"]

    assert verify_merchant_authorization(header, login=MERCHANT_LOGIN, key=MERCHANT_KEY)


@pytest.mark.parametrize(
    "header",
    [
        None,
        "",
        "Bearer abc",
        "Basic",
        "Basic not-base64!!",
        "Basic " + base64.b64encode(b"Paycom").decode(),
        merchant_headers(key="wrong-key")["Authorization"],
        merchant_headers(login="Someone")["Authorization"],
    ],
)
def test_invalid_credentials_are_rejected(header: str | None) -> None:
    assert verify_merchant_authorization(header, login=MERCHANT_LOGIN, key=MERCHANT_KEY) is False


def test_credentials_are_checked_per_gateway() -> None:
    payme_header = merchant_headers()["Authorization"]

    assert verify_merchant_authorization(payme_header, login="Click", key="click-key") is False


def test_verification_is_disabled_without_merchant_key() -> None:
    assert verify_merchant_authorization(None, login=MERCHANT_LOGIN, key=None)
