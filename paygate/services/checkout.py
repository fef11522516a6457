"""Hosted checkout links for purchasing a plan through Payme."""
from __future__ import annotations

import base64
import json
from dataclasses import dataclass
from urllib.parse import urlencode

from paygate.core.config import Settings, get_settings
from paygate.services.pricing import PriceTable


class CheckoutError(RuntimeError):
    """Base exception for checkout link failures."""


class CheckoutNotConfiguredError(CheckoutError):
    """Raised when no merchant id is configured for the hosted checkout."""


class InvalidPlanError(CheckoutError):
    """Raised when the requested plan has no price."""


@dataclass(slots=True, frozen=True)
class CheckoutLink:
    payment_url: str
    amount: int
    currency: str


def encode_account(user_id: str, plan: str) -> str:
    """Base64 of the ``account`` object the gateway echoes back in callbacks."""
    payload = json.dumps({"user_id": user_id, "plan": plan}, separators=(",", ":"))
    return base64.b64encode(payload.encode("utf-8")).decode("ascii")


def build_checkout_link(
    *,
    user_id: str,
    plan: str,
    settings: Settings | None = None,
    prices: PriceTable | None = None,
) -> CheckoutLink:
    settings = settings or get_settings()
    prices = prices or PriceTable.from_settings(settings)
    if plan not in prices:
        raise InvalidPlanError(f"Plan '{plan}' is not available")
    if not settings.payme_merchant_id:
        raise CheckoutNotConfiguredError("Payme merchant id is not configured")

    amount = prices.price_for(plan)
    query = urlencode({"amount": amount, "account": encode_account(user_id, plan)})
    return CheckoutLink(
        payment_url=f"{settings.payme_checkout_url.rstrip('/')}/{settings.payme_merchant_id}?{query}",
        amount=amount,
        currency=settings.checkout_currency,
    )


__all__ = [
    "CheckoutError",
    "CheckoutLink",
    "CheckoutNotConfiguredError",
    "InvalidPlanError",
    "build_checkout_link",
    "encode_account",
]
