"""Static plan price table."""
from __future__ import annotations

from collections.abc import Mapping

from paygate.core.config import Settings, get_settings


class UnknownPlanError(KeyError):
    """Raised when a plan has no configured price."""


class PriceTable:
    """Maps entitlement tiers to their price in minor currency units."""

    def __init__(self, prices: Mapping[str, int]) -> None:
        self._prices = dict(prices)

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> "PriceTable":
        settings = settings or get_settings()
        return cls(settings.plan_prices)

    def __contains__(self, plan: object) -> bool:
        return plan in self._prices

    def price_for(self, plan: str) -> int:
        try:
            return self._prices[plan]
        except KeyError as exc:
            raise UnknownPlanError(plan) from exc


__all__ = ["PriceTable", "UnknownPlanError"]
