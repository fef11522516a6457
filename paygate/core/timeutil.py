"""Epoch-millisecond helpers used by the merchant protocol."""
from __future__ import annotations

import time
from datetime import UTC, datetime


def current_time_ms() -> int:
    return int(time.time() * 1000)


def from_epoch_ms(value: int) -> datetime:
    return datetime.fromtimestamp(value / 1000, tz=UTC)


__all__ = ["current_time_ms", "from_epoch_ms"]
