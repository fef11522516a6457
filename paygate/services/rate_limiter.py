"""In-process fixed-window rate limiting for the merchant callback route.

State lives in this process only. A horizontally scaled deployment needs a
shared counter store instead of this map.
"""
from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from threading import Lock

from paygate.core.timeutil import current_time_ms


@dataclass(slots=True)
class _Window:
    count: int
    started_at: int


class RateLimiter:
    """Counts requests per source key inside a window of ``window_ms``."""

    def __init__(
        self,
        *,
        window_ms: int,
        max_requests: int,
        clock: Callable[[], int] | None = None,
    ) -> None:
        self._window_ms = window_ms
        self._max_requests = max_requests
        self._clock = clock or current_time_ms
        self._windows: dict[str, _Window] = {}
        self._lock = Lock()

    def allow(self, source_key: str) -> bool:
        now = self._clock()
        with self._lock:
            window = self._windows.get(source_key)
            if window is None or now - window.started_at > self._window_ms:
                self._windows[source_key] = _Window(count=1, started_at=now)
                return True
            if window.count >= self._max_requests:
                return False
            window.count += 1
            return True

    def reset(self) -> None:
        with self._lock:
            self._windows.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._windows)


__all__ = ["RateLimiter"]
