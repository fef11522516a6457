from __future__ import annotations

from paygate.services.rate_limiter import RateLimiter
from tests.conftest import FakeClock

WINDOW_MS = 3_600_000


def _limiter(clock: FakeClock, max_requests: int = 10) -> RateLimiter:
    return RateLimiter(window_ms=WINDOW_MS, max_requests=max_requests, clock=clock)


def test_eleventh_request_in_window_is_denied(clock: FakeClock) -> None:
    limiter = _limiter(clock)

    allowed = [limiter.allow("10.0.0.1") for _ in range(10)]
    assert all(allowed)
    assert limiter.allow("10.0.0.1") is False


def test_window_resets_only_after_it_has_fully_elapsed(clock: FakeClock) -> None:
    limiter = _limiter(clock, max_requests=1)
    assert limiter.allow("10.0.0.1")

    clock.advance(WINDOW_MS)
    assert limiter.allow("10.0.0.1") is False

    clock.advance(1)
    assert limiter.allow("10.0.0.1") is True


def test_source_keys_are_counted_independently(clock: FakeClock) -> None:
    limiter = _limiter(clock, max_requests=2)
    assert limiter.allow("a") and limiter.allow("a")
    assert limiter.allow("a") is False

    assert limiter.allow("b") is True
    assert len(limiter) == 2


def test_reset_clears_all_windows(clock: FakeClock) -> None:
    limiter = _limiter(clock, max_requests=1)
    limiter.allow("a")
    assert limiter.allow("a") is False

    limiter.reset()

    assert len(limiter) == 0
    assert limiter.allow("a") is True
