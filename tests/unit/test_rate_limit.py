"""
Unit tests -- fixed-window rate limiter.
"""
import pytest

from flipdash.governance.rate_limit import (
    FixedWindowRateLimiter,
    InMemoryRateLimitStore,
    RateLimitExceeded,
)


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


def test_allows_up_to_quota(clock):
    limiter = FixedWindowRateLimiter(3, 60, clock=clock)
    assert [limiter.allow("1.2.3.4") for _ in range(4)] == [True, True, True, False]


def test_keys_are_independent(clock):
    limiter = FixedWindowRateLimiter(1, 60, clock=clock)
    assert limiter.allow("a") is True
    assert limiter.allow("b") is True
    assert limiter.allow("a") is False


def test_window_resets(clock):
    limiter = FixedWindowRateLimiter(1, 60, clock=clock)
    assert limiter.allow("a") is True
    assert limiter.allow("a") is False
    clock.now += 60
    assert limiter.allow("a") is True


def test_check_raises_with_retry_hint(clock):
    limiter = FixedWindowRateLimiter(1, 60, clock=clock)
    limiter.check("a")
    clock.now += 15
    with pytest.raises(RateLimitExceeded) as exc:
        limiter.check("a")
    assert exc.value.retry_after == pytest.approx(45)
    assert exc.value.key == "a"


def test_expired_windows_are_evicted(clock):
    store = InMemoryRateLimitStore(clock=clock)
    limiter = FixedWindowRateLimiter(5, 10, store=store, clock=clock)
    limiter.allow("a")
    limiter.allow("b")
    assert len(store) == 2
    clock.now += 11
    limiter.allow("c")
    assert len(store) == 1


def test_store_reset(clock):
    store = InMemoryRateLimitStore(clock=clock)
    limiter = FixedWindowRateLimiter(1, 60, store=store, clock=clock)
    limiter.allow("a")
    store.reset("a")
    assert limiter.allow("a") is True
    store.reset()
    assert len(store) == 0


@pytest.mark.parametrize("max_requests, window", [(0, 60), (5, 0)])
def test_invalid_configuration(max_requests, window):
    with pytest.raises(ValueError):
        FixedWindowRateLimiter(max_requests, window)
