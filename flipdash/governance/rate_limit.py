"""
Fixed-window rate limiting for the SQL-generation endpoint.

The limiter itself is storage-agnostic: it talks to a ``RateLimitStore``
that counts hits per key inside a window.  The bundled in-memory store is
process-local (dict + lock, expired windows evicted lazily); for a
multi-process deployment plug in a shared store with the same two methods.

Usage as a FastAPI dependency::

    limiter = get_rate_limiter()
    if not limiter.allow(client_ip):
        raise HTTPException(status_code=429, ...)
"""
from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from typing import Callable, Protocol

from flipdash.core.config import get_settings
from flipdash.core.logging import get_logger

logger = get_logger(__name__)


class RateLimitExceeded(Exception):
    """Raised by ``FixedWindowRateLimiter.check`` when a key is over quota."""

    def __init__(self, key: str, retry_after: float):
        self.key = key
        self.retry_after = retry_after
        super().__init__(f"Rate limit exceeded for {key}; retry in {retry_after:.0f}s")


class RateLimitStore(Protocol):
    def increment(self, key: str, window_seconds: float) -> tuple[int, float]:
        """Count one hit for *key*; return (hits in current window, window start)."""
        ...

    def reset(self, key: str | None = None) -> None:
        ...


# ── In-memory store ─────────────────────────────────────


@dataclass
class _Window:
    started_at: float
    count: int = 0


class InMemoryRateLimitStore:
    """Thread-safe dict-backed store. Windows older than their TTL are evicted."""

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._windows: dict[str, _Window] = {}
        self._lock = threading.Lock()
        self._clock = clock

    def increment(self, key: str, window_seconds: float) -> tuple[int, float]:
        now = self._clock()
        with self._lock:
            self._evict(now, window_seconds)
            window = self._windows.get(key)
            if window is None:
                window = self._windows[key] = _Window(started_at=now)
            window.count += 1
            return window.count, window.started_at

    def reset(self, key: str | None = None) -> None:
        with self._lock:
            if key is None:
                self._windows.clear()
            else:
                self._windows.pop(key, None)

    def _evict(self, now: float, window_seconds: float) -> None:
        expired = [k for k, w in self._windows.items() if now - w.started_at >= window_seconds]
        for k in expired:
            del self._windows[k]

    def __len__(self) -> int:
        return len(self._windows)


# ── Limiter ─────────────────────────────────────────────


class FixedWindowRateLimiter:
    """Allow at most *max_requests* per *window_seconds* per key.

    Parameters
    ----------
    max_requests : int
        Quota per window.
    window_seconds : float
        Window length; a key's window starts at its first hit.
    store : RateLimitStore, optional
        Counter backend. Defaults to a fresh in-memory store.
    """

    def __init__(
        self,
        max_requests: int,
        window_seconds: float,
        store: RateLimitStore | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        if max_requests < 1 or window_seconds <= 0:
            raise ValueError("max_requests must be >= 1 and window_seconds > 0")
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clock = clock
        self.store: RateLimitStore = store or InMemoryRateLimitStore(clock=clock)

    def allow(self, key: str) -> bool:
        count, _ = self.store.increment(key, self.window_seconds)
        allowed = count <= self.max_requests
        if not allowed:
            logger.warning("Rate limit hit for %s (%d/%d)", key, count, self.max_requests)
        return allowed

    def check(self, key: str) -> None:
        """Like ``allow`` but raises ``RateLimitExceeded`` with a retry hint."""
        count, started_at = self.store.increment(key, self.window_seconds)
        if count > self.max_requests:
            retry_after = max(0.0, self.window_seconds - (self._clock() - started_at))
            logger.warning("Rate limit hit for %s (%d/%d)", key, count, self.max_requests)
            raise RateLimitExceeded(key, retry_after)


# ── Singleton ───────────────────────────────────────────

_limiter: FixedWindowRateLimiter | None = None


def get_rate_limiter() -> FixedWindowRateLimiter:
    """Return the process-wide limiter configured from settings."""
    global _limiter
    if _limiter is None:
        settings = get_settings()
        _limiter = FixedWindowRateLimiter(
            max_requests=settings.rate_limit_requests,
            window_seconds=settings.rate_limit_window_seconds,
        )
    return _limiter
