"""Fixed-window rate limiting keyed by client address."""

import logging
import threading
import time
from typing import Callable, NamedTuple, Optional

from cachetools import TTLCache

logger = logging.getLogger(__name__)

DEFAULT_WINDOW_SECONDS = 15 * 60
DEFAULT_MAX_REQUESTS = 1000
DEFAULT_MAX_KEYS = 100_000


class RateLimitResult(NamedTuple):
    """Result of a rate limit check."""

    allowed: bool
    requests_remaining: int
    retry_after: Optional[int]  # Seconds until the window resets


class _Window:
    __slots__ = ("started", "count")

    def __init__(self, started: float):
        self.started = started
        self.count = 0


class FixedWindowRateLimiter:
    """Counts requests per key in fixed windows of ``window_seconds``.

    A key's window starts at its first request and its counter resets once
    the window has elapsed. Counters live in a TTLCache whose TTL equals the
    window length, so idle keys are evicted without a sweeper. The whole
    check-and-increment runs under one lock.
    """

    def __init__(
        self,
        window_seconds: float = DEFAULT_WINDOW_SECONDS,
        max_requests: int = DEFAULT_MAX_REQUESTS,
        max_keys: int = DEFAULT_MAX_KEYS,
        timer: Callable[[], float] = time.monotonic,
    ):
        if window_seconds <= 0 or max_requests < 1:
            raise ValueError("window_seconds must be positive and max_requests at least 1")
        self.window_seconds = window_seconds
        self.max_requests = max_requests
        self._timer = timer
        self._windows: TTLCache = TTLCache(maxsize=max_keys, ttl=window_seconds, timer=timer)
        self._lock = threading.Lock()

    def hit(self, key: Optional[str]) -> RateLimitResult:
        """Record one request for ``key`` and report whether it is allowed."""
        key = key or "unknown"
        with self._lock:
            now = self._timer()
            window = self._windows.get(key)
            if window is None or now - window.started >= self.window_seconds:
                window = _Window(now)
                self._windows[key] = window
            window.count += 1

            if window.count > self.max_requests:
                retry_after = max(1, int(window.started + self.window_seconds - now + 0.999))
                logger.warning(
                    f"Rate limit exceeded for {key[:20]} ({window.count}/{self.max_requests})"
                )
                return RateLimitResult(allowed=False, requests_remaining=0, retry_after=retry_after)

            return RateLimitResult(
                allowed=True,
                requests_remaining=self.max_requests - window.count,
                retry_after=None,
            )

    def allow(self, key: Optional[str]) -> bool:
        return self.hit(key).allowed

    def reset(self) -> None:
        with self._lock:
            self._windows.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._windows)
