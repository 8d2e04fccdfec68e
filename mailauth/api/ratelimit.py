"""
mailauth.api.ratelimit - OAuth Callback Rate Limiting

In-memory sliding-window rate limiting keyed by client address. Suitable for
single-instance deployments; each process keeps its own counters.

The limiter lives on ``app.state.callback_limiter`` and is applied with the
``enforce_callback_rate_limit`` dependency.
"""

import logging
import time
from collections import deque
from threading import Lock

from fastapi import HTTPException, Request, status

from mailauth.settings import MailAuthSettings

logger = logging.getLogger(__name__)


class RateLimitExceeded(HTTPException):
    """Exception raised when rate limit is exceeded."""

    def __init__(
        self,
        retry_after: int = 60,
        detail: str = "Too many requests. Please try again later.",
    ) -> None:
        super().__init__(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail=detail,
            headers={"Retry-After": str(retry_after)},
        )
        self.retry_after = retry_after


class RateLimiter:
    """
    Sliding-window rate limiter.

    Attributes:
        max_requests: Maximum number of requests allowed in the window
        window_seconds: Size of the sliding window in seconds

    Example:
        >>> limiter = RateLimiter(max_requests=5, window_seconds=60)
        >>> limiter.is_allowed("203.0.113.7")  # True
        >>> # ... 5 more requests ...
        >>> limiter.is_allowed("203.0.113.7")  # False
    """

    def __init__(
        self,
        max_requests: int = 10,
        window_seconds: int = 60,
        cleanup_interval: int = 300,
    ) -> None:
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.cleanup_interval = cleanup_interval
        self._hits: dict[str, deque[float]] = {}
        self._lock = Lock()
        self._last_cleanup = time.monotonic()

    @classmethod
    def from_settings(cls, settings: MailAuthSettings) -> "RateLimiter":
        return cls(
            max_requests=settings.callback_rate_limit,
            window_seconds=settings.callback_rate_window_seconds,
        )

    def _window(self, key: str, now: float) -> deque[float]:
        hits = self._hits.setdefault(key, deque())
        cutoff = now - self.window_seconds
        while hits and hits[0] <= cutoff:
            hits.popleft()
        return hits

    def is_allowed(self, key: str) -> bool:
        """Record a request for ``key``; False once the window is full."""
        now = time.monotonic()

        with self._lock:
            if now - self._last_cleanup > self.cleanup_interval:
                self._cleanup(now)

            hits = self._window(key, now)
            if len(hits) >= self.max_requests:
                logger.warning(
                    "Callback rate limit exceeded",
                    extra={"client": key, "requests_in_window": len(hits)},
                )
                return False

            hits.append(now)
            return True

    def get_remaining(self, key: str) -> int:
        with self._lock:
            return max(0, self.max_requests - len(self._window(key, time.monotonic())))

    def get_reset_time(self, key: str) -> float:
        """Seconds until the oldest request in the window expires."""
        now = time.monotonic()
        with self._lock:
            hits = self._window(key, now)
            if not hits:
                return 0
            return max(0.0, hits[0] + self.window_seconds - now)

    def reset(self) -> None:
        with self._lock:
            self._hits.clear()

    def _cleanup(self, now: float) -> None:
        stale = [key for key in self._hits if not self._window(key, now)]
        for key in stale:
            del self._hits[key]
        self._last_cleanup = now

        if stale:
            logger.debug(f"Rate limiter cleanup: removed {len(stale)} stale entries")


def get_client_identifier(request: Request) -> str:
    """
    Client address for rate limiting.

    Uses the first X-Forwarded-For entry when behind a proxy, otherwise the
    peer address.
    """
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()

    if request.client:
        return request.client.host

    return "unknown"


async def enforce_callback_rate_limit(request: Request) -> None:
    """
    FastAPI dependency applying the app's callback limiter.

    Raises:
        RateLimitExceeded: If the client exhausted its window
    """
    limiter: RateLimiter | None = getattr(request.app.state, "callback_limiter", None)
    if limiter is None:
        return

    client = get_client_identifier(request)
    if not limiter.is_allowed(client):
        raise RateLimitExceeded(retry_after=max(1, int(limiter.get_reset_time(client))))
