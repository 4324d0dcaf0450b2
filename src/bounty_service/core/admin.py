"""Operator access control: API key check and request-rate ceiling."""

from __future__ import annotations

import hmac
import time
from collections import defaultdict, deque
from threading import Lock
from typing import TYPE_CHECKING

from bounty_service.core.exceptions import ServiceError
from bounty_service.logging import get_logger

if TYPE_CHECKING:
    from collections.abc import Callable

WINDOW_SECONDS = 60.0


class SlidingWindowRateLimiter:
    """Allows at most ``limit`` hits per client within a rolling window."""

    def __init__(
        self,
        limit: int,
        window_seconds: float = WINDOW_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._limit = limit
        self._window_seconds = window_seconds
        self._clock = clock
        self._hits: dict[str, deque[float]] = defaultdict(deque)
        self._lock = Lock()

    def hit(self, client_id: str) -> bool:
        """Record a hit. Returns False when the client is over the limit."""
        now = self._clock()
        cutoff = now - self._window_seconds
        with self._lock:
            hits = self._hits[client_id]
            while hits and hits[0] <= cutoff:
                hits.popleft()
            if len(hits) >= self._limit:
                return False
            hits.append(now)
            return True


class AdminGuard:
    """
    Gate for operator-only operations.

    The rate ceiling is applied first, then the key. Both checks run before
    any core call, so a rejected request never has side effects.
    """

    def __init__(self, api_key: str | None, rate_limiter: SlidingWindowRateLimiter) -> None:
        self._api_key = api_key
        self._rate_limiter = rate_limiter
        self._logger = get_logger(__name__)

    @staticmethod
    def extract_key(x_api_key: str | None, authorization: str | None) -> str | None:
        """Read the key from X-API-Key, else from a Bearer Authorization header."""
        if x_api_key:
            return x_api_key
        if authorization is not None and authorization.startswith("Bearer "):
            token = authorization[len("Bearer ") :]
            return token or None
        return None

    def check(self, client_id: str, presented_key: str | None) -> None:
        """Raise unless the caller may perform an operator action."""
        if not self._rate_limiter.hit(client_id):
            self._logger.warning("Admin rate limit exceeded", extra={"client": client_id})
            raise ServiceError(
                "RATE_LIMITED",
                "Too many admin requests, try again later",
                429,
                {"retry_after_seconds": int(WINDOW_SECONDS)},
            )
        if self._api_key is None:
            raise ServiceError(
                "ADMIN_NOT_CONFIGURED",
                "Admin access is not configured",
                503,
                {},
            )
        if presented_key is None or not hmac.compare_digest(
            presented_key.encode("utf-8"), self._api_key.encode("utf-8")
        ):
            self._logger.warning("Admin authentication failed", extra={"client": client_id})
            raise ServiceError("UNAUTHORIZED", "Invalid or missing API key", 401, {})
