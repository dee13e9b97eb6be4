"""
Request rate limiting behind a single interface: allow(key) -> bool.

InMemoryRateLimiter serves a single process; UpstashRateLimiter shares the
counters across instances. Call sites only see RateLimiter, so the backend is
chosen once at startup by build_rate_limiter().
"""

import asyncio
import time
from abc import ABC, abstractmethod
from typing import Callable, Optional

import structlog

from fxengine.config import settings
from fxengine.services.cache import UpstashClient, cache

logger = structlog.get_logger()


class RateLimiter(ABC):
    limit: int
    window_seconds: int

    @abstractmethod
    async def allow(self, key: str) -> bool:
        """Count one request for `key`; False once the window is exhausted."""


class InMemoryRateLimiter(RateLimiter):
    """Fixed-window counter per key; expired windows are evicted."""

    def __init__(
        self,
        limit: int,
        window_seconds: int,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.limit = limit
        self.window_seconds = window_seconds
        self._clock = clock
        self._windows: dict[str, tuple[int, float]] = {}
        self._last_eviction = clock()
        self._lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._windows)

    def _evict_expired(self, now: float):
        if now - self._last_eviction < self.window_seconds:
            return
        expired = [
            key for key, (_, started) in self._windows.items()
            if now - started >= self.window_seconds
        ]
        for key in expired:
            del self._windows[key]
        self._last_eviction = now

    async def allow(self, key: str) -> bool:
        async with self._lock:
            now = self._clock()
            self._evict_expired(now)

            count, started = self._windows.get(key, (0, now))
            if now - started >= self.window_seconds:
                count, started = 0, now
            if count >= self.limit:
                return False
            self._windows[key] = (count + 1, started)
            return True


class UpstashRateLimiter(RateLimiter):
    """INCR + EXPIRE in one pipeline; fails open when Redis is unreachable."""

    def __init__(self, client: UpstashClient, limit: int, window_seconds: int):
        self.client = client
        self.limit = limit
        self.window_seconds = window_seconds

    async def allow(self, key: str) -> bool:
        try:
            results = await self.client.pipeline([
                ["INCR", key],
                ["EXPIRE", key, self.window_seconds, "NX"],
            ])
            current = results[0].get("result", 0) if isinstance(results[0], dict) else 0
        except Exception as e:
            logger.warning("rate_limit_cache_error", error=str(e))
            return True
        return current <= self.limit


def build_rate_limiter(
    limit: Optional[int] = None,
    window_seconds: Optional[int] = None,
    client: Optional[UpstashClient] = None,
) -> RateLimiter:
    limit = limit if limit is not None else settings.RATE_LIMIT_REQUESTS
    window = window_seconds if window_seconds is not None else settings.RATE_LIMIT_WINDOW_SECONDS
    client = client or cache
    if client.configured:
        logger.info("rate_limiter_backend", backend="upstash")
        return UpstashRateLimiter(client, limit, window)
    logger.info("rate_limiter_backend", backend="memory")
    return InMemoryRateLimiter(limit, window)
