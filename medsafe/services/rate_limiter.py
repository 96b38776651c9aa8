"""
Rate limiting.

SourceThrottle spaces outbound calls to each external source; callers wait
for the window instead of failing. rate_limit is a Redis fixed-window limit
on inbound HTTP requests per client.
"""
import asyncio
import logging
import time
from typing import Awaitable, Callable, Dict, TypeVar

from fastapi import Request

from medsafe.exceptions import RateLimitError
from medsafe.services.cache import get_redis_client

logger = logging.getLogger(__name__)

T = TypeVar("T")


class SourceThrottle:
    """Minimum interval between calls to the same external source."""

    def __init__(
        self,
        min_interval: float = 1.0,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.min_interval = min_interval
        self._clock = clock
        self._sleep = sleep
        self._last_call: Dict[str, float] = {}
        self._locks: Dict[str, asyncio.Lock] = {}

    def _lock_for(self, source: str) -> asyncio.Lock:
        lock = self._locks.get(source)
        if lock is None:
            lock = self._locks[source] = asyncio.Lock()
        return lock

    async def wait(self, source: str) -> float:
        """
        Block until a call to source is allowed, then claim the slot.

        Returns the number of seconds waited.
        """
        async with self._lock_for(source):
            last = self._last_call.get(source)
            waited = 0.0
            if last is not None:
                remaining = self.min_interval - (self._clock() - last)
                if remaining > 0:
                    logger.debug(f"Throttling {source} for {remaining:.2f}s")
                    await self._sleep(remaining)
                    waited = remaining
            self._last_call[source] = self._clock()
            return waited

    async def call(self, source: str, fn: Callable[..., Awaitable[T]], *args, **kwargs) -> T:
        await self.wait(source)
        return await fn(*args, **kwargs)


async def rate_limit(request: Request, limit: int = 60, window_seconds: int = 60, key_prefix: str = "rl") -> None:
    """
    Apply a fixed-window rate limit based on client IP.

    Args:
        request: FastAPI request
        limit: allowed requests per window
        window_seconds: window size in seconds
        key_prefix: redis key prefix
    """
    client_ip = request.client.host if request.client else "unknown"
    key = f"{key_prefix}:{client_ip}"

    client = await get_redis_client()
    if not client:
        return  # fail-open if no redis

    try:
        current = await client.incr(key)
        if current == 1:
            await client.expire(key, window_seconds)
        if current > limit:
            raise RateLimitError()
    except RateLimitError:
        raise
    except Exception as exc:  # pragma: no cover - network dependent
        logger.debug(f"Rate limit check failed: {exc}")
        return
