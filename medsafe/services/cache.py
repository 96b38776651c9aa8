"""
Cache utilities.

TTLCache is the in-process expiring store shared by the resolver, the
interaction engine and the idempotency store. The async Redis client backs
the per-client HTTP rate limit and falls back gracefully if Redis is
unavailable.
"""

import asyncio
import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Generic, Hashable, Optional, TypeVar

import redis.asyncio as redis  # type: ignore

from medsafe.config import get_settings

logger = logging.getLogger(__name__)

T = TypeVar("T")

_redis_client: Optional[redis.Redis] = None


@dataclass(frozen=True)
class CacheEntry(Generic[T]):
    value: T
    expires_at: float


class TTLCache(Generic[T]):
    """
    Thread-safe key/value store whose entries expire after a TTL.

    Expired entries are treated as absent on read and evicted there; the
    sweeper task evicts entries nobody reads again.
    """

    def __init__(
        self,
        default_ttl: float,
        name: str = "cache",
        clock: Callable[[], float] = time.monotonic,
    ):
        self.default_ttl = default_ttl
        self.name = name
        self._clock = clock
        self._entries: Dict[Hashable, CacheEntry[T]] = {}
        self._lock = threading.Lock()
        self._sweeper: Optional[asyncio.Task] = None

    def get(self, key: Hashable) -> Optional[T]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if entry.expires_at <= self._clock():
                del self._entries[key]
                return None
            return entry.value

    def set(self, key: Hashable, value: T, ttl: Optional[float] = None) -> None:
        ttl = self.default_ttl if ttl is None else ttl
        with self._lock:
            self._entries[key] = CacheEntry(value=value, expires_at=self._clock() + ttl)

    def delete(self, key: Hashable) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def sweep(self) -> int:
        """Evict every expired entry. Returns the number evicted."""
        now = self._clock()
        with self._lock:
            expired = [k for k, e in self._entries.items() if e.expires_at <= now]
            for key in expired:
                del self._entries[key]
        if expired:
            logger.debug(f"{self.name}: swept {len(expired)} expired entries")
        return len(expired)

    def __contains__(self, key: Hashable) -> bool:
        return self.get(key) is not None

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    async def _sweep_forever(self, interval: float) -> None:
        while True:
            await asyncio.sleep(interval)
            self.sweep()

    def start_sweeper(self, interval: float) -> asyncio.Task:
        """Start the background sweep task on the running loop."""
        if self._sweeper is None or self._sweeper.done():
            self._sweeper = asyncio.get_running_loop().create_task(self._sweep_forever(interval))
        return self._sweeper

    async def stop_sweeper(self) -> None:
        if self._sweeper is None:
            return
        self._sweeper.cancel()
        try:
            await self._sweeper
        except asyncio.CancelledError:
            pass
        self._sweeper = None


async def get_redis_client() -> Optional[redis.Redis]:
    """Return a shared async Redis client if REDIS_URL is set and reachable."""
    global _redis_client
    if _redis_client:
        return _redis_client

    redis_url = get_settings().REDIS_URL
    try:
        _redis_client = redis.from_url(
            redis_url, encoding="utf-8", decode_responses=True
        )
        # quick ping to validate connection
        await _redis_client.ping()
        logger.info("Connected to Redis")
        return _redis_client
    except Exception as exc:  # pragma: no cover - network dependent
        logger.warning(f"Redis not available ({exc}); per-client rate limiting disabled")
        _redis_client = None
        return None
