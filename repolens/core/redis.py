"""Cache store backends for analysis results and status.

Two interchangeable async key-value stores are provided:
- ``redis.asyncio.Redis`` for deployments with ``REDIS_URL`` set
- ``InMemoryCacheStore`` for local development and tests

Both expose the subset of the Redis command surface used by the cache layer:
``get``, ``setex``, ``delete``, ``scan_iter`` and ``aclose``. The store is
built once at process start by ``create_cache_store()`` and handed to the
services that need it; nothing in this module holds a global client.
"""

import asyncio
import logging
import re
import time
from collections.abc import AsyncIterator
from typing import Protocol

import redis.asyncio as aioredis

from repolens.core.config import Settings

logger = logging.getLogger(__name__)


class CacheStore(Protocol):
    """Async key-value store with TTL and glob key scanning."""

    async def get(self, name: str) -> str | None: ...

    async def setex(self, name: str, time: int, value: str) -> object: ...

    async def delete(self, *names: str) -> int: ...

    def scan_iter(self, match: str | None = None) -> AsyncIterator[str]: ...

    async def aclose(self) -> None: ...


def escape_glob(value: str) -> str:
    """Escape Redis glob metacharacters so ``value`` matches literally."""
    return re.sub(r"([*?\[\]\\])", r"\\\1", value)


def _glob_to_regex(pattern: str) -> re.Pattern[str]:
    """Translate a Redis-style glob (with backslash escapes) to a regex."""
    parts: list[str] = []
    i = 0
    while i < len(pattern):
        char = pattern[i]
        if char == "\\" and i + 1 < len(pattern):
            parts.append(re.escape(pattern[i + 1]))
            i += 2
            continue
        if char == "*":
            parts.append(".*")
        elif char == "?":
            parts.append(".")
        elif char == "[":
            end = pattern.find("]", i + 1)
            if end == -1:
                parts.append(re.escape(char))
            else:
                body = pattern[i + 1:end].replace("\\", "\\\\")
                parts.append(f"[{body}]")
                i = end
        else:
            parts.append(re.escape(char))
        i += 1
    return re.compile("".join(parts), re.DOTALL)


def _now() -> float:
    return time.monotonic()


class InMemoryCacheStore:
    """In-process cache store with per-key expiry.

    Expired keys are dropped lazily on access and by a periodic purge task
    that runs between ``start()`` and ``stop()``.
    """

    def __init__(self, purge_interval: float = 60.0):
        self._data: dict[str, tuple[str, float]] = {}
        self._purge_interval = purge_interval
        self._purge_task: asyncio.Task | None = None

    async def start(self) -> None:
        if self._purge_task is None:
            self._purge_task = asyncio.create_task(self._purge_loop())

    async def stop(self) -> None:
        if self._purge_task is not None:
            self._purge_task.cancel()
            try:
                await self._purge_task
            except asyncio.CancelledError:
                pass
            self._purge_task = None

    async def aclose(self) -> None:
        await self.stop()
        self._data.clear()

    async def _purge_loop(self) -> None:
        while True:
            await asyncio.sleep(self._purge_interval)
            removed = self.purge_expired()
            if removed:
                logger.debug(f"Purged {removed} expired cache keys")

    def purge_expired(self) -> int:
        now = _now()
        expired = [key for key, (_, expires_at) in self._data.items() if expires_at <= now]
        for key in expired:
            del self._data[key]
        return len(expired)

    def _live_value(self, name: str) -> str | None:
        entry = self._data.get(name)
        if entry is None:
            return None
        value, expires_at = entry
        if expires_at <= _now():
            del self._data[name]
            return None
        return value

    async def get(self, name: str) -> str | None:
        return self._live_value(name)

    async def setex(self, name: str, time: int, value: str) -> bool:
        if time <= 0:
            raise ValueError("TTL must be a positive number of seconds")
        self._data[name] = (value, _now() + time)
        return True

    async def delete(self, *names: str) -> int:
        count = 0
        for name in names:
            if self._live_value(name) is not None:
                del self._data[name]
                count += 1
        return count

    async def scan_iter(self, match: str | None = None) -> AsyncIterator[str]:
        regex = _glob_to_regex(match) if match else None
        # Snapshot so callers may delete while iterating
        for key in list(self._data):
            if self._live_value(key) is None:
                continue
            if regex is None or regex.fullmatch(key):
                yield key


def create_redis_client(url: str) -> aioredis.Redis:
    """Create an async Redis client backed by its own connection pool."""
    pool = aioredis.ConnectionPool.from_url(url, decode_responses=True)
    return aioredis.Redis(connection_pool=pool)


async def create_cache_store(settings: Settings) -> CacheStore:
    """Build the cache store for this process.

    Uses Redis when ``REDIS_URL`` is configured, otherwise a started
    ``InMemoryCacheStore``.
    """
    if settings.redis_url:
        logger.info("Using Redis cache store")
        return create_redis_client(settings.redis_url)

    logger.warning("Redis URL not provided. Using in-memory cache store.")
    store = InMemoryCacheStore()
    await store.start()
    return store


async def close_cache_store(store: CacheStore) -> None:
    """Close the cache store on shutdown."""
    await store.aclose()


# Analysis status cache
ANALYSIS_STATUS_PREFIX = "analysis:"
ANALYSIS_STATUS_TTL = 3600  # 1 hour


def get_analysis_status_key(analysis_id: str) -> str:
    """Get Redis key for the derived status of an analysis."""
    return f"{ANALYSIS_STATUS_PREFIX}{analysis_id}:status"
