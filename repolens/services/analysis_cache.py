"""Time-boxed cache for analysis results.

Key scheme (shared with earlier deployments, must not change):

    repo:{repo_url}:summary        repository analysis
    repo:{repo_url}:dirs:{path}    directory analysis
    repo:{repo_url}:files:{path}   file analysis

The cache is an optimization only. Store failures degrade to misses on read
and are logged and dropped on write/delete.
"""

import json
import logging
from typing import Any

from repolens.core.redis import CacheStore, escape_glob
from repolens.schemas.analysis import Granularity
from repolens.schemas.common import BaseSchema

logger = logging.getLogger(__name__)

DEFAULT_TTL = 86400  # 24 hours


class CacheUnavailableError(Exception):
    """Raised internally when the backing store cannot be reached."""
    pass


def repo_prefix(repo_url: str) -> str:
    return f"repo:{repo_url}:"


def cache_key(repo_url: str, granularity: Granularity | str, path: str | None = None) -> str:
    """Build the cache key for one analysis result."""
    granularity = Granularity(granularity)
    if granularity is Granularity.REPOSITORY:
        return f"repo:{repo_url}:summary"
    if granularity is Granularity.FILE:
        return f"repo:{repo_url}:files:{path}"
    return f"repo:{repo_url}:dirs:{path}"


class AnalysisCache:
    """Cache of analysis results keyed by repository, granularity and path."""

    def __init__(self, store: CacheStore, default_ttl: int = DEFAULT_TTL):
        self.store = store
        self.default_ttl = default_ttl

    async def get(
        self,
        repo_url: str,
        granularity: Granularity | str,
        path: str | None = None,
    ) -> dict[str, Any] | None:
        """Return the cached value, or ``None`` on miss or store failure."""
        key = cache_key(repo_url, granularity, path)
        try:
            cached = await self.store.get(key)
        except Exception as e:
            logger.warning(f"Cache read failed for {key}, treating as miss: {e}")
            return None

        if cached is None:
            logger.debug(f"Cache miss: {key}")
            return None

        try:
            value = json.loads(cached)
        except (TypeError, json.JSONDecodeError):
            logger.warning(f"Discarding undecodable cache entry {key}")
            return None

        logger.debug(f"Cache hit: {key}")
        return value

    async def put(
        self,
        repo_url: str,
        granularity: Granularity | str,
        value: BaseSchema | dict[str, Any],
        path: str | None = None,
        ttl: int | None = None,
    ) -> bool:
        """Store a value. Returns ``False`` if the write was dropped."""
        key = cache_key(repo_url, granularity, path)
        if isinstance(value, BaseSchema):
            payload = value.to_cache()
        else:
            payload = json.dumps(value, default=str)

        try:
            await self.store.setex(key, ttl or self.default_ttl, payload)
        except Exception as e:
            logger.warning(f"Cache write dropped for {key}: {e}")
            return False
        return True

    async def invalidate(
        self,
        repo_url: str,
        granularity: Granularity | str | None = None,
        path: str | None = None,
    ) -> int:
        """Remove cached entries.

        - no granularity: every key under the repository prefix
        - repository: the summary key
        - file + path: that file's key
        - directory + path: the directory key and every file key nested
          under ``{path}/``

        Returns the number of keys removed (0 when the store is unavailable).
        """
        try:
            if granularity is None:
                keys = await self._scan(escape_glob(repo_prefix(repo_url)) + "*")
                return await self._delete(keys)

            granularity = Granularity(granularity)
            if granularity is Granularity.REPOSITORY:
                return await self._delete([cache_key(repo_url, granularity)])

            if not path:
                return 0

            if granularity is Granularity.FILE:
                return await self._delete([cache_key(repo_url, granularity, path)])

            nested_pattern = escape_glob(f"repo:{repo_url}:files:{path}/") + "*"
            keys = [cache_key(repo_url, granularity, path)] + await self._scan(nested_pattern)
            return await self._delete(keys)
        except CacheUnavailableError as e:
            logger.warning(f"Cache invalidation dropped for {repo_url}: {e}")
            return 0

    async def _scan(self, pattern: str) -> list[str]:
        try:
            return [key async for key in self.store.scan_iter(match=pattern)]
        except Exception as e:
            raise CacheUnavailableError(str(e)) from e

    async def _delete(self, keys: list[str]) -> int:
        if not keys:
            return 0
        try:
            return await self.store.delete(*keys)
        except Exception as e:
            raise CacheUnavailableError(str(e)) from e
