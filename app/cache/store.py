import fnmatch
import json
import logging
import time
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable

from cachetools import TLRUCache
from redis.asyncio import Redis, RedisError

from app.core.config import Settings
from app.core.errors import CacheUnavailableError

logger = logging.getLogger(__name__)


class CacheStore(ABC):
    """
    Key-value store used by the read-through cache.

    Values are JSON-compatible structures; TTLs are milliseconds. Any
    operation may raise CacheUnavailableError when the backend is down.
    A backend may drop an entry before its TTL (memory limits); callers
    see that as an ordinary miss and recompute.
    """

    backend = "abstract"

    @abstractmethod
    async def get(self, key: str) -> Any | None: ...

    @abstractmethod
    async def set(self, key: str, value: Any, ttl: int) -> None: ...

    @abstractmethod
    async def delete(self, key: str) -> None: ...

    async def scan_keys(self, pattern: str) -> list[str]:
        """Keys matching a glob pattern. Backends without scan return []."""
        return []

    async def ping(self) -> bool:
        return True

    async def close(self) -> None:
        return None

    async def get_or_compute(
        self, key: str, compute: Callable[[], Awaitable[Any]], ttl: int
    ) -> Any:
        """
        Return the cached value, or compute, store and return it.

        There is no lock around the miss path: concurrent misses for the same
        key each run compute() and the last write wins, so compute() must be
        idempotent. None results are returned but never stored.
        """
        cached = await self.get(key)
        if cached is not None:
            logger.debug(f"Cache hit: {key}")
            return cached

        logger.debug(f"Cache miss, loading from source: {key}")
        value = await compute()
        if value is None:
            return None
        await self.set(key, value, ttl)
        return value

    def _serialize(self, value: Any) -> str:
        try:
            return json.dumps(value, default=str)
        except (TypeError, ValueError) as e:
            logger.error(f"Serialization failed: {e}")
            raise

    def _deserialize(self, raw: str) -> Any:
        try:
            return json.loads(raw)
        except json.JSONDecodeError:
            # Return raw string if not valid JSON
            return raw


def _entry_expiry(key: str, entry: tuple[float, str], now: float) -> float:
    ttl_seconds, _ = entry
    return now + ttl_seconds


class MemoryCacheStore(CacheStore):
    """
    Process-local store; every entry expires after its own TTL.

    `maxsize` only caps memory use. Entries pushed out early by the cap are
    plain misses, not a caching policy.
    """

    backend = "memory"

    def __init__(self, maxsize: int = 10_000, timer: Callable[[], float] = time.monotonic):
        self._entries = TLRUCache(maxsize=maxsize, ttu=_entry_expiry, timer=timer)

    async def get(self, key: str) -> Any | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        return self._deserialize(entry[1])

    async def set(self, key: str, value: Any, ttl: int) -> None:
        self._entries[key] = (ttl / 1000, self._serialize(value))

    async def delete(self, key: str) -> None:
        self._entries.pop(key, None)

    async def scan_keys(self, pattern: str) -> list[str]:
        self._entries.expire()
        return [key for key in list(self._entries) if fnmatch.fnmatchcase(key, pattern)]


class RedisCacheStore(CacheStore):
    """
    Redis-backed store.

    Keys are namespaced with `namespace` on the wire; callers only ever see
    un-namespaced keys. Backend errors surface as CacheUnavailableError.
    """

    backend = "redis"

    def __init__(self, redis: Redis, namespace: str = ""):
        self._redis = redis
        self._namespace = namespace

    @classmethod
    def from_settings(cls, settings: Settings) -> "RedisCacheStore":
        redis = Redis.from_url(
            settings.redis_dsn,
            encoding="utf-8",
            decode_responses=True,
            max_connections=settings.redis_pool_size,
            socket_connect_timeout=5,
            socket_keepalive=True,
            health_check_interval=30,
        )
        return cls(redis, namespace=settings.cache_namespace)

    def _key(self, key: str) -> str:
        return f"{self._namespace}{key}"

    async def get(self, key: str) -> Any | None:
        try:
            raw = await self._redis.get(self._key(key))
        except (RedisError, OSError) as e:
            raise CacheUnavailableError(f"Redis GET failed for {key}: {e}") from e
        if raw is None:
            return None
        return self._deserialize(raw)

    async def set(self, key: str, value: Any, ttl: int) -> None:
        data = self._serialize(value)
        try:
            await self._redis.set(self._key(key), data, px=ttl)
        except (RedisError, OSError) as e:
            raise CacheUnavailableError(f"Redis SET failed for {key}: {e}") from e

    async def delete(self, key: str) -> None:
        try:
            await self._redis.delete(self._key(key))
        except (RedisError, OSError) as e:
            raise CacheUnavailableError(f"Redis DELETE failed for {key}: {e}") from e

    async def scan_keys(self, pattern: str) -> list[str]:
        keys = []
        try:
            async for key in self._redis.scan_iter(match=self._key(pattern), count=100):
                keys.append(key[len(self._namespace):])
        except (RedisError, OSError) as e:
            raise CacheUnavailableError(f"Redis SCAN failed for {pattern}: {e}") from e
        return keys

    async def ping(self) -> bool:
        try:
            return bool(await self._redis.ping())
        except (RedisError, OSError) as e:
            raise CacheUnavailableError(f"Redis PING failed: {e}") from e

    async def close(self) -> None:
        try:
            await self._redis.aclose()
            logger.info("Redis connection closed")
        except (RedisError, OSError) as e:
            logger.error(f"Error closing Redis: {e}")


async def build_cache_store(settings: Settings) -> CacheStore:
    """
    Build the configured store.

    If Redis is configured but unreachable at startup, fall back to the
    in-process store so the service still runs (degraded, per-worker cache).
    """
    if settings.cache_backend == "memory":
        logger.info("Using in-process cache store")
        return MemoryCacheStore(maxsize=settings.memory_cache_maxsize)

    store = RedisCacheStore.from_settings(settings)
    try:
        await store.ping()
        logger.info("Redis connection established")
        return store
    except CacheUnavailableError as e:
        logger.error(f"Redis initialization failed, using in-process cache: {e}")
        await store.close()
        return MemoryCacheStore(maxsize=settings.memory_cache_maxsize)
