import json
import logging
import time
from abc import ABC, abstractmethod

import redis.asyncio as redis
from redis.exceptions import RedisError

from identity.exceptions import CacheUnavailableError

logger = logging.getLogger(__name__)

USER_KEY_PREFIX = "user:"
SESSION_KEY_PREFIX = "user_session:"


def user_cache_key(user_id: int) -> str:
    return f"{USER_KEY_PREFIX}{user_id}"


def session_cache_key(user_id: int) -> str:
    return f"{SESSION_KEY_PREFIX}{user_id}"


class CacheBackend(ABC):
    """
    TTL-aware key-value store used as a cache-aside accelerator and as the
    session-token registry.

    Every primitive raises CacheUnavailableError when the backend cannot be
    reached.  A missing key is never an error: ``get`` returns None.
    Entries are expendable; flushing the whole cache only costs latency.
    """

    def __init__(self) -> None:
        self._hits: int = 0
        self._misses: int = 0

    # ------------------------------------------------------------------
    # Primitives
    # ------------------------------------------------------------------

    @abstractmethod
    async def set(self, key: str, value: str, ttl: int | None = None) -> None: ...

    @abstractmethod
    async def get(self, key: str) -> str | None: ...

    @abstractmethod
    async def delete(self, *keys: str) -> int: ...

    @abstractmethod
    async def exists(self, *keys: str) -> int: ...

    @abstractmethod
    async def expire(self, key: str, ttl: int) -> bool: ...

    @abstractmethod
    async def increment(self, key: str) -> int: ...

    @staticmethod
    def _require_positive_ttl(ttl: int | None) -> None:
        if ttl is not None and ttl <= 0:
            raise ValueError(f"ttl must be a positive number of seconds, got {ttl!r}")

    # ------------------------------------------------------------------
    # JSON helpers
    # ------------------------------------------------------------------

    async def set_json(self, key: str, value: dict | list, ttl: int | None = None) -> None:
        await self.set(key, json.dumps(value, default=str), ttl)

    async def get_json(self, key: str) -> dict | list | None:
        """
        Return the decoded value for *key*, or None on a miss.

        An entry that is not valid JSON counts as a miss.
        """
        data = await self.get(key)
        if data is None:
            self._misses += 1
            return None
        try:
            value = json.loads(data)
        except ValueError:
            logger.warning("Cache entry for key=%r is not valid JSON; treating as miss", key)
            self._misses += 1
            return None
        self._hits += 1
        return value

    # ------------------------------------------------------------------
    # Observability
    # ------------------------------------------------------------------

    @property
    def stats(self) -> dict:
        """Return a snapshot of JSON lookup hit/miss counters."""
        total = self._hits + self._misses
        return {
            "hits": self._hits,
            "misses": self._misses,
            "hit_rate": round(self._hits / total * 100, 1) if total > 0 else 0.0,
        }


class RedisCache(CacheBackend):
    """Cache backend over a pooled ``redis.asyncio`` client."""

    def __init__(self, url: str, socket_timeout: float = 2) -> None:
        super().__init__()
        self._url = url
        self._socket_timeout = socket_timeout
        self._redis: redis.Redis | None = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def connect(self) -> None:
        """Open the connection pool.  Called once at application startup."""
        self._redis = redis.from_url(
            self._url,
            decode_responses=True,
            socket_connect_timeout=self._socket_timeout,
            socket_timeout=self._socket_timeout,
        )
        # A failed ping is not fatal: the service degrades to store-only reads.
        try:
            await self._redis.ping()
            logger.info("Redis connected: %s", self._url)
        except RedisError as exc:
            logger.warning("Redis ping failed, cache degraded: %s", exc)

    async def disconnect(self) -> None:
        """Close the connection pool.  Called once at application shutdown."""
        if self._redis:
            await self._redis.aclose()
            self._redis = None

    def _client(self, operation: str, key: str | None = None) -> redis.Redis:
        if self._redis is None:
            raise CacheUnavailableError(operation, key)
        return self._redis

    # ------------------------------------------------------------------
    # Primitives
    # ------------------------------------------------------------------

    async def set(self, key: str, value: str, ttl: int | None = None) -> None:
        self._require_positive_ttl(ttl)
        client = self._client("SET", key)
        try:
            await client.set(key, value, ex=ttl)
        except RedisError as exc:
            raise CacheUnavailableError("SET", key) from exc

    async def get(self, key: str) -> str | None:
        client = self._client("GET", key)
        try:
            return await client.get(key)
        except RedisError as exc:
            raise CacheUnavailableError("GET", key) from exc

    async def delete(self, *keys: str) -> int:
        client = self._client("DEL", ",".join(keys))
        try:
            return await client.delete(*keys)
        except RedisError as exc:
            raise CacheUnavailableError("DEL", ",".join(keys)) from exc

    async def exists(self, *keys: str) -> int:
        client = self._client("EXISTS", ",".join(keys))
        try:
            return await client.exists(*keys)
        except RedisError as exc:
            raise CacheUnavailableError("EXISTS", ",".join(keys)) from exc

    async def expire(self, key: str, ttl: int) -> bool:
        client = self._client("EXPIRE", key)
        try:
            return bool(await client.expire(key, ttl))
        except RedisError as exc:
            raise CacheUnavailableError("EXPIRE", key) from exc

    async def increment(self, key: str) -> int:
        client = self._client("INCR", key)
        try:
            return await client.incr(key)
        except RedisError as exc:
            raise CacheUnavailableError("INCR", key) from exc


class MemoryCache(CacheBackend):
    """
    In-process cache backend with the same semantics as RedisCache.

    Intended for tests and local runs without Redis.  Setting
    ``available = False`` makes every primitive raise CacheUnavailableError,
    which simulates a backend outage.
    """

    def __init__(self, clock=time.monotonic) -> None:
        super().__init__()
        self._clock = clock
        self._data: dict[str, tuple[str, float | None]] = {}
        self.available = True

    def _check(self, operation: str, key: str | None = None) -> None:
        if not self.available:
            raise CacheUnavailableError(operation, key)

    def _live(self, key: str) -> tuple[str, float | None] | None:
        entry = self._data.get(key)
        if entry is None:
            return None
        _, expires_at = entry
        if expires_at is not None and expires_at <= self._clock():
            del self._data[key]
            return None
        return entry

    async def set(self, key: str, value: str, ttl: int | None = None) -> None:
        self._check("SET", key)
        self._require_positive_ttl(ttl)
        expires_at = self._clock() + ttl if ttl is not None else None
        self._data[key] = (str(value), expires_at)

    async def get(self, key: str) -> str | None:
        self._check("GET", key)
        entry = self._live(key)
        return entry[0] if entry else None

    async def delete(self, *keys: str) -> int:
        self._check("DEL", ",".join(keys))
        removed = 0
        for key in keys:
            if self._live(key) is not None:
                del self._data[key]
                removed += 1
        return removed

    async def exists(self, *keys: str) -> int:
        self._check("EXISTS", ",".join(keys))
        return sum(1 for key in keys if self._live(key) is not None)

    async def expire(self, key: str, ttl: int) -> bool:
        self._check("EXPIRE", key)
        entry = self._live(key)
        if entry is None:
            return False
        if ttl <= 0:
            del self._data[key]
        else:
            self._data[key] = (entry[0], self._clock() + ttl)
        return True

    async def increment(self, key: str) -> int:
        self._check("INCR", key)
        entry = self._live(key)
        if entry is None:
            value, expires_at = 0, None
        else:
            try:
                value = int(entry[0])
            except ValueError as exc:
                raise ValueError(f"value at key={key!r} is not an integer") from exc
            expires_at = entry[1]
        value += 1
        self._data[key] = (str(value), expires_at)
        return value

    def ttl(self, key: str) -> float | None:
        """Seconds until *key* expires, or None when absent or persistent."""
        entry = self._live(key)
        if entry is None or entry[1] is None:
            return None
        return entry[1] - self._clock()

    def flush(self) -> None:
        self._data.clear()
