"""
CacheStore - process-wide keyed cache for validated resource values.

Features:
- TTL per entry, resolved once at insert time
- Resource-specific TTL overrides
- Bounded size with insertion-order ("time-based") or access-order ("lru") eviction
- Deterministic cache keys that embed the resource id
- Async-safe operations behind a single lock
"""

import asyncio
import re
import time
from collections import OrderedDict
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import Any, Literal
from urllib.parse import quote, urlsplit

from loguru import logger
from pydantic import BaseModel, Field

CacheStrategy = Literal["time-based", "lru"]

# Parameter names that identify a resource instance, in lookup order.
RESOURCE_ID_PARAMS = ("system_id", "id", "name")


class CacheControlDirectives(BaseModel):
    """Extra Cache-Control directives emitted next to max-age."""

    private: bool = False
    must_revalidate: bool = False
    immutable: bool = False


class CacheOptions(BaseModel):
    """Per-resource cache options."""

    enabled: bool = True
    ttl_seconds: int | None = Field(default=None, gt=0)
    include_query_params: bool = True
    cache_control: CacheControlDirectives = Field(
        default_factory=CacheControlDirectives
    )


@dataclass
class CacheConfig:
    """Construction-time configuration of a CacheStore."""

    enabled: bool = True
    strategy: CacheStrategy = "time-based"
    max_size: int = 1000
    max_age_seconds: int = 300
    per_resource_ttl: dict[str, int] = field(default_factory=dict)


@dataclass
class CacheEntry:
    """A single cache entry with metadata."""

    key: str
    value: Any
    resource_name: str
    created_at: float
    ttl_seconds: int

    def is_expired(self, now: float) -> bool:
        """Check if entry is past its TTL."""
        return now - self.created_at > self.ttl_seconds

    def age(self, now: float) -> float:
        return max(0.0, now - self.created_at)


class CacheStore:
    """
    Keyed TTL cache shared by every resource pipeline in the process.

    Constructed once at startup and injected; tests call ``reset()``.

    Usage:
        cache = CacheStore(CacheConfig(max_age_seconds=60))

        key = cache.generate_key("Machine", uri, params, options)
        value = await cache.get(key)
        if value is None:
            value = await fetch()
            await cache.set(key, value, "Machine", options)
    """

    def __init__(
        self,
        config: CacheConfig | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        config = config or CacheConfig()
        if config.max_size <= 0:
            raise ValueError("max_size must be positive")
        if config.max_age_seconds <= 0:
            raise ValueError("max_age_seconds must be positive")

        self._entries: OrderedDict[str, CacheEntry] = OrderedDict()
        self._enabled = config.enabled
        self._strategy: CacheStrategy = config.strategy
        self._max_size = config.max_size
        self._default_ttl = config.max_age_seconds
        self._resource_ttl: dict[str, int] = dict(config.per_resource_ttl)
        self._clock = clock
        self._lock = asyncio.Lock()
        self._stats = CacheStats()

        logger.info(
            f"Initialized {self._strategy} cache "
            f"(max_size={self._max_size}, default_ttl={self._default_ttl}s)"
        )

    @property
    def strategy(self) -> CacheStrategy:
        return self._strategy

    @property
    def default_ttl(self) -> int:
        return self._default_ttl

    # Keys

    def generate_key(
        self,
        resource_name: str,
        uri: str,
        params: Mapping[str, Any] | None = None,
        options: CacheOptions | None = None,
        id_param: str | None = None,
    ) -> str:
        """
        Generate a cache key.

        Format: ``<resource>:<host/path>[:<resource id>][:<k=v&...>]`` with the
        id, parameter names and values percent-encoded. The
        query part holds the remaining parameters sorted by name, so the
        order they were supplied in never changes the key.

        Args:
            resource_name: Name of the resource
            uri: Request URI (only host and path are used)
            params: Validated request parameters
            options: Cache options of the resource
            id_param: Parameter holding the resource id; when omitted the
                first of RESOURCE_ID_PARAMS present is used

        Returns:
            Cache key
        """
        parts = urlsplit(uri)
        key = f"{resource_name}:{parts.hostname or ''}{parts.path}"

        params = params or {}
        if id_param is None:
            id_param = next((p for p in RESOURCE_ID_PARAMS if params.get(p)), None)
        if id_param and params.get(id_param):
            key += f":{_encode(params[id_param])}"

        include_query = options.include_query_params if options else True
        if include_query:
            pairs = [
                f"{_encode(k)}={_encode(v)}"
                for k, v in sorted(params.items())
                if k != id_param and v is not None
            ]
            if pairs:
                key += ":" + "&".join(pairs)

        return key

    # Reads and writes

    async def get(self, key: str) -> Any | None:
        """Get a cached value, or None if absent or expired."""
        entry = await self.get_entry(key)
        return entry.value if entry else None

    async def get_entry(self, key: str) -> CacheEntry | None:
        """
        Get a cache entry.

        Expired entries are removed and reported as absent. Under the
        ``lru`` strategy a hit marks the entry as most recently used.
        """
        if not self._enabled:
            return None

        async with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self._stats.misses += 1
                logger.debug(f"Cache miss: {key}")
                return None

            if entry.is_expired(self._clock()):
                del self._entries[key]
                self._stats.misses += 1
                self._stats.expirations += 1
                logger.debug(f"Cache miss (expired): {key}")
                return None

            if self._strategy == "lru":
                self._entries.move_to_end(key)
            self._stats.hits += 1
            logger.debug(f"Cache hit: {key}")
            return entry

    async def set(
        self,
        key: str,
        value: Any,
        resource_name: str,
        options: CacheOptions | None = None,
    ) -> CacheEntry | None:
        """
        Store a value.

        Args:
            key: Cache key from generate_key()
            value: Validated value to cache
            resource_name: Resource the value belongs to
            options: Cache options of the resource

        Returns:
            The stored entry, or None when caching is disabled
        """
        if not self._enabled or (options is not None and not options.enabled):
            return None

        ttl = self.resolve_ttl(resource_name, options)
        entry = CacheEntry(
            key=key,
            value=value,
            resource_name=resource_name,
            created_at=self._clock(),
            ttl_seconds=ttl,
        )

        async with self._lock:
            # A re-set entry counts as newly inserted under both strategies.
            self._entries.pop(key, None)
            self._entries[key] = entry
            self._evict_overflow()
            logger.debug(f"Cache set: {key}, TTL: {ttl}s")

        return entry

    async def delete(self, key: str) -> bool:
        """Delete a specific key from cache."""
        async with self._lock:
            if self._entries.pop(key, None) is not None:
                logger.debug(f"Cache delete: {key}")
                return True
            return False

    # Invalidation

    async def invalidate(self, pattern: str | re.Pattern[str]) -> int:
        """
        Invalidate all keys matching a regular expression.

        Returns:
            Number of entries invalidated
        """
        regex = re.compile(pattern) if isinstance(pattern, str) else pattern
        async with self._lock:
            doomed = [k for k in self._entries if regex.search(k)]
            for key in doomed:
                del self._entries[key]

        if doomed:
            logger.debug(
                f"Invalidated {len(doomed)} cache entries matching {regex.pattern}"
            )
        return len(doomed)

    async def invalidate_resource(self, resource_name: str) -> int:
        """Remove every entry stored for a resource. Returns the count."""
        async with self._lock:
            doomed = [
                k for k, e in self._entries.items() if e.resource_name == resource_name
            ]
            for key in doomed:
                del self._entries[key]

        logger.debug(f"Invalidated {len(doomed)} cache entries for {resource_name}")
        return len(doomed)

    async def invalidate_resource_by_id(
        self, resource_name: str, resource_id: str
    ) -> int:
        """Remove entries whose key was built for this resource and id."""
        encoded_id = re.escape(_encode(resource_id))
        pattern = re.compile(
            rf"^{re.escape(resource_name)}:(?:[^:]*:)?{encoded_id}(?::|$)"
        )
        return await self.invalidate(pattern)

    async def cleanup_expired(self) -> int:
        """Remove all expired entries. Returns count of removed entries."""
        now = self._clock()
        async with self._lock:
            expired = [k for k, e in self._entries.items() if e.is_expired(now)]
            for key in expired:
                del self._entries[key]
            self._stats.expirations += len(expired)

        if expired:
            logger.debug(f"Removed {len(expired)} expired entries from cache")
        return len(expired)

    async def clear(self) -> None:
        """Clear all cache entries."""
        async with self._lock:
            count = len(self._entries)
            self._entries.clear()
        logger.debug(f"Cache cleared, {count} entries removed")

    async def reset(self) -> None:
        """Drop all entries and statistics. Intended for test isolation."""
        await self.clear()
        self._stats = CacheStats()

    # TTL and switches

    def is_enabled(self) -> bool:
        return self._enabled

    def set_enabled(self, enabled: bool) -> None:
        self._enabled = enabled
        logger.info(f"Cache {'enabled' if enabled else 'disabled'}")

    def set_default_ttl(self, ttl_seconds: int) -> None:
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        self._default_ttl = ttl_seconds
        logger.info(f"Default cache TTL set to {ttl_seconds} seconds")

    def get_resource_ttl(self, resource_name: str) -> int:
        """Resource-specific TTL if configured, else the default TTL."""
        ttl = self._resource_ttl.get(resource_name)
        return ttl if ttl is not None else self._default_ttl

    def set_resource_ttl(self, resource_name: str, ttl_seconds: int) -> None:
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        self._resource_ttl[resource_name] = ttl_seconds
        logger.info(f"Cache TTL for {resource_name} set to {ttl_seconds} seconds")

    def resolve_ttl(self, resource_name: str, options: CacheOptions | None = None) -> int:
        """Effective TTL: resource override, then options, then default."""
        override = self._resource_ttl.get(resource_name)
        if override is not None:
            return override
        if options is not None and options.ttl_seconds is not None:
            return options.ttl_seconds
        return self._default_ttl

    # Introspection

    def size(self) -> int:
        return len(self._entries)

    def age_of(self, entry: CacheEntry) -> float:
        """Seconds since the entry was stored."""
        return entry.age(self._clock())

    def get_stats(self) -> "CacheStats":
        """Get cache statistics."""
        self._stats.size = len(self._entries)
        self._stats.max_size = self._max_size
        return self._stats

    def _evict_overflow(self) -> None:
        """Evict from the front of the order until within max_size."""
        while len(self._entries) > self._max_size:
            oldest_key, _ = self._entries.popitem(last=False)
            self._stats.evictions += 1
            logger.debug(f"Cache full, evicted {oldest_key}")


@dataclass
class CacheStats:
    """Cache statistics."""

    hits: int = 0
    misses: int = 0
    expirations: int = 0
    evictions: int = 0
    size: int = 0
    max_size: int = 0

    @property
    def hit_rate(self) -> float:
        """Calculate cache hit rate."""
        total = self.hits + self.misses
        if total == 0:
            return 0.0
        return self.hits / total

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "hits": self.hits,
            "misses": self.misses,
            "expirations": self.expirations,
            "evictions": self.evictions,
            "size": self.size,
            "max_size": self.max_size,
            "hit_rate": f"{self.hit_rate:.2%}",
        }


def _stringify(value: Any) -> str:
    if isinstance(value, (list, tuple)):
        return ",".join(str(v) for v in value)
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _encode(value: Any) -> str:
    """Percent-encode a key component so separators in values stay unambiguous."""
    if isinstance(value, (list, tuple)):
        return ",".join(quote(_stringify(v), safe="") for v in value)
    return quote(_stringify(value), safe="")
