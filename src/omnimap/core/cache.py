"""
Key-value cache backends for the external tier.

A backend stores JSON-serializable values under string keys with an
optional TTL and can enumerate keys by prefix. Tenant keys, the payload
shape and the failure policy belong to the Cache Manager one layer up.

    CacheBackend (Protocol)
    ├── InMemoryCache : single process, bounded LRU
    └── RedisCache    : shared between API workers

Example:
    >>> cache = InMemoryCache(max_size=100, default_ttl_seconds=3600)
    >>> cache.set("component_data:00D1", {"totalComponents": 3})
    >>> cache.keys("component_data:")
    ['component_data:00D1']
"""

from __future__ import annotations

import json
import threading
import time
from collections import OrderedDict
from typing import Any, Protocol

import redis


class CacheBackend(Protocol):
    """What the external cache port needs from a store."""

    def get(self, key: str) -> Any | None: ...

    def set(self, key: str, value: Any, *, ttl_seconds: int | None = None) -> None: ...

    def delete(self, key: str) -> None: ...

    def exists(self, key: str) -> bool: ...

    def keys(self, prefix: str = "") -> list[str]: ...

    def ping(self) -> bool: ...


# ------------------------------------------------------------------ #
# In-Memory Cache
# ------------------------------------------------------------------ #


class InMemoryCache:
    """Bounded LRU store with per-key expiry.

    Values are kept as JSON text, so every read returns a fresh copy the
    way a Redis round trip would.
    """

    def __init__(self, *, max_size: int = 1_000, default_ttl_seconds: int | None = 3600):
        # key -> (json text, expires_at or None); most recently used last
        self._entries: OrderedDict[str, tuple[str, float | None]] = OrderedDict()
        self._max_size = max_size
        self._default_ttl = default_ttl_seconds
        self._lock = threading.Lock()

    def get(self, key: str) -> Any | None:
        with self._lock:
            entry = self._live_entry(key)
            if entry is None:
                return None
            self._entries.move_to_end(key)
        return json.loads(entry[0])

    def set(self, key: str, value: Any, *, ttl_seconds: int | None = None) -> None:
        ttl = self._default_ttl if ttl_seconds is None else ttl_seconds
        entry = (json.dumps(value), time.time() + ttl if ttl else None)
        with self._lock:
            self._entries[key] = entry
            self._entries.move_to_end(key)
            while len(self._entries) > self._max_size:
                self._entries.popitem(last=False)

    def delete(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def exists(self, key: str) -> bool:
        with self._lock:
            return self._live_entry(key) is not None

    def keys(self, prefix: str = "") -> list[str]:
        with self._lock:
            return [k for k in list(self._entries) if k.startswith(prefix) and self._live_entry(k) is not None]

    def ping(self) -> bool:
        return True

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def size(self) -> int:
        return len(self._entries)

    def _live_entry(self, key: str) -> tuple[str, float | None] | None:
        entry = self._entries.get(key)
        if entry is not None and entry[1] is not None and time.time() > entry[1]:
            del self._entries[key]
            return None
        return entry


# ------------------------------------------------------------------ #
# Redis Cache
# ------------------------------------------------------------------ #


class RedisCache:
    """Redis-backed distributed cache.

    Thread-safe and process-safe via Redis atomic operations. Connection
    and command failures surface as ``redis.RedisError``; the Cache
    Manager turns them into ``CacheUnavailableError`` results.

    Example:
        cache = RedisCache("redis://localhost:6379/0", default_ttl_seconds=172800)
        cache.set("component_data:00D1", payload)
    """

    def __init__(
        self,
        url: str = "redis://localhost:6379/0",
        *,
        default_ttl_seconds: int | None = 3600,
        socket_timeout: float | None = 5.0,
    ):
        self._client = redis.from_url(
            url,
            decode_responses=False,
            socket_timeout=socket_timeout,
            socket_connect_timeout=socket_timeout,
        )
        self._default_ttl = default_ttl_seconds

    def get(self, key: str) -> Any | None:
        """Retrieve a value by key."""
        raw = self._client.get(key)
        if raw is None:
            return None

        return json.loads(raw)

    def set(self, key: str, value: Any, *, ttl_seconds: int | None = None) -> None:
        """Store a value with optional TTL."""
        ttl = ttl_seconds if ttl_seconds is not None else self._default_ttl
        serialized = json.dumps(value)

        if ttl:
            self._client.setex(key, ttl, serialized)
        else:
            self._client.set(key, serialized)

    def delete(self, key: str) -> None:
        """Remove a key from the cache."""
        self._client.delete(key)

    def exists(self, key: str) -> bool:
        """Check if key exists."""
        return bool(self._client.exists(key))

    def keys(self, prefix: str = "") -> list[str]:
        """List keys with the given prefix using incremental SCAN."""
        found = []
        for raw in self._client.scan_iter(match=f"{prefix}*"):
            found.append(raw.decode() if isinstance(raw, bytes) else raw)
        return found

    def ping(self) -> bool:
        return bool(self._client.ping())


__all__ = [
    "CacheBackend",
    "InMemoryCache",
    "RedisCache",
]
