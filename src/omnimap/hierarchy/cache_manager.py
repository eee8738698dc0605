"""
Cache Manager: two-tier per-tenant dataset cache.

Manifesto:
    The memory tier is authoritative for the process and only ever
    replaced wholesale or cleared explicitly. The external tier is a
    shared, expiring copy that lets a cold process (or another worker)
    skip a full reload. It is strictly best-effort: an outage shows up
    as ``Err`` from the port and a warning in the log, never as a failed
    request.

Architecture:
    ::

        ┌──────────── CacheManager ────────────┐
        │  memory: dict[tenant_id, Dataset]    │  ← lock-protected
        │        │ miss                        │
        │        ▼                             │
        │  ExternalCachePort ── CacheBackend ──┼──► Redis / InMemoryCache
        │   get/set/delete/clear → Result      │     key: {prefix}{tenant}
        └──────────────────────────────────────┘     ttl: 2 days

    Read path: memory → external (hit repopulates memory) → ``None``.
    The caller (``ComponentService``) turns ``None`` into a full reload.

Tags:
    cache, two-tier, redis, result-pattern

Doc-Types:
    - Technical Design
"""

from __future__ import annotations

import threading
from typing import Any

from omnimap.core.cache import CacheBackend
from omnimap.core.errors import CacheUnavailableError
from omnimap.core.logging import get_logger
from omnimap.core.models import ResolvedDataset, utcnow_iso
from omnimap.core.result import Err, Ok, Result, try_result

logger = get_logger(__name__)

DEFAULT_TTL_SECONDS = 2 * 24 * 60 * 60
DEFAULT_KEY_PREFIX = "component_data:"
EXTERNAL_SOURCE = "redis"
MEMORY_SOURCE = "memory"


class ExternalCachePort:
    """Result-returning adapter over a ``CacheBackend``.

    Every backend exception becomes ``Err(CacheUnavailableError)``.
    """

    def __init__(
        self,
        backend: CacheBackend,
        *,
        ttl_seconds: int = DEFAULT_TTL_SECONDS,
        key_prefix: str = DEFAULT_KEY_PREFIX,
    ) -> None:
        self.backend = backend
        self.ttl_seconds = ttl_seconds
        self.key_prefix = key_prefix

    def key_for(self, tenant_id: str) -> str:
        return f"{self.key_prefix}{tenant_id}"

    def get(self, tenant_id: str) -> Result[dict[str, Any] | None]:
        return self._call("get", tenant_id, lambda: self.backend.get(self.key_for(tenant_id)))

    def set(self, tenant_id: str, payload: dict[str, Any]) -> Result[None]:
        return self._call(
            "set",
            tenant_id,
            lambda: self.backend.set(self.key_for(tenant_id), payload, ttl_seconds=self.ttl_seconds),
        )

    def delete(self, tenant_id: str) -> Result[None]:
        return self._call("delete", tenant_id, lambda: self.backend.delete(self.key_for(tenant_id)))

    def clear(self) -> Result[int]:
        """Delete every tenant key under the prefix."""

        def _clear() -> int:
            keys = self.backend.keys(self.key_prefix)
            for key in keys:
                self.backend.delete(key)
            return len(keys)

        return self._call("clear", None, _clear)

    def ping(self) -> Result[bool]:
        return self._call("ping", None, self.backend.ping)

    def _call(self, op: str, tenant_id: str | None, func) -> Result[Any]:
        def unavailable(exc: Exception) -> Exception:
            error = CacheUnavailableError(f"External cache {op} failed: {exc}", cause=exc)
            return error.with_context(tenant_id=tenant_id) if tenant_id is not None else error

        return try_result(func).map_err(unavailable)


class CacheManager:
    """Per-tenant memory tier in front of an optional external tier.

    Parameters
    ----------
    external:
        External tier port, or ``None`` for memory-only caching.
    external_enabled:
        Initial state of the runtime toggle.
    """

    def __init__(self, external: ExternalCachePort | None = None, *, external_enabled: bool = True) -> None:
        self._memory: dict[str, ResolvedDataset] = {}
        self._lock = threading.Lock()
        self._external = external
        self._external_enabled = external_enabled

    # ── toggle / status ──────────────────────────────────────────────

    @property
    def external_configured(self) -> bool:
        return self._external is not None

    @property
    def external_active(self) -> bool:
        return self._external is not None and self._external_enabled

    def set_external_enabled(self, enabled: bool) -> None:
        self._external_enabled = enabled
        logger.info("external_cache_toggled", enabled=enabled, configured=self.external_configured)

    def status(self) -> dict[str, Any]:
        with self._lock:
            tenants = sorted(self._memory)
        external: dict[str, Any] = {
            "configured": self.external_configured,
            "enabled": self._external_enabled,
            "active": self.external_active,
        }
        if self.external_active:
            ping = self._external.ping()
            external["reachable"] = ping.is_ok() and bool(ping.unwrap_or(False))
            if ping.is_err():
                external["error"] = ping.error.message
            external["ttlSeconds"] = self._external.ttl_seconds
            external["keyPrefix"] = self._external.key_prefix
        return {
            "memory": {"tenants": tenants, "count": len(tenants)},
            "external": external,
        }

    # ── read path ────────────────────────────────────────────────────

    def get_memory(self, tenant_id: str) -> ResolvedDataset | None:
        with self._lock:
            return self._memory.get(tenant_id)

    def get_external(self, tenant_id: str) -> Result[ResolvedDataset | None]:
        """Read the external tier. ``Ok(None)`` is a miss."""
        if not self.external_active:
            return Ok(None)
        result = self._external.get(tenant_id)
        if result.is_err():
            return result
        payload = result.unwrap()
        if payload is None:
            return Ok(None)
        try:
            dataset = ResolvedDataset.from_dict(payload)
        except (KeyError, TypeError, ValueError) as exc:
            return Err(
                CacheUnavailableError(
                    f"Cached payload for tenant {tenant_id} is unreadable: {exc}",
                    retryable=False,
                    cause=exc,
                ).with_context(tenant_id=tenant_id)
            )
        dataset.cache_source = EXTERNAL_SOURCE
        return Ok(dataset)

    def get(self, tenant_id: str) -> ResolvedDataset | None:
        """Memory first, then the external tier. ``None`` on a miss in both."""
        dataset = self.get_memory(tenant_id)
        if dataset is not None:
            logger.debug("memory_cache_hit", tenant_id=tenant_id)
            return dataset

        result = self.get_external(tenant_id)
        if result.is_err():
            logger.warning("external_cache_read_failed", tenant_id=tenant_id, error=result.error.to_dict())
            return None
        dataset = result.unwrap()
        if dataset is None:
            if self.external_active:
                logger.info("external_cache_miss", tenant_id=tenant_id)
            return None

        logger.info("external_cache_hit", tenant_id=tenant_id, components=dataset.total_components)
        with self._lock:
            self._memory[tenant_id] = dataset
        return dataset

    # ── write path ───────────────────────────────────────────────────

    def put(self, dataset: ResolvedDataset) -> Result[None]:
        """Replace the memory entry and write through to the external tier.

        The memory write always happens. The returned result only reports
        the external write, which callers log and otherwise ignore.
        """
        with self._lock:
            self._memory[dataset.tenant_id] = dataset

        if not self.external_active:
            return Ok(None)

        payload = dataset.to_dict()
        payload["cachedAt"] = utcnow_iso()
        payload["cacheSource"] = EXTERNAL_SOURCE
        result = self._external.set(dataset.tenant_id, payload)
        if result.is_err():
            logger.warning(
                "external_cache_write_failed",
                tenant_id=dataset.tenant_id,
                error=result.error.to_dict(),
            )
        else:
            logger.info(
                "external_cache_written",
                tenant_id=dataset.tenant_id,
                ttl_seconds=self._external.ttl_seconds,
            )
        return result

    def clear(self, tenant_id: str | None = None) -> dict[str, Any]:
        """Clear one tenant, or every tenant when ``tenant_id`` is ``None``."""
        with self._lock:
            if tenant_id is None:
                memory_cleared = len(self._memory)
                self._memory.clear()
            else:
                memory_cleared = 1 if self._memory.pop(tenant_id, None) is not None else 0

        external_cleared: int | None = None
        external_error: str | None = None
        if self.external_active:
            if tenant_id is None:
                result = self._external.clear()
            else:
                result = self._external.delete(tenant_id).map(lambda _: 1)
            if result.is_err():
                external_error = result.error.message
                logger.warning("external_cache_clear_failed", tenant_id=tenant_id, error=result.error.to_dict())
            else:
                external_cleared = result.unwrap()

        logger.info(
            "cache_cleared",
            tenant_id=tenant_id or "*",
            memory_cleared=memory_cleared,
            external_cleared=external_cleared,
        )
        out: dict[str, Any] = {
            "tenantId": tenant_id,
            "memoryCleared": memory_cleared,
            "externalCleared": external_cleared,
        }
        if external_error:
            out["externalError"] = external_error
        return out


__all__ = [
    "CacheManager",
    "ExternalCachePort",
    "DEFAULT_TTL_SECONDS",
    "DEFAULT_KEY_PREFIX",
]
