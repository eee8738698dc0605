"""
Base settings for omnimap.

All runtime knobs live on one ``pydantic-settings`` model so the REST
API, the CLI and tests construct the service the same way. Values come
from ``OMNIMAP_*`` environment variables, then ``.env``, then defaults.

Tags:
    configuration, pydantic-settings, env

Doc-Types:
    - API Reference
"""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class OmnimapSettings(BaseSettings):
    """Settings shared by every omnimap entry point.

    Fields
    ──────
    host, port        : Bind address for the HTTP transport
    debug, log_level  : Observability
    log_json          : JSON log lines (``None`` → auto-detect TTY)
    cache_backend     : External tier store, ``redis`` or in-process ``memory``
    redis_url         : Redis tier location (``None`` → memory-only)
    cache_*           : External tier TTL and key prefix
    max_batches, ...  : Record Loader pagination guard rails
    resolve_max_depth : Resolver worklist depth ceiling
    stamp_max_depth   : Reference-path stamper depth ceiling
    search_limit      : Maximum search results returned
    """

    model_config = SettingsConfigDict(
        env_prefix="OMNIMAP_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Network ──────────────────────────────────────────────────
    host: str = "0.0.0.0"
    port: int = 8000

    # ── Observability ────────────────────────────────────────────
    debug: bool = False
    log_level: str = "INFO"
    log_json: bool | None = None

    # ── Cache ────────────────────────────────────────────────────
    cache_backend: Literal["redis", "memory"] = "redis"
    cache_max_entries: int = Field(default=1_000, ge=1, description="Tenant slots of the in-process tier")
    redis_url: str | None = Field(default=None, description="Redis URL for the external cache tier")
    external_cache_enabled: bool = True
    cache_ttl_seconds: int = Field(default=172_800, description="External tier TTL (2 days)")
    cache_key_prefix: str = "component_data:"

    # ── Record loader ────────────────────────────────────────────
    max_batches: int = Field(default=100, ge=1, description="Pagination safety ceiling per kind")
    batch_delay_seconds: float = Field(default=0.1, ge=0.0)
    max_retries: int = Field(default=2, ge=0, description="Retries per page fetch")
    retry_base_delay: float = Field(default=0.5, ge=0.0)
    request_timeout_seconds: float = 60.0
    salesforce_api_version: str = "58.0"

    # ── Resolution ───────────────────────────────────────────────
    resolve_max_depth: int = Field(default=64, ge=1)
    stamp_max_depth: int = Field(default=50, ge=1)
    search_limit: int = Field(default=1000, ge=1)


@lru_cache(maxsize=1)
def get_settings() -> OmnimapSettings:
    """Cached settings, loaded once per process."""
    return OmnimapSettings()


__all__ = ["OmnimapSettings", "get_settings"]
