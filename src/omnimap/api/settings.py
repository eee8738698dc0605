"""
API-specific settings.

Extends :class:`~omnimap.core.settings.OmnimapSettings` with parameters
that govern the REST transport (CORS, auth, prefix). All values can be
overridden via ``OMNIMAP_*`` environment variables.
"""

from __future__ import annotations

from pydantic import Field

from omnimap import __version__
from omnimap.core.settings import OmnimapSettings


class OmnimapAPISettings(OmnimapSettings):
    """Settings for the omnimap REST API.

    Order of precedence (highest → lowest):
        1. Environment variables (``OMNIMAP_API_PREFIX``, etc.)
        2. ``.env`` file
        3. Defaults below
    """

    # ── API ──────────────────────────────────────────────────────────────
    api_prefix: str = Field(default="/api/v1", description="URL prefix for all endpoints")
    api_title: str = Field(default="omnimap API", description="OpenAPI title")
    api_version: str = Field(default=__version__, description="OpenAPI version string")

    # ── CORS ─────────────────────────────────────────────────────────────
    cors_origins: list[str] = Field(default=["*"], description="Allowed CORS origins")

    # ── Auth ─────────────────────────────────────────────────────────────
    api_key: str | None = Field(default=None, description="Optional API key for gating access")
