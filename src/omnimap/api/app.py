"""
FastAPI application factory.

``create_app()`` wires middleware, routers, error handlers, the
component service and lifespan events into a single ``FastAPI`` instance.

Manifesto:
    The app factory is the single composition root. The service (and
    with it the two-tier cache) is built here once per app, so every
    request in the process shares the same memory tier and in-flight
    guard.

Tags:
    api, app-factory, composition-root, FastAPI

Doc-Types:
    api-reference
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from omnimap.api.deps import get_settings
from omnimap.api.middleware.auth import AuthMiddleware
from omnimap.api.middleware.errors import unhandled_exception_handler
from omnimap.api.middleware.request_id import RequestIDMiddleware
from omnimap.api.middleware.timing import TimingMiddleware
from omnimap.api.settings import OmnimapAPISettings
from omnimap.core.health import HealthCheck, create_health_router
from omnimap.core.logging import configure_logging, get_logger
from omnimap.hierarchy.service import ComponentService


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan: logging setup and startup/shutdown events."""
    settings: OmnimapAPISettings = app.state.settings
    configure_logging(
        level=settings.log_level,
        json_format=settings.log_json,
        service="omnimap-api",
    )
    log = get_logger("omnimap.api")
    service: ComponentService = app.state.service
    log.info(
        "omnimap_api_starting",
        version=app.version,
        external_cache=service.cache.external_configured,
    )
    yield
    log.info("omnimap_api_shutting_down")


def _cache_check(service: ComponentService) -> HealthCheck:
    async def check() -> bool:
        status = await asyncio.to_thread(service.cache.status)
        external = status["external"]
        if external["active"] and not external.get("reachable", False):
            raise RuntimeError(external.get("error") or "external cache unreachable")
        return True

    return HealthCheck("external_cache", check, required=False)


def create_app(
    *,
    settings: OmnimapAPISettings | None = None,
    service: ComponentService | None = None,
) -> FastAPI:
    """Build and return a fully-configured FastAPI application.

    Parameters
    ----------
    settings : OmnimapAPISettings | None
        Override settings (useful for testing). When ``None`` the cached
        singleton from :func:`get_settings` is used.
    service : ComponentService | None
        Override the component service (tests inject one backed by an
        in-memory record source).
    """
    settings = settings or get_settings()
    service = service or ComponentService.from_settings(settings)

    app = FastAPI(
        title=settings.api_title,
        version=settings.api_version,
        lifespan=lifespan,
        docs_url=f"{settings.api_prefix}/docs",
        redoc_url=f"{settings.api_prefix}/redoc",
        openapi_url=f"{settings.api_prefix}/openapi.json",
    )

    app.state.settings = settings
    app.state.service = service

    # Override DI so endpoints use the provided settings
    app.dependency_overrides[get_settings] = lambda: settings

    # ── Middleware (outermost → innermost) ────────────────────────────
    app.add_middleware(TimingMiddleware)
    app.add_middleware(RequestIDMiddleware)
    app.add_middleware(AuthMiddleware, api_key=settings.api_key)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # ── Exception handlers ───────────────────────────────────────────
    app.add_exception_handler(Exception, unhandled_exception_handler)

    # ── Routers ──────────────────────────────────────────────────────
    from omnimap.api.routers import cache, components

    prefix = settings.api_prefix

    # Health endpoints at root level (no prefix) for container healthchecks
    app.include_router(
        create_health_router("omnimap", version=settings.api_version, checks=[_cache_check(service)]),
        tags=["health"],
    )
    app.include_router(components.router, prefix=prefix, tags=["components"])
    app.include_router(cache.router, prefix=prefix, tags=["cache"])

    return app
