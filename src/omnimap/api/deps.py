"""
FastAPI dependency injection: shared singletons and per-request factories.

Usage in routers::

    from omnimap.api.deps import OpContext

    @router.get("/components/summary")
    def summary(ctx: OpContext):
        ...

The ``ComponentService`` lives on ``app.state`` (created by
``create_app``), so every request in a process shares one cache and one
in-flight guard.

Tenant context is read from headers:

    X-Tenant-Id       tenant (organization) id, the cache key
    X-Instance-Url    base URL of the tenant's upstream instance
    Authorization     ``Bearer <access token>``
    X-Tenant-Name     optional display name
"""

from __future__ import annotations

import uuid
from functools import lru_cache
from typing import Annotated

from fastapi import Depends, Header, Request

from omnimap.api.settings import OmnimapAPISettings
from omnimap.core.models import TenantContext
from omnimap.hierarchy.service import ComponentService
from omnimap.ops.context import OperationContext

# ── Settings (singleton) ─────────────────────────────────────────────────


@lru_cache(maxsize=1)
def get_settings() -> OmnimapAPISettings:
    """Cached settings, loaded once per process."""
    return OmnimapAPISettings()


# ── Service (app-scoped) ─────────────────────────────────────────────────


def get_service(request: Request) -> ComponentService:
    return request.app.state.service


# ── Tenant context (per-request) ─────────────────────────────────────────


def _bearer_token(authorization: str | None) -> str | None:
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def get_tenant_context(
    x_tenant_id: Annotated[str | None, Header()] = None,
    x_instance_url: Annotated[str | None, Header()] = None,
    authorization: Annotated[str | None, Header()] = None,
    x_tenant_name: Annotated[str | None, Header()] = None,
) -> TenantContext | None:
    """Tenant from headers, or ``None`` when no tenant id was sent."""
    if not x_tenant_id:
        return None
    return TenantContext(
        tenant_id=x_tenant_id,
        instance_url=x_instance_url,
        access_token=_bearer_token(authorization),
        tenant_name=x_tenant_name,
    )


# ── Operation context (per-request) ──────────────────────────────────────


def get_operation_context(
    request: Request,
    service: Annotated[ComponentService, Depends(get_service)],
    tenant: Annotated[TenantContext | None, Depends(get_tenant_context)],
) -> OperationContext:
    """Build an :class:`OperationContext` from the current request."""
    request_id = getattr(request.state, "request_id", str(uuid.uuid4()))
    return OperationContext(
        service=service,
        tenant=tenant,
        request_id=request_id,
        caller="api",
    )


# ── Convenience type aliases ─────────────────────────────────────────────

Settings = Annotated[OmnimapAPISettings, Depends(get_settings)]
Service = Annotated[ComponentService, Depends(get_service)]
OpContext = Annotated[OperationContext, Depends(get_operation_context)]
