"""
Cache router: inspect and manage the two cache tiers.

Endpoints:
    DELETE /cache              Clear the tenant's entry (``?all=true`` clears every tenant)
    GET    /cache/status       Memory tenants and external tier state
    PUT    /cache/external     Enable or disable the external tier at runtime
"""

from __future__ import annotations

from fastapi import APIRouter, Query, Request

from omnimap.api.deps import OpContext
from omnimap.api.schemas.common import SuccessResponse
from omnimap.api.utils import _handle_error

router = APIRouter(prefix="/cache")


@router.delete("")
def clear_cache(
    ctx: OpContext,
    request: Request,
    all: bool = Query(False, description="Clear every tenant instead of the current one"),  # noqa: A002
):
    from omnimap.ops.components import clear_cache as _clear_cache

    result = _clear_cache(ctx, all_tenants=all)
    if not result.success:
        return _handle_error(result, instance=str(request.url))
    return SuccessResponse(data=result.data, elapsed_ms=result.elapsed_ms, warnings=result.warnings)


@router.get("/status")
def get_cache_status(ctx: OpContext, request: Request):
    from omnimap.ops.components import cache_status

    result = cache_status(ctx)
    if not result.success:
        return _handle_error(result, instance=str(request.url))
    return SuccessResponse(data=result.data, elapsed_ms=result.elapsed_ms)


@router.put("/external")
def toggle_external_cache(
    ctx: OpContext,
    request: Request,
    enabled: bool = Query(..., description="Turn the external tier on or off"),
):
    from omnimap.ops.components import set_external_cache

    result = set_external_cache(ctx, enabled)
    if not result.success:
        return _handle_error(result, instance=str(request.url))
    return SuccessResponse(data=result.data, elapsed_ms=result.elapsed_ms, warnings=result.warnings)
