"""
Components router: load, browse and search resolved component hierarchies.

Endpoints:
    POST /components/load                         Full reload (``?force=true`` clears caches first)
    GET  /components                              Cached dataset, loaded on a miss
    GET  /components/summary                      Counts and timing of the cached dataset
    GET  /components/search                       Substring search by kind and term
    GET  /components/{kind}/{name}                One component by name or key
    GET  /components/procedures/{key}/hierarchy   Steps of one procedure, fetched on demand

All endpoints act on the tenant named by the ``X-Tenant-Id`` header.
Loading additionally needs ``X-Instance-Url`` and a bearer token.
"""

from __future__ import annotations

from fastapi import APIRouter, Path, Query, Request

from omnimap.api.deps import OpContext
from omnimap.api.schemas.common import PagedResponse, PageMeta, SuccessResponse
from omnimap.api.schemas.components import ComponentSummarySchema
from omnimap.api.utils import _dc, _handle_error

router = APIRouter(prefix="/components")


@router.post("/load")
def load_components(
    ctx: OpContext,
    request: Request,
    force: bool = Query(False, description="Clear both cache tiers before loading"),
):
    """Load, parse, resolve and stamp every component of the tenant."""
    from omnimap.ops.components import load_all

    result = load_all(ctx, force=force)
    if not result.success:
        return _handle_error(result, instance=str(request.url))
    return SuccessResponse(data=_dc(result.data), elapsed_ms=result.elapsed_ms, warnings=result.warnings)


@router.get("")
def get_components(ctx: OpContext, request: Request):
    """Full resolved dataset plus the enhanced summary."""
    from omnimap.ops.components import get_dataset

    result = get_dataset(ctx)
    if not result.success:
        return _handle_error(result, instance=str(request.url))
    return SuccessResponse(data=result.data, elapsed_ms=result.elapsed_ms, warnings=result.warnings)


@router.get("/summary")
def get_components_summary(ctx: OpContext, request: Request):
    """Counts, status and timing of the cached dataset."""
    from omnimap.ops.components import get_summary

    result = get_summary(ctx)
    if not result.success:
        return _handle_error(result, instance=str(request.url))
    return SuccessResponse(data=_dc(result.data), elapsed_ms=result.elapsed_ms, warnings=result.warnings)


@router.get("/search", response_model=PagedResponse[ComponentSummarySchema])
def search_components(
    ctx: OpContext,
    request: Request,
    kind: str | None = Query(None, description="data-mapper | integration-procedure | omniscript (aliases: dm, ip, os)"),
    term: str = Query("", description="Case-insensitive substring of name or key"),
    limit: int | None = Query(None, ge=1, le=10_000, description="Maximum rows (default: search_limit)"),
):
    """Search cached components, deduplicated by key."""
    from omnimap.ops.components import search

    result = search(ctx, kind, term, limit=limit)
    if not result.success:
        return _handle_error(result, instance=str(request.url))
    return PagedResponse(
        data=[ComponentSummarySchema.from_summary(s) for s in result.data],
        page=PageMeta.from_result(result.total, result.limit, result.offset),
        elapsed_ms=result.elapsed_ms,
        warnings=result.warnings,
    )


@router.get("/procedures/{key}/hierarchy")
def get_procedure_hierarchy(
    ctx: OpContext,
    request: Request,
    key: str = Path(..., description="Procedure key (Type_SubType)"),
):
    """Steps of one procedure, from the cache or fetched from the upstream system."""
    from omnimap.ops.components import get_child_hierarchy

    result = get_child_hierarchy(ctx, key)
    if not result.success:
        return _handle_error(result, instance=str(request.url))
    return SuccessResponse(data=_dc(result.data), elapsed_ms=result.elapsed_ms, warnings=result.warnings)


@router.get("/{kind}/{name}")
def get_component(
    ctx: OpContext,
    request: Request,
    kind: str = Path(..., description="Component kind or alias"),
    name: str = Path(..., description="Component name (procedures also accept their key)"),
):
    """One component with its steps, referrers and expanded-children count."""
    from omnimap.ops.components import get_component as _get_component

    result = _get_component(ctx, kind, name)
    if not result.success:
        return _handle_error(result, instance=str(request.url))
    return SuccessResponse(data=_dc(result.data), elapsed_ms=result.elapsed_ms, warnings=result.warnings)
