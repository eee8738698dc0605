"""
Component operations.

Thin wrappers over :class:`~omnimap.hierarchy.service.ComponentService`
that never raise: typed omnimap errors become failed results with the
matching code, anything else is logged and reported as ``INTERNAL``.
"""

from __future__ import annotations

from typing import Any

from omnimap.core.errors import OmnimapError
from omnimap.core.logging import get_logger
from omnimap.core.models import ComponentKind, ComponentSummary
from omnimap.hierarchy.service import ChildHierarchy, ComponentDetail, LoadSummary, describe_dataset
from omnimap.ops.context import OperationContext
from omnimap.ops.result import OperationResult, PagedResult, _Timer, start_timer

logger = get_logger(__name__)


def _failure(op: str, exc: Exception, timer: _Timer) -> OperationResult[Any]:
    if isinstance(exc, OmnimapError):
        logger.info("op_rejected", op=op, error=exc.to_dict())
        return OperationResult.from_error(exc, elapsed_ms=timer.elapsed_ms)
    logger.exception("op_failed", op=op, error=str(exc))
    return OperationResult.fail("INTERNAL", f"{op} failed: {exc}", elapsed_ms=timer.elapsed_ms)


def load_all(ctx: OperationContext, *, force: bool = False) -> OperationResult[LoadSummary]:
    """Full reload of the tenant's components.

    ``force`` clears both cache tiers first. A partial load still
    succeeds; its problems come back as warnings and ``status: partial``.
    """
    timer = start_timer()
    try:
        tenant = ctx.require_tenant()
        service = ctx.service
        dataset = service.force_reload(tenant) if force else service.load_all(tenant)
    except Exception as exc:
        return _failure("load_all", exc, timer)

    summary = LoadSummary.from_dataset(dataset)
    return OperationResult.ok(
        summary,
        warnings=summary.warnings,
        elapsed_ms=timer.elapsed_ms,
        metadata={"status": summary.status, "request_id": ctx.request_id},
    )


def get_dataset(ctx: OperationContext) -> OperationResult[dict[str, Any]]:
    """Cached dataset (loading it on a miss) plus the enhanced summary."""
    timer = start_timer()
    try:
        dataset = ctx.service.get_dataset(ctx.require_tenant())
        payload = dataset.to_dict()
        payload["summary"] = describe_dataset(dataset)
    except Exception as exc:
        return _failure("get_dataset", exc, timer)
    return OperationResult.ok(
        payload,
        warnings=dataset.report.warnings(),
        elapsed_ms=timer.elapsed_ms,
        metadata={"cache_source": dataset.cache_source},
    )


def get_summary(ctx: OperationContext) -> OperationResult[LoadSummary]:
    timer = start_timer()
    try:
        summary = ctx.service.get_summary(ctx.require_tenant().tenant_id)
    except Exception as exc:
        return _failure("get_summary", exc, timer)
    return OperationResult.ok(summary, warnings=summary.warnings, elapsed_ms=timer.elapsed_ms)


def get_component(
    ctx: OperationContext,
    kind: str | ComponentKind,
    name_or_key: str,
) -> OperationResult[ComponentDetail]:
    """One component by name (procedures also by key)."""
    timer = start_timer()
    try:
        resolved_kind = ComponentKind.parse(kind)
        detail = ctx.service.get_component(ctx.require_tenant().tenant_id, resolved_kind, name_or_key)
    except Exception as exc:
        return _failure("get_component", exc, timer)
    return OperationResult.ok(
        detail,
        elapsed_ms=timer.elapsed_ms,
        metadata={"fully_expanded": detail.fully_expanded},
    )


def search(
    ctx: OperationContext,
    kind: str | ComponentKind | None = None,
    term: str = "",
    *,
    limit: int | None = None,
) -> PagedResult[ComponentSummary]:
    """Substring search over names and keys. An empty term lists everything."""
    timer = start_timer()
    try:
        resolved_kind = ComponentKind.parse(kind) if kind else None
        service = ctx.service
        limit = limit or service.settings.search_limit
        items = service.search(ctx.require_tenant().tenant_id, resolved_kind, term, limit=limit + 1)
    except Exception as exc:
        return PagedResult.failed(_failure("search", exc, timer))
    # one extra row tells us whether the limit cut anything off
    total = len(items)
    return PagedResult.from_items(items[:limit], total=total, limit=limit, elapsed_ms=timer.elapsed_ms)


def get_child_hierarchy(ctx: OperationContext, procedure_key: str) -> OperationResult[ChildHierarchy]:
    timer = start_timer()
    try:
        tenant = ctx.require_tenant()
        hierarchy = ctx.service.get_child_hierarchy(tenant.tenant_id, procedure_key, tenant)
    except Exception as exc:
        return _failure("get_child_hierarchy", exc, timer)
    warnings = []
    if hierarchy.content_error:
        warnings.append(f"Definition could not be parsed: {hierarchy.content_error}")
    return OperationResult.ok(
        hierarchy,
        warnings=warnings,
        elapsed_ms=timer.elapsed_ms,
        metadata={"source": hierarchy.source},
    )


def clear_cache(ctx: OperationContext, *, all_tenants: bool = False) -> OperationResult[dict[str, Any]]:
    """Clear the tenant's cache entry, or every tenant's with ``all_tenants``."""
    timer = start_timer()
    try:
        tenant_id = None if all_tenants else ctx.require_tenant().tenant_id
        outcome = ctx.service.clear_cache(tenant_id)
    except Exception as exc:
        return _failure("clear_cache", exc, timer)
    warnings = [f"External cache not cleared: {outcome['externalError']}"] if "externalError" in outcome else []
    return OperationResult.ok(outcome, warnings=warnings, elapsed_ms=timer.elapsed_ms)


def cache_status(ctx: OperationContext) -> OperationResult[dict[str, Any]]:
    timer = start_timer()
    try:
        status = ctx.service.cache_status()
    except Exception as exc:
        return _failure("cache_status", exc, timer)
    return OperationResult.ok(status, elapsed_ms=timer.elapsed_ms)


def set_external_cache(ctx: OperationContext, enabled: bool) -> OperationResult[dict[str, Any]]:
    timer = start_timer()
    try:
        status = ctx.service.set_external_cache(enabled)
    except Exception as exc:
        return _failure("set_external_cache", exc, timer)
    warnings = []
    if enabled and not status["external"]["configured"]:
        warnings.append("No external cache is configured; caching stays memory-only")
    return OperationResult.ok(status, warnings=warnings, elapsed_ms=timer.elapsed_ms)
