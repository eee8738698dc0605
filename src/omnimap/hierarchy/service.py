"""
Component service: the operations exposed to transports.

``ComponentService`` wires the five stages together for one tenant and
owns the state that outlives a request: the two-tier cache and the
per-tenant in-flight guard.

Architecture:
    ::

        load_all(tenant)
          ├── InFlightGuard.hold(tenant_id)      one load per tenant
          ├── RecordLoader.load_all()            data mappers → procedures → scripts
          ├── parse_record() per record          content_error, never fatal
          ├── HierarchyResolver.resolve()        fresh registry per pass
          ├── ReferencePathStamper.stamp()       referenced_by paths
          └── CacheManager.put()                 memory + best-effort external

        get_dataset / get_summary / get_component / search
          └── CacheManager.get()                 memory → external

        get_child_hierarchy
          └── cached registry → else source.fetch_one() + parse

Errors are raised as ``OmnimapError`` subclasses; ``omnimap.ops`` turns
them into ``OperationResult`` failures.

Tags:
    service, facade, orchestration, tenant

Doc-Types:
    - Technical Design
    - API Reference
"""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from omnimap.core.cache import CacheBackend, InMemoryCache, RedisCache
from omnimap.core.errors import NotFoundError, UpstreamQueryError
from omnimap.core.logging import LogContext, get_logger
from omnimap.core.models import (
    ComponentKind,
    ComponentSummary,
    LoadReport,
    LoadTiming,
    ReferenceStatus,
    ResolvedComponent,
    ResolvedDataset,
    StepNode,
    TenantContext,
)
from omnimap.core.settings import OmnimapSettings
from omnimap.execution.concurrency import InFlightGuard
from omnimap.execution.retry import ExponentialBackoff
from omnimap.hierarchy.cache_manager import CacheManager, ExternalCachePort
from omnimap.hierarchy.loader import RecordLoader
from omnimap.hierarchy.parser import parse_record
from omnimap.hierarchy.resolver import ComponentRegistry, HierarchyResolver, mark_references
from omnimap.hierarchy.stamper import ReferencePathStamper
from omnimap.sources import create_record_source
from omnimap.sources.protocol import RecordSource

logger = get_logger(__name__)

SourceFactory = Callable[[TenantContext], RecordSource]


# ── Operation payloads ───────────────────────────────────────────────────


@dataclass
class LoadSummary:
    """What a full load produced."""

    tenant_id: str
    status: str
    counts: dict[str, int]
    hierarchy_edges: int
    paths_stamped: int
    loaded_at: str
    cache_source: str
    timing: dict[str, Any] | None = None
    failed_kinds: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    report: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dataset(cls, dataset: ResolvedDataset) -> LoadSummary:
        report = dataset.report
        return cls(
            tenant_id=dataset.tenant_id,
            status=report.status,
            counts=dataset.counts(),
            hierarchy_edges=sum(len(v) for v in dataset.hierarchy.values()),
            paths_stamped=report.paths_stamped,
            loaded_at=dataset.loaded_at,
            cache_source=dataset.cache_source,
            timing=dataset.timing.to_dict() if dataset.timing else None,
            failed_kinds=[k.value for k in report.failed_kinds],
            warnings=report.warnings(),
            report=report.to_dict(),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "tenantId": self.tenant_id,
            "status": self.status,
            "counts": self.counts,
            "hierarchyEdges": self.hierarchy_edges,
            "pathsStamped": self.paths_stamped,
            "loadedAt": self.loaded_at,
            "cacheSource": self.cache_source,
            "timing": self.timing,
            "failedKinds": self.failed_kinds,
            "warnings": self.warnings,
            "report": self.report,
        }


@dataclass
class ComponentDetail:
    """A component plus what the registry knows about its neighbourhood."""

    component: ResolvedComponent
    expanded_children: list[str] = field(default_factory=list)

    @property
    def fully_expanded(self) -> bool:
        return self.component.fully_expanded

    def to_dict(self) -> dict[str, Any]:
        d = self.component.to_dict()
        d["expandedChildren"] = self.expanded_children
        d["expandedChildrenCount"] = len(self.expanded_children)
        return d


@dataclass
class ChildHierarchy:
    """Steps of one procedure, from the cache or fetched on demand."""

    procedure_key: str
    name: str
    steps: tuple[StepNode, ...]
    source: str
    content_error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {
            "procedureKey": self.procedure_key,
            "name": self.name,
            "source": self.source,
            "steps": [s.to_dict() for s in self.steps],
        }
        if self.content_error is not None:
            d["contentError"] = self.content_error
        return d


def describe_dataset(dataset: ResolvedDataset) -> dict[str, Any]:
    """Enhanced summary: per-component step, child and referrer counts."""
    registry = ComponentRegistry.from_dataset(dataset)
    rows = []
    total_references = 0
    for component in dataset.components():
        total_references += len(component.referenced_by)
        rows.append(
            {
                "key": component.key,
                "name": component.name,
                "kind": component.kind.value,
                "stepCount": component.step_count(),
                "childCount": len(registry.children_of(component)),
                "referencedByCount": len(component.referenced_by),
                "fullyExpanded": component.fully_expanded,
            }
        )
    return {
        "counts": dataset.counts(),
        "status": dataset.report.status,
        "hierarchyEdges": sum(len(v) for v in dataset.hierarchy.values()),
        "totalHierarchicalReferences": total_references,
        "components": rows,
    }


# ── Service ──────────────────────────────────────────────────────────────


class ComponentService:
    """Load, resolve, cache and query component hierarchies per tenant.

    Parameters
    ----------
    settings:
        Runtime knobs (pagination, depth ceilings, search limit).
    cache:
        Two-tier cache. Defaults to memory-only.
    source_factory:
        Builds a record source for a tenant. Defaults to the upstream
        REST source.
    sleep:
        Injected into the loader for tests.
    """

    def __init__(
        self,
        settings: OmnimapSettings | None = None,
        *,
        cache: CacheManager | None = None,
        source_factory: SourceFactory | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.settings = settings or OmnimapSettings()
        self.cache = cache or CacheManager()
        self._source_factory = source_factory or (lambda tenant: create_record_source(tenant, self.settings))
        self._sleep = sleep
        self._guard = InFlightGuard()

    @classmethod
    def from_settings(
        cls,
        settings: OmnimapSettings,
        *,
        source_factory: SourceFactory | None = None,
    ) -> ComponentService:
        """Build a service from settings.

        The external tier is Redis when ``redis_url`` is set, an in-process
        store when ``cache_backend`` is ``memory``, and absent otherwise.
        """
        backend: CacheBackend | None = None
        if settings.cache_backend == "memory":
            backend = InMemoryCache(
                max_size=settings.cache_max_entries,
                default_ttl_seconds=settings.cache_ttl_seconds,
            )
        elif settings.redis_url:
            backend = RedisCache(settings.redis_url, default_ttl_seconds=settings.cache_ttl_seconds)

        external = None
        if backend is not None:
            external = ExternalCachePort(
                backend,
                ttl_seconds=settings.cache_ttl_seconds,
                key_prefix=settings.cache_key_prefix,
            )
        cache = CacheManager(external, external_enabled=settings.external_cache_enabled)
        return cls(settings, cache=cache, source_factory=source_factory)

    # ── loading ──────────────────────────────────────────────────────

    def load_all(self, tenant: TenantContext) -> ResolvedDataset:
        """Full reload for ``tenant``.

        A caller that had to wait for an in-flight load of the same tenant
        gets that load's dataset instead of starting another.
        """
        tenant_id = tenant.tenant_id
        with LogContext(tenant_id=tenant_id):
            seen = self._guard.generation(tenant_id)
            with self._guard.hold(tenant_id) as slot:
                if slot.generation != seen:
                    dataset = self.cache.get_memory(tenant_id)
                    if dataset is not None:
                        logger.info("load_coalesced", generation=slot.generation)
                        return dataset

                dataset = self._build(tenant)
                self.cache.put(dataset)
                slot.complete()
                return dataset

    def force_reload(self, tenant: TenantContext) -> ResolvedDataset:
        self.cache.clear(tenant.tenant_id)
        return self.load_all(tenant)

    def _build(self, tenant: TenantContext) -> ResolvedDataset:
        started = datetime.now(UTC)
        logger.info("load_started")
        source = self._source_factory(tenant)
        try:
            loader = RecordLoader(
                source,
                max_batches=self.settings.max_batches,
                batch_delay_seconds=self.settings.batch_delay_seconds,
                retry_strategy=ExponentialBackoff(
                    max_retries=self.settings.max_retries,
                    base_delay=self.settings.retry_base_delay,
                ),
                sleep=self._sleep,
            )
            batches = loader.load_all()
        finally:
            close = getattr(source, "close", None)
            if callable(close):
                close()

        report = LoadReport(kinds={kind: batch.status for kind, batch in batches.items()})
        if report.all_kinds_failed:
            reasons = "; ".join(f"{k.value}: {s.error}" for k, s in report.kinds.items())
            raise UpstreamQueryError(
                f"Failed to load any component records ({reasons})", retryable=False
            ).with_context(tenant_id=tenant.tenant_id)

        parsed = [parse_record(record) for batch in batches.values() for record in batch.records]
        resolution = HierarchyResolver(max_depth=self.settings.resolve_max_depth).resolve(parsed)
        stamped = ReferencePathStamper(max_depth=self.settings.stamp_max_depth).stamp(resolution.registry)

        report.parse_errors = resolution.parse_errors
        report.unresolved = resolution.unresolved
        report.paths_stamped = stamped.paths_stamped
        report.stamp_truncations = stamped.truncations

        finished = datetime.now(UTC)
        dataset = resolution.registry.to_dataset(
            tenant.tenant_id,
            tenant_name=tenant.tenant_name,
            loaded_at=finished.isoformat(),
            timing=LoadTiming.between(started, finished),
            report=report,
        )
        logger.info(
            "load_complete",
            status=report.status,
            total=dataset.total_components,
            hierarchy_edges=sum(len(v) for v in dataset.hierarchy.values()),
            duration_ms=dataset.timing.duration_ms,
        )
        return dataset

    # ── reads ────────────────────────────────────────────────────────

    def get_dataset(self, tenant: TenantContext) -> ResolvedDataset:
        """Cached dataset, loading it when neither tier has one."""
        dataset = self.cache.get(tenant.tenant_id)
        if dataset is not None:
            return dataset
        return self.load_all(tenant)

    def cached(self, tenant_id: str) -> ResolvedDataset:
        dataset = self.cache.get(tenant_id)
        if dataset is None:
            raise NotFoundError(
                "No component data loaded for this tenant; run a load first"
            ).with_context(tenant_id=tenant_id)
        return dataset

    def get_summary(self, tenant_id: str) -> LoadSummary:
        return LoadSummary.from_dataset(self.cached(tenant_id))

    def get_component(self, tenant_id: str, kind: ComponentKind, name_or_key: str) -> ComponentDetail:
        dataset = self.cached(tenant_id)
        component = dataset.find(kind, name_or_key)
        if component is None:
            raise NotFoundError(
                f"{kind.value} '{name_or_key}' not found"
            ).with_context(tenant_id=tenant_id, kind=kind.value, component=name_or_key)
        registry = ComponentRegistry.from_dataset(dataset)
        children = registry.reachable(component, max_depth=self.settings.resolve_max_depth)
        return ComponentDetail(component=component, expanded_children=[c.key for c in children])

    def search(
        self,
        tenant_id: str,
        kind: ComponentKind | None = None,
        term: str = "",
        *,
        limit: int | None = None,
    ) -> list[ComponentSummary]:
        """Case-insensitive substring match on name and key, deduplicated by key."""
        dataset = self.cached(tenant_id)
        limit = limit or self.settings.search_limit
        needle = term.strip().lower()
        kinds = [kind] if kind is not None else None

        seen: set[tuple[ComponentKind, str]] = set()
        out: list[ComponentSummary] = []
        for component in dataset.components():
            if kinds is not None and component.kind not in kinds:
                continue
            slot = (component.kind, component.key)
            if slot in seen:
                continue
            if needle and needle not in component.name.lower() and needle not in component.key.lower():
                continue
            seen.add(slot)
            out.append(component.to_summary())
            if len(out) >= limit:
                break
        return out

    def get_child_hierarchy(
        self,
        tenant_id: str,
        procedure_key: str,
        tenant: TenantContext | None = None,
    ) -> ChildHierarchy:
        """Steps of one procedure.

        Served from the cached registry when possible. Otherwise, with a
        usable tenant context, the single record is fetched and parsed.
        """
        dataset = self.cache.get(tenant_id)
        if dataset is not None:
            component = dataset.find(ComponentKind.PROCEDURE, procedure_key)
            if component is not None:
                return ChildHierarchy(
                    procedure_key=component.key,
                    name=component.name,
                    steps=component.steps,
                    source="cache",
                    content_error=component.content_error,
                )

        if tenant is None or not tenant.has_credentials:
            raise NotFoundError(
                f"Procedure '{procedure_key}' is not in the cached hierarchy"
            ).with_context(tenant_id=tenant_id, component=procedure_key)

        source = self._source_factory(tenant)
        try:
            record = source.fetch_one(ComponentKind.PROCEDURE, procedure_key)
        finally:
            close = getattr(source, "close", None)
            if callable(close):
                close()
        if record is None:
            raise NotFoundError(
                f"Procedure '{procedure_key}' not found"
            ).with_context(tenant_id=tenant_id, component=procedure_key)

        parsed = parse_record(record)
        steps = parsed.steps
        if dataset is not None:
            registry = ComponentRegistry.from_dataset(dataset)

            def status_for(step: StepNode) -> ReferenceStatus:
                found = registry.get(ComponentKind.PROCEDURE, step.referenced_procedure_key)
                return ReferenceStatus.RESOLVED if found is not None else ReferenceStatus.UNRESOLVED

            steps = mark_references(steps, status_for)
        logger.info("child_hierarchy_fetched", tenant_id=tenant_id, procedure=parsed.key, steps=len(steps))
        return ChildHierarchy(
            procedure_key=parsed.key,
            name=record.name,
            steps=steps,
            source="upstream",
            content_error=parsed.content_error,
        )

    # ── cache admin ──────────────────────────────────────────────────

    def clear_cache(self, tenant_id: str | None = None) -> dict[str, Any]:
        return self.cache.clear(tenant_id)

    def cache_status(self) -> dict[str, Any]:
        status = self.cache.status()
        status["loadsInFlight"] = self._guard.list_active()
        return status

    def set_external_cache(self, enabled: bool) -> dict[str, Any]:
        self.cache.set_external_enabled(enabled)
        return self.cache_status()


__all__ = [
    "ComponentService",
    "LoadSummary",
    "ComponentDetail",
    "ChildHierarchy",
    "describe_dataset",
]
