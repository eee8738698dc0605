"""
Hierarchy Resolver: parsed components → shared-instance registry.

One resolution pass builds a ``ComponentRegistry`` from scratch. Every
component key maps to exactly one ``ResolvedComponent``; every step that
references that key is satisfied by the same instance.

Manifesto:
    The registry is an explicit object owned by the pass, never module
    state. A component is registered *before* its steps are walked, so a
    reference that loops back finds the in-progress entry instead of
    re-entering resolution. Expansion runs from an explicit worklist with
    a depth ceiling rather than recursion, so cycle safety does not depend
    on the interpreter's stack.

Architecture:
    ::

        resolve(parsed components)
          │  (data mappers → procedures → guided scripts, input order)
          ├── registry hit?          → reuse, no re-expansion
          └── miss → register → worklist
                        ├── walk steps of the popped component
                        ├── reference K in registry   → RESOLVED (shared)
                        ├── K in input set            → register, push
                        └── K unknown                 → UNRESOLVED + warning
                        fully_expanded = True once its own walk finishes

    Steps store only the target *key*. ``ComponentRegistry.children_of``
    turns those keys back into the shared instances.

Tags:
    resolver, registry, memoization, cycle-safety, worklist

Doc-Types:
    - Technical Design
"""

from __future__ import annotations

import time
from collections.abc import Callable, Iterable, Iterator
from dataclasses import dataclass, field, replace

from omnimap.core.logging import get_logger
from omnimap.core.models import (
    LOAD_ORDER,
    ComponentKind,
    ParseIssue,
    ReferenceStatus,
    ResolvedComponent,
    ResolvedDataset,
    StepNode,
    UnresolvedReference,
    walk_steps,
)
from omnimap.hierarchy.parser import ParsedComponent

logger = get_logger(__name__)

# references always point at procedures
REFERENCE_TARGET_KIND = ComponentKind.PROCEDURE

RegistryKey = tuple[ComponentKind, str]


class ComponentRegistry:
    """Owner of every ``ResolvedComponent`` of one resolution pass.

    Keyed by ``(kind, key)`` so a data mapper and a procedure that happen
    to share a name stay distinct.
    """

    def __init__(self) -> None:
        self._components: dict[RegistryKey, ResolvedComponent] = {}
        self._order: dict[ComponentKind, list[ResolvedComponent]] = {k: [] for k in LOAD_ORDER}

    def __len__(self) -> int:
        return len(self._components)

    def __contains__(self, item: RegistryKey) -> bool:
        return item in self._components

    def __iter__(self) -> Iterator[ResolvedComponent]:
        for kind in LOAD_ORDER:
            yield from self._order[kind]

    def register(self, component: ResolvedComponent) -> ResolvedComponent:
        """Add ``component`` unless its key is taken; return the registered instance."""
        slot = (component.kind, component.key)
        existing = self._components.get(slot)
        if existing is not None:
            return existing
        self._components[slot] = component
        self._order[component.kind].append(component)
        return component

    def get(self, kind: ComponentKind, key: str) -> ResolvedComponent | None:
        return self._components.get((kind, key))

    def components(self, kind: ComponentKind) -> list[ResolvedComponent]:
        return list(self._order[kind])

    def children_of(self, component: ResolvedComponent) -> list[ResolvedComponent]:
        """Shared instances referenced by ``component``'s steps, in document order."""
        out = []
        for key in component.reference_keys():
            target = self.get(REFERENCE_TARGET_KIND, key)
            if target is not None:
                out.append(target)
        return out

    def reachable(self, component: ResolvedComponent, *, max_depth: int = 64) -> list[ResolvedComponent]:
        """Distinct components reachable through references, excluding ``component``."""
        seen: dict[int, ResolvedComponent] = {id(component): component}
        stack: list[tuple[ResolvedComponent, int]] = [(component, 0)]
        while stack:
            current, depth = stack.pop()
            if depth >= max_depth:
                continue
            for child in self.children_of(current):
                if id(child) not in seen:
                    seen[id(child)] = child
                    stack.append((child, depth + 1))
        del seen[id(component)]
        return list(seen.values())

    def hierarchy(self) -> dict[str, list[str]]:
        """Parent key → distinct resolved child keys, for components with children."""
        index: dict[str, list[str]] = {}
        for component in self:
            if component.kind is ComponentKind.DATA_MAPPER:
                continue
            children = [c.key for c in self.children_of(component)]
            if children:
                index[component.key] = children
        return index

    def to_dataset(self, tenant_id: str, **kwargs) -> ResolvedDataset:
        return ResolvedDataset(
            tenant_id=tenant_id,
            data_mappers=self.components(ComponentKind.DATA_MAPPER),
            procedures=self.components(ComponentKind.PROCEDURE),
            guided_scripts=self.components(ComponentKind.GUIDED_SCRIPT),
            hierarchy=self.hierarchy(),
            **kwargs,
        )

    @classmethod
    def from_dataset(cls, dataset: ResolvedDataset) -> ComponentRegistry:
        """Rebuild a registry around a dataset's existing instances."""
        registry = cls()
        for component in dataset.components():
            registry.register(component)
        return registry


@dataclass
class ResolutionResult:
    registry: ComponentRegistry
    unresolved: list[UnresolvedReference] = field(default_factory=list)
    parse_errors: list[ParseIssue] = field(default_factory=list)
    duplicates: int = 0
    duration_ms: float = 0.0


class _Pass:
    """Mutable state of one resolution pass."""

    def __init__(self, parsed: Iterable[ParsedComponent]) -> None:
        self.registry = ComponentRegistry()
        self.inputs: dict[RegistryKey, ParsedComponent] = {}
        self.order: list[ParsedComponent] = []
        self.unresolved: list[UnresolvedReference] = []
        self.duplicates = 0

        by_kind: dict[ComponentKind, list[ParsedComponent]] = {k: [] for k in LOAD_ORDER}
        for item in parsed:
            by_kind[item.kind].append(item)
        for kind in LOAD_ORDER:
            for item in by_kind[kind]:
                slot = (item.kind, item.key)
                if slot in self.inputs:
                    # first occurrence wins
                    self.duplicates += 1
                    logger.debug("duplicate_component_key", kind=kind.value, component=item.key)
                    continue
                self.inputs[slot] = item
                self.order.append(item)


def _new_component(parsed: ParsedComponent) -> ResolvedComponent:
    record = parsed.record
    return ResolvedComponent(
        key=parsed.key,
        name=record.name,
        kind=record.kind,
        record_id=record.id,
        type=record.type,
        sub_type=record.sub_type,
        version=record.version,
        description=record.description,
        steps=parsed.steps,
        content_error=parsed.content_error,
        summary=dict(parsed.summary),
    )


def mark_references(
    steps: tuple[StepNode, ...],
    status_for: Callable[[StepNode], ReferenceStatus],
) -> tuple[StepNode, ...]:
    """Rebuild a step forest with each reference step's status set."""
    out = []
    for step in steps:
        changes = {}
        if step.is_reference:
            changes["reference_status"] = status_for(step)
        if step.sub_steps:
            changes["sub_steps"] = mark_references(step.sub_steps, status_for)
        if step.block_steps:
            changes["block_steps"] = mark_references(step.block_steps, status_for)
        out.append(replace(step, **changes) if changes else step)
    return tuple(out)


class HierarchyResolver:
    """Build a ``ComponentRegistry`` from parsed components.

    Parameters
    ----------
    max_depth:
        Deepest reference chain expanded from one root within a single
        worklist run. Components beyond it are left for the outer loop,
        which still resolves every input exactly once.
    """

    def __init__(self, *, max_depth: int = 64) -> None:
        if max_depth < 1:
            raise ValueError("max_depth must be at least 1")
        self.max_depth = max_depth

    def resolve(self, parsed: Iterable[ParsedComponent]) -> ResolutionResult:
        started = time.perf_counter()
        state = _Pass(parsed)

        for item in state.order:
            self._resolve_one(state, item)

        parse_errors = [
            ParseIssue(kind=p.kind, key=p.key, name=p.record.name, message=p.content_error)
            for p in state.order
            if p.content_error is not None
        ]
        result = ResolutionResult(
            registry=state.registry,
            unresolved=state.unresolved,
            parse_errors=parse_errors,
            duplicates=state.duplicates,
            duration_ms=round((time.perf_counter() - started) * 1000, 2),
        )
        logger.info(
            "resolution_complete",
            components=len(state.registry),
            data_mappers=len(state.registry.components(ComponentKind.DATA_MAPPER)),
            procedures=len(state.registry.components(ComponentKind.PROCEDURE)),
            guided_scripts=len(state.registry.components(ComponentKind.GUIDED_SCRIPT)),
            unresolved=len(state.unresolved),
            duplicates=state.duplicates,
            duration_ms=result.duration_ms,
        )
        return result

    def _resolve_one(self, state: _Pass, item: ParsedComponent) -> ResolvedComponent:
        existing = state.registry.get(item.kind, item.key)
        if existing is not None:
            return existing

        root = state.registry.register(_new_component(item))
        worklist: list[tuple[ResolvedComponent, int]] = [(root, 0)]
        while worklist:
            component, depth = worklist.pop()
            for target_parsed in self._expand(state, component):
                if depth + 1 > self.max_depth:
                    logger.debug(
                        "resolve_depth_deferred",
                        component=component.key,
                        target=target_parsed.key,
                        depth=depth + 1,
                    )
                    continue
                target = state.registry.register(_new_component(target_parsed))
                worklist.append((target, depth + 1))
        return root

    def _expand(self, state: _Pass, component: ResolvedComponent) -> list[ParsedComponent]:
        """Mark ``component``'s reference steps; return inputs still to expand."""
        pending: dict[str, ParsedComponent] = {}

        def status_for(step: StepNode) -> ReferenceStatus:
            key = step.referenced_procedure_key
            if (REFERENCE_TARGET_KIND, key) in state.registry or key in pending:
                return ReferenceStatus.RESOLVED
            target = state.inputs.get((REFERENCE_TARGET_KIND, key))
            if target is not None:
                pending[key] = target
                return ReferenceStatus.RESOLVED
            state.unresolved.append(
                UnresolvedReference(
                    kind=component.kind,
                    referencing_key=component.key,
                    step_name=step.name,
                    missing_key=key,
                )
            )
            logger.warning(
                "unresolved_reference",
                kind=component.kind.value,
                component=component.key,
                step=step.name,
                missing_key=key,
            )
            return ReferenceStatus.UNRESOLVED

        if any(s.is_reference for s in walk_steps(component.steps)):
            component.steps = mark_references(component.steps, status_for)
        component.fully_expanded = True
        return list(pending.values())


def resolve(parsed: Iterable[ParsedComponent], *, max_depth: int = 64) -> ResolutionResult:
    """Run one resolution pass with a fresh registry."""
    return HierarchyResolver(max_depth=max_depth).resolve(parsed)


__all__ = [
    "ComponentRegistry",
    "HierarchyResolver",
    "ResolutionResult",
    "mark_references",
    "resolve",
]
