"""
Reference-Path Stamper.

Runs after the registry is complete. Starting from every procedure and
then every guided script, it walks the reference graph and appends a
``ReferenceEntry`` to each target for every distinct path that reaches
it. With ``A → B → C`` the stamper records ``A-B`` on B, and both
``B-C`` and ``A-B-C`` on C.

Traversal uses an explicit stack. A target already on the current chain
gets its cycle-closing entry but is not descended into, and chains longer
than ``max_depth`` are cut and counted.
"""

from __future__ import annotations

from dataclasses import dataclass

from omnimap.core.logging import get_logger
from omnimap.core.models import ComponentKind, ReferenceEntry, ResolvedComponent, utcnow_iso, walk_steps
from omnimap.hierarchy.resolver import REFERENCE_TARGET_KIND, ComponentRegistry

logger = get_logger(__name__)

ROOT_SOURCES: dict[ComponentKind, str] = {
    ComponentKind.PROCEDURE: "hierarchical-reference",
    ComponentKind.GUIDED_SCRIPT: "omniscript-reference",
}


@dataclass
class StampResult:
    paths_stamped: int = 0
    truncations: int = 0


@dataclass
class _Frame:
    component: ResolvedComponent
    path: str
    chain: frozenset[str]
    depth: int


class ReferencePathStamper:
    """Stamp ``referenced_by`` paths onto every reachable target."""

    def __init__(self, *, max_depth: int = 50) -> None:
        if max_depth < 1:
            raise ValueError("max_depth must be at least 1")
        self.max_depth = max_depth

    def stamp(self, registry: ComponentRegistry) -> StampResult:
        result = StampResult()
        timestamp = utcnow_iso()
        for kind, source in ROOT_SOURCES.items():
            for root in registry.components(kind):
                self._stamp_root(registry, root, source, timestamp, result)

        logger.info(
            "stamping_complete",
            paths_stamped=result.paths_stamped,
            truncations=result.truncations,
        )
        return result

    def _stamp_root(
        self,
        registry: ComponentRegistry,
        root: ResolvedComponent,
        source: str,
        timestamp: str,
        result: StampResult,
    ) -> None:
        stack = [_Frame(root, root.key, frozenset({root.key}), 0)]
        while stack:
            frame = stack.pop()
            for step in walk_steps(frame.component.steps):
                key = step.referenced_procedure_key
                if key is None:
                    continue
                target = registry.get(REFERENCE_TARGET_KIND, key)
                if target is None:
                    continue

                path = f"{frame.path}-{key}"
                added = target.add_reference(
                    ReferenceEntry(
                        path=path,
                        parent_key=frame.component.key,
                        referencing_path=frame.path,
                        step_name=step.name,
                        step_type=step.type,
                        source=source,
                        timestamp=timestamp,
                    )
                )
                if not added:
                    # this path, and everything below it, is already stamped
                    continue
                result.paths_stamped += 1

                if key in frame.chain:
                    continue
                if frame.depth + 1 >= self.max_depth:
                    result.truncations += 1
                    logger.warning("stamp_depth_ceiling", root=root.key, path=path, depth=frame.depth + 1)
                    continue
                stack.append(_Frame(target, path, frame.chain | {key}, frame.depth + 1))


def stamp_reference_paths(registry: ComponentRegistry, *, max_depth: int = 50) -> StampResult:
    return ReferencePathStamper(max_depth=max_depth).stamp(registry)


__all__ = ["ReferencePathStamper", "StampResult", "stamp_reference_paths", "ROOT_SOURCES"]
