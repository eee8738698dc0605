"""
Data model for component records, step trees and resolved datasets.

Everything the resolver produces is built from these types, and every
type that ends up in the external cache tier knows how to serialize
itself to the camelCase payload (``to_dict``) and back (``from_dict``).

Manifesto:
    Step trees are immutable once parsed. Cross-component links are
    stored as *keys*, never as embedded subtrees, so the registry is the
    single owner of every ``ResolvedComponent`` and the serialized form
    stays acyclic even when the reference graph is not.

Architecture:
    ::

        ComponentRecord ──parse──► StepNode tree (frozen)
                                         │ referenced_procedure_key
                                         ▼
        ResolvedComponent  (mutable: referenced_by, fully_expanded)
                │
        ResolvedDataset ── three collections + hierarchy index
                        ── LoadTiming, LoadReport
                        ── to_dict() / from_dict()   (external tier)

Tags:
    data-model, step-tree, dataclass, serialization

Doc-Types:
    - API Reference
    - Technical Design
"""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from omnimap.core.errors import NotAuthenticatedError, ValidationError


def utcnow_iso() -> str:
    """Return the current UTC time as an ISO-8601 string."""
    return datetime.now(UTC).isoformat()


# ── Enums ────────────────────────────────────────────────────────────────


class ComponentKind(str, Enum):
    """The three record kinds, in load order."""

    DATA_MAPPER = "data-mapper"
    PROCEDURE = "integration-procedure"
    GUIDED_SCRIPT = "omniscript"

    @property
    def collection(self) -> str:
        """Key of this kind's collection in the serialized dataset."""
        return _COLLECTIONS[self]

    @classmethod
    def parse(cls, value: str | ComponentKind) -> ComponentKind:
        """Accept the canonical value or a common alias (``ip``, ``os``, ``dm``...)."""
        if isinstance(value, ComponentKind):
            return value
        normalized = str(value).strip().lower()
        kind = _ALIASES.get(normalized)
        if kind is None:
            raise ValidationError(
                f"Unknown component kind '{value}'. "
                f"Expected one of: {', '.join(k.value for k in cls)}"
            )
        return kind


_COLLECTIONS = {
    ComponentKind.DATA_MAPPER: "dataMappers",
    ComponentKind.PROCEDURE: "integrationProcedures",
    ComponentKind.GUIDED_SCRIPT: "omniscripts",
}

_ALIASES = {
    "data-mapper": ComponentKind.DATA_MAPPER,
    "datamapper": ComponentKind.DATA_MAPPER,
    "data-mappers": ComponentKind.DATA_MAPPER,
    "dm": ComponentKind.DATA_MAPPER,
    "dataraptor": ComponentKind.DATA_MAPPER,
    "integration-procedure": ComponentKind.PROCEDURE,
    "integration-procedures": ComponentKind.PROCEDURE,
    "procedure": ComponentKind.PROCEDURE,
    "ip": ComponentKind.PROCEDURE,
    "omniscript": ComponentKind.GUIDED_SCRIPT,
    "omniscripts": ComponentKind.GUIDED_SCRIPT,
    "guided-script": ComponentKind.GUIDED_SCRIPT,
    "os": ComponentKind.GUIDED_SCRIPT,
}

LOAD_ORDER: tuple[ComponentKind, ...] = (
    ComponentKind.DATA_MAPPER,
    ComponentKind.PROCEDURE,
    ComponentKind.GUIDED_SCRIPT,
)


class BlockType(str, Enum):
    """Classification assigned to each step by the parser."""

    NONE = "none"
    CONDITIONAL = "conditional"
    LOOP = "loop"
    CACHE = "cache"
    BLOCK = "block"
    IP_REFERENCE = "ip-reference"


class ReferenceStatus(str, Enum):
    """Outcome of resolving a step's procedure reference."""

    PENDING = "pending"
    RESOLVED = "resolved"
    UNRESOLVED = "unresolved"


# ── Tenant context ───────────────────────────────────────────────────────


@dataclass(frozen=True, slots=True)
class TenantContext:
    """Credentials and identity of the tenant a request acts on.

    Attributes:
        tenant_id: Organization identifier, used as the cache key.
        instance_url: Base URL of the tenant's upstream instance.
        access_token: Bearer token for the upstream query API.
        tenant_name: Optional display name.
        api_version: Optional upstream API version override.
    """

    tenant_id: str
    instance_url: str | None = None
    access_token: str | None = field(default=None, repr=False)
    tenant_name: str | None = None
    api_version: str | None = None

    @property
    def has_credentials(self) -> bool:
        return bool(self.instance_url and self.access_token)

    def require_credentials(self) -> TenantContext:
        """Return self, or raise when the upstream cannot be queried."""
        if not self.tenant_id:
            raise NotAuthenticatedError("No tenant context: tenant id is missing")
        if not self.has_credentials:
            raise NotAuthenticatedError(
                "No valid tenant context: instance URL and access token are required"
            ).with_context(tenant_id=self.tenant_id)
        return self


# ── Raw records ──────────────────────────────────────────────────────────


@dataclass(frozen=True, slots=True)
class ComponentRecord:
    """Raw record as returned by a record source. Discarded after parsing."""

    id: str
    name: str
    kind: ComponentKind
    type: str | None = None
    sub_type: str | None = None
    version: str | None = None
    procedure_key: str | None = None
    definition: str | None = None
    description: str | None = None
    is_active: bool = True

    @property
    def key(self) -> str:
        """Stable identifier used for deduplication and cross-referencing.

        Data mappers are keyed by name. Everything else uses the declared
        procedure key, then ``Type_SubType``, then the name.
        """
        if self.kind is ComponentKind.DATA_MAPPER:
            return self.name
        if self.procedure_key and self.procedure_key != "undefined":
            return self.procedure_key
        if self.type and self.sub_type:
            return f"{self.type}_{self.sub_type}"
        return self.name


# ── Step tree ────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class StepNode:
    """One parsed node of a component definition.

    Immutable. The resolver rebuilds reference steps with
    ``dataclasses.replace`` to record the resolution outcome; it never
    embeds the target's structure.
    """

    name: str
    type: str | None = None
    block_type: BlockType = BlockType.NONE
    label: str | None = None
    description: str | None = None
    execution_condition: str | None = None
    show_condition: str | None = None
    block_condition: str | None = None
    block_iterator: str | None = None
    block_cache_key: str | None = None
    bundle: str | None = None
    remote_class: str | None = None
    remote_method: str | None = None
    has_children: bool = False
    referenced_procedure_key: str | None = None
    reference_status: ReferenceStatus | None = None
    props: dict[str, Any] = field(default_factory=dict)
    sub_steps: tuple[StepNode, ...] = ()
    block_steps: tuple[StepNode, ...] = ()

    @property
    def children(self) -> tuple[StepNode, ...]:
        return self.sub_steps + self.block_steps

    @property
    def is_reference(self) -> bool:
        return self.referenced_procedure_key is not None

    @property
    def has_auxiliary_reference(self) -> bool:
        """A classified block that also carries a procedure reference."""
        return self.is_reference and self.block_type not in (BlockType.NONE, BlockType.IP_REFERENCE)

    def walk(self) -> Iterator[StepNode]:
        """Yield this node and every descendant, depth-first, in document order."""
        stack: list[StepNode] = [self]
        while stack:
            node = stack.pop()
            yield node
            stack.extend(reversed(node.children))

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {
            "name": self.name,
            "type": self.type,
            "blockType": self.block_type.value,
            "hasChildren": self.has_children,
        }
        optional = {
            "label": self.label,
            "description": self.description,
            "executionCondition": self.execution_condition,
            "showCondition": self.show_condition,
            "blockCondition": self.block_condition,
            "blockIterator": self.block_iterator,
            "blockCacheKey": self.block_cache_key,
            "bundle": self.bundle,
            "remoteClass": self.remote_class,
            "remoteMethod": self.remote_method,
            "referencedProcedureKey": self.referenced_procedure_key,
        }
        d.update({k: v for k, v in optional.items() if v is not None})
        if self.reference_status is not None:
            d["referenceStatus"] = self.reference_status.value
        if self.has_auxiliary_reference:
            d["hasReference"] = True
        if self.props:
            d["propSetMap"] = self.props
        if self.sub_steps:
            d["subSteps"] = [s.to_dict() for s in self.sub_steps]
        if self.block_steps:
            d["blockSteps"] = [s.to_dict() for s in self.block_steps]
        return d

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> StepNode:
        status = data.get("referenceStatus")
        return cls(
            name=data.get("name", "Unnamed Step"),
            type=data.get("type"),
            block_type=BlockType(data.get("blockType", BlockType.NONE.value)),
            label=data.get("label"),
            description=data.get("description"),
            execution_condition=data.get("executionCondition"),
            show_condition=data.get("showCondition"),
            block_condition=data.get("blockCondition"),
            block_iterator=data.get("blockIterator"),
            block_cache_key=data.get("blockCacheKey"),
            bundle=data.get("bundle"),
            remote_class=data.get("remoteClass"),
            remote_method=data.get("remoteMethod"),
            has_children=bool(data.get("hasChildren", False)),
            referenced_procedure_key=data.get("referencedProcedureKey"),
            reference_status=ReferenceStatus(status) if status else None,
            props=dict(data.get("propSetMap") or {}),
            sub_steps=tuple(cls.from_dict(s) for s in data.get("subSteps", ())),
            block_steps=tuple(cls.from_dict(s) for s in data.get("blockSteps", ())),
        )


def walk_steps(steps: tuple[StepNode, ...] | list[StepNode]) -> Iterator[StepNode]:
    """Walk every node of a step forest in document order."""
    for step in steps:
        yield from step.walk()


# ── Resolution output ────────────────────────────────────────────────────


@dataclass(frozen=True, slots=True)
class ReferenceEntry:
    """One hierarchical path by which a component is reachable.

    Attributes:
        path: Dash-joined chain of keys from a root to the target.
        parent_key: Key of the component whose step holds the reference.
        referencing_path: ``path`` minus the target, i.e. the chain of referrers.
        step_name: Name of the referencing step.
        step_type: Declared type of the referencing step.
        source: ``hierarchical-reference`` or ``omniscript-reference``.
        timestamp: When the entry was stamped (ISO-8601).
    """

    path: str
    parent_key: str
    referencing_path: str
    step_name: str
    step_type: str | None = None
    source: str = "hierarchical-reference"
    timestamp: str = field(default_factory=utcnow_iso)

    def to_dict(self) -> dict[str, Any]:
        return {
            "path": self.path,
            "parentKey": self.parent_key,
            "referencingPath": self.referencing_path,
            "stepName": self.step_name,
            "stepType": self.step_type,
            "type": self.source,
            "timestamp": self.timestamp,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ReferenceEntry:
        return cls(
            path=data["path"],
            parent_key=data.get("parentKey", ""),
            referencing_path=data.get("referencingPath", ""),
            step_name=data.get("stepName", ""),
            step_type=data.get("stepType"),
            source=data.get("type", "hierarchical-reference"),
            timestamp=data.get("timestamp") or utcnow_iso(),
        )


@dataclass(frozen=True, slots=True)
class ComponentSummary:
    """Flat listing row returned by search."""

    key: str
    name: str
    kind: ComponentKind
    type: str | None = None
    sub_type: str | None = None
    version: str | None = None
    step_count: int = 0
    reference_count: int = 0
    referenced_by_count: int = 0
    fully_expanded: bool = False
    content_error: str | None = None


@dataclass(eq=False)
class ResolvedComponent:
    """A component in the resolution registry.

    Identity matters: one instance per key per pass, shared by every
    step that references it, so equality is identity.
    """

    key: str
    name: str
    kind: ComponentKind
    record_id: str | None = None
    type: str | None = None
    sub_type: str | None = None
    version: str | None = None
    description: str | None = None
    steps: tuple[StepNode, ...] = ()
    referenced_by: list[ReferenceEntry] = field(default_factory=list)
    fully_expanded: bool = False
    content_error: str | None = None
    summary: dict[str, Any] = field(default_factory=dict)

    def reference_keys(self) -> list[str]:
        """Distinct referenced keys, in document order."""
        seen: dict[str, None] = {}
        for step in walk_steps(self.steps):
            if step.referenced_procedure_key is not None:
                seen.setdefault(step.referenced_procedure_key)
        return list(seen)

    def step_count(self) -> int:
        return sum(1 for _ in walk_steps(self.steps))

    def has_path(self, path: str) -> bool:
        return any(entry.path == path for entry in self.referenced_by)

    def add_reference(self, entry: ReferenceEntry) -> bool:
        """Append ``entry`` unless the same path is already recorded."""
        if self.has_path(entry.path):
            return False
        self.referenced_by.append(entry)
        return True

    def to_summary(self) -> ComponentSummary:
        return ComponentSummary(
            key=self.key,
            name=self.name,
            kind=self.kind,
            type=self.type,
            sub_type=self.sub_type,
            version=self.version,
            step_count=self.step_count(),
            reference_count=len(self.reference_keys()),
            referenced_by_count=len(self.referenced_by),
            fully_expanded=self.fully_expanded,
            content_error=self.content_error,
        )

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {
            "id": self.record_id,
            "name": self.name,
            "procedureKey": self.key,
            "componentType": self.kind.value,
            "type": self.type,
            "subType": self.sub_type,
            "version": self.version,
            "description": self.description,
            "steps": [s.to_dict() for s in self.steps],
            "referencedBy": [r.to_dict() for r in self.referenced_by],
            "fullyExpanded": self.fully_expanded,
        }
        if self.content_error is not None:
            d["contentError"] = self.content_error
        if self.summary:
            d["summary"] = self.summary
        return d

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ResolvedComponent:
        return cls(
            key=data["procedureKey"],
            name=data["name"],
            kind=ComponentKind(data["componentType"]),
            record_id=data.get("id"),
            type=data.get("type"),
            sub_type=data.get("subType"),
            version=data.get("version"),
            description=data.get("description"),
            steps=tuple(StepNode.from_dict(s) for s in data.get("steps", ())),
            referenced_by=[ReferenceEntry.from_dict(r) for r in data.get("referencedBy", ())],
            fully_expanded=bool(data.get("fullyExpanded", False)),
            content_error=data.get("contentError"),
            summary=dict(data.get("summary") or {}),
        )


# ── Load reporting ───────────────────────────────────────────────────────


@dataclass
class KindLoadStatus:
    """How loading one record kind went."""

    kind: ComponentKind
    records: int = 0
    batches: int = 0
    truncated: bool = False
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind.value,
            "records": self.records,
            "batches": self.batches,
            "truncated": self.truncated,
            "error": self.error,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> KindLoadStatus:
        return cls(
            kind=ComponentKind(data["kind"]),
            records=data.get("records", 0),
            batches=data.get("batches", 0),
            truncated=data.get("truncated", False),
            error=data.get("error"),
        )


@dataclass(frozen=True, slots=True)
class ParseIssue:
    """A definition blob that could not be parsed."""

    kind: ComponentKind
    key: str
    name: str
    message: str

    def to_dict(self) -> dict[str, Any]:
        return {"kind": self.kind.value, "key": self.key, "name": self.name, "message": self.message}


@dataclass(frozen=True, slots=True)
class UnresolvedReference:
    """A step pointing at a key that is not in the loaded snapshot."""

    kind: ComponentKind
    referencing_key: str
    step_name: str
    missing_key: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind.value,
            "referencingKey": self.referencing_key,
            "stepName": self.step_name,
            "missingKey": self.missing_key,
        }


@dataclass
class LoadReport:
    """Everything non-fatal that happened during one full load.

    ``status`` is ``complete`` only when every kind loaded in full and
    every definition parsed. Unresolved references are reported but do
    not make a load partial.
    """

    kinds: dict[ComponentKind, KindLoadStatus] = field(default_factory=dict)
    parse_errors: list[ParseIssue] = field(default_factory=list)
    unresolved: list[UnresolvedReference] = field(default_factory=list)
    paths_stamped: int = 0
    stamp_truncations: int = 0

    @property
    def failed_kinds(self) -> list[ComponentKind]:
        return [k for k, status in self.kinds.items() if not status.ok]

    @property
    def all_kinds_failed(self) -> bool:
        return bool(self.kinds) and all(not s.ok for s in self.kinds.values())

    @property
    def status(self) -> str:
        truncated = any(s.truncated for s in self.kinds.values())
        if self.failed_kinds or self.parse_errors or truncated:
            return "partial"
        return "complete"

    def warnings(self) -> list[str]:
        out = []
        for status in self.kinds.values():
            if status.error:
                out.append(f"Failed to load {status.kind.value} records: {status.error}")
            elif status.truncated:
                out.append(
                    f"Stopped loading {status.kind.value} records after {status.batches} batches"
                )
        for issue in self.parse_errors:
            out.append(f"Could not parse definition of {issue.kind.value} '{issue.name}': {issue.message}")
        for ref in self.unresolved:
            out.append(
                f"Step '{ref.step_name}' in '{ref.referencing_key}' references unknown procedure '{ref.missing_key}'"
            )
        if self.stamp_truncations:
            out.append(f"Reference path stamping hit the depth ceiling {self.stamp_truncations} time(s)")
        return out

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status,
            "kinds": {k.value: s.to_dict() for k, s in self.kinds.items()},
            "parseErrors": [p.to_dict() for p in self.parse_errors],
            "unresolvedReferences": [u.to_dict() for u in self.unresolved],
            "pathsStamped": self.paths_stamped,
            "stampTruncations": self.stamp_truncations,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> LoadReport:
        return cls(
            kinds={
                ComponentKind(k): KindLoadStatus.from_dict(v)
                for k, v in (data.get("kinds") or {}).items()
            },
            parse_errors=[
                ParseIssue(ComponentKind(p["kind"]), p["key"], p["name"], p["message"])
                for p in data.get("parseErrors", ())
            ],
            unresolved=[
                UnresolvedReference(
                    ComponentKind(u["kind"]), u["referencingKey"], u["stepName"], u["missingKey"]
                )
                for u in data.get("unresolvedReferences", ())
            ],
            paths_stamped=data.get("pathsStamped", 0),
            stamp_truncations=data.get("stampTruncations", 0),
        )


@dataclass(frozen=True, slots=True)
class LoadTiming:
    """Wall-clock timing of one full load."""

    start_time: str
    end_time: str
    duration_ms: int
    duration_seconds: float

    @classmethod
    def between(cls, start: datetime, end: datetime) -> LoadTiming:
        duration_ms = int((end - start).total_seconds() * 1000)
        return cls(
            start_time=start.isoformat(),
            end_time=end.isoformat(),
            duration_ms=duration_ms,
            duration_seconds=round(duration_ms / 1000, 2),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "startTime": self.start_time,
            "endTime": self.end_time,
            "durationMs": self.duration_ms,
            "durationSeconds": self.duration_seconds,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> LoadTiming:
        return cls(
            start_time=data["startTime"],
            end_time=data["endTime"],
            duration_ms=data["durationMs"],
            duration_seconds=data["durationSeconds"],
        )


# ── Tenant dataset ───────────────────────────────────────────────────────


@dataclass(eq=False)
class ResolvedDataset:
    """The fully resolved component set of one tenant (the cached unit)."""

    tenant_id: str
    data_mappers: list[ResolvedComponent] = field(default_factory=list)
    procedures: list[ResolvedComponent] = field(default_factory=list)
    guided_scripts: list[ResolvedComponent] = field(default_factory=list)
    hierarchy: dict[str, list[str]] = field(default_factory=dict)
    loaded_at: str = field(default_factory=utcnow_iso)
    timing: LoadTiming | None = None
    report: LoadReport = field(default_factory=LoadReport)
    tenant_name: str | None = None
    cached_at: str | None = None
    cache_source: str = "fresh"
    _index: dict[tuple[ComponentKind, str], ResolvedComponent] | None = field(
        default=None, init=False, repr=False
    )

    def collection(self, kind: ComponentKind) -> list[ResolvedComponent]:
        if kind is ComponentKind.DATA_MAPPER:
            return self.data_mappers
        if kind is ComponentKind.PROCEDURE:
            return self.procedures
        return self.guided_scripts

    def components(self) -> Iterator[ResolvedComponent]:
        for kind in LOAD_ORDER:
            yield from self.collection(kind)

    @property
    def total_components(self) -> int:
        return len(self.data_mappers) + len(self.procedures) + len(self.guided_scripts)

    def lookup(self, kind: ComponentKind, key: str) -> ResolvedComponent | None:
        """Exact key lookup. The index is built on first use."""
        if self._index is None:
            self._index = {(c.kind, c.key): c for c in self.components()}
        return self._index.get((kind, key))

    def find(self, kind: ComponentKind, name_or_key: str) -> ResolvedComponent | None:
        """Case-insensitive match on name; procedures also match on key."""
        exact = self.lookup(kind, name_or_key)
        if exact is not None:
            return exact
        needle = name_or_key.lower()
        for component in self.collection(kind):
            if component.name.lower() == needle:
                return component
            if kind is ComponentKind.PROCEDURE and component.key.lower() == needle:
                return component
        return None

    def counts(self) -> dict[str, int]:
        return {
            "dataMappers": len(self.data_mappers),
            "integrationProcedures": len(self.procedures),
            "omniscripts": len(self.guided_scripts),
            "total": self.total_components,
        }

    def to_dict(self) -> dict[str, Any]:
        return {
            "tenantId": self.tenant_id,
            "tenantName": self.tenant_name,
            "dataMappers": [c.to_dict() for c in self.data_mappers],
            "integrationProcedures": [c.to_dict() for c in self.procedures],
            "omniscripts": [c.to_dict() for c in self.guided_scripts],
            "hierarchy": self.hierarchy,
            "loadedAt": self.loaded_at,
            "totalComponents": self.total_components,
            "timing": self.timing.to_dict() if self.timing else None,
            "report": self.report.to_dict(),
            "cachedAt": self.cached_at,
            "cacheSource": self.cache_source,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ResolvedDataset:
        timing = data.get("timing")
        return cls(
            tenant_id=data["tenantId"],
            tenant_name=data.get("tenantName"),
            data_mappers=[ResolvedComponent.from_dict(c) for c in data.get("dataMappers", ())],
            procedures=[ResolvedComponent.from_dict(c) for c in data.get("integrationProcedures", ())],
            guided_scripts=[ResolvedComponent.from_dict(c) for c in data.get("omniscripts", ())],
            hierarchy={k: list(v) for k, v in (data.get("hierarchy") or {}).items()},
            loaded_at=data.get("loadedAt") or utcnow_iso(),
            timing=LoadTiming.from_dict(timing) if timing else None,
            report=LoadReport.from_dict(data.get("report") or {}),
            cached_at=data.get("cachedAt"),
            cache_source=data.get("cacheSource", "fresh"),
        )


__all__ = [
    "utcnow_iso",
    "ComponentKind",
    "LOAD_ORDER",
    "BlockType",
    "ReferenceStatus",
    "TenantContext",
    "ComponentRecord",
    "StepNode",
    "walk_steps",
    "ReferenceEntry",
    "ComponentSummary",
    "ResolvedComponent",
    "KindLoadStatus",
    "ParseIssue",
    "UnresolvedReference",
    "LoadReport",
    "LoadTiming",
    "ResolvedDataset",
]
