"""
Record-source protocol.

A record source answers paginated queries for one component kind and can
fetch a single procedure on demand. The Record Loader only talks to this
protocol, so the upstream API, a JSON export and test fixtures are
interchangeable.

Architecture:
    ::

        RecordSource (Protocol)
        ├── SalesforceRecordSource : REST query API over httpx
        ├── FileRecordSource       : JSON export on disk
        └── MemoryRecordSource     : pre-built pages (tests, fixtures)

        query(kind)        → QueryPage   (first page)
        query_more(locator)→ QueryPage   (continuation)
        fetch_one(kind, k) → ComponentRecord | None

Tags:
    source, protocol, pagination

Doc-Types:
    - API Reference
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable

from omnimap.core.models import ComponentKind, ComponentRecord


@dataclass
class QueryPage:
    """One batch of records plus the continuation locator.

    Attributes:
        records: Records in this batch.
        done: ``True`` when no further page exists.
        next_locator: Opaque token for ``query_more`` (``None`` when done).
        total_size: Total matching records reported by the source.
    """

    records: list[ComponentRecord] = field(default_factory=list)
    done: bool = True
    next_locator: str | None = None
    total_size: int = 0


@runtime_checkable
class RecordSource(Protocol):
    """Protocol for paginated component record sources."""

    name: str

    def query(self, kind: ComponentKind) -> QueryPage:
        """Return the first page of records of ``kind``."""
        ...

    def query_more(self, locator: str) -> QueryPage:
        """Return the page identified by a continuation locator."""
        ...

    def fetch_one(self, kind: ComponentKind, name_or_key: str) -> ComponentRecord | None:
        """Fetch the latest active record matching a name or key."""
        ...


# ── Record mapping ───────────────────────────────────────────────────────


def _short_field(name: str) -> str:
    """Strip managed-package namespace and ``__c``/``__r`` suffix.

    ``vlocity_cmt__ProcedureKey__c`` → ``ProcedureKey``; plain names pass through.
    """
    if name.endswith(("__c", "__r")):
        parts = name.split("__")
        return parts[-2]
    return name


_ALIASES = {
    "Id": "id",
    "Name": "name",
    "Type": "type",
    "SubType": "sub_type",
    "Version": "version",
    "ProcedureKey": "procedure_key",
    "Description": "description",
    "IsActive": "is_active",
    "Content": "definition",
    "OmniScriptDefinitions": "definitions",
    # camelCase export format
    "subType": "sub_type",
    "procedureKey": "procedure_key",
    "isActive": "is_active",
    "content": "definition",
}


def _definition_text(value: Any) -> str | None:
    if value is None:
        return None
    if isinstance(value, str):
        return value
    return json.dumps(value)


def record_from_dict(kind: ComponentKind, data: dict[str, Any]) -> ComponentRecord:
    """Build a ``ComponentRecord`` from an upstream row or an export entry.

    Accepts both the upstream field names (with or without namespace) and
    the camelCase export format. A nested definitions sub-query contributes
    the content of its first row.
    """
    fields: dict[str, Any] = {}
    for raw_key, value in data.items():
        if raw_key == "attributes":
            continue
        short = _short_field(raw_key)
        fields[_ALIASES.get(short, short)] = value

    definition = fields.get("definition")
    nested = fields.get("definitions")
    if definition is None and isinstance(nested, dict):
        rows = nested.get("records") or []
        if rows:
            first = {
                _ALIASES.get(_short_field(k), _short_field(k)): v for k, v in rows[0].items()
            }
            definition = first.get("definition")

    version = fields.get("version")
    is_active = fields.get("is_active")
    return ComponentRecord(
        id=str(fields.get("id") or fields.get("name") or ""),
        name=str(fields.get("name") or ""),
        kind=kind,
        type=fields.get("type"),
        sub_type=fields.get("sub_type"),
        version=str(version) if version is not None else None,
        procedure_key=fields.get("procedure_key"),
        definition=_definition_text(definition),
        description=fields.get("description"),
        is_active=True if is_active is None else bool(is_active),
    )


__all__ = ["QueryPage", "RecordSource", "record_from_dict"]
