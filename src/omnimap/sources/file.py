"""
In-memory and JSON-file record sources.

``MemoryRecordSource`` serves pre-built records in fixed-size pages so
the loader's pagination path is exercised without a network.
``FileRecordSource`` reads an export file into one.

Export format::

    {
      "dataMappers":   [{"name": "DM_Account", "type": "Extract"}, ...],
      "procedures":    [{"name": "...", "type": "Acct", "subType": "Get",
                         "procedureKey": "Acct_Get", "definition": {...}}, ...],
      "guidedScripts": [...]
    }

``integrationProcedures`` and ``omniscripts`` are accepted as aliases, and
rows may use the upstream field names instead of camelCase.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from omnimap.core.errors import ConfigError, UpstreamQueryError
from omnimap.core.models import ComponentKind, ComponentRecord
from omnimap.sources.protocol import QueryPage, record_from_dict

_FILE_SECTIONS: dict[ComponentKind, tuple[str, ...]] = {
    ComponentKind.DATA_MAPPER: ("dataMappers", "data_mappers"),
    ComponentKind.PROCEDURE: ("procedures", "integrationProcedures"),
    ComponentKind.GUIDED_SCRIPT: ("guidedScripts", "omniscripts", "guided_scripts"),
}


class MemoryRecordSource:
    """Serve records from memory in pages of ``page_size``."""

    name = "memory"

    def __init__(
        self,
        records: dict[ComponentKind, list[ComponentRecord]] | None = None,
        *,
        page_size: int = 200,
    ) -> None:
        if page_size < 1:
            raise ValueError("page_size must be positive")
        self._records = {kind: list(rows) for kind, rows in (records or {}).items()}
        self._page_size = page_size
        self.calls: list[tuple[str, str]] = []

    def add(self, record: ComponentRecord) -> None:
        self._records.setdefault(record.kind, []).append(record)

    def query(self, kind: ComponentKind) -> QueryPage:
        self.calls.append(("query", kind.value))
        return self._page(kind, 0)

    def query_more(self, locator: str) -> QueryPage:
        self.calls.append(("query_more", locator))
        try:
            _, kind_value, offset = locator.split(":")
            kind = ComponentKind(kind_value)
            start = int(offset)
        except ValueError as exc:
            raise UpstreamQueryError(
                f"Malformed continuation locator '{locator}'", retryable=False, cause=exc
            ) from exc
        return self._page(kind, start)

    def fetch_one(self, kind: ComponentKind, name_or_key: str) -> ComponentRecord | None:
        self.calls.append(("fetch_one", name_or_key))
        needle = name_or_key.lower()
        matches = [
            r for r in self._records.get(kind, [])
            if r.is_active and (r.name.lower() == needle or r.key.lower() == needle)
        ]
        if not matches:
            return None
        return max(matches, key=lambda r: _version_key(r.version))

    def _page(self, kind: ComponentKind, start: int) -> QueryPage:
        rows = self._records.get(kind, [])
        end = start + self._page_size
        done = end >= len(rows)
        return QueryPage(
            records=rows[start:end],
            done=done,
            next_locator=None if done else f"memory:{kind.value}:{end}",
            total_size=len(rows),
        )


class FileRecordSource(MemoryRecordSource):
    """Record source backed by a JSON export file."""

    name = "file"

    def __init__(self, path: str | Path, *, page_size: int = 200) -> None:
        self.path = Path(path)
        super().__init__(_read_export(self.path), page_size=page_size)


def _read_export(path: Path) -> dict[ComponentKind, list[ComponentRecord]]:
    try:
        data: Any = json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError as exc:
        raise ConfigError(f"Records file not found: {path}", cause=exc) from exc
    except json.JSONDecodeError as exc:
        raise ConfigError(f"Records file is not valid JSON: {path}: {exc}", cause=exc) from exc

    if not isinstance(data, dict):
        raise ConfigError(f"Records file must contain a JSON object: {path}")

    records: dict[ComponentKind, list[ComponentRecord]] = {}
    for kind, sections in _FILE_SECTIONS.items():
        rows: list[dict[str, Any]] = []
        for section in sections:
            rows.extend(data.get(section) or [])
        records[kind] = [record_from_dict(kind, row) for row in rows]
    return records


def _version_key(version: str | None) -> float:
    try:
        return float(version) if version is not None else 0.0
    except ValueError:
        return 0.0


__all__ = ["MemoryRecordSource", "FileRecordSource"]
