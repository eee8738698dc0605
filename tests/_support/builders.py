"""Record builders for the three component kinds."""

from __future__ import annotations

import json
from typing import Any

from omnimap.core.models import ComponentKind, ComponentRecord

TENANT_ID = "00D000000000001"


def ref_step(name: str, key: str, **props: Any) -> dict[str, Any]:
    """A step that calls another procedure."""
    return {
        "name": name,
        "type": "Integration Procedure Action",
        "propSetMap": {"integrationProcedureKey": key, **props},
    }


def plain_step(name: str, type_: str = "Set Values", **props: Any) -> dict[str, Any]:
    node: dict[str, Any] = {"name": name, "type": type_}
    if props:
        node["propSetMap"] = props
    return node


def definition(*children: dict[str, Any], **header: Any) -> str:
    return json.dumps({"children": list(children), **header})


def procedure(
    type_: str,
    sub_type: str,
    *children: dict[str, Any],
    name: str | None = None,
    raw_definition: str | None = None,
    version: str = "1",
) -> ComponentRecord:
    key = f"{type_}_{sub_type}"
    return ComponentRecord(
        id=f"a0P{key}",
        name=name or key,
        kind=ComponentKind.PROCEDURE,
        type=type_,
        sub_type=sub_type,
        version=version,
        procedure_key=key,
        definition=raw_definition if raw_definition is not None else definition(*children),
    )


def guided_script(type_: str, sub_type: str, *children: dict[str, Any]) -> ComponentRecord:
    return ComponentRecord(
        id=f"a0S{type_}{sub_type}",
        name=f"{type_}/{sub_type}",
        kind=ComponentKind.GUIDED_SCRIPT,
        type=type_,
        sub_type=sub_type,
        version="1",
        definition=definition(*children),
    )


def data_mapper(name: str, type_: str = "Extract") -> ComponentRecord:
    return ComponentRecord(id=f"a0D{name}", name=name, kind=ComponentKind.DATA_MAPPER, type=type_)


def records_by_kind(*records: ComponentRecord) -> dict[ComponentKind, list[ComponentRecord]]:
    out: dict[ComponentKind, list[ComponentRecord]] = {k: [] for k in ComponentKind}
    for record in records:
        out[record.kind].append(record)
    return out
