"""
Step-Tree Parser: definition blob → normalized step tree.

Each component record carries its definition as a JSON string whose
``children`` array describes the steps. Node shapes are irregular, so
every node is classified by a priority-ordered heuristic and its children
are pulled out according to that classification.

Manifesto:
    The upstream format has no published grammar. The classification
    rules below mirror how the format behaves in practice, odd cases
    included: substring matches on names and types, the ``Block``
    exclusion and UI step containers. Output must match what operators
    see in the upstream designer.

Architecture:
    ::

        parse_record(record)
          └── json.loads(definition)          → content_error on failure
              └── build_steps(children, kind)
                    ├── classify_block(node)   → BlockType
                    ├── reference detection    → ip-reference / auxiliary
                    ├── extract_children(node) → flattened element list
                    └── placement              → sub_steps | block_steps | none

Classification order (first match wins):
    1. Structural: ``children[0].eleArray`` is a list. Skipped for guided
       script ``Step`` containers and for ``type == "Block"`` unless the
       name contains "if" or "conditional".
    2. Name contains "if".
    3. Type contains "conditional".
    4. Type is "block" (any case) with non-empty children → block.
    5. Type contains loop/for/while, or name contains loop/foreach/"for
       each" → loop. Type or name contains "cache" → cache.
    6. Property hints: loopCondition/iterator → loop; cacheKey/cacheTimeout
       → cache; condition/executionConditionalFormula → conditional.

Tags:
    parser, step-tree, heuristics, json

Doc-Types:
    - Technical Design
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any

from omnimap.core.errors import DefinitionParseError
from omnimap.core.logging import get_logger
from omnimap.core.models import (
    BlockType,
    ComponentKind,
    ComponentRecord,
    ReferenceStatus,
    StepNode,
)

logger = get_logger(__name__)

UNNAMED_STEP = "Unnamed Step"
_INVALID_KEYS = frozenset({"", "undefined"})


@dataclass(frozen=True)
class ParsedComponent:
    """One record after parsing, before resolution."""

    record: ComponentRecord
    steps: tuple[StepNode, ...] = ()
    content_error: str | None = None
    summary: dict[str, Any] = field(default_factory=dict)

    @property
    def key(self) -> str:
        return self.record.key

    @property
    def kind(self) -> ComponentKind:
        return self.record.kind


# ── Entry points ─────────────────────────────────────────────────────────


def parse_record(record: ComponentRecord) -> ParsedComponent:
    """Parse a record's definition into steps.

    A malformed blob never raises: the component comes back childless
    with ``content_error`` set.
    """
    if not record.definition:
        return ParsedComponent(record=record)

    try:
        content = json.loads(record.definition)
    except (TypeError, ValueError) as exc:
        return _failed(record, DefinitionParseError(f"Invalid definition JSON: {exc}", cause=exc))

    if not isinstance(content, dict):
        return _failed(
            record,
            DefinitionParseError(f"Definition is a JSON {type(content).__name__}, expected an object"),
        )

    children = content.get("children")
    steps = build_steps(children, record.kind) if isinstance(children, list) else ()
    return ParsedComponent(
        record=record,
        steps=steps,
        summary=summarize_definition(content, record.kind),
    )


def _failed(record: ComponentRecord, error: DefinitionParseError) -> ParsedComponent:
    error.with_context(kind=record.kind.value, component=record.key)
    logger.warning("definition_parse_failed", name=record.name, error=error.to_dict())
    return ParsedComponent(record=record, content_error=error.message)


def parse_records(records: list[ComponentRecord]) -> list[ParsedComponent]:
    return [parse_record(r) for r in records]


def build_steps(children: list[Any], kind: ComponentKind) -> tuple[StepNode, ...]:
    """Build step nodes for a list of raw child nodes."""
    return tuple(_build_step(node, kind) for node in children if isinstance(node, dict))


# ── Classification ───────────────────────────────────────────────────────


def _has_nested_elements(children: Any) -> bool:
    """``children`` is a wrapper list whose first entry holds an ``eleArray``."""
    return (
        isinstance(children, list)
        and bool(children)
        and isinstance(children[0], dict)
        and isinstance(children[0].get("eleArray"), list)
    )


def _is_step_container(node: dict[str, Any], kind: ComponentKind) -> bool:
    return kind is ComponentKind.GUIDED_SCRIPT and node.get("type") == "Step"


def classify_block(node: dict[str, Any], kind: ComponentKind) -> BlockType:
    """Classify one raw node. See the module docstring for the rule order."""
    node_type = node.get("type")
    node_name = node.get("name")
    if not node_type and not node_name:
        return BlockType.NONE

    type_lower = str(node_type or "").lower()
    name_lower = str(node_name or "").lower()
    children = node.get("children")

    if _has_nested_elements(children):
        excluded = _is_step_container(node, kind) or node_type == "Block"
        if not excluded or "if" in name_lower or "conditional" in name_lower:
            return BlockType.CONDITIONAL

    if "if" in name_lower:
        return BlockType.CONDITIONAL

    if "conditional" in type_lower:
        return BlockType.CONDITIONAL

    if type_lower == "block" and isinstance(children, list) and children:
        return BlockType.BLOCK

    if (
        "loop" in type_lower
        or "for" in type_lower
        or "while" in type_lower
        or "loop" in name_lower
        or "foreach" in name_lower
        or "for each" in name_lower
    ):
        return BlockType.LOOP

    if "cache" in type_lower or "cache" in name_lower:
        return BlockType.CACHE

    props = node.get("propSetMap")
    if isinstance(props, dict):
        if props.get("loopCondition") or props.get("iterator"):
            return BlockType.LOOP
        if props.get("cacheKey") or props.get("cacheTimeout"):
            return BlockType.CACHE
        if props.get("condition") or props.get("executionConditionalFormula"):
            return BlockType.CONDITIONAL

    return BlockType.NONE


def extract_children(node: dict[str, Any], block_type: BlockType, kind: ComponentKind) -> list[Any]:
    """Pull the child element list out of a node.

    UI step containers and plain blocks flatten the ``eleArray`` of every
    wrapper. Anything whose first wrapper has an ``eleArray`` uses that
    one. Otherwise the children list is taken as-is.
    """
    children = node.get("children")
    if not isinstance(children, list) or not children:
        return []

    if _is_step_container(node, kind) or block_type is BlockType.BLOCK:
        flattened: list[Any] = []
        for wrapper in children:
            if isinstance(wrapper, dict) and isinstance(wrapper.get("eleArray"), list):
                flattened.extend(wrapper["eleArray"])
        return flattened

    if _has_nested_elements(children):
        return list(children[0]["eleArray"])

    return list(children)


# ── Conditions ───────────────────────────────────────────────────────────


def format_condition(condition: Any) -> str:
    """Render a show/visibility condition as readable text.

    Strings pass through. A rule group renders as
    ``field condition 'data'`` joined by the group operator (``AND`` by
    default); nested groups are parenthesised. Anything else is JSON.
    """
    if isinstance(condition, str):
        return condition
    try:
        group = condition.get("group") if isinstance(condition, dict) else None
        if isinstance(group, dict) and isinstance(group.get("rules"), list):
            return _format_group(group)
        return json.dumps(condition)
    except (TypeError, ValueError, AttributeError):
        return "Complex condition"


def _format_group(group: dict[str, Any]) -> str:
    operator = group.get("operator") or "AND"
    parts = []
    for rule in group["rules"]:
        nested = rule.get("group")
        if isinstance(nested, dict) and isinstance(nested.get("rules"), list):
            parts.append(f"({_format_group(nested)})")
        else:
            parts.append(f"{rule.get('field', '')} {rule.get('condition', '')} '{rule.get('data', '')}'")
    return f" {operator} ".join(parts)


# ── Step construction ────────────────────────────────────────────────────


def _text(value: Any) -> str | None:
    if value is None or value == "":
        return None
    if isinstance(value, str):
        return value
    if isinstance(value, (dict, list)):
        return json.dumps(value)
    return str(value)


def _reference_key(props: dict[str, Any]) -> str | None:
    value = props.get("integrationProcedureKey")
    if value is None:
        return None
    key = str(value).strip()
    return None if key in _INVALID_KEYS else key


def _build_step(node: dict[str, Any], kind: ComponentKind) -> StepNode:
    block_type = classify_block(node, kind)
    raw_children = node.get("children")
    has_children = isinstance(raw_children, list) and bool(raw_children)
    props = node.get("propSetMap") if isinstance(node.get("propSetMap"), dict) else {}
    node_type = _text(node.get("type"))

    attrs: dict[str, Any] = {}
    if props:
        attrs["execution_condition"] = _text(props.get("executionConditionalFormula"))
        if props.get("show"):
            attrs["show_condition"] = format_condition(props["show"])
        attrs["label"] = _text(props.get("label"))
        attrs["description"] = _text(props.get("description"))
        attrs["bundle"] = _text(props.get("bundle"))

        ref_key = _reference_key(props)
        if ref_key is not None:
            # an already-classified block keeps its type; the reference rides along
            if block_type is BlockType.NONE:
                block_type = BlockType.IP_REFERENCE
                has_children = True
            attrs["referenced_procedure_key"] = ref_key
            attrs["reference_status"] = ReferenceStatus.PENDING

        if kind is ComponentKind.PROCEDURE and "remote" in (node_type or "").lower():
            attrs["remote_class"] = _text(props.get("remoteClass"))
            attrs["remote_method"] = _text(props.get("remoteMethod"))

        if block_type is not BlockType.NONE:
            attrs["block_condition"] = _text(props.get("condition") or props.get("loopCondition"))
            attrs["block_iterator"] = _text(props.get("iterator"))
            attrs["block_cache_key"] = _text(props.get("cacheKey"))

    sub_steps: tuple[StepNode, ...] = ()
    block_steps: tuple[StepNode, ...] = ()
    elements = extract_children(node, block_type, kind)
    if elements:
        if _is_step_container(node, kind):
            sub_steps = build_steps(elements, kind)
        elif block_type is BlockType.IP_REFERENCE:
            # expanded through the registry, never inlined
            pass
        elif block_type is not BlockType.NONE:
            block_steps = build_steps(elements, kind)
        else:
            sub_steps = build_steps(elements, kind)

    return StepNode(
        name=_text(node.get("name")) or UNNAMED_STEP,
        type=node_type,
        block_type=block_type,
        has_children=has_children,
        props=dict(props),
        sub_steps=sub_steps,
        block_steps=block_steps,
        **attrs,
    )


# ── Summary ──────────────────────────────────────────────────────────────

_FORM_ELEMENT_TYPES = frozenset({"Text", "Select", "Multi-select", "Date"})


def summarize_definition(content: dict[str, Any], kind: ComponentKind) -> dict[str, Any]:
    """Header fields and top-level counts of a definition."""
    children = content.get("children") if isinstance(content.get("children"), list) else []
    top_types = [c.get("type") for c in children if isinstance(c, dict)]
    summary: dict[str, Any] = {
        "type": content.get("bpType"),
        "subType": content.get("bpSubType"),
        "language": content.get("bpLang"),
        "version": content.get("bpVersion"),
        "isReusable": content.get("bReusable"),
        "childrenCount": len(children),
    }
    if kind is ComponentKind.PROCEDURE:
        summary["actionCount"] = sum(1 for t in top_types if t and "action" in str(t).lower())
    elif kind is ComponentKind.GUIDED_SCRIPT:
        summary["stepCount"] = sum(1 for t in top_types if t == "Step")
        summary["formElementCount"] = sum(1 for t in top_types if t in _FORM_ELEMENT_TYPES)
    return {k: v for k, v in summary.items() if v is not None}


__all__ = [
    "ParsedComponent",
    "parse_record",
    "parse_records",
    "build_steps",
    "classify_block",
    "extract_children",
    "format_condition",
    "summarize_definition",
]
