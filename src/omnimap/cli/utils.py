"""
CLI utility helpers: output formatting and context construction.
"""

from __future__ import annotations

import json
from dataclasses import asdict
from pathlib import Path
from typing import Any

import typer
from rich.console import Console
from rich.table import Table
from rich.tree import Tree

from omnimap.core.errors import OmnimapError
from omnimap.core.models import StepNode, TenantContext
from omnimap.core.settings import get_settings
from omnimap.hierarchy.service import ComponentService
from omnimap.ops.context import OperationContext
from omnimap.ops.result import OperationResult, PagedResult
from omnimap.sources.file import FileRecordSource

console = Console()
err_console = Console(stderr=True)

LOCAL_TENANT = "local"


# ── Context helpers ──────────────────────────────────────────────────────


def build_service(records: Path | None = None) -> ComponentService:
    """Service from settings; ``records`` swaps the upstream source for a JSON file."""
    settings = get_settings()
    if records is None:
        return ComponentService.from_settings(settings)
    try:
        source = FileRecordSource(records)
    except OmnimapError as exc:
        err_console.print(f"[bold red]Error[/bold red] ({exc.category.value}): {exc.message}")
        raise typer.Exit(code=1) from exc
    return ComponentService.from_settings(settings, source_factory=lambda tenant: source)


def make_context(
    *,
    records: Path | None = None,
    tenant_id: str | None = None,
    instance_url: str | None = None,
    access_token: str | None = None,
    tenant_name: str | None = None,
) -> OperationContext:
    """Create an ``OperationContext`` for a CLI command.

    Offline runs (``--records``) default the tenant id to ``local``.
    """
    if tenant_id is None and records is not None:
        tenant_id = LOCAL_TENANT
    tenant = None
    if tenant_id:
        tenant = TenantContext(
            tenant_id=tenant_id,
            instance_url=instance_url,
            access_token=access_token,
            tenant_name=tenant_name,
        )
    return OperationContext(service=build_service(records), tenant=tenant, caller="cli")


# ── Output helpers ───────────────────────────────────────────────────────


def _to_dict(obj: Any) -> dict[str, Any]:
    """Convert payload object / pydantic model / dataclass / dict to plain dict."""
    if hasattr(obj, "to_dict"):
        return obj.to_dict()
    if hasattr(obj, "model_dump"):
        return obj.model_dump()
    if hasattr(obj, "__dataclass_fields__"):
        return asdict(obj)
    if isinstance(obj, dict):
        return obj
    return {"value": str(obj)}


def fail(result: OperationResult) -> None:
    """Print a failed result and exit 1."""
    err = result.error
    msg = err.message if err else "Unknown error"
    code = err.code if err else "ERROR"
    err_console.print(f"[bold red]Error[/bold red] ({code}): {msg}")
    raise typer.Exit(code=1)


def print_warnings(result: OperationResult) -> None:
    for warning in result.warnings:
        err_console.print(f"[yellow]warning[/yellow]: {warning}")


def print_json(payload: Any) -> None:
    console.print_json(json.dumps(payload, default=str))


def output_result(
    result: OperationResult,
    *,
    as_json: bool = False,
    title: str = "",
) -> None:
    """Render an ``OperationResult`` to the terminal."""
    if not result.success:
        fail(result)

    data = result.data

    if as_json:
        payload = _to_dict(data) if not isinstance(data, list | tuple) else [_to_dict(d) for d in data]
        print_json(payload)
        return

    print_warnings(result)
    if isinstance(data, list):
        if not data:
            console.print("[dim]No items.[/dim]")
            return
        _print_table(data, title=title)
    else:
        _print_dict(_to_dict(data), title=title)


def output_paged(
    result: PagedResult,
    *,
    as_json: bool = False,
    title: str = "",
    columns: tuple[str, ...] | None = None,
) -> None:
    """Render a ``PagedResult`` to the terminal with listing info."""
    if not result.success:
        fail(result)

    items = result.data or []

    if as_json:
        print_json(
            {
                "items": [_to_dict(d) for d in items],
                "total": result.total,
                "limit": result.limit,
                "offset": result.offset,
                "has_more": result.has_more,
            }
        )
        return

    if not items:
        console.print("[dim]No items.[/dim]")
        return

    _print_table(items, title=title, columns=columns)
    if result.has_more:
        console.print(f"\n[dim]Showing the first {len(items)} matches (limit {result.limit})[/dim]")


def step_tree(label: str, steps: tuple[StepNode, ...] | list[StepNode]) -> Tree:
    """Build a rich ``Tree`` of a step forest."""
    tree = Tree(f"[bold]{label}[/bold]")
    stack: list[tuple[Tree, StepNode]] = [(tree, s) for s in reversed(steps)]
    while stack:
        parent, step = stack.pop()
        node = parent.add(_step_label(step))
        stack.extend((node, child) for child in reversed(step.children))
    return tree


def _step_label(step: StepNode) -> str:
    parts = [f"[cyan]{step.name}[/cyan]"]
    if step.type:
        parts.append(f"[dim]{step.type}[/dim]")
    if step.block_type.value != "none":
        parts.append(f"[magenta]<{step.block_type.value}>[/magenta]")
    if step.referenced_procedure_key:
        status = step.reference_status.value if step.reference_status else "pending"
        colour = "green" if status == "resolved" else "red"
        parts.append(f"→ [{colour}]{step.referenced_procedure_key}[/{colour}] ({status})")
    return " ".join(parts)


# ── Private helpers ──────────────────────────────────────────────────────


def _print_table(items: list, *, title: str = "", columns: tuple[str, ...] | None = None) -> None:
    """Render a list of dataclasses/dicts as a Rich table."""
    first = _to_dict(items[0])
    cols = columns or tuple(first)
    table = Table(title=title or None, show_lines=False, pad_edge=False)
    for col in cols:
        table.add_column(col, overflow="fold")
    for item in items:
        d = _to_dict(item)
        table.add_row(*(_cell(d.get(c)) for c in cols))
    console.print(table)


def _cell(value: Any) -> str:
    if value is None:
        return ""
    if hasattr(value, "value"):
        return str(value.value)
    return str(value)


def _print_dict(data: dict[str, Any], *, title: str = "") -> None:
    """Render a single dict as key-value pairs."""
    if title:
        console.print(f"[bold]{title}[/bold]")
    for k, v in data.items():
        console.print(f"  [cyan]{k}[/cyan]: {v}")
