"""
CLI: ``omnimap load | search | show | hierarchy``.

The memory tier lives only as long as the process, so read commands
fetch the dataset first; with no external cache that means a load.
"""

from __future__ import annotations

import typer

from omnimap.cli.options import AccessToken, InstanceUrl, JsonOut, Records, TenantId
from omnimap.cli.utils import (
    console,
    fail,
    make_context,
    output_paged,
    output_result,
    print_json,
    print_warnings,
    step_tree,
)
from omnimap.ops.context import OperationContext

SEARCH_COLUMNS = ("kind", "key", "name", "type", "sub_type", "step_count", "referenced_by_count")


def _loaded_context(
    records, tenant_id, instance_url, access_token, *, as_json: bool
) -> OperationContext:
    from omnimap.ops.components import get_dataset

    ctx = make_context(
        records=records,
        tenant_id=tenant_id,
        instance_url=instance_url,
        access_token=access_token,
    )
    result = get_dataset(ctx)
    if not result.success:
        fail(result)
    if not as_json:
        print_warnings(result)
    return ctx


def load(
    records: Records = None,
    tenant_id: TenantId = None,
    instance_url: InstanceUrl = None,
    access_token: AccessToken = None,
    force: bool = typer.Option(False, "--force", "-f", help="Clear both cache tiers first"),
    json_out: JsonOut = False,
) -> None:
    """Load, resolve and cache every component of a tenant."""
    from omnimap.ops.components import load_all

    ctx = make_context(
        records=records,
        tenant_id=tenant_id,
        instance_url=instance_url,
        access_token=access_token,
    )
    result = load_all(ctx, force=force)
    if not result.success:
        fail(result)
    if json_out:
        print_json(result.data.to_dict())
        return

    summary = result.data
    print_warnings(result)
    colour = "green" if summary.status == "complete" else "yellow"
    console.print(f"[bold {colour}]Load {summary.status}[/bold {colour}] for tenant {summary.tenant_id}")
    for kind, count in summary.counts.items():
        console.print(f"  [cyan]{kind}[/cyan]: {count}")
    console.print(f"  [cyan]hierarchy edges[/cyan]: {summary.hierarchy_edges}")
    console.print(f"  [cyan]paths stamped[/cyan]: {summary.paths_stamped}")
    if summary.timing:
        console.print(f"  [dim]{summary.timing['durationMs']} ms[/dim]")


def search(
    term: str = typer.Argument("", help="Substring of a name or key (empty lists all)"),
    kind: str | None = typer.Option(None, "--kind", "-k", help="dm | ip | os (or the full kind name)"),
    limit: int | None = typer.Option(None, "--limit", "-n"),
    records: Records = None,
    tenant_id: TenantId = None,
    instance_url: InstanceUrl = None,
    access_token: AccessToken = None,
    json_out: JsonOut = False,
) -> None:
    """Search components by name or key."""
    from omnimap.ops.components import search as _search

    ctx = _loaded_context(records, tenant_id, instance_url, access_token, as_json=json_out)
    result = _search(ctx, kind, term, limit=limit)
    output_paged(result, as_json=json_out, title="Components", columns=SEARCH_COLUMNS)


def show(
    kind: str = typer.Argument(..., help="dm | ip | os (or the full kind name)"),
    name: str = typer.Argument(..., help="Component name (procedures also by key)"),
    records: Records = None,
    tenant_id: TenantId = None,
    instance_url: InstanceUrl = None,
    access_token: AccessToken = None,
    json_out: JsonOut = False,
) -> None:
    """Show one component with its steps and referrers."""
    from omnimap.ops.components import get_component

    ctx = _loaded_context(records, tenant_id, instance_url, access_token, as_json=json_out)
    result = get_component(ctx, kind, name)
    if json_out or not result.success:
        output_result(result, as_json=json_out)
        return

    detail = result.data
    component = detail.component
    console.print(f"[bold]{component.kind.value}[/bold] {component.name} ([dim]{component.key}[/dim])")
    if component.content_error:
        console.print(f"  [red]content error[/red]: {component.content_error}")
    console.print(step_tree("steps", component.steps))
    if detail.expanded_children:
        console.print(f"[cyan]expanded children[/cyan]: {', '.join(detail.expanded_children)}")
    if component.referenced_by:
        console.print("[cyan]referenced by[/cyan]:")
        for entry in component.referenced_by:
            console.print(f"  {entry.path}  [dim]{entry.source}[/dim]")


def hierarchy(
    procedure_key: str = typer.Argument(..., help="Procedure key, e.g. Type_SubType"),
    records: Records = None,
    tenant_id: TenantId = None,
    instance_url: InstanceUrl = None,
    access_token: AccessToken = None,
    json_out: JsonOut = False,
) -> None:
    """Print the step tree of one procedure."""
    from omnimap.ops.components import get_child_hierarchy

    ctx = _loaded_context(records, tenant_id, instance_url, access_token, as_json=json_out)
    result = get_child_hierarchy(ctx, procedure_key)
    if json_out or not result.success:
        output_result(result, as_json=json_out)
        return

    print_warnings(result)
    data = result.data
    console.print(step_tree(f"{data.name} ({data.procedure_key}) [dim]{data.source}[/dim]", data.steps))
