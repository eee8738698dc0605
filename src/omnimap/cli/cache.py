"""
CLI: ``omnimap cache``, the cache tier commands.
"""

from __future__ import annotations

import typer

from omnimap.cli.options import JsonOut, TenantId
from omnimap.cli.utils import make_context, output_result

app = typer.Typer(no_args_is_help=True)


@app.command()
def clear(
    tenant_id: TenantId = None,
    all_tenants: bool = typer.Option(False, "--all", help="Clear every tenant"),
    json_out: JsonOut = False,
) -> None:
    """Clear cached component data for a tenant (memory and external)."""
    from omnimap.ops.components import clear_cache

    ctx = make_context(tenant_id=tenant_id)
    result = clear_cache(ctx, all_tenants=all_tenants)
    output_result(result, as_json=json_out, title="Cache cleared")


@app.command()
def status(json_out: JsonOut = False) -> None:
    """Show both cache tiers."""
    from omnimap.ops.components import cache_status

    ctx = make_context()
    result = cache_status(ctx)
    output_result(result, as_json=json_out, title="Cache status")
