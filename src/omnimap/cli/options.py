"""Shared Typer option types for tenant-scoped commands."""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer

TenantId = Annotated[
    str | None,
    typer.Option("--tenant-id", "-t", envvar="OMNIMAP_TENANT_ID", help="Tenant (org) id"),
]
InstanceUrl = Annotated[
    str | None,
    typer.Option("--instance-url", envvar="OMNIMAP_INSTANCE_URL", help="Upstream instance URL"),
]
AccessToken = Annotated[
    str | None,
    typer.Option("--access-token", envvar="OMNIMAP_ACCESS_TOKEN", help="Bearer token", show_default=False),
]
Records = Annotated[
    Path | None,
    typer.Option("--records", "-r", help="Load from a JSON export instead of the upstream system"),
]
JsonOut = Annotated[bool, typer.Option("--json", help="Machine-readable output")]
