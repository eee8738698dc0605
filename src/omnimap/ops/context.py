"""
Request-scoped context for operations.

Every operation function receives an :class:`OperationContext` as its
first argument. The context carries the component service, the tenant the
request acts on, caller identity and arbitrary metadata.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from typing import Any

from omnimap.core.errors import NotAuthenticatedError
from omnimap.core.models import TenantContext
from omnimap.hierarchy.service import ComponentService


@dataclass
class OperationContext:
    """Context passed to every operation function.

    Attributes:
        service: The process-wide :class:`ComponentService`.
        tenant: Tenant context from request headers or CLI options.
        request_id: Unique ID for this operation invocation (auto-generated).
        caller: Origin of the request, ``"api"``, ``"cli"`` or ``"sdk"``.
        metadata: Arbitrary key/value pairs forwarded to logging.
    """

    service: ComponentService
    tenant: TenantContext | None = None
    request_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    caller: str = "sdk"
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def tenant_id(self) -> str | None:
        return self.tenant.tenant_id if self.tenant else None

    def require_tenant(self) -> TenantContext:
        """Tenant with an id; credentials are checked by whoever needs them."""
        if self.tenant is None or not self.tenant.tenant_id:
            raise NotAuthenticatedError("No tenant context: tenant id is missing")
        return self.tenant
