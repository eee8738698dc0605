"""
Record sources.

``create_record_source`` picks the upstream REST source for a tenant
with credentials. Offline callers (CLI ``--records``, tests) build a
``FileRecordSource`` or ``MemoryRecordSource`` directly.
"""

from __future__ import annotations

from omnimap.core.models import TenantContext
from omnimap.core.settings import OmnimapSettings
from omnimap.sources.file import FileRecordSource, MemoryRecordSource
from omnimap.sources.protocol import QueryPage, RecordSource, record_from_dict
from omnimap.sources.salesforce import SalesforceRecordSource


def create_record_source(tenant: TenantContext, settings: OmnimapSettings) -> RecordSource:
    """Build the upstream record source for ``tenant``.

    Raises ``NotAuthenticatedError`` when the tenant has no usable
    credentials.
    """
    return SalesforceRecordSource(
        tenant,
        api_version=settings.salesforce_api_version,
        timeout=settings.request_timeout_seconds,
    )


__all__ = [
    "QueryPage",
    "RecordSource",
    "record_from_dict",
    "SalesforceRecordSource",
    "FileRecordSource",
    "MemoryRecordSource",
    "create_record_source",
]
