"""
Shared pytest fixtures for omnimap tests.

This module provides:
- Settings with loader delays and retries turned down
- Tenant contexts with and without upstream credentials
- A service factory over an in-memory record source

Record builders live in ``tests._support.builders``.
"""

from __future__ import annotations

from typing import Any

import pytest

from omnimap.core.models import ComponentRecord, TenantContext
from omnimap.core.settings import OmnimapSettings
from omnimap.hierarchy.service import ComponentService
from omnimap.sources.file import MemoryRecordSource
from tests._support.builders import (
    TENANT_ID,
    data_mapper,
    guided_script,
    plain_step,
    procedure,
    records_by_kind,
    ref_step,
)


@pytest.fixture
def settings() -> OmnimapSettings:
    return OmnimapSettings(
        redis_url=None,
        batch_delay_seconds=0.0,
        retry_base_delay=0.0,
        max_retries=1,
    )


@pytest.fixture
def tenant() -> TenantContext:
    return TenantContext(tenant_id=TENANT_ID, tenant_name="Acme")


@pytest.fixture
def credentialed_tenant() -> TenantContext:
    return TenantContext(
        tenant_id=TENANT_ID,
        instance_url="https://acme.my.example.com",
        access_token="token-123",
    )


@pytest.fixture
def sample_records() -> list[ComponentRecord]:
    """DM1, Acct_Get → Acct_Details, and a guided script calling Acct_Get."""
    return [
        data_mapper("DM1"),
        procedure("Acct", "Get", ref_step("CallDetails", "Acct_Details")),
        procedure("Acct", "Details", plain_step("SetOutput")),
        guided_script("Acct", "Wizard", ref_step("Lookup", "Acct_Get")),
    ]


@pytest.fixture
def make_service(settings):
    """Build a service over an in-memory source holding ``records``.

    The source is exposed as ``service.source`` for call assertions.
    """

    def _make(records: list[ComponentRecord], *, page_size: int = 200, **kwargs: Any) -> ComponentService:
        source = MemoryRecordSource(records_by_kind(*records), page_size=page_size)
        service = ComponentService(
            settings,
            source_factory=lambda tenant: source,
            sleep=lambda seconds: None,
            **kwargs,
        )
        service.source = source
        return service

    return _make
