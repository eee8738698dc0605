"""Fixtures for API tests: an app over an in-memory record source."""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from omnimap.api.app import create_app
from omnimap.api.settings import OmnimapAPISettings
from tests._support.builders import TENANT_ID


@pytest.fixture
def api_settings() -> OmnimapAPISettings:
    return OmnimapAPISettings(redis_url=None, debug=True)


@pytest.fixture
def service(make_service, sample_records):
    return make_service(sample_records)


@pytest.fixture
def client(api_settings, service) -> TestClient:
    return TestClient(create_app(settings=api_settings, service=service))


@pytest.fixture
def headers() -> dict[str, str]:
    return {
        "X-Tenant-Id": TENANT_ID,
        "X-Instance-Url": "https://acme.my.example.com",
        "Authorization": "Bearer token-123",
        "X-Tenant-Name": "Acme",
    }
