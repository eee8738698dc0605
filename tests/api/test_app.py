"""Tests for the FastAPI application factory, health and middleware."""

from __future__ import annotations

from fastapi import FastAPI
from fastapi.testclient import TestClient

from omnimap.api.app import create_app
from omnimap.api.settings import OmnimapAPISettings


class TestCreateApp:
    def test_returns_fastapi_instance(self, api_settings, service):
        assert isinstance(create_app(settings=api_settings, service=service), FastAPI)

    def test_openapi_under_prefix(self, api_settings, service):
        app = create_app(settings=api_settings, service=service)
        assert app.openapi_url == "/api/v1/openapi.json"

    def test_custom_settings(self, service):
        app = create_app(settings=OmnimapAPISettings(api_prefix="/v2", api_title="Custom"), service=service)
        assert app.title == "Custom"
        paths = app.openapi()["paths"]
        assert "/v2/components/search" in paths

    def test_routes_registered(self, api_settings, service):
        paths = create_app(settings=api_settings, service=service).openapi()["paths"]
        for expected in (
            "/health",
            "/api/v1/components/load",
            "/api/v1/components/{kind}/{name}",
            "/api/v1/components/procedures/{key}/hierarchy",
            "/api/v1/cache",
            "/api/v1/cache/status",
        ):
            assert expected in paths

    def test_service_on_state(self, api_settings, service):
        app = create_app(settings=api_settings, service=service)
        assert app.state.service is service

    def test_default_service_is_memory_only(self, api_settings):
        app = create_app(settings=api_settings)
        assert app.state.service.cache.external_configured is False


class TestHealth:
    def test_health(self, client):
        resp = client.get("/health")
        assert resp.status_code == 200
        body = resp.json()
        assert body["status"] == "healthy"
        assert body["service"] == "omnimap"
        assert body["checks"]["external_cache"]["status"] == "healthy"

    def test_live(self, client):
        assert client.get("/health/live").json() == {"status": "alive"}

    def test_ready(self, client):
        assert client.get("/health/ready").status_code == 200


class TestMiddleware:
    def test_request_id_echoed(self, client):
        resp = client.get("/health/live", headers={"X-Request-ID": "req-1"})
        assert resp.headers["X-Request-ID"] == "req-1"
        assert "X-Process-Time-Ms" in resp.headers

    def test_api_key_required(self, service):
        app = create_app(settings=OmnimapAPISettings(redis_url=None, api_key="s3cret"), service=service)
        client = TestClient(app)

        resp = client.get("/api/v1/cache/status")
        assert resp.status_code == 401
        assert resp.headers["content-type"].startswith("application/problem+json")

        assert client.get("/api/v1/cache/status", headers={"X-API-Key": "s3cret"}).status_code == 200
        assert client.get("/health/live").status_code == 200
