"""Tests for the omnimap error hierarchy."""

from __future__ import annotations

from omnimap.core.errors import (
    CacheUnavailableError,
    DefinitionParseError,
    ErrorCategory,
    ErrorContext,
    NotAuthenticatedError,
    NotFoundError,
    OmnimapError,
    UpstreamQueryError,
    UpstreamTimeoutError,
)


class TestDefaults:
    """Subclasses carry their category and retryability."""

    def test_base_is_internal(self):
        err = OmnimapError("boom")
        assert err.category is ErrorCategory.INTERNAL
        assert err.retryable is False

    def test_upstream_is_retryable(self):
        err = UpstreamQueryError("query failed")
        assert err.category is ErrorCategory.SOURCE
        assert err.retryable is True

    def test_timeout_is_network_and_upstream(self):
        err = UpstreamTimeoutError("slow")
        assert isinstance(err, UpstreamQueryError)
        assert err.category is ErrorCategory.NETWORK

    def test_retryable_override(self):
        assert UpstreamQueryError("bad request", retryable=False).retryable is False

    def test_categories(self):
        assert NotAuthenticatedError("x").category is ErrorCategory.AUTH
        assert NotFoundError("x").category is ErrorCategory.NOT_FOUND
        assert DefinitionParseError("x").category is ErrorCategory.PARSE
        assert CacheUnavailableError("x").category is ErrorCategory.CACHE


class TestContext:
    """with_context() fills known fields and spills the rest into metadata."""

    def test_known_fields(self):
        err = NotFoundError("missing").with_context(tenant_id="00D1", component="Acct_Get")
        assert err.context.tenant_id == "00D1"
        assert err.context.component == "Acct_Get"

    def test_unknown_fields_go_to_metadata(self):
        err = NotFoundError("missing").with_context(batch=3)
        assert err.context.metadata == {"batch": 3}

    def test_with_context_returns_same_instance(self):
        err = NotFoundError("missing")
        assert err.with_context(kind="omniscript") is err

    def test_context_to_dict_drops_none(self):
        ctx = ErrorContext(tenant_id="00D1", http_status=None, metadata={"a": 1})
        assert ctx.to_dict() == {"tenant_id": "00D1", "a": 1}


class TestSerialization:
    def test_to_dict(self):
        cause = ValueError("bad json")
        err = DefinitionParseError("Invalid definition", cause=cause).with_context(component="K")
        d = err.to_dict()
        assert d["error_type"] == "DefinitionParseError"
        assert d["category"] == "PARSE"
        assert d["context"] == {"component": "K"}
        assert d["cause"] == "bad json"
        assert err.__cause__ is cause

    def test_retry_after_included(self):
        d = UpstreamQueryError("limited", retry_after=5).to_dict()
        assert d["retry_after"] == 5

    def test_repr(self):
        assert repr(NotFoundError("gone")) == "NotFoundError('gone', category=NOT_FOUND)"
