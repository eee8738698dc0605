"""Tests for the operation result envelope."""

from __future__ import annotations

from omnimap.core.errors import ErrorCategory, NotFoundError, UpstreamQueryError
from omnimap.ops.result import CATEGORY_CODES, OperationResult, PagedResult


class TestOperationResult:
    def test_ok(self):
        result = OperationResult.ok({"a": 1}, warnings=["w"], metadata={"m": 1})
        assert result.success
        assert result.to_dict() == {"success": True, "data": {"a": 1}, "warnings": ["w"], "metadata": {"m": 1}}

    def test_from_error_maps_category(self):
        err = NotFoundError("gone").with_context(component="Acct_Get")
        result = OperationResult.from_error(err)
        assert not result.success
        assert result.error.code == "NOT_FOUND"
        assert result.error.details == {"component": "Acct_Get"}
        assert result.to_dict()["error"]["details"] == {"component": "Acct_Get"}

    def test_upstream_is_retryable(self):
        result = OperationResult.from_error(UpstreamQueryError("HTTP 503"))
        assert result.error.code == "UPSTREAM_ERROR"
        assert result.error.retryable is True

    def test_every_category_has_a_code(self):
        assert set(CATEGORY_CODES) == set(ErrorCategory)

    def test_to_dict_uses_payload_to_dict(self):
        class Payload:
            def to_dict(self):
                return {"x": 1}

        assert OperationResult.ok(Payload()).to_dict()["data"] == {"x": 1}


class TestPagedResult:
    def test_has_more(self):
        result = PagedResult.from_items([1, 2], total=3, limit=2)
        assert result.has_more is True
        assert result.to_dict()["total"] == 3

    def test_complete_listing(self):
        assert PagedResult.from_items([1], total=1, limit=2).has_more is False
