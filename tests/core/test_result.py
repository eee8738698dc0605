"""Tests for the Ok/Err result type."""

from __future__ import annotations

import pytest

from omnimap.core.errors import CacheUnavailableError
from omnimap.core.result import Err, Ok, try_result


class TestOk:
    def test_map_and_unwrap(self):
        assert Ok(10).map(lambda x: x * 2).unwrap() == 20

    def test_error_helpers_are_noops(self):
        ok = Ok(1)
        assert ok.map_err(lambda e: RuntimeError()) is ok
        assert ok.unwrap_or(5) == 1

    def test_to_dict(self):
        assert Ok({"a": 1}).to_dict() == {"ok": True, "value": {"a": 1}}


class TestErr:
    def test_unwrap_raises(self):
        with pytest.raises(ValueError):
            Err(ValueError("nope")).unwrap()

    def test_map_propagates_error(self):
        err = Err(ValueError("x"))
        assert err.map(lambda v: v + 1).is_err()

    def test_unwrap_or(self):
        assert Err(ValueError("x")).unwrap_or(0) == 0

    def test_map_err_wraps(self):
        wrapped = Err(ConnectionError("refused")).map_err(lambda e: CacheUnavailableError(str(e)))
        assert isinstance(wrapped.error, CacheUnavailableError)

    def test_to_dict_uses_omnimap_error(self):
        d = Err(CacheUnavailableError("down")).to_dict()
        assert d["ok"] is False
        assert d["error"]["category"] == "CACHE"

    def test_to_dict_plain_exception(self):
        d = Err(KeyError("k")).to_dict()
        assert d["error"]["error_type"] == "KeyError"


class TestTryResult:
    def test_success(self):
        assert try_result(lambda: int("42")) == Ok(42)

    def test_failure(self):
        result = try_result(lambda: int("x"))
        assert result.is_err()
        assert isinstance(result.error, ValueError)
