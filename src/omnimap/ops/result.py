"""
Operation result envelope.

Every function in :mod:`omnimap.ops` returns an :class:`OperationResult`
instead of raising. ``omnimap.core.result.Result`` is for composing
internal steps; this envelope is what the REST and CLI transports render,
so it also carries warnings (a partial load is still a success),
timing and free-form metadata.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar

from omnimap.core.errors import ErrorCategory, OmnimapError

T = TypeVar("T")

CATEGORY_CODES: dict[ErrorCategory, str] = {
    ErrorCategory.AUTH: "NOT_AUTHENTICATED",
    ErrorCategory.NOT_FOUND: "NOT_FOUND",
    ErrorCategory.VALIDATION: "VALIDATION_FAILED",
    ErrorCategory.CONFIG: "VALIDATION_FAILED",
    ErrorCategory.SOURCE: "UPSTREAM_ERROR",
    ErrorCategory.NETWORK: "UPSTREAM_ERROR",
    ErrorCategory.CACHE: "CACHE_UNAVAILABLE",
    ErrorCategory.PARSE: "INTERNAL",
    ErrorCategory.INTERNAL: "INTERNAL",
}


@dataclass(frozen=True, slots=True)
class OperationError:
    """Why an operation failed.

    ``code`` is one of the values of :data:`CATEGORY_CODES` and decides
    the HTTP status; ``details`` is the error context (tenant, kind,
    component...).
    """

    code: str
    message: str
    category: ErrorCategory | None = None
    details: dict[str, Any] = field(default_factory=dict)
    retryable: bool = False

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {"code": self.code, "message": self.message, "retryable": self.retryable}
        if self.details:
            d["details"] = self.details
        return d


@dataclass
class OperationResult(Generic[T]):
    """Success with ``data`` or failure with ``error``; build with the classmethods."""

    success: bool
    data: T | None = None
    error: OperationError | None = None
    warnings: list[str] = field(default_factory=list)
    elapsed_ms: float = 0.0
    metadata: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def ok(
        cls,
        data: T,
        *,
        warnings: list[str] | None = None,
        elapsed_ms: float = 0.0,
        metadata: dict[str, Any] | None = None,
    ) -> OperationResult[T]:
        return cls(True, data, None, list(warnings or ()), elapsed_ms, dict(metadata or {}))

    @classmethod
    def fail(
        cls,
        code: str,
        message: str,
        *,
        category: ErrorCategory | None = None,
        details: dict[str, Any] | None = None,
        retryable: bool = False,
        elapsed_ms: float = 0.0,
    ) -> OperationResult[T]:
        error = OperationError(code, message, category, dict(details or {}), retryable)
        return cls(False, None, error, [], elapsed_ms, {})

    @classmethod
    def from_error(cls, error: OmnimapError, *, elapsed_ms: float = 0.0) -> OperationResult[T]:
        return cls.fail(
            CATEGORY_CODES.get(error.category, "INTERNAL"),
            error.message,
            category=error.category,
            details=error.context.to_dict(),
            retryable=error.retryable,
            elapsed_ms=elapsed_ms,
        )

    def to_dict(self) -> dict[str, Any]:
        """Plain dict for JSON output; empty sections are left out."""
        d: dict[str, Any] = {"success": self.success}
        if self.data is not None:
            d["data"] = self.data.to_dict() if hasattr(self.data, "to_dict") else self.data
        if self.error is not None:
            d["error"] = self.error.to_dict()
        for name in ("warnings", "metadata"):
            value = getattr(self, name)
            if value:
                d[name] = value
        if self.elapsed_ms:
            d["elapsed_ms"] = round(self.elapsed_ms, 2)
        return d


@dataclass
class PagedResult(OperationResult[list[T]]):
    """A listing cut at ``limit``; ``has_more`` tells whether rows were dropped."""

    total: int = 0
    limit: int = 50
    offset: int = 0
    has_more: bool = False

    @classmethod
    def from_items(
        cls,
        items: list[T],
        total: int,
        *,
        limit: int = 50,
        offset: int = 0,
        elapsed_ms: float = 0.0,
    ) -> PagedResult[T]:
        return cls(
            success=True,
            data=items,
            elapsed_ms=elapsed_ms,
            total=total,
            limit=limit,
            offset=offset,
            has_more=offset + limit < total,
        )

    @classmethod
    def failed(cls, result: OperationResult[Any]) -> PagedResult[T]:
        """Carry a failure from a plain result over to a listing."""
        return cls(success=False, error=result.error, elapsed_ms=result.elapsed_ms)

    def to_dict(self) -> dict[str, Any]:
        return super().to_dict() | {
            "total": self.total,
            "limit": self.limit,
            "offset": self.offset,
            "has_more": self.has_more,
        }


class _Timer:
    __slots__ = ("_start",)

    def __init__(self) -> None:
        self._start = time.perf_counter()

    @property
    def elapsed_ms(self) -> float:
        return (time.perf_counter() - self._start) * 1000


def start_timer() -> _Timer:
    return _Timer()
