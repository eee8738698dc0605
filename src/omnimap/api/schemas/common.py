"""
Common API schemas: shared envelopes and RFC 7807 errors.

Every endpoint returns either :class:`SuccessResponse` or
:class:`PagedResponse` (2xx) or :class:`ProblemDetail` (4xx/5xx).

Response Envelope Conventions:
    - ``elapsed_ms`` tracks server-side processing time
    - ``warnings`` carries non-fatal issues, e.g. a partial load
"""

from __future__ import annotations

from typing import Generic, TypeVar

from pydantic import BaseModel, Field

T = TypeVar("T")


# ── RFC 7807 Problem Detail ─────────────────────────────────────────────


class ErrorDetail(BaseModel):
    """Structured error detail."""

    code: str = Field(description="Machine-readable error code (e.g. 'NOT_FOUND')")
    message: str = Field(description="Human-readable error description")
    field: str | None = Field(default=None, description="Field path if error is field-specific")


class ProblemDetail(BaseModel):
    """RFC 7807 «Problem Details for HTTP APIs».

    Error Codes:
        - ``NOT_AUTHENTICATED`` (401): No tenant context or rejected credentials
        - ``VALIDATION_FAILED`` (400): Invalid input (e.g. unknown kind)
        - ``NOT_FOUND`` (404): Component or cached dataset absent
        - ``UPSTREAM_ERROR`` (502): Record source failed for every kind
        - ``CACHE_UNAVAILABLE`` (503): Cache tier unusable
        - ``INTERNAL`` (500): Unexpected server error

    Example:
        {
            "type": "about:blank",
            "title": "integration-procedure 'Acct_Get' not found",
            "status": 404,
            "detail": "NOT_FOUND",
            "instance": "",
            "errors": [{"code": "NOT_FOUND", "message": "...", "field": null}]
        }
    """

    type: str = Field(default="about:blank", description="Error type URI (usually 'about:blank')")
    title: str = Field(description="Short human-readable error summary")
    status: int = Field(description="HTTP status code (e.g., 400, 404, 500)")
    detail: str = Field(default="", description="Human-readable explanation of the error")
    instance: str = Field(default="", description="URI of the failing request")
    errors: list[ErrorDetail] = Field(
        default_factory=list,
        description="List of nested error details",
    )


# ── Success Envelopes ────────────────────────────────────────────────────


class PageMeta(BaseModel):
    """Listing metadata for search responses."""

    total: int = Field(description="Matching items found (capped at limit + 1)")
    limit: int = Field(description="Maximum items returned")
    offset: int = Field(description="Current offset (0-based)")
    has_more: bool = Field(description="True if the limit cut the listing short")

    @classmethod
    def from_result(cls, total: int, limit: int, offset: int = 0) -> PageMeta:
        return cls(total=total, limit=limit, offset=offset, has_more=(offset + limit) < total)


class SuccessResponse(BaseModel, Generic[T]):
    """Standard success envelope for single-item responses."""

    data: T = Field(description="Response payload (type varies by endpoint)")
    elapsed_ms: float = Field(default=0.0, description="Server-side processing time in milliseconds")
    warnings: list[str] = Field(
        default_factory=list,
        description="Non-fatal warnings to display to users",
    )


class PagedResponse(BaseModel, Generic[T]):
    """Envelope for list responses."""

    data: list[T] = Field(description="Items")
    page: PageMeta = Field(description="Listing metadata")
    elapsed_ms: float = Field(default=0.0, description="Server-side processing time in milliseconds")
    warnings: list[str] = Field(
        default_factory=list,
        description="Non-fatal warnings to display to users",
    )
