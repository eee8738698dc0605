"""
Structured error types for omnimap.

Provides a small hierarchy of typed errors carrying the metadata needed
for retry decisions, HTTP status mapping and structured logging.

Manifesto:
    - **Typed Error Hierarchy:** One subclass per failure the resolver can
      surface (auth, not found, upstream, parse, cache)
    - **Explicit Retry Semantics:** Each error knows if it's retryable
    - **Rich Context:** Errors carry tenant/kind/component metadata
    - **Error Chaining:** Preserve original exceptions as ``cause``

Architecture:
    ::

        ┌──────────────────────────────────────────────────────────────┐
        │                       OmnimapError                            │
        │  (category, retryable, retry_after, context, cause)          │
        ├──────────────────────────────────────────────────────────────┤
        │                                                               │
        │  NotAuthenticatedError   NotFoundError    UpstreamQueryError  │
        │  (AUTH)                  (NOT_FOUND)      (SOURCE, retryable) │
        │                                                │              │
        │  DefinitionParseError    CacheUnavailableError UpstreamTimeout│
        │  (PARSE)                 (CACHE)                              │
        └──────────────────────────────────────────────────────────────┘

Examples:
    >>> error = UpstreamQueryError("query failed", retry_after=5)
    >>> error.retryable
    True
    >>> error.with_context(tenant_id="00D1", kind="integration-procedure")
    UpstreamQueryError('query failed', category=SOURCE)
    >>> error.context.tenant_id
    '00D1'

Guardrails:
    ❌ DON'T: Raise plain Exception for expected failures
    ✅ DO: Use the matching OmnimapError subclass

    ❌ DON'T: Swallow the original exception
    ✅ DO: Pass it as cause= for error chaining

Tags:
    error-handling, exception-hierarchy, retry-logic, error-context

Doc-Types:
    - API Reference
    - Error Handling Guide
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """Standard error categories for classification and routing."""

    NETWORK = "NETWORK"           # Connection, timeout, DNS
    SOURCE = "SOURCE"             # Upstream query API
    PARSE = "PARSE"               # Definition blob parsing
    VALIDATION = "VALIDATION"     # Bad caller input
    AUTH = "AUTH"                 # Missing or rejected tenant context
    NOT_FOUND = "NOT_FOUND"       # Component or dataset absent
    CACHE = "CACHE"               # External cache tier
    CONFIG = "CONFIG"             # Missing config, invalid settings
    INTERNAL = "INTERNAL"         # Bugs, unexpected state


@dataclass
class ErrorContext:
    """
    Structured metadata context for errors.

    Only the fields relevant to a failure need to be set; ``to_dict()``
    drops everything that is ``None`` so log lines stay compact.

    Attributes:
        tenant_id: Tenant whose data was being processed
        kind: Component kind (``data-mapper``, ``integration-procedure``, ...)
        component: Component key or name
        step: Step name within the component definition
        url: URL that was being accessed
        http_status: HTTP status code if applicable
        metadata: Additional key-value pairs
    """

    tenant_id: str | None = None
    kind: str | None = None
    component: str | None = None
    step: str | None = None
    url: str | None = None
    http_status: int | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        result = {}
        for key in ["tenant_id", "kind", "component", "step", "url", "http_status"]:
            value = getattr(self, key)
            if value is not None:
                result[key] = value
        if self.metadata:
            result.update(self.metadata)
        return result


class OmnimapError(Exception):
    """
    Base exception for all omnimap errors.

    Subclasses set ``default_category`` and ``default_retryable`` so callers
    only pass what differs from the usual case.

    Examples:
        >>> error = OmnimapError("Something went wrong")
        >>> error.category
        <ErrorCategory.INTERNAL: 'INTERNAL'>
        >>> error.to_dict()["retryable"]
        False
    """

    default_category: ErrorCategory = ErrorCategory.INTERNAL
    default_retryable: bool = False

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory | None = None,
        retryable: bool | None = None,
        retry_after: int | None = None,
        context: ErrorContext | None = None,
        cause: Exception | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category or self.default_category
        self.retryable = retryable if retryable is not None else self.default_retryable
        self.retry_after = retry_after
        self.context = context or ErrorContext()
        self.cause = cause

        if cause is not None:
            self.__cause__ = cause

    def with_context(self, **kwargs: Any) -> OmnimapError:
        """
        Add context to this error (fluent API).

        Usage:
            raise UpstreamQueryError("Failed").with_context(
                tenant_id="00D1",
                url="https://example.my.salesforce.com/services/data",
            )
        """
        for key, value in kwargs.items():
            if hasattr(self.context, key) and key != "metadata":
                setattr(self.context, key, value)
            else:
                self.context.metadata[key] = value
        return self

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for logging/serialization."""
        result = {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "category": self.category.value,
            "retryable": self.retryable,
        }
        if self.retry_after is not None:
            result["retry_after"] = self.retry_after
        context_dict = self.context.to_dict()
        if context_dict:
            result["context"] = context_dict
        if self.cause is not None:
            result["cause"] = str(self.cause)
        return result

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, category={self.category.value})"


# =============================================================================
# CALLER / TENANT ERRORS
# =============================================================================


class NotAuthenticatedError(OmnimapError):
    """No valid tenant context, or the upstream rejected the credentials."""

    default_category = ErrorCategory.AUTH


class NotFoundError(OmnimapError):
    """Component, procedure or cached dataset does not exist."""

    default_category = ErrorCategory.NOT_FOUND


class ValidationError(OmnimapError):
    """Caller supplied an unusable argument (unknown kind, empty key...)."""

    default_category = ErrorCategory.VALIDATION


# =============================================================================
# UPSTREAM ERRORS
# =============================================================================


class UpstreamQueryError(OmnimapError):
    """
    Record-source fetch failed.

    Covers HTTP errors, network faults and malformed pages. Retryable by
    default; the Record Loader retries a page with backoff before giving
    up on the kind.
    """

    default_category = ErrorCategory.SOURCE
    default_retryable = True


class UpstreamTimeoutError(UpstreamQueryError):
    """Record-source request timed out."""

    default_category = ErrorCategory.NETWORK


# =============================================================================
# DATA / STORAGE ERRORS
# =============================================================================


class DefinitionParseError(OmnimapError):
    """Malformed definition blob. Recorded per component, never fatal."""

    default_category = ErrorCategory.PARSE


class CacheUnavailableError(OmnimapError):
    """External cache tier unreachable. Treated as a miss by readers."""

    default_category = ErrorCategory.CACHE
    default_retryable = True


class ConfigError(OmnimapError):
    """Missing or invalid configuration."""

    default_category = ErrorCategory.CONFIG


__all__ = [
    "ErrorCategory",
    "ErrorContext",
    "OmnimapError",
    "NotAuthenticatedError",
    "NotFoundError",
    "ValidationError",
    "UpstreamQueryError",
    "UpstreamTimeoutError",
    "DefinitionParseError",
    "CacheUnavailableError",
    "ConfigError",
]
