"""Execution helpers: retry policies and the per-tenant in-flight guard."""

from omnimap.execution.concurrency import GuardSlot, InFlightGuard
from omnimap.execution.retry import (
    ExponentialBackoff,
    NoRetry,
    RetryContext,
    RetryStrategy,
    is_retryable,
)

__all__ = [
    "ExponentialBackoff",
    "NoRetry",
    "RetryContext",
    "RetryStrategy",
    "is_retryable",
    "InFlightGuard",
    "GuardSlot",
]
