"""
Operations layer: transport-agnostic functions over ``ComponentService``.

- All functions accept ``OperationContext`` as first argument
- All functions return ``OperationResult[T]`` (never raise)
- No HTTP or CLI knowledge

Usage::

    from omnimap.ops import OperationContext
    from omnimap.ops.components import load_all

    ctx = OperationContext(service=service, tenant=tenant)
    result = load_all(ctx)
    assert result.success
"""

from omnimap.ops.context import OperationContext
from omnimap.ops.result import OperationError, OperationResult, PagedResult

__all__ = [
    "OperationContext",
    "OperationError",
    "OperationResult",
    "PagedResult",
]
