"""Helpers shared by the routers."""

from __future__ import annotations

from typing import Any

from fastapi.responses import JSONResponse

from omnimap.api.middleware.errors import problem_for_result
from omnimap.ops.result import OperationResult


def _dc(obj: Any) -> dict[str, Any]:
    """Payload as a plain dict: ``to_dict()`` (camelCase) when available."""
    if hasattr(obj, "to_dict"):
        return obj.to_dict()
    return obj if isinstance(obj, dict) else {}


def _handle_error(result: OperationResult, instance: str = "") -> JSONResponse:
    return problem_for_result(result, instance)
