"""
RFC 7807 problem responses.

Failed operations carry a code (``NOT_FOUND``, ``UPSTREAM_ERROR``...)
that alone decides the HTTP status. Exceptions that escape a router
become a 500 problem whose detail is only shown in debug mode.
"""

from __future__ import annotations

from fastapi import Request
from fastapi.responses import JSONResponse

from omnimap.api.schemas.common import ErrorDetail, ProblemDetail
from omnimap.core.logging import get_logger
from omnimap.ops.result import OperationResult

logger = get_logger(__name__)

PROBLEM_MEDIA_TYPE = "application/problem+json"

ERROR_CODE_TO_STATUS: dict[str, int] = {
    "NOT_AUTHENTICATED": 401,
    "VALIDATION_FAILED": 400,
    "NOT_FOUND": 404,
    "INTERNAL": 500,
    "UPSTREAM_ERROR": 502,
    "CACHE_UNAVAILABLE": 503,
}


def status_for_error_code(code: str) -> int:
    return ERROR_CODE_TO_STATUS.get(code, 500)


def problem_response(problem: ProblemDetail) -> JSONResponse:
    return JSONResponse(status_code=problem.status, content=problem.model_dump(), media_type=PROBLEM_MEDIA_TYPE)


def problem_for_result(result: OperationResult, instance: str = "") -> JSONResponse:
    """Problem document for a failed operation; the message is the title."""
    error = result.error
    if error is None:
        return problem_response(ProblemDetail(title="Operation failed", status=500, detail="INTERNAL", instance=instance))
    return problem_response(
        ProblemDetail(
            title=error.message,
            status=status_for_error_code(error.code),
            detail=error.code,
            instance=instance,
            errors=[ErrorDetail(code=error.code, message=error.message)],
        )
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("unhandled_exception", path=request.url.path, error=str(exc))
    debug = request.app.state.settings.debug
    return problem_response(
        ProblemDetail(
            title="Internal Server Error",
            status=500,
            detail=str(exc) if debug else "An unexpected error occurred.",
            instance=str(request.url),
        )
    )
