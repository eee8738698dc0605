"""
Optional API-key gate for the service itself.

With ``OMNIMAP_API_KEY`` set, requests must send the key in
``X-API-Key`` (or ``?api_key=``). Upstream tenant credentials are a
separate concern and travel in ``Authorization``. Health probes and the
OpenAPI documents stay open.
"""

from __future__ import annotations

import secrets

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from omnimap.api.middleware.errors import problem_response
from omnimap.api.schemas.common import ProblemDetail

_OPEN_SUFFIXES = ("/docs", "/redoc", "/openapi.json")


def is_open_path(path: str) -> bool:
    return path.startswith("/health") or path.endswith(_OPEN_SUFFIXES)


class AuthMiddleware(BaseHTTPMiddleware):
    """Reject requests without the configured key; ``api_key=None`` disables the gate."""

    def __init__(self, app: object, api_key: str | None = None) -> None:
        super().__init__(app)  # type: ignore[arg-type]
        self._api_key = api_key

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        if self._api_key is None or is_open_path(request.url.path):
            return await call_next(request)

        provided = request.headers.get("X-API-Key") or request.query_params.get("api_key") or ""
        if not secrets.compare_digest(provided.encode(), self._api_key.encode()):
            return problem_response(
                ProblemDetail(
                    title="Unauthorized",
                    status=401,
                    detail="Missing or invalid API key. Provide X-API-Key header.",
                    instance=str(request.url),
                )
            )
        return await call_next(request)
