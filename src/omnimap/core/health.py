"""Health endpoints for the omnimap HTTP service.

The only dependency worth probing is the external cache tier. It is
optional: when it is down the service still answers from memory and
reloads from the record source, so an outage reports ``degraded`` and
never fails ``/health``.

Routes (mounted at the application root):

- ``GET /health``        overall status plus per-probe results
- ``GET /health/ready``  503 unless every probe passes
- ``GET /health/live``   process liveness only
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any, Literal

from fastapi import APIRouter
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

Status = Literal["healthy", "degraded", "unhealthy"]

_STARTED = time.monotonic()


class ProbeResult(BaseModel):
    status: Status
    latency_ms: float | None = None
    error: str | None = None
    details: dict[str, Any] = Field(default_factory=dict)


class HealthResponse(BaseModel):
    """Body of ``/health`` and ``/health/ready``."""

    status: Status = "healthy"
    service: str = ""
    version: str = ""
    uptime_s: float = 0.0
    timestamp: str = ""
    checks: dict[str, ProbeResult] = Field(default_factory=dict)


class LivenessResponse(BaseModel):
    status: str = "alive"


@dataclass
class HealthCheck:
    """One named probe.

    ``check_fn`` returns ``True`` when healthy and returns ``False`` or
    raises otherwise. A failing ``required`` probe makes the service
    ``unhealthy``; an optional one only ``degraded``.
    """

    name: str
    check_fn: Callable[[], Awaitable[bool]]
    required: bool = True
    timeout_s: float = 5.0

    async def run(self) -> ProbeResult:
        started = time.monotonic()

        def elapsed() -> float:
            return round((time.monotonic() - started) * 1000, 2)

        try:
            ok = await asyncio.wait_for(self.check_fn(), timeout=self.timeout_s)
        except TimeoutError:
            return ProbeResult(status="unhealthy", error=f"no answer within {self.timeout_s}s")
        except Exception as exc:  # noqa: BLE001
            return ProbeResult(status="unhealthy", latency_ms=elapsed(), error=str(exc)[:200])
        if ok is False:
            return ProbeResult(status="unhealthy", latency_ms=elapsed(), error="probe reported failure")
        return ProbeResult(status="healthy", latency_ms=elapsed())


def overall_status(results: dict[str, ProbeResult], checks: list[HealthCheck]) -> Status:
    failing = [c for c in checks if results.get(c.name) and results[c.name].status != "healthy"]
    if any(c.required for c in failing):
        return "unhealthy"
    return "degraded" if failing else "healthy"


def create_health_router(
    service_name: str,
    version: str,
    checks: list[HealthCheck] | None = None,
    prefix: str = "/health",
) -> APIRouter:
    """Router exposing ``/health``, ``/health/ready`` and ``/health/live``."""
    router = APIRouter(tags=["health"])
    probes = list(checks or [])

    async def evaluate() -> HealthResponse:
        pairs = await asyncio.gather(*(probe.run() for probe in probes))
        results = {probe.name: result for probe, result in zip(probes, pairs, strict=True)}
        return HealthResponse(
            status=overall_status(results, probes),
            service=service_name,
            version=version,
            uptime_s=round(time.monotonic() - _STARTED, 1),
            timestamp=datetime.now(UTC).isoformat(),
            checks=results,
        )

    @router.get(prefix, response_model=HealthResponse)
    async def health() -> JSONResponse:
        body = await evaluate()
        code = 503 if body.status == "unhealthy" else 200
        return JSONResponse(content=body.model_dump(), status_code=code)

    @router.get(f"{prefix}/ready", response_model=HealthResponse)
    async def readiness() -> JSONResponse:
        body = await evaluate()
        code = 200 if body.status == "healthy" else 503
        return JSONResponse(content=body.model_dump(), status_code=code)

    @router.get(f"{prefix}/live", response_model=LivenessResponse)
    async def liveness() -> LivenessResponse:
        return LivenessResponse()

    return router


__all__ = [
    "HealthCheck",
    "HealthResponse",
    "LivenessResponse",
    "ProbeResult",
    "create_health_router",
    "overall_status",
]
