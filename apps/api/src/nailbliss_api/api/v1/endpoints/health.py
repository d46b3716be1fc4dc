from __future__ import annotations

from typing import Dict, Literal

from fastapi import APIRouter, Request
from pydantic import BaseModel, Field


router = APIRouter()


class ComponentStatus(BaseModel):
    status: Literal["ready", "disabled", "error", "degraded"]
    detail: str | None = Field(default=None, description="Human readable status detail")


class ReadinessPayload(BaseModel):
    status: Literal["ready", "degraded", "error"]
    components: Dict[str, ComponentStatus]


@router.get("/health/healthz", summary="Service health check")
async def service_health() -> dict[str, str]:
    return {"status": "ok"}


@router.get("/health/readyz", summary="Service readiness", response_model=ReadinessPayload)
async def service_readiness(request: Request) -> ReadinessPayload:
    components: Dict[str, ComponentStatus] = {}
    status: Literal["ready", "degraded", "error"] = "ready"

    backend = getattr(request.app.state, "backend", None)
    if backend is None:
        components["backend"] = ComponentStatus(status="error", detail="Backend gateway not installed")
        status = "error"
    elif not backend.is_configured:
        components["backend"] = ComponentStatus(
            status="degraded",
            detail="SUPABASE_URL or SUPABASE_ANON_KEY not configured",
        )
        status = "degraded"
    else:
        components["backend"] = ComponentStatus(status="ready", detail=backend.base_url)

    codec = getattr(request.app.state, "codec", None)
    if codec is None:
        components["qr_tokens"] = ComponentStatus(status="error", detail="Token codec not installed")
        status = "error"
    else:
        signing = "signed" if codec.is_signed else "obfuscated"
        components["qr_tokens"] = ComponentStatus(
            status="ready",
            detail=f"{signing} tokens, {codec.freshness_window_ms // 1000}s window",
        )

    stations = getattr(request.app.state, "stations", None)
    if stations is None:
        components["redemption_stations"] = ComponentStatus(status="disabled", detail="Station registry not installed")
    else:
        components["redemption_stations"] = ComponentStatus(
            status="ready",
            detail=f"{len(stations)} active station(s)",
        )

    return ReadinessPayload(status=status, components=components)
