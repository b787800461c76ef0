"""
Health check endpoints.

This module provides health monitoring endpoints for:
- Liveness probes (ping)
- Readiness probes (ready)
- Provider credential status (health)

These endpoints follow Kubernetes health check patterns and are exempt
from rate limiting.

Usage:
    GET /           - Full health check
    GET /health     - Full health check (alias)
    GET /ping       - Simple liveness probe
    GET /ready      - Readiness probe
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse

from app.config import get_logger, settings
from app.dependencies import get_app_state
from app.models import HealthResponse, PingResponse, ReadinessResponse, ServiceStatus
from app.state import AppState

logger = get_logger("routes.health")

router = APIRouter(tags=["Health"])

API_VERSION = "1.0.0"


# =============================================================================
# Health Check Endpoint
# =============================================================================

@router.get(
    "/",
    response_model=HealthResponse,
    summary="Health check",
    description="Returns health status including per-provider credential status.",
    responses={
        200: {"description": "Service is healthy or degraded"},
        503: {"description": "No provider is usable"},
    },
)
@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Health check (alias)",
    description="Alias for root health check endpoint.",
    responses={
        200: {"description": "Service is healthy or degraded"},
        503: {"description": "No provider is usable"},
    },
)
async def health_check(
    state: AppState = Depends(get_app_state),
) -> HealthResponse | JSONResponse:
    """
    Returns health status including provider information.

    The health check reports status as:
    - **healthy**: Every registered provider has a usable credential
    - **degraded**: Some providers are unconfigured
    - **unhealthy**: No provider can be used
    """
    providers = state.registry.credential_status()

    services: dict[str, Any] = {
        "ready": any(providers.values()),
        "default_provider": settings.DEFAULT_PROVIDER,
        "providers": {
            name: {
                "configured": configured,
                "status": "healthy" if configured else "unavailable",
            }
            for name, configured in providers.items()
        },
    }

    if providers and all(providers.values()):
        overall_status = ServiceStatus.HEALTHY
    elif any(providers.values()):
        overall_status = ServiceStatus.DEGRADED
    else:
        overall_status = ServiceStatus.UNHEALTHY

    response = HealthResponse(
        status=overall_status,
        services=services,
        timestamp=datetime.now(timezone.utc).isoformat(),
        version=API_VERSION,
    )

    if overall_status is ServiceStatus.UNHEALTHY:
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content=response.model_dump(mode="json"),
        )

    return response


# =============================================================================
# Liveness Probe
# =============================================================================

@router.get(
    "/ping",
    response_model=PingResponse,
    summary="Liveness probe",
    description="Simple ping endpoint for keepalive checks. Does not verify service health.",
    responses={
        200: {
            "description": "Service is alive",
            "content": {
                "application/json": {
                    "example": {"status": "ok"}
                }
            },
        },
    },
)
async def ping() -> PingResponse:
    """
    Simple ping endpoint for keepalive checks.

    This endpoint always returns 200 as long as the server is running.
    It does not check any external dependencies.
    """
    return PingResponse(status="ok")


# =============================================================================
# Readiness Probe
# =============================================================================

@router.get(
    "/ready",
    response_model=ReadinessResponse,
    summary="Readiness probe",
    description="Kubernetes-style readiness probe.",
    responses={
        200: {"description": "At least one provider is configured"},
        503: {"description": "No provider is configured"},
    },
)
async def readiness_check(
    state: AppState = Depends(get_app_state),
) -> ReadinessResponse | JSONResponse:
    """
    Kubernetes-style readiness probe.

    Returns 200 if at least one provider can serve generations, 503
    otherwise. Each provider's credential status is listed in ``checks``.
    """
    checks = state.registry.credential_status()
    is_ready = any(checks.values())

    response = ReadinessResponse(
        ready=is_ready,
        checks=checks,
    )

    if not is_ready:
        logger.warning("Readiness check failed: no configured provider (%s)", checks)
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content=response.model_dump(),
        )

    return response
