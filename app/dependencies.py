"""
FastAPI dependencies for dependency injection.

This module centralizes all FastAPI dependencies for:
- Application state injection
- Rate limiting
- Request validation
- Common utilities

Usage:
    from app.dependencies import get_app_state, validate_request_size

    @router.post("/endpoint", dependencies=[Depends(validate_request_size)])
    async def endpoint(state: AppState = Depends(get_app_state)):
        ...
"""
from __future__ import annotations

from typing import TYPE_CHECKING

from fastapi import HTTPException, Request, status
from slowapi import Limiter

from app.config import get_logger, settings

if TYPE_CHECKING:
    from app.state import AppState

logger = get_logger("dependencies")


# =============================================================================
# Application State
# =============================================================================

async def get_app_state(request: Request) -> "AppState":
    """
    FastAPI dependency to get application state.

    This provides access to the provider registry and the orchestrator.

    Raises:
        RuntimeError: If application state is not initialized
    """
    if not hasattr(request.app.state, "app_state"):
        logger.error("Application state not initialized")
        raise RuntimeError("Application state not initialized")
    return request.app.state.app_state


# =============================================================================
# Client Information
# =============================================================================

def get_client_ip(request: Request) -> str:
    """
    Get the real client IP address.

    Checks X-Forwarded-For and X-Real-IP headers before falling
    back to the direct client IP.
    """
    # X-Forwarded-For can contain multiple IPs
    forwarded_for = request.headers.get("X-Forwarded-For")
    if forwarded_for:
        return forwarded_for.split(",")[0].strip()

    real_ip = request.headers.get("X-Real-IP")
    if real_ip:
        return real_ip.strip()

    if request.client:
        return request.client.host

    return "unknown"


# =============================================================================
# Rate Limiting
# =============================================================================

# Applied to every route by SlowAPIMiddleware; health probes are exempted
limiter = Limiter(key_func=get_client_ip, default_limits=[settings.RATE_LIMIT])


# =============================================================================
# Request Validation
# =============================================================================

async def validate_request_size(request: Request) -> None:
    """
    Validate that request body size is within limits.

    Raises:
        HTTPException: If content length exceeds MAX_REQUEST_SIZE
    """
    content_length = request.headers.get("content-length")
    if not content_length:
        return

    try:
        size = int(content_length)
    except ValueError:
        # Invalid content-length header, let the server handle it
        return

    if size > settings.MAX_REQUEST_SIZE:
        raise HTTPException(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            detail=f"Request body too large. Maximum size: {settings.MAX_REQUEST_SIZE} bytes",
        )

