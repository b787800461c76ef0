"""
FastAPI application entry point.

This module initializes the FastAPI application with:
- Lifespan management (startup/shutdown)
- Middleware configuration (CORS, rate limiting)
- Exception handlers
- Route registration
- OpenAPI documentation

Architecture:
- Provider pattern for swappable image generators (Gemini, Flux, OpenAI)
- Orchestrator that fans one request out to several providers in parallel
- Centralized configuration via Pydantic Settings

Usage:
    Run with uvicorn:
        uvicorn app.main:app --host 0.0.0.0 --port 8080

    Or with the server.py entry point:
        python server.py
"""
from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.openapi.utils import get_openapi
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.config import get_logger, settings
from app.dependencies import limiter
from app.exceptions import CharacterSheetException
from app.models import ErrorResponse
from app.routes import generate, health
from app.state import AppState

logger = get_logger("app.main")


# =============================================================================
# Application Lifespan
# =============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Handles:
    - Startup: Build the provider registry and orchestrator
    - Shutdown: Close the SDK clients held by the provider registry
    """
    logger.info("=" * 60)
    logger.info("Character Sheet Generator Starting...")
    logger.info("=" * 60)
    logger.info(
        "Configuration | default_provider=%s | timeout_s=%.0f | max_selections=%d",
        settings.DEFAULT_PROVIDER,
        settings.PROVIDER_TIMEOUT_SECONDS,
        settings.MAX_SELECTIONS,
    )

    try:
        app.state.app_state = await AppState.create()
        logger.info("Server ready to accept requests")
        logger.info("=" * 60)
    except Exception as exc:
        logger.critical("Startup failed: %s", exc, exc_info=True)
        raise

    yield  # Application running

    # Shutdown
    logger.info("Shutting down...")
    if hasattr(app.state, "app_state"):
        await app.state.app_state.registry.aclose()
        logger.info("Provider clients closed")
    logger.info("Shutdown complete")


# =============================================================================
# FastAPI Application
# =============================================================================

def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application.

    Returns:
        Configured FastAPI application instance
    """
    application = FastAPI(
        title="Character Sheet Generator API",
        description=(
            "Generates character sheets from an avatar image with several "
            "AI image providers in parallel."
        ),
        version=health.API_VERSION,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
    )

    configure_rate_limiting(application)
    configure_cors(application)
    configure_exception_handlers(application)
    configure_routes(application)

    return application


# =============================================================================
# Rate Limiting
# =============================================================================

def configure_rate_limiting(application: FastAPI) -> None:
    """Apply RATE_LIMIT to every route except the health probes."""
    application.state.limiter = limiter
    application.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
    application.add_middleware(SlowAPIMiddleware)

    # Exemptions are matched by endpoint name; the returned wrappers are not needed
    for endpoint in (health.health_check, health.ping, health.readiness_check):
        limiter.exempt(endpoint)

    logger.debug("Rate limiting configured: %s", settings.RATE_LIMIT)


# =============================================================================
# CORS Configuration
# =============================================================================

def configure_cors(application: FastAPI) -> None:
    """Configure CORS middleware."""
    cors_origins = settings.CORS_ORIGINS_LIST
    allow_credentials = cors_origins != ["*"]

    if not allow_credentials:
        logger.warning(
            "[WARNING] CORS: Wildcard origin '*' configured. "
            "This disables credentials and is NOT recommended for production."
        )
    else:
        logger.info("CORS: Configured for origins: %s", cors_origins)

    application.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins,
        allow_credentials=allow_credentials,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
        expose_headers=["X-Invocation-ID"],
    )


# =============================================================================
# Exception Handlers
# =============================================================================

def _validation_message(errors: list[dict[str, Any]]) -> str:
    """First validation error as '<field>: <message>'."""
    if not errors:
        return "Invalid request"
    first = errors[0]
    field = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    message = str(first.get("msg", "Invalid value")).removeprefix("Value error, ")
    return f"{field}: {message}" if field else message


def configure_exception_handlers(application: FastAPI) -> None:
    """Configure exception handlers."""

    @application.exception_handler(CharacterSheetException)
    async def character_sheet_exception_handler(
        request: Request,
        exc: CharacterSheetException,
    ) -> JSONResponse:
        """Handle custom application exceptions."""
        logger.warning(
            "CharacterSheetException | path=%s | type=%s | message=%s",
            request.url.path,
            exc.__class__.__name__,
            exc.message,
        )

        error_response = ErrorResponse(
            error=exc.message,
            error_type=exc.__class__.__name__,
            details=exc.details,
        )
        return JSONResponse(
            status_code=exc.status_code,
            content=error_response.model_dump(exclude_none=True),
        )

    @application.exception_handler(RequestValidationError)
    async def request_validation_handler(
        request: Request,
        exc: RequestValidationError,
    ) -> JSONResponse:
        """Malformed request bodies are client errors (400)."""
        errors = [
            {
                "loc": [str(part) for part in error.get("loc", ())],
                "msg": str(error.get("msg", "")).removeprefix("Value error, "),
                "type": error.get("type", ""),
            }
            for error in exc.errors()
        ]
        message = _validation_message(exc.errors())
        logger.info("Validation failed | path=%s | error=%s", request.url.path, message)

        error_response = ErrorResponse(
            error=message,
            error_type="ValidationError",
            details=errors,
        )
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content=error_response.model_dump(),
        )

    @application.exception_handler(StarletteHTTPException)
    async def http_exception_handler(
        request: Request,
        exc: StarletteHTTPException,
    ) -> JSONResponse:
        """Keep framework HTTP errors (404, 405, 413) in the common error shape."""
        error_response = ErrorResponse(
            error=str(exc.detail),
            error_type="HTTPException",
        )
        return JSONResponse(
            status_code=exc.status_code,
            content=error_response.model_dump(exclude_none=True),
            headers=getattr(exc, "headers", None),
        )

    @application.exception_handler(Exception)
    async def global_exception_handler(
        request: Request,
        exc: Exception,
    ) -> JSONResponse:
        """Handle unhandled exceptions."""
        logger.error(
            "Unhandled exception | path=%s | type=%s | error=%s",
            request.url.path,
            type(exc).__name__,
            exc,
            exc_info=True,
        )

        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "success": False,
                "error": "Internal server error",
                "error_type": "InternalError",
            },
        )


# =============================================================================
# Route Configuration
# =============================================================================

def configure_routes(application: FastAPI) -> None:
    """Configure application routes."""
    application.include_router(health.router)
    application.include_router(generate.router)


# =============================================================================
# Application Instance
# =============================================================================

app = create_app()


# =============================================================================
# Custom OpenAPI Schema
# =============================================================================

def custom_openapi() -> dict[str, Any]:
    """Generate custom OpenAPI schema with additional metadata."""
    if app.openapi_schema:
        return app.openapi_schema

    openapi_schema = get_openapi(
        title=app.title,
        version=app.version,
        description=app.description,
        routes=app.routes,
    )

    openapi_schema["servers"] = [
        {"url": "/", "description": "Current server"},
    ]
    openapi_schema["info"]["contact"] = {
        "name": "Character Sheet Generator API",
    }

    app.openapi_schema = openapi_schema
    return app.openapi_schema


app.openapi = custom_openapi
