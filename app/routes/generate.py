"""
Character sheet generation endpoints.

This module provides:
- Single-provider generation (JSON response)
- Parallel multi-provider generation (NDJSON stream of snapshots)
- The model catalog with per-provider credential status

Usage:
    POST /api/generate
    {
        "promptText": "Fantasy ranger character sheet",
        "primaryImageBase64": "iVBORw0KGgo...",
        "provider": "gemini"
    }

    POST /api/generate/parallel
    {
        "promptText": "Fantasy ranger character sheet",
        "primaryImageBase64": "iVBORw0KGgo...",
        "selections": [{"providerId": "gemini"}, {"providerId": "flux"}]
    }
"""
from __future__ import annotations

import json
import time
from typing import AsyncIterator

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse, StreamingResponse

from app.config import get_logger
from app.dependencies import get_app_state, validate_request_size
from app.exceptions import ErrorCategory
from app.models import (
    GenerateErrorResponse,
    GenerateRequest,
    GenerateResponse,
    GenerationMetadata,
    ModelCatalogResponse,
    ModelInfo,
    ParallelGenerateRequest,
)
from app.services.catalog import DEFAULT_MODELS
from app.services.projection import snapshot_to_dict
from app.state import AppState

logger = get_logger("routes.generate")

router = APIRouter(prefix="/api", tags=["Generation"])


# =============================================================================
# Response Headers
# =============================================================================

STREAMING_HEADERS: dict[str, str] = {
    "Cache-Control": "no-cache, no-store, must-revalidate",
    "X-Accel-Buffering": "no",  # Disable nginx buffering
    "Connection": "keep-alive",
}

NDJSON_MEDIA_TYPE = "application/x-ndjson"


# =============================================================================
# Single Provider
# =============================================================================

@router.post(
    "/generate",
    response_model=GenerateResponse,
    dependencies=[Depends(validate_request_size)],
    summary="Generate a character sheet with one provider",
    responses={
        200: {"description": "Generated image"},
        400: {"description": "Invalid request"},
        413: {"description": "Request body too large"},
        429: {"description": "Rate limit exceeded"},
        500: {"description": "Generation failed, including unknown providers", "model": GenerateErrorResponse},
    },
)
async def generate_single(
    body: GenerateRequest,
    state: AppState = Depends(get_app_state),
) -> GenerateResponse | JSONResponse:
    """
    Generate one character sheet with a single provider.

    Runs through the orchestrator with one selection, so timing and error
    categories match the parallel endpoint.

    **Request Body:**
    - `promptText`: Character description (required)
    - `primaryImageBase64`: Avatar image (required)
    - `templateImageBase64`: Optional layout template
    - `provider` / `model`: Provider id and optional model override
    """
    request = body.to_generation_request()
    selection = body.to_selection()

    snapshot = await state.orchestrator.generate(request, [selection])
    outcome = snapshot.outcomes[selection.selection_id]

    metadata = GenerationMetadata(
        provider=outcome.provider_id,
        model=outcome.model_id,
        generated_at=outcome.completed_at,
        generation_time=round(outcome.duration_ms or 0.0, 1),
    )

    if outcome.succeeded:
        image = outcome.images[0]
        return GenerateResponse(
            image_data=image.to_base64(),
            mime_type=image.mime_type,
            metadata=metadata,
        )

    category = outcome.error_category or ErrorCategory.GENERIC
    error = GenerateErrorResponse(
        error=outcome.error_message or "Generation failed",
        error_category=category.value,
        metadata=metadata,
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=error.model_dump(by_alias=True, mode="json"),
    )


# =============================================================================
# Parallel Providers
# =============================================================================

@router.post(
    "/generate/parallel",
    response_class=StreamingResponse,
    dependencies=[Depends(validate_request_size)],
    summary="Generate with several providers in parallel",
    responses={
        200: {
            "description": "One JSON snapshot per line until every selection settles",
            "content": {NDJSON_MEDIA_TYPE: {}},
        },
        400: {"description": "Invalid request"},
        413: {"description": "Request body too large"},
        429: {"description": "Rate limit exceeded"},
    },
)
async def generate_parallel(
    body: ParallelGenerateRequest,
    state: AppState = Depends(get_app_state),
) -> StreamingResponse:
    """
    Fan one request out to several providers and stream progress.

    The first line is the all-pending skeleton; each following line is a
    full snapshot published after one selection settles. The last line has
    `complete: true` and carries the global error when every selection
    failed.
    """
    request = body.to_generation_request()
    selections = body.to_selections()

    invocation = state.orchestrator.start(request, selections)
    start_time = time.perf_counter()

    async def stream_snapshots() -> AsyncIterator[str]:
        lines = 0
        final = None
        try:
            async for snapshot in invocation.updates():
                lines += 1
                final = snapshot
                yield json.dumps(snapshot_to_dict(snapshot, invocation.selections)) + "\n"
        finally:
            logger.info(
                "Stream complete | invocation=%s | lines=%d | succeeded=%d | failed=%d | total_ms=%.1f",
                invocation.id,
                lines,
                final.success_count if final else 0,
                final.failure_count if final else 0,
                (time.perf_counter() - start_time) * 1000,
            )

    return StreamingResponse(
        stream_snapshots(),
        media_type=NDJSON_MEDIA_TYPE,
        headers={**STREAMING_HEADERS, "X-Invocation-ID": invocation.id},
    )


# =============================================================================
# Model Catalog
# =============================================================================

@router.get(
    "/models",
    response_model=ModelCatalogResponse,
    summary="List selectable models",
)
async def list_models(
    state: AppState = Depends(get_app_state),
) -> ModelCatalogResponse:
    """List catalog models and whether their provider is configured."""
    providers = state.registry.credential_status()
    return ModelCatalogResponse(
        models=[
            ModelInfo(**option.to_dict(), configured=providers.get(option.provider, False))
            for option in state.catalog
        ],
        default_model_ids=[option.id for option in DEFAULT_MODELS],
        providers=providers,
    )
