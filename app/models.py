"""
Pydantic models for request/response validation and OpenAPI documentation.

This module defines all data transfer objects (DTOs) used in the API:
- Request models with upload validation (base64, MIME type, size, prompt)
- Response models for the single-provider and catalog endpoints
- Health check models

Wire names are camelCase; models accept either the alias or the field name.

Usage:
    from app.models import GenerateRequest, ParallelGenerateRequest, ErrorResponse
"""
from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel

from app.config import settings
from app.exceptions import ValidationError
from app.providers.image.interface import GenerationRequest, ImageData
from app.services.catalog import default_selections, find_option, get_model_by_id
from app.services.orchestrator import ProviderSelection
from app.utils import decode_base64, sanitize_text, split_data_uri


# =============================================================================
# Enums
# =============================================================================

class ServiceStatus(str, Enum):
    """Status values for health checks."""
    HEALTHY = "healthy"
    UNHEALTHY = "unhealthy"
    DEGRADED = "degraded"


# =============================================================================
# Helpers
# =============================================================================

def _check_image(value: str, label: str) -> str:
    """Validate a base64 / data URI upload without keeping the bytes."""
    if not value or not value.strip():
        raise ValueError(f"{label} is required")
    mime_type, _ = split_data_uri(value)
    if mime_type is not None and mime_type.lower() not in settings.ALLOWED_IMAGE_MIME_TYPES:
        raise ValueError(f"{label} has unsupported type '{mime_type}'")
    try:
        data = decode_base64(value)
    except ValueError:
        raise ValueError(f"{label} is not valid base64") from None
    if not data:
        raise ValueError(f"{label} is empty")
    if len(data) > settings.MAX_IMAGE_SIZE_BYTES:
        limit_mb = settings.MAX_IMAGE_SIZE_BYTES / (1024 * 1024)
        raise ValueError(f"{label} exceeds maximum size of {limit_mb:g}MB")
    return value.strip()


def _check_mime(value: str | None) -> str | None:
    if value is None:
        return None
    value = value.strip().lower()
    if value not in settings.ALLOWED_IMAGE_MIME_TYPES:
        allowed = ", ".join(sorted(settings.ALLOWED_IMAGE_MIME_TYPES))
        raise ValueError(f"Unsupported image type '{value}'. Must be one of: {allowed}")
    return value


# =============================================================================
# Request Models
# =============================================================================

class GenerationInput(BaseModel):
    """
    Prompt and images shared by both generation endpoints.

    Attributes:
        prompt_text: Character sheet description
        primary_image_base64: Avatar image (raw base64 or data URI)
        primary_mime_type: MIME type of the avatar when not given by a data URI
        template_image_base64: Optional layout template image
        template_mime_type: MIME type of the template
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        str_strip_whitespace=True,
    )

    prompt_text: str = Field(
        ...,
        description="Prompt describing the character sheet",
    )
    primary_image_base64: str = Field(
        ...,
        description="Avatar image as base64 or data URI",
    )
    primary_mime_type: str | None = Field(
        default=None,
        description="Avatar MIME type (image/jpeg, image/png or image/webp)",
    )
    template_image_base64: str | None = Field(
        default=None,
        description="Optional layout template as base64 or data URI",
    )
    template_mime_type: str | None = Field(
        default=None,
        description="Template MIME type",
    )

    @field_validator("prompt_text")
    @classmethod
    def validate_prompt(cls, v: str) -> str:
        """Validate prompt is not just whitespace and within length limits."""
        if not v or not v.strip():
            raise ValueError("Prompt cannot be empty or whitespace only")
        if len(v) > settings.MAX_PROMPT_LENGTH:
            raise ValueError(f"Prompt exceeds max length of {settings.MAX_PROMPT_LENGTH} characters")
        return sanitize_text(v)

    @field_validator("primary_image_base64")
    @classmethod
    def validate_primary_image(cls, v: str) -> str:
        return _check_image(v, "Primary image")

    @field_validator("template_image_base64")
    @classmethod
    def validate_template_image(cls, v: str | None) -> str | None:
        if v is None or not v.strip():
            return None
        return _check_image(v, "Template image")

    @field_validator("primary_mime_type", "template_mime_type")
    @classmethod
    def validate_mime_type(cls, v: str | None) -> str | None:
        return _check_mime(v)

    def to_generation_request(self) -> GenerationRequest:
        """Decode the uploads into the provider-agnostic request."""
        try:
            primary = ImageData.from_base64(
                self.primary_image_base64,
                mime_type=self.primary_mime_type or "image/png",
            )
            template = None
            if self.template_image_base64:
                template = ImageData.from_base64(
                    self.template_image_base64,
                    mime_type=self.template_mime_type or "image/png",
                )
        except ValueError as e:
            raise ValidationError(f"Invalid image data: {e}") from e
        return GenerationRequest(
            prompt=self.prompt_text,
            primary_image=primary,
            template_image=template,
        )


class GenerateRequest(GenerationInput):
    """
    Single-provider generation request.

    Example:
        >>> GenerateRequest(
        ...     promptText="Fantasy ranger character sheet",
        ...     primaryImageBase64="iVBORw0KGgo...",
        ...     provider="flux",
        ... )
    """

    provider: str = Field(
        default_factory=lambda: settings.DEFAULT_PROVIDER,
        description="Provider id (gemini, flux, openai)",
    )
    model: str | None = Field(
        default=None,
        description="Model override; the provider default is used when omitted",
    )

    @field_validator("provider")
    @classmethod
    def lowercase_provider(cls, v: str) -> str:
        return v.strip().lower()

    def to_selection(self) -> ProviderSelection:
        option = find_option(self.provider, self.model)
        return ProviderSelection(
            selection_id=f"{self.provider}:{self.model or 'default'}",
            provider_id=self.provider,
            model_id=self.model or "",
            display_label=option.label if option else "",
        )


class SelectionInput(BaseModel):
    """
    One (provider, model) pick in a parallel request.

    Either name the provider (and optionally the model) directly, or pass a
    catalog ``optionId`` such as ``gemini-pro``.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        str_strip_whitespace=True,
        protected_namespaces=(),
    )

    option_id: str | None = Field(default=None, description="Catalog model id")
    provider_id: str = Field(default="", description="Provider id")
    model_id: str = Field(default="", description="Model id (provider default when empty)")
    selection_id: str | None = Field(
        default=None,
        description="Unique id within the request; derived from provider and model when omitted",
    )
    label: str | None = Field(default=None, description="Display label")

    @field_validator("provider_id")
    @classmethod
    def lowercase_provider(cls, v: str) -> str:
        return v.lower()

    @model_validator(mode="after")
    def resolve_option(self) -> "SelectionInput":
        """Fill provider, model and label from the catalog option."""
        if self.option_id:
            option = get_model_by_id(self.option_id)
            if option is None:
                raise ValueError(f"Unknown model option '{self.option_id}'")
            if self.provider_id and self.provider_id != option.provider:
                raise ValueError(
                    f"Model option '{option.id}' belongs to provider '{option.provider}'"
                )
            self.provider_id = option.provider
            self.model_id = self.model_id or option.model
            self.label = self.label or option.label
        elif not self.provider_id:
            raise ValueError("providerId or optionId is required")
        return self


class ParallelGenerateRequest(GenerationInput):
    """
    Multi-provider generation request.

    When ``selections`` is omitted the default catalog models are used.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        str_strip_whitespace=True,
        json_schema_extra={
            "examples": [
                {
                    "promptText": "Sci-fi pilot character sheet with turnaround",
                    "primaryImageBase64": "iVBORw0KGgo...",
                    "selections": [
                        {"providerId": "gemini", "modelId": "gemini-2.5-flash-image"},
                        {"providerId": "flux", "modelId": "black-forest-labs/flux-kontext-pro"},
                    ],
                }
            ]
        },
    )

    selections: list[SelectionInput] | None = Field(
        default=None,
        min_length=1,
        max_length=settings.MAX_SELECTIONS,
        description="Providers and models to fan out to",
    )

    @model_validator(mode="after")
    def validate_selection_ids(self) -> "ParallelGenerateRequest":
        """Explicit selection ids must be unique."""
        if not self.selections:
            return self
        explicit = [s.selection_id for s in self.selections if s.selection_id]
        if len(explicit) != len(set(explicit)):
            raise ValueError("Selection ids must be unique")
        return self

    def to_selections(self) -> list[ProviderSelection]:
        """
        Build orchestrator selections.

        Missing ids become the catalog option id or ``provider:model`` (suffixed ``#2``, ``#3`` on
        repeats) and missing labels come from the catalog.
        """
        if not self.selections:
            return default_selections()

        taken = {s.selection_id for s in self.selections if s.selection_id}
        result: list[ProviderSelection] = []
        for item in self.selections:
            selection_id = item.selection_id
            if not selection_id:
                base = item.option_id or f"{item.provider_id}:{item.model_id or 'default'}"
                selection_id, n = base, 1
                while selection_id in taken:
                    n += 1
                    selection_id = f"{base}#{n}"
            taken.add(selection_id)

            label = item.label
            if not label:
                option = find_option(item.provider_id, item.model_id)
                label = option.label if option is not None else ""
            result.append(
                ProviderSelection(
                    selection_id=selection_id,
                    provider_id=item.provider_id,
                    model_id=item.model_id,
                    display_label=label,
                )
            )
        return result


# =============================================================================
# Response Models
# =============================================================================

class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class GenerationMetadata(CamelModel):
    """Provider details attached to a single-provider response."""

    provider: str = Field(..., description="Provider id")
    model: str = Field(..., description="Model that produced the result")
    generated_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="When generation finished",
    )
    generation_time: float = Field(..., ge=0, description="Generation time in milliseconds")


class GenerateResponse(CamelModel):
    """Successful single-provider generation."""

    success: bool = True
    image_data: str = Field(..., description="Generated image as base64")
    mime_type: str = Field(..., description="MIME type of the generated image")
    metadata: GenerationMetadata


class GenerateErrorResponse(CamelModel):
    """Failed single-provider generation."""

    success: bool = False
    error: str = Field(..., description="User-facing error message")
    error_category: str = Field(..., description="Failure category")
    metadata: GenerationMetadata


class ModelInfo(CamelModel):
    """Catalog entry with credential availability."""

    id: str
    label: str
    provider: str
    model: str
    preview: bool = False
    configured: bool = Field(..., description="Whether the provider has a usable credential")


class ModelCatalogResponse(CamelModel):
    models: list[ModelInfo]
    default_model_ids: list[str] = Field(..., description="Options selected when a request has no selections")
    providers: dict[str, bool] = Field(..., description="Provider id -> configured")


class ErrorResponse(BaseModel):
    """
    Standard error response format.

    All API errors return this format for consistency.
    """

    model_config = ConfigDict(frozen=True)

    success: bool = False
    error: str = Field(
        ...,
        description="Error message",
    )
    error_type: str = Field(
        ...,
        description="Error classification",
        examples=["ValidationError", "UnknownProviderError", "RateLimitExceeded"],
    )
    details: Any | None = Field(
        default=None,
        description="Additional error details (for validation errors)",
    )


class HealthResponse(BaseModel):
    """
    Health check response with provider statuses.

    Example:
        >>> health = HealthResponse(
        ...     status="healthy",
        ...     services={"providers": {"gemini": True}},
        ...     timestamp="2024-01-01T00:00:00Z"
        ... )
    """

    status: ServiceStatus = Field(
        ...,
        description="Overall health status",
    )
    services: dict[str, Any] = Field(
        ...,
        description="Individual service health statuses",
    )
    timestamp: str = Field(
        ...,
        description="ISO 8601 timestamp",
    )
    version: str = Field(
        default="1.0.0",
        description="API version",
    )


class ReadinessResponse(BaseModel):
    """Readiness probe response for container orchestration."""

    model_config = ConfigDict(frozen=True)

    ready: bool = Field(
        ...,
        description="Whether the service is ready to accept requests",
    )
    checks: dict[str, bool] = Field(
        default_factory=dict,
        description="Individual readiness check results",
    )


class PingResponse(BaseModel):
    """Simple ping response."""

    model_config = ConfigDict(frozen=True)

    status: str = Field(
        default="ok",
        description="Ping status",
    )
