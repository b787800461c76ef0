"""
Abstract interface for AI image generation providers.

All image providers must implement this interface so that the orchestrator
can fan the same request out to any of them and get back results of one
shape.

Contract:
    - validate_config() inspects the credential shape only (no network).
    - generate() never raises. Network, auth, rate-limit and malformed
      response failures come back as a failed GenerationResult tagged with
      an ErrorCategory.
    - At most one image is returned per call.
"""
from __future__ import annotations

import asyncio
import base64
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, ClassVar

from app.config import get_logger, settings
from app.exceptions import ConfigurationError, ErrorCategory, ProviderError, ValidationError
from app.utils import decode_base64, split_data_uri, truncate_text

logger = get_logger("providers.image")


# =============================================================================
# Value Types
# =============================================================================

@dataclass(frozen=True)
class ImageData:
    """An image blob together with its MIME type."""
    data: bytes
    mime_type: str = "image/png"

    @classmethod
    def from_base64(cls, value: str, mime_type: str | None = None) -> "ImageData":
        """
        Build from raw base64 or a data URI.

        A MIME type embedded in a data URI wins over the ``mime_type``
        argument.

        Raises:
            ValueError: If the payload is not valid base64
        """
        uri_mime, _ = split_data_uri(value)
        return cls(data=decode_base64(value), mime_type=uri_mime or mime_type or "image/png")

    def to_base64(self) -> str:
        return base64.b64encode(self.data).decode("ascii")

    def to_data_uri(self) -> str:
        return f"data:{self.mime_type};base64,{self.to_base64()}"

    def __repr__(self) -> str:
        return f"ImageData(mime_type={self.mime_type!r}, size={len(self.data)})"


@dataclass(frozen=True)
class GenerationRequest:
    """
    Provider-agnostic request shared read-only by every selection.

    Attributes:
        prompt: User prompt (non-empty)
        primary_image: The avatar / subject image ("image 1")
        template_image: Optional layout template ("image 2")
    """
    prompt: str
    primary_image: ImageData
    template_image: ImageData | None = None

    def __post_init__(self) -> None:
        if not self.prompt or not self.prompt.strip():
            raise ValidationError("Prompt cannot be empty or whitespace only")
        if not self.primary_image.data:
            raise ValidationError("Primary image is required")

    @property
    def has_template(self) -> bool:
        return self.template_image is not None


@dataclass(frozen=True)
class ProviderConfig:
    """Resolved once per provider instance and never mutated."""
    provider_id: str
    credential: str
    model_id: str | None = None
    timeout_seconds: float = field(default_factory=lambda: settings.PROVIDER_TIMEOUT_SECONDS)

    def __repr__(self) -> str:
        return (
            f"ProviderConfig(provider_id={self.provider_id!r}, model_id={self.model_id!r}, "
            f"credential='...{self.credential[-4:]}')"
        )


@dataclass(frozen=True)
class GenerationResult:
    """
    Outcome of one provider call.

    ``generation_time_ms`` is measured inside the provider and is only a
    fallback; the orchestrator's own timing is authoritative.
    """
    success: bool
    provider: str
    model: str
    images: tuple[ImageData, ...] = ()
    error: str | None = None
    error_category: ErrorCategory | None = None
    generation_time_ms: float = 0.0
    generated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @classmethod
    def succeeded(
        cls,
        provider: str,
        model: str,
        image: ImageData,
        generation_time_ms: float,
    ) -> "GenerationResult":
        return cls(
            success=True,
            provider=provider,
            model=model,
            images=(image,),
            generation_time_ms=generation_time_ms,
        )

    @classmethod
    def failed(
        cls,
        provider: str,
        model: str,
        error: str,
        category: ErrorCategory,
        generation_time_ms: float,
    ) -> "GenerationResult":
        return cls(
            success=False,
            provider=provider,
            model=model,
            error=error,
            error_category=category,
            generation_time_ms=generation_time_ms,
        )


# =============================================================================
# Failure Classification
# =============================================================================

_RATE_LIMIT_MARKERS = ("rate limit", "rate_limit", "too many requests", "quota", "resource_exhausted", "429")
_UNAUTHORIZED_MARKERS = (
    "unauthorized",
    "unauthenticated",
    "authentication",
    "api key not valid",
    "invalid api key",
    "permission_denied",
    "401",
)


def classify_failure(status_code: int | None, message: str) -> ErrorCategory:
    """
    Map an upstream status code and error text to an ErrorCategory.

    Pure and deterministic: the same (status_code, message) always yields
    the same category. Rate limiting is checked before authorization.
    """
    text = (message or "").lower()
    if status_code == 429 or any(marker in text for marker in _RATE_LIMIT_MARKERS):
        return ErrorCategory.RATE_LIMITED
    if status_code in (401, 403) or any(marker in text for marker in _UNAUTHORIZED_MARKERS):
        return ErrorCategory.UNAUTHORIZED
    return ErrorCategory.GENERIC


def extract_status_code(exc: BaseException) -> int | None:
    """Read an HTTP status from the attribute names the provider SDKs use."""
    for attr in ("status_code", "code", "status"):
        value = getattr(exc, attr, None)
        if isinstance(value, int) and not isinstance(value, bool):
            return value
    return None


# =============================================================================
# Provider Interface
# =============================================================================

class ImageProviderInterface(ABC):
    """
    Abstract interface for image generation providers.

    All implementations must provide:
    - provider_id / default_model class attributes
    - Credential shape validation
    - The raw image generation call (generate_images)

    Everything else (timeout, timing, failure conversion) lives in the
    concrete generate() below. Instances hold only their own config plus the
    SDK client bound by the registry, which builds one client per credential
    and shares it between the fresh instances it creates per selection.
    """

    provider_id: ClassVar[str]
    default_model: ClassVar[str]
    credential_env: ClassVar[str] = ""

    # Appended to the prompt when a template image is supplied
    template_instruction: ClassVar[str] = (
        "Use image 1 as the subject and follow the structural layout of image 2."
    )

    rate_limit_message: ClassVar[str] = "Rate limit exceeded."
    no_image_message: ClassVar[str] = "No image data in provider response"

    def __init__(self, config: ProviderConfig, client: Any = None) -> None:
        self._config = config
        self._client = client

    @property
    def config(self) -> ProviderConfig:
        return self._config

    @classmethod
    def create_client(cls, credential: str) -> Any:
        """
        Build the SDK client for one credential.

        Called once per credential by the registry, which owns the client
        and closes it through close_client() at shutdown.
        """
        return None

    @classmethod
    async def close_client(cls, client: Any) -> None:
        """Release the connection pool held by a client from create_client()."""

    def bind_client(self, client: Any) -> None:
        self._client = client

    @property
    def client(self) -> Any:
        if self._client is None:
            raise ConfigurationError(f"No SDK client bound to provider '{self.provider_id}'")
        return self._client

    def get_provider_name(self) -> str:
        """Get the provider name (e.g., 'gemini', 'flux')."""
        return self.provider_id

    def get_model_name(self) -> str:
        """Get the model identifier, honoring the per-selection override."""
        return self._config.model_id or self.default_model

    @abstractmethod
    def validate_config(self) -> bool:
        """Check the credential shape. Must return False rather than raise."""

    @abstractmethod
    async def generate_images(self, request: GenerationRequest) -> list[ImageData]:
        """
        Perform the provider call and return the produced images.

        May raise; generate() converts any exception into a failed result.
        """

    def build_prompt(self, request: GenerationRequest) -> str:
        """Augment the prompt with the template instruction when needed."""
        if request.has_template:
            return f"{request.prompt.rstrip().rstrip('.')}. {self.template_instruction}"
        return request.prompt

    def classify_error(self, exc: Exception) -> tuple[ErrorCategory, str]:
        """
        Turn an exception raised by generate_images into (category, message).

        Override to read SDK-specific error attributes.
        """
        if isinstance(exc, ProviderError):
            return exc.category, exc.message

        detail = str(exc) or type(exc).__name__
        category = classify_failure(extract_status_code(exc), detail)
        if category is ErrorCategory.RATE_LIMITED:
            return category, self.rate_limit_message
        if category is ErrorCategory.UNAUTHORIZED:
            env = self.credential_env or f"{self.provider_id.upper()}_API_KEY"
            return category, f"Invalid API key. Check {env}."
        return category, f"Generation failed: {truncate_text(detail, 500)}"

    async def generate(self, request: GenerationRequest) -> GenerationResult:
        """
        Generate one image. Never raises except on cancellation.

        Args:
            request: Shared normalized request

        Returns:
            GenerationResult with exactly one image on success
        """
        model = self.get_model_name()
        start = time.perf_counter()

        def elapsed_ms() -> float:
            return (time.perf_counter() - start) * 1000

        try:
            images = await asyncio.wait_for(
                self.generate_images(request),
                timeout=self._config.timeout_seconds,
            )
        except asyncio.TimeoutError:
            logger.warning(
                "Generation timed out | provider=%s | model=%s | timeout_s=%.1f",
                self.provider_id,
                model,
                self._config.timeout_seconds,
            )
            return GenerationResult.failed(
                self.provider_id,
                model,
                f"Generation failed: timed out after {self._config.timeout_seconds:g}s",
                ErrorCategory.GENERIC,
                elapsed_ms(),
            )
        except Exception as e:
            category, message = self.classify_error(e)
            logger.warning(
                "Generation failed | provider=%s | model=%s | category=%s | error=%s",
                self.provider_id,
                model,
                category.value,
                e,
            )
            return GenerationResult.failed(self.provider_id, model, message, category, elapsed_ms())

        if not images:
            logger.warning("No image returned | provider=%s | model=%s", self.provider_id, model)
            return GenerationResult.failed(
                self.provider_id,
                model,
                self.no_image_message,
                ErrorCategory.NO_IMAGE_RETURNED,
                elapsed_ms(),
            )

        if len(images) > 1:
            logger.debug("Provider %s returned %d images, keeping the first", self.provider_id, len(images))

        logger.info(
            "Generation complete | provider=%s | model=%s | bytes=%d | elapsed_ms=%.1f",
            self.provider_id,
            model,
            len(images[0].data),
            elapsed_ms(),
        )
        return GenerationResult.succeeded(self.provider_id, model, images[0], elapsed_ms())
