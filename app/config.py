"""
Centralized configuration using Pydantic BaseSettings.

This module holds every tunable of the character sheet generator:
- Pydantic BaseSettings for type-safe environment variable loading
- Provider credentials and default models
- Upload limits shared by the HTTP layer
- Logging setup with secret redaction

Configuration Philosophy:
    - .env: Only sensitive data (provider API keys)
    - config.py: All application settings with sensible defaults

    Missing provider keys are NOT a startup error. A provider without a
    credential fails only the selections that request it.

Usage:
    from app.config import settings, get_logger

    print(settings.PROVIDER_TIMEOUT_SECONDS)
"""
from __future__ import annotations

import logging
import re
from functools import cached_property, lru_cache
from typing import ClassVar, Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings with environment variable support.

    Configuration Sources:
        1. Environment variables
        2. .env file (if present)
        3. Default values (defined below)
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        validate_default=True,
    )

    # =========================================================================
    # Server Configuration
    # =========================================================================

    HOST: str = Field(
        default="0.0.0.0",
        description="Server host (0.0.0.0 for external access, 127.0.0.1 for local only)",
    )
    PORT: int = Field(
        default=8080,
        ge=1,
        le=65535,
        description="Server port number",
    )
    DEBUG: bool = Field(
        default=False,
        description="Debug mode - enables auto-reload (NEVER use in production)",
    )
    LOG_LEVEL: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Logging verbosity level",
    )

    # =========================================================================
    # Provider Credentials
    # =========================================================================
    # Looked up as <PROVIDER_ID_UPPER>_API_KEY. Flux also accepts the
    # Replicate token name used by the Replicate SDK.

    DEFAULT_PROVIDER: str = Field(
        default="gemini",
        description="Provider used by the single-provider endpoint when none is requested",
    )
    GEMINI_API_KEY: str | None = Field(
        default=None,
        description="Google Gemini API key (starts with 'AIza')",
    )
    FLUX_API_KEY: str | None = Field(
        default=None,
        description="Replicate API token used for Flux (starts with 'r8_')",
    )
    REPLICATE_API_TOKEN: str | None = Field(
        default=None,
        description="Fallback Replicate token for Flux",
    )
    OPENAI_API_KEY: str | None = Field(
        default=None,
        description="OpenAI API key (starts with 'sk-')",
    )

    # =========================================================================
    # Provider Models
    # =========================================================================
    # Resolution and aspect ratio are passed through as-is; they are not
    # unified across providers.

    GEMINI_DEFAULT_MODEL: str = Field(
        default="gemini-2.5-flash-image",
        description="Gemini image model used when a selection has no model override",
    )
    GEMINI_HIGH_RES_MODELS_CSV: str = Field(
        default="gemini-3-pro-image-preview",
        description="Gemini models that need explicit image modality/size config",
    )
    GEMINI_IMAGE_ASPECT_RATIO: str = Field(
        default="1:1",
        description="Aspect ratio passed to high-res Gemini models",
    )
    GEMINI_IMAGE_SIZE: str = Field(
        default="2K",
        description="Image size passed to high-res Gemini models",
    )
    FLUX_DEFAULT_MODEL: str = Field(
        default="black-forest-labs/flux-kontext-pro",
        description="Replicate model reference for Flux image-to-image",
    )
    FLUX_OUTPUT_FORMAT: Literal["png", "jpg", "webp"] = Field(
        default="png",
        description="Output format requested from Replicate",
    )
    OPENAI_DEFAULT_MODEL: str = Field(
        default="gpt-image-1",
        description="OpenAI image edit model",
    )
    OPENAI_IMAGE_SIZE: str = Field(
        default="1024x1024",
        description="Size passed to the OpenAI image edit endpoint",
    )
    OPENAI_IMAGE_QUALITY: Literal["low", "medium", "high", "auto"] = Field(
        default="medium",
        description="Quality passed to the OpenAI image edit endpoint",
    )

    # =========================================================================
    # Timeouts
    # =========================================================================

    PROVIDER_TIMEOUT_SECONDS: float = Field(
        default=120.0,
        gt=0,
        description="Upper bound for a single provider generation call",
    )
    IMAGE_FETCH_TIMEOUT_SECONDS: float = Field(
        default=60.0,
        gt=0,
        description="Upper bound for downloading a generated image from a provider URL",
    )

    # =========================================================================
    # Request Limits
    # =========================================================================

    MAX_IMAGE_SIZE_BYTES: int = Field(
        default=15 * 1024 * 1024,
        ge=1,
        description="Maximum decoded size of one uploaded image (15MB)",
    )
    ALLOWED_IMAGE_MIME_TYPES_CSV: str = Field(
        default="image/jpeg,image/png,image/webp",
        description="Comma-separated accepted upload MIME types",
    )
    MAX_PROMPT_LENGTH: int = Field(
        default=2000,
        ge=1,
        description="Maximum prompt length in characters",
    )
    MAX_SELECTIONS: int = Field(
        default=8,
        ge=1,
        le=32,
        description="Maximum provider/model selections per invocation",
    )
    MAX_REQUEST_SIZE: int = Field(
        default=48 * 1024 * 1024,
        ge=1,
        description="Maximum HTTP request body size in bytes (two base64 images)",
    )

    # =========================================================================
    # Rate Limiting / CORS
    # =========================================================================

    RATE_LIMIT: str = Field(
        default="30/minute",
        pattern=r"^\d+/(second|minute|hour|day)$",
        description="Rate limit for generation endpoints (format: 'count/period')",
    )
    CORS_ORIGINS: str = Field(
        default="*",
        description="Comma-separated allowed origins ('*' for all, restrict in production)",
    )

    # Credential env names that differ from <ID>_API_KEY
    CREDENTIAL_FALLBACKS: ClassVar[dict[str, tuple[str, ...]]] = {
        "flux": ("REPLICATE_API_TOKEN",),
    }

    # =========================================================================
    # Validators
    # =========================================================================

    @field_validator("LOG_LEVEL", mode="before")
    @classmethod
    def uppercase_log_level(cls, v: str) -> str:
        """Ensure LOG_LEVEL is uppercase."""
        return v.upper() if isinstance(v, str) else v

    @field_validator("DEFAULT_PROVIDER", mode="before")
    @classmethod
    def lowercase_provider(cls, v: str) -> str:
        """Ensure provider names are lowercase."""
        return v.strip().lower() if isinstance(v, str) else v

    # =========================================================================
    # Computed Properties
    # =========================================================================

    @cached_property
    def GEMINI_HIGH_RES_MODELS(self) -> frozenset[str]:
        """Gemini models that receive the explicit image config."""
        return frozenset(
            m.strip() for m in self.GEMINI_HIGH_RES_MODELS_CSV.split(",") if m.strip()
        )

    @cached_property
    def ALLOWED_IMAGE_MIME_TYPES(self) -> frozenset[str]:
        """Accepted upload MIME types."""
        return frozenset(
            m.strip().lower()
            for m in self.ALLOWED_IMAGE_MIME_TYPES_CSV.split(",")
            if m.strip()
        )

    @cached_property
    def CORS_ORIGINS_LIST(self) -> list[str]:
        """Get list of CORS origins."""
        return [o.strip() for o in self.CORS_ORIGINS.split(",") if o.strip()]

    def get_provider_credential(self, provider_id: str) -> str | None:
        """
        Resolve the credential for a provider id.

        Reads ``<PROVIDER_ID_UPPER>_API_KEY`` first, then any fallback names
        registered in CREDENTIAL_FALLBACKS. Blank values count as missing.
        """
        names = (f"{provider_id.upper()}_API_KEY",) + self.CREDENTIAL_FALLBACKS.get(
            provider_id.lower(), ()
        )
        for name in names:
            value = getattr(self, name, None)
            if isinstance(value, str) and value.strip():
                return value.strip()
        return None


# =============================================================================
# Settings Factory with Caching
# =============================================================================

@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses lru_cache for singleton behavior while allowing
    cache invalidation in tests.
    """
    return Settings()


# Convenience alias for direct access
settings = get_settings()


# =============================================================================
# Logging Configuration
# =============================================================================

class SanitizingFormatter(logging.Formatter):
    """
    Logging formatter that redacts sensitive information.

    Automatically redacts:
    - Bearer tokens
    - api_key / token pairs
    - Raw Gemini, Replicate and OpenAI keys
    """

    SENSITIVE_PATTERNS: ClassVar[list[tuple[re.Pattern[str], str]]] = [
        (re.compile(r'(Bearer\s+)[^\s]+', re.I), r'\1[REDACTED]'),
        (re.compile(r'(api[_-]?key["\']?\s*[:=]\s*["\']?)[^"\'\s]+', re.I), r'\1[REDACTED]'),
        (re.compile(r'(token["\']?\s*[:=]\s*["\']?)[^"\'\s]+', re.I), r'\1[REDACTED]'),
        (re.compile(r'AIza[0-9A-Za-z_\-]{10,}'), '[REDACTED]'),
        (re.compile(r'r8_[0-9A-Za-z]{10,}'), '[REDACTED]'),
        (re.compile(r'sk-[0-9A-Za-z_\-]{10,}'), '[REDACTED]'),
    ]

    def format(self, record: logging.LogRecord) -> str:
        """Format log record with sensitive data redaction."""
        message = super().format(record)
        for pattern, replacement in self.SENSITIVE_PATTERNS:
            message = pattern.sub(replacement, message)
        return message


def configure_logging(log_level: str = "INFO") -> None:
    """
    Configure application logging.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """
    log_format = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"

    handler = logging.StreamHandler()
    handler.setFormatter(SanitizingFormatter(log_format))

    logging.basicConfig(
        level=getattr(logging, log_level, logging.INFO),
        handlers=[handler],
        force=True,
    )

    # Suppress noisy third-party loggers
    for logger_name in ("httpx", "httpcore", "google", "urllib3", "aiohttp", "replicate", "openai"):
        logging.getLogger(logger_name).setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """
    Get a configured logger instance.

    Args:
        name: Logger name (typically module name)

    Returns:
        Configured logging.Logger instance
    """
    return logging.getLogger(name)


# Initialize logging on module load
configure_logging(settings.LOG_LEVEL)
