"""
Custom exceptions for the character sheet generator.

This module provides a consistent exception hierarchy for error handling
across the providers, the orchestrator and the HTTP layer.

Exception Hierarchy:
    CharacterSheetException (base)
    ├── ConfigurationError (500)
    ├── ValidationError (400)
    ├── UnknownProviderError (400)
    ├── InvalidProviderConfigError (500)
    ├── ProviderError (502)
    │   └── ImageFetchError (502)
    └── AllSelectionsFailedError (502)

Provider-call failures never leave a provider as exceptions; they are turned
into failed results tagged with an ErrorCategory. UnknownProviderError and
InvalidProviderConfigError are raised by the registry and become the failed
outcome of a single selection. AllSelectionsFailedError is attached to an
invocation once every selection has failed.

Usage:
    from app.exceptions import ValidationError

    raise ValidationError("Prompt cannot be empty")
"""
from __future__ import annotations

from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """Coarse failure categories carried by failed outcomes."""
    RATE_LIMITED = "rate_limited"
    UNAUTHORIZED = "unauthorized"
    NO_IMAGE_RETURNED = "no_image_returned"
    GENERIC = "generic"
    UNKNOWN_PROVIDER = "unknown_provider"
    INVALID_PROVIDER_CONFIG = "invalid_provider_config"


class CharacterSheetException(Exception):
    """
    Base exception for all generator errors.

    Attributes:
        message: Human-readable error message
        status_code: HTTP status code for API response
        details: Additional error details (optional)
        error_code: Machine-readable error code (optional)
    """

    default_message: str = "An error occurred"
    default_status_code: int = 500

    def __init__(
        self,
        message: str | None = None,
        status_code: int | None = None,
        details: str | None = None,
        error_code: str | None = None,
    ) -> None:
        self.message = message or self.default_message
        self.status_code = status_code or self.default_status_code
        self.details = details
        self.error_code = error_code or self.__class__.__name__.upper()
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        """
        Convert exception to dictionary for API response.

        Returns:
            Dictionary with error details
        """
        result = {
            "error": self.error_code,
            "message": self.message,
        }
        if self.details:
            result["details"] = self.details
        return result

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(message={self.message!r}, status_code={self.status_code})"


# =============================================================================
# Configuration Errors (500)
# =============================================================================

class ConfigurationError(CharacterSheetException):
    """Raised when application configuration is invalid or missing."""

    default_message = "Configuration error"
    default_status_code = 500


# =============================================================================
# Client Errors (4xx)
# =============================================================================

class ValidationError(CharacterSheetException):
    """
    Raised when caller-supplied data is malformed or missing.

    Examples:
        - Empty prompt
        - Image that is not valid base64
        - Duplicate selection ids

    The invocation never starts when this is raised.
    """

    default_message = "Validation error"
    default_status_code = 400


# =============================================================================
# Provider Resolution Errors
# =============================================================================

class ProviderResolutionError(CharacterSheetException):
    """Base for registry failures that fail a single selection."""

    category: ErrorCategory = ErrorCategory.GENERIC

    def __init__(self, provider_id: str, message: str | None = None, details: str | None = None) -> None:
        self.provider_id = provider_id
        super().__init__(message=message, details=details)


class UnknownProviderError(ProviderResolutionError):
    """Raised when a provider id has no registered implementation."""

    default_message = "Provider not implemented"
    default_status_code = 400
    category = ErrorCategory.UNKNOWN_PROVIDER

    def __init__(self, provider_id: str) -> None:
        super().__init__(provider_id, message=f"Provider '{provider_id}' not implemented")


class InvalidProviderConfigError(ProviderResolutionError):
    """
    Raised when a provider credential is absent or malformed.

    Examples:
        - GEMINI_API_KEY not set
        - Replicate token without the 'r8_' prefix
    """

    default_message = "Invalid provider configuration"
    default_status_code = 500
    category = ErrorCategory.INVALID_PROVIDER_CONFIG


# =============================================================================
# Provider Call Errors (502)
# =============================================================================

class ProviderError(CharacterSheetException):
    """
    Raised inside a provider implementation to signal a categorized failure.

    The provider contract converts it into a failed GenerationResult before
    it can reach the orchestrator.
    """

    default_message = "Image provider error"
    default_status_code = 502

    def __init__(
        self,
        message: str | None = None,
        category: ErrorCategory = ErrorCategory.GENERIC,
        details: str | None = None,
    ) -> None:
        self.category = category
        super().__init__(message=message, details=details)


class ImageFetchError(ProviderError):
    """Raised when a generated image URL cannot be downloaded."""

    default_message = "Failed to fetch generated image"


# =============================================================================
# Invocation Errors (502)
# =============================================================================

class AllSelectionsFailedError(CharacterSheetException):
    """
    Invocation-level signal: every selection settled as a failure.

    Distinct from the per-selection errors, which stay on their outcomes.
    """

    default_message = "All models failed to generate. Please try again."
    default_status_code = 502

    def __init__(self, failed_count: int, message: str | None = None) -> None:
        self.failed_count = failed_count
        super().__init__(message=message, details=f"{failed_count} selection(s) failed")
