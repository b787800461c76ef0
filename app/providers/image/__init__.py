"""
Image Provider - Registry and factory for image generation providers.

Maps a provider id to its implementation, resolves the credential from
process-wide settings and validates it before handing out an instance.
SDK clients are built once per (provider, credential) and closed by
aclose() at shutdown.

The provider mapping is built once at startup and is read-only afterwards;
the registry is passed explicitly to the orchestrator rather than looked up
globally.
"""
from __future__ import annotations

from collections.abc import Callable, Mapping
from types import MappingProxyType
from typing import Any

from app.config import get_logger, settings
from app.exceptions import InvalidProviderConfigError, UnknownProviderError

from .flux_impl import FluxImageProvider
from .gemini_impl import GeminiImageProvider
from .interface import (
    GenerationRequest,
    GenerationResult,
    ImageData,
    ImageProviderInterface,
    ProviderConfig,
    classify_failure,
)
from .openai_impl import OpenAIImageProvider

logger = get_logger("providers.registry")

ProviderFactory = type[ImageProviderInterface]
CredentialLookup = Callable[[str], str | None]

DEFAULT_PROVIDERS: Mapping[str, ProviderFactory] = MappingProxyType({
    GeminiImageProvider.provider_id: GeminiImageProvider,
    FluxImageProvider.provider_id: FluxImageProvider,
    OpenAIImageProvider.provider_id: OpenAIImageProvider,
})


class ProviderRegistry:
    """
    Immutable provider id -> factory mapping with credential resolution.

    Every create_provider() call returns a new instance, so selections that
    share a provider id never share per-call state. Only the SDK client,
    which is safe for concurrent use, is shared between instances.
    """

    def __init__(
        self,
        providers: Mapping[str, ProviderFactory],
        credential_lookup: CredentialLookup | None = None,
        timeout_seconds: float | None = None,
    ) -> None:
        self._providers: Mapping[str, ProviderFactory] = MappingProxyType(
            {key.lower(): factory for key, factory in providers.items()}
        )
        self._credential_lookup = credential_lookup or settings.get_provider_credential
        self._timeout_seconds = timeout_seconds or settings.PROVIDER_TIMEOUT_SECONDS
        self._clients: dict[tuple[str, str], Any] = {}

    def resolve(self, provider_id: str) -> ProviderFactory:
        """
        Look up the factory for a provider id.

        Raises:
            UnknownProviderError: If nothing is registered under the id
        """
        factory = self._providers.get((provider_id or "").strip().lower())
        if factory is None:
            raise UnknownProviderError(provider_id)
        return factory

    def create_provider(self, provider_id: str, model_id: str | None = None) -> ImageProviderInterface:
        """
        Build a ready-to-use provider instance.

        Args:
            provider_id: Registered provider id
            model_id: Optional model override for this instance

        Raises:
            UnknownProviderError: Provider not registered
            InvalidProviderConfigError: Credential missing or malformed
        """
        factory = self.resolve(provider_id)
        key = provider_id.strip().lower()

        credential = self._credential_lookup(key)
        if not credential:
            raise InvalidProviderConfigError(
                key,
                message=f"API key not found for provider '{key}'. Check your .env file.",
            )

        provider = factory(
            ProviderConfig(
                provider_id=key,
                credential=credential,
                model_id=model_id or None,
                timeout_seconds=self._timeout_seconds,
            )
        )

        if not provider.validate_config():
            raise InvalidProviderConfigError(
                key,
                message=f"Invalid configuration for provider '{key}'",
            )

        provider.bind_client(self._shared_client(key, factory, credential))
        return provider

    def _shared_client(self, key: str, factory: ProviderFactory, credential: str) -> Any:
        cache_key = (key, credential)
        if cache_key not in self._clients:
            self._clients[cache_key] = factory.create_client(credential)
            logger.debug("SDK client created | provider=%s", key)
        return self._clients[cache_key]

    async def aclose(self) -> None:
        """Close every SDK client handed out so far."""
        clients, self._clients = self._clients, {}
        for (key, _), client in clients.items():
            if client is None:
                continue
            try:
                await self._providers[key].close_client(client)
            except Exception as e:
                logger.error("Error closing %s client: %s", key, e)

    def available_providers(self) -> list[str]:
        """Get list of registered provider ids."""
        return list(self._providers.keys())

    def credential_status(self) -> dict[str, bool]:
        """Report which providers currently have a usable credential."""
        status: dict[str, bool] = {}
        for key in self._providers:
            try:
                self.create_provider(key)
                status[key] = True
            except InvalidProviderConfigError:
                status[key] = False
        return status

    def __contains__(self, provider_id: object) -> bool:
        return isinstance(provider_id, str) and provider_id.strip().lower() in self._providers


def build_default_registry() -> ProviderRegistry:
    """Registry with every built-in provider and settings-based credentials."""
    registry = ProviderRegistry(DEFAULT_PROVIDERS)
    logger.info("Image providers registered: %s", ", ".join(registry.available_providers()))
    return registry


__all__ = [
    "DEFAULT_PROVIDERS",
    "FluxImageProvider",
    "GeminiImageProvider",
    "GenerationRequest",
    "GenerationResult",
    "ImageData",
    "ImageProviderInterface",
    "OpenAIImageProvider",
    "ProviderConfig",
    "ProviderFactory",
    "ProviderRegistry",
    "build_default_registry",
    "classify_failure",
]
