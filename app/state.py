"""
Application state management using provider-based architecture.

This module provides centralized state management: the provider registry
built once at startup and the orchestrator that fans requests out to it.
"""
from __future__ import annotations

from dataclasses import dataclass, field

from app.config import get_logger
from app.providers.image import ProviderRegistry, build_default_registry
from app.services.catalog import ALL_MODELS, ModelOption
from app.services.orchestrator import GenerationOrchestrator

logger = get_logger("state")


@dataclass
class AppState:
    """
    Central container for shared application resources.

    The provider mapping is read-only after construction, so the same state can
    serve concurrent invocations.
    """
    registry: ProviderRegistry
    orchestrator: GenerationOrchestrator
    catalog: tuple[ModelOption, ...] = field(default=ALL_MODELS)

    @classmethod
    async def create(cls, registry: ProviderRegistry | None = None) -> "AppState":
        """
        Create and initialize application state.

        Args:
            registry: Provider registry to use (the built-in one by default)

        Returns:
            Initialized AppState instance
        """
        registry = registry or build_default_registry()
        status = registry.credential_status()

        logger.info(
            "Providers: %s",
            " | ".join(f"{name}={'OK' if ok else 'UNCONFIGURED'}" for name, ok in status.items()),
        )
        if not any(status.values()):
            logger.warning("No provider has a usable credential; every generation will fail")

        return cls(
            registry=registry,
            orchestrator=GenerationOrchestrator(registry),
        )
