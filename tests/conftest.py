"""
Test configuration and fixtures for pytest.

This module provides shared fixtures used across all tests:
- Environment isolation (no real provider keys, relaxed rate limit)
- Scripted providers that never touch the network
- Registry, request and TestClient factories
"""

import os

# Must run before app.config is imported anywhere
os.environ["RATE_LIMIT"] = "1000/minute"
for _name in ("GEMINI_API_KEY", "FLUX_API_KEY", "REPLICATE_API_TOKEN", "OPENAI_API_KEY"):
    os.environ[_name] = ""

import asyncio
from typing import Generator

import pytest
from fastapi.testclient import TestClient

from app.dependencies import get_app_state
from app.main import app
from app.providers.image import ProviderRegistry
from app.providers.image.interface import (
    GenerationRequest,
    ImageData,
    ImageProviderInterface,
)
from app.services.orchestrator import GenerationOrchestrator, ProviderSelection
from app.state import AppState


PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 16
RESULT_BYTES = b"generated-sheet"
TEST_KEY = "test-key"


# ---------------------------------------------------------------------------
# SCRIPTED PROVIDERS
# ---------------------------------------------------------------------------

class ScriptedProvider(ImageProviderInterface):
    """
    Provider whose behaviour is fixed by class attributes.

    Use scripted() to derive a configured subclass per test.
    """

    provider_id = "scripted"
    default_model = "scripted-v1"

    images: list = [ImageData(RESULT_BYTES, "image/png")]
    error: Exception | None = None
    delay: float = 0.0
    gate: asyncio.Event | None = None
    calls: list = []

    def validate_config(self) -> bool:
        return self.config.credential.startswith("test-")

    async def generate_images(self, request: GenerationRequest) -> list[ImageData]:
        type(self).calls.append((self.get_model_name(), request))
        if self.gate is not None:
            await self.gate.wait()
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return list(self.images)


def scripted(provider_id: str, **attrs) -> type[ScriptedProvider]:
    """Create a ScriptedProvider subclass registered under ``provider_id``."""
    attrs.setdefault("calls", [])
    return type(
        f"Scripted_{provider_id}",
        (ScriptedProvider,),
        {"provider_id": provider_id, **attrs},
    )


class ContractBreakingProvider(ImageProviderInterface):
    """Raises out of generate() instead of returning a failed result."""

    provider_id = "broken"
    default_model = "broken-v1"

    def validate_config(self) -> bool:
        return True

    async def generate_images(self, request: GenerationRequest) -> list[ImageData]:
        return []

    async def generate(self, request: GenerationRequest):
        raise RuntimeError("provider exploded")


def make_registry(*providers, credentials: dict | None = None) -> ProviderRegistry:
    """Registry over the given provider classes; every one gets TEST_KEY by default."""
    if credentials is None:
        credentials = {p.provider_id: TEST_KEY for p in providers}
    return ProviderRegistry(
        {p.provider_id: p for p in providers},
        credential_lookup=credentials.get,
        timeout_seconds=5,
    )


def select(selection_id: str, provider_id: str, model_id: str = "") -> ProviderSelection:
    return ProviderSelection(selection_id=selection_id, provider_id=provider_id, model_id=model_id)


# ---------------------------------------------------------------------------
# FIXTURES
# ---------------------------------------------------------------------------

@pytest.fixture
def primary_image() -> ImageData:
    return ImageData(PNG_BYTES, "image/png")


@pytest.fixture
def generation_request(primary_image: ImageData) -> GenerationRequest:
    return GenerationRequest(prompt="Fantasy ranger character sheet", primary_image=primary_image)


@pytest.fixture
def template_request(primary_image: ImageData) -> GenerationRequest:
    return GenerationRequest(
        prompt="Fantasy ranger character sheet",
        primary_image=primary_image,
        template_image=ImageData(b"template-bytes", "image/jpeg"),
    )


@pytest.fixture
def client_factory() -> Generator:
    """
    Build a TestClient backed by a hand-made registry.

    Overrides get_app_state, so the real lifespan and providers are never used.
    """
    def factory(registry: ProviderRegistry) -> TestClient:
        state = AppState(registry=registry, orchestrator=GenerationOrchestrator(registry))
        app.dependency_overrides[get_app_state] = lambda: state
        return TestClient(app)

    yield factory
    app.dependency_overrides.clear()
