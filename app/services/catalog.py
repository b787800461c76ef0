"""
Model catalog.

The (provider, model) options offered to users, with labels. DEFAULT_MODELS
is what a client gets when it does not pick selections itself; ALL_MODELS
also lists providers that are opt-in.
"""
from __future__ import annotations

from dataclasses import dataclass

from app.config import settings
from app.services.orchestrator import ProviderSelection


@dataclass(frozen=True)
class ModelOption:
    id: str
    label: str
    provider: str
    model: str
    preview: bool = False

    def to_selection(self, selection_id: str | None = None) -> ProviderSelection:
        return ProviderSelection(
            selection_id=selection_id or self.id,
            provider_id=self.provider,
            model_id=self.model,
            display_label=self.label,
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "label": self.label,
            "provider": self.provider,
            "model": self.model,
            "preview": self.preview,
        }


DEFAULT_MODELS: tuple[ModelOption, ...] = (
    ModelOption(
        id="gemini-flash",
        label="Gemini Flash",
        provider="gemini",
        model=settings.GEMINI_DEFAULT_MODEL,
    ),
    ModelOption(
        id="gemini-pro",
        label="Gemini Pro (Preview)",
        provider="gemini",
        model="gemini-3-pro-image-preview",
        preview=True,
    ),
    ModelOption(
        id="flux",
        label="Flux Kontext",
        provider="flux",
        model=settings.FLUX_DEFAULT_MODEL,
    ),
)

ALL_MODELS: tuple[ModelOption, ...] = DEFAULT_MODELS + (
    ModelOption(
        id="gpt-image",
        label="GPT Image",
        provider="openai",
        model=settings.OPENAI_DEFAULT_MODEL,
    ),
)


def get_model_by_id(option_id: str) -> ModelOption | None:
    return next((m for m in ALL_MODELS if m.id == option_id), None)


def get_models_by_provider(provider: str) -> list[ModelOption]:
    return [m for m in ALL_MODELS if m.provider == provider]


def find_option(provider: str, model: str | None) -> ModelOption | None:
    """Match a (provider, model) pair; a missing model matches the provider's first option."""
    options = get_models_by_provider(provider)
    if not model:
        return options[0] if options else None
    return next((option for option in options if option.model == model), None)


def default_selections() -> list[ProviderSelection]:
    """Selections used when a request does not choose its own."""
    return [option.to_selection() for option in DEFAULT_MODELS]
