"""Tests for the model catalog."""

from app.services.catalog import (
    ALL_MODELS,
    DEFAULT_MODELS,
    default_selections,
    find_option,
    get_model_by_id,
    get_models_by_provider,
)


class TestCatalog:
    def test_default_models(self):
        assert [m.id for m in DEFAULT_MODELS] == ["gemini-flash", "gemini-pro", "flux"]
        assert get_model_by_id("gemini-pro").preview is True
        assert get_model_by_id("gemini-pro").label == "Gemini Pro (Preview)"

    def test_all_models_adds_openai(self):
        assert len(ALL_MODELS) == len(DEFAULT_MODELS) + 1
        assert get_model_by_id("gpt-image").provider == "openai"

    def test_lookups(self):
        assert get_model_by_id("nope") is None
        assert [m.id for m in get_models_by_provider("gemini")] == ["gemini-flash", "gemini-pro"]
        assert find_option("gemini", "gemini-3-pro-image-preview").id == "gemini-pro"
        assert find_option("gemini", None).id == "gemini-flash"
        assert find_option("flux", "unknown-model") is None

    def test_default_selections(self):
        selections = default_selections()

        assert [s.selection_id for s in selections] == ["gemini-flash", "gemini-pro", "flux"]
        assert selections[2].provider_id == "flux"
        assert selections[2].model_id == "black-forest-labs/flux-kontext-pro"
        assert selections[0].label == "Gemini Flash"
