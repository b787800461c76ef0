"""
Tests for image providers.

SDK clients are replaced with mocks so tests are:
- Fast (no network calls)
- Reliable (no API flakiness)
- Free (no generation costs)
"""

import asyncio
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from app.exceptions import ErrorCategory, ImageFetchError, ValidationError
from app.providers.image import (
    FluxImageProvider,
    GeminiImageProvider,
    OpenAIImageProvider,
    ProviderConfig,
    classify_failure,
)
from app.providers.image.interface import GenerationRequest, ImageData, extract_status_code

from conftest import scripted


def gemini_response(*parts):
    return SimpleNamespace(candidates=[SimpleNamespace(content=SimpleNamespace(parts=list(parts)))])


def inline_part(data, mime_type="image/png"):
    return SimpleNamespace(inline_data=SimpleNamespace(data=data, mime_type=mime_type))


class StatusError(Exception):
    def __init__(self, message, status_code):
        super().__init__(message)
        self.status_code = status_code


class TestClassifyFailure:
    """Failure classification is pure and ordered."""

    @pytest.mark.parametrize(
        "status_code, message, expected",
        [
            (429, "", ErrorCategory.RATE_LIMITED),
            (None, "RESOURCE_EXHAUSTED: quota exceeded", ErrorCategory.RATE_LIMITED),
            (None, "Too Many Requests", ErrorCategory.RATE_LIMITED),
            (401, "", ErrorCategory.UNAUTHORIZED),
            (403, "forbidden", ErrorCategory.UNAUTHORIZED),
            (None, "API key not valid. Please pass a valid API key.", ErrorCategory.UNAUTHORIZED),
            (500, "internal error", ErrorCategory.GENERIC),
            (None, "", ErrorCategory.GENERIC),
        ],
    )
    def test_categories(self, status_code, message, expected):
        assert classify_failure(status_code, message) is expected

    def test_rate_limit_checked_before_authorization(self):
        assert classify_failure(401, "rate limit reached") is ErrorCategory.RATE_LIMITED

    def test_deterministic(self):
        results = {classify_failure(None, "401 Unauthorized") for _ in range(10)}
        assert results == {ErrorCategory.UNAUTHORIZED}

    def test_extract_status_code(self):
        assert extract_status_code(StatusError("x", 429)) == 429
        assert extract_status_code(SimpleNamespace(code=401)) == 401
        assert extract_status_code(SimpleNamespace(status="429")) is None
        assert extract_status_code(ValueError("x")) is None


class TestProviderContract:
    """The shared generate() template never raises."""

    @pytest.mark.asyncio
    async def test_success_keeps_first_image_only(self, generation_request):
        provider_cls = scripted(
            "multi",
            images=[ImageData(b"one", "image/png"), ImageData(b"two", "image/png")],
        )
        provider = provider_cls(ProviderConfig("multi", "test-key"))

        result = await provider.generate(generation_request)

        assert result.success is True
        assert result.images == (ImageData(b"one", "image/png"),)
        assert result.provider == "multi"
        assert result.model == "scripted-v1"
        assert result.generation_time_ms >= 0

    @pytest.mark.asyncio
    async def test_timeout_becomes_generic_failure(self, generation_request):
        provider_cls = scripted("slow", gate=asyncio.Event())
        provider = provider_cls(ProviderConfig("slow", "test-key", timeout_seconds=0.01))

        result = await provider.generate(generation_request)

        assert result.success is False
        assert result.error_category is ErrorCategory.GENERIC
        assert "timed out" in result.error

    @pytest.mark.asyncio
    async def test_unauthorized_message_names_env_var(self, generation_request):
        provider = OpenAIImageProvider(ProviderConfig("openai", "sk-test-key"))
        provider._client = MagicMock()
        provider._client.images.edit = AsyncMock(side_effect=StatusError("Incorrect key", 401))

        result = await provider.generate(generation_request)

        assert result.error_category is ErrorCategory.UNAUTHORIZED
        assert result.error == "Invalid API key. Check OPENAI_API_KEY."

    def test_prompt_unchanged_without_template(self, generation_request):
        provider = GeminiImageProvider(ProviderConfig("gemini", "AIza-test"))
        assert provider.build_prompt(generation_request) == generation_request.prompt

    @pytest.mark.parametrize("provider_cls", [GeminiImageProvider, FluxImageProvider, OpenAIImageProvider])
    def test_template_prompt_names_both_images(self, provider_cls, template_request):
        provider = provider_cls(ProviderConfig(provider_cls.provider_id, "key"))

        prompt = provider.build_prompt(template_request).lower()

        assert prompt.startswith(template_request.prompt.lower())
        assert "image 1" in prompt
        assert "image 2" in prompt

    def test_config_repr_masks_credential(self):
        config = ProviderConfig("gemini", "AIzaSySecretValue1234")
        assert "SecretValue" not in repr(config)


class TestValidateConfig:
    """Credential shape checks never raise."""

    @pytest.mark.parametrize(
        "provider_cls, good, bad",
        [
            (GeminiImageProvider, "AIzaSyExample", "sk-wrong"),
            (FluxImageProvider, "r8_example", "AIzaSyWrong"),
            (OpenAIImageProvider, "sk-example", "r8_wrong"),
        ],
    )
    def test_prefixes(self, provider_cls, good, bad):
        assert provider_cls(ProviderConfig(provider_cls.provider_id, good)).validate_config() is True
        assert provider_cls(ProviderConfig(provider_cls.provider_id, bad)).validate_config() is False


class TestGeminiProvider:
    """Gemini provider with a mocked genai client."""

    def _provider(self, model_id=None):
        provider = GeminiImageProvider(ProviderConfig("gemini", "AIzaSyExample", model_id=model_id))
        provider._client = MagicMock()
        provider._client.aio.models.generate_content = AsyncMock()
        return provider

    @pytest.mark.asyncio
    async def test_returns_inline_image(self, generation_request):
        provider = self._provider()
        provider._client.aio.models.generate_content.return_value = gemini_response(
            SimpleNamespace(inline_data=None),
            inline_part(b"sheet-bytes", "image/jpeg"),
        )

        result = await provider.generate(generation_request)

        assert result.success is True
        assert result.images[0] == ImageData(b"sheet-bytes", "image/jpeg")
        assert result.model == "gemini-2.5-flash-image"

    @pytest.mark.asyncio
    async def test_base64_inline_data_is_decoded(self, generation_request):
        provider = self._provider()
        provider._client.aio.models.generate_content.return_value = gemini_response(
            inline_part("c2hlZXQ=")
        )

        result = await provider.generate(generation_request)

        assert result.images[0].data == b"sheet"

    @pytest.mark.asyncio
    async def test_sends_prompt_avatar_and_template(self, template_request):
        provider = self._provider()
        provider._client.aio.models.generate_content.return_value = gemini_response(inline_part(b"x"))

        await provider.generate(template_request)

        kwargs = provider._client.aio.models.generate_content.call_args.kwargs
        parts = kwargs["contents"][0].parts
        assert len(parts) == 3
        assert "image 2" in parts[0].text.lower()
        assert parts[1].inline_data.data == template_request.primary_image.data
        assert parts[2].inline_data.data == b"template-bytes"
        assert kwargs["config"] is None

    @pytest.mark.asyncio
    async def test_high_res_model_gets_image_config(self, generation_request):
        provider = self._provider(model_id="gemini-3-pro-image-preview")
        provider._client.aio.models.generate_content.return_value = gemini_response(inline_part(b"x"))

        await provider.generate(generation_request)

        config = provider._client.aio.models.generate_content.call_args.kwargs["config"]
        assert config.image_config.image_size == "2K"
        assert config.image_config.aspect_ratio == "1:1"

    @pytest.mark.asyncio
    async def test_no_image_in_response(self, generation_request):
        provider = self._provider()
        provider._client.aio.models.generate_content.return_value = SimpleNamespace(candidates=[])

        result = await provider.generate(generation_request)

        assert result.error_category is ErrorCategory.NO_IMAGE_RETURNED
        assert result.error == "No image data in Gemini response"

    @pytest.mark.asyncio
    async def test_rate_limit_message(self, generation_request):
        provider = self._provider()
        provider._client.aio.models.generate_content.side_effect = Exception(
            "429 RESOURCE_EXHAUSTED"
        )

        result = await provider.generate(generation_request)

        assert result.error_category is ErrorCategory.RATE_LIMITED
        assert result.error == "Rate limit exceeded. Free tier: 1,500 requests/day."


class TestFluxProvider:
    """Flux provider with a mocked Replicate client."""

    def _provider(self, output):
        provider = FluxImageProvider(ProviderConfig("flux", "r8_example"))
        provider._client = MagicMock()
        provider._client.async_run = AsyncMock(return_value=output)
        return provider

    @pytest.mark.asyncio
    async def test_avatar_sent_as_data_uri(self, generation_request):
        provider = self._provider(["data:image/png;base64,c2hlZXQ="])

        result = await provider.generate(generation_request)

        args = provider._client.async_run.call_args
        assert args.args[0] == "black-forest-labs/flux-kontext-pro"
        assert args.kwargs["input"]["input_image"].startswith("data:image/png;base64,")
        assert args.kwargs["input"]["output_format"] == "png"
        assert result.images[0].data == b"sheet"

    @pytest.mark.asyncio
    async def test_url_output_is_downloaded(self, generation_request):
        provider = self._provider(SimpleNamespace(url="https://replicate.delivery/out.png"))
        provider._fetch_image = AsyncMock(return_value=ImageData(b"downloaded", "image/png"))

        result = await provider.generate(generation_request)

        provider._fetch_image.assert_awaited_once_with("https://replicate.delivery/out.png")
        assert result.images[0].data == b"downloaded"

    @pytest.mark.asyncio
    async def test_fetch_failure_keeps_its_message(self, generation_request):
        provider = self._provider(["https://replicate.delivery/out.png"])
        provider._fetch_image = AsyncMock(side_effect=ImageFetchError("Failed to fetch image: HTTP 404 Not Found"))

        result = await provider.generate(generation_request)

        assert result.error_category is ErrorCategory.GENERIC
        assert result.error == "Failed to fetch image: HTTP 404 Not Found"

    @pytest.mark.asyncio
    async def test_empty_output(self, generation_request):
        provider = self._provider([])

        result = await provider.generate(generation_request)

        assert result.error_category is ErrorCategory.NO_IMAGE_RETURNED

    @pytest.mark.asyncio
    async def test_rate_limit_message(self, generation_request):
        provider = self._provider(None)
        provider._client.async_run.side_effect = StatusError("throttled", 429)

        result = await provider.generate(generation_request)

        assert result.error == "Rate limit exceeded. Free tier: 50 images/month."


class TestOpenAIProvider:
    """OpenAI provider with a mocked AsyncOpenAI client."""

    def _provider(self):
        provider = OpenAIImageProvider(ProviderConfig("openai", "sk-example"))
        provider._client = MagicMock()
        provider._client.images.edit = AsyncMock(
            return_value=SimpleNamespace(data=[SimpleNamespace(b64_json="c2hlZXQ=")])
        )
        return provider

    @pytest.mark.asyncio
    async def test_uploads_both_images(self, template_request):
        provider = self._provider()

        result = await provider.generate(template_request)

        kwargs = provider._client.images.edit.call_args.kwargs
        assert [name for name, _, _ in kwargs["image"]] == ["image1.png", "image2.jpg"]
        assert kwargs["model"] == "gpt-image-1"
        assert kwargs["n"] == 1
        assert result.images[0] == ImageData(b"sheet", "image/png")

    @pytest.mark.asyncio
    async def test_missing_b64_is_no_image(self, generation_request):
        provider = self._provider()
        provider._client.images.edit.return_value = SimpleNamespace(data=[SimpleNamespace(b64_json=None)])

        result = await provider.generate(generation_request)

        assert result.error_category is ErrorCategory.NO_IMAGE_RETURNED

    @pytest.mark.asyncio
    async def test_unbound_client_is_a_failed_result(self, generation_request):
        provider = OpenAIImageProvider(ProviderConfig("openai", "sk-example"))

        result = await provider.generate(generation_request)

        assert result.success is False
        assert result.error_category is ErrorCategory.GENERIC
        assert result.error == "Generation failed: No SDK client bound to provider 'openai'"


class TestGenerationRequest:
    def test_blank_prompt_rejected(self, primary_image):
        with pytest.raises(ValidationError):
            GenerationRequest(prompt="   ", primary_image=primary_image)

    def test_image_from_data_uri_uses_embedded_mime(self):
        image = ImageData.from_base64("data:image/webp;base64,c2hlZXQ=", mime_type="image/png")
        assert image == ImageData(b"sheet", "image/webp")
        assert image.to_data_uri() == "data:image/webp;base64,c2hlZXQ="
