"""
Gemini image provider implementation.

Uses Google's Gemini native image generation (generate_content with image
output). Input images travel as inline bytes parts.
"""
from __future__ import annotations

import base64

from google import genai
from google.genai import types

from ...config import settings, get_logger
from .interface import GenerationRequest, ImageData, ImageProviderInterface

logger = get_logger("providers.gemini")


class GeminiImageProvider(ImageProviderInterface):
    """
    Gemini image provider.

    The first part of the request is the prompt, followed by the avatar and,
    when present, the template. High-res preview models additionally get an
    explicit image config taken from settings.
    """

    provider_id = "gemini"
    default_model = settings.GEMINI_DEFAULT_MODEL
    credential_env = "GEMINI_API_KEY"

    template_instruction = (
        "Image 1 is the character/avatar to use as the subject. "
        "Image 2 is the template whose structure must be followed. "
        "Generate the result based on image 1 following the exact layout "
        "and structure shown in image 2."
    )
    rate_limit_message = "Rate limit exceeded. Free tier: 1,500 requests/day."
    no_image_message = "No image data in Gemini response"

    @classmethod
    def create_client(cls, credential: str) -> genai.Client:
        return genai.Client(api_key=credential)

    @classmethod
    async def close_client(cls, client: genai.Client) -> None:
        await client.aio.aclose()
        client.close()

    def validate_config(self) -> bool:
        """Gemini API keys start with 'AIza'."""
        key = self._config.credential
        return isinstance(key, str) and key.startswith("AIza")

    def _build_contents(self, request: GenerationRequest) -> list[types.Content]:
        parts = [
            types.Part.from_text(text=self.build_prompt(request)),
            types.Part.from_bytes(
                data=request.primary_image.data,
                mime_type=request.primary_image.mime_type,
            ),
        ]
        if request.template_image is not None:
            parts.append(
                types.Part.from_bytes(
                    data=request.template_image.data,
                    mime_type=request.template_image.mime_type,
                )
            )
        return [types.Content(role="user", parts=parts)]

    def _build_config(self) -> types.GenerateContentConfig | None:
        if self.get_model_name() not in settings.GEMINI_HIGH_RES_MODELS:
            return None
        return types.GenerateContentConfig(
            response_modalities=["TEXT", "IMAGE"],
            image_config=types.ImageConfig(
                aspect_ratio=settings.GEMINI_IMAGE_ASPECT_RATIO,
                image_size=settings.GEMINI_IMAGE_SIZE,
            ),
        )

    @staticmethod
    def _extract_images(response) -> list[ImageData]:
        """Collect inline image parts from the first candidate that has any."""
        images: list[ImageData] = []
        for candidate in getattr(response, "candidates", None) or []:
            content = getattr(candidate, "content", None)
            for part in getattr(content, "parts", None) or []:
                inline = getattr(part, "inline_data", None)
                if inline is None or not inline.data:
                    continue
                raw = inline.data
                # may be base64 str or bytes depending on transport
                if isinstance(raw, str):
                    raw = base64.b64decode(raw)
                images.append(ImageData(data=raw, mime_type=inline.mime_type or "image/png"))
            if images:
                break
        return images

    async def generate_images(self, request: GenerationRequest) -> list[ImageData]:
        client = self.client
        model = self.get_model_name()
        logger.debug(
            "Gemini request | model=%s | template=%s",
            model,
            request.has_template,
        )
        response = await client.aio.models.generate_content(
            model=model,
            contents=self._build_contents(request),
            config=self._build_config(),
        )
        return self._extract_images(response)
