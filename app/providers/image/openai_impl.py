"""
OpenAI image provider implementation.

Uses the image edit endpoint of GPT Image models. Images are uploaded as
multipart file parts; the result comes back as inline base64.
"""
from __future__ import annotations

from openai import AsyncOpenAI

from ...config import settings, get_logger
from .interface import GenerationRequest, ImageData, ImageProviderInterface

logger = get_logger("providers.openai")

_EXTENSIONS = {"image/jpeg": "jpg", "image/png": "png", "image/webp": "webp"}


class OpenAIImageProvider(ImageProviderInterface):
    """OpenAI GPT Image provider (avatar + optional template as edit inputs)."""

    provider_id = "openai"
    default_model = settings.OPENAI_DEFAULT_MODEL
    credential_env = "OPENAI_API_KEY"

    template_instruction = (
        "Use image 1 as the character subject and reproduce the structural "
        "layout of image 2 exactly, keeping the character's appearance."
    )
    no_image_message = "No image data in OpenAI response"

    @classmethod
    def create_client(cls, credential: str) -> AsyncOpenAI:
        return AsyncOpenAI(api_key=credential, max_retries=0)

    @classmethod
    async def close_client(cls, client: AsyncOpenAI) -> None:
        await client.close()

    def validate_config(self) -> bool:
        """OpenAI API keys start with 'sk-'."""
        key = self._config.credential
        return isinstance(key, str) and key.startswith("sk-")

    @staticmethod
    def _as_upload(name: str, image: ImageData) -> tuple[str, bytes, str]:
        extension = _EXTENSIONS.get(image.mime_type, "png")
        return (f"{name}.{extension}", image.data, image.mime_type)

    async def generate_images(self, request: GenerationRequest) -> list[ImageData]:
        client = self.client
        uploads = [self._as_upload("image1", request.primary_image)]
        if request.template_image is not None:
            uploads.append(self._as_upload("image2", request.template_image))

        response = await client.images.edit(
            model=self.get_model_name(),
            image=uploads,
            prompt=self.build_prompt(request),
            size=settings.OPENAI_IMAGE_SIZE,
            quality=settings.OPENAI_IMAGE_QUALITY,
            n=1,
        )

        images: list[ImageData] = []
        for item in response.data or []:
            if getattr(item, "b64_json", None):
                images.append(ImageData.from_base64(item.b64_json, mime_type="image/png"))
        return images
