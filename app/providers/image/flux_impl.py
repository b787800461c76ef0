"""
Flux image provider implementation.

Runs Black Forest Labs Flux models on Replicate. The avatar is sent as a
data URI; Replicate answers with a URL that is then downloaded with aiohttp
to materialize the image bytes.
"""
from __future__ import annotations

import aiohttp
import replicate

from ...config import settings, get_logger
from ...exceptions import ImageFetchError
from .interface import GenerationRequest, ImageData, ImageProviderInterface

logger = get_logger("providers.flux")


class FluxImageProvider(ImageProviderInterface):
    """
    Flux provider backed by the Replicate API.

    Replicate's Flux Kontext models accept a single input image, so a
    template only changes the prompt wording.
    """

    provider_id = "flux"
    default_model = settings.FLUX_DEFAULT_MODEL
    credential_env = "FLUX_API_KEY / REPLICATE_API_TOKEN"

    template_instruction = (
        "Use image 1 (the provided avatar) as the subject and transform it "
        "following the exact layout and structure of image 2, a professional "
        "character sheet template. Keep the character's appearance and details."
    )
    rate_limit_message = "Rate limit exceeded. Free tier: 50 images/month."
    no_image_message = "No image data in Replicate response"

    @classmethod
    def create_client(cls, credential: str) -> replicate.Client:
        """replicate.Client has no close hook; the registry keeps one per token."""
        return replicate.Client(api_token=credential)

    def validate_config(self) -> bool:
        """Replicate API tokens start with 'r8_'."""
        key = self._config.credential
        return isinstance(key, str) and key.startswith("r8_")

    def _build_input(self, request: GenerationRequest) -> dict:
        return {
            "prompt": self.build_prompt(request),
            "input_image": request.primary_image.to_data_uri(),
            "output_format": settings.FLUX_OUTPUT_FORMAT,
        }

    async def _fetch_image(self, url: str) -> ImageData:
        """Download a generated image from a Replicate delivery URL."""
        timeout = aiohttp.ClientTimeout(total=settings.IMAGE_FETCH_TIMEOUT_SECONDS)
        async with aiohttp.ClientSession(timeout=timeout) as session:
            async with session.get(url) as response:
                if response.status != 200:
                    raise ImageFetchError(
                        f"Failed to fetch image: HTTP {response.status} {response.reason or ''}".strip()
                    )
                data = await response.read()
                mime_type = response.content_type or f"image/{settings.FLUX_OUTPUT_FORMAT}"
        return ImageData(data=data, mime_type=mime_type)

    async def _materialize(self, item) -> ImageData:
        """
        Turn one Replicate output item into bytes.

        Items are FileOutput objects (with .url), plain URLs, data URIs or
        bare base64 strings depending on SDK version and model.
        """
        value = str(getattr(item, "url", item))
        if value.startswith(("http://", "https://")):
            return await self._fetch_image(value)
        return ImageData.from_base64(value, mime_type=f"image/{settings.FLUX_OUTPUT_FORMAT}")

    async def generate_images(self, request: GenerationRequest) -> list[ImageData]:
        client = self.client
        model = self.get_model_name()
        logger.debug("Replicate run | model=%s | template=%s", model, request.has_template)

        output = await client.async_run(model, input=self._build_input(request))

        outputs = list(output) if isinstance(output, (list, tuple)) else [output]
        outputs = [item for item in outputs if item]
        if not outputs:
            return []
        return [await self._materialize(outputs[0])]
