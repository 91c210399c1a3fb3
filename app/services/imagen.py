"""
Illustration generation with Imagen (``client.aio.models.generate_images``).

Always uses the paying key; image generation is not available on the
free-tier keys that GeminiClient rotates through.
"""
from __future__ import annotations

import base64
import logging
from typing import Optional

from google.genai import types

from app.config import settings
from app.services.gemini import PROVIDER_ERRORS, ClientFactory, make_genai_client
from app.services.prompts import cartoon_prompt

logger = logging.getLogger(__name__)


class ImageGenerationError(Exception):
    """Raised when Imagen returns no usable image."""


class ImagenService:
    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        client_factory: Optional[ClientFactory] = None,
    ) -> None:
        self.api_key = api_key if api_key is not None else settings.GEMINI_API_KEY_PAYING
        self.model = model or settings.IMAGEN_MODEL
        self._client_factory = client_factory or make_genai_client

    async def generate_image(self, prompt: str) -> str:
        """
        Generate one image for *prompt*.

        Returns the image as a base64 string (no ``data:`` prefix).
        """
        if not self.api_key:
            raise ImageGenerationError("GEMINI_API_KEY_PAYING not configured")

        try:
            response = await self._client_factory(self.api_key).aio.models.generate_images(
                model=self.model,
                prompt=prompt,
                config=types.GenerateImagesConfig(number_of_images=1),
            )
        except PROVIDER_ERRORS as exc:
            logger.error("Imagen request failed: %s", exc)
            raise ImageGenerationError(f"Failed to generate image: {exc}") from exc

        generated = response.generated_images or []
        if not generated:
            raise ImageGenerationError("Failed to generate image: No images were generated")

        image = generated[0].image
        image_bytes = image.image_bytes if image is not None else None
        if not image_bytes:
            raise ImageGenerationError("Failed to generate image: Generated image data is empty")

        return base64.b64encode(image_bytes).decode("ascii")

    async def generate_cartoon_image(self, optimized_prompt: str) -> str:
        return await self.generate_image(cartoon_prompt(optimized_prompt))


def get_imagen_service() -> ImagenService:
    return ImagenService()
