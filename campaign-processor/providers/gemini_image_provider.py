"""
Gemini image generation - produces the character backdrop.

The SDK call blocks, so it runs in a worker thread under asyncio.wait_for.
"""

import asyncio
import base64
import logging
from typing import Optional

import google.generativeai as genai
from google.api_core import exceptions as google_exceptions

from poster.errors import ServiceError, ServiceTimeoutError

logger = logging.getLogger(__name__)

SERVICE_NAME = "gemini-image"


class GeminiImageProvider:
    """Text-to-image with a Gemini image-capable model."""

    def __init__(
        self,
        api_key: Optional[str],
        model: str = "gemini-2.0-flash-exp",
        timeout: float = 90.0
    ):
        self.api_key = api_key
        self.model_name = model
        self.timeout = timeout

        if not self.api_key:
            logger.warning("No Gemini API key - backdrop generation disabled")

    def is_available(self) -> bool:
        return bool(self.api_key)

    def _generate_sync(self, prompt: str) -> bytes:
        genai.configure(api_key=self.api_key)
        model = genai.GenerativeModel(self.model_name)
        response = model.generate_content(
            prompt,
            generation_config={
                "temperature": 0.9,
                "max_output_tokens": 8192,
            }
        )

        for candidate in response.candidates or []:
            for part in candidate.content.parts:
                inline = getattr(part, "inline_data", None)
                if inline and inline.data:
                    data = inline.data
                    if isinstance(data, str):
                        data = base64.b64decode(data)
                    return bytes(data)

        raise ServiceError("Gemini returned no image", service=SERVICE_NAME)

    async def generate_image(self, prompt: str) -> bytes:
        """
        Generate one image from a prompt.

        Raises:
            ServiceTimeoutError: No image within the timeout
            ServiceError: Not configured, SDK failure or a text-only reply
        """
        if not self.api_key:
            raise ServiceError("Gemini API key not configured", service=SERVICE_NAME)

        logger.info(f"Gemini image: model={self.model_name}, prompt={len(prompt)} chars")

        try:
            data = await asyncio.wait_for(
                asyncio.to_thread(self._generate_sync, prompt),
                timeout=self.timeout
            )
        except asyncio.TimeoutError:
            raise ServiceTimeoutError(SERVICE_NAME, self.timeout)
        except (google_exceptions.GoogleAPIError, ValueError) as e:
            raise ServiceError("Gemini image generation failed", service=SERVICE_NAME, cause=e)

        logger.info(f"Gemini image generated: {len(data)} bytes")
        return data
