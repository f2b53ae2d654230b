"""
remove.bg client - external matting service.

Optional. When no key is configured the pipeline goes straight to the local
white-background segmenter.
"""

import logging
from typing import Optional

import httpx

from models import SegmentationResult
from poster.errors import ServiceError, ServiceTimeoutError

logger = logging.getLogger(__name__)

SERVICE_NAME = "remove.bg"


class RemoveBgClient:
    """Sends the product photo to remove.bg and returns a transparent PNG."""

    def __init__(
        self,
        api_key: Optional[str],
        url: str = "https://api.remove.bg/v1.0/removebg",
        timeout: float = 20.0
    ):
        self.api_key = api_key
        self.url = url
        self.timeout = timeout

    def is_available(self) -> bool:
        return bool(self.api_key)

    async def segment(self, image_data: bytes) -> SegmentationResult:
        """
        Remove the background.

        Raises:
            ServiceTimeoutError: No answer within the timeout
            ServiceError: Not configured, transport failure, non-2xx (quota,
                bad key) or an empty reply
        """
        if not self.api_key:
            raise ServiceError("remove.bg API key not configured", service=SERVICE_NAME)

        logger.info(f"remove.bg: sending {len(image_data)} bytes")

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(
                    self.url,
                    headers={"X-Api-Key": self.api_key},
                    data={"size": "auto"},
                    files={"image_file": ("product.png", image_data, "application/octet-stream")},
                )
        except httpx.TimeoutException as e:
            raise ServiceTimeoutError(SERVICE_NAME, self.timeout, cause=e)
        except httpx.HTTPError as e:
            raise ServiceError("remove.bg request failed", service=SERVICE_NAME, cause=e)

        if response.status_code != 200:
            raise ServiceError(
                "remove.bg rejected the request",
                service=SERVICE_NAME,
                http_status=response.status_code,
                cause=response.text
            )

        if not response.content:
            raise ServiceError("remove.bg returned no image", service=SERVICE_NAME)

        logger.info(f"remove.bg success: {len(response.content)} bytes")
        return SegmentationResult(png_bytes=response.content, provider=SERVICE_NAME)
