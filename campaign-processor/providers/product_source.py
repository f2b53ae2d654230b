"""
Product image acquisition - download from a store URL or decode an upload.
"""

import base64
import binascii
import logging
import re

import httpx

from poster.errors import AcquisitionError, ServiceError, ServiceTimeoutError

logger = logging.getLogger(__name__)

DATA_URL_PREFIX = re.compile(r"^data:image/[\w.+-]+;base64,", re.IGNORECASE)


class ProductImageSource:
    """
    Fetches the raw product photo.

    Store CDNs often reject requests without a browser User-Agent, so one
    is always sent.
    """

    def __init__(self, timeout: float = 20.0, user_agent: str = "Mozilla/5.0"):
        self.timeout = timeout
        self.headers = {
            "User-Agent": user_agent,
            "Accept": "image/*",
        }

    async def download_image(self, url: str) -> bytes:
        """
        Download an image.

        Raises:
            ServiceTimeoutError: No response within the timeout
            ServiceError: Transport failure, non-2xx status or empty body
        """
        logger.info(f"Downloading product image: {url[:80]}")

        try:
            async with httpx.AsyncClient(timeout=self.timeout, follow_redirects=True) as client:
                response = await client.get(url, headers=self.headers)
                response.raise_for_status()
        except httpx.TimeoutException as e:
            raise ServiceTimeoutError("image-download", self.timeout, cause=e)
        except httpx.HTTPStatusError as e:
            raise ServiceError(
                "Product image download failed",
                service="image-download",
                http_status=e.response.status_code,
                cause=e.response.text
            )
        except httpx.HTTPError as e:
            raise ServiceError("Product image download failed", service="image-download", cause=e)

        if not response.content:
            raise ServiceError("Product image download returned no data", service="image-download")

        logger.info(f"Downloaded {len(response.content)} bytes")
        return response.content

    @staticmethod
    def decode_inline(data: str) -> bytes:
        """Decode a base64 upload, with or without a data-URL prefix."""
        payload = DATA_URL_PREFIX.sub("", data.strip())
        try:
            raw = base64.b64decode(payload, validate=True)
        except (binascii.Error, ValueError) as e:
            raise AcquisitionError("Uploaded product image is not valid base64", cause=e, status_code=400)

        if not raw:
            raise AcquisitionError("Uploaded product image is empty", status_code=400)
        return raw
