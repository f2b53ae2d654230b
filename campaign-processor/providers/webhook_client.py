"""
Delivery webhook client - hands a finished campaign to the publishing
automation (Make.com scenario).
"""

import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional, Dict, Any, Tuple

import httpx

from models import PublishRequest
from poster.errors import CampaignError, ServiceError, ServiceTimeoutError
from poster.presets import SIZE_KEYS

logger = logging.getLogger(__name__)

SERVICE_NAME = "delivery-webhook"

# Our caption platforms -> field names the automation expects
CAPTION_FIELDS = {
    "post_instagram": "instagram",
    "reels_tiktok": "tiktok",
    "x_twitter": "twitter",
    "facebook": "facebook",
    "linkedin": "instagram",
    "pinterest": "pinterest",
    "haraj": "haraj",
    "youtube_description": "youtube",
}

PUBLISH_CHANNELS = (
    "instagram", "facebook", "tiktok", "linkedin",
    "pinterest", "youtube", "whatsapp", "snapchat",
)


def build_payload(
    request: PublishRequest,
    campaign_id: str,
    now: Optional[datetime] = None
) -> Dict[str, Any]:
    """
    Build the webhook body.

    Raises:
        CampaignError: Any of the five platform image URLs is missing
    """
    missing = [key for key in SIZE_KEYS if not request.image_urls.get(key)]
    if missing:
        raise CampaignError(
            "Campaign is missing platform images",
            status_code=400,
            details={"missing": missing}
        )

    now = now or datetime.now(timezone.utc)
    product = request.product
    content = request.content
    options = request.options

    publishing = {f"post_to_{channel}": bool(getattr(options, channel)) for channel in PUBLISH_CHANNELS}
    publishing["scheduled_time"] = options.scheduled_time or (now + timedelta(hours=1)).isoformat()

    return {
        "campaign_id": campaign_id,
        "timestamp": now.isoformat(),
        "product": {
            "name": product.name,
            "brand": product.brand,
            "price": product.price,
            "description": product.description,
            "store_url": product.url,
            "original_image_url": product.image_url,
        },
        "generated_content": {
            "brand_story": content.brand_story,
            "voiceover": content.brand_story,
            "captions": {field: content.captions[platform] for field, platform in CAPTION_FIELDS.items()},
            "video_prompt_hook": content.video_hook_prompt,
            "video_prompt_broll": content.video_broll_prompt,
        },
        "assets": {
            "images": {key: request.image_urls[key] for key in SIZE_KEYS},
            "video_url": request.video_url,
        },
        "publishing": publishing,
    }


class DeliveryWebhookClient:
    """POSTs finished campaigns to the configured automation webhook."""

    def __init__(self, url: Optional[str], timeout: float = 30.0):
        self.url = url
        self.timeout = timeout

    def is_available(self) -> bool:
        return bool(self.url)

    async def publish(self, request: PublishRequest) -> Tuple[str, Dict[str, Any]]:
        """
        Send a campaign.

        Returns:
            (campaign_id, webhook response body)
        """
        if not self.url:
            raise ServiceError("Delivery webhook URL not configured", service=SERVICE_NAME, status_code=503)

        campaign_id = f"publish_{uuid.uuid4().hex[:12]}"
        payload = build_payload(request, campaign_id)

        logger.info(f"Publishing campaign {campaign_id} to webhook")

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(self.url, json=payload)
        except httpx.TimeoutException as e:
            raise ServiceTimeoutError(SERVICE_NAME, self.timeout, cause=e)
        except httpx.HTTPError as e:
            raise ServiceError("Delivery webhook request failed", service=SERVICE_NAME, cause=e)

        if not response.is_success:
            raise ServiceError(
                "Delivery webhook rejected the campaign",
                service=SERVICE_NAME,
                http_status=response.status_code,
                cause=response.text
            )

        try:
            body = response.json()
        except ValueError:
            body = {"status": "accepted"}
        if not isinstance(body, dict):
            body = {"result": body}

        logger.info(f"Campaign {campaign_id} accepted by webhook")
        return campaign_id, body
