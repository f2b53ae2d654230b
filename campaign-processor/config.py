"""
Service configuration.

Built once at startup and handed to every component that needs it. Nothing
else in the service reads environment variables.
"""

from functools import lru_cache
from typing import Optional, List

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Environment / .env backed settings."""

    app_name: str = "Campaign Processor"
    app_version: str = "1.0.0"
    log_level: str = "INFO"

    # Storage
    output_dir: str = "./campaigns"
    public_base_url: str = "http://localhost:8000"

    # Brand
    brand_name: str = "Mahwous"

    # Product image download
    download_timeout: float = 20.0
    download_user_agent: str = (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
    )

    # External matting (remove.bg) - optional
    remove_bg_api_key: Optional[str] = None
    remove_bg_url: str = "https://api.remove.bg/v1.0/removebg"
    segmentation_timeout: float = 20.0

    # Local segmentation
    white_threshold: int = 235
    segmentation_working_width: int = 1000

    # Compositing / encoding
    overflow_policy: str = "rescale"  # rescale or clamp
    jpeg_quality: int = 95

    # Gemini (backdrop images + backup captions)
    gemini_api_keys: Optional[str] = None  # Comma-separated
    gemini_api_key: Optional[str] = None
    gemini_image_model: str = "gemini-2.0-flash-exp"
    gemini_text_model: str = "gemini-2.5-flash"
    backdrop_timeout: float = 90.0

    # CLIProxy gateway (primary captions) - optional
    cliproxy_base_url: Optional[str] = None
    cliproxy_api_key: Optional[str] = None
    cliproxy_text_model: str = "gemini-2.5-flash"
    caption_timeout: float = 45.0

    # Delivery webhook - optional
    webhook_url: Optional[str] = None
    webhook_timeout: float = 30.0

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    @property
    def gemini_key_list(self) -> List[str]:
        """All configured Gemini keys, comma list first."""
        if self.gemini_api_keys:
            keys = [k.strip() for k in self.gemini_api_keys.split(",") if k.strip()]
            if keys:
                return keys
        return [self.gemini_api_key] if self.gemini_api_key else []


@lru_cache
def get_settings() -> Settings:
    """Process-wide settings, constructed on first use."""
    return Settings()
