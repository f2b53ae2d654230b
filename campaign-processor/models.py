from pydantic import BaseModel, Field, field_validator
from typing import Optional, List, Dict

# Platforms every caption set must cover
CAPTION_PLATFORMS = (
    "instagram",
    "facebook",
    "twitter",
    "tiktok",
    "pinterest",
    "haraj",
    "youtube",
)


class ProductInfo(BaseModel):
    """Product facts supplied by the caller (scraped upstream)"""
    name: str
    brand: Optional[str] = None
    price: Optional[str] = None
    description: str = ""
    url: Optional[str] = None
    image_url: Optional[str] = None


# ============== Collaborator Results ==============

class CaptionSet(BaseModel):
    """Structured campaign copy - from the LLM or the template fallback"""
    brand_story: str
    perfume_mood: Optional[str] = None
    captions: Dict[str, str]
    video_hook_prompt: str = ""
    video_broll_prompt: str = ""

    @field_validator("brand_story")
    @classmethod
    def _story_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("brand_story is empty")
        return value

    @field_validator("captions")
    @classmethod
    def _all_platforms_present(cls, value: Dict[str, str]) -> Dict[str, str]:
        missing = [p for p in CAPTION_PLATFORMS if not (value.get(p) or "").strip()]
        if missing:
            raise ValueError(f"missing captions for: {', '.join(missing)}")
        return value


class BackdropResult(BaseModel):
    """Generated character backdrop"""
    image_bytes: bytes
    mime_type: str = "image/png"
    outfit: str
    scene_key: str
    width: int = 0
    height: int = 0


class SegmentationResult(BaseModel):
    """Transparent PNG returned by the external matting service"""
    png_bytes: bytes
    provider: str


# ============== Campaign API Models ==============

class CampaignGenerateRequest(BaseModel):
    """Request to run the full campaign pipeline"""
    product: ProductInfo
    product_image_base64: Optional[str] = None  # Upload override, may be a data URL
    product_image_url: Optional[str] = None     # Overrides product.image_url


class StageEventModel(BaseModel):
    """One pipeline progress event"""
    stage: str
    status: str
    duration_ms: int = 0
    detail: Optional[str] = None


class CampaignMeta(BaseModel):
    outfit: Optional[str] = None
    scene_key: Optional[str] = None
    segmentation: Optional[str] = None  # "external" or "local"


class CampaignGenerateResponse(BaseModel):
    """Finished campaign: asset URLs by fixed key plus copy"""
    success: bool = True
    campaign_id: str
    image_urls: Dict[str, str]
    content: CaptionSet
    caption_error: Optional[str] = None
    meta: CampaignMeta
    stages: List[StageEventModel] = Field(default_factory=list)


class RemoveBgResponse(BaseModel):
    success: bool = True
    url: str
    filename: str


class SizeOptionsResponse(BaseModel):
    sizes: List[dict]


# ============== Publish Models ==============

class PublishOptions(BaseModel):
    """Which channels the automation should post to"""
    instagram: bool = False
    facebook: bool = False
    tiktok: bool = False
    linkedin: bool = False
    pinterest: bool = False
    youtube: bool = False
    whatsapp: bool = False
    snapchat: bool = False
    scheduled_time: Optional[str] = None  # ISO 8601, defaults to now + 1h


class PublishRequest(BaseModel):
    """Finished campaign forwarded to the delivery webhook"""
    product: ProductInfo
    content: CaptionSet
    image_urls: Dict[str, str]
    video_url: Optional[str] = None
    options: PublishOptions = Field(default_factory=PublishOptions)


class PublishResponse(BaseModel):
    success: bool = True
    campaign_id: str
    response: dict = Field(default_factory=dict)
