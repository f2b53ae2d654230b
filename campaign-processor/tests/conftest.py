import io

import numpy as np
import pytest
from PIL import Image

from config import Settings
from models import ProductInfo, CaptionSet, BackdropResult, SegmentationResult, CAPTION_PLATFORMS
from campaign_pipeline import CampaignPipeline
from poster.errors import ServiceError, ServiceTimeoutError
from poster.raster import RasterImage
from providers.product_source import ProductImageSource


def png_bytes(image: Image.Image) -> bytes:
    buffer = io.BytesIO()
    image.save(buffer, format="PNG")
    return buffer.getvalue()


def jpeg_bytes(image: Image.Image) -> bytes:
    buffer = io.BytesIO()
    image.convert("RGB").save(buffer, format="JPEG", quality=90)
    return buffer.getvalue()


# ============== Images ==============

@pytest.fixture
def solid_raster():
    """Factory: uniform RGBA raster."""
    def make(width, height, color=(255, 255, 255, 255)):
        pixels = np.zeros((height, width, 4), dtype=np.uint8)
        pixels[:, :] = color
        return RasterImage(width=width, height=height, pixels=pixels)
    return make


@pytest.fixture
def product_photo():
    """400x600 product shot: pure white background, centred grey box."""
    image = Image.new("RGB", (400, 600), (255, 255, 255))
    image.paste((128, 128, 128), (100, 150, 300, 450))
    return png_bytes(image)


@pytest.fixture
def backdrop_photo():
    """1200x800 landscape backdrop with a horizontal gradient."""
    gradient = np.zeros((800, 1200, 3), dtype=np.uint8)
    gradient[:, :, 0] = np.linspace(40, 200, 1200, dtype=np.uint8)[None, :]
    gradient[:, :, 1] = 90
    gradient[:, :, 2] = 140
    return jpeg_bytes(Image.fromarray(gradient))


@pytest.fixture
def product_info():
    return ProductInfo(
        name="Oud Royal 100ml",
        brand="Maison Test",
        price="450 SAR",
        description="A deep oriental oud with amber and rose.",
        url="https://store.example/products/oud-royal?utm_source=ig",
        image_url="https://cdn.example/oud-royal.jpg",
    )


@pytest.fixture
def caption_set():
    return CaptionSet(
        brand_story="قصة عطر فاخر.",
        perfume_mood="Oud/Oriental",
        captions={platform: f"{platform} caption" for platform in CAPTION_PLATFORMS},
        video_hook_prompt="hook",
        video_broll_prompt="broll",
    )


# ============== Fake collaborators ==============

class FakeProductSource(ProductImageSource):
    def __init__(self, data: bytes):
        super().__init__(timeout=1.0)
        self.data = data
        self.downloaded = []

    async def download_image(self, url: str) -> bytes:
        self.downloaded.append(url)
        return self.data


class FakeBackdrops:
    def __init__(self, image_bytes: bytes = b"", error: Exception = None):
        self.image_bytes = image_bytes
        self.error = error
        self.calls = 0

    async def generate(self, product):
        self.calls += 1
        if self.error:
            raise self.error
        return BackdropResult(image_bytes=self.image_bytes, outfit="thobe", scene_key="oud_oriental")


class FakeCaptions:
    def __init__(self, result: CaptionSet = None, error: Exception = None):
        self.result = result
        self.error = error

    async def generate(self, product):
        if self.error:
            raise self.error
        return self.result


class FakeSegmentationService:
    def __init__(self, png: bytes = None, error: Exception = None):
        self.png = png
        self.error = error
        self.calls = 0

    def is_available(self) -> bool:
        return True

    async def segment(self, image_data: bytes) -> SegmentationResult:
        self.calls += 1
        if self.error:
            raise self.error
        return SegmentationResult(png_bytes=self.png, provider="fake-matting")


@pytest.fixture
def settings(tmp_path):
    return Settings(
        _env_file=None,
        output_dir=str(tmp_path / "campaigns"),
        public_base_url="http://test",
        remove_bg_api_key=None,
        gemini_api_keys=None,
        gemini_api_key=None,
        cliproxy_base_url=None,
        cliproxy_api_key=None,
        webhook_url=None,
    )


@pytest.fixture
def fakes():
    """Fake collaborator classes, for tests that build their own."""
    class Namespace:
        ProductSource = FakeProductSource
        Backdrops = FakeBackdrops
        Captions = FakeCaptions
        Segmentation = FakeSegmentationService
    return Namespace


@pytest.fixture
def make_pipeline(settings, product_photo, backdrop_photo, caption_set):
    """Factory: pipeline with every network collaborator faked."""
    def make(
        product_source=None,
        backdrops=None,
        captions=None,
        segmentation_service=None,
    ):
        return CampaignPipeline(
            settings,
            product_source=product_source or FakeProductSource(product_photo),
            backdrop_generator=backdrops or FakeBackdrops(backdrop_photo),
            caption_writer=captions or FakeCaptions(result=caption_set),
            segmentation_service=segmentation_service,
        )
    return make


@pytest.fixture
def timeout_segmentation():
    return FakeSegmentationService(error=ServiceTimeoutError("remove.bg", 20.0))


@pytest.fixture
def failing_backdrops():
    return FakeBackdrops(error=ServiceError("Gemini image generation failed", service="gemini-image", cause="quota"))
