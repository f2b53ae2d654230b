"""
CampaignPipeline - Main orchestrator for campaign generation.

Combines:
- ProductImageSource: upload decode or store download
- RemoveBgClient / BackgroundSegmenter: external matting, local fallback
- BackdropGenerator: AI character backdrop
- HeroCompositor: master poster (pure code)
- PlatformCropper: five platform sizes (pure code)
- CaptionWriter / CaptionTemplates: campaign copy, template fallback

Stages run once each, in order. Image stages are all-or-nothing: the first
failure aborts the run with an error naming the stage. Captions never abort;
the template set is substituted and the error is attached to the result.
"""

import asyncio
import logging
import time
import uuid
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterator, List, Optional, Protocol, Tuple

from config import Settings
from models import ProductInfo, CaptionSet, BackdropResult, SegmentationResult
from caption_templates import CaptionTemplates
from poster.compositor import HeroCompositor, CompositorLayout, OverflowPolicy
from poster.cropper import PlatformCropper
from poster.errors import (
    PipelineStage, CampaignError, AcquisitionError, SegmentationError,
    BackdropError, CompositeError, CropError, CaptionError, DecodeError,
)
from poster.presets import SIZE_KEYS, ASSET_KEYS, MASTER_KEY, TRANSPARENT_KEY
from poster.raster import RasterImage, EncodedImage, QualityOptions, decode, encode
from poster.segmenter import BackgroundSegmenter

logger = logging.getLogger(__name__)


class ProductSource(Protocol):
    async def download_image(self, url: str) -> bytes: ...
    def decode_inline(self, data: str) -> bytes: ...


class SegmentationService(Protocol):
    def is_available(self) -> bool: ...
    async def segment(self, image_data: bytes) -> SegmentationResult: ...


class Backdrops(Protocol):
    async def generate(self, product: ProductInfo) -> BackdropResult: ...


class Captions(Protocol):
    async def generate(self, product: ProductInfo) -> CaptionSet: ...


@dataclass
class StageEvent:
    """One progress event, emitted when a stage really starts or ends."""
    stage: PipelineStage
    status: str  # started, completed, fallback, failed
    duration_ms: int = 0
    detail: Optional[str] = None


ProgressCallback = Callable[[StageEvent], None]


@dataclass
class ProductCutout:
    """Transparent product layer plus its PNG encoding."""
    layer: RasterImage
    png: EncodedImage
    provider: str  # "remove.bg" or "local"


@dataclass
class CampaignAssetSet:
    """Master, transparent layer and one image per platform size."""
    master: EncodedImage
    transparent: EncodedImage
    sizes: Dict[str, EncodedImage]

    def __getitem__(self, key: str) -> EncodedImage:
        if key == MASTER_KEY:
            return self.master
        if key == TRANSPARENT_KEY:
            return self.transparent
        return self.sizes[key]

    def as_dict(self) -> Dict[str, EncodedImage]:
        """All seven assets under their fixed keys."""
        return {key: self[key] for key in ASSET_KEYS}


@dataclass
class CampaignResult:
    campaign_id: str
    assets: CampaignAssetSet
    captions: CaptionSet
    caption_error: Optional[str] = None
    meta: Dict[str, Optional[str]] = field(default_factory=dict)
    stages: List[StageEvent] = field(default_factory=list)


def new_campaign_id() -> str:
    """Unique per run; used as the storage namespace."""
    return f"campaign_{uuid.uuid4().hex[:12]}"


def _stage_error(stage: PipelineStage, error: Exception) -> CampaignError:
    """Re-attribute a collaborator failure to the stage it happened in."""
    if isinstance(error, CampaignError):
        message, cause = error.message, error.cause
        kwargs = {"timed_out": error.timed_out, "details": dict(error.details)}
    else:
        message, cause = f"{stage.value} failed", error
        kwargs = {}

    if kwargs.get("timed_out"):
        kwargs["status_code"] = 504
    elif isinstance(error, DecodeError):
        kwargs["status_code"] = 400

    if stage == PipelineStage.ACQUIRE_PRODUCT:
        return AcquisitionError(message, cause=cause, **kwargs)
    if stage == PipelineStage.SEGMENT:
        return SegmentationError(message, cause=cause, **kwargs)
    if stage == PipelineStage.ACQUIRE_BACKDROP:
        return BackdropError(message, cause=cause, **kwargs)
    if stage == PipelineStage.COMPOSITE:
        return CompositeError(message, step="unknown", cause=cause, **kwargs)
    if stage == PipelineStage.CROP:
        return CropError(message, cause=cause, **kwargs)
    return CaptionError(message, cause=cause, **kwargs)


class CampaignPipeline:
    """
    Main orchestrator for one campaign run.

    Workflow:
    1. Acquire product photo (upload > explicit URL > product.image_url)
    2. Segment (remove.bg if configured, local flood fill otherwise / on failure)
    3. Generate character backdrop
    4. Composite master poster
    5. Crop the five platform sizes
    6. Captions (template fallback)

    Holds no per-run state; one instance serves concurrent requests.
    """

    def __init__(
        self,
        settings: Settings,
        product_source: ProductSource,
        backdrop_generator: Backdrops,
        caption_writer: Captions,
        segmentation_service: Optional[SegmentationService] = None,
        segmenter: Optional[BackgroundSegmenter] = None,
        compositor: Optional[HeroCompositor] = None,
        cropper: Optional[PlatformCropper] = None,
        templates: Optional[CaptionTemplates] = None,
    ):
        quality = QualityOptions(quality=settings.jpeg_quality)

        self.settings = settings
        self.product_source = product_source
        self.backdrop_generator = backdrop_generator
        self.caption_writer = caption_writer
        self.segmentation_service = segmentation_service
        self.segmenter = segmenter or BackgroundSegmenter(
            threshold=settings.white_threshold,
            working_width=settings.segmentation_working_width,
        )
        self.compositor = compositor or HeroCompositor(
            CompositorLayout(overflow_policy=OverflowPolicy(settings.overflow_policy.lower())),
            quality,
        )
        self.cropper = cropper or PlatformCropper(quality=quality)
        self.templates = templates or CaptionTemplates(settings.brand_name)

    @contextmanager
    def _stage(
        self,
        stage: PipelineStage,
        events: List[StageEvent],
        on_progress: Optional[ProgressCallback]
    ) -> Iterator[None]:
        def emit(status: str, started: float, detail: Optional[str] = None):
            event = StageEvent(
                stage=stage,
                status=status,
                duration_ms=int((time.monotonic() - started) * 1000),
                detail=detail,
            )
            events.append(event)
            if on_progress:
                on_progress(event)

        started = time.monotonic()
        emit("started", started)
        logger.info(f"Stage {stage.value}: started")

        try:
            yield
        except asyncio.CancelledError:
            logger.warning(f"Stage {stage.value}: cancelled")
            raise
        except Exception as e:
            if isinstance(e, CampaignError) and e.stage == stage:
                emit("failed", started, str(e))
                logger.error(f"Stage {stage.value}: failed - {e}")
                raise
            error = _stage_error(stage, e)
            emit("failed", started, str(error))
            logger.error(f"Stage {stage.value}: failed - {error}")
            raise error from e

        emit("completed", started)
        logger.info(f"Stage {stage.value}: completed in {events[-1].duration_ms}ms")

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    async def acquire_product(
        self,
        product: ProductInfo,
        image_base64: Optional[str] = None,
        image_url: Optional[str] = None
    ) -> bytes:
        """Raw product photo bytes. Upload wins over URL."""
        if image_base64:
            logger.info("Using uploaded product image")
            return self.product_source.decode_inline(image_base64)

        url = image_url or product.image_url
        if not url:
            raise AcquisitionError("No product image: upload one or provide an image URL", status_code=400)

        return await self.product_source.download_image(url)

    async def segment(self, raw: bytes, source: RasterImage) -> ProductCutout:
        """
        External matting first; any failure falls back to the local segmenter.

        raw is sent to the external service, source (the decoded photo) is
        what the local segmenter works from.
        """
        if self.segmentation_service is not None and self.segmentation_service.is_available():
            try:
                result = await self.segmentation_service.segment(raw)
                layer = await asyncio.to_thread(decode, result.png_bytes)
                png = await asyncio.to_thread(encode, layer, "PNG")
                logger.info(f"Background removed by {result.provider}")
                return ProductCutout(layer=layer, png=png, provider=result.provider)
            except Exception as e:
                logger.warning(f"External segmentation failed, using local segmenter: {e!r}")

        layer = await asyncio.to_thread(self.segmenter.segment, source)
        png = await asyncio.to_thread(encode, layer, "PNG")
        return ProductCutout(layer=layer, png=png, provider="local")

    async def remove_background(self, data: bytes) -> ProductCutout:
        """Decode and segment one photo, for standalone background removal."""
        events: List[StageEvent] = []
        with self._stage(PipelineStage.ACQUIRE_PRODUCT, events, None):
            source = await asyncio.to_thread(decode, data)
        with self._stage(PipelineStage.SEGMENT, events, None):
            return await self.segment(data, source)

    async def write_captions(self, product: ProductInfo) -> Tuple[CaptionSet, Optional[str]]:
        """(captions, error message or None). Never raises CaptionError."""
        try:
            return await self.caption_writer.generate(product), None
        except CaptionError as e:
            logger.warning(f"Caption generation failed, using templates: {e}")
            return self.templates.build(product), str(e)
        except Exception as e:
            error = CaptionError("Caption generation failed", cause=e)
            logger.warning(f"Caption generation failed, using templates: {error}")
            return self.templates.build(product), str(error)

    # ------------------------------------------------------------------
    # Full run
    # ------------------------------------------------------------------

    async def run(
        self,
        product: ProductInfo,
        image_base64: Optional[str] = None,
        image_url: Optional[str] = None,
        on_progress: Optional[ProgressCallback] = None
    ) -> CampaignResult:
        """
        Run every stage and return the finished campaign.

        Raises:
            AcquisitionError, SegmentationError, BackdropError,
            CompositeError, CropError: the first image stage that failed
        """
        campaign_id = new_campaign_id()
        events: List[StageEvent] = []
        logger.info(f"Campaign {campaign_id}: starting for '{product.name}'")

        try:
            with self._stage(PipelineStage.ACQUIRE_PRODUCT, events, on_progress):
                raw = await self.acquire_product(product, image_base64, image_url)
                source = await asyncio.to_thread(decode, raw)

            with self._stage(PipelineStage.SEGMENT, events, on_progress):
                cutout = await self.segment(raw, source)
            del raw, source

            with self._stage(PipelineStage.ACQUIRE_BACKDROP, events, on_progress):
                backdrop = await self.backdrop_generator.generate(product)
                logger.info(f"Backdrop {backdrop.scene_key}: {backdrop.width}x{backdrop.height}")

            with self._stage(PipelineStage.COMPOSITE, events, on_progress):
                master = await asyncio.to_thread(
                    self.compositor.composite_hero_poster,
                    backdrop.image_bytes,
                    cutout.layer,
                )
            transparent, segmentation = cutout.png, cutout.provider
            del cutout

            with self._stage(PipelineStage.CROP, events, on_progress):
                sizes = await asyncio.to_thread(self.cropper.generate_all_sizes, master)

        except asyncio.CancelledError:
            logger.warning(f"Campaign {campaign_id}: cancelled, discarding intermediate results")
            raise

        started = time.monotonic()
        captions, caption_error = await self.write_captions(product)
        event = StageEvent(
            stage=PipelineStage.CAPTIONS,
            status="fallback" if caption_error else "completed",
            duration_ms=int((time.monotonic() - started) * 1000),
            detail=caption_error,
        )
        events.append(event)
        if on_progress:
            on_progress(event)

        assets = CampaignAssetSet(
            master=master,
            transparent=transparent,
            sizes={key: sizes[key] for key in SIZE_KEYS},
        )
        logger.info(f"Campaign {campaign_id}: complete ({len(assets.as_dict())} assets)")

        return CampaignResult(
            campaign_id=campaign_id,
            assets=assets,
            captions=captions,
            caption_error=caption_error,
            meta={
                "outfit": backdrop.outfit,
                "scene_key": backdrop.scene_key,
                "segmentation": segmentation,
            },
            stages=events,
        )
