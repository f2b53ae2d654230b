"""
HeroCompositor - builds the master poster.

Layer order, back to front:
1. Character backdrop, cover-fitted to the 1080x1920 canvas
2. Drop shadow: blurred black silhouette of the product, multiply blend
3. Transparent product, alpha-over, bottom-centre

The product is only ever scaled uniformly; its pixels are never recoloured.
"""

import math
import logging
from contextlib import contextmanager
from enum import Enum
from dataclasses import dataclass
from typing import Iterator, Optional, Tuple, Union

import numpy as np
from PIL import Image, ImageFilter

from .errors import CompositeError, CampaignError
from .raster import (
    RasterImage, EncodedImage, FitPolicy, QualityOptions,
    decode, encode, resize,
)

logger = logging.getLogger(__name__)

CANVAS_WIDTH = 1080
CANVAS_HEIGHT = 1920
PRODUCT_MAX_WIDTH = 450
BOTTOM_MARGIN = 120
SHADOW_BLUR_RADIUS = 18
SHADOW_OFFSET_Y = 12
SHADOW_OPACITY = 0.45


class OverflowPolicy(Enum):
    """What to do with a product taller than the canvas minus the margin."""
    RESCALE = "rescale"  # Shrink further so it sits above the margin
    CLAMP = "clamp"      # Clamp top to 0 and let it overflow the margin


@dataclass(frozen=True)
class PlacementRect:
    """Layer position in canvas pixels."""
    left: int
    top: int
    width: int
    height: int

    @property
    def right(self) -> int:
        return self.left + self.width

    @property
    def bottom(self) -> int:
        return self.top + self.height

    @property
    def aspect_ratio(self) -> float:
        return self.width / self.height


@dataclass(frozen=True)
class CompositorLayout:
    """Fixed poster geometry."""
    canvas_width: int = CANVAS_WIDTH
    canvas_height: int = CANVAS_HEIGHT
    product_max_width: int = PRODUCT_MAX_WIDTH
    bottom_margin: int = BOTTOM_MARGIN
    shadow_blur_radius: int = SHADOW_BLUR_RADIUS
    shadow_offset_y: int = SHADOW_OFFSET_Y
    shadow_opacity: float = SHADOW_OPACITY
    overflow_policy: OverflowPolicy = OverflowPolicy.RESCALE


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def compute_placement(
    product_width: int,
    product_height: int,
    layout: CompositorLayout = CompositorLayout()
) -> PlacementRect:
    """
    Where the product goes on the canvas.

    Width is capped at product_max_width (never upscaled), height follows the
    aspect ratio. Centred horizontally, anchored above the bottom margin.
    """
    if product_width <= 0 or product_height <= 0:
        raise ValueError(f"Product layer has no area: {product_width}x{product_height}")

    aspect = product_height / product_width
    width = min(layout.product_max_width, product_width)
    height = max(1, _round_half_up(width * aspect))

    available = layout.canvas_height - layout.bottom_margin
    if height > available and layout.overflow_policy == OverflowPolicy.RESCALE:
        height = max(1, available)
        width = max(1, _round_half_up(height / aspect))

    left = _round_half_up((layout.canvas_width - width) / 2)
    top = max(0, layout.canvas_height - height - layout.bottom_margin)
    return PlacementRect(left=left, top=top, width=width, height=height)


def build_shadow(layer: RasterImage, blur_radius: int, opacity: float) -> Tuple[RasterImage, int]:
    """
    Blurred black silhouette of a layer.

    The silhouette is padded by twice the blur radius so the blur has room to
    spread. Returns (shadow, pad); the shadow's origin sits `pad` pixels up and
    left of the layer's origin.
    """
    pad = max(0, blur_radius * 2)
    alpha = np.rint(layer.alpha.astype(np.float32) * opacity).astype(np.uint8)

    silhouette = np.zeros((layer.height + pad * 2, layer.width + pad * 2, 4), dtype=np.uint8)
    silhouette[pad:pad + layer.height, pad:pad + layer.width, 3] = alpha

    image = Image.fromarray(silhouette)
    if blur_radius > 0:
        image = image.filter(ImageFilter.GaussianBlur(blur_radius))
    shadow = RasterImage.from_pil(image)
    # Blur resampling may bleed grey into RGB; a shadow is pure black
    shadow.pixels[:, :, :3] = 0
    return shadow, pad


def _overlap(canvas: RasterImage, layer: RasterImage, left: int, top: int):
    """Canvas and layer slices for the visible part of a placed layer."""
    x0, y0 = max(0, left), max(0, top)
    x1 = min(canvas.width, left + layer.width)
    y1 = min(canvas.height, top + layer.height)
    if x1 <= x0 or y1 <= y0:
        return None
    canvas_region = (slice(y0, y1), slice(x0, x1))
    layer_region = (slice(y0 - top, y1 - top), slice(x0 - left, x1 - left))
    return canvas_region, layer_region


def multiply_blend(canvas: RasterImage, layer: RasterImage, left: int, top: int) -> None:
    """Darken canvas by the layer (multiply, weighted by layer alpha), in place."""
    regions = _overlap(canvas, layer, left, top)
    if regions is None:
        return
    canvas_region, layer_region = regions

    dst = canvas.pixels[canvas_region][:, :, :3].astype(np.float32)
    src = layer.pixels[layer_region].astype(np.float32)
    a = src[:, :, 3:4] / 255.0
    factor = 1.0 - a + a * (src[:, :, :3] / 255.0)
    canvas.pixels[canvas_region + (slice(0, 3),)] = np.clip(np.rint(dst * factor), 0, 255).astype(np.uint8)


def alpha_over(canvas: RasterImage, layer: RasterImage, left: int, top: int) -> None:
    """Standard source-over blend onto an opaque canvas, in place."""
    regions = _overlap(canvas, layer, left, top)
    if regions is None:
        return
    canvas_region, layer_region = regions

    dst = canvas.pixels[canvas_region][:, :, :3].astype(np.float32)
    src = layer.pixels[layer_region].astype(np.float32)
    a = src[:, :, 3:4] / 255.0
    out = src[:, :, :3] * a + dst * (1.0 - a)
    canvas.pixels[canvas_region + (slice(0, 3),)] = np.clip(np.rint(out), 0, 255).astype(np.uint8)


@contextmanager
def _step(name: str) -> Iterator[None]:
    """Tag any failure inside a compositing step."""
    try:
        yield
    except CompositeError:
        raise
    except CampaignError as e:
        raise CompositeError(f"Composite failed at {name}", step=name, cause=e.message) from e
    except Exception as e:
        raise CompositeError(f"Composite failed at {name}", step=name, cause=e) from e


class HeroCompositor:
    """
    Renders the master poster from a backdrop and a transparent product.

    Every step produces a new raster; inputs are left untouched.
    """

    def __init__(
        self,
        layout: Optional[CompositorLayout] = None,
        quality: QualityOptions = QualityOptions()
    ):
        self.layout = layout or CompositorLayout()
        self.quality = quality

    def normalize_backdrop(self, backdrop: Union[RasterImage, EncodedImage, bytes]) -> RasterImage:
        """Cover-fit the backdrop to the canvas, centred, opaque."""
        raster = backdrop if isinstance(backdrop, RasterImage) else decode(backdrop)
        canvas = resize(
            raster,
            self.layout.canvas_width,
            self.layout.canvas_height,
            fit=FitPolicy.COVER,
            allow_upscale=True,
        )
        canvas.pixels[:, :, 3] = 255
        return canvas

    def scale_product(self, product: RasterImage) -> Tuple[RasterImage, PlacementRect]:
        """Uniformly scale the product into its placement box."""
        placement = compute_placement(product.width, product.height, self.layout)
        layer = resize(
            product,
            placement.width,
            placement.height,
            fit=FitPolicy.CONTAIN,
        )
        return layer, placement

    def composite(
        self,
        backdrop: Union[RasterImage, EncodedImage, bytes],
        product: RasterImage
    ) -> RasterImage:
        """Compose backdrop, shadow and product into a canvas raster."""
        with _step(CompositeError.BACKDROP_NORMALIZE):
            canvas = self.normalize_backdrop(backdrop)

        with _step(CompositeError.PRODUCT_SCALE):
            layer, placement = self.scale_product(product)

        with _step(CompositeError.SHADOW_SYNTHESIS):
            shadow, pad = build_shadow(
                layer,
                self.layout.shadow_blur_radius,
                self.layout.shadow_opacity,
            )
            multiply_blend(
                canvas,
                shadow,
                placement.left - pad,
                placement.top + self.layout.shadow_offset_y - pad,
            )

        with _step(CompositeError.PRODUCT_BLEND):
            alpha_over(canvas, layer, placement.left, placement.top)

        logger.info(
            f"Composited product {placement.width}x{placement.height} "
            f"at ({placement.left}, {placement.top})"
        )
        return canvas

    def composite_hero_poster(
        self,
        backdrop: Union[RasterImage, EncodedImage, bytes],
        product: RasterImage
    ) -> EncodedImage:
        """Compose and encode the master image (progressive JPEG)."""
        canvas = self.composite(backdrop, product)
        with _step(CompositeError.ENCODE):
            return encode(canvas, "JPEG", self.quality)


def composite_hero_poster(
    backdrop: Union[RasterImage, EncodedImage, bytes],
    product: RasterImage,
    layout: Optional[CompositorLayout] = None
) -> EncodedImage:
    """Module-level shortcut for HeroCompositor(layout).composite_hero_poster()."""
    return HeroCompositor(layout).composite_hero_poster(backdrop, product)
