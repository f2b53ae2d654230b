"""
PlatformCropper - cuts the master poster into the platform sizes.

All sizes use cover fit (never letterboxed). Portrait and square targets crop
around the centre. The 16:9 target is aggressive on a 9:16 master, so its
window is placed on the most salient band instead.
"""

import logging
from typing import Dict, Optional, Sequence, Tuple, Union

import numpy as np
from PIL import Image, ImageFilter

from .errors import CropError, CampaignError
from .presets import PLATFORM_SIZES, PlatformSizeSpec, FramingStrategy
from .raster import (
    RasterImage, EncodedImage, FitPolicy, QualityOptions,
    decode, encode, resize,
)

logger = logging.getLogger(__name__)

CENTER = (0.5, 0.5)
SALIENCE_MAX_SIDE = 256

# Weights of the salience terms
EDGE_WEIGHT = 0.4
SATURATION_WEIGHT = 0.3
SKIN_WEIGHT = 0.3


def salience_map(raster: RasterImage) -> np.ndarray:
    """
    Rough visual-attention map on a thumbnail.

    Combines edge energy, colour saturation and a skin-tone term, weighted
    by opacity. Values are in 0..1, shape (thumb_height, thumb_width).
    """
    thumb = raster.to_pil()
    thumb.thumbnail((SALIENCE_MAX_SIDE, SALIENCE_MAX_SIDE), Image.Resampling.LANCZOS)
    rgb = thumb.convert("RGB")

    edges = np.array(rgb.convert("L").filter(ImageFilter.FIND_EDGES), dtype=np.float32) / 255.0
    # Pillow copies border pixels through 3x3 filters unchanged; they are not edges
    edges[[0, -1], :] = 0.0
    edges[:, [0, -1]] = 0.0
    saturation = np.asarray(rgb.convert("HSV"), dtype=np.float32)[:, :, 1] / 255.0

    channels = np.asarray(rgb, dtype=np.int16)
    r, g, b = channels[:, :, 0], channels[:, :, 1], channels[:, :, 2]
    spread = channels.max(axis=2) - channels.min(axis=2)
    skin = (
        (r > 95) & (g > 40) & (b > 20)
        & (r > g) & (r > b)
        & ((r - g) > 15) & (spread > 15)
    ).astype(np.float32)

    alpha = np.asarray(thumb.getchannel("A"), dtype=np.float32) / 255.0
    return (EDGE_WEIGHT * edges + SATURATION_WEIGHT * saturation + SKIN_WEIGHT * skin) * alpha


def best_window_position(profile: np.ndarray, length: int) -> float:
    """
    Position (0..1 of the slack) of the window with the highest total.

    Ties go to the window closest to the centre, so a flat profile yields 0.5.
    """
    slack = len(profile) - length
    if slack <= 0:
        return 0.5

    cumulative = np.concatenate(([0.0], np.cumsum(profile, dtype=np.float64)))
    sums = cumulative[length:] - cumulative[:-length]
    best = sums.max()
    tolerance = 1e-9 * max(1.0, abs(best))
    if best - sums.min() <= tolerance:
        return 0.5
    candidates = np.flatnonzero(sums >= best - tolerance)
    start = candidates[np.argmin(np.abs(candidates - slack / 2))]
    return float(start) / slack


def content_aware_anchor(raster: RasterImage, target_width: int, target_height: int) -> Tuple[float, float]:
    """Cover-fit crop anchor that keeps the most salient region."""
    scale = max(target_width / raster.width, target_height / raster.height)
    window_w = target_width / scale
    window_h = target_height / scale

    salience = salience_map(raster)
    thumb_h, thumb_w = salience.shape

    if window_w < raster.width - 0.5:
        length = max(1, min(thumb_w, int(round(window_w * thumb_w / raster.width))))
        return (best_window_position(salience.sum(axis=0), length), 0.5)
    if window_h < raster.height - 0.5:
        length = max(1, min(thumb_h, int(round(window_h * thumb_h / raster.height))))
        return (0.5, best_window_position(salience.sum(axis=1), length))
    return CENTER


class PlatformCropper:
    """
    Derives every catalog size from one master image.

    All-or-nothing: if any size fails, no outputs are returned.
    """

    def __init__(
        self,
        catalog: Sequence[PlatformSizeSpec] = PLATFORM_SIZES,
        quality: QualityOptions = QualityOptions()
    ):
        self.catalog = tuple(catalog)
        self.quality = quality

    def anchor_for(self, master: RasterImage, spec: PlatformSizeSpec) -> Tuple[float, float]:
        if spec.framing == FramingStrategy.CONTENT_AWARE:
            return content_aware_anchor(master, spec.width, spec.height)
        return CENTER

    def crop(self, master: RasterImage, spec: PlatformSizeSpec) -> RasterImage:
        """Cover-fit the master into one size."""
        anchor = self.anchor_for(master, spec)
        logger.debug(f"{spec.name}: anchor=({anchor[0]:.3f}, {anchor[1]:.3f})")
        return resize(
            master,
            spec.width,
            spec.height,
            fit=FitPolicy.COVER,
            anchor=anchor,
            allow_upscale=True,
        )

    def generate_all_sizes(self, master: Optional[Union[EncodedImage, bytes]]) -> Dict[str, EncodedImage]:
        """
        Crop and encode every size in catalog order.

        Raises:
            CropError: missing or corrupt master, or any size failing
        """
        if master is None or len(master) == 0:
            raise CropError("Master image is missing")

        try:
            raster = decode(master)
        except CampaignError as e:
            raise CropError("Master image could not be decoded", cause=e.cause or e.message) from e

        results: Dict[str, EncodedImage] = {}
        for spec in self.catalog:
            try:
                results[spec.name] = encode(self.crop(raster, spec), "JPEG", self.quality)
            except Exception as e:
                raise CropError(
                    f"Failed to generate {spec.name} ({spec.width}x{spec.height})",
                    size_name=spec.name,
                    cause=e,
                ) from e
            logger.info(f"Generated {spec.name} ({spec.width}x{spec.height})")

        return results


def generate_all_sizes(master: Union[EncodedImage, bytes]) -> Dict[str, EncodedImage]:
    """Module-level shortcut using the default catalog."""
    return PlatformCropper().generate_all_sizes(master)
