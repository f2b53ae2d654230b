"""
BackgroundSegmenter - local fallback background removal.

Product photos from e-commerce stores almost always sit on a white or
near-white backdrop. We flood-fill that backdrop from the image border and
make it transparent:

1. Downscale to a bounded working width (bounds memory and BFS cost)
2. Classify pixels whose R, G and B all exceed the threshold
3. Multi-source BFS from every qualifying border pixel, 4-connected
4. Zero the alpha of every reached pixel

Bright pixels enclosed by the product (highlights, labels) are never reached,
so they stay opaque.
"""

import logging
from collections import deque
from dataclasses import dataclass, field
from typing import Union

import numpy as np

from .raster import RasterImage, EncodedImage, decode, encode, scale_to_width

logger = logging.getLogger(__name__)

DEFAULT_WHITE_THRESHOLD = 235
DEFAULT_WORKING_WIDTH = 1000


@dataclass
class BackgroundMask:
    """Per-pixel background classification. Applied exactly once."""
    width: int
    height: int
    cells: np.ndarray  # bool, (height, width)
    _applied: bool = field(default=False, repr=False)

    @property
    def count(self) -> int:
        return int(self.cells.sum())

    @property
    def is_empty(self) -> bool:
        return not self.cells.any()

    def apply(self, raster: RasterImage) -> RasterImage:
        """
        Make masked pixels fully transparent, in place.

        The raster must be a buffer the caller owns exclusively.
        """
        if self._applied:
            raise RuntimeError("BackgroundMask has already been applied")
        if raster.size != (self.width, self.height):
            raise ValueError(
                f"Mask {self.width}x{self.height} does not match raster {raster.width}x{raster.height}"
            )
        raster.pixels[self.cells, 3] = 0
        self._applied = True
        return raster


class BackgroundSegmenter:
    """
    Deterministic colour-threshold flood fill.

    Used when the external matting service is not configured or fails.
    """

    def __init__(
        self,
        threshold: int = DEFAULT_WHITE_THRESHOLD,
        working_width: int = DEFAULT_WORKING_WIDTH
    ):
        """
        Args:
            threshold: A channel must be strictly above this to count as background
            working_width: Maximum width the photo is processed at
        """
        if not 0 <= threshold <= 255:
            raise ValueError(f"threshold must be within 0..255, got {threshold}")
        if working_width <= 0:
            raise ValueError(f"working_width must be positive, got {working_width}")
        self.threshold = threshold
        self.working_width = working_width

    def prepare(self, raster: RasterImage) -> RasterImage:
        """Owned working copy, downscaled to the working width."""
        return scale_to_width(raster, self.working_width)

    def classify(self, raster: RasterImage) -> np.ndarray:
        """Boolean grid of background-coloured pixels."""
        rgb = raster.pixels[:, :, :3]
        return np.all(rgb > self.threshold, axis=2)

    def build_mask(self, raster: RasterImage) -> BackgroundMask:
        """Flood-fill background-coloured pixels reachable from the border."""
        width, height = raster.width, raster.height
        candidate = self.classify(raster).ravel().tolist()
        visited = bytearray(width * height)
        queue = deque()

        def seed(idx: int):
            if candidate[idx] and not visited[idx]:
                visited[idx] = 1
                queue.append(idx)

        last_row = (height - 1) * width
        for x in range(width):
            seed(x)
            seed(last_row + x)
        for y in range(height):
            seed(y * width)
            seed(y * width + width - 1)

        seeds = len(queue)
        while queue:
            idx = queue.popleft()
            x = idx % width
            if idx >= width:
                seed(idx - width)
            if idx < last_row:
                seed(idx + width)
            if x > 0:
                seed(idx - 1)
            if x < width - 1:
                seed(idx + 1)

        cells = np.frombuffer(bytes(visited), dtype=np.uint8).reshape(height, width).astype(bool)
        mask = BackgroundMask(width=width, height=height, cells=cells)
        logger.debug(f"Flood fill: {seeds} border seeds, {mask.count}/{width * height} background pixels")
        return mask

    def segment(self, raster: RasterImage) -> RasterImage:
        """
        Cut the product out of its background.

        Returns a new raster at working resolution; the input is untouched.
        """
        working = self.prepare(raster)
        mask = self.build_mask(working)
        if mask.is_empty:
            logger.info("No border background found - leaving image opaque")
        return mask.apply(working)

    def remove_background(self, data: Union[bytes, EncodedImage]) -> EncodedImage:
        """Decode, segment and return a transparent PNG."""
        cutout = self.segment(decode(data))
        logger.info(f"Local background removal done: {cutout.width}x{cutout.height}")
        return encode(cutout, "PNG")
