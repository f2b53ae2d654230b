"""
Pixel buffer access - decode, encode and resize raw RGBA rasters.

Everything downstream (segmenter, compositor, cropper) works on RasterImage:
a fixed 4-channel numpy grid. Encoded bytes only exist at component
boundaries.
"""

import io
import logging
from enum import Enum
from dataclasses import dataclass
from typing import Tuple, Union

import numpy as np
from PIL import Image, ImageOps, UnidentifiedImageError

from .errors import DecodeError, EncodeError

logger = logging.getLogger(__name__)

CHANNELS = 4  # R, G, B, A

SUPPORTED_FORMATS = {
    "JPEG": ("image/jpeg", "jpg"),
    "PNG": ("image/png", "png"),
    "WEBP": ("image/webp", "webp"),
}
FORMAT_ALIASES = {"JPG": "JPEG"}

Color = Tuple[int, int, int, int]
TRANSPARENT: Color = (0, 0, 0, 0)


class FitPolicy(Enum):
    """Resize policies."""
    COVER = "cover"      # Fill the box, crop overflow
    CONTAIN = "contain"  # Fit inside the box, pad the rest


@dataclass
class RasterImage:
    """Decoded image: row-major RGBA pixels, top row first."""
    width: int
    height: int
    pixels: np.ndarray
    channels: int = CHANNELS

    def __post_init__(self):
        if self.channels != CHANNELS:
            raise ValueError(f"RasterImage is always {CHANNELS}-channel, got {self.channels}")
        expected = (self.height, self.width, CHANNELS)
        if self.pixels.shape != expected or self.pixels.dtype != np.uint8:
            raise ValueError(
                f"Pixel grid {self.pixels.shape}/{self.pixels.dtype} "
                f"does not match {self.width}x{self.height}x{CHANNELS} uint8"
            )

    @classmethod
    def from_buffer(cls, width: int, height: int, buffer: bytes) -> "RasterImage":
        """Build from a linear width*height*4 byte buffer."""
        if len(buffer) != width * height * CHANNELS:
            raise ValueError(
                f"Buffer length {len(buffer)} != {width}*{height}*{CHANNELS}"
            )
        pixels = np.frombuffer(buffer, dtype=np.uint8).reshape(height, width, CHANNELS).copy()
        return cls(width=width, height=height, pixels=pixels)

    @classmethod
    def from_pil(cls, image: Image.Image) -> "RasterImage":
        """Build from a PIL image, forcing an alpha channel."""
        rgba = image if image.mode == "RGBA" else image.convert("RGBA")
        pixels = np.array(rgba, dtype=np.uint8)
        return cls(width=rgba.width, height=rgba.height, pixels=pixels)

    def to_pil(self) -> Image.Image:
        return Image.fromarray(self.pixels)

    def copy(self) -> "RasterImage":
        return RasterImage(width=self.width, height=self.height, pixels=self.pixels.copy())

    @property
    def buffer(self) -> bytes:
        """Linear byte buffer, length width*height*channels."""
        return self.pixels.tobytes()

    @property
    def size(self) -> Tuple[int, int]:
        return (self.width, self.height)

    @property
    def alpha(self) -> np.ndarray:
        return self.pixels[:, :, 3]


@dataclass(frozen=True)
class EncodedImage:
    """Compressed image bytes plus their format tag."""
    data: bytes
    format: str

    @property
    def mime_type(self) -> str:
        return SUPPORTED_FORMATS[self.format][0]

    @property
    def extension(self) -> str:
        return SUPPORTED_FORMATS[self.format][1]

    def __len__(self) -> int:
        return len(self.data)


@dataclass(frozen=True)
class QualityOptions:
    """Lossy encoder settings."""
    quality: int = 95
    progressive: bool = True


def normalize_format(format: str) -> str:
    """Canonical Pillow format name, or EncodeError."""
    fmt = (format or "").upper().lstrip(".")
    fmt = FORMAT_ALIASES.get(fmt, fmt)
    if fmt not in SUPPORTED_FORMATS:
        raise EncodeError(
            f"Unsupported output format '{format}'",
            details={"supported": sorted(SUPPORTED_FORMATS)}
        )
    return fmt


def decode(encoded: Union[EncodedImage, bytes]) -> RasterImage:
    """
    Decode compressed bytes into a 4-channel raster.

    Raises:
        DecodeError: empty, truncated or unrecognised input
    """
    data = encoded.data if isinstance(encoded, EncodedImage) else encoded
    if not data:
        raise DecodeError("Image data is empty")

    try:
        with Image.open(io.BytesIO(data)) as image:
            image.load()
            image = ImageOps.exif_transpose(image)
            raster = RasterImage.from_pil(image)
    except (UnidentifiedImageError, Image.DecompressionBombError) as e:
        raise DecodeError("Unsupported or unrecognised image data", cause=e)
    except (OSError, ValueError, SyntaxError) as e:
        raise DecodeError("Malformed image data", cause=e)

    if raster.width == 0 or raster.height == 0:
        raise DecodeError("Image has zero dimensions")
    return raster


def encode(
    raster: RasterImage,
    format: str = "JPEG",
    options: QualityOptions = QualityOptions()
) -> EncodedImage:
    """
    Encode a raster.

    JPEG has no alpha: transparent pixels are flattened onto white.

    Raises:
        EncodeError: unsupported format or encoder failure
    """
    fmt = normalize_format(format)
    image = raster.to_pil()
    save_args = {}

    if fmt == "JPEG":
        flat = Image.new("RGB", image.size, (255, 255, 255))
        flat.paste(image, mask=image.split()[3])
        image = flat
        save_args = {
            "quality": options.quality,
            "progressive": options.progressive,
            "optimize": True,
        }
    elif fmt == "WEBP":
        save_args = {"quality": options.quality}

    buffer = io.BytesIO()
    try:
        image.save(buffer, format=fmt, **save_args)
    except (OSError, ValueError) as e:
        raise EncodeError(f"Failed to encode {fmt}", cause=e)
    return EncodedImage(data=buffer.getvalue(), format=fmt)


def _scaled_size(width: int, height: int, scale: float) -> Tuple[int, int]:
    return (max(1, int(round(width * scale))), max(1, int(round(height * scale))))


def _crop_offset(overflow: int, anchor: float) -> int:
    anchor = min(1.0, max(0.0, anchor))
    return int(round(overflow * anchor))


def resize(
    raster: RasterImage,
    target_width: int,
    target_height: int,
    fit: FitPolicy = FitPolicy.COVER,
    anchor: Tuple[float, float] = (0.5, 0.5),
    allow_upscale: bool = False,
    background: Color = TRANSPARENT
) -> RasterImage:
    """
    Resize into an exact target box.

    Args:
        raster: Source raster (not modified)
        target_width: Output width
        target_height: Output height
        fit: COVER fills and crops, CONTAIN fits and pads
        anchor: Crop position for COVER as fractions of the overflow
            (0.0 = left/top, 0.5 = centre, 1.0 = right/bottom)
        allow_upscale: Scale factors above 1 are capped unless set
        background: Pad colour where the scaled image falls short

    Returns:
        New raster of exactly target_width x target_height
    """
    if target_width <= 0 or target_height <= 0:
        raise ValueError(f"Invalid target size {target_width}x{target_height}")
    if raster.width <= 0 or raster.height <= 0:
        raise ValueError(f"Cannot resize empty raster {raster.width}x{raster.height}")

    sx = target_width / raster.width
    sy = target_height / raster.height
    scale = max(sx, sy) if fit == FitPolicy.COVER else min(sx, sy)
    if not allow_upscale:
        scale = min(scale, 1.0)

    new_w, new_h = _scaled_size(raster.width, raster.height, scale)
    image = raster.to_pil()
    if (new_w, new_h) != image.size:
        image = image.resize((new_w, new_h), Image.Resampling.LANCZOS)

    if fit == FitPolicy.COVER:
        left = _crop_offset(max(0, new_w - target_width), anchor[0])
        top = _crop_offset(max(0, new_h - target_height), anchor[1])
        image = image.crop((
            left,
            top,
            left + min(new_w, target_width),
            top + min(new_h, target_height),
        ))

    if image.size != (target_width, target_height):
        canvas = Image.new("RGBA", (target_width, target_height), background)
        x = (target_width - image.width) // 2
        y = (target_height - image.height) // 2
        canvas.alpha_composite(image, (x, y))
        image = canvas

    return RasterImage.from_pil(image)


def scale_to_width(raster: RasterImage, max_width: int) -> RasterImage:
    """
    Downscale to at most max_width, preserving aspect ratio.

    Always returns a new, independently owned raster.
    """
    if raster.width <= max_width:
        return raster.copy()
    new_h = max(1, int(round(raster.height * max_width / raster.width)))
    image = raster.to_pil().resize((max_width, new_h), Image.Resampling.LANCZOS)
    logger.debug(f"Downscaled {raster.width}x{raster.height} -> {max_width}x{new_h}")
    return RasterImage.from_pil(image)
