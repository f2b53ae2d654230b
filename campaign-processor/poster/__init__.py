# Poster imaging core
# Background removal, hero compositing and platform crops - pure code, no AI

from .raster import RasterImage, EncodedImage, FitPolicy, QualityOptions, decode, encode, resize
from .segmenter import BackgroundSegmenter, BackgroundMask
from .compositor import (
    HeroCompositor, CompositorLayout, OverflowPolicy, PlacementRect,
    compute_placement, composite_hero_poster,
)
from .cropper import PlatformCropper, generate_all_sizes
from .presets import (
    PLATFORM_SIZES, PlatformSizeSpec, FramingStrategy,
    SIZE_KEYS, ASSET_KEYS, MASTER_KEY, TRANSPARENT_KEY,
    get_size_spec, get_size_options,
)

__all__ = [
    "RasterImage",
    "EncodedImage",
    "FitPolicy",
    "QualityOptions",
    "decode",
    "encode",
    "resize",
    "BackgroundSegmenter",
    "BackgroundMask",
    "HeroCompositor",
    "CompositorLayout",
    "OverflowPolicy",
    "PlacementRect",
    "compute_placement",
    "composite_hero_poster",
    "PlatformCropper",
    "generate_all_sizes",
    "PLATFORM_SIZES",
    "PlatformSizeSpec",
    "FramingStrategy",
    "SIZE_KEYS",
    "ASSET_KEYS",
    "MASTER_KEY",
    "TRANSPARENT_KEY",
    "get_size_spec",
    "get_size_options",
]
