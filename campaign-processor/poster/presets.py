"""
Platform size catalog for campaign crops.

Every campaign is cut into the same five deliverables:
- Story / Reels (9:16)
- Vertical feed (4:5)
- Square feed (1:1)
- Landscape / YouTube (16:9) - content-aware framing
- Pinterest (2:3)

The key names are a stable vocabulary shared with the delivery webhook.
"""

from enum import Enum
from typing import Tuple, Optional, List
from dataclasses import dataclass


class FramingStrategy(Enum):
    """How the crop window is positioned."""
    CENTER = "center"
    CONTENT_AWARE = "content-aware"


@dataclass(frozen=True)
class PlatformSizeSpec:
    """One deliverable size."""
    name: str
    width: int
    height: int
    framing: FramingStrategy
    aspect_ratio: str
    description: str

    @property
    def size(self) -> Tuple[int, int]:
        return (self.width, self.height)


PLATFORM_SIZES: Tuple[PlatformSizeSpec, ...] = (
    PlatformSizeSpec(
        name="story_9x16", width=1080, height=1920,
        framing=FramingStrategy.CENTER,
        aspect_ratio="9:16",
        description="Instagram / TikTok / Snapchat Story"
    ),
    PlatformSizeSpec(
        name="vertical_4x5", width=1080, height=1350,
        framing=FramingStrategy.CENTER,
        aspect_ratio="4:5",
        description="Instagram / Facebook vertical feed"
    ),
    PlatformSizeSpec(
        name="square_1x1", width=1080, height=1080,
        framing=FramingStrategy.CENTER,
        aspect_ratio="1:1",
        description="Square feed post"
    ),
    PlatformSizeSpec(
        name="landscape_16x9", width=1920, height=1080,
        framing=FramingStrategy.CONTENT_AWARE,
        aspect_ratio="16:9",
        description="YouTube / X / LinkedIn landscape"
    ),
    PlatformSizeSpec(
        name="pinterest_2x3", width=1000, height=1500,
        framing=FramingStrategy.CENTER,
        aspect_ratio="2:3",
        description="Pinterest pin"
    ),
)

SIZE_KEYS: Tuple[str, ...] = tuple(spec.name for spec in PLATFORM_SIZES)
MASTER_KEY = "master"
TRANSPARENT_KEY = "transparent"
ASSET_KEYS: Tuple[str, ...] = SIZE_KEYS + (MASTER_KEY, TRANSPARENT_KEY)


def get_size_spec(name: str) -> Optional[PlatformSizeSpec]:
    """
    Look up a size by key.

    Examples:
        >>> get_size_spec("square_1x1").size
        (1080, 1080)
        >>> get_size_spec("Square-1x1").size
        (1080, 1080)
    """
    key = name.lower().replace("-", "_").replace(" ", "_")
    for spec in PLATFORM_SIZES:
        if spec.name == key:
            return spec
    return None


def get_size_options() -> List[dict]:
    """Catalog as plain dicts for the API."""
    return [
        {
            "id": spec.name,
            "name": spec.description,
            "dimensions": f"{spec.width}x{spec.height}",
            "aspect_ratio": spec.aspect_ratio,
            "framing": spec.framing.value,
        }
        for spec in PLATFORM_SIZES
    ]
