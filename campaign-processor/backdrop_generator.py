"""
BackdropGenerator - AI character backdrop for the hero poster.

The brand ambassador is rendered standing in a scene that matches the
product's mood. The product itself is never part of the generated image; it
is composited on top afterwards, so the prompt keeps the character's hands
empty and the lower part of the frame clear.

Scene selection:
- Description keywords pick a scene (oud, rose, night, fresh, heritage)
- Otherwise a random scene from the full catalog
"""

import asyncio
import logging
import random
import re
from enum import Enum
from typing import Optional, Protocol, Tuple

from models import ProductInfo, BackdropResult
from poster.errors import DecodeError, ServiceError
from poster.raster import decode

logger = logging.getLogger(__name__)

CHARACTER_DESCRIPTION = """Premium 3D animated character render, Pixar/Disney quality.
Gulf Arab male, golden-brown warm skin tone.
Short dark neatly groomed beard (goatee with connected mustache, chestnut-black color).
Black neatly styled hair swept forward.
Warm expressive brown eyes, fully visible and clear.
Thick defined dark eyebrows. Confident friendly slight professional smile.
Standing confidently with arms relaxed naturally at sides, not holding anything.
Full body portrait, centered composition."""

STYLE_RULES = """4K ultra-resolution, RAW render quality.
Cinematic 3-point lighting: warm golden key light, soft fill light, metallic rim light.
Rich warm tones, deep luxurious shadows, golden highlights.
Shallow depth of field, creamy smooth bokeh background.
Photorealistic 3D character render with subsurface skin scattering."""

NEGATIVE_CONSTRAINTS = (
    "text", "watermarks", "logos", "subtitles", "UI elements",
    "glasses", "sunglasses", "eyewear",
    "holding a bottle or any object", "multiple people",
)


class Outfit(Enum):
    SUIT = "suit"
    THOBE = "thobe"


OUTFIT_PROMPTS = {
    Outfit.SUIT: (
        "Elegant black luxury suit with fine gold embroidery on lapels and cuffs. "
        "Crisp white dress shirt, lustrous gold silk tie, gold pocket square, black dress shoes. "
        "Bareheaded, showing full dark styled hair."
    ),
    Outfit.THOBE: (
        "Pristine brilliant white Saudi thobe. "
        "Black and gold bisht draped over the shoulders with wide gold zari embroidery trim. "
        "Traditional white ghutra with black iqal."
    ),
}

SCENES = {
    "luxury_formal": "Inside a royal palace hall, marble floors, golden columns, dramatic chandeliers, soft warm evening light.",
    "fresh_daytime": "A high-end glass-walled penthouse office overlooking a glittering city skyline at golden hour.",
    "oud_oriental": "A traditional luxury majlis with jewel-toned velvet cushions, carved woodwork, warm amber lantern light.",
    "night_bold": "Inside a sleek black luxury car interior, beige leather, city lights bokeh through the rear window.",
    "heritage_friday": "The courtyard of a historic Najdi mud palace, sunset light painting long shadows.",
    "rose_garden": "An ethereal rose garden at dusk, roses in full bloom, soft pink-gold light, petals floating gently.",
    "royal_library": "A private royal library, floor-to-ceiling mahogany bookshelves, leather-bound books, vintage globe.",
    "snow_cabin": "A luxurious alpine chalet interior, crackling fireplace, snow-covered mountains through tall windows.",
}

# First match wins. Latin keywords match whole words, Arabic ones also inside prefixed forms (العود)
SCENE_KEYWORDS: Tuple[Tuple[str, Tuple[str, ...]], ...] = (
    ("oud_oriental", ("oud", "عود", "oriental", "arabic")),
    ("rose_garden", ("rose", "floral", "ورد")),
    ("night_bold", ("night", "bold", "intense")),
    ("fresh_daytime", ("fresh", "light", "aqua")),
    ("heritage_friday", ("heritage", "tradition")),
)


class ImageProvider(Protocol):
    async def generate_image(self, prompt: str) -> bytes: ...


def _keyword_in(keyword: str, text: str) -> bool:
    if keyword.isascii():
        return re.search(rf"\b{re.escape(keyword)}\b", text) is not None
    return keyword in text


def choose_scene(description: str, rng: random.Random) -> str:
    """Scene key for a product description."""
    text = (description or "").lower()
    for scene_key, keywords in SCENE_KEYWORDS:
        if any(_keyword_in(keyword, text) for keyword in keywords):
            return scene_key
    return rng.choice(sorted(SCENES))


def choose_outfit(rng: random.Random) -> Outfit:
    return Outfit.THOBE if rng.random() < 0.5 else Outfit.SUIT


class BackdropGenerator:
    """
    Builds the backdrop prompt and asks the image provider for a render.

    Pass a seeded random.Random to make outfit and scene choice repeatable.
    """

    def __init__(
        self,
        image_provider: ImageProvider,
        brand_name: str = "Mahwous",
        rng: Optional[random.Random] = None
    ):
        self.image_provider = image_provider
        self.brand_name = brand_name
        self.rng = rng or random.Random()

    def build_prompt(self, product: ProductInfo, outfit: Outfit, scene_key: str) -> str:
        negatives = ", ".join(NEGATIVE_CONSTRAINTS)
        return f"""{CHARACTER_DESCRIPTION}

OUTFIT: {OUTFIT_PROMPTS[outfit]}

SCENE: {SCENES[scene_key]}

{STYLE_RULES}

The character is '{self.brand_name}', brand ambassador for a luxury Arabian perfume house.
Campaign for: {product.name}
Vertical 9:16 frame. Leave the lower third of the frame uncluttered; a product photo is placed there later.

NEGATIVE: no {negatives}."""

    async def generate(self, product: ProductInfo) -> BackdropResult:
        """
        Generate and validate a backdrop.

        Raises:
            ServiceError: Provider failure, or an empty / undecodable image
        """
        outfit = choose_outfit(self.rng)
        scene_key = choose_scene(product.description, self.rng)
        prompt = self.build_prompt(product, outfit, scene_key)

        logger.info(f"Generating backdrop: outfit={outfit.value}, scene={scene_key}")
        image_bytes = await self.image_provider.generate_image(prompt)

        if not image_bytes:
            raise ServiceError("Backdrop generator returned an empty image", service="backdrop")

        try:
            raster = await asyncio.to_thread(decode, image_bytes)
        except DecodeError as e:
            raise ServiceError("Backdrop generator returned an undecodable image", service="backdrop", cause=e)

        logger.info(f"Backdrop ready: {raster.width}x{raster.height}")
        return BackdropResult(
            image_bytes=image_bytes,
            outfit=outfit.value,
            scene_key=scene_key,
            width=raster.width,
            height=raster.height,
        )
