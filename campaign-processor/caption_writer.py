"""
Caption Writer - LLM campaign copy.

Asks the provider router for the whole campaign as one JSON object (brand
story, mood, per-platform captions, video prompts) and validates it.
Unlike the template set this can fail; callers fall back to
CaptionTemplates.
"""

import json
import logging
import re
from typing import Optional

from pydantic import ValidationError

from models import ProductInfo, CaptionSet
from poster.errors import CaptionError
from providers.base import TaskType, GenerationConfig
from providers.router import ProviderRouter

logger = logging.getLogger(__name__)

CAPTION_PROMPT = """You are the creative director for "{brand_name}" - a premium Arabian luxury perfume brand with a bold, confident and modern personality. The brand ambassador is an elegant Gulf Arab man.

Product details:
- Name: {name}
- Brand: {brand}
- Price: {price}
- Description: {description}
- Store URL: {url}

Write a complete social media campaign in Arabic (English brand terms allowed).

Return ONLY valid JSON with exactly this structure:
{{
  "brand_story": "2-3 sentence emotional Arabic story about this perfume. Evocative, poetic, luxury tone.",
  "perfume_mood": "One of: Luxury/Formal | Fresh/Daytime | Oud/Oriental | Night/Bold | Heritage/Friday",
  "captions": {{
    "instagram": "Arabic, 150-200 chars, 10-15 Arabic and English hashtags on new lines, emoji-rich.",
    "facebook": "Arabic, 200-300 chars, storytelling, 5-8 hashtags.",
    "twitter": "Arabic, max 280 chars, punchy, 3-5 hashtags.",
    "tiktok": "Arabic, short and energetic, 5-7 hashtags.",
    "pinterest": "English, SEO-optimized, 100-150 chars.",
    "haraj": "Arabic classified listing: product name, key notes as bullet points, price, brand, SEO keywords at the bottom.",
    "youtube": "Arabic and English video description, 3-4 sentences with keywords."
  }},
  "video_hook_prompt": "Cinematic 5-second luxury perfume advertisement hook for a video model. First person POV approaching the bottle.",
  "video_broll_prompt": "Cinematic 5-second extreme close-up of the perfume bottle, golden light, luxury product photography."
}}

Return ONLY the JSON:"""


class CaptionWriter:
    """Campaign copy from the LLM router."""

    def __init__(self, router: ProviderRouter, brand_name: str = "Mahwous", timeout: float = 45.0):
        self.router = router
        self.brand_name = brand_name
        self.timeout = timeout

    def build_prompt(self, product: ProductInfo) -> str:
        return CAPTION_PROMPT.format(
            brand_name=self.brand_name,
            name=product.name,
            brand=product.brand or "-",
            price=product.price or "-",
            description=product.description or "-",
            url=product.url or "-",
        )

    async def generate(self, product: ProductInfo) -> CaptionSet:
        """
        Generate and validate a caption set.

        Raises:
            CaptionError: provider failure, timeout, no JSON, or wrong shape
        """
        config = GenerationConfig(temperature=0.8, max_tokens=4096, timeout=self.timeout)

        logger.info(f"Generating captions for '{product.name}'")
        response = await self.router.generate_text(
            prompt=self.build_prompt(product),
            task_type=TaskType.CAPTIONS,
            config=config
        )

        if response.error:
            raise CaptionError(
                "Caption model failed",
                cause=response.error,
                timed_out=response.timed_out,
                details={"provider": response.provider},
            )

        data = self._parse_json_response(response.text)
        if data is None:
            raise CaptionError("Caption model returned no JSON object", cause=response.text[:200])

        try:
            captions = CaptionSet.model_validate(data)
        except ValidationError as e:
            raise CaptionError("Caption JSON has the wrong shape", cause=e)

        logger.info(f"Captions generated by {response.provider} ({response.model_used})")
        return captions

    def _parse_json_response(self, response_text: str) -> Optional[dict]:
        """Extract the JSON object from an LLM reply."""
        response_text = response_text.strip()

        try:
            data = json.loads(response_text)
            if isinstance(data, dict):
                return data
        except json.JSONDecodeError:
            pass

        code_block_match = re.search(r'```(?:json)?\s*(\{.*\})\s*```', response_text, re.DOTALL)
        if code_block_match:
            try:
                return json.loads(code_block_match.group(1))
            except json.JSONDecodeError:
                pass

        # Outermost braces; the object is nested so a flat match is not enough
        json_match = re.search(r'\{.*\}', response_text, re.DOTALL)
        if json_match:
            try:
                data = json.loads(json_match.group())
                if isinstance(data, dict):
                    return data
            except json.JSONDecodeError:
                pass

        return None
