"""
CaptionTemplates - Rule-based campaign copy.

Used when the caption model is unavailable or returns something unusable.
Everything here is deterministic: same product in, same captions out.
- Price / brand / name lines
- Description trimmed on a word boundary
- Hashtags derived from brand and product name
- Store link cleanup (tracking parameters removed)
"""

import re
from typing import Optional, List
from urllib.parse import urlparse, urlunparse

from models import ProductInfo, CaptionSet

DEFAULT_HASHTAGS = ["#عطور", "#عطر", "#perfume", "#fragrance"]

MAX_DESCRIPTION = 200
MAX_TWEET = 280


class CaptionTemplates:
    """
    Deterministic caption set for a product.

    Output per platform follows one layout:
    {name} | {brand}
    {price}

    {description}

    {link}
    {hashtags}
    """

    def __init__(self, brand_name: str = "Mahwous"):
        self.brand_name = brand_name

    def cleanup_link(self, url: Optional[str]) -> str:
        """
        Remove query and fragment from a store link.

        Example:
            https://store.example/p/123?utm_source=ig -> https://store.example/p/123
        """
        if not url:
            return ""
        parsed = urlparse(url.strip())
        if not parsed.scheme or not parsed.netloc:
            return url.strip()
        return urlunparse((parsed.scheme, parsed.netloc, parsed.path, "", "", ""))

    def trim_description(self, text: str, limit: int = MAX_DESCRIPTION) -> str:
        """Collapse whitespace and cut on a word boundary."""
        text = re.sub(r"\s+", " ", text or "").strip()
        if len(text) <= limit:
            return text
        cut = text[:limit].rsplit(" ", 1)[0]
        return cut.rstrip(" ,.;:-") + "…"

    def to_hashtag(self, text: Optional[str]) -> Optional[str]:
        """'Oud Royal 100ml' -> '#OudRoyal100ml'"""
        if not text:
            return None
        words = re.findall(r"\w+", text)
        if not words:
            return None
        return "#" + "".join(words)

    def hashtags(self, product: ProductInfo, limit: Optional[int] = None) -> List[str]:
        """Brand and product tags first, then the generic set; no duplicates."""
        tags: List[str] = []
        candidates = [
            self.to_hashtag(self.brand_name),
            self.to_hashtag(product.brand),
            self.to_hashtag(product.name),
        ] + DEFAULT_HASHTAGS
        for tag in candidates:
            if tag and tag.lower() not in (t.lower() for t in tags):
                tags.append(tag)
        return tags[:limit] if limit else tags

    def format_title_line(self, product: ProductInfo) -> str:
        name = product.name.strip()
        if product.brand:
            return f"{name} | {product.brand.strip()}"
        return name

    def format_price_line(self, product: ProductInfo) -> str:
        if not product.price:
            return ""
        return f"السعر: {product.price.strip()}"

    def format_post(
        self,
        product: ProductInfo,
        description_limit: int = MAX_DESCRIPTION,
        hashtag_limit: Optional[int] = None,
        include_link: bool = True
    ) -> str:
        lines = [f"✨ {self.format_title_line(product)}"]

        price_line = self.format_price_line(product)
        if price_line:
            lines.append(price_line)

        description = self.trim_description(product.description, description_limit)
        if description:
            lines.append("")
            lines.append(description)

        link = self.cleanup_link(product.url) if include_link else ""
        if link:
            lines.append("")
            lines.append(link)

        lines.append("")
        lines.append(" ".join(self.hashtags(product, hashtag_limit)))
        return "\n".join(lines)

    def format_tweet(self, product: ProductInfo) -> str:
        """Shortest variant; shrinks the description until it fits."""
        for limit in (120, 60, 0):
            text = self.format_post(product, description_limit=limit, hashtag_limit=3, include_link=False)
            if len(text) <= MAX_TWEET:
                return text
        return text[:MAX_TWEET - 1] + "…"

    def format_listing(self, product: ProductInfo) -> str:
        """Classified-ads listing: facts as bullet points, keywords at the bottom."""
        lines = [product.name.strip()]
        if product.brand:
            lines.append(f"- الماركة: {product.brand.strip()}")
        if product.price:
            lines.append(f"- السعر: {product.price.strip()}")
        description = self.trim_description(product.description, 300)
        if description:
            lines.append(f"- الوصف: {description}")
        link = self.cleanup_link(product.url)
        if link:
            lines.append(f"- الرابط: {link}")
        lines.append("")
        lines.append(" ".join(tag.lstrip("#") for tag in self.hashtags(product)))
        return "\n".join(lines)

    def build(self, product: ProductInfo) -> CaptionSet:
        """Full caption set for every platform."""
        brand = product.brand or self.brand_name
        story = f"{product.name.strip()} من {brand}. حضور فاخر يرافقك في كل لحظة مع {self.brand_name}."
        post = self.format_post(product)

        return CaptionSet(
            brand_story=story,
            perfume_mood=None,
            captions={
                "instagram": post,
                "facebook": post,
                "twitter": self.format_tweet(product),
                "tiktok": self.format_post(product, description_limit=80, hashtag_limit=5, include_link=False),
                "pinterest": f"{self.format_title_line(product)} - luxury fragrance by {brand}. "
                             f"{self.trim_description(product.description, 120)}".strip(),
                "haraj": self.format_listing(product),
                "youtube": f"{story}\n\n{self.cleanup_link(product.url)}".strip(),
            },
            video_hook_prompt=(
                f"Cinematic 5-second luxury perfume advertisement hook, first person POV "
                f"approaching a bottle of {product.name.strip()}, warm golden light."
            ),
            video_broll_prompt=(
                f"Cinematic 5-second extreme close-up of the {product.name.strip()} perfume bottle, "
                f"golden light, luxury product photography."
            ),
        )
