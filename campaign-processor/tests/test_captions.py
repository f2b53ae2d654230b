import json

import pytest

from caption_templates import CaptionTemplates
from caption_writer import CaptionWriter
from models import CAPTION_PLATFORMS, ProductInfo
from poster.errors import CaptionError
from providers.base import LLMProvider, LLMResponse
from providers.router import ProviderRouter


class ScriptedProvider(LLMProvider):
    """Returns queued replies; a reply starting with '!' is an error."""

    def __init__(self, name, replies, available=True):
        self._name = name
        self.replies = list(replies)
        self.available = available
        self.calls = 0

    @property
    def name(self):
        return self._name

    def is_available(self):
        return self.available

    async def generate_text(self, prompt, model=None, config=None):
        self.calls += 1
        reply = self.replies.pop(0) if self.replies else "!exhausted"
        if reply.startswith("!"):
            return LLMResponse(text="", model_used=model or "m", provider=self.name, error=reply[1:])
        return LLMResponse(text=reply, model_used=model or "m", provider=self.name)


def campaign_json(**overrides):
    data = {
        "brand_story": "عطر يروي حكاية الفخامة.",
        "perfume_mood": "Oud/Oriental",
        "captions": {platform: f"{platform} text #عطور" for platform in CAPTION_PLATFORMS},
        "video_hook_prompt": "POV approaching the bottle",
        "video_broll_prompt": "Extreme close-up, golden light",
    }
    data.update(overrides)
    return json.dumps(data, ensure_ascii=False)


def writer_for(*replies):
    provider = ScriptedProvider("primary", replies)
    router = ProviderRouter(provider, ScriptedProvider("backup", [], available=False))
    return CaptionWriter(router, brand_name="Mahwous"), provider


# ============== CaptionWriter ==============

@pytest.mark.asyncio
async def test_writer_parses_plain_json(product_info):
    writer, _ = writer_for(campaign_json())
    captions = await writer.generate(product_info)

    assert captions.perfume_mood == "Oud/Oriental"
    assert set(captions.captions) == set(CAPTION_PLATFORMS)


@pytest.mark.asyncio
async def test_writer_extracts_json_from_chatter(product_info):
    reply = "Here is your campaign:\n```json\n" + campaign_json() + "\n```\nEnjoy!"
    writer, _ = writer_for(reply)

    captions = await writer.generate(product_info)
    assert captions.captions["haraj"].startswith("haraj")


@pytest.mark.asyncio
async def test_writer_rejects_missing_platform(product_info):
    partial = {platform: "x" for platform in CAPTION_PLATFORMS if platform != "haraj"}
    writer, _ = writer_for(campaign_json(captions=partial))

    with pytest.raises(CaptionError) as exc_info:
        await writer.generate(product_info)
    assert "haraj" in exc_info.value.cause


@pytest.mark.asyncio
async def test_writer_rejects_empty_story(product_info):
    writer, _ = writer_for(campaign_json(brand_story="   "))
    with pytest.raises(CaptionError):
        await writer.generate(product_info)


@pytest.mark.asyncio
async def test_writer_rejects_non_json(product_info):
    writer, _ = writer_for("Sorry, I can't help with that.")
    with pytest.raises(CaptionError):
        await writer.generate(product_info)


@pytest.mark.asyncio
async def test_writer_reports_timeout(product_info):
    writer, _ = writer_for("!timeout: no response after 45s")

    with pytest.raises(CaptionError) as exc_info:
        await writer.generate(product_info)

    assert exc_info.value.timed_out
    assert exc_info.value.details["provider"] == "primary"


def test_prompt_mentions_product(product_info):
    writer, _ = writer_for()
    prompt = writer.build_prompt(product_info)

    assert "Oud Royal 100ml" in prompt
    assert "Mahwous" in prompt
    for platform in CAPTION_PLATFORMS:
        assert f'"{platform}"' in prompt


# ============== ProviderRouter ==============

@pytest.mark.asyncio
async def test_router_falls_back_on_primary_error():
    primary = ScriptedProvider("primary", ["!rate_limit: slow down"])
    backup = ScriptedProvider("backup", ["hello"])
    router = ProviderRouter(primary, backup)

    response = await router.generate_text("hi")

    assert response.provider == "backup"
    assert response.text == "hello"


@pytest.mark.asyncio
async def test_router_skips_primary_after_repeated_failures():
    primary = ScriptedProvider("primary", ["!down"] * 5)
    backup = ScriptedProvider("backup", ["ok"] * 5)
    router = ProviderRouter(primary, backup, failure_threshold=3)

    for _ in range(4):
        await router.generate_text("hi")

    assert primary.calls == 3
    assert router.get_active_provider() is backup


@pytest.mark.asyncio
async def test_router_skips_unconfigured_primary():
    primary = ScriptedProvider("primary", ["never"], available=False)
    backup = ScriptedProvider("backup", ["ok"])

    response = await ProviderRouter(primary, backup).generate_text("hi")

    assert response.provider == "backup"
    assert primary.calls == 0


@pytest.mark.asyncio
async def test_router_with_nothing_configured():
    router = ProviderRouter(
        ScriptedProvider("primary", [], available=False),
        ScriptedProvider("backup", [], available=False),
    )
    response = await router.generate_text("hi")

    assert response.error == "all_providers_unavailable"
    assert not router.is_available()


# ============== CaptionTemplates ==============

def test_templates_cover_every_platform(product_info):
    captions = CaptionTemplates("Mahwous").build(product_info)

    for platform in CAPTION_PLATFORMS:
        assert captions.captions[platform].strip()
    assert "Oud Royal 100ml" in captions.brand_story


def test_templates_are_deterministic(product_info):
    templates = CaptionTemplates("Mahwous")
    assert templates.build(product_info) == templates.build(product_info)


def test_templates_minimal_product():
    captions = CaptionTemplates().build(ProductInfo(name="Amber"))

    for platform in CAPTION_PLATFORMS:
        assert captions.captions[platform].strip()


def test_tweet_fits(product_info):
    long_product = product_info.model_copy(update={"description": "word " * 400})
    tweet = CaptionTemplates().build(long_product).captions["twitter"]
    assert len(tweet) <= 280


def test_hashtags_from_brand_and_name(product_info):
    tags = CaptionTemplates("Mahwous").hashtags(product_info)

    assert tags[:3] == ["#Mahwous", "#MaisonTest", "#OudRoyal100ml"]
    assert len(tags) == len({t.lower() for t in tags})


def test_link_cleanup():
    templates = CaptionTemplates()
    assert templates.cleanup_link("https://store.example/p/1?utm_source=ig#top") == "https://store.example/p/1"
    assert templates.cleanup_link(None) == ""


def test_description_trim_on_word_boundary():
    trimmed = CaptionTemplates().trim_description("alpha beta gamma delta", limit=12)
    assert trimmed == "alpha beta…"
