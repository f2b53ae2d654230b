import pytest
from httpx import AsyncClient, ASGITransport

from main import app, get_pipeline, get_asset_store, get_webhook
from asset_store import AssetStore
from models import CAPTION_PLATFORMS
from poster.presets import ASSET_KEYS, SIZE_KEYS


@pytest.fixture
def store(settings):
    return AssetStore(settings.output_dir, "http://test")


@pytest.fixture
def client_for(store):
    """Factory: AsyncClient against the app with the given pipeline/webhook."""
    def make(pipeline=None, webhook=None):
        if pipeline is not None:
            app.dependency_overrides[get_pipeline] = lambda: pipeline
        if webhook is not None:
            app.dependency_overrides[get_webhook] = lambda: webhook
        app.dependency_overrides[get_asset_store] = lambda: store
        return AsyncClient(transport=ASGITransport(app=app), base_url="http://test")

    yield make
    app.dependency_overrides.clear()


@pytest.fixture
def generate_body(product_info):
    return {"product": product_info.model_dump()}


@pytest.mark.asyncio
async def test_health_endpoint(client_for):
    async with client_for() as client:
        response = await client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


@pytest.mark.asyncio
async def test_sizes_endpoint(client_for):
    async with client_for() as client:
        response = await client.get("/campaign/sizes")

    assert response.status_code == 200
    assert [s["id"] for s in response.json()["sizes"]] == list(SIZE_KEYS)


@pytest.mark.asyncio
async def test_generate_campaign(client_for, make_pipeline, generate_body):
    async with client_for(pipeline=make_pipeline()) as client:
        response = await client.post("/campaign/generate", json=generate_body)

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["campaign_id"].startswith("campaign_")
        assert set(data["image_urls"]) == set(ASSET_KEYS)
        assert data["caption_error"] is None
        assert data["meta"]["scene_key"] == "oud_oriental"
        assert [s["stage"] for s in data["stages"] if s["status"] == "completed"][0] == "acquire_product"

        # Stored assets are served back
        master_path = data["image_urls"]["master"].replace("http://test", "")
        asset = await client.get(master_path)

    assert asset.status_code == 200
    assert asset.headers["content-type"] == "image/jpeg"
    assert asset.content[:2] == b"\xff\xd8"


@pytest.mark.asyncio
async def test_generate_campaign_caption_fallback(client_for, make_pipeline, generate_body, fakes):
    from poster.errors import CaptionError

    pipeline = make_pipeline(captions=fakes.Captions(error=CaptionError("Caption model failed", cause="api_error")))
    async with client_for(pipeline=pipeline) as client:
        response = await client.post("/campaign/generate", json=generate_body)

    assert response.status_code == 200
    data = response.json()
    assert "Caption model failed" in data["caption_error"]
    for platform in CAPTION_PLATFORMS:
        assert data["content"]["captions"][platform]


@pytest.mark.asyncio
async def test_generate_campaign_stage_error_payload(client_for, make_pipeline, generate_body, failing_backdrops, store):
    async with client_for(pipeline=make_pipeline(backdrops=failing_backdrops)) as client:
        response = await client.post("/campaign/generate", json=generate_body)

    assert response.status_code == 502
    data = response.json()
    assert data["success"] is False
    assert data["stage"] == "acquire_backdrop"
    assert data["cause"] == "quota"
    assert not store.root.exists() or not any(store.root.iterdir())


@pytest.mark.asyncio
async def test_generate_campaign_without_image(client_for, make_pipeline, product_info):
    body = {"product": product_info.model_copy(update={"image_url": None}).model_dump()}
    async with client_for(pipeline=make_pipeline()) as client:
        response = await client.post("/campaign/generate", json=body)

    assert response.status_code == 400
    assert response.json()["stage"] == "acquire_product"


@pytest.mark.asyncio
async def test_generate_campaign_validation(client_for, make_pipeline):
    async with client_for(pipeline=make_pipeline()) as client:
        response = await client.post("/campaign/generate", json={"product": {}})

    assert response.status_code == 422  # Validation error


@pytest.mark.asyncio
async def test_removebg_endpoint(client_for, make_pipeline, product_photo):
    async with client_for(pipeline=make_pipeline()) as client:
        response = await client.post(
            "/removebg",
            files={"file": ("product.png", product_photo, "image/png")},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["filename"].endswith("_transparent.png")

        image = await client.get(data["url"].replace("http://test", ""))

    assert image.status_code == 200
    assert image.content[:8] == b"\x89PNG\r\n\x1a\n"


@pytest.mark.asyncio
async def test_removebg_rejects_garbage(client_for, make_pipeline):
    async with client_for(pipeline=make_pipeline()) as client:
        response = await client.post(
            "/removebg",
            files={"file": ("notes.txt", b"hello", "text/plain")},
        )

    assert response.status_code == 400


@pytest.mark.asyncio
async def test_missing_asset_is_404(client_for):
    async with client_for() as client:
        response = await client.get("/campaigns/campaign_000000000000/campaign_000000000000_master.jpg")

    assert response.status_code == 404


@pytest.mark.asyncio
async def test_publish_endpoint(client_for, product_info, caption_set):
    class RecordingWebhook:
        def __init__(self):
            self.requests = []

        async def publish(self, request):
            self.requests.append(request)
            return "publish_abc", {"status": "accepted"}

    webhook = RecordingWebhook()
    body = {
        "product": product_info.model_dump(),
        "content": caption_set.model_dump(),
        "image_urls": {key: f"http://test/{key}.jpg" for key in SIZE_KEYS},
        "options": {"instagram": True},
    }
    async with client_for(webhook=webhook) as client:
        response = await client.post("/publish", json=body)

    assert response.status_code == 200
    assert response.json()["campaign_id"] == "publish_abc"
    assert webhook.requests[0].options.instagram is True


@pytest.mark.asyncio
async def test_publish_without_webhook_configured(client_for, product_info, caption_set):
    from providers.webhook_client import DeliveryWebhookClient

    body = {
        "product": product_info.model_dump(),
        "content": caption_set.model_dump(),
        "image_urls": {key: f"http://test/{key}.jpg" for key in SIZE_KEYS},
    }
    async with client_for(webhook=DeliveryWebhookClient(None)) as client:
        response = await client.post("/publish", json=body)

    assert response.status_code == 503
    assert response.json()["success"] is False
