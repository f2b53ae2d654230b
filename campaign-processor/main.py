from fastapi import FastAPI, HTTPException, File, UploadFile, Depends, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, JSONResponse
import asyncio
import logging
import traceback

from config import get_settings
from models import (
    CampaignGenerateRequest, CampaignGenerateResponse, CampaignMeta, StageEventModel,
    RemoveBgResponse, SizeOptionsResponse, PublishRequest, PublishResponse,
)
from asset_store import AssetStore
from backdrop_generator import BackdropGenerator
from caption_writer import CaptionWriter
from campaign_pipeline import CampaignPipeline
from poster.errors import CampaignError
from poster.presets import get_size_options
from providers.cliproxy_provider import CLIProxyProvider
from providers.gemini_backup import GeminiBackupProvider
from providers.gemini_image_provider import GeminiImageProvider
from providers.product_source import ProductImageSource
from providers.removebg_provider import RemoveBgClient
from providers.router import ProviderRouter
from providers.webhook_client import DeliveryWebhookClient

settings = get_settings()

# Logging setup
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title=settings.app_name, version=settings.app_version)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # In production, restrict this
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Initialize services (missing keys disable a collaborator, they never fail startup)
gemini_keys = settings.gemini_key_list

caption_router = ProviderRouter(
    primary=CLIProxyProvider(
        settings.cliproxy_base_url,
        settings.cliproxy_api_key,
        default_model=settings.cliproxy_text_model,
    ),
    fallback=GeminiBackupProvider(gemini_keys, model=settings.gemini_text_model),
)

pipeline = CampaignPipeline(
    settings,
    product_source=ProductImageSource(
        timeout=settings.download_timeout,
        user_agent=settings.download_user_agent,
    ),
    backdrop_generator=BackdropGenerator(
        GeminiImageProvider(
            gemini_keys[0] if gemini_keys else None,
            model=settings.gemini_image_model,
            timeout=settings.backdrop_timeout,
        ),
        brand_name=settings.brand_name,
    ),
    caption_writer=CaptionWriter(
        caption_router,
        brand_name=settings.brand_name,
        timeout=settings.caption_timeout,
    ),
    segmentation_service=RemoveBgClient(
        settings.remove_bg_api_key,
        url=settings.remove_bg_url,
        timeout=settings.segmentation_timeout,
    ),
)
asset_store = AssetStore(settings.output_dir, settings.public_base_url)
webhook = DeliveryWebhookClient(settings.webhook_url, timeout=settings.webhook_timeout)


def get_pipeline() -> CampaignPipeline:
    return pipeline


def get_asset_store() -> AssetStore:
    return asset_store


def get_webhook() -> DeliveryWebhookClient:
    return webhook


@app.exception_handler(CampaignError)
async def campaign_error_handler(request: Request, exc: CampaignError):
    logger.error(f"{request.method} {request.url.path} failed: {exc}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_payload())


@app.get("/health")
async def health_check():
    return {"status": "healthy", "service": "campaign-processor"}


@app.get("/")
async def root():
    return {
        "service": settings.app_name,
        "version": settings.app_version,
        "description": "Product campaign generator: background removal, hero poster, platform crops and captions",
        "endpoints": ["/campaign/generate", "/campaign/sizes", "/removebg", "/publish", "/health"],
        "config": {
            "brand": settings.brand_name,
            "external_segmentation": bool(settings.remove_bg_api_key),
            "gemini_keys_count": len(gemini_keys),
            "cliproxy": bool(settings.cliproxy_base_url and settings.cliproxy_api_key),
            "webhook": bool(settings.webhook_url),
        }
    }


@app.get("/campaign/sizes", response_model=SizeOptionsResponse)
async def get_campaign_sizes():
    """Platform sizes every campaign is cut into."""
    return SizeOptionsResponse(sizes=get_size_options())


@app.post("/campaign/generate", response_model=CampaignGenerateResponse)
async def generate_campaign(
    request: CampaignGenerateRequest,
    pipeline: CampaignPipeline = Depends(get_pipeline),
    store: AssetStore = Depends(get_asset_store),
):
    """
    Run the full campaign pipeline for one product.

    Workflow:
    1. Product photo (upload or URL) -> transparent cutout
    2. AI character backdrop -> master poster (1080x1920)
    3. Five platform crops
    4. Captions (template fallback when the model fails)
    5. Store all seven images and return their URLs
    """
    try:
        logger.info(f"Generating campaign for: {request.product.name}")

        result = await pipeline.run(
            request.product,
            image_base64=request.product_image_base64,
            image_url=request.product_image_url,
        )
        image_urls = await asyncio.to_thread(
            store.save_campaign, result.campaign_id, result.assets.as_dict()
        )

        logger.info(f"Campaign {result.campaign_id} generated")

        return CampaignGenerateResponse(
            campaign_id=result.campaign_id,
            image_urls=image_urls,
            content=result.captions,
            caption_error=result.caption_error,
            meta=CampaignMeta(**result.meta),
            stages=[
                StageEventModel(
                    stage=event.stage.value,
                    status=event.status,
                    duration_ms=event.duration_ms,
                    detail=event.detail,
                )
                for event in result.stages
            ],
        )

    except CampaignError:
        raise
    except Exception as e:
        logger.error(f"Campaign generation error: {e}")
        logger.error(f"Traceback:\n{traceback.format_exc()}")
        raise HTTPException(status_code=500, detail=f"Campaign generation failed: {e}")


@app.post("/removebg", response_model=RemoveBgResponse)
async def remove_background(
    file: UploadFile = File(...),
    pipeline: CampaignPipeline = Depends(get_pipeline),
    store: AssetStore = Depends(get_asset_store),
):
    """
    Remove the background of an uploaded product photo.

    Returns the URL of a transparent PNG.
    """
    content = await file.read()
    if not content:
        raise HTTPException(status_code=400, detail="Uploaded file is empty")

    logger.info(f"Removing background: {file.filename} ({len(content)} bytes)")

    cutout = await pipeline.remove_background(content)
    url, filename = await asyncio.to_thread(store.save_single, "removebg", cutout.png, "transparent")

    logger.info(f"Background removed by {cutout.provider}: {filename}")
    return RemoveBgResponse(url=url, filename=filename)


@app.post("/publish", response_model=PublishResponse)
async def publish_campaign(
    request: PublishRequest,
    webhook: DeliveryWebhookClient = Depends(get_webhook),
):
    """Forward a finished campaign to the delivery webhook."""
    campaign_id, response = await webhook.publish(request)
    return PublishResponse(campaign_id=campaign_id, response=response)


@app.get("/campaigns/{campaign_id}/{filename}")
async def get_campaign_asset(
    campaign_id: str,
    filename: str,
    store: AssetStore = Depends(get_asset_store),
):
    """Serve a stored campaign image."""
    path = store.resolve(campaign_id, filename)
    if path is None:
        raise HTTPException(status_code=404, detail="Asset not found")
    return FileResponse(path=str(path))


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
