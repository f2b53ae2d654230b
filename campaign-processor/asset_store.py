"""
Asset storage - campaign images on local disk, served back over HTTP.

Layout:
    <root>/<campaign_id>/<campaign_id>_<key>.<ext>
"""

import logging
import re
import shutil
import uuid
from pathlib import Path
from typing import Dict, Optional, Tuple

from poster.errors import StorageError
from poster.raster import EncodedImage

logger = logging.getLogger(__name__)

SAFE_NAME = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_\-]*$")
SAFE_FILENAME = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_\-]*\.(jpg|png|webp)$")


class AssetStore:
    """Writes campaign assets and maps them to public URLs."""

    def __init__(self, root_dir: str, public_base_url: str):
        self.root = Path(root_dir).resolve()
        self.public_base_url = public_base_url.rstrip("/")

    def url_for(self, campaign_id: str, filename: str) -> str:
        return f"{self.public_base_url}/campaigns/{campaign_id}/{filename}"

    def _campaign_dir(self, campaign_id: str) -> Path:
        if not SAFE_NAME.match(campaign_id):
            raise StorageError("Invalid campaign id", status_code=400, details={"campaign_id": campaign_id})
        return self.root / campaign_id

    def save_campaign(self, campaign_id: str, assets: Dict[str, EncodedImage]) -> Dict[str, str]:
        """
        Write every asset and return {key: public URL}.

        All-or-nothing: on any write failure the campaign directory is
        removed and StorageError raised.
        """
        directory = self._campaign_dir(campaign_id)
        urls: Dict[str, str] = {}

        try:
            directory.mkdir(parents=True, exist_ok=True)
            for key, image in assets.items():
                filename = f"{campaign_id}_{key}.{image.extension}"
                (directory / filename).write_bytes(image.data)
                urls[key] = self.url_for(campaign_id, filename)
        except OSError as e:
            logger.error(f"Saving campaign {campaign_id} failed: {e}")
            self.cleanup(campaign_id)
            raise StorageError("Failed to save campaign assets", cause=e) from e

        logger.info(f"Saved {len(urls)} assets for {campaign_id}")
        return urls

    def save_single(self, namespace: str, image: EncodedImage, key: str = "image") -> Tuple[str, str]:
        """Store one standalone image. Returns (url, filename)."""
        asset_id = f"{namespace}_{uuid.uuid4().hex[:12]}"
        urls = self.save_campaign(asset_id, {key: image})
        url = urls[key]
        return url, url.rsplit("/", 1)[-1]

    def resolve(self, campaign_id: str, filename: str) -> Optional[Path]:
        """
        Map a request path to a stored file.

        Raises:
            StorageError: (400) the names try to leave the store
        Returns:
            Path, or None when no such file exists
        """
        if not SAFE_FILENAME.match(filename):
            raise StorageError("Invalid asset filename", status_code=400, details={"filename": filename})

        path = (self._campaign_dir(campaign_id) / filename).resolve()
        if self.root not in path.parents:
            raise StorageError("Invalid asset path", status_code=400)

        return path if path.is_file() else None

    def cleanup(self, campaign_id: str) -> bool:
        """Remove a campaign directory. Failures are logged, never raised."""
        try:
            directory = self._campaign_dir(campaign_id)
        except StorageError:
            return False

        if not directory.exists():
            return True
        try:
            shutil.rmtree(directory)
            logger.info(f"Removed campaign directory {campaign_id}")
            return True
        except OSError as e:
            logger.warning(f"Cleanup of {campaign_id} failed: {e}")
            return False
