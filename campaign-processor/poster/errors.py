"""
Campaign error taxonomy.

Every fatal failure carries the pipeline stage it belongs to so the API can
tell the user *where* generation stopped (bad product photo vs. backdrop
service down vs. encode failure). Third-party error bodies are truncated
before they are echoed back.
"""

from enum import Enum
from typing import Optional, Dict, Any


MAX_CAUSE_LENGTH = 300


class PipelineStage(str, Enum):
    """Ordered stages of one campaign run."""
    ACQUIRE_PRODUCT = "acquire_product"
    SEGMENT = "segment"
    ACQUIRE_BACKDROP = "acquire_backdrop"
    COMPOSITE = "composite"
    CROP = "crop"
    CAPTIONS = "captions"
    STORE = "store"  # after the run, when the API persists the assets


def truncate_cause(cause: Optional[Any], limit: int = MAX_CAUSE_LENGTH) -> Optional[str]:
    """Stringify and cap an underlying error message."""
    if cause is None:
        return None
    text = str(cause).strip()
    if len(text) > limit:
        return text[:limit - 3] + "..."
    return text


class CampaignError(Exception):
    """Base class for all campaign failures."""

    stage: Optional[PipelineStage] = None
    status_code: int = 500

    def __init__(
        self,
        message: str,
        cause: Optional[Any] = None,
        status_code: Optional[int] = None,
        timed_out: bool = False,
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.cause = truncate_cause(cause)
        self.timed_out = timed_out
        self.details = details or {}
        if status_code is not None:
            self.status_code = status_code
        super().__init__(message)

    def __str__(self) -> str:
        if self.cause:
            return f"{self.message}: {self.cause}"
        return self.message

    def to_payload(self) -> Dict[str, Any]:
        """Structured, user-facing error body."""
        return {
            "success": False,
            "error": self.message,
            "stage": self.stage.value if self.stage else None,
            "cause": self.cause,
            "timed_out": self.timed_out,
            "details": self.details,
        }


# ---------------------------------------------------------------------------
# Codec errors (raised by poster.raster)
# ---------------------------------------------------------------------------

class DecodeError(CampaignError):
    """Encoded bytes are malformed or in an unsupported format."""
    status_code = 400


class EncodeError(CampaignError):
    """Requested output format is unsupported or the encoder failed."""


# ---------------------------------------------------------------------------
# Collaborator errors (raised by providers, wrapped by the pipeline)
# ---------------------------------------------------------------------------

class ServiceError(CampaignError):
    """An external service failed or returned an unexpected payload."""
    status_code = 502

    def __init__(
        self,
        message: str,
        service: str,
        http_status: Optional[int] = None,
        **kwargs
    ):
        super().__init__(message, **kwargs)
        self.service = service
        self.http_status = http_status
        self.details["service"] = service
        if http_status is not None:
            self.details["http_status"] = http_status


class ServiceTimeoutError(ServiceError):
    """An external service did not answer within its time budget."""
    status_code = 504

    def __init__(self, service: str, timeout: float, **kwargs):
        super().__init__(
            f"{service} timed out after {timeout:g}s",
            service=service,
            timed_out=True,
            **kwargs
        )
        self.timeout = timeout


# ---------------------------------------------------------------------------
# Stage errors
# ---------------------------------------------------------------------------

class AcquisitionError(CampaignError):
    """No usable product image."""
    stage = PipelineStage.ACQUIRE_PRODUCT
    status_code = 502


class SegmentationError(CampaignError):
    """Both external and local background removal failed."""
    stage = PipelineStage.SEGMENT
    status_code = 422


class BackdropError(CampaignError):
    """The backdrop generator failed or timed out."""
    stage = PipelineStage.ACQUIRE_BACKDROP
    status_code = 502


class CompositeError(CampaignError):
    """Master composite failed at a specific step."""
    stage = PipelineStage.COMPOSITE

    BACKDROP_NORMALIZE = "backdrop-normalize"
    PRODUCT_SCALE = "product-scale"
    SHADOW_SYNTHESIS = "shadow-synthesis"
    PRODUCT_BLEND = "product-blend"
    ENCODE = "encode"

    def __init__(self, message: str, step: str, **kwargs):
        super().__init__(message, **kwargs)
        self.step = step
        self.details["step"] = step
        if step == self.BACKDROP_NORMALIZE:
            self.status_code = 502


class CropError(CampaignError):
    """At least one platform crop failed; no crops are returned."""
    stage = PipelineStage.CROP

    def __init__(self, message: str, size_name: Optional[str] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.size_name = size_name
        if size_name:
            self.details["size"] = size_name


class CaptionError(CampaignError):
    """Caption generation failed. Always recovered with templates."""
    stage = PipelineStage.CAPTIONS
    status_code = 502


class StorageError(CampaignError):
    """Writing campaign assets failed."""
    stage = PipelineStage.STORE
