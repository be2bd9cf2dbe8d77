"""
API response models.
"""

from datetime import datetime
from enum import Enum
from typing import Optional, Any
from pydantic import BaseModel, Field


class Operation(str, Enum):
    """Derivation performed for a job."""
    RESIZE = "resize"
    CROP = "crop"
    WATERMARK = "watermark"
    TEXT = "text"
    MERGE = "merge"


class RectangleInfo(BaseModel):
    """Axis-aligned rectangle in pixel coordinates."""
    x: int
    y: int
    width: int
    height: int


class PlacementInfo(BaseModel):
    """Geometry used to draw the primary layer of a derivative."""
    canvas_width: int
    canvas_height: int
    dest_rect: RectangleInfo
    source_rect: RectangleInfo
    interpolation: str
    pixel_format: str
    wrap_mode: str


class DerivativeResponse(BaseModel):
    """Response from POST /api/v1/derivatives/{operation}."""
    job_id: str
    image_id: str
    image_url: str
    operation: Operation
    width_px: int
    height_px: int
    mime_type: str
    jpeg_quality: int
    skipped: bool = Field(
        default=False,
        description="True when the source was already small enough and was re-encoded unchanged",
    )
    placement: Optional[PlacementInfo] = None
    processing_time_ms: int
    created_at: datetime


# ============================================================
# Error Models
# ============================================================

class ErrorDetail(BaseModel):
    """Detailed error information."""
    code: str
    message: str
    details: Optional[dict[str, Any]] = None


class ErrorResponse(BaseModel):
    """Standard error response."""
    error: ErrorDetail
