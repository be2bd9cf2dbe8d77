"""
Derivative endpoints - resize, crop, watermark, text and merge.

Every endpoint takes multipart image uploads plus query parameters, stores the
inputs and the encoded output under a new job, and returns where the output
can be fetched.
"""

import logging
from datetime import datetime, timezone
from typing import Optional

import numpy as np
from fastapi import APIRouter, File, HTTPException, Query, UploadFile, status

from thumbforge.config import settings
from thumbforge.models.responses import (
    DerivativeResponse,
    ErrorResponse,
    Operation,
    PlacementInfo,
    RectangleInfo,
)
from thumbforge.services.geometry import (
    AnchorPosition,
    Color,
    ImagingError,
    Placement,
    Rectangle,
    TextAlignment,
)
from thumbforge.services.merge import MergePlacement
from thumbforge.services.pipeline import (
    DerivationResult,
    ImagePipeline,
    OutputOptions,
    SourceImage,
    save_image,
)
from thumbforge.services.storage import storage_service
from thumbforge.services.surface import SourceUnavailableError, raster_surface

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/derivatives", tags=["derivatives"])

ERROR_RESPONSES = {
    400: {"model": ErrorResponse, "description": "Invalid file type or parameters"},
    413: {"model": ErrorResponse, "description": "File too large"},
    422: {"model": ErrorResponse, "description": "Upload is not a decodable image"},
}


def imaging_http_error(exc: ImagingError) -> HTTPException:
    """Translate a service error into an HTTP error with a stable code."""
    status_code = (
        status.HTTP_422_UNPROCESSABLE_ENTITY
        if isinstance(exc, SourceUnavailableError)
        else status.HTTP_400_BAD_REQUEST
    )
    return HTTPException(
        status_code=status_code,
        detail={"code": exc.code, "message": exc.message, "details": exc.details},
    )


async def read_image_upload(job_id: str, file: UploadFile, label: str) -> np.ndarray:
    """Validate, store and decode an uploaded image."""
    if file.content_type not in settings.allowed_content_types:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={
                "code": "INVALID_FILE_TYPE",
                "message": f"File '{label}' must be an image",
                "details": {
                    "field": label,
                    "received_type": file.content_type,
                    "expected_types": settings.allowed_content_types,
                },
            },
        )

    content = await file.read()
    if len(content) > settings.max_file_size_bytes:
        raise HTTPException(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            detail={
                "code": "FILE_TOO_LARGE",
                "message": f"File '{file.filename}' exceeds the {settings.max_file_size_mb}MB limit",
                "details": {
                    "field": label,
                    "size_bytes": len(content),
                    "max_bytes": settings.max_file_size_bytes,
                },
            },
        )

    storage_service.save_input(job_id, content, file.filename, label)

    try:
        image, _ = raster_surface.decode(content)
    except SourceUnavailableError as e:
        raise imaging_http_error(e)
    return image


def build_options(jpeg_quality: Optional[int], mime_type: Optional[str]) -> OutputOptions:
    overrides = {}
    if jpeg_quality is not None:
        overrides["jpeg_quality"] = jpeg_quality
    if mime_type:
        overrides["encoder_mime_type"] = mime_type
    return OutputOptions(**overrides)


def placement_info(placement) -> Optional[PlacementInfo]:
    """Summarize the primary draw pass of a result."""
    if isinstance(placement, MergePlacement):
        placement = placement.back
    if not isinstance(placement, Placement):
        return None
    return PlacementInfo(
        canvas_width=placement.canvas.width,
        canvas_height=placement.canvas.height,
        dest_rect=RectangleInfo(**placement.dest_rect.to_dict()),
        source_rect=RectangleInfo(**placement.source_rect.to_dict()),
        interpolation=placement.interpolation.value,
        pixel_format=placement.pixel_format.value,
        wrap_mode=placement.wrap_mode.value,
    )


def store_result(
    job_id: str,
    operation: Operation,
    result: DerivationResult,
    options: OutputOptions,
) -> DerivativeResponse:
    """Encode the result into the job outputs and build the response."""
    output_path = storage_service.get_output_path(job_id, operation.value, options.encoder_mime_type)
    try:
        save_image(result.image, output_path, options)
    except ImagingError as e:
        raise imaging_http_error(e)

    image_id = storage_service.generate_image_id(job_id, operation.value)
    return DerivativeResponse(
        job_id=job_id,
        image_id=image_id,
        image_url=f"{settings.api_v1_prefix}/images/{image_id}",
        operation=operation,
        width_px=result.width,
        height_px=result.height,
        mime_type=options.encoder_mime_type,
        jpeg_quality=options.jpeg_quality,
        skipped=result.skipped,
        placement=placement_info(result.placement),
        processing_time_ms=result.processing_time_ms,
        created_at=datetime.now(timezone.utc),
    )


@router.post("/resize", response_model=DerivativeResponse, status_code=status.HTTP_201_CREATED, responses=ERROR_RESPONSES)
async def resize_image(
    file: UploadFile = File(..., description="Source image"),
    width: int = Query(..., gt=0, description="Target width in pixels"),
    height: int = Query(..., gt=0, description="Target height in pixels"),
    lock_ratio: bool = Query(True, description="Preserve the source aspect ratio"),
    jpeg_quality: Optional[int] = Query(None, ge=1, le=100),
    mime_type: Optional[str] = Query(None, description="Output MIME type, e.g. image/png"),
) -> DerivativeResponse:
    """
    Scale an image to fit width x height.

    Images already smaller than the request in both dimensions are re-encoded
    unchanged (`skipped=true`).
    """
    logger.info(f"Resize request: {file.filename} -> {width}x{height} (lock_ratio={lock_ratio})")
    options = build_options(jpeg_quality, mime_type)
    job_id = storage_service.create_job()
    image = await read_image_upload(job_id, file, "source")

    try:
        with ImagePipeline(SourceImage.from_array(image)) as pipeline:
            result = pipeline.resize_to(width, height, lock_ratio)
    except ImagingError as e:
        raise imaging_http_error(e)

    return store_result(job_id, Operation.RESIZE, result, options)


@router.post("/crop", response_model=DerivativeResponse, status_code=status.HTTP_201_CREATED, responses=ERROR_RESPONSES)
async def crop_image(
    file: UploadFile = File(..., description="Source image"),
    size: int = Query(..., gt=0, description="Edge length of the square thumbnail"),
    jpeg_quality: Optional[int] = Query(None, ge=1, le=100),
) -> DerivativeResponse:
    """Center-crop an image to a square JPEG thumbnail."""
    logger.info(f"Crop request: {file.filename} -> {size}x{size}")
    options = build_options(jpeg_quality, "image/jpeg")
    job_id = storage_service.create_job()
    image = await read_image_upload(job_id, file, "source")

    try:
        with ImagePipeline(SourceImage.from_array(image)) as pipeline:
            result = pipeline.crop_to_square(size)
    except ImagingError as e:
        raise imaging_http_error(e)

    return store_result(job_id, Operation.CROP, result, options)


@router.post("/watermark", response_model=DerivativeResponse, status_code=status.HTTP_201_CREATED, responses=ERROR_RESPONSES)
async def watermark_image(
    file: UploadFile = File(..., description="Source image"),
    watermark: UploadFile = File(..., description="Watermark image; pure green pixels become transparent"),
    anchor: AnchorPosition = Query(AnchorPosition.BOTTOM_RIGHT),
    margin_h: int = Query(0, description="Distance to the top/bottom edge in pixels"),
    margin_v: int = Query(0, description="Distance to the left/right edge in pixels"),
    jpeg_quality: Optional[int] = Query(None, ge=1, le=100),
) -> DerivativeResponse:
    """Composite a translucent watermark onto an image."""
    logger.info(f"Watermark request: {file.filename} + {watermark.filename} at {anchor.value}")
    options = build_options(jpeg_quality, "image/jpeg")
    job_id = storage_service.create_job()
    image = await read_image_upload(job_id, file, "source")
    mark = await read_image_upload(job_id, watermark, "watermark")

    try:
        with ImagePipeline(SourceImage.from_array(image)) as pipeline:
            result = pipeline.apply_watermark_image(mark, anchor, margin_h, margin_v)
    except ImagingError as e:
        raise imaging_http_error(e)

    return store_result(job_id, Operation.WATERMARK, result, options)


@router.post("/text", response_model=DerivativeResponse, status_code=status.HTTP_201_CREATED, responses=ERROR_RESPONSES)
async def text_image(
    file: UploadFile = File(..., description="Source image"),
    text: str = Query(..., min_length=1),
    font_name: Optional[str] = Query(None, description="TrueType font file name or path"),
    font_size: Optional[float] = Query(None, gt=0),
    x: int = Query(0, ge=0),
    y: int = Query(0, ge=0),
    width: Optional[int] = Query(None, ge=0, description="Defaults to the image width"),
    height: Optional[int] = Query(None, ge=0, description="Defaults to the image height"),
    color: Optional[str] = Query(None, description="Text color as #rrggbb or #rrggbbaa"),
    alignment: TextAlignment = Query(TextAlignment.NEAR),
    jpeg_quality: Optional[int] = Query(None, ge=1, le=100),
) -> DerivativeResponse:
    """Draw text inside a rectangle of the image."""
    logger.info(f"Text request: {file.filename} ({len(text)} chars)")
    options = build_options(jpeg_quality, "image/jpeg")
    job_id = storage_service.create_job()
    image = await read_image_upload(job_id, file, "source")

    try:
        brush = Color.from_hex(color) if color else None
        rect = Rectangle(
            x=x,
            y=y,
            width=width if width is not None else image.shape[1] - x,
            height=height if height is not None else image.shape[0] - y,
        )
        with ImagePipeline(SourceImage.from_array(image)) as pipeline:
            result = pipeline.overlay_text(text, font_name, font_size, rect, brush, alignment)
    except ImagingError as e:
        raise imaging_http_error(e)

    return store_result(job_id, Operation.TEXT, result, options)


@router.post("/merge", response_model=DerivativeResponse, status_code=status.HTTP_201_CREATED, responses=ERROR_RESPONSES)
async def merge_images(
    back: UploadFile = File(..., description="Image drawn first, at the offset"),
    fore: UploadFile = File(..., description="Image used as the canvas and drawn on top"),
    x: int = Query(0),
    y: int = Query(0),
    width: int = Query(..., ge=0, description="Clip width of the back image"),
    height: int = Query(..., ge=0, description="Clip height of the back image"),
    jpeg_quality: Optional[int] = Query(None, ge=1, le=100),
) -> DerivativeResponse:
    """
    Merge two images.

    The output has the fore image's size; the back image is only visible where
    the fore image is transparent.
    """
    logger.info(f"Merge request: {back.filename} behind {fore.filename} at ({x}, {y})")
    options = build_options(jpeg_quality, "image/jpeg")
    job_id = storage_service.create_job()
    back_image = await read_image_upload(job_id, back, "back")
    fore_image = await read_image_upload(job_id, fore, "fore")

    try:
        result = ImagePipeline.merge_images(
            back_image, fore_image, Rectangle(x=x, y=y, width=width, height=height)
        )
    except ImagingError as e:
        raise imaging_http_error(e)

    return store_result(job_id, Operation.MERGE, result, options)
