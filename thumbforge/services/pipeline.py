"""
Image derivation pipeline.

Owns a source image and turns placement computations into pixels:
1. Ask the placement service where everything goes
2. Allocate the canvas on the raster surface
3. Draw the source (and any overlay) according to the placement
4. Optionally encode and save the result

Usage:
    with ImagePipeline.open("photo.jpg") as pipeline:
        result = pipeline.crop_to_square(150)
        pipeline.save(result.image, "thumb.jpg")
"""

import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Union

import numpy as np

from thumbforge.config import settings
from thumbforge.services.crop import CropService, crop_service
from thumbforge.services.geometry import (
    AnchorPosition,
    Color,
    Dimensions,
    InvalidOptionError,
    NoOp,
    Placement,
    Rectangle,
    TextAlignment,
    require_positive,
)
from thumbforge.services.merge import MergePlacement, merge_service
from thumbforge.services.resize import ResizeService, resize_service
from thumbforge.services.surface import (
    RasterSurface,
    SourceUnavailableError,
    UnsupportedEncoderError,
    normalize_mime_type,
    raster_surface,
)
from thumbforge.services.text import TextPlacement, TextRenderer, text_renderer, text_service
from thumbforge.services.watermark import WatermarkConfig, WatermarkService, watermark_service

logger = logging.getLogger(__name__)


@dataclass
class SourceImage:
    """A loaded source image. Pixels are BGR or BGRA."""
    pixels: np.ndarray
    dimensions: Dimensions
    path: Optional[Path] = None

    @classmethod
    def from_array(cls, pixels: np.ndarray, path: Optional[Path] = None) -> "SourceImage":
        return cls(pixels=pixels, dimensions=Dimensions.of(pixels), path=path)


@dataclass
class OutputOptions:
    """Encoding options for saved derivatives."""
    jpeg_quality: int = field(default_factory=lambda: settings.default_jpeg_quality)
    encoder_mime_type: str = field(default_factory=lambda: settings.default_mime_type)

    def __post_init__(self):
        self.encoder_mime_type = normalize_mime_type(self.encoder_mime_type)

    def validate(self) -> None:
        if not 1 <= self.jpeg_quality <= 100:
            raise InvalidOptionError(
                f"JPEG quality must be within 1-100, got {self.jpeg_quality}",
                details={"jpeg_quality": self.jpeg_quality},
            )


@dataclass
class DerivationResult:
    """Result of one pipeline operation."""
    image: np.ndarray
    operation: str
    placement: Optional[Union[Placement, MergePlacement, TextPlacement]] = None
    skipped: bool = False  # True when the source was reused unchanged
    processing_time_ms: int = 0

    @property
    def width(self) -> int:
        return int(self.image.shape[1])

    @property
    def height(self) -> int:
        return int(self.image.shape[0])


class ImagePipeline:
    """
    Derives resized, cropped, watermarked, annotated and merged images.

    The pipeline is a context manager; leaving the block releases the source
    pixels and any further operation raises SourceUnavailableError.
    """

    def __init__(
        self,
        source: SourceImage,
        surface: Optional[RasterSurface] = None,
        renderer: Optional[TextRenderer] = None,
        resizer: Optional[ResizeService] = None,
        cropper: Optional[CropService] = None,
        watermarker: Optional[WatermarkService] = None,
    ):
        self._source = source
        self.surface = surface or raster_surface
        self.renderer = renderer or text_renderer
        self.resizer = resizer or resize_service
        self.cropper = cropper or crop_service
        self.watermarker = watermarker or watermark_service

    @classmethod
    def open(cls, path: Union[str, Path], surface: Optional[RasterSurface] = None, **kwargs) -> "ImagePipeline":
        """Load a source image from disk."""
        surface = surface or raster_surface
        pixels, dims = surface.load_from_path(Path(path))
        return cls(SourceImage(pixels=pixels, dimensions=dims, path=Path(path)), surface=surface, **kwargs)

    def __enter__(self) -> "ImagePipeline":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def close(self) -> None:
        """Release the source image."""
        self._source = None

    @property
    def source(self) -> SourceImage:
        if self._source is None:
            raise SourceUnavailableError("Pipeline has been closed")
        return self._source

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def resize_to(self, width: int, height: int, lock_ratio: bool = True) -> DerivationResult:
        """
        Scale the source to fit width x height.

        Returns the source pixels unchanged (skipped=True) when no resize is
        needed.
        """
        start_time = time.time()
        require_positive(width=width, height=height)
        source = self.source

        logger.info(
            f"Resizing {source.dimensions.width}x{source.dimensions.height} "
            f"to {width}x{height} (lock_ratio={lock_ratio})"
        )

        placement = self.resizer.compute_resize_placement(source.dimensions, width, height, lock_ratio)
        if isinstance(placement, NoOp):
            logger.info(f"Resize skipped: {placement.reason}")
            return DerivationResult(
                image=source.pixels,
                operation="resize",
                skipped=True,
                processing_time_ms=int((time.time() - start_time) * 1000),
            )

        canvas = self.surface.create_for(placement, like=source.pixels)
        self.surface.draw_placement(canvas, source.pixels, placement)

        return self._finish(canvas, "resize", placement, start_time)

    def crop_to_square(self, size: int) -> DerivationResult:
        """Center-crop the source to a size x size 24-bit thumbnail."""
        start_time = time.time()
        require_positive(size=size)
        source = self.source

        logger.info(
            f"Cropping {source.dimensions.width}x{source.dimensions.height} to {size}x{size} square"
        )

        placement = self.cropper.compute_crop_placement(source.dimensions, size)
        canvas = self.surface.create_for(placement)
        self.surface.draw_placement(canvas, source.pixels, placement)

        return self._finish(canvas, "crop", placement, start_time)

    def apply_watermark(
        self,
        watermark_path: Union[str, Path],
        anchor: AnchorPosition = AnchorPosition.BOTTOM_RIGHT,
        margin_h: int = 0,
        margin_v: int = 0,
        config: Optional[WatermarkConfig] = None,
    ) -> DerivationResult:
        """
        Composite a watermark image onto a 24-bit copy of the source.

        `margin_h` is the distance to the top/bottom edge, `margin_v` the
        distance to the left/right edge.
        """
        watermark, _ = self.surface.load_from_path(Path(watermark_path))
        return self.apply_watermark_image(watermark, anchor, margin_h, margin_v, config)

    def apply_watermark_image(
        self,
        watermark: np.ndarray,
        anchor: AnchorPosition = AnchorPosition.BOTTOM_RIGHT,
        margin_h: int = 0,
        margin_v: int = 0,
        config: Optional[WatermarkConfig] = None,
    ) -> DerivationResult:
        """Same as apply_watermark, with the watermark already in memory."""
        start_time = time.time()
        source = self.source
        anchor = AnchorPosition(anchor)
        wm_dims = Dimensions.of(watermark)

        logger.info(
            f"Watermarking {source.dimensions.width}x{source.dimensions.height} with "
            f"{wm_dims.width}x{wm_dims.height} at {anchor.value} "
            f"(margin_h={margin_h}, margin_v={margin_v})"
        )

        placement = self.watermarker.compute_watermark_placement(
            source.dimensions, wm_dims, anchor, margin_h, margin_v, config
        )

        # Base pass: flatten the source onto a 24-bit canvas
        base_placement = self.watermarker.compute_base_placement(source.dimensions)
        canvas = self.surface.create_for(base_placement)
        self.surface.draw_placement(canvas, source.pixels, base_placement)

        # Watermark pass: color key + alpha scale
        self.surface.draw_placement(canvas, watermark, placement)

        return self._finish(canvas, "watermark", placement, start_time)

    def overlay_text(
        self,
        text: str,
        font_name: Optional[str] = None,
        font_size: Optional[float] = None,
        rect: Optional[Rectangle] = None,
        brush: Optional[Color] = None,
        alignment: TextAlignment = TextAlignment.NEAR,
    ) -> DerivationResult:
        """
        Draw text onto the source image itself.

        The source pixels are modified in place; the returned image is the
        source array.
        """
        start_time = time.time()
        source = self.source
        font_name = font_name or settings.default_font_name
        if font_size is None:
            font_size = settings.default_font_size
        brush = brush or Color.from_hex(settings.default_text_color)
        rect = rect or Rectangle.full(source.dimensions)

        # Fonts are rasterized at whole pixel sizes
        if round(font_size) < 1:
            raise InvalidOptionError(
                f"Font size must be at least 1px, got {font_size}",
                details={"font_size": font_size},
            )

        placement = text_service.compute_text_placement(rect, alignment)

        logger.info(
            f"Drawing text ({len(text)} chars, {font_name} {font_size}px) "
            f"into {placement.rect.to_dict()}"
        )

        self.renderer.draw_text(
            source.pixels,
            text,
            font_name,
            font_size,
            brush,
            placement.rect,
            placement.alignment,
        )

        return self._finish(source.pixels, "text", placement, start_time)

    @staticmethod
    def merge(
        back_path: Union[str, Path],
        fore_path: Union[str, Path],
        offset: Rectangle,
        surface: Optional[RasterSurface] = None,
    ) -> DerivationResult:
        """
        Draw the back image at offset, then the fore image at (0, 0), on a
        canvas that is a copy of the fore image.
        """
        surface = surface or raster_surface
        back, _ = surface.load_from_path(Path(back_path))
        fore, _ = surface.load_from_path(Path(fore_path))
        return ImagePipeline.merge_images(back, fore, offset, surface=surface)

    @staticmethod
    def merge_images(
        back: np.ndarray,
        fore: np.ndarray,
        offset: Rectangle,
        surface: Optional[RasterSurface] = None,
    ) -> DerivationResult:
        """Same as merge, with both images already in memory."""
        start_time = time.time()
        surface = surface or raster_surface

        placement = merge_service.compute_merge_placement(Dimensions.of(fore), offset)

        logger.info(
            f"Merging {back.shape[1]}x{back.shape[0]} behind "
            f"{fore.shape[1]}x{fore.shape[0]} at ({offset.x}, {offset.y})"
        )

        canvas = fore.copy()
        surface.draw_unscaled(canvas, placement.back.dest_rect, back)
        surface.draw_unscaled(canvas, placement.fore.dest_rect, fore)

        processing_time = int((time.time() - start_time) * 1000)
        return DerivationResult(
            image=canvas,
            operation="merge",
            placement=placement,
            processing_time_ms=processing_time,
        )

    # ------------------------------------------------------------------
    # Output
    # ------------------------------------------------------------------

    def save(
        self,
        image: np.ndarray,
        path: Union[str, Path],
        options: Optional[OutputOptions] = None,
    ) -> Path:
        """Encode and save an image; see save_image."""
        return save_image(image, path, options, surface=self.surface)

    def _finish(
        self,
        image: np.ndarray,
        operation: str,
        placement,
        start_time: float,
    ) -> DerivationResult:
        processing_time = int((time.time() - start_time) * 1000)
        logger.info(
            f"{operation} produced {image.shape[1]}x{image.shape[0]} in {processing_time}ms"
        )
        return DerivationResult(
            image=image,
            operation=operation,
            placement=placement,
            processing_time_ms=processing_time,
        )


def save_image(
    image: np.ndarray,
    path: Union[str, Path],
    options: Optional[OutputOptions] = None,
    surface: Optional[RasterSurface] = None,
) -> Path:
    """
    Encode an image with the encoder for options.encoder_mime_type.

    Raises:
        InvalidOptionError: If the JPEG quality is outside 1-100
        UnsupportedEncoderError: If no encoder handles the MIME type
    """
    options = options or OutputOptions()
    options.validate()
    surface = surface or raster_surface

    encoder = surface.get_encoder(options.encoder_mime_type)
    if encoder is None:
        raise UnsupportedEncoderError(
            f"No encoder for '{options.encoder_mime_type}'",
            details={"mime_type": options.encoder_mime_type},
        )

    return surface.encode_and_save(image, Path(path), encoder, options.jpeg_quality)
