"""
Square crop placement service.
"""

import logging

from thumbforge.services.geometry import (
    Dimensions,
    InterpolationQuality,
    InvalidDimensionError,
    PixelFormat,
    Placement,
    Rectangle,
    WrapMode,
    require_positive,
)

logger = logging.getLogger(__name__)


class CropService:
    """Service for center-cropping images to square thumbnails."""

    def centered_square(self, source: Dimensions) -> Rectangle:
        """
        Largest square of the source, centered along its longer axis.

        The offset is truncated, so an odd difference leaves the extra pixel
        on the right or bottom.
        """
        square = min(source.width, source.height)

        if source.width > source.height:
            return Rectangle(x=(source.width - source.height) // 2, y=0, width=square, height=square)
        if source.height > source.width:
            return Rectangle(x=0, y=(source.height - source.width) // 2, width=square, height=square)
        return Rectangle(x=0, y=0, width=square, height=square)

    def compute_crop_placement(self, source: Dimensions, output_size: int) -> Placement:
        """
        Map the centered square of the source onto an output_size square canvas.

        The canvas is 24-bit RGB, so any source transparency is dropped.

        Raises:
            InvalidDimensionError: If output_size is not positive or the
                source is empty
        """
        require_positive(output_size=output_size)
        if source.is_empty:
            raise InvalidDimensionError(
                f"Source image is empty ({source.width}x{source.height})",
                details=source.to_dict(),
            )

        source_rect = self.centered_square(source)
        canvas = Dimensions(width=output_size, height=output_size)

        logger.debug(
            f"Crop {source.width}x{source.height}: square {source_rect.to_dict()} "
            f"-> {output_size}x{output_size}"
        )

        return Placement(
            canvas=canvas,
            dest_rect=Rectangle.full(canvas),
            source_rect=source_rect,
            interpolation=InterpolationQuality.HIGH_QUALITY_BICUBIC,
            pixel_format=PixelFormat.RGB24,
            wrap_mode=WrapMode.TILE_FLIP,
        )


# Global service instance
crop_service = CropService()
