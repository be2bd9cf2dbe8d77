"""
Resize placement service for scaled thumbnails.
"""

import logging
from typing import Union

from thumbforge.services.geometry import (
    Dimensions,
    InterpolationQuality,
    InvalidDimensionError,
    NoOp,
    PixelFormat,
    Placement,
    Rectangle,
    WrapMode,
    require_positive,
)

logger = logging.getLogger(__name__)


class ResizeService:
    """Computes the canvas and region mapping for scale-to-fit resizes."""

    def compute_resize_placement(
        self,
        source: Dimensions,
        requested_width: int,
        requested_height: int,
        lock_ratio: bool,
    ) -> Union[Placement, NoOp]:
        """
        Compute where a resized copy of the source is drawn.

        Sources already smaller than the request in both dimensions are never
        upscaled. With `lock_ratio`, the ratios are compared with truncating
        integer division, so near-square ratios compare equal and the width
        is treated as dominant.

        Args:
            source: Dimensions of the source image
            requested_width: Target width in pixels
            requested_height: Target height in pixels
            lock_ratio: Preserve the source aspect ratio

        Returns:
            Placement for the resized canvas, or NoOp when the source must be
            reused unchanged

        Raises:
            InvalidDimensionError: If a requested or computed dimension is not
                positive, or the source is empty
        """
        require_positive(requested_width=requested_width, requested_height=requested_height)
        if source.is_empty:
            raise InvalidDimensionError(
                f"Source image is empty ({source.width}x{source.height})",
                details=source.to_dict(),
            )

        if source.width < requested_width and source.height < requested_height:
            logger.debug(
                f"Source {source.width}x{source.height} already fits "
                f"{requested_width}x{requested_height}; not upscaling"
            )
            return NoOp(reason="source is smaller than the requested size")

        width, height = requested_width, requested_height

        if lock_ratio:
            source_ratio = source.width // source.height
            requested_ratio = requested_width // requested_height
            if source_ratio >= requested_ratio:
                height = requested_width * source.height // source.width
            else:
                width = requested_height * source.width // source.height

            if width <= 0 or height <= 0:
                raise InvalidDimensionError(
                    f"Locked-ratio resize of {source.width}x{source.height} to "
                    f"{requested_width}x{requested_height} collapses to {width}x{height}",
                    details={"width": width, "height": height},
                )

        canvas = Dimensions(width=width, height=height)

        logger.debug(
            f"Resize {source.width}x{source.height} -> {width}x{height} "
            f"(lock_ratio={lock_ratio})"
        )

        return Placement(
            canvas=canvas,
            dest_rect=Rectangle.full(canvas),
            source_rect=Rectangle.full(source),
            interpolation=InterpolationQuality.HIGH_QUALITY_BICUBIC,
            pixel_format=PixelFormat.DEFAULT,
            wrap_mode=WrapMode.TILE_FLIP,
        )


# Global service instance
resize_service = ResizeService()
