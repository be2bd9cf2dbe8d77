"""
Watermark placement service.

Computes where a watermark lands on a base image and the color transform used
to composite it:
- Pixels matching the key color (pure green by default) become fully transparent
- Every other watermark pixel keeps its color at reduced opacity (30% by default)
"""

import logging
from dataclasses import dataclass
from typing import Optional, Tuple

from thumbforge.config import settings
from thumbforge.services.geometry import (
    AlphaScale,
    AnchorPosition,
    ChannelRemap,
    Color,
    ColorTransform,
    Dimensions,
    IDENTITY,
    InterpolationQuality,
    InvalidDimensionError,
    PixelFormat,
    Placement,
    Rectangle,
    WrapMode,
    truncating_div,
)

logger = logging.getLogger(__name__)

TRANSPARENT = Color(0, 0, 0, 0)


@dataclass
class WatermarkConfig:
    """Configuration for watermark compositing."""
    key_color: Tuple[int, int, int] = tuple(settings.watermark_key_color)
    opacity: float = settings.watermark_opacity


def watermark_color_transform(
    key_color: Tuple[int, int, int] = (0, 255, 0),
    opacity: float = 0.3,
) -> ColorTransform:
    """
    Color key followed by a uniform alpha scale.

    The remap runs first so that the key matches the fully opaque color
    before its alpha is scaled.
    """
    r, g, b = key_color
    remap = ChannelRemap(old_color=Color(r, g, b, 255), new_color=TRANSPARENT)
    return remap.then(AlphaScale(factor=opacity))


class WatermarkService:
    """Service for placing translucent watermarks on images."""

    def __init__(self, config: Optional[WatermarkConfig] = None):
        self.config = config or WatermarkConfig()

    def compute_offset(
        self,
        base: Dimensions,
        watermark: Dimensions,
        anchor: AnchorPosition,
        margin_h: int,
        margin_v: int,
    ) -> Tuple[int, int]:
        """
        Top-left corner of the watermark for an anchor position.

        `margin_h` is the distance to the horizontal (top or bottom) edge and
        moves the watermark vertically; `margin_v` is the distance to the
        vertical (left or right) edge and moves it horizontally. Margins are
        ignored for CENTER.
        """
        if anchor == AnchorPosition.CENTER:
            return (
                truncating_div(base.width - watermark.width, 2),
                truncating_div(base.height - watermark.height, 2),
            )
        if anchor == AnchorPosition.TOP_LEFT:
            return margin_v, margin_h
        if anchor == AnchorPosition.TOP_RIGHT:
            return base.width - watermark.width - margin_v, margin_h
        if anchor == AnchorPosition.BOTTOM_LEFT:
            return margin_v, base.height - watermark.height - margin_h
        if anchor == AnchorPosition.BOTTOM_RIGHT:
            return (
                base.width - watermark.width - margin_v,
                base.height - watermark.height - margin_h,
            )
        raise ValueError(f"Unknown anchor position: {anchor}")

    def compute_watermark_placement(
        self,
        base: Dimensions,
        watermark: Dimensions,
        anchor: AnchorPosition,
        margin_h: int = 0,
        margin_v: int = 0,
        config: Optional[WatermarkConfig] = None,
    ) -> Placement:
        """
        Compute the watermark draw pass.

        Args:
            base: Dimensions of the image being watermarked
            watermark: Dimensions of the watermark image
            anchor: One of the five anchor positions
            margin_h: Pixels to the horizontal (top/bottom) edge
            margin_v: Pixels to the vertical (left/right) edge
            config: Optional override of key color and opacity

        Returns:
            Placement drawing the full watermark 1:1 at the anchored offset on
            a 24-bit canvas of the base size. The destination may extend past
            the canvas when the watermark is larger than the base; the surface
            clips it.
        """
        config = config or self.config

        if base.is_empty or watermark.is_empty:
            raise InvalidDimensionError(
                f"Cannot watermark {base.width}x{base.height} with "
                f"{watermark.width}x{watermark.height}",
                details={"base": base.to_dict(), "watermark": watermark.to_dict()},
            )

        x, y = self.compute_offset(base, watermark, anchor, margin_h, margin_v)

        logger.debug(
            f"Watermark {watermark.width}x{watermark.height} at ({x}, {y}) "
            f"on {base.width}x{base.height} (anchor={anchor.value})"
        )

        return Placement(
            canvas=base,
            dest_rect=Rectangle(x=x, y=y, width=watermark.width, height=watermark.height),
            source_rect=Rectangle.full(watermark),
            transform=watermark_color_transform(config.key_color, config.opacity),
            interpolation=InterpolationQuality.BILINEAR,
            pixel_format=PixelFormat.RGB24,
            wrap_mode=WrapMode.CLAMP,
        )

    def compute_base_placement(self, base: Dimensions) -> Placement:
        """1:1 copy of the base image onto the 24-bit watermark canvas."""
        return Placement(
            canvas=base,
            dest_rect=Rectangle.full(base),
            source_rect=Rectangle.full(base),
            transform=IDENTITY,
            interpolation=InterpolationQuality.BILINEAR,
            pixel_format=PixelFormat.RGB24,
            wrap_mode=WrapMode.CLAMP,
        )


# Global service instance
watermark_service = WatermarkService()
