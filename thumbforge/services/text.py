"""
Text overlay placement and rendering.

Text is rendered with Pillow into a coverage mask the size of the bounding
rectangle, tinted with the brush and composited onto the surface, so anything
that does not fit inside the rectangle is clipped.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional

import numpy as np
from PIL import Image, ImageDraw, ImageFont

from thumbforge.services.geometry import (
    Color,
    InvalidDimensionError,
    Rectangle,
    TextAlignment,
)
from thumbforge.services.surface import RasterSurface, raster_surface

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TextPlacement:
    """Where and how a block of text is drawn."""
    rect: Rectangle
    alignment: TextAlignment = TextAlignment.NEAR


class TextService:
    """Validates text placements; there is no geometry beyond pass-through."""

    def compute_text_placement(
        self,
        bounding_rect: Rectangle,
        alignment: TextAlignment = TextAlignment.NEAR,
    ) -> TextPlacement:
        if bounding_rect.width < 0 or bounding_rect.height < 0:
            raise InvalidDimensionError(
                f"Text rectangle size must not be negative, got "
                f"{bounding_rect.width}x{bounding_rect.height}",
                details=bounding_rect.to_dict(),
            )
        return TextPlacement(rect=bounding_rect, alignment=TextAlignment(alignment))


class TextRenderer:
    """Draws anti-aliased, word-wrapped text onto surfaces with Pillow."""

    def __init__(self, surface: Optional[RasterSurface] = None):
        self.surface = surface or raster_surface

    def load_font(self, font_name: str, font_size: float) -> ImageFont.ImageFont:
        """
        Load a TrueType font by file name or path.

        Falls back to Pillow's bundled font at the same size when the font
        cannot be found.
        """
        try:
            return ImageFont.truetype(font_name, size=max(1, int(round(font_size))))
        except OSError:
            logger.warning(f"Font '{font_name}' not found, using default font")
            return ImageFont.load_default(size=max(1, font_size))

    def wrap_lines(
        self,
        draw: ImageDraw.ImageDraw,
        text: str,
        font: ImageFont.ImageFont,
        max_width: int,
    ) -> List[str]:
        """Greedy word wrap; words wider than max_width get a line of their own."""
        lines = []
        for paragraph in text.split("\n"):
            current = ""
            for word in paragraph.split(" "):
                candidate = f"{current} {word}" if current else word
                if current and draw.textlength(candidate, font=font) > max_width:
                    lines.append(current)
                    current = word
                else:
                    current = candidate
            lines.append(current)
        return lines

    def draw_text(
        self,
        surface: np.ndarray,
        text: str,
        font_name: str,
        font_size: float,
        brush: Color,
        bounding_rect: Rectangle,
        alignment: TextAlignment = TextAlignment.NEAR,
    ) -> None:
        """
        Draw text inside bounding_rect of surface, mutating it in place.

        Args:
            surface: BGR or BGRA image to draw on
            text: Text to draw; newlines start new lines
            font_name: TrueType font file name or path
            font_size: Font size in pixels
            brush: Text color (alpha is honored)
            bounding_rect: Layout and clip rectangle
            alignment: Horizontal alignment of each line
        """
        if bounding_rect.width <= 0 or bounding_rect.height <= 0 or not text:
            return

        font = self.load_font(font_name, font_size)
        # Coverage only; tinted with the brush below
        mask = Image.new("L", (bounding_rect.width, bounding_rect.height), 0)
        draw = ImageDraw.Draw(mask)

        ascent, descent = font.getmetrics()
        line_height = ascent + descent

        y = 0
        for line in self.wrap_lines(draw, text, font, bounding_rect.width):
            if y >= bounding_rect.height:
                break
            line_width = draw.textlength(line, font=font)
            if alignment == TextAlignment.CENTER:
                x = (bounding_rect.width - line_width) / 2
            elif alignment == TextAlignment.FAR:
                x = bounding_rect.width - line_width
            else:
                x = 0
            draw.text((x, y), line, font=font, fill=255)
            y += line_height

        coverage = np.asarray(mask, dtype=np.float32) / 255.0
        layer = np.empty((bounding_rect.height, bounding_rect.width, 4), dtype=np.uint8)
        layer[:, :, :3] = brush.bgra[:3]
        layer[:, :, 3] = np.rint(coverage * brush.a).astype(np.uint8)
        self.surface.composite(surface, bounding_rect.x, bounding_rect.y, layer)

        logger.debug(
            f"Drew {len(text)} chars of '{font_name}' {font_size}px into "
            f"{bounding_rect.to_dict()}"
        )


# Global service instances
text_service = TextService()
text_renderer = TextRenderer()
