"""
Two-layer merge placement service.
"""

import logging
from dataclasses import dataclass

from thumbforge.services.geometry import (
    Dimensions,
    InterpolationQuality,
    InvalidDimensionError,
    Placement,
    Rectangle,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MergePlacement:
    """Both draw passes of a merge, in drawing order."""
    canvas: Dimensions
    back: Placement
    fore: Placement


class MergeService:
    """
    Stacks a back image and a fore image without scaling.

    The canvas is a copy of the fore image. The back image is drawn at its
    offset and the fore image is then drawn over the whole canvas at (0, 0),
    so the back layer only shows where the fore image is transparent.
    """

    def compute_merge_placement(self, fore: Dimensions, back_offset: Rectangle) -> MergePlacement:
        """
        Compute the back and fore draw passes.

        Args:
            fore: Dimensions of the fore image (also the canvas size)
            back_offset: Where the back image is drawn; width and height clip
                the back image, it is never scaled

        Raises:
            InvalidDimensionError: If the offset has a negative size or the
                fore image is empty
        """
        if back_offset.width < 0 or back_offset.height < 0:
            raise InvalidDimensionError(
                f"Back offset size must not be negative, got "
                f"{back_offset.width}x{back_offset.height}",
                details=back_offset.to_dict(),
            )
        if fore.is_empty:
            raise InvalidDimensionError(
                f"Fore image is empty ({fore.width}x{fore.height})",
                details=fore.to_dict(),
            )

        back = Placement(
            canvas=fore,
            dest_rect=back_offset,
            source_rect=Rectangle(x=0, y=0, width=back_offset.width, height=back_offset.height),
            interpolation=InterpolationQuality.NEAREST,
        )
        top = Placement(
            canvas=fore,
            dest_rect=Rectangle.full(fore),
            source_rect=Rectangle.full(fore),
            interpolation=InterpolationQuality.NEAREST,
        )

        logger.debug(
            f"Merge onto {fore.width}x{fore.height}: back at {back_offset.to_dict()}"
        )

        return MergePlacement(canvas=fore, back=back, fore=top)


# Global service instance
merge_service = MergeService()
