"""
Business logic services.
"""

from thumbforge.services.geometry import (
    AnchorPosition,
    Dimensions,
    NoOp,
    Placement,
    Rectangle,
    TextAlignment,
)
from thumbforge.services.resize import ResizeService
from thumbforge.services.crop import CropService
from thumbforge.services.watermark import WatermarkService, WatermarkConfig
from thumbforge.services.merge import MergeService, MergePlacement
from thumbforge.services.text import TextService, TextRenderer, TextPlacement
from thumbforge.services.surface import RasterSurface
from thumbforge.services.storage import StorageService
from thumbforge.services.pipeline import ImagePipeline, OutputOptions, SourceImage

__all__ = [
    "AnchorPosition",
    "Dimensions",
    "NoOp",
    "Placement",
    "Rectangle",
    "TextAlignment",
    "ResizeService",
    "CropService",
    "WatermarkService",
    "WatermarkConfig",
    "MergeService",
    "MergePlacement",
    "TextService",
    "TextRenderer",
    "TextPlacement",
    "RasterSurface",
    "StorageService",
    "ImagePipeline",
    "OutputOptions",
    "SourceImage",
]
