"""
Core geometry and color-transform types.

Provides the value types shared by the resize, crop, watermark, merge and text
placement services. Every type here is immutable; placements are computed
fresh per call and handed to the raster surface for drawing.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Tuple

import numpy as np


class ImagingError(Exception):
    """Base error for image derivation failures."""
    code = "IMAGING_ERROR"

    def __init__(self, message: str, details: dict = None, code: str = None):
        self.code = code or self.code
        self.message = message
        self.details = details or {}
        super().__init__(message)


class InvalidDimensionError(ImagingError):
    """A width, height or size that is zero or negative."""
    code = "INVALID_DIMENSION"


class InvalidOptionError(ImagingError):
    """An output option or parameter outside its accepted range."""
    code = "INVALID_OPTION"


def truncating_div(a: int, b: int) -> int:
    """Integer division rounding toward zero (Python's // floors)."""
    if b == 0:
        raise ZeroDivisionError("integer division by zero")
    q = abs(a) // abs(b)
    return q if (a >= 0) == (b > 0) else -q


class AnchorPosition(str, Enum):
    """Where a watermark is anchored on the base image."""
    CENTER = "center"
    TOP_LEFT = "top_left"
    TOP_RIGHT = "top_right"
    BOTTOM_LEFT = "bottom_left"
    BOTTOM_RIGHT = "bottom_right"


class TextAlignment(str, Enum):
    """Horizontal alignment of text inside its bounding rectangle."""
    NEAR = "near"
    CENTER = "center"
    FAR = "far"


class InterpolationQuality(str, Enum):
    """Resampling filter used when a region is scaled."""
    NEAREST = "nearest"
    BILINEAR = "bilinear"
    HIGH_QUALITY_BICUBIC = "high_quality_bicubic"


class PixelFormat(str, Enum):
    """Pixel layout of an allocated canvas."""
    DEFAULT = "default"   # Same channel layout as the source
    RGB24 = "rgb24"       # 3 channels, no alpha
    ARGB32 = "argb32"     # 4 channels


class WrapMode(str, Enum):
    """Sampling policy outside the source region."""
    CLAMP = "clamp"
    TILE_FLIP = "tile_flip"  # Mirror tiling


@dataclass(frozen=True)
class Dimensions:
    """Width and height of an image or canvas."""
    width: int
    height: int

    @classmethod
    def of(cls, image: np.ndarray) -> "Dimensions":
        """Read dimensions from a numpy image (rows are height)."""
        height, width = image.shape[:2]
        return cls(width=int(width), height=int(height))

    @property
    def is_empty(self) -> bool:
        return self.width <= 0 or self.height <= 0

    def to_dict(self) -> dict:
        return {"width": self.width, "height": self.height}


@dataclass(frozen=True)
class Rectangle:
    """Axis-aligned region in pixel coordinates."""
    x: int
    y: int
    width: int
    height: int

    @classmethod
    def full(cls, dims: Dimensions) -> "Rectangle":
        """The full extent of a surface with the given dimensions."""
        return cls(x=0, y=0, width=dims.width, height=dims.height)

    @property
    def right(self) -> int:
        return self.x + self.width

    @property
    def bottom(self) -> int:
        return self.y + self.height

    @property
    def size(self) -> Dimensions:
        return Dimensions(width=self.width, height=self.height)

    def contains(self, other: "Rectangle") -> bool:
        return (
            other.x >= self.x
            and other.y >= self.y
            and other.right <= self.right
            and other.bottom <= self.bottom
        )

    def intersect(self, other: "Rectangle") -> Optional["Rectangle"]:
        """Overlapping region of two rectangles, or None if they do not overlap."""
        x1 = max(self.x, other.x)
        y1 = max(self.y, other.y)
        x2 = min(self.right, other.right)
        y2 = min(self.bottom, other.bottom)
        if x2 <= x1 or y2 <= y1:
            return None
        return Rectangle(x=x1, y=y1, width=x2 - x1, height=y2 - y1)

    def to_dict(self) -> dict:
        return {"x": self.x, "y": self.y, "width": self.width, "height": self.height}


@dataclass(frozen=True)
class Color:
    """An 8-bit RGBA color."""
    r: int
    g: int
    b: int
    a: int = 255

    @classmethod
    def from_hex(cls, value: str) -> "Color":
        """Parse '#rrggbb' or '#rrggbbaa'."""
        text = value.strip().lstrip("#")
        if len(text) not in (6, 8):
            raise InvalidOptionError(
                f"Color '{value}' must be in #rrggbb or #rrggbbaa form",
                details={"value": value},
            )
        try:
            channels = [int(text[i:i + 2], 16) for i in range(0, len(text), 2)]
        except ValueError as e:
            raise InvalidOptionError(
                f"Color '{value}' is not valid hex", details={"value": value}
            ) from e
        return cls(*channels)

    @property
    def bgra(self) -> Tuple[int, int, int, int]:
        """Channel order used by OpenCV surfaces."""
        return (self.b, self.g, self.r, self.a)

    @property
    def rgba(self) -> Tuple[int, int, int, int]:
        return (self.r, self.g, self.b, self.a)


# ============================================================
# COLOR TRANSFORMS
# ============================================================
#
# Each transform maps an H x W x 4 BGRA uint8 array to a new array of the
# same shape. Transforms never modify their input.


class ColorTransform:
    """Per-pixel color transform applied while drawing."""

    def apply(self, pixels: np.ndarray) -> np.ndarray:
        raise NotImplementedError

    def then(self, other: "ColorTransform") -> "ColorTransform":
        """Compose: apply self first, then other."""
        return ComposedTransform(steps=(self, other))

    @property
    def is_identity(self) -> bool:
        return False


@dataclass(frozen=True)
class IdentityTransform(ColorTransform):
    """Leaves every pixel unchanged."""

    def apply(self, pixels: np.ndarray) -> np.ndarray:
        return pixels.copy()

    @property
    def is_identity(self) -> bool:
        return True


@dataclass(frozen=True)
class ChannelRemap(ColorTransform):
    """Exact color-key substitution: old_color pixels become new_color."""
    old_color: Color
    new_color: Color

    def apply(self, pixels: np.ndarray) -> np.ndarray:
        result = pixels.copy()
        match = np.all(result == np.array(self.old_color.bgra, dtype=np.uint8), axis=-1)
        result[match] = self.new_color.bgra
        return result


@dataclass(frozen=True)
class AlphaScale(ColorTransform):
    """Multiplies the alpha channel by a constant factor, RGB unchanged."""
    factor: float

    def __post_init__(self):
        if not 0.0 <= self.factor <= 1.0:
            raise InvalidOptionError(
                f"Alpha factor must be within [0, 1], got {self.factor}",
                details={"factor": self.factor},
            )

    @property
    def matrix(self) -> np.ndarray:
        """Equivalent 5x5 RGBA color matrix (row-vector convention)."""
        m = np.eye(5, dtype=np.float32)
        m[3, 3] = self.factor
        return m

    def apply(self, pixels: np.ndarray) -> np.ndarray:
        result = pixels.copy()
        alpha = result[:, :, 3].astype(np.float32) * self.factor
        result[:, :, 3] = np.clip(alpha, 0, 255).astype(np.uint8)
        return result


@dataclass(frozen=True)
class ComposedTransform(ColorTransform):
    """Applies its steps in order."""
    steps: Tuple[ColorTransform, ...] = field(default_factory=tuple)

    def apply(self, pixels: np.ndarray) -> np.ndarray:
        result = pixels
        for step in self.steps:
            result = step.apply(result)
        return result if self.steps else pixels.copy()

    @property
    def is_identity(self) -> bool:
        return all(step.is_identity for step in self.steps)


IDENTITY = IdentityTransform()


# ============================================================
# PLACEMENTS
# ============================================================


@dataclass(frozen=True)
class Placement:
    """
    Complete instruction set for one drawing call.

    The raster surface allocates a canvas of `canvas` size in `pixel_format`,
    then maps `source_rect` of the source onto `dest_rect` of the canvas,
    applying `transform` to every drawn pixel.
    """
    canvas: Dimensions
    dest_rect: Rectangle
    source_rect: Rectangle
    transform: ColorTransform = IDENTITY
    interpolation: InterpolationQuality = InterpolationQuality.HIGH_QUALITY_BICUBIC
    pixel_format: PixelFormat = PixelFormat.DEFAULT
    wrap_mode: WrapMode = WrapMode.CLAMP

    def to_dict(self) -> dict:
        return {
            "canvas": self.canvas.to_dict(),
            "dest_rect": self.dest_rect.to_dict(),
            "source_rect": self.source_rect.to_dict(),
            "interpolation": self.interpolation.value,
            "pixel_format": self.pixel_format.value,
            "wrap_mode": self.wrap_mode.value,
        }


@dataclass(frozen=True)
class NoOp:
    """The caller must reuse the source unchanged."""
    reason: str


def require_positive(**values: int) -> None:
    """Raise InvalidDimensionError for any value that is zero or negative."""
    bad = {name: value for name, value in values.items() if value is None or value <= 0}
    if bad:
        names = ", ".join(sorted(bad))
        raise InvalidDimensionError(
            f"Dimensions must be positive: {names}",
            details=bad,
        )
