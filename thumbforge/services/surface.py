"""
Raster surface backed by numpy arrays and OpenCV.

Surfaces are uint8 arrays in OpenCV channel order: H x W x 3 (BGR) for 24-bit
canvases and H x W x 4 (BGRA) for 32-bit canvases. Drawing calls mutate the
destination array in place.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Tuple

import cv2
import numpy as np

from thumbforge.services.geometry import (
    ColorTransform,
    Dimensions,
    IDENTITY,
    ImagingError,
    InterpolationQuality,
    InvalidOptionError,
    PixelFormat,
    Placement,
    Rectangle,
    WrapMode,
)

logger = logging.getLogger(__name__)


class SourceUnavailableError(ImagingError):
    """An image could not be read or decoded."""
    code = "SOURCE_UNAVAILABLE"


class UnsupportedEncoderError(ImagingError):
    """No encoder is registered for the requested MIME type."""
    code = "UNSUPPORTED_ENCODER"


class EncodeError(ImagingError):
    """The encoder rejected the surface."""
    code = "ENCODE_FAILED"


@dataclass(frozen=True)
class EncoderInfo:
    """An output codec selected by MIME type."""
    mime_type: str
    extension: str
    quality_flag: Optional[int] = None  # OpenCV imwrite flag, if the codec is lossy
    supports_alpha: bool = False


ENCODERS = {
    "image/jpeg": EncoderInfo("image/jpeg", ".jpg", cv2.IMWRITE_JPEG_QUALITY),
    "image/png": EncoderInfo("image/png", ".png", supports_alpha=True),
    "image/bmp": EncoderInfo("image/bmp", ".bmp"),
    "image/tiff": EncoderInfo("image/tiff", ".tiff", supports_alpha=True),
    "image/webp": EncoderInfo("image/webp", ".webp", cv2.IMWRITE_WEBP_QUALITY, supports_alpha=True),
}

_INTERPOLATION_FLAGS = {
    InterpolationQuality.NEAREST: cv2.INTER_NEAREST,
    InterpolationQuality.BILINEAR: cv2.INTER_LINEAR,
    InterpolationQuality.HIGH_QUALITY_BICUBIC: cv2.INTER_CUBIC,
}

_BORDER_MODES = {
    WrapMode.CLAMP: cv2.BORDER_REPLICATE,
    WrapMode.TILE_FLIP: cv2.BORDER_REFLECT,
}


def normalize_mime_type(mime_type: Optional[str]) -> str:
    """Canonical form of a MIME type for encoder lookup."""
    return mime_type.strip().lower() if mime_type else ""


def _normalize(image: np.ndarray) -> np.ndarray:
    """Coerce a decoded image to 8-bit BGR or BGRA."""
    if image.dtype == np.uint16:
        image = (image // 257).astype(np.uint8)
    elif image.dtype != np.uint8:
        image = np.clip(image, 0, 255).astype(np.uint8)

    if image.ndim == 2:
        return cv2.cvtColor(image, cv2.COLOR_GRAY2BGR)
    if image.shape[2] == 1:
        return cv2.cvtColor(image[:, :, 0], cv2.COLOR_GRAY2BGR)
    return image


def _to_bgra(image: np.ndarray) -> np.ndarray:
    if image.shape[2] == 4:
        return image.copy()
    return cv2.cvtColor(image, cv2.COLOR_BGR2BGRA)


def _premultiply(layer: np.ndarray) -> np.ndarray:
    """BGRA uint8 to float32 with color scaled by alpha."""
    out = layer.astype(np.float32)
    out[:, :, :3] *= out[:, :, 3:4] / 255.0
    return out


def _unpremultiply(layer: np.ndarray) -> np.ndarray:
    alpha = layer[:, :, 3:4]
    rgb = np.where(alpha > 0, layer[:, :, :3] * 255.0 / np.maximum(alpha, 1e-6), 0.0)
    out = np.concatenate([rgb, alpha], axis=2)
    return np.rint(np.clip(out, 0, 255)).astype(np.uint8)


class RasterSurface:
    """Allocates, draws, loads and encodes pixel buffers."""

    def create(
        self,
        width: int,
        height: int,
        pixel_format: PixelFormat = PixelFormat.DEFAULT,
        like: Optional[np.ndarray] = None,
    ) -> np.ndarray:
        """
        Allocate a zeroed canvas.

        Args:
            width: Canvas width in pixels
            height: Canvas height in pixels
            pixel_format: RGB24 gives 3 channels, ARGB32 gives 4 (fully
                transparent); DEFAULT follows `like`, or 3 channels without it
            like: Source image whose channel layout DEFAULT follows
        """
        if pixel_format == PixelFormat.RGB24:
            channels = 3
        elif pixel_format == PixelFormat.ARGB32:
            channels = 4
        else:
            channels = like.shape[2] if like is not None and like.ndim == 3 else 3
        return np.zeros((height, width, channels), dtype=np.uint8)

    def create_for(self, placement: Placement, like: Optional[np.ndarray] = None) -> np.ndarray:
        """Allocate the canvas a placement asks for."""
        return self.create(
            placement.canvas.width,
            placement.canvas.height,
            placement.pixel_format,
            like=like,
        )

    def load_from_path(self, path: Path) -> Tuple[np.ndarray, Dimensions]:
        """
        Load an image file as BGR or BGRA.

        Raises:
            SourceUnavailableError: If the file is missing or cannot be decoded
        """
        path = Path(path)
        if not path.is_file():
            raise SourceUnavailableError(
                f"Image file not found: {path}", details={"path": str(path)}
            )

        image = cv2.imread(str(path), cv2.IMREAD_UNCHANGED)
        if image is None:
            raise SourceUnavailableError(
                f"Cannot decode image: {path}", details={"path": str(path)}
            )

        image = _normalize(image)
        dims = Dimensions.of(image)
        logger.debug(f"Loaded {path} ({dims.width}x{dims.height}, {image.shape[2]} channels)")
        return image, dims

    def decode(self, content: bytes) -> Tuple[np.ndarray, Dimensions]:
        """Decode an in-memory image (e.g. an upload) as BGR or BGRA."""
        buffer = np.frombuffer(content, np.uint8)
        image = cv2.imdecode(buffer, cv2.IMREAD_UNCHANGED) if buffer.size else None
        if image is None:
            raise SourceUnavailableError(
                "Content is not a decodable image", details={"size_bytes": len(content)}
            )
        image = _normalize(image)
        return image, Dimensions.of(image)

    def _scale_region(
        self,
        region: np.ndarray,
        size: Dimensions,
        interpolation: InterpolationQuality,
        wrap_mode: WrapMode,
    ) -> np.ndarray:
        src_h, src_w = region.shape[:2]
        if (src_w, src_h) == (size.width, size.height):
            return region

        shrinking = size.width <= src_w and size.height <= src_h
        if interpolation == InterpolationQuality.HIGH_QUALITY_BICUBIC and shrinking:
            # Area averaging never samples outside the region
            return cv2.resize(region, (size.width, size.height), interpolation=cv2.INTER_AREA)

        sx = size.width / src_w
        sy = size.height / src_h
        # Pixel-center aligned scale
        matrix = np.array([
            [sx, 0.0, 0.5 * sx - 0.5],
            [0.0, sy, 0.5 * sy - 0.5],
        ], dtype=np.float32)

        return cv2.warpAffine(
            region,
            matrix,
            (size.width, size.height),
            flags=_INTERPOLATION_FLAGS[interpolation],
            borderMode=_BORDER_MODES[wrap_mode],
        )

    def composite(self, dst: np.ndarray, origin_x: int, origin_y: int, layer: np.ndarray) -> None:
        """Source-over composite of a BGRA layer onto dst, clipped to dst."""
        layer_h, layer_w = layer.shape[:2]
        target = Rectangle(x=origin_x, y=origin_y, width=layer_w, height=layer_h)
        clip = Rectangle.full(Dimensions.of(dst)).intersect(target)
        if clip is None:
            logger.debug(f"Draw at {target.to_dict()} falls outside the canvas")
            return

        src = layer[
            clip.y - origin_y : clip.bottom - origin_y,
            clip.x - origin_x : clip.right - origin_x,
        ].astype(np.float32) / 255.0
        region = dst[clip.y : clip.bottom, clip.x : clip.right]
        out = region.astype(np.float32) / 255.0

        alpha = src[:, :, 3:4]
        if dst.shape[2] == 3:
            out = src[:, :, :3] * alpha + out * (1 - alpha)
        else:
            dst_alpha = out[:, :, 3:4]
            out_alpha = alpha + dst_alpha * (1 - alpha)
            rgb = src[:, :, :3] * alpha + out[:, :, :3] * dst_alpha * (1 - alpha)
            safe = np.where(out_alpha > 0, out_alpha, 1.0)
            out = np.concatenate([rgb / safe, out_alpha], axis=2)

        region[...] = np.rint(np.clip(out, 0, 1) * 255).astype(np.uint8)

    def draw_scaled(
        self,
        dst: np.ndarray,
        dest_rect: Rectangle,
        src: np.ndarray,
        source_rect: Rectangle,
        transform: ColorTransform = IDENTITY,
        interpolation: InterpolationQuality = InterpolationQuality.HIGH_QUALITY_BICUBIC,
        wrap_mode: WrapMode = WrapMode.CLAMP,
    ) -> None:
        """
        Draw source_rect of src into dest_rect of dst, scaling as needed.

        The color transform is applied to the source pixels before they are
        resampled (with premultiplied alpha) and blended onto dst. Parts of dest_rect outside dst
        are clipped.
        """
        if dest_rect.width <= 0 or dest_rect.height <= 0:
            return

        bounds = Rectangle.full(Dimensions.of(src))
        if not bounds.contains(source_rect) or source_rect.width <= 0 or source_rect.height <= 0:
            raise InvalidOptionError(
                f"Source region {source_rect.to_dict()} is outside the "
                f"{bounds.width}x{bounds.height} source",
                details={"source_rect": source_rect.to_dict()},
            )

        region = src[source_rect.y : source_rect.bottom, source_rect.x : source_rect.right]
        layer = transform.apply(_to_bgra(region))
        if (layer.shape[1], layer.shape[0]) != (dest_rect.width, dest_rect.height):
            # Resample premultiplied so transparent pixels carry no color into edges
            scaled = self._scale_region(_premultiply(layer), dest_rect.size, interpolation, wrap_mode)
            layer = _unpremultiply(scaled)
        self.composite(dst, dest_rect.x, dest_rect.y, layer)

    def draw_placement(self, dst: np.ndarray, src: np.ndarray, placement: Placement) -> None:
        """Execute one placement onto an existing canvas."""
        self.draw_scaled(
            dst,
            placement.dest_rect,
            src,
            placement.source_rect,
            placement.transform,
            placement.interpolation,
            placement.wrap_mode,
        )

    def draw_unscaled(self, dst: np.ndarray, dest_rect: Rectangle, src: np.ndarray) -> None:
        """
        Draw src 1:1 with its top-left corner at the rect origin.

        Only the part of src that fits in dest_rect's size is drawn; pixels
        are never resampled.
        """
        src_h, src_w = src.shape[:2]
        width = min(dest_rect.width, src_w)
        height = min(dest_rect.height, src_h)
        if width <= 0 or height <= 0:
            return
        self.composite(dst, dest_rect.x, dest_rect.y, _to_bgra(src[:height, :width]))

    def get_encoder(self, mime_type: str) -> Optional[EncoderInfo]:
        """Encoder for a MIME type, or None when there is none."""
        return ENCODERS.get(normalize_mime_type(mime_type))

    def encode(self, surface: np.ndarray, encoder: EncoderInfo, quality: int) -> bytes:
        """Encode a surface in memory."""
        image = surface
        if image.ndim == 3 and image.shape[2] == 4 and not encoder.supports_alpha:
            image = cv2.cvtColor(image, cv2.COLOR_BGRA2BGR)

        params = [encoder.quality_flag, int(quality)] if encoder.quality_flag is not None else []
        ok, buffer = cv2.imencode(encoder.extension, image, params)
        if not ok:
            raise EncodeError(
                f"Encoder {encoder.mime_type} failed",
                details={"mime_type": encoder.mime_type},
            )
        return buffer.tobytes()

    def encode_and_save(
        self,
        surface: np.ndarray,
        path: Path,
        encoder: EncoderInfo,
        quality: int,
    ) -> Path:
        """Encode a surface and write it to path."""
        path = Path(path)
        data = self.encode(surface, encoder, quality)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)
        logger.info(f"Saved {encoder.mime_type} ({len(data)} bytes) to {path}")
        return path


# Global surface instance
raster_surface = RasterSurface()
