"""
Integration tests for the image pipeline - placement, drawing and saving together.
"""

import cv2
import numpy as np
import pytest

from thumbforge.services.geometry import (
    AnchorPosition,
    Color,
    InvalidDimensionError,
    InvalidOptionError,
    Rectangle,
)
from thumbforge.services.pipeline import ImagePipeline, OutputOptions, SourceImage
from thumbforge.services.surface import SourceUnavailableError, UnsupportedEncoderError


def write_image(path, image):
    cv2.imwrite(str(path), image)
    return path


@pytest.fixture
def photo_path(tmp_path):
    """400x200 BGR image: left half blue, right half red."""
    image = np.zeros((200, 400, 3), dtype=np.uint8)
    image[:, :200] = (255, 0, 0)
    image[:, 200:] = (0, 0, 255)
    return write_image(tmp_path / "photo.png", image)


@pytest.fixture
def watermark_path(tmp_path):
    """20x20 watermark: green key border around a 10x10 red center."""
    image = np.zeros((20, 20, 3), dtype=np.uint8)
    image[:, :] = (0, 255, 0)
    image[5:15, 5:15] = (0, 0, 255)
    return write_image(tmp_path / "mark.png", image)


class TestResize:
    """Tests for resize_to."""

    def test_locked_ratio(self, photo_path):
        with ImagePipeline.open(photo_path) as pipeline:
            result = pipeline.resize_to(100, 100, lock_ratio=True)

        assert result.image.shape == (50, 100, 3)
        assert not result.skipped
        # Colors survive the downscale away from the seam
        assert tuple(result.image[25, 10]) == (255, 0, 0)
        assert tuple(result.image[25, 90]) == (0, 0, 255)

    def test_stretched(self, photo_path):
        with ImagePipeline.open(photo_path) as pipeline:
            result = pipeline.resize_to(120, 90, lock_ratio=False)

        assert (result.width, result.height) == (120, 90)

    def test_small_source_returned_unchanged(self, photo_path):
        with ImagePipeline.open(photo_path) as pipeline:
            source = pipeline.source.pixels
            result = pipeline.resize_to(1000, 1000)

        assert result.skipped
        assert result.image is source

    def test_zero_size_rejected(self, photo_path):
        with ImagePipeline.open(photo_path) as pipeline:
            with pytest.raises(InvalidDimensionError):
                pipeline.resize_to(0, 100)

    def test_alpha_kept_with_default_format(self):
        pixels = np.zeros((40, 40, 4), dtype=np.uint8)
        pixels[:, :] = (10, 20, 30, 128)
        pipeline = ImagePipeline(SourceImage.from_array(pixels))

        result = pipeline.resize_to(20, 20)

        assert result.image.shape == (20, 20, 4)
        assert abs(int(result.image[10, 10, 3]) - 128) <= 1


class TestCrop:
    """Tests for crop_to_square."""

    def test_centered_square(self, photo_path):
        with ImagePipeline.open(photo_path) as pipeline:
            result = pipeline.crop_to_square(50)

        assert result.image.shape == (50, 50, 3)
        # Square covers x=100..300, half blue and half red
        assert tuple(result.image[25, 5]) == (255, 0, 0)
        assert tuple(result.image[25, 45]) == (0, 0, 255)

    def test_alpha_dropped(self):
        pixels = np.zeros((30, 30, 4), dtype=np.uint8)
        pipeline = ImagePipeline(SourceImage.from_array(pixels))

        result = pipeline.crop_to_square(10)

        assert result.image.shape == (10, 10, 3)


class TestWatermark:
    """Tests for apply_watermark."""

    def test_key_color_transparent_and_center_translucent(self, tmp_path, watermark_path):
        base = write_image(tmp_path / "white.png", np.full((100, 200, 3), 255, dtype=np.uint8))

        with ImagePipeline.open(base) as pipeline:
            result = pipeline.apply_watermark(watermark_path, AnchorPosition.CENTER, 0, 0)

        image = result.image
        assert image.shape == (100, 200, 3)
        # Watermark sits at (90, 40); its green border is keyed out
        assert tuple(image[41, 91]) == (255, 255, 255)
        # Red center at 30% opacity over white
        b, g, r = (int(v) for v in image[50, 100])
        assert r == 255
        assert abs(b - 179) <= 1 and abs(g - 179) <= 1
        # Outside the watermark the base is untouched
        assert tuple(image[5, 5]) == (255, 255, 255)

    def test_margins(self, tmp_path, watermark_path):
        base = write_image(tmp_path / "white.png", np.full((100, 200, 3), 255, dtype=np.uint8))

        with ImagePipeline.open(base) as pipeline:
            result = pipeline.apply_watermark(watermark_path, AnchorPosition.TOP_RIGHT, margin_h=5, margin_v=10)

        assert result.placement.dest_rect == Rectangle(170, 5, 20, 20)
        assert result.image[15, 180, 1] < 255  # Red center at (175..185, 10..20)

    def test_source_not_modified(self, photo_path, watermark_path):
        with ImagePipeline.open(photo_path) as pipeline:
            before = pipeline.source.pixels.copy()
            pipeline.apply_watermark(watermark_path, AnchorPosition.CENTER)
            np.testing.assert_array_equal(pipeline.source.pixels, before)

    def test_missing_watermark(self, photo_path, tmp_path):
        with ImagePipeline.open(photo_path) as pipeline:
            with pytest.raises(SourceUnavailableError):
                pipeline.apply_watermark(tmp_path / "nope.png", AnchorPosition.CENTER)


class TestOverlayText:
    """Tests for overlay_text."""

    def test_mutates_source(self):
        pixels = np.zeros((60, 200, 3), dtype=np.uint8)
        pipeline = ImagePipeline(SourceImage.from_array(pixels))

        result = pipeline.overlay_text(
            "Hello", font_name="missing-font.ttf", font_size=20,
            rect=Rectangle(0, 0, 200, 60), brush=Color(255, 255, 255),
        )

        assert result.image is pixels
        assert pixels.max() > 0

    def test_invalid_font_size(self):
        pipeline = ImagePipeline(SourceImage.from_array(np.zeros((10, 10, 3), dtype=np.uint8)))
        with pytest.raises(InvalidOptionError):
            pipeline.overlay_text("x", font_size=-3)

    @pytest.mark.parametrize("font_size", [0, 0.2])
    def test_font_size_rounding_to_zero(self, font_size):
        pipeline = ImagePipeline(SourceImage.from_array(np.zeros((10, 10, 3), dtype=np.uint8)))
        with pytest.raises(InvalidOptionError):
            pipeline.overlay_text("x", font_size=font_size)


class TestMerge:
    """Tests for merge."""

    def test_back_only_visible_through_transparent_fore(self, tmp_path):
        back = np.full((100, 100, 3), (0, 0, 255), dtype=np.uint8)  # Red
        fore = np.zeros((100, 100, 4), dtype=np.uint8)
        fore[:, :50] = (255, 0, 0, 255)  # Opaque blue left half, transparent right half
        back_path = write_image(tmp_path / "back.png", back)
        fore_path = write_image(tmp_path / "fore.png", fore)

        result = ImagePipeline.merge(back_path, fore_path, Rectangle(10, 10, 50, 50))

        image = result.image
        assert image.shape == (100, 100, 4)
        assert tuple(image[30, 30]) == (255, 0, 0, 255), "Fore covers the back"
        assert tuple(image[30, 55]) == (0, 0, 255, 255), "Back shows through"
        assert image[80, 80, 3] == 0, "Outside the back rect stays transparent"

    def test_opaque_fore_hides_back(self):
        back = np.full((20, 20, 3), 255, dtype=np.uint8)
        fore = np.zeros((40, 40, 3), dtype=np.uint8)

        result = ImagePipeline.merge_images(back, fore, Rectangle(5, 5, 20, 20))

        assert result.image.shape == (40, 40, 3)
        assert result.image.max() == 0


class TestSave:
    """Tests for encoding options."""

    def test_default_jpeg(self, photo_path, tmp_path):
        with ImagePipeline.open(photo_path) as pipeline:
            result = pipeline.crop_to_square(32)
            path = pipeline.save(result.image, tmp_path / "thumb.jpg")

        assert OutputOptions().jpeg_quality == 85
        assert OutputOptions().encoder_mime_type == "image/jpeg"
        assert path.read_bytes()[:2] == b"\xff\xd8"

    def test_png(self, photo_path, tmp_path):
        with ImagePipeline.open(photo_path) as pipeline:
            path = pipeline.save(
                pipeline.source.pixels,
                tmp_path / "copy.png",
                OutputOptions(encoder_mime_type="image/png"),
            )

        assert path.read_bytes()[:4] == b"\x89PNG"

    def test_mime_type_normalized(self, photo_path, tmp_path):
        options = OutputOptions(encoder_mime_type=" Image/PNG ")
        assert options.encoder_mime_type == "image/png"

        with ImagePipeline.open(photo_path) as pipeline:
            path = pipeline.save(pipeline.source.pixels, tmp_path / "copy.png", options)

        assert path.read_bytes()[:4] == b"\x89PNG"

    def test_unsupported_encoder(self, photo_path, tmp_path):
        with ImagePipeline.open(photo_path) as pipeline:
            with pytest.raises(UnsupportedEncoderError):
                pipeline.save(
                    pipeline.source.pixels,
                    tmp_path / "x.gif",
                    OutputOptions(encoder_mime_type="image/gif"),
                )
        assert not (tmp_path / "x.gif").exists()

    @pytest.mark.parametrize("quality", [0, 101])
    def test_quality_out_of_range(self, photo_path, tmp_path, quality):
        with ImagePipeline.open(photo_path) as pipeline:
            with pytest.raises(InvalidOptionError):
                pipeline.save(pipeline.source.pixels, tmp_path / "x.jpg", OutputOptions(jpeg_quality=quality))


class TestLifecycle:
    """Tests for scoped release of the source."""

    def test_closed_pipeline_rejects_operations(self, photo_path):
        with ImagePipeline.open(photo_path) as pipeline:
            pass

        with pytest.raises(SourceUnavailableError):
            pipeline.crop_to_square(10)

    def test_released_on_error(self, photo_path):
        with pytest.raises(InvalidDimensionError):
            with ImagePipeline.open(photo_path) as pipeline:
                pipeline.crop_to_square(0)

        with pytest.raises(SourceUnavailableError):
            pipeline.source

    def test_open_missing(self, tmp_path):
        with pytest.raises(SourceUnavailableError):
            ImagePipeline.open(tmp_path / "missing.jpg")
