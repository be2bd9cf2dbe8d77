"""
Unit tests for geometry value types and color transforms.
"""

import numpy as np
import pytest

from thumbforge.services.geometry import (
    AlphaScale,
    ChannelRemap,
    Color,
    ComposedTransform,
    Dimensions,
    IDENTITY,
    InvalidDimensionError,
    InvalidOptionError,
    Rectangle,
    require_positive,
    truncating_div,
)


class TestTruncatingDiv:
    """Tests for integer division rounding toward zero."""

    def test_positive(self):
        assert truncating_div(7, 2) == 3

    def test_negative_rounds_toward_zero(self):
        """Floor division would give -3 here."""
        assert truncating_div(-5, 2) == -2
        assert truncating_div(5, -2) == -2

    def test_negative_both(self):
        assert truncating_div(-7, -2) == 3

    def test_zero_divisor(self):
        with pytest.raises(ZeroDivisionError):
            truncating_div(1, 0)


class TestRectangle:
    """Tests for Rectangle helpers."""

    def test_full(self):
        rect = Rectangle.full(Dimensions(width=40, height=30))
        assert rect == Rectangle(x=0, y=0, width=40, height=30)

    def test_contains(self):
        outer = Rectangle(x=0, y=0, width=100, height=100)
        assert outer.contains(Rectangle(x=10, y=10, width=90, height=90))
        assert not outer.contains(Rectangle(x=10, y=10, width=91, height=90))
        assert not outer.contains(Rectangle(x=-1, y=0, width=10, height=10))

    def test_intersect(self):
        a = Rectangle(x=0, y=0, width=50, height=50)
        b = Rectangle(x=40, y=30, width=50, height=50)
        assert a.intersect(b) == Rectangle(x=40, y=30, width=10, height=20)

    def test_intersect_disjoint(self):
        a = Rectangle(x=0, y=0, width=10, height=10)
        b = Rectangle(x=10, y=0, width=10, height=10)
        assert a.intersect(b) is None

    def test_to_dict(self):
        rect = Rectangle(x=1, y=2, width=3, height=4)
        assert rect.to_dict() == {"x": 1, "y": 2, "width": 3, "height": 4}


class TestDimensions:
    """Tests for Dimensions."""

    def test_of_array(self):
        """Numpy images are rows x columns, i.e. height x width."""
        image = np.zeros((30, 40, 3), dtype=np.uint8)
        assert Dimensions.of(image) == Dimensions(width=40, height=30)

    def test_is_empty(self):
        assert Dimensions(width=0, height=10).is_empty
        assert not Dimensions(width=1, height=1).is_empty


class TestColor:
    """Tests for hex color parsing."""

    def test_rgb(self):
        assert Color.from_hex("#ff8000") == Color(255, 128, 0, 255)

    def test_rgba(self):
        assert Color.from_hex("00ff0080") == Color(0, 255, 0, 128)

    def test_bgra_order(self):
        assert Color(1, 2, 3, 4).bgra == (3, 2, 1, 4)

    def test_invalid_length(self):
        with pytest.raises(InvalidOptionError):
            Color.from_hex("#fff")

    def test_invalid_hex(self):
        with pytest.raises(InvalidOptionError):
            Color.from_hex("#gggggg")


class TestColorTransforms:
    """Tests for per-pixel color transforms on BGRA arrays."""

    def make_pixels(self):
        pixels = np.zeros((2, 2, 4), dtype=np.uint8)
        pixels[0, 0] = (0, 255, 0, 255)    # Pure green
        pixels[0, 1] = (0, 0, 255, 255)    # Red
        pixels[1, 0] = (0, 255, 0, 200)    # Green, not fully opaque
        pixels[1, 1] = (10, 20, 30, 100)
        return pixels

    def test_identity(self):
        pixels = self.make_pixels()
        result = IDENTITY.apply(pixels)
        np.testing.assert_array_equal(result, pixels)
        assert result is not pixels

    def test_channel_remap_exact_match_only(self):
        pixels = self.make_pixels()
        remap = ChannelRemap(old_color=Color(0, 255, 0, 255), new_color=Color(0, 0, 0, 0))

        result = remap.apply(pixels)

        assert tuple(result[0, 0]) == (0, 0, 0, 0)
        assert tuple(result[1, 0]) == (0, 255, 0, 200), "Alpha must match too"
        assert tuple(result[0, 1]) == (0, 0, 255, 255)

    def test_remap_does_not_modify_input(self):
        pixels = self.make_pixels()
        ChannelRemap(Color(0, 255, 0), Color(0, 0, 0, 0)).apply(pixels)
        assert tuple(pixels[0, 0]) == (0, 255, 0, 255)

    def test_alpha_scale(self):
        pixels = self.make_pixels()
        result = AlphaScale(factor=0.3).apply(pixels)

        assert result[0, 1, 3] == 76  # 255 * 0.3 truncated
        assert result[1, 1, 3] == 30
        np.testing.assert_array_equal(result[:, :, :3], pixels[:, :, :3])

    def test_alpha_scale_matrix(self):
        m = AlphaScale(factor=0.3).matrix
        assert m.shape == (5, 5)
        assert m[3, 3] == pytest.approx(0.3)
        assert m[0, 0] == m[1, 1] == m[2, 2] == m[4, 4] == 1.0

    def test_alpha_scale_out_of_range(self):
        with pytest.raises(InvalidOptionError):
            AlphaScale(factor=1.5)

    def test_composition_order(self):
        """Remap runs before the alpha scale, so the opaque key still matches."""
        pixels = self.make_pixels()
        transform = ChannelRemap(Color(0, 255, 0, 255), Color(0, 0, 0, 0)).then(AlphaScale(0.5))

        result = transform.apply(pixels)

        assert isinstance(transform, ComposedTransform)
        assert tuple(result[0, 0]) == (0, 0, 0, 0)
        assert result[0, 1, 3] == 127

    def test_composed_identity(self):
        assert ComposedTransform(steps=(IDENTITY, IDENTITY)).is_identity
        assert not ComposedTransform(steps=(AlphaScale(0.5),)).is_identity


class TestRequirePositive:
    """Tests for dimension validation."""

    def test_accepts_positive(self):
        require_positive(width=1, height=2)

    @pytest.mark.parametrize("width,height", [(0, 10), (10, 0), (-1, 10)])
    def test_rejects_non_positive(self, width, height):
        with pytest.raises(InvalidDimensionError) as exc_info:
            require_positive(width=width, height=height)
        assert exc_info.value.code == "INVALID_DIMENSION"
