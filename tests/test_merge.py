"""
Unit tests for the merge placement service.
"""

import pytest

from thumbforge.services.geometry import (
    Dimensions,
    InvalidDimensionError,
    Rectangle,
)
from thumbforge.services.merge import MergeService


@pytest.fixture
def service():
    return MergeService()


class TestMergePlacement:
    """Tests for back/fore placement."""

    def test_canvas_is_fore_size(self, service):
        placement = service.compute_merge_placement(Dimensions(300, 200), Rectangle(10, 10, 50, 50))

        assert placement.canvas == Dimensions(300, 200)
        assert placement.back.canvas == placement.fore.canvas == Dimensions(300, 200)

    def test_back_drawn_at_offset(self, service):
        placement = service.compute_merge_placement(Dimensions(300, 200), Rectangle(10, 10, 50, 50))

        assert placement.back.dest_rect == Rectangle(10, 10, 50, 50)
        assert placement.back.source_rect == Rectangle(0, 0, 50, 50)

    def test_fore_drawn_unscaled_at_origin(self, service):
        placement = service.compute_merge_placement(Dimensions(300, 200), Rectangle(10, 10, 50, 50))

        assert placement.fore.dest_rect == Rectangle(0, 0, 300, 200)
        assert placement.fore.source_rect == placement.fore.dest_rect

    def test_no_color_transform(self, service):
        placement = service.compute_merge_placement(Dimensions(30, 20), Rectangle(0, 0, 5, 5))

        assert placement.back.transform.is_identity
        assert placement.fore.transform.is_identity

    def test_back_may_protrude(self, service):
        placement = service.compute_merge_placement(Dimensions(30, 20), Rectangle(25, 15, 50, 50))
        assert placement.back.dest_rect.right > placement.canvas.width

    def test_negative_size_rejected(self, service):
        with pytest.raises(InvalidDimensionError):
            service.compute_merge_placement(Dimensions(30, 20), Rectangle(0, 0, -1, 5))

    def test_empty_fore_rejected(self, service):
        with pytest.raises(InvalidDimensionError):
            service.compute_merge_placement(Dimensions(0, 20), Rectangle(0, 0, 1, 1))
