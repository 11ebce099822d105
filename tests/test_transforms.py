"""
Tests for per-frame image transforms.
"""

import numpy as np
import pytest

from dot_tracker.model.transforms import TRANSFORMS, compose, get_transform, invert, invert_mean, to_gray


@pytest.fixture
def image():
    frame = np.zeros((4, 4, 3), dtype=np.uint8)
    frame[..., 0] = 30
    frame[..., 1] = 60
    frame[..., 2] = 90
    return frame


class TestTransforms:
    """Tests for the transform registry and functions."""

    def test_registry(self):
        assert set(TRANSFORMS) == {"gray", "invert", "invert_gray", "clahe"}
        assert get_transform("invert") is invert

    def test_unknown_transform(self):
        with pytest.raises(ValueError):
            get_transform("sepia")

    def test_gray(self, image):
        gray = to_gray(image)
        assert gray.shape == (4, 4)
        assert to_gray(gray) is gray

    def test_invert(self, image):
        assert invert(image)[0, 0].tolist() == [225, 195, 165]

    def test_invert_mean(self, image):
        """Channel mean inverted into a single plane."""
        result = invert_mean(image)
        assert result.shape == (4, 4)
        assert result.dtype == np.uint8
        assert int(result[0, 0]) == 195

    def test_clahe(self, image):
        result = get_transform("clahe")(image)
        assert result.ndim == 2
        assert result.dtype == np.uint8

    def test_compose_order(self, image):
        chained = compose(to_gray, invert)
        expected = 255 - to_gray(image)
        assert np.array_equal(chained(image), expected)
