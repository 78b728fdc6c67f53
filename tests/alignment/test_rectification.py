"""
Unit tests for perspective rectification of the detected card.
"""

import cv2
import numpy as np
import pytest

from cardscan.alignment.image_rectification import (
    card_output_size,
    rectify_card,
    resize_to_width,
    shrink_corners,
    validate_corners,
)
from cardscan.common.errors import DegenerateGeometryError
from cardscan.common.types import Point


@pytest.fixture
def pattern():
    """160x100 block pattern used as the canonical card."""
    image = np.zeros((100, 160), dtype=np.uint8)
    for row in range(4):
        for col in range(4):
            value = 220 if (row + col) % 2 == 0 else 30
            image[row * 25 : (row + 1) * 25, col * 40 : (col + 1) * 40] = value
    return image


@pytest.fixture
def quad():
    """Perspective-distorted destination of the pattern (TL, TR, BR, BL)."""
    return np.array([[60, 40], [330, 60], [320, 240], [50, 210]], dtype=np.float32)


@pytest.fixture
def photographed(pattern, quad):
    """The pattern warped into a 400x300 frame."""
    src = np.array([[0, 0], [159, 0], [159, 99], [0, 99]], dtype=np.float32)
    M = cv2.getPerspectiveTransform(src, quad)
    return cv2.warpPerspective(pattern, M, (400, 300), flags=cv2.INTER_LINEAR)


class TestValidateCorners:
    """Tests for corner validation and ordering."""

    def test_orders_shuffled_corners(self, quad):
        """Test corners come back as TL, TR, BR, BL regardless of input order."""
        shuffled = quad[[2, 0, 3, 1]]

        ordered = validate_corners(shuffled)

        np.testing.assert_allclose(ordered, quad)

    def test_accepts_points(self, quad):
        """Test Point sequences are accepted."""
        points = [Point(x=float(x), y=float(y)) for x, y in quad]

        np.testing.assert_allclose(validate_corners(points), quad)

    def test_collinear_rejected(self):
        """Test collinear corners raise a geometry error."""
        with pytest.raises(DegenerateGeometryError, match="area"):
            validate_corners([[0, 0], [10, 10], [20, 20], [30, 30]])

    def test_wrong_count_rejected(self):
        """Test three corners are rejected."""
        with pytest.raises(DegenerateGeometryError, match="expected 4 corners"):
            validate_corners([[0, 0], [10, 0], [10, 10]])

    def test_coincident_rejected(self):
        """Test duplicated corners are rejected."""
        with pytest.raises(DegenerateGeometryError, match="coincide"):
            validate_corners([[0, 0], [0, 0], [100, 0], [100, 100]])

    def test_non_convex_rejected(self):
        """Test a dart-shaped outline is rejected."""
        with pytest.raises(DegenerateGeometryError, match="convex"):
            validate_corners([[0, 0], [100, 0], [100, 100], [80, 20]])

    def test_geometry_error_is_value_error(self):
        """Test callers catching ValueError also catch geometry errors."""
        assert issubclass(DegenerateGeometryError, ValueError)


class TestRectifyCard:
    """Tests for the perspective warp."""

    def test_output_size(self, photographed, quad):
        """Test the rectified image has exactly the requested size."""
        crop = rectify_card(photographed, quad, output_size=(600, 375))

        assert crop.shape == (375, 600)

    def test_recovers_canonical_pattern(self, pattern, photographed, quad):
        """Test warping back reproduces the pattern up to interpolation."""
        crop = rectify_card(photographed, quad, output_size=(160, 100))

        diff = np.abs(crop.astype(np.int16) - pattern.astype(np.int16))
        assert diff[5:-5, 5:-5].mean() < 10, f"mean diff {diff[5:-5, 5:-5].mean():.1f}"

    def test_identity_for_full_frame(self, pattern):
        """Test corners equal to the frame reproduce the frame."""
        corners = [[0, 0], [159, 0], [159, 99], [0, 99]]

        crop = rectify_card(pattern, corners, output_size=(160, 100))

        assert np.abs(crop.astype(np.int16) - pattern.astype(np.int16)).max() <= 1

    def test_derived_size_uses_aspect_ratio(self, photographed, quad):
        """Test the default size follows the card aspect ratio."""
        crop = rectify_card(photographed, quad)
        height, width = crop.shape[:2]

        assert width >= 400
        assert width / height == pytest.approx(1.6, abs=0.01)

    def test_empty_image(self, quad):
        """Test an empty image raises a geometry error."""
        with pytest.raises(DegenerateGeometryError, match="empty"):
            rectify_card(np.zeros((0, 0, 3), dtype=np.uint8), quad)

    def test_tiny_output(self, photographed, quad):
        """Test output sizes under 5 pixels are rejected."""
        with pytest.raises(DegenerateGeometryError, match="too small"):
            rectify_card(photographed, quad, output_size=(4, 4))

    def test_error_message_prefix(self, photographed):
        """Test geometry errors carry a readable reason."""
        with pytest.raises(DegenerateGeometryError) as exc_info:
            rectify_card(photographed, [[0, 0], [1, 1], [2, 2], [3, 3]])

        assert str(exc_info.value).startswith("Degenerate card geometry:")
        assert exc_info.value.reason


class TestHelpers:
    """Tests for sizing helpers."""

    def test_card_output_size(self):
        """Test width follows the longer horizontal edge."""
        corners = np.array([[0, 0], [480, 0], [480, 300], [0, 300]], dtype=np.float32)

        assert card_output_size(corners) == (480, 300)

    def test_card_output_size_minimum_width(self):
        """Test small cards are upscaled to the minimum width."""
        corners = np.array([[0, 0], [100, 0], [100, 62], [0, 62]], dtype=np.float32)

        assert card_output_size(corners) == (400, 250)

    def test_shrink_corners(self):
        """Test shrinking pulls corners towards the centroid."""
        corners = np.array([[0, 0], [100, 0], [100, 100], [0, 100]], dtype=np.float32)

        shrunk = shrink_corners(corners, 0.1)

        np.testing.assert_allclose(shrunk[0], [10, 10])
        np.testing.assert_allclose(shrunk[2], [90, 90])

    def test_resize_to_width(self):
        """Test frames are scaled keeping their aspect ratio."""
        frame = np.zeros((480, 640, 3), dtype=np.uint8)

        assert resize_to_width(frame, 600).shape == (450, 600, 3)
