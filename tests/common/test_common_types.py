"""
Unit tests for shared types and failure reasons.
"""

import numpy as np
import pytest
from pydantic import ValidationError

from cardscan.common.errors import ErrorCode, FailureReason, PipelineError
from cardscan.common.types import Err, ImageBuffer, Ok, Point


class TestImageBuffer:
    """Tests for image validation."""

    def test_color_image(self):
        """Test a BGR image exposes its dimensions."""
        buffer = ImageBuffer(data=np.zeros((48, 64, 3), dtype=np.uint8))

        assert (buffer.height, buffer.width, buffer.channels) == (48, 64, 3)

    def test_grayscale_to_bgr(self):
        """Test grayscale buffers convert to three channels."""
        buffer = ImageBuffer(data=np.zeros((48, 64), dtype=np.uint8))

        assert buffer.channels == 1
        assert buffer.to_bgr().shape == (48, 64, 3)

    @pytest.mark.parametrize(
        "array",
        [
            np.zeros((10, 10, 3), dtype=np.float32),
            np.zeros((0, 10), dtype=np.uint8),
            np.zeros((10, 10, 2), dtype=np.uint8),
            np.zeros((2, 2, 2, 2), dtype=np.uint8),
        ],
    )
    def test_invalid_images(self, array):
        """Test wrong dtype, empty arrays and odd channel counts are rejected."""
        with pytest.raises(ValidationError):
            ImageBuffer(data=array)


class TestPoint:
    """Tests for Point helpers."""

    def test_distance_and_scale(self):
        """Test distance and scaling."""
        a, b = Point(x=0, y=0), Point(x=3, y=4)

        assert a.distance_to(b) == pytest.approx(5.0)
        assert b.scaled(2.0) == Point(x=6, y=8)

    def test_to_tuple_rounds(self):
        """Test pixel tuples are rounded integers."""
        assert Point(x=1.6, y=2.4).to_tuple() == (2, 2)

    def test_numpy_round_trip(self):
        """Test conversion from and to numpy."""
        point = Point.from_numpy(np.array([1.5, 2.5]))

        np.testing.assert_allclose(point.to_numpy(), [1.5, 2.5])


class TestResult:
    """Tests for Ok/Err."""

    def test_ok(self):
        """Test Ok unwraps to its value."""
        result = Ok(5)

        assert result.is_ok() and not result.is_err()
        assert result.unwrap() == 5

    def test_err(self):
        """Test unwrapping Err raises."""
        result = Err("boom")

        assert result.is_err()
        with pytest.raises(ValueError):
            result.unwrap()


class TestFailureReason:
    """Tests for error ids and messages."""

    @pytest.mark.parametrize(
        "code,error_id",
        [
            (ErrorCode.INSUFFICIENT_LINES, "DET-E001"),
            (ErrorCode.INSUFFICIENT_INTERSECTIONS, "DET-E002"),
            (ErrorCode.NO_VALID_QUADRILATERAL, "DET-E003"),
            (ErrorCode.DEGENERATE_GEOMETRY, "ALN-E001"),
            (ErrorCode.OCR_ENGINE_FAILURE, "OCR-E001"),
            (ErrorCode.INVALID_INPUT, "SCAN-E000"),
        ],
    )
    def test_error_ids(self, code, error_id):
        """Test every code has a stable error id and a user message."""
        reason = FailureReason(code=code, message="diagnostic")

        assert reason.error_id == error_id
        assert reason.user_message()

    def test_with_stage(self):
        """Test the stage can be attached after the fact."""
        reason = FailureReason(code=ErrorCode.INSUFFICIENT_LINES, message="x")

        assert reason.with_stage("detect_card").stage == "detect_card"
        assert reason.stage == ""

    def test_pipeline_error_str(self):
        """Test pipeline errors render id, stage and diagnostic."""
        reason = FailureReason(code=ErrorCode.INSUFFICIENT_LINES, message="need more")
        error = PipelineError(reason=reason, stage="detect_card")

        assert str(error) == "[DET-E001] detect_card: need more"
        assert error.code == ErrorCode.INSUFFICIENT_LINES
        assert error.message == reason.user_message()
