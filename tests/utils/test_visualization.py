"""
Smoke tests for diagnostic drawing and plots.
"""

import matplotlib.pyplot as plt
import numpy as np
import pytest

from cardscan.detection import CardDetector
from cardscan.utils.visualization import (
    draw_detection_overlay,
    draw_hough_debug,
    plot_threshold_sweep,
    render_accumulator_heatmap,
)


@pytest.fixture
def report(config, card_image):
    """Successful detection report on the synthetic card."""
    return CardDetector(config).detect(card_image)


class TestOverlay:
    """Tests for the user-facing overlay."""

    def test_draws_on_copy(self, card_image, report):
        """Test the overlay has the input shape and leaves the input intact."""
        original = card_image.copy()

        overlay = draw_detection_overlay(card_image, report)

        assert overlay.shape == card_image.shape
        assert not np.array_equal(overlay, card_image)
        assert np.array_equal(card_image, original)

    def test_failure_overlay(self, config, blank_image):
        """Test failed detections still render."""
        failed = CardDetector(config).detect(blank_image)

        assert draw_detection_overlay(blank_image, failed).shape == blank_image.shape


class TestDebugViews:
    """Tests for Hough debug output."""

    def test_hough_debug(self, report):
        """Test lines and candidates are drawn on the edge map."""
        edge_map = report.diagnostics.edge_map

        canvas = draw_hough_debug(edge_map, report, show_raw=True)

        assert canvas.shape == edge_map.shape + (3,)
        assert canvas.any()

    def test_heatmap(self, report, tmp_path):
        """Test the accumulator heatmap renders and saves."""
        path = tmp_path / "heatmap.png"

        fig = render_accumulator_heatmap(
            report.diagnostics.accumulator, report.diagnostics.selected.merged_lines, save_path=path
        )

        assert path.exists()
        plt.close(fig)

    def test_threshold_sweep_plot(self, report):
        """Test the sweep chart has raw and merged series."""
        fig = plot_threshold_sweep(report.diagnostics.sweep)

        labels = [line.get_label() for line in fig.axes[0].get_lines()]
        assert "raw" in labels and "merged" in labels
        plt.close(fig)
