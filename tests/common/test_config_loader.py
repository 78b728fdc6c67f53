"""
Unit tests for YAML configuration loading.
"""

import pytest
from pydantic import ValidationError

from cardscan.common.config_loader import (
    Config,
    HoughConfig,
    LiveScanConfig,
    OCRPreprocessingConfig,
    get_default_config,
    load_config,
)


class TestDefaults:
    """Tests for the bundled defaults."""

    def test_bundled_yaml_matches_model_defaults(self):
        """Test config.yaml and the model defaults agree."""
        assert get_default_config() == Config()

    def test_detection_defaults(self):
        """Test the documented detection constants."""
        config = get_default_config()

        assert config.hough.thresholds == [60, 70, 75, 80, 90, 100, 110, 120]
        assert config.hough.max_lines == 16
        assert config.hough.detection_height == 500
        assert config.card.aspect_ratio == pytest.approx(1.6)
        assert config.card.min_aspect_ratio == pytest.approx(1.28)
        assert config.card.max_aspect_ratio == pytest.approx(1.92)

    def test_preprocessing_defaults(self):
        """Test binarization and enhancement constants."""
        config = get_default_config()

        assert config.ocr_preprocessing.block_size == 35
        assert config.ocr_preprocessing.c == 10
        assert config.ocr_preprocessing.global_threshold == 65
        assert config.enhancement.contrast == pytest.approx(1.6)
        assert config.enhancement.brightness == pytest.approx(5)


class TestLoadConfig:
    """Tests for loading user configuration files."""

    def test_partial_override(self, tmp_path):
        """Test unspecified sections keep their defaults."""
        path = tmp_path / "config.yaml"
        path.write_text("hough:\n  thresholds: [80, 100]\nengine:\n  type: rapidocr\n", encoding="utf-8")

        config = load_config(path)

        assert config.hough.thresholds == [80, 100]
        assert config.engine.type == "rapidocr"
        assert config.card.aspect_ratio == pytest.approx(1.6)

    def test_empty_file(self, tmp_path):
        """Test an empty YAML file yields defaults."""
        path = tmp_path / "config.yaml"
        path.write_text("", encoding="utf-8")

        assert load_config(path) == Config()

    def test_missing_file(self, tmp_path):
        """Test a missing file raises FileNotFoundError."""
        with pytest.raises(FileNotFoundError, match="not found"):
            load_config(tmp_path / "nope.yaml")


class TestValidation:
    """Tests for invalid values."""

    def test_empty_thresholds(self):
        """Test at least one Hough threshold is required."""
        with pytest.raises(ValidationError):
            HoughConfig(thresholds=[])

    def test_negative_threshold(self):
        """Test thresholds must be positive."""
        with pytest.raises(ValidationError):
            HoughConfig(thresholds=[60, -1])

    def test_even_block_size(self):
        """Test the binarization block size must be odd."""
        with pytest.raises(ValidationError):
            OCRPreprocessingConfig(block_size=34)

    def test_live_scan_interval(self):
        """Test live scan intervals under 0.1 s are rejected."""
        with pytest.raises(ValidationError):
            LiveScanConfig(interval_s=0.05)
