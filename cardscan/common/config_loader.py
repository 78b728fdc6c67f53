"""Configuration loader with Pydantic validation for the card scanning pipeline.

This module provides type-safe configuration loading from YAML files using
Pydantic models for validation and default values. Every tunable threshold of
the pipeline lives here; callers override per run through
``ProcessingOptions`` rather than module-level globals.
"""

from pathlib import Path
from typing import List, Union

import yaml
from pydantic import BaseModel, Field, field_validator


class CardConfig(BaseModel):
    """Physical card geometry.

    Attributes:
        aspect_ratio: Nominal width / height of the ID card
        min_aspect_ratio: Lowest accepted detected ratio (aspect_ratio * 0.8)
        max_aspect_ratio: Highest accepted detected ratio (aspect_ratio * 1.2)
        output_width: Width in pixels of the canonical rectified card
    """

    aspect_ratio: float = Field(default=1.6, gt=0.0)
    min_aspect_ratio: float = Field(default=1.28, gt=0.0)
    max_aspect_ratio: float = Field(default=1.92, gt=0.0)
    output_width: int = Field(default=600, ge=100)


class HoughConfig(BaseModel):
    """Edge map and Hough line detection configuration.

    Attributes:
        thresholds: Ordered vote thresholds swept during detection
        max_lines: Highest raw line count accepted when selecting a threshold
        rho_step: Accumulator distance resolution in pixels
        theta_step_deg: Accumulator angle resolution in degrees
        detection_height: Height the frame is rescaled to before detection
        blur_kernel: Gaussian blur kernel size (odd)
        morph_kernel: Morphological close kernel size
        canny_low: Canny lower hysteresis threshold
        canny_high: Canny upper hysteresis threshold
        angle_tolerance_deg: Window around 0/90 degrees for classification
        merge_angle_deg: Maximum angle difference for merging two lines
        merge_rho: Maximum distance difference for merging horizontal lines
        merge_rho_vertical: Maximum distance difference for merging vertical lines
    """

    thresholds: List[int] = [60, 70, 75, 80, 90, 100, 110, 120]
    max_lines: int = Field(default=16, ge=4)
    rho_step: float = Field(default=2.0, gt=0.0)
    theta_step_deg: float = Field(default=1.0, gt=0.0, le=10.0)
    detection_height: int = Field(default=500, ge=100)
    blur_kernel: int = Field(default=3, ge=1)
    morph_kernel: int = Field(default=10, ge=1)
    canny_low: int = Field(default=0, ge=0)
    canny_high: int = Field(default=84, ge=0)
    angle_tolerance_deg: float = Field(default=15.0, gt=0.0, lt=45.0)
    merge_angle_deg: float = Field(default=5.0, gt=0.0)
    merge_rho: float = Field(default=15.0, gt=0.0)
    merge_rho_vertical: float = Field(default=20.0, gt=0.0)

    @field_validator("thresholds")
    @classmethod
    def _validate_thresholds(cls, v: List[int]) -> List[int]:
        if not v:
            raise ValueError("At least one Hough threshold is required")
        if any(t <= 0 for t in v):
            raise ValueError(f"Hough thresholds must be positive, got {v}")
        return v


class QuadConfig(BaseModel):
    """Quadrilateral candidate configuration.

    Attributes:
        min_intersection_angle_deg: Smallest angle between two lines that may intersect
        min_area_ratio: Smallest quad area as a fraction of the image area
        max_plausible_area_ratio: Area fraction above which plausibility decays
        min_corner_distance: Smallest distance in pixels between two corners
    """

    min_intersection_angle_deg: float = Field(default=60.0, gt=0.0, le=90.0)
    min_area_ratio: float = Field(default=0.2, ge=0.0, le=1.0)
    max_plausible_area_ratio: float = Field(default=0.95, gt=0.0, le=1.0)
    min_corner_distance: float = Field(default=50.0, ge=0.0)


class EnhancementConfig(BaseModel):
    """Contrast enhancement configuration.

    Attributes:
        contrast: Contrast multiplier around ``center``
        brightness: Brightness offset added after contrast
        center: Pivot intensity for the contrast stretch
        sharpen: Apply an unsharp mask after the contrast stretch
        sharpen_kernel: Gaussian kernel size for the unsharp mask
        sharpen_amount: Weight of the detail layer
    """

    contrast: float = Field(default=1.6, gt=0.0)
    brightness: float = 5.0
    center: float = Field(default=200.0, ge=0.0, le=255.0)
    sharpen: bool = True
    sharpen_kernel: int = Field(default=5, ge=1)
    sharpen_amount: float = Field(default=1.5, ge=0.0)


class OCRPreprocessingConfig(BaseModel):
    """Binarization configuration.

    Attributes:
        block_size: Adaptive threshold neighbourhood size (odd)
        c: Constant subtracted from the weighted mean
        global_threshold: Grayscale level above which pixels are forced white
    """

    block_size: int = Field(default=35, ge=3)
    c: float = 10.0
    global_threshold: int = Field(default=65, ge=0, le=255)

    @field_validator("block_size")
    @classmethod
    def _validate_block_size(cls, v: int) -> int:
        if v % 2 == 0:
            raise ValueError(f"block_size must be odd, got {v}")
        return v


class OCREngineConfig(BaseModel):
    """OCR engine configuration.

    Attributes:
        type: Engine type ("tesseract" or "rapidocr")
        lang: Language code passed to the engine
        psm: Tesseract page segmentation mode
        min_line_confidence: Tesseract words below this confidence (0-100) are dropped
        use_angle_cls: RapidOCR angle classification
        use_gpu: RapidOCR GPU acceleration
        text_score: RapidOCR minimum text confidence (0.0-1.0)
    """

    type: str = "tesseract"
    lang: str = "tha"
    psm: int = Field(default=6, ge=0, le=13)
    min_line_confidence: float = Field(default=0.0, ge=0.0, le=100.0)
    use_angle_cls: bool = True
    use_gpu: bool = False
    text_score: float = Field(default=0.5, ge=0.0, le=1.0)


class ParserConfig(BaseModel):
    """Field parser configuration.

    Attributes:
        weight_by_line_confidence: Scale field scores by the engine line confidence
    """

    weight_by_line_confidence: bool = True


class MatcherConfig(BaseModel):
    """Roster matching configuration.

    Attributes:
        name_similarity_threshold: Minimum fuzzy score (0-100) for a name match
        search_limit: Maximum candidates returned by a name search
    """

    name_similarity_threshold: float = Field(default=80.0, ge=0.0, le=100.0)
    search_limit: int = Field(default=5, ge=1)


class LiveScanConfig(BaseModel):
    """Live camera scanning configuration.

    Attributes:
        interval_s: Seconds between two detection passes (never below 0.1)
        camera_index: OpenCV capture device index
    """

    interval_s: float = Field(default=0.1, ge=0.1)
    camera_index: int = Field(default=0, ge=0)


class Config(BaseModel):
    """Root configuration container."""

    card: CardConfig = CardConfig()
    hough: HoughConfig = HoughConfig()
    quad: QuadConfig = QuadConfig()
    enhancement: EnhancementConfig = EnhancementConfig()
    ocr_preprocessing: OCRPreprocessingConfig = OCRPreprocessingConfig()
    engine: OCREngineConfig = OCREngineConfig()
    parser: ParserConfig = ParserConfig()
    matcher: MatcherConfig = MatcherConfig()
    live_scan: LiveScanConfig = LiveScanConfig()


def load_config(config_path: Union[str, Path]) -> Config:
    """Load and validate configuration from YAML file.

    Args:
        config_path: Path to YAML configuration file

    Returns:
        Validated Config object with all settings

    Raises:
        FileNotFoundError: If config file does not exist
        yaml.YAMLError: If YAML parsing fails
        pydantic.ValidationError: If configuration validation fails

    Example:
        >>> config = load_config(Path("cardscan/common/config.yaml"))
        >>> print(config.card.aspect_ratio)
        1.6
    """
    config_path = Path(config_path)
    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    with open(config_path, "r", encoding="utf-8") as f:
        config_dict = yaml.safe_load(f) or {}

    return Config(**config_dict)


def get_default_config() -> Config:
    """Get default configuration from the bundled config.yaml file.

    Falls back to the model defaults if the file is missing.
    """
    default_config_path = Path(__file__).parent / "config.yaml"
    if default_config_path.exists():
        return load_config(default_config_path)
    else:
        return Config()
