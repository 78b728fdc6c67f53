"""
Card enhancement and OCR binarization.

Two independent transforms run on the rectified card: a contrast/brightness
stretch (optionally followed by an unsharp mask) that makes printed text
darker against the card background, and an adaptive threshold that produces
the black-on-white image handed to the OCR engine.
"""

import logging
from dataclasses import dataclass
from typing import Optional

import cv2
import numpy as np

from cardscan.common.config_loader import EnhancementConfig, OCRPreprocessingConfig

logger = logging.getLogger(__name__)


def enhance_image(
    image: np.ndarray,
    contrast: float = 1.6,
    brightness: float = 5.0,
    center: float = 200.0,
) -> np.ndarray:
    """
    Contrast stretch around ``center`` plus a brightness offset.

    Computes ``clip((p - center) * contrast + center + brightness, 0, 255)`` on
    the color channels; an alpha channel is copied unchanged.

    Returns:
        New uint8 image of the same shape.
    """
    lut = np.clip(
        np.rint((np.arange(256, dtype=np.float64) - center) * contrast + center + brightness),
        0,
        255,
    ).astype(np.uint8)

    if image.ndim == 3 and image.shape[2] == 4:
        result = image.copy()
        result[:, :, :3] = cv2.LUT(np.ascontiguousarray(image[:, :, :3]), lut)
        return result
    return cv2.LUT(image, lut)


def sharpen_image(image: np.ndarray, kernel_size: int = 5, amount: float = 1.5) -> np.ndarray:
    """Unsharp mask: ``image + amount * (image - blur(image))``."""
    k = kernel_size | 1
    blurred = cv2.GaussianBlur(image, (k, k), 0)
    return cv2.addWeighted(image, 1.0 + amount, blurred, -amount, 0)


def binarize_for_ocr(
    image: np.ndarray,
    block_size: int = 35,
    c: float = 10.0,
    global_threshold: int = 65,
) -> np.ndarray:
    """
    Adaptive Gaussian threshold tuned for printed card text.

    Local thresholding handles uneven lighting across the card; pixels whose
    grayscale value exceeds ``global_threshold`` are then forced to white so
    that background texture brighter than ink never turns black.

    Args:
        image: BGR, BGRA or grayscale image.
        block_size: Odd neighbourhood size.
        c: Constant subtracted from the local weighted mean.
        global_threshold: Intensity above which pixels become white.

    Returns:
        Single-channel uint8 image with values 0 and 255.

    Raises:
        ValueError: If ``block_size`` is even or smaller than 3.
    """
    if block_size < 3 or block_size % 2 == 0:
        raise ValueError(f"block_size must be an odd number >= 3, got {block_size}")

    if image.ndim == 3 and image.shape[2] == 4:
        gray = cv2.cvtColor(image, cv2.COLOR_BGRA2GRAY)
    elif image.ndim == 3:
        gray = cv2.cvtColor(image, cv2.COLOR_BGR2GRAY)
    else:
        gray = image

    binary = cv2.adaptiveThreshold(
        gray, 255, cv2.ADAPTIVE_THRESH_GAUSSIAN_C, cv2.THRESH_BINARY, block_size, c
    )
    binary[gray > global_threshold] = 255
    return binary


@dataclass(frozen=True)
class EnhancementOutput:
    """Result of :meth:`CardEnhancer.apply`.

    Attributes:
        enhanced: Contrast-boosted card (the input itself when not applied).
        thresholded: Binarized card, None when not applied.
        enhanced_applied: Whether the contrast stretch ran.
        thresholded_applied: Whether binarization ran.
    """

    enhanced: np.ndarray
    thresholded: Optional[np.ndarray]
    enhanced_applied: bool
    thresholded_applied: bool


class CardEnhancer:
    """Applies enhancement and binarization according to caller toggles.

    Args:
        enhancement: Contrast stretch settings.
        preprocessing: Binarization settings.
    """

    def __init__(
        self,
        enhancement: Optional[EnhancementConfig] = None,
        preprocessing: Optional[OCRPreprocessingConfig] = None,
    ):
        self.enhancement = enhancement or EnhancementConfig()
        self.preprocessing = preprocessing or OCRPreprocessingConfig()

    def enhance(self, image: np.ndarray) -> np.ndarray:
        cfg = self.enhancement
        result = enhance_image(image, cfg.contrast, cfg.brightness, cfg.center)
        if cfg.sharpen:
            result = sharpen_image(result, cfg.sharpen_kernel, cfg.sharpen_amount)
        return result

    def binarize(self, image: np.ndarray) -> np.ndarray:
        cfg = self.preprocessing
        return binarize_for_ocr(image, cfg.block_size, cfg.c, cfg.global_threshold)

    def apply(
        self,
        crop: np.ndarray,
        enable_enhancement: bool = True,
        enable_threshold: bool = True,
    ) -> EnhancementOutput:
        """
        Run the enabled transforms on a rectified card.

        Binarization reads the enhanced image when enhancement ran, the raw
        crop otherwise.
        """
        enhanced = self.enhance(crop) if enable_enhancement else crop
        thresholded = self.binarize(enhanced) if enable_threshold else None
        logger.debug(
            f"Enhancement applied={enable_enhancement}, threshold applied={enable_threshold}"
        )
        return EnhancementOutput(
            enhanced=enhanced,
            thresholded=thresholded,
            enhanced_applied=enable_enhancement,
            thresholded_applied=enable_threshold,
        )
