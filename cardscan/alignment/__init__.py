"""
Card alignment: perspective rectification and OCR-oriented enhancement.

Example:
    >>> from cardscan.alignment import rectify_card, CardEnhancer
    >>> crop = rectify_card(image, report.result.corners, output_size=(600, 375))
    >>> out = CardEnhancer().apply(crop)
    >>> out.thresholded.shape
    (375, 600)
"""

from cardscan.alignment.enhancement import (
    CardEnhancer,
    EnhancementOutput,
    binarize_for_ocr,
    enhance_image,
    sharpen_image,
)
from cardscan.alignment.image_rectification import (
    card_output_size,
    rectify_card,
    resize_to_width,
    validate_corners,
)

__all__ = [
    "CardEnhancer",
    "EnhancementOutput",
    "binarize_for_ocr",
    "card_output_size",
    "enhance_image",
    "rectify_card",
    "resize_to_width",
    "sharpen_image",
    "validate_corners",
]
