"""
Card detection: edge map, Hough lines and quadrilateral selection.

Example:
    >>> from cardscan.detection import CardDetector
    >>> import cv2
    >>> report = CardDetector().detect(cv2.imread("card.jpg"))
    >>> report.success, report.result.confidence
    (True, 96.4)
"""

from cardscan.detection.hough import EdgeMapBuilder, HoughTransform
from cardscan.detection.line_extractor import (
    LineExtractor,
    canonicalize,
    classify_line,
    merge_lines,
)
from cardscan.detection.processor import CardDetector
from cardscan.detection.quadrilateral import (
    QuadrilateralBuilder,
    find_intersections,
    line_intersection,
    score_quadrilateral,
    select_best,
)
from cardscan.detection.types import (
    AccumulatorData,
    DetectionReport,
    DetectionResult,
    Intersection,
    Line,
    LineCategory,
    LineExtractionResult,
    QuadContour,
)

__all__ = [
    "AccumulatorData",
    "CardDetector",
    "DetectionReport",
    "DetectionResult",
    "EdgeMapBuilder",
    "HoughTransform",
    "Intersection",
    "Line",
    "LineCategory",
    "LineExtractionResult",
    "LineExtractor",
    "QuadContour",
    "QuadrilateralBuilder",
    "canonicalize",
    "classify_line",
    "find_intersections",
    "line_intersection",
    "merge_lines",
    "score_quadrilateral",
    "select_best",
]
