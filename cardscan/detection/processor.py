"""
Main processor for card detection.

Finds the student ID card in a photo with a classical pipeline: Canny edge
map, Hough line voting over a sweep of thresholds, line merging, and
scoring of quadrilaterals formed by two horizontal and two vertical lines.
"Card not found" is an ordinary outcome and is reported in the returned
``DetectionReport`` rather than raised.
"""

import logging
from typing import Optional, Sequence, Union

import numpy as np

from cardscan.common.config_loader import Config, get_default_config
from cardscan.common.types import ImageBuffer, Point

from .hough import EdgeMapBuilder, HoughTransform
from .line_extractor import LineExtractor, insufficient_lines_failure
from .quadrilateral import QuadrilateralBuilder
from .types import DetectionDiagnostics, DetectionReport, DetectionResult

logger = logging.getLogger(__name__)

Thresholds = Union[int, Sequence[int]]


def normalize_thresholds(thresholds: Thresholds) -> list:
    """
    Accept a single vote threshold or an ordered sweep.

    Raises:
        ValueError: If no thresholds are given or one is not positive.
    """
    if isinstance(thresholds, (int, np.integer)):
        values = [int(thresholds)]
    else:
        values = [int(t) for t in thresholds]
    if not values:
        raise ValueError("At least one Hough threshold is required")
    if any(t <= 0 for t in values):
        raise ValueError(f"Hough thresholds must be positive, got {values}")
    return values


class CardDetector:
    """
    Detects the card quadrilateral in an image.

    Example:
        >>> import cv2
        >>> detector = CardDetector()
        >>> report = detector.detect(cv2.imread("card.jpg"))
        >>> if report.success:
        ...     print(report.result.corners)
        ... else:
        ...     print(report.diagnosis)
    """

    METHOD = "hough_quadrilateral"

    def __init__(self, config: Optional[Config] = None):
        """
        Initialize the detector.

        Args:
            config: Pipeline configuration. If None, loads the bundled config.yaml.
        """
        self.config = config or get_default_config()
        hough_config = self.config.hough

        self.edge_builder = EdgeMapBuilder(hough_config)
        self.hough = HoughTransform.from_config(hough_config)
        self.extractor = LineExtractor(
            hough=self.hough,
            angle_tolerance_deg=hough_config.angle_tolerance_deg,
            merge_angle_deg=hough_config.merge_angle_deg,
            merge_rho=hough_config.merge_rho,
            merge_rho_vertical=hough_config.merge_rho_vertical,
        )
        self.quad_builder = QuadrilateralBuilder.from_config(self.config.card, self.config.quad)

    def detect(
        self,
        image: Union[np.ndarray, ImageBuffer],
        thresholds: Optional[Thresholds] = None,
    ) -> DetectionReport:
        """
        Detect the card in a BGR or grayscale image.

        Args:
            image: Source image (numpy array or ImageBuffer).
            thresholds: Vote threshold or ordered sweep. If None, uses config.

        Returns:
            DetectionReport; corners are in source image coordinates.
        """
        buffer = image if isinstance(image, ImageBuffer) else ImageBuffer(data=image)
        edge_map, scale = self.edge_builder.build(buffer.data)
        return self._detect(edge_map, scale, buffer.width, buffer.height, thresholds)

    def detect_edges(
        self,
        edge_map: np.ndarray,
        thresholds: Optional[Thresholds] = None,
    ) -> DetectionReport:
        """
        Detect the card on an already computed binary edge map.

        Args:
            edge_map: 2D binary edge image, used at its own resolution.
            thresholds: Vote threshold or ordered sweep. If None, uses config.
        """
        height, width = edge_map.shape[:2]
        return self._detect(edge_map, 1.0, width, height, thresholds)

    def _detect(
        self,
        edge_map: np.ndarray,
        scale: float,
        source_width: int,
        source_height: int,
        thresholds: Optional[Thresholds],
    ) -> DetectionReport:
        values = normalize_thresholds(
            self.config.hough.thresholds if thresholds is None else thresholds
        )
        edge_height, edge_width = edge_map.shape[:2]

        accumulator = self.hough.accumulate(edge_map)
        sweep = self.extractor.sweep(accumulator, values)
        selected = self.extractor.select(sweep, self.config.hough.max_lines)

        logger.info(
            f"[Detection] Threshold {selected.threshold}: {selected.raw_count} raw lines, "
            f"{selected.merged_count} merged (swept {values})"
        )

        quads = None
        if not selected.has_enough_lines():
            failure = insufficient_lines_failure(selected)
            logger.info(f"[Detection] {failure.message}")
        else:
            quads = self.quad_builder.build(selected.merged_lines, edge_width, edge_height)
            failure = quads.failure

        diagnostics = DetectionDiagnostics(
            accumulator=accumulator,
            sweep=tuple(sweep),
            selected=selected,
            quads=quads,
            scale=scale,
            edge_map=edge_map,
        )

        best = quads.best if quads is not None else None
        if best is None:
            result = DetectionResult(
                success=False,
                confidence=0.0,
                method=self.METHOD,
                corners=(),
                detected_aspect_ratio=0.0,
                image_width=source_width,
                image_height=source_height,
            )
            return DetectionReport(result=result, diagnostics=diagnostics, failure=failure)

        corners = tuple(
            Point(
                x=min(max(p.x * scale, 0.0), float(source_width)),
                y=min(max(p.y * scale, 0.0), float(source_height)),
            )
            for p in best.corners
        )
        confidence = min(100.0, max(0.0, 0.7 * best.ratio_score + 0.3 * best.angle_score * 100.0))

        result = DetectionResult(
            success=True,
            confidence=round(confidence, 1),
            method=self.METHOD,
            corners=corners,
            detected_aspect_ratio=best.aspect_ratio,
            image_width=source_width,
            image_height=source_height,
        )
        logger.info(
            f"[Detection] ✓ Card found: ratio={best.aspect_ratio:.3f}, "
            f"confidence={result.confidence:.1f}"
        )
        return DetectionReport(result=result, diagnostics=diagnostics)
