"""Type definitions for card detection.

This module defines the data structures produced by the line extractor and
the quadrilateral builder. All of them are immutable and rebuilt for every
detection attempt; the accumulator snapshot is additionally read-only so it
can be handed to visualization code on another thread without locking.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Tuple

import numpy as np

from cardscan.common.errors import FailureReason
from cardscan.common.types import Point


class LineCategory(Enum):
    """Orientation class of a detected line."""

    HORIZONTAL = "horizontal"
    VERTICAL = "vertical"
    DIAGONAL = "diagonal"  # Kept for diagnostics, never used for quads


@dataclass(frozen=True)
class Line:
    """A straight line in polar form ``x*cos(theta) + y*sin(theta) = rho``.

    Attributes:
        rho: Signed distance from the origin in pixels.
        theta: Normal angle in radians, canonical range [-pi/4, 3pi/4).
        category: Orientation class.
        votes: Accumulator votes (summed when lines were merged).
    """

    rho: float
    theta: float
    category: LineCategory
    votes: int

    @property
    def theta_deg(self) -> float:
        return float(np.degrees(self.theta))


@dataclass(frozen=True)
class AccumulatorData:
    """Read-only snapshot of a Hough accumulator.

    Attributes:
        votes: Vote grid of shape (theta_steps, rho_steps).
        max_votes: Largest cell value.
        rho_values: Distance of each rho column in pixels.
        theta_values: Angle of each theta row in radians, in [0, pi).
        width: Width of the edge map the accumulator was built from.
        height: Height of the edge map the accumulator was built from.
    """

    votes: np.ndarray
    max_votes: int
    rho_values: np.ndarray
    theta_values: np.ndarray
    width: int
    height: int

    @property
    def theta_steps(self) -> int:
        return int(self.votes.shape[0])

    @property
    def rho_steps(self) -> int:
        return int(self.votes.shape[1])


@dataclass(frozen=True)
class LineExtractionResult:
    """Lines surviving one vote threshold, before and after merging.

    Attributes:
        threshold: Vote threshold used.
        raw_lines: Local accumulator peaks with votes >= threshold.
        merged_lines: Raw lines after same-category merging.
        raw_counts: Number of raw lines per category.
        merged_counts: Number of merged lines per category.
    """

    threshold: int
    raw_lines: Tuple[Line, ...]
    merged_lines: Tuple[Line, ...]
    raw_counts: Dict[LineCategory, int]
    merged_counts: Dict[LineCategory, int]

    @property
    def raw_count(self) -> int:
        return len(self.raw_lines)

    @property
    def merged_count(self) -> int:
        return len(self.merged_lines)

    def lines_of(self, category: LineCategory) -> List[Line]:
        """Merged lines of one category."""
        return [line for line in self.merged_lines if line.category == category]

    def has_enough_lines(self) -> bool:
        """At least two horizontal and two vertical merged lines."""
        return (
            self.merged_counts.get(LineCategory.HORIZONTAL, 0) >= 2
            and self.merged_counts.get(LineCategory.VERTICAL, 0) >= 2
        )


@dataclass(frozen=True)
class Intersection:
    """Crossing point of one horizontal and one vertical line.

    Attributes:
        point: Location inside the image bounds.
        line_indices: Indices (horizontal, vertical) into the line list the
            intersection was computed from.
    """

    point: Point
    line_indices: Tuple[int, int]


@dataclass(frozen=True)
class QuadContour:
    """A quadrilateral candidate built from two horizontal and two vertical lines.

    Attributes:
        corners: Corners clockwise from top-left.
        aspect_ratio: (top + bottom) / (left + right) edge lengths.
        area: Polygon area in pixels.
        score: Comparable ranking score (higher is better).
        is_valid: Convex, large enough and within the accepted ratio range.
        line_indices: (h1, h2, v1, v2) indices into the line list.
        ratio_score: Aspect ratio closeness on a 0-100 scale.
        angle_score: Corner squareness on a 0-1 scale.
    """

    corners: Tuple[Point, Point, Point, Point]
    aspect_ratio: float
    area: float
    score: float
    is_valid: bool
    line_indices: Tuple[int, int, int, int]
    ratio_score: float = 0.0
    angle_score: float = 0.0

    def corners_array(self) -> np.ndarray:
        """Corners as a float32 array of shape (4, 2)."""
        return np.array([[p.x, p.y] for p in self.corners], dtype=np.float32)


@dataclass(frozen=True)
class QuadBuildResult:
    """Output of the quadrilateral builder.

    Attributes:
        lines: Lines the indices refer to (horizontal and vertical only).
        intersections: All in-bounds horizontal x vertical intersections.
        candidates: Non-degenerate candidates sorted by score, best first.
        best: Highest scoring valid candidate, if any.
        failure: Diagnosis when no best candidate was found.
    """

    lines: Tuple[Line, ...]
    intersections: Tuple[Intersection, ...]
    candidates: Tuple[QuadContour, ...]
    best: Optional[QuadContour]
    failure: Optional[FailureReason] = None

    @property
    def valid_candidates(self) -> List[QuadContour]:
        return [q for q in self.candidates if q.is_valid]


@dataclass(frozen=True)
class DetectionResult:
    """Summary of one detection attempt.

    Attributes:
        success: Whether a valid card quadrilateral was found.
        confidence: 0-100, always 0 when unsuccessful.
        method: Detection method identifier.
        corners: Corners in source image coordinates, empty unless success.
        detected_aspect_ratio: Ratio of the best quad, 0 when unsuccessful.
        image_width: Source image width.
        image_height: Source image height.
    """

    success: bool
    confidence: float
    method: str
    corners: Tuple[Point, ...]
    detected_aspect_ratio: float
    image_width: int
    image_height: int


@dataclass(frozen=True)
class DetectionDiagnostics:
    """Everything a debug viewer needs to render detection without re-running it.

    Attributes:
        accumulator: Hough accumulator of the edge map.
        sweep: One extraction result per swept threshold, in sweep order.
        selected: The extraction result used for quad building.
        quads: Quad builder output, absent when too few lines were found.
        scale: Factor from detection coordinates back to source coordinates.
        edge_map: Binary edge map at detection resolution.
    """

    accumulator: AccumulatorData
    sweep: Tuple[LineExtractionResult, ...]
    selected: LineExtractionResult
    quads: Optional[QuadBuildResult]
    scale: float
    edge_map: Optional[np.ndarray] = field(default=None, repr=False)

    @property
    def intersection_count(self) -> int:
        return len(self.quads.intersections) if self.quads else 0


@dataclass(frozen=True)
class DetectionReport:
    """Detection result plus diagnostics and failure diagnosis.

    Attributes:
        result: The detection summary.
        diagnostics: Intermediate data for visualization.
        failure: Why detection was unsuccessful, None on success.
    """

    result: DetectionResult
    diagnostics: DetectionDiagnostics
    failure: Optional[FailureReason] = None

    @property
    def success(self) -> bool:
        return self.result.success

    @property
    def diagnosis(self) -> str:
        """Diagnostic message, empty on success."""
        return self.failure.message if self.failure else ""
