"""
Intersection and quadrilateral candidate building.

Every pair of horizontal lines combined with every pair of vertical lines is
a card hypothesis. Its four corners are the line intersections; hypotheses
whose corners are missing (outside the image, near-parallel lines) or whose
geometry is degenerate are dropped, the rest are scored and the best valid
one is selected.
"""

import logging
import math
from itertools import combinations
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np

from cardscan.common.config_loader import CardConfig, QuadConfig
from cardscan.common.errors import ErrorCode, FailureReason
from cardscan.common.types import Point
from cardscan.utils.geometry import (
    edge_lengths,
    interior_angles,
    is_convex,
    is_self_intersecting,
    min_corner_distance,
    order_corners,
    polygon_area,
)

from .types import Intersection, Line, LineCategory, QuadBuildResult, QuadContour

logger = logging.getLogger(__name__)

# Corner squareness: mean deviation from 90 degrees at which angle score hits 0
_ANGLE_TOLERANCE_DEG = 30.0
_MAX_ANGLE_BONUS = 0.2


def line_intersection(
    a: Line,
    b: Line,
    width: float,
    height: float,
    min_angle: float = math.radians(60),
) -> Optional[Point]:
    """
    Intersect two polar lines.

    Args:
        a: First line.
        b: Second line.
        width: Image width; intersections with x outside [0, width] are dropped.
        height: Image height; intersections with y outside [0, height] are dropped.
        min_angle: Lines closer than this angle (radians) are treated as parallel.

    Returns:
        The intersection point, or None when the lines are near-parallel or
        meet outside the image.
    """
    diff = abs(a.theta - b.theta) % math.pi
    if min(diff, math.pi - diff) < min_angle:
        return None

    cos_a, sin_a = math.cos(a.theta), math.sin(a.theta)
    cos_b, sin_b = math.cos(b.theta), math.sin(b.theta)
    det = cos_a * sin_b - cos_b * sin_a
    if abs(det) < 1e-9:
        return None

    x = (a.rho * sin_b - b.rho * sin_a) / det
    y = (cos_a * b.rho - cos_b * a.rho) / det

    eps = 1e-6
    if x < -eps or y < -eps or x > width + eps or y > height + eps:
        return None
    return Point(x=x, y=y)


def find_intersections(
    lines: Sequence[Line],
    width: float,
    height: float,
    min_angle: float = math.radians(60),
) -> List[Intersection]:
    """In-bounds intersections of every horizontal x vertical line pair."""
    intersections = []
    for i, h in enumerate(lines):
        if h.category != LineCategory.HORIZONTAL:
            continue
        for j, v in enumerate(lines):
            if v.category != LineCategory.VERTICAL:
                continue
            point = line_intersection(h, v, width, height, min_angle)
            if point is not None:
                intersections.append(Intersection(point=point, line_indices=(i, j)))
    return intersections


def angle_score(corners: np.ndarray) -> float:
    """Corner squareness on a 0-1 scale (1 means every corner is 90 degrees)."""
    deviations = [abs(a - 90.0) for a in interior_angles(corners)]
    return max(0.0, 1.0 - float(np.mean(deviations)) / _ANGLE_TOLERANCE_DEG)


def aspect_ratio_score(aspect_ratio: float, target: float) -> float:
    """Ratio closeness on a 0-100 scale, losing 40 points per unit of deviation."""
    return max(0.0, 100.0 - abs(aspect_ratio - target) * 40.0)


def area_plausibility(area: float, image_area: float, max_plausible_ratio: float = 0.95) -> float:
    """1 up to ``max_plausible_ratio`` of the image, then falling linearly to 0 at 100%."""
    if image_area <= 0:
        return 0.0
    ratio = area / image_area
    if ratio <= max_plausible_ratio:
        return 1.0
    if max_plausible_ratio >= 1.0:
        return 0.0
    return max(0.0, (1.0 - ratio) / (1.0 - max_plausible_ratio))


def score_quadrilateral(
    aspect_ratio: float,
    area: float,
    image_area: float,
    corner_angle_score: float = 1.0,
    target_aspect_ratio: float = 1.6,
    max_plausible_area_ratio: float = 0.95,
) -> float:
    """
    Ranking score of a quadrilateral candidate.

    ``area * plausibility * ratio_factor * angle_bonus``: larger plausible
    areas, ratios closer to the card's and squarer corners all score higher.
    Scores are comparable between candidates of the same image.
    """
    ratio_factor = aspect_ratio_score(aspect_ratio, target_aspect_ratio) / 100.0
    plausibility = area_plausibility(area, image_area, max_plausible_area_ratio)
    angle_bonus = 1.0 + _MAX_ANGLE_BONUS * min(1.0, max(0.0, corner_angle_score))
    return area * plausibility * ratio_factor * angle_bonus


def select_best(candidates: Sequence[QuadContour]) -> Optional[QuadContour]:
    """Highest scoring valid candidate; ties go to the larger area."""
    valid = [q for q in candidates if q.is_valid]
    if not valid:
        return None
    return max(valid, key=lambda q: (q.score, q.area))


class QuadrilateralBuilder:
    """Builds and scores card quadrilateral candidates from classified lines.

    Args:
        target_aspect_ratio: Nominal card width / height.
        min_aspect_ratio: Lowest ratio of a valid candidate.
        max_aspect_ratio: Highest ratio of a valid candidate.
        min_area_ratio: Smallest valid area as a fraction of the image.
        max_plausible_area_ratio: Area fraction above which plausibility decays.
        min_corner_distance: Candidates with closer corners are degenerate.
        min_intersection_angle_deg: Smallest angle between intersecting lines.
    """

    def __init__(
        self,
        target_aspect_ratio: float = 1.6,
        min_aspect_ratio: float = 1.28,
        max_aspect_ratio: float = 1.92,
        min_area_ratio: float = 0.2,
        max_plausible_area_ratio: float = 0.95,
        min_corner_distance: float = 50.0,
        min_intersection_angle_deg: float = 60.0,
    ):
        self.target_aspect_ratio = target_aspect_ratio
        self.min_aspect_ratio = min_aspect_ratio
        self.max_aspect_ratio = max_aspect_ratio
        self.min_area_ratio = min_area_ratio
        self.max_plausible_area_ratio = max_plausible_area_ratio
        self.min_corner_distance = min_corner_distance
        self.min_intersection_angle = math.radians(min_intersection_angle_deg)

    @classmethod
    def from_config(cls, card: CardConfig, quad: QuadConfig) -> "QuadrilateralBuilder":
        return cls(
            target_aspect_ratio=card.aspect_ratio,
            min_aspect_ratio=card.min_aspect_ratio,
            max_aspect_ratio=card.max_aspect_ratio,
            min_area_ratio=quad.min_area_ratio,
            max_plausible_area_ratio=quad.max_plausible_area_ratio,
            min_corner_distance=quad.min_corner_distance,
            min_intersection_angle_deg=quad.min_intersection_angle_deg,
        )

    def build(self, lines: Sequence[Line], width: int, height: int) -> QuadBuildResult:
        """
        Build intersections and candidates and select the best quadrilateral.

        Diagonal lines are ignored. Returns a failure diagnosis instead of
        raising when fewer than 4 intersections exist or no candidate is valid.

        Args:
            lines: Classified (merged) lines.
            width: Image width in the lines' coordinate system.
            height: Image height in the lines' coordinate system.

        Returns:
            QuadBuildResult with candidates sorted by score.
        """
        usable = tuple(line for line in lines if line.category != LineCategory.DIAGONAL)
        intersections = find_intersections(usable, width, height, self.min_intersection_angle)

        if len(intersections) < 4:
            failure = FailureReason(
                code=ErrorCode.INSUFFICIENT_INTERSECTIONS,
                message=f"need at least 4 intersections, found {len(intersections)}",
                stage="detect_card",
                details={"intersections": len(intersections), "lines": len(usable)},
            )
            logger.info(f"[Quads] {failure.message}")
            return QuadBuildResult(usable, tuple(intersections), (), None, failure)

        candidates = self.build_quadrilaterals(usable, intersections, width, height)
        best = select_best(candidates)

        failure = None
        if best is None:
            failure = FailureReason(
                code=ErrorCode.NO_VALID_QUADRILATERAL,
                message=(
                    f"no valid quadrilateral among {len(candidates)} candidates "
                    f"from {len(intersections)} intersections"
                ),
                stage="detect_card",
                details={
                    "intersections": len(intersections),
                    "candidates": len(candidates),
                },
            )
            logger.info(f"[Quads] {failure.message}")
        else:
            logger.debug(
                f"[Quads] Best of {len(candidates)} candidates: ratio="
                f"{best.aspect_ratio:.3f}, area={best.area:.0f}, score={best.score:.1f}"
            )

        return QuadBuildResult(usable, tuple(intersections), tuple(candidates), best, failure)

    def build_quadrilaterals(
        self,
        lines: Sequence[Line],
        intersections: Sequence[Intersection],
        width: int,
        height: int,
    ) -> List[QuadContour]:
        """All non-degenerate 2-horizontal x 2-vertical candidates, best score first."""
        lookup: Dict[Tuple[int, int], Point] = {
            inter.line_indices: inter.point for inter in intersections
        }
        horizontal = sorted({h for h, _ in lookup})
        vertical = sorted({v for _, v in lookup})
        image_area = float(width * height)

        candidates = []
        for h1, h2 in combinations(horizontal, 2):
            for v1, v2 in combinations(vertical, 2):
                keys = [(h1, v1), (h1, v2), (h2, v2), (h2, v1)]
                if not all(k in lookup for k in keys):
                    continue
                # Traversal order keeps each side on a single source line
                polygon = np.array([[lookup[k].x, lookup[k].y] for k in keys], dtype=np.float64)
                quad = self._make_candidate(polygon, (h1, h2, v1, v2), image_area)
                if quad is not None:
                    candidates.append(quad)

        candidates.sort(key=lambda q: (-q.score, -q.area))
        return candidates

    def _make_candidate(
        self,
        polygon: np.ndarray,
        line_indices: Tuple[int, int, int, int],
        image_area: float,
    ) -> Optional[QuadContour]:
        if min_corner_distance(polygon) < self.min_corner_distance:
            return None
        if is_self_intersecting(polygon):
            return None
        area = polygon_area(polygon)
        if area <= 1e-6:
            return None

        convex = is_convex(polygon)
        ordered = order_corners(polygon) if convex else np.asarray(polygon, dtype=np.float32)
        top, right, bottom, left = edge_lengths(ordered)
        if left + right <= 0:
            return None
        aspect_ratio = (top + bottom) / (left + right)

        corners_angle = angle_score(ordered)
        ratio_score = aspect_ratio_score(aspect_ratio, self.target_aspect_ratio)
        score = score_quadrilateral(
            aspect_ratio,
            area,
            image_area,
            corners_angle,
            self.target_aspect_ratio,
            self.max_plausible_area_ratio,
        )
        is_valid = (
            convex
            and area >= self.min_area_ratio * image_area
            and self.min_aspect_ratio <= aspect_ratio <= self.max_aspect_ratio
        )

        return QuadContour(
            corners=tuple(Point(x=float(x), y=float(y)) for x, y in ordered),
            aspect_ratio=aspect_ratio,
            area=area,
            score=score,
            is_valid=is_valid,
            line_indices=line_indices,
            ratio_score=ratio_score,
            angle_score=corners_angle,
        )
