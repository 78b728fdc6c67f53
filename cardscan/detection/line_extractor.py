"""
Line extraction from a Hough accumulator.

Turns accumulator peaks into classified polar lines, merges near-duplicate
lines of the same orientation and supports sweeping an ordered list of vote
thresholds over a single accumulator so that different thresholds can be
compared side by side.

Lines are kept in a canonical polar form with theta in [-pi/4, 3pi/4). In
that range a vertical edge is always near 0 regardless of which side of the
0/pi wrap the accumulator found it on, so vertical lines can be compared and
averaged like any other category.
"""

import logging
import math
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from cardscan.common.config_loader import HoughConfig
from cardscan.common.errors import ErrorCode, FailureReason

from .hough import HoughTransform
from .types import AccumulatorData, Line, LineCategory, LineExtractionResult

logger = logging.getLogger(__name__)

_CANONICAL_MIN = -math.pi / 4
_CANONICAL_MAX = 3 * math.pi / 4


def canonicalize(rho: float, theta: float) -> Tuple[float, float]:
    """
    Map a polar line onto the canonical theta range [-pi/4, 3pi/4).

    ``(rho, theta)`` and ``(-rho, theta - pi)`` describe the same line, so
    angles past 3pi/4 are folded back with the sign of rho flipped.
    """
    while theta >= _CANONICAL_MAX:
        theta -= math.pi
        rho = -rho
    while theta < _CANONICAL_MIN:
        theta += math.pi
        rho = -rho
    return rho, theta


def classify_line(theta: float, tolerance: float = math.radians(15)) -> LineCategory:
    """
    Classify a line by the angle of its normal.

    Args:
        theta: Normal angle in radians (any range).
        tolerance: Half-width of the window around 0 and pi/2, in radians.

    Returns:
        VERTICAL near 0/pi, HORIZONTAL near pi/2, DIAGONAL otherwise.
    """
    _, theta = canonicalize(0.0, theta)
    if abs(theta) < tolerance:
        return LineCategory.VERTICAL
    if abs(theta - math.pi / 2) < tolerance:
        return LineCategory.HORIZONTAL
    return LineCategory.DIAGONAL


def count_by_category(lines: Iterable[Line]) -> Dict[LineCategory, int]:
    counts = {category: 0 for category in LineCategory}
    for line in lines:
        counts[line.category] += 1
    return counts


def _merge_key(line: Line):
    return (-line.votes, line.category.value, line.theta, line.rho)


def _merge_pass(
    lines: Sequence[Line],
    angle_eps: float,
    rho_eps: float,
    rho_eps_vertical: float,
) -> Tuple[List[Line], bool]:
    """One greedy clustering pass seeded by the strongest remaining line."""
    ordered = sorted(lines, key=_merge_key)
    used = [False] * len(ordered)
    merged: List[Line] = []
    changed = False

    for i, seed in enumerate(ordered):
        if used[i]:
            continue
        used[i] = True
        rho_limit = rho_eps_vertical if seed.category == LineCategory.VERTICAL else rho_eps
        cluster = [seed]

        for j in range(i + 1, len(ordered)):
            other = ordered[j]
            if used[j] or other.category != seed.category:
                continue
            if abs(other.rho - seed.rho) < rho_limit and abs(other.theta - seed.theta) < angle_eps:
                used[j] = True
                cluster.append(other)

        if len(cluster) == 1:
            merged.append(seed)
            continue

        changed = True
        total = sum(line.votes for line in cluster)
        weights = [line.votes / total if total else 1.0 / len(cluster) for line in cluster]
        merged.append(
            Line(
                rho=sum(w * line.rho for w, line in zip(weights, cluster)),
                theta=sum(w * line.theta for w, line in zip(weights, cluster)),
                category=seed.category,
                votes=total,
            )
        )

    return sorted(merged, key=_merge_key), changed


def merge_lines(
    lines: Sequence[Line],
    angle_eps: float = math.radians(5),
    rho_eps: float = 15.0,
    rho_eps_vertical: float = 20.0,
) -> List[Line]:
    """
    Merge near-duplicate lines of the same category.

    Two lines merge when both their distance and angle differences are below
    the epsilons. The merged line is the vote-weighted mean of its cluster and
    carries the summed votes. Passes repeat until nothing merges, so merging
    an already merged list returns it unchanged.

    Args:
        lines: Lines to merge.
        angle_eps: Maximum angle difference in radians.
        rho_eps: Maximum distance difference for non-vertical lines.
        rho_eps_vertical: Maximum distance difference for vertical lines.

    Returns:
        Merged lines sorted by votes (descending).
    """
    current, changed = _merge_pass(lines, angle_eps, rho_eps, rho_eps_vertical)
    while changed:
        current, changed = _merge_pass(current, angle_eps, rho_eps, rho_eps_vertical)
    return current


def insufficient_lines_failure(extraction: LineExtractionResult) -> FailureReason:
    """Diagnosis for an extraction without two horizontal and two vertical lines."""
    horizontal = extraction.merged_counts.get(LineCategory.HORIZONTAL, 0)
    vertical = extraction.merged_counts.get(LineCategory.VERTICAL, 0)
    return FailureReason(
        code=ErrorCode.INSUFFICIENT_LINES,
        message=(
            f"need at least 4 lines (2 horizontal + 2 vertical), found "
            f"{horizontal} horizontal and {vertical} vertical at threshold "
            f"{extraction.threshold}"
        ),
        stage="detect_card",
        details={
            "threshold": extraction.threshold,
            "horizontal": horizontal,
            "vertical": vertical,
            "raw_count": extraction.raw_count,
        },
    )


class LineExtractor:
    """Extracts classified, merged lines from an accumulator.

    Args:
        hough: Transform used for peak extraction.
        angle_tolerance_deg: Classification window in degrees.
        merge_angle_deg: Merge angle epsilon in degrees.
        merge_rho: Merge distance epsilon for horizontal and diagonal lines.
        merge_rho_vertical: Merge distance epsilon for vertical lines.
    """

    def __init__(
        self,
        hough: Optional[HoughTransform] = None,
        angle_tolerance_deg: float = 15.0,
        merge_angle_deg: float = 5.0,
        merge_rho: float = 15.0,
        merge_rho_vertical: float = 20.0,
    ):
        self.hough = hough or HoughTransform()
        self.angle_tolerance = math.radians(angle_tolerance_deg)
        self.merge_angle = math.radians(merge_angle_deg)
        self.merge_rho = merge_rho
        self.merge_rho_vertical = merge_rho_vertical

    @classmethod
    def from_config(cls, config: HoughConfig) -> "LineExtractor":
        return cls(
            hough=HoughTransform.from_config(config),
            angle_tolerance_deg=config.angle_tolerance_deg,
            merge_angle_deg=config.merge_angle_deg,
            merge_rho=config.merge_rho,
            merge_rho_vertical=config.merge_rho_vertical,
        )

    def to_line(self, rho: float, theta: float, votes: int) -> Line:
        rho, theta = canonicalize(rho, theta)
        return Line(
            rho=rho,
            theta=theta,
            category=classify_line(theta, self.angle_tolerance),
            votes=votes,
        )

    def merge(self, lines: Sequence[Line]) -> List[Line]:
        return merge_lines(lines, self.merge_angle, self.merge_rho, self.merge_rho_vertical)

    def extract(self, accumulator: AccumulatorData, threshold: int) -> LineExtractionResult:
        """
        Extract raw and merged lines for one vote threshold.

        Args:
            accumulator: Accumulator snapshot.
            threshold: Minimum votes for a raw line.

        Returns:
            Raw and merged lines with per-category counts.
        """
        raw = [self.to_line(rho, theta, votes) for rho, theta, votes in self.hough.peaks(accumulator, threshold)]
        merged = self.merge(raw)

        result = LineExtractionResult(
            threshold=threshold,
            raw_lines=tuple(raw),
            merged_lines=tuple(merged),
            raw_counts=count_by_category(raw),
            merged_counts=count_by_category(merged),
        )
        logger.debug(
            f"Threshold {threshold}: {result.raw_count} raw lines, "
            f"{result.merged_count} merged "
            f"(H={result.merged_counts[LineCategory.HORIZONTAL]}, "
            f"V={result.merged_counts[LineCategory.VERTICAL]}, "
            f"D={result.merged_counts[LineCategory.DIAGONAL]})"
        )
        return result

    def sweep(
        self, accumulator: AccumulatorData, thresholds: Sequence[int]
    ) -> List[LineExtractionResult]:
        """One extraction per threshold, in the given order, on one accumulator."""
        return [self.extract(accumulator, t) for t in thresholds]

    @staticmethod
    def select(
        sweep: Sequence[LineExtractionResult], max_lines: int = 16
    ) -> LineExtractionResult:
        """
        Pick the extraction used for quad building.

        Returns the lowest threshold whose raw line count is in
        ``(0, max_lines]``; if none qualifies, the highest threshold swept.

        Raises:
            ValueError: If the sweep is empty.
        """
        if not sweep:
            raise ValueError("Cannot select from an empty threshold sweep")

        ordered = sorted(sweep, key=lambda r: r.threshold)
        for result in ordered:
            if 0 < result.raw_count <= max_lines:
                return result
        return ordered[-1]
