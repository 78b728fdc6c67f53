"""
Visualization Utilities

Renders detection diagnostics: the card outline overlay shown to the user,
a Hough debug view with every line, intersection and candidate, the
accumulator heatmap and a threshold sweep chart. These functions only draw
what ``DetectionReport`` already contains; they never run detection.
"""

import math
from pathlib import Path
from typing import Optional, Sequence, Tuple

import cv2
import matplotlib.pyplot as plt
import numpy as np

from cardscan.detection.types import (
    AccumulatorData,
    DetectionReport,
    Line,
    LineCategory,
    LineExtractionResult,
)

# BGR colors
COLOR_SUCCESS = (0, 200, 0)
COLOR_FAILURE = (0, 0, 255)
COLOR_BY_CATEGORY = {
    LineCategory.HORIZONTAL: (255, 128, 0),
    LineCategory.VERTICAL: (0, 200, 255),
    LineCategory.DIAGONAL: (160, 160, 160),
}


def _to_bgr(image: np.ndarray) -> np.ndarray:
    if image.ndim == 2:
        return cv2.cvtColor(image, cv2.COLOR_GRAY2BGR)
    if image.shape[2] == 4:
        return cv2.cvtColor(image, cv2.COLOR_BGRA2BGR)
    return image.copy()


def draw_detection_overlay(
    image: np.ndarray,
    report: DetectionReport,
    thickness: int = 3,
) -> np.ndarray:
    """
    Draw the detected card outline and confidence on a copy of the image.

    On failure the diagnosis is written instead.
    """
    canvas = _to_bgr(image)
    result = report.result

    if result.success and result.corners:
        pts = np.array([p.to_tuple() for p in result.corners], dtype=np.int32)
        cv2.polylines(canvas, [pts], isClosed=True, color=COLOR_SUCCESS, thickness=thickness)
        for x, y in pts:
            cv2.circle(canvas, (int(x), int(y)), thickness * 2, COLOR_SUCCESS, -1)
        label = f"card {result.confidence:.0f}%"
        color = COLOR_SUCCESS
    else:
        label = report.diagnosis or "card not found"
        color = COLOR_FAILURE

    cv2.putText(canvas, label, (10, 30), cv2.FONT_HERSHEY_SIMPLEX, 0.8, color, 2)
    return canvas


def _line_endpoints(line: Line, width: int, height: int) -> Tuple[Tuple[int, int], Tuple[int, int]]:
    cos_t, sin_t = math.cos(line.theta), math.sin(line.theta)
    x0, y0 = cos_t * line.rho, sin_t * line.rho
    reach = 2 * max(width, height)
    return (
        (int(round(x0 - reach * sin_t)), int(round(y0 + reach * cos_t))),
        (int(round(x0 + reach * sin_t)), int(round(y0 - reach * cos_t))),
    )


def draw_hough_debug(
    image: np.ndarray,
    report: DetectionReport,
    show_raw: bool = False,
    max_candidates: int = 5,
) -> np.ndarray:
    """
    Draw lines, intersections and the top quad candidates in detection space.

    Args:
        image: Edge map or image at detection resolution (e.g.
            ``report.diagnostics.edge_map``).
        report: Detection report to visualize.
        show_raw: Draw raw (pre-merge) lines instead of merged lines.
        max_candidates: Number of candidates to outline, best first.
    """
    canvas = _to_bgr(image)
    height, width = canvas.shape[:2]
    diagnostics = report.diagnostics
    selected = diagnostics.selected

    lines = selected.raw_lines if show_raw else selected.merged_lines
    for line in lines:
        p1, p2 = _line_endpoints(line, width, height)
        cv2.line(canvas, p1, p2, COLOR_BY_CATEGORY[line.category], 1)

    quads = diagnostics.quads
    if quads is not None:
        for inter in quads.intersections:
            cv2.circle(canvas, inter.point.to_tuple(), 4, (0, 0, 255), -1)
        for rank, quad in enumerate(quads.candidates[:max_candidates]):
            pts = np.array([p.to_tuple() for p in quad.corners], dtype=np.int32)
            color = COLOR_SUCCESS if quad is quads.best else (0, 255, 255) if quad.is_valid else (128, 128, 128)
            cv2.polylines(canvas, [pts], True, color, 2 if rank == 0 else 1)

    cv2.putText(
        canvas,
        f"t={selected.threshold} raw={selected.raw_count} merged={selected.merged_count}",
        (10, 20),
        cv2.FONT_HERSHEY_SIMPLEX,
        0.5,
        (255, 255, 255),
        1,
    )
    return canvas


def render_accumulator_heatmap(
    accumulator: AccumulatorData,
    lines: Optional[Sequence[Line]] = None,
    save_path: Optional[Path] = None,
):
    """
    Plot the Hough accumulator as a heatmap (theta on x, rho on y).

    Args:
        accumulator: Snapshot to plot.
        lines: Optional lines to mark on the heatmap.
        save_path: Optional path to save figure.

    Returns:
        The matplotlib figure.
    """
    fig, ax = plt.subplots(1, 1, figsize=(10, 6))
    extent = [
        math.degrees(float(accumulator.theta_values[0])),
        math.degrees(float(accumulator.theta_values[-1])),
        float(accumulator.rho_values[0]),
        float(accumulator.rho_values[-1]),
    ]
    im = ax.imshow(
        accumulator.votes.T,
        aspect="auto",
        origin="lower",
        extent=extent,
        cmap="inferno",
    )
    fig.colorbar(im, ax=ax, label="votes")

    for line in lines or []:
        theta, rho = line.theta, line.rho
        # Back to accumulator coordinates (theta in [0, pi))
        if theta < 0:
            theta, rho = theta + math.pi, -rho
        ax.plot(math.degrees(theta), rho, "c+", markersize=10)

    ax.set_xlabel("theta (deg)")
    ax.set_ylabel("rho (px)")
    ax.set_title(f"Hough accumulator (max {accumulator.max_votes} votes)")

    if save_path:
        fig.savefig(save_path, bbox_inches="tight", dpi=150)
    return fig


def plot_threshold_sweep(
    sweep: Sequence[LineExtractionResult],
    save_path: Optional[Path] = None,
):
    """
    Plot raw and merged line counts per swept threshold.

    Returns:
        The matplotlib figure.
    """
    ordered = sorted(sweep, key=lambda r: r.threshold)
    thresholds = [r.threshold for r in ordered]

    fig, ax = plt.subplots(1, 1, figsize=(8, 4))
    ax.plot(thresholds, [r.raw_count for r in ordered], "o-", label="raw")
    ax.plot(thresholds, [r.merged_count for r in ordered], "s-", label="merged")
    for category in (LineCategory.HORIZONTAL, LineCategory.VERTICAL):
        ax.plot(
            thresholds,
            [r.merged_counts[category] for r in ordered],
            "--",
            label=f"merged {category.value}",
        )
    ax.set_xlabel("vote threshold")
    ax.set_ylabel("lines")
    ax.legend()
    ax.grid(True, alpha=0.3)

    if save_path:
        fig.savefig(save_path, bbox_inches="tight", dpi=150)
    return fig
