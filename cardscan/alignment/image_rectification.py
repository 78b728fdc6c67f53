"""
Image Rectification

Perspective normalization of a detected card: the four detected corners are
mapped onto an upright rectangle with the card's nominal aspect ratio using a
projective transform, so that text lines become horizontal for OCR.
"""

import logging
from typing import Optional, Sequence, Tuple, Union

import cv2
import numpy as np

from cardscan.common.errors import DegenerateGeometryError
from cardscan.common.types import Point
from cardscan.utils.geometry import (
    edge_lengths,
    is_convex,
    min_corner_distance,
    order_corners,
    polygon_area,
)

logger = logging.getLogger(__name__)

# Smallest accepted source quadrilateral area in pixels
MIN_SOURCE_AREA = 100.0

CornerInput = Union[np.ndarray, Sequence[Point], Sequence[Sequence[float]]]


def _as_array(corners: CornerInput) -> np.ndarray:
    if len(corners) and isinstance(corners[0], Point):
        return np.array([[p.x, p.y] for p in corners], dtype=np.float32)
    return np.asarray(corners, dtype=np.float32)


def validate_corners(corners: CornerInput, min_area: float = MIN_SOURCE_AREA) -> np.ndarray:
    """
    Check that corners describe a usable quadrilateral and order them.

    Args:
        corners: 4 corner points in any order.
        min_area: Smallest accepted area in pixels.

    Returns:
        Corners ordered clockwise from top-left, float32 (4, 2).

    Raises:
        DegenerateGeometryError: If there are not 4 points, the area is below
            ``min_area``, points coincide or are collinear, or the outline is
            not convex.
    """
    pts = _as_array(corners)
    if pts.shape != (4, 2):
        raise DegenerateGeometryError(f"expected 4 corners with shape (4, 2), got {pts.shape}")
    if not np.all(np.isfinite(pts)):
        raise DegenerateGeometryError("corner coordinates must be finite")

    ordered = order_corners(pts)
    area = polygon_area(ordered)
    if area < min_area:
        raise DegenerateGeometryError(f"area {area:.1f}px is below minimum {min_area:.1f}px")
    if min_corner_distance(ordered) < 1.0:
        raise DegenerateGeometryError("two corners coincide")
    if not is_convex(ordered):
        raise DegenerateGeometryError("corners are collinear or the outline is not convex")
    return ordered


def card_output_size(
    corners: np.ndarray,
    aspect_ratio: float = 1.6,
    min_width: int = 400,
) -> Tuple[int, int]:
    """
    Canonical (width, height) for a rectified card.

    The width follows the longer of the top and bottom edges (at least
    ``min_width``); the height is derived from the card aspect ratio.
    """
    top, _, bottom, _ = edge_lengths(corners)
    width = max(int(round(max(top, bottom))), min_width)
    height = max(int(round(width / aspect_ratio)), 1)
    return width, height


def shrink_corners(corners: np.ndarray, margin: float) -> np.ndarray:
    """Pull corners towards their centroid by ``margin`` (fraction 0-0.5)."""
    if margin <= 0:
        return corners
    center = corners.mean(axis=0)
    return (center + (corners - center) * (1.0 - 2.0 * margin)).astype(np.float32)


def rectify_card(
    image: np.ndarray,
    corners: CornerInput,
    output_size: Optional[Tuple[int, int]] = None,
    aspect_ratio: float = 1.6,
    corner_margin: float = 0.0,
) -> np.ndarray:
    """
    Warp the card quadrilateral onto an upright rectangle.

    Args:
        image: Source image (H, W, C) or (H, W).
        corners: 4 card corners in image coordinates, any order.
        output_size: (width, height) of the result. If None, derived from the
            corners with :func:`card_output_size`.
        aspect_ratio: Card aspect ratio used when ``output_size`` is None.
        corner_margin: Fraction to trim inwards from each edge before warping.

    Returns:
        Rectified card image of exactly ``output_size``.

    Raises:
        DegenerateGeometryError: If the image is empty or the corners are
            degenerate.

    Example:
        >>> crop = rectify_card(image, [[120, 80], [520, 95], [510, 350], [110, 330]])
        >>> crop.shape[:2]
        (250, 400)
    """
    if image is None or image.size == 0:
        raise DegenerateGeometryError("source image is empty")

    ordered = shrink_corners(validate_corners(corners), corner_margin)

    if output_size is None:
        output_size = card_output_size(ordered, aspect_ratio)
    out_width, out_height = output_size
    if out_width < 5 or out_height < 5:
        raise DegenerateGeometryError(
            f"output dimensions too small: width={out_width}, height={out_height}"
        )

    dst = np.array(
        [
            [0, 0],  # Top-Left
            [out_width - 1, 0],  # Top-Right
            [out_width - 1, out_height - 1],  # Bottom-Right
            [0, out_height - 1],  # Bottom-Left
        ],
        dtype=np.float32,
    )

    M = cv2.getPerspectiveTransform(ordered, dst)
    rectified = cv2.warpPerspective(image, M, (out_width, out_height), flags=cv2.INTER_LINEAR)

    logger.debug(f"Rectified card to {out_width}x{out_height}")
    return rectified


def resize_to_width(image: np.ndarray, width: int) -> np.ndarray:
    """Scale the whole frame to ``width`` keeping its aspect ratio."""
    height, src_width = image.shape[:2]
    new_height = max(1, int(round(height * width / float(src_width))))
    interpolation = cv2.INTER_AREA if width < src_width else cv2.INTER_LINEAR
    return cv2.resize(image, (width, new_height), interpolation=interpolation)
