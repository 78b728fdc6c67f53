"""
Planar polygon helpers shared by detection and rectification.

All functions take corner arrays of shape (4, 2) in image coordinates
(x to the right, y downwards).
"""

import math
from typing import List

import numpy as np


def order_corners(points) -> np.ndarray:
    """
    Order 4 points clockwise, starting from the corner nearest the image origin.

    Points are sorted by their angle around the centroid (clockwise on screen
    because y grows downwards) and the sequence is rotated so that the point
    with the smallest ``x + y`` comes first. For a card this yields
    [Top-Left, Top-Right, Bottom-Right, Bottom-Left].

    Args:
        points: Array-like of shape (4, 2).

    Returns:
        Ordered float32 array of shape (4, 2).

    Raises:
        ValueError: If input does not contain exactly 4 points.

    Example:
        >>> order_corners([[300, 150], [100, 200], [320, 400], [80, 380]])[0]
        array([100., 200.], dtype=float32)
    """
    pts = np.asarray(points, dtype=np.float32)
    if pts.shape != (4, 2):
        raise ValueError(
            f"Expected exactly 4 points with shape (4, 2), got shape {pts.shape}"
        )

    center = pts.mean(axis=0)
    angles = np.arctan2(pts[:, 1] - center[1], pts[:, 0] - center[0])
    clockwise = pts[np.argsort(angles, kind="stable")]

    start = int(np.argmin(clockwise.sum(axis=1)))
    return np.roll(clockwise, -start, axis=0)


def polygon_area(corners: np.ndarray) -> float:
    """Absolute shoelace area of a polygon."""
    pts = np.asarray(corners, dtype=np.float64)
    x, y = pts[:, 0], pts[:, 1]
    return float(abs(np.dot(x, np.roll(y, -1)) - np.dot(y, np.roll(x, -1))) / 2.0)


def _cross(o: np.ndarray, a: np.ndarray, b: np.ndarray) -> float:
    return float((a[0] - o[0]) * (b[1] - o[1]) - (a[1] - o[1]) * (b[0] - o[0]))


def is_convex(corners: np.ndarray, eps: float = 1e-6) -> bool:
    """True when every turn has the same non-zero orientation."""
    pts = np.asarray(corners, dtype=np.float64)
    n = len(pts)
    signs = []
    for i in range(n):
        cross = _cross(pts[i], pts[(i + 1) % n], pts[(i + 2) % n])
        if abs(cross) <= eps:
            return False
        signs.append(cross > 0)
    return all(signs) or not any(signs)


def _segments_cross(p1, p2, q1, q2) -> bool:
    d1 = _cross(q1, q2, p1)
    d2 = _cross(q1, q2, p2)
    d3 = _cross(p1, p2, q1)
    d4 = _cross(p1, p2, q2)
    return (d1 > 0) != (d2 > 0) and (d3 > 0) != (d4 > 0) and 0 not in (d1, d2, d3, d4)


def is_self_intersecting(corners: np.ndarray) -> bool:
    """True when opposite edges of a quadrilateral cross each other."""
    p = np.asarray(corners, dtype=np.float64)
    return _segments_cross(p[0], p[1], p[2], p[3]) or _segments_cross(p[1], p[2], p[3], p[0])


def min_corner_distance(corners: np.ndarray) -> float:
    """Smallest distance between any two corners."""
    pts = np.asarray(corners, dtype=np.float64)
    best = math.inf
    for i in range(len(pts)):
        for j in range(i + 1, len(pts)):
            best = min(best, float(np.hypot(*(pts[i] - pts[j]))))
    return best


def interior_angles(corners: np.ndarray) -> List[float]:
    """Interior angle at each corner in degrees."""
    pts = np.asarray(corners, dtype=np.float64)
    n = len(pts)
    angles = []
    for i in range(n):
        a = pts[i - 1] - pts[i]
        b = pts[(i + 1) % n] - pts[i]
        norm = np.linalg.norm(a) * np.linalg.norm(b)
        if norm == 0:
            angles.append(0.0)
            continue
        cos_angle = float(np.clip(np.dot(a, b) / norm, -1.0, 1.0))
        angles.append(math.degrees(math.acos(cos_angle)))
    return angles


def edge_lengths(corners: np.ndarray) -> List[float]:
    """Lengths of the edges (top, right, bottom, left) of ordered corners."""
    pts = np.asarray(corners, dtype=np.float64)
    return [float(np.hypot(*(pts[(i + 1) % 4] - pts[i]))) for i in range(4)]
