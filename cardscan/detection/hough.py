"""
Edge map construction and Hough line voting.

The edge map is built with OpenCV (resize, blur, morphological close, Canny).
Voting is done with numpy rather than ``cv2.HoughLines`` because the full
accumulator grid is kept for diagnostics: threshold sweeps and the debug
heatmap read the same snapshot instead of re-running the transform.
"""

import logging
import math
from typing import List, Tuple

import cv2
import numpy as np

from cardscan.common.config_loader import HoughConfig

from .types import AccumulatorData

logger = logging.getLogger(__name__)

# Edge pixels processed per vectorized voting batch
_VOTE_CHUNK = 20000


class EdgeMapBuilder:
    """Builds a binary edge map at a fixed detection height.

    Args:
        config: Hough configuration (detection height, blur, close, Canny).
    """

    def __init__(self, config: HoughConfig):
        self.config = config

    def build(self, image: np.ndarray) -> Tuple[np.ndarray, float]:
        """
        Rescale, denoise and run Canny on an image.

        Args:
            image: BGR or grayscale uint8 image.

        Returns:
            Tuple of (edge map at detection resolution, scale factor that maps
            detection coordinates back to source coordinates).
        """
        height, width = image.shape[:2]
        scale = height / float(self.config.detection_height)
        target_width = max(1, int(round(width / scale)))

        resized = cv2.resize(
            image,
            (target_width, self.config.detection_height),
            interpolation=cv2.INTER_AREA,
        )
        if resized.ndim == 3 and resized.shape[2] == 4:
            gray = cv2.cvtColor(resized, cv2.COLOR_BGRA2GRAY)
        elif resized.ndim == 3:
            gray = cv2.cvtColor(resized, cv2.COLOR_BGR2GRAY)
        else:
            gray = resized

        k = self.config.blur_kernel | 1
        blurred = cv2.GaussianBlur(gray, (k, k), 0)

        kernel = cv2.getStructuringElement(
            cv2.MORPH_RECT, (self.config.morph_kernel, self.config.morph_kernel)
        )
        closed = cv2.morphologyEx(blurred, cv2.MORPH_CLOSE, kernel)

        edges = cv2.Canny(closed, self.config.canny_low, self.config.canny_high)

        logger.debug(
            f"Edge map {edges.shape[1]}x{edges.shape[0]} "
            f"({int(np.count_nonzero(edges))} edge pixels, scale={scale:.3f})"
        )
        return edges, scale


class HoughTransform:
    """Standard (rho, theta) Hough transform with peak extraction.

    Args:
        rho_step: Distance resolution in pixels.
        theta_step_deg: Angle resolution in degrees.
    """

    def __init__(self, rho_step: float = 2.0, theta_step_deg: float = 1.0):
        self.rho_step = rho_step
        self.theta_step = math.radians(theta_step_deg)

    @classmethod
    def from_config(cls, config: HoughConfig) -> "HoughTransform":
        return cls(config.rho_step, config.theta_step_deg)

    def accumulate(self, edge_map: np.ndarray) -> AccumulatorData:
        """
        Vote every non-zero pixel of the edge map into the accumulator.

        Args:
            edge_map: 2D binary edge image.

        Returns:
            Read-only accumulator snapshot.

        Raises:
            ValueError: If the edge map is not a 2D array.
        """
        if edge_map is None or edge_map.ndim != 2:
            raise ValueError(
                f"Edge map must be a 2D array, got "
                f"{None if edge_map is None else edge_map.shape}"
            )

        height, width = edge_map.shape
        diagonal = math.hypot(width, height)
        rho_steps = int(math.ceil(2 * diagonal / self.rho_step)) + 1
        theta_steps = int(round(math.pi / self.theta_step))

        theta_values = np.arange(theta_steps, dtype=np.float64) * self.theta_step
        rho_values = -diagonal + np.arange(rho_steps, dtype=np.float64) * self.rho_step
        cos_t = np.cos(theta_values)
        sin_t = np.sin(theta_values)

        ys, xs = np.nonzero(edge_map)
        flat_votes = np.zeros(theta_steps * rho_steps, dtype=np.int64)
        theta_offsets = np.arange(theta_steps, dtype=np.int64) * rho_steps

        for start in range(0, len(xs), _VOTE_CHUNK):
            x = xs[start : start + _VOTE_CHUNK, None].astype(np.float64)
            y = ys[start : start + _VOTE_CHUNK, None].astype(np.float64)
            rhos = x * cos_t[None, :] + y * sin_t[None, :]
            rho_idx = np.rint((rhos + diagonal) / self.rho_step).astype(np.int64)
            np.clip(rho_idx, 0, rho_steps - 1, out=rho_idx)
            flat = (rho_idx + theta_offsets[None, :]).ravel()
            flat_votes += np.bincount(flat, minlength=flat_votes.size)

        votes = flat_votes.reshape(theta_steps, rho_steps).astype(np.int32)
        votes.setflags(write=False)
        rho_values.setflags(write=False)
        theta_values.setflags(write=False)

        max_votes = int(votes.max()) if votes.size else 0
        logger.debug(
            f"Accumulated {len(xs)} edge pixels into {theta_steps}x{rho_steps} "
            f"grid (max votes {max_votes})"
        )
        return AccumulatorData(
            votes=votes,
            max_votes=max_votes,
            rho_values=rho_values,
            theta_values=theta_values,
            width=width,
            height=height,
        )

    def peaks(
        self, accumulator: AccumulatorData, threshold: int
    ) -> List[Tuple[float, float, int]]:
        """
        Extract local maxima with at least ``threshold`` votes.

        A cell is a peak when it beats its lower neighbours strictly and its
        upper neighbours non-strictly along both axes, so plateaus yield one
        peak. Whether a cell is a local maximum does not depend on the
        threshold, hence a higher threshold always returns a subset.

        Args:
            accumulator: Snapshot from :meth:`accumulate`.
            threshold: Minimum votes.

        Returns:
            (rho, theta, votes) tuples in accumulator coordinates, sorted by
            votes (descending), then angle and distance.
        """
        votes = accumulator.votes.astype(np.int64)
        padded = np.pad(votes, 1, mode="constant", constant_values=0)
        center = padded[1:-1, 1:-1]

        is_peak = (
            (center >= threshold)
            & (center > 0)
            & (center > padded[1:-1, :-2])
            & (center >= padded[1:-1, 2:])
            & (center > padded[:-2, 1:-1])
            & (center >= padded[2:, 1:-1])
        )
        theta_idx, rho_idx = np.nonzero(is_peak)
        peak_votes = votes[theta_idx, rho_idx]
        order = np.lexsort((rho_idx, theta_idx, -peak_votes))

        return [
            (
                float(accumulator.rho_values[rho_idx[i]]),
                float(accumulator.theta_values[theta_idx[i]]),
                int(peak_votes[i]),
            )
            for i in order
        ]
