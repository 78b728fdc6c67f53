"""
Pytest Configuration and Shared Fixtures

This file contains pytest configuration and fixtures that are available
to all test modules. Images are drawn synthetically with OpenCV so the
tests need no data files.
"""

import threading
import time

import matplotlib

matplotlib.use("Agg")

import cv2  # noqa: E402
import numpy as np  # noqa: E402
import pytest  # noqa: E402

from cardscan.common.config_loader import Config  # noqa: E402
from cardscan.ocr.types import OCREngineResult, OCRLine  # noqa: E402

# Clean 400x250 rectangle (aspect ratio 1.6) in a 640x480 edge map
RECT_TL = (120, 115)
RECT_BR = (520, 365)

# Slightly rotated card in an 800x600 photo
CARD_CORNERS = np.array([[140, 120], [660, 135], [650, 460], [130, 445]], dtype=np.int32)

CARD_TEXT = "รหัส 6367\nนายสมชาย ใจดี\nม.5/3 เลขที่ 12"


@pytest.fixture
def card_corners():
    """Corners of the card drawn by the card_image fixture (TL, TR, BR, BL)."""
    return CARD_CORNERS.copy()


@pytest.fixture
def rectangle_corners():
    """Corners of the rectangle in rectangle_edge_map (TL, TR, BR, BL)."""
    (x0, y0), (x1, y1) = RECT_TL, RECT_BR
    return [(x0, y0), (x1, y0), (x1, y1), (x0, y1)]


@pytest.fixture
def config():
    """Default configuration built from model defaults."""
    return Config()


@pytest.fixture
def rectangle_edge_map():
    """Binary edge map containing exactly one axis-aligned card rectangle."""
    edges = np.zeros((480, 640), dtype=np.uint8)
    cv2.rectangle(edges, RECT_TL, RECT_BR, 255, 1)
    return edges


@pytest.fixture
def three_line_edge_map():
    """Edge map with two horizontal lines and a single vertical line."""
    edges = np.zeros((480, 640), dtype=np.uint8)
    cv2.line(edges, (100, 120), (540, 120), 255, 1)
    cv2.line(edges, (100, 360), (540, 360), 255, 1)
    cv2.line(edges, (150, 60), (150, 420), 255, 1)
    return edges


@pytest.fixture
def card_image():
    """BGR photo of a bright card with dark text lines on a dark table."""
    image = np.full((600, 800, 3), 60, dtype=np.uint8)
    cv2.fillPoly(image, [CARD_CORNERS], (235, 235, 235))
    for y in (220, 290, 360):
        cv2.line(image, (220, y), (520, y + 4), (30, 30, 30), 3)
    return image


@pytest.fixture
def blank_image():
    """Uniform image without any edges."""
    return np.full((480, 640, 3), 128, dtype=np.uint8)


class FakeEngine:
    """OCR engine double that records calls and concurrency."""

    def __init__(self, text=CARD_TEXT, confidence=0.9, delay=0.0, error=None):
        self.text = text
        self.confidence = confidence
        self.delay = delay
        self.error = error
        self.calls = 0
        self.closed = False
        self.active = 0
        self.max_active = 0
        self._lock = threading.Lock()

    def recognize(self, image, progress_callback=None):
        with self._lock:
            self.calls += 1
            self.active += 1
            self.max_active = max(self.max_active, self.active)
        try:
            if progress_callback is not None:
                progress_callback(0.0)
            if self.delay:
                time.sleep(self.delay)
            if self.error is not None:
                raise self.error
            if progress_callback is not None:
                progress_callback(1.0)
            lines = tuple(OCRLine(t, self.confidence) for t in self.text.splitlines())
            return OCREngineResult(
                text=self.text, confidence=self.confidence, lines=lines, success=True
            )
        finally:
            with self._lock:
                self.active -= 1

    def close(self):
        self.closed = True


@pytest.fixture
def fake_engine():
    return FakeEngine()


@pytest.fixture
def fake_engine_cls():
    """The FakeEngine class, for tests that build engines through a factory."""
    return FakeEngine
