"""
Live camera scanning.

A cancellable periodic task reads frames, runs detection only and reports
each result (typically to redraw the outline overlay). It never runs more
often than every 100ms and never starts the full pipeline on its own; the
caller decides when to :meth:`LiveScanner.capture`.
"""

import asyncio
import logging
from typing import Callable, Optional, Protocol

import cv2
import numpy as np

from cardscan.detection.processor import Thresholds
from cardscan.detection.types import DetectionReport

from .orchestrator import PipelineOrchestrator
from .types import PipelineResult, ProcessingOptions

logger = logging.getLogger(__name__)

MIN_INTERVAL_S = 0.1

DetectionCallback = Callable[[np.ndarray, DetectionReport], None]


class FrameSource(Protocol):
    """A stoppable source of video frames."""

    def read(self) -> Optional[np.ndarray]:
        """Return the next frame, or None if no frame is available."""
        ...

    def release(self) -> None:
        ...


class CameraFrameSource:
    """OpenCV camera capture.

    Args:
        index: Capture device index.

    Raises:
        RuntimeError: If the device cannot be opened.
    """

    def __init__(self, index: int = 0):
        self.index = index
        self._capture = cv2.VideoCapture(index)
        if not self._capture.isOpened():
            raise RuntimeError(f"Could not open camera {index}")
        logger.info(f"Camera {index} opened")

    def read(self) -> Optional[np.ndarray]:
        ok, frame = self._capture.read()
        return frame if ok else None

    def release(self) -> None:
        if self._capture is not None:
            self._capture.release()
            self._capture = None
            logger.info(f"Camera {self.index} released")


class LiveScanner:
    """
    Periodic detection over a frame source.

    Args:
        orchestrator: Provides detection and the full pipeline for capture.
        frame_source: Where frames come from; released on stop.
        interval_s: Seconds between detection passes (at least 0.1).
        on_detection: Called with (frame, report) after every detection pass.
        thresholds: Hough thresholds for live detection; None uses config.

    Example:
        >>> scanner = LiveScanner(orchestrator, CameraFrameSource(0), on_detection=redraw)
        >>> scanner.start()
        >>> ...  # user presses the shutter button
        >>> result = await scanner.capture()
    """

    def __init__(
        self,
        orchestrator: PipelineOrchestrator,
        frame_source: FrameSource,
        interval_s: float = MIN_INTERVAL_S,
        on_detection: Optional[DetectionCallback] = None,
        thresholds: Optional[Thresholds] = None,
    ):
        self.orchestrator = orchestrator
        self.frame_source = frame_source
        self.interval_s = max(float(interval_s), MIN_INTERVAL_S)
        self.on_detection = on_detection
        self.thresholds = thresholds

        self.frames_processed = 0
        self.frames_failed = 0
        self._task: Optional[asyncio.Task] = None
        self._released = False
        self._latest_frame: Optional[np.ndarray] = None
        self._latest_report: Optional[DetectionReport] = None

    @classmethod
    def from_config(
        cls,
        orchestrator: PipelineOrchestrator,
        frame_source: Optional[FrameSource] = None,
        on_detection: Optional[DetectionCallback] = None,
        thresholds: Optional[Thresholds] = None,
    ) -> "LiveScanner":
        """
        Build a scanner from the orchestrator's ``live_scan`` configuration.

        Opens ``CameraFrameSource(config.live_scan.camera_index)`` when no
        frame source is given.
        """
        live_config = orchestrator.config.live_scan
        if frame_source is None:
            frame_source = CameraFrameSource(live_config.camera_index)
        return cls(
            orchestrator,
            frame_source,
            interval_s=live_config.interval_s,
            on_detection=on_detection,
            thresholds=thresholds,
        )

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def latest_report(self) -> Optional[DetectionReport]:
        return self._latest_report

    def start(self) -> asyncio.Task:
        """
        Start the detection loop on the running event loop.

        Raises:
            RuntimeError: If already running or the frame source was released.
        """
        if self.running:
            raise RuntimeError("Live scan is already running")
        if self._released:
            raise RuntimeError("Frame source has been released")
        self._task = asyncio.create_task(self._run(), name="cardscan-live-scan")
        logger.info(f"[LiveScan] Started (interval {self.interval_s * 1000:.0f}ms)")
        return self._task

    async def _run(self) -> None:
        loop = asyncio.get_running_loop()
        while True:
            started = loop.time()
            try:
                await self._scan_once()
            except Exception as e:
                # A bad frame or a failing callback skips this pass only
                self.frames_failed += 1
                logger.warning(f"[LiveScan] Detection pass failed: {e}", exc_info=True)
            await asyncio.sleep(max(0.0, self.interval_s - (loop.time() - started)))

    async def _scan_once(self) -> None:
        frame = await asyncio.to_thread(self.frame_source.read)
        if frame is None:
            return
        report = await asyncio.to_thread(self.orchestrator.detect_only, frame, self.thresholds)
        self._latest_frame = frame
        self._latest_report = report
        self.frames_processed += 1
        if self.on_detection is not None:
            self.on_detection(frame, report)

    async def stop(self) -> None:
        """Cancel the loop and release the frame source."""
        task, self._task = self._task, None
        try:
            if task is not None:
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass
        finally:
            if not self._released:
                self._released = True
                self.frame_source.release()
                logger.info(
                    f"[LiveScan] Stopped after {self.frames_processed} frames "
                    f"({self.frames_failed} failed)"
                )

    async def capture(self, options: Optional[ProcessingOptions] = None) -> PipelineResult:
        """
        Stop scanning and run the full pipeline on the most recent frame.

        Raises:
            RuntimeError: If no frame could be obtained.
        """
        frame = self._latest_frame
        if frame is None and not self._released:
            frame = await asyncio.to_thread(self.frame_source.read)
        await self.stop()
        if frame is None:
            raise RuntimeError("No frame available to capture")
        logger.info("[LiveScan] Capturing frame for full pipeline")
        return await self.orchestrator.process(frame, options)
