"""
Tests for periodic live detection and capture.
"""

import asyncio
import time
from unittest.mock import patch

import numpy as np
import pytest

from cardscan.common.config_loader import Config, LiveScanConfig
from cardscan.pipeline import PipelineOrchestrator
from cardscan.pipeline.live_scan import MIN_INTERVAL_S, LiveScanner


class FakeFrameSource:
    """Returns the same frame forever and records release."""

    def __init__(self, frame):
        self.frame = frame
        self.reads = 0
        self.read_times = []
        self.releases = 0

    def read(self):
        self.reads += 1
        self.read_times.append(time.monotonic())
        return self.frame

    def release(self):
        self.releases += 1


@pytest.fixture
def source(card_image):
    """Frame source yielding the synthetic card photo."""
    return FakeFrameSource(card_image)


@pytest.fixture
def orchestrator(config, fake_engine):
    """Orchestrator with a fake OCR engine."""
    return PipelineOrchestrator(config, engine=fake_engine)


class TestLiveScanner:
    """Tests for the live detection loop."""

    def test_interval_floor(self, orchestrator, source):
        """Test intervals below 100 ms are raised to the minimum."""
        scanner = LiveScanner(orchestrator, source, interval_s=0.01)

        assert scanner.interval_s == MIN_INTERVAL_S == 0.1

    async def test_periodic_detection(self, orchestrator, source):
        """Test detection runs repeatedly, no faster than the interval."""
        seen = []
        scanner = LiveScanner(
            orchestrator, source, on_detection=lambda frame, report: seen.append(report)
        )

        scanner.start()
        await asyncio.sleep(0.45)
        await scanner.stop()

        assert len(seen) >= 2
        assert all(report.success for report in seen)
        gaps = [b - a for a, b in zip(source.read_times, source.read_times[1:])]
        assert min(gaps) >= MIN_INTERVAL_S * 0.8
        assert scanner.frames_processed == len(seen)
        assert scanner.latest_report is seen[-1]

    async def test_stop_releases_source_once(self, orchestrator, source):
        """Test stopping cancels the loop and releases the source exactly once."""
        scanner = LiveScanner(orchestrator, source)
        scanner.start()
        await asyncio.sleep(0.05)

        await scanner.stop()
        await scanner.stop()

        assert not scanner.running
        assert source.releases == 1

    async def test_start_twice(self, orchestrator, source):
        """Test a running scanner cannot be started again."""
        scanner = LiveScanner(orchestrator, source)
        scanner.start()
        try:
            with pytest.raises(RuntimeError, match="already running"):
                scanner.start()
        finally:
            await scanner.stop()

    async def test_restart_after_release(self, orchestrator, source):
        """Test a released source cannot be scanned again."""
        scanner = LiveScanner(orchestrator, source)
        await scanner.stop()

        with pytest.raises(RuntimeError, match="released"):
            scanner.start()

    async def test_capture(self, orchestrator, source, fake_engine):
        """Test capture stops scanning and runs the full pipeline."""
        scanner = LiveScanner(orchestrator, source)
        scanner.start()
        await asyncio.sleep(0.15)

        result = await scanner.capture()

        assert result.success
        assert result.result.unwrap().ocr_text == fake_engine.text
        assert not scanner.running
        assert source.releases == 1

    async def test_capture_without_running(self, orchestrator, source):
        """Test capture reads a frame itself when the loop never ran."""
        scanner = LiveScanner(orchestrator, source)

        result = await scanner.capture()

        assert result.success
        assert source.reads == 1

    async def test_capture_without_frame(self, orchestrator):
        """Test capture fails when the source yields nothing."""
        scanner = LiveScanner(orchestrator, FakeFrameSource(None))

        with pytest.raises(RuntimeError, match="No frame"):
            await scanner.capture()

    async def test_rejected_frames_keep_loop_alive(self, orchestrator):
        """Test frames detection rejects are skipped and stop still releases."""
        source = FakeFrameSource(np.zeros((120, 160, 3), dtype=np.float32))
        scanner = LiveScanner(orchestrator, source)

        scanner.start()
        await asyncio.sleep(0.35)
        assert scanner.running
        await scanner.stop()

        assert source.releases == 1
        assert source.reads >= 2
        assert scanner.frames_failed >= 2
        assert scanner.frames_processed == 0
        assert not scanner.running

    async def test_failing_callback_keeps_loop_alive(self, orchestrator, source):
        """Test an exception in the detection callback does not end scanning."""
        calls = []

        def on_detection(frame, report):
            calls.append(report)
            raise ValueError("redraw failed")

        scanner = LiveScanner(orchestrator, source, on_detection=on_detection)
        scanner.start()
        await asyncio.sleep(0.45)
        await scanner.stop()

        assert len(calls) >= 2
        assert scanner.frames_failed == len(calls)
        assert source.releases == 1


class TestLiveScannerFromConfig:
    """Tests for building a scanner from configuration."""

    @pytest.fixture
    def live_orchestrator(self, fake_engine):
        config = Config(live_scan=LiveScanConfig(interval_s=0.25, camera_index=2))
        return PipelineOrchestrator(config, engine=fake_engine)

    def test_uses_configured_interval(self, live_orchestrator, source):
        """Test the interval comes from the live_scan section."""
        scanner = LiveScanner.from_config(live_orchestrator, source)

        assert scanner.interval_s == 0.25
        assert scanner.frame_source is source

    def test_opens_configured_camera(self, live_orchestrator):
        """Test the configured camera index is opened when no source is given."""
        with patch("cardscan.pipeline.live_scan.CameraFrameSource") as camera_cls:
            scanner = LiveScanner.from_config(live_orchestrator)

        camera_cls.assert_called_once_with(2)
        assert scanner.frame_source is camera_cls.return_value
