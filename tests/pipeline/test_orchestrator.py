"""
Tests for the asynchronous pipeline orchestrator.
"""

import asyncio

import numpy as np
import pytest

from cardscan.common.errors import ErrorCode, OCREngineError
from cardscan.pipeline import PipelineOrchestrator, PipelineState, ProcessingOptions

STAGES = (
    "validate_input",
    "detect_card",
    "draw_overlay",
    "crop_and_warp",
    "image_enhancement",
    "ocr_preprocessing",
    "ocr_recognition",
)


@pytest.fixture
def states():
    """Collected state transitions."""
    return []


@pytest.fixture
def orchestrator(config, fake_engine, states):
    """Orchestrator with a fake OCR engine."""
    return PipelineOrchestrator(config, engine=fake_engine, on_state_change=states.append)


class TestProcess:
    """Tests for a full pipeline run."""

    async def test_success(self, orchestrator, card_image, fake_engine):
        """Test every stage runs and the OCR text is returned."""
        result = await orchestrator.process(card_image)

        assert result.success, result.result
        assert result.stage_names() == STAGES
        assert all(stage.success for stage in result.stages)

        processed = result.result.unwrap()
        assert processed.cropped_card.shape == (375, 600, 3)
        assert processed.thresholded_card.shape == (375, 600)
        assert set(np.unique(processed.thresholded_card)) <= {0, 255}
        assert processed.ocr_text == fake_engine.text
        assert processed.detection_result.success
        assert fake_engine.calls == 1

    async def test_total_duration_is_sum_of_stages(self, orchestrator, card_image):
        """Test the total time equals the sum of stage times."""
        result = await orchestrator.process(card_image)

        assert result.total_duration_ms == pytest.approx(
            sum(stage.duration_ms for stage in result.stages)
        )
        assert all(stage.duration_ms >= 0 for stage in result.stages)

    async def test_state_transitions(self, orchestrator, card_image, states):
        """Test the state machine passes through every stage in order."""
        await orchestrator.process(card_image)

        assert states == [
            PipelineState.IDLE,
            PipelineState.DETECTING,
            PipelineState.CROPPING,
            PipelineState.OCR,
            PipelineState.COMPLETE,
        ]
        assert orchestrator.state == PipelineState.COMPLETE

    async def test_toggles_disabled(self, orchestrator, card_image, fake_engine):
        """Test disabled transforms are skipped and reported as not applied."""
        options = ProcessingOptions(
            enable_enhancement=False, enable_ocr_preprocessing=False, enable_ocr=False
        )

        result = await orchestrator.process(card_image, options)

        processed = result.result.unwrap()
        assert processed.enhanced_card is processed.cropped_card
        assert processed.thresholded_card is None
        assert processed.ocr_result is None
        assert not processed.applied.enhanced
        assert not processed.applied.thresholded
        assert not processed.applied.recognized
        assert "ocr_recognition" not in result.stage_names()
        assert fake_engine.calls == 0

        details = {stage.stage: stage.details for stage in result.stages}
        assert details["image_enhancement"]["applied"] is False
        assert details["ocr_preprocessing"]["applied"] is False

    async def test_without_crop(self, orchestrator, card_image):
        """Test the whole frame is scaled when cropping is disabled."""
        result = await orchestrator.process(card_image, ProcessingOptions(enable_crop=False))

        processed = result.result.unwrap()
        assert processed.cropped_card.shape == (450, 600, 3)
        assert not processed.applied.cropped

    async def test_detection_failure(self, orchestrator, blank_image, fake_engine, states):
        """Test a frame without a card fails at detection with diagnostics."""
        result = await orchestrator.process(blank_image)

        assert not result.success
        error = result.result.error
        assert error.code == ErrorCode.INSUFFICIENT_LINES
        assert error.stage == "detect_card"
        assert error.reason.error_id == "DET-E001"
        assert "need at least 4 lines" in error.reason.message
        assert result.stage_names() == ("validate_input", "detect_card")
        assert result.detection_report is not None
        assert states[-1] == PipelineState.FAILED
        assert fake_engine.calls == 0

    async def test_invalid_input(self, orchestrator):
        """Test a non-uint8 image fails validation."""
        result = await orchestrator.process(np.zeros((10, 10, 3), dtype=np.float64))

        assert result.result.error.code == ErrorCode.INVALID_INPUT
        assert result.stage_names() == ("validate_input",)
        assert not result.stages[0].success

    async def test_single_threshold_option(self, orchestrator, card_image):
        """Test a caller-supplied threshold is used for detection."""
        result = await orchestrator.process(card_image, ProcessingOptions(hough_thresholds=90))

        assert result.detection_report.diagnostics.selected.threshold == 90


class TestOcrEngine:
    """Tests for OCR engine ownership and failure handling."""

    async def test_engine_failure(self, config, card_image, fake_engine_cls):
        """Test an engine error fails the run but keeps the engine."""
        engine = fake_engine_cls(error=OCREngineError("engine crashed"))
        orchestrator = PipelineOrchestrator(config, engine=engine)

        result = await orchestrator.process(card_image)

        assert result.result.error.code == ErrorCode.OCR_ENGINE_FAILURE
        assert result.result.error.reason.error_id == "OCR-E001"
        assert result.stage_names()[-1] == "ocr_recognition"
        assert orchestrator.engine is engine
        assert not engine.closed

        engine.error = None
        assert (await orchestrator.process(card_image)).success

    async def test_engine_created_once(self, config, card_image, fake_engine_cls):
        """Test the factory engine is created lazily and reused."""
        created = []

        def factory():
            created.append(fake_engine_cls())
            return created[-1]

        orchestrator = PipelineOrchestrator(config, engine_factory=factory)
        assert orchestrator.engine is None

        await orchestrator.process(card_image)
        await orchestrator.process(card_image)

        assert len(created) == 1
        assert created[0].calls == 2

    async def test_one_shot_fallback(self, config, card_image, fake_engine_cls):
        """Test a failed reusable engine falls back to one engine per call."""
        created = []

        def factory():
            if not created:
                created.append(None)
                raise RuntimeError("model download failed")
            created.append(fake_engine_cls())
            return created[-1]

        orchestrator = PipelineOrchestrator(config, engine_factory=factory)

        result = await orchestrator.process(card_image)

        assert result.success
        assert orchestrator.engine is None
        assert created[1].calls == 1
        assert created[1].closed

    async def test_recognition_serialized(self, config, card_image, fake_engine_cls):
        """Test concurrent runs never call the engine concurrently."""
        engine = fake_engine_cls(delay=0.05)
        orchestrator = PipelineOrchestrator(config, engine=engine)

        results = await asyncio.gather(*(orchestrator.process(card_image) for _ in range(3)))

        assert all(r.success for r in results)
        assert engine.calls == 3
        assert engine.max_active == 1

    async def test_progress_callback(self, config, card_image, fake_engine):
        """Test OCR progress reaches the caller."""
        progress = []
        orchestrator = PipelineOrchestrator(
            config, engine=fake_engine, progress_callback=progress.append
        )

        await orchestrator.process(card_image)

        assert progress == [0.0, 1.0]

    async def test_context_manager_releases_engine(self, config, card_image, fake_engine):
        """Test leaving the context closes the engine."""
        async with PipelineOrchestrator(config, engine=fake_engine) as orchestrator:
            await orchestrator.process(card_image)

        assert fake_engine.closed
        assert orchestrator.engine is None
