"""
Pipeline orchestrator for a single card scan.

Runs the stages in order and records each one's timing:

1. validate_input      - reject images OpenCV cannot process
2. detect_card         - Hough quadrilateral detection
3. draw_overlay        - outline drawn on the source frame
4. crop_and_warp       - perspective rectification to the canonical card
5. image_enhancement   - contrast stretch and sharpening
6. ocr_preprocessing   - adaptive binarization
7. ocr_recognition     - OCR engine call (the only awaited step)

Any failing stage moves the orchestrator to FAILED and ends the run with
``Err(PipelineError)``; nothing is retried. The OCR engine is a long-lived
resource owned by the orchestrator: recognitions are serialized with a lock
and run in a worker thread. When the reusable engine cannot be created, each
recognition builds a one-shot engine instead, which is slower but completes.
"""

import asyncio
import logging
import time
from typing import Callable, List, Optional, Union

import numpy as np
from pydantic import ValidationError

from cardscan.alignment.enhancement import CardEnhancer
from cardscan.alignment.image_rectification import rectify_card, resize_to_width
from cardscan.common.config_loader import Config, get_default_config
from cardscan.common.errors import (
    DegenerateGeometryError,
    ErrorCode,
    FailureReason,
    PipelineError,
)
from cardscan.common.types import Err, ImageBuffer, Ok
from cardscan.detection.processor import CardDetector, Thresholds
from cardscan.detection.types import DetectionReport
from cardscan.ocr.engine import OCREngine, ProgressCallback, create_engine
from cardscan.ocr.types import OCREngineResult
from cardscan.utils.visualization import draw_detection_overlay

from .types import (
    AppliedTransforms,
    PipelineResult,
    PipelineState,
    ProcessedImages,
    ProcessingOptions,
    StageResult,
)

logger = logging.getLogger(__name__)

StateCallback = Callable[[PipelineState], None]


def _elapsed_ms(start: float) -> float:
    return (time.perf_counter() - start) * 1000


class PipelineOrchestrator:
    """
    Sequences detection, rectification, enhancement and OCR for one image.

    Args:
        config: Pipeline configuration. If None, loads the bundled config.yaml.
        engine: Reusable OCR engine. If None, one is created from
            ``engine_factory`` on first use and kept.
        engine_factory: Builds an OCR engine; defaults to
            ``create_engine(config.engine)``.
        detector: Card detector; defaults to one built from ``config``.
        on_state_change: Called with every state transition.
        progress_callback: Receives OCR progress (0.0-1.0), called from the
            OCR worker thread.

    Example:
        >>> async with PipelineOrchestrator() as orchestrator:
        ...     result = await orchestrator.process(cv2.imread("card.jpg"))
        ...     if result.success:
        ...         print(result.result.unwrap().ocr_text)
        ...     else:
        ...         print(result.result.error.message)
    """

    def __init__(
        self,
        config: Optional[Config] = None,
        engine: Optional[OCREngine] = None,
        engine_factory: Optional[Callable[[], OCREngine]] = None,
        detector: Optional[CardDetector] = None,
        on_state_change: Optional[StateCallback] = None,
        progress_callback: Optional[ProgressCallback] = None,
    ):
        self.config = config or get_default_config()
        self.detector = detector or CardDetector(self.config)
        self.enhancer = CardEnhancer(self.config.enhancement, self.config.ocr_preprocessing)
        self.on_state_change = on_state_change
        self.progress_callback = progress_callback

        self._engine = engine
        self._engine_factory = engine_factory or (lambda: create_engine(self.config.engine))
        self._engine_unavailable = False
        self._ocr_lock = asyncio.Lock()
        self._state = PipelineState.IDLE

    @property
    def state(self) -> PipelineState:
        """State of the most recent run."""
        return self._state

    @property
    def engine(self) -> Optional[OCREngine]:
        """The reusable OCR engine, if one has been created."""
        return self._engine

    def _set_state(self, state: PipelineState) -> None:
        self._state = state
        logger.debug(f"[Pipeline] State -> {state.value}")
        if self.on_state_change is not None:
            self.on_state_change(state)

    # ═══════════════════════════════════════════════════════════════════════
    # DETECTION
    # ═══════════════════════════════════════════════════════════════════════

    def detect_only(
        self,
        image: np.ndarray,
        thresholds: Optional[Thresholds] = None,
    ) -> DetectionReport:
        """Run card detection without cropping or OCR (used by live scanning)."""
        return self.detector.detect(image, thresholds)

    # ═══════════════════════════════════════════════════════════════════════
    # OCR ENGINE
    # ═══════════════════════════════════════════════════════════════════════

    def _get_engine(self) -> Optional[OCREngine]:
        """Reusable engine, created on first use; None if creation failed before."""
        if self._engine is None and not self._engine_unavailable:
            try:
                self._engine = self._engine_factory()
                logger.info("[Pipeline] Reusable OCR engine initialized")
            except Exception as e:
                self._engine_unavailable = True
                logger.warning(
                    f"[Pipeline] Reusable OCR engine unavailable ({e}); "
                    "falling back to a one-shot engine per recognition"
                )
        return self._engine

    def _recognize_one_shot(
        self, image: np.ndarray, progress_callback: Optional[ProgressCallback]
    ) -> OCREngineResult:
        engine = self._engine_factory()
        try:
            return engine.recognize(image, progress_callback)
        finally:
            engine.close()

    def _recognize_blocking(
        self, image: np.ndarray, progress_callback: Optional[ProgressCallback]
    ) -> OCREngineResult:
        engine = self._get_engine()
        if engine is not None:
            return engine.recognize(image, progress_callback)
        return self._recognize_one_shot(image, progress_callback)

    async def recognize(
        self,
        image: np.ndarray,
        progress_callback: Optional[ProgressCallback] = None,
    ) -> OCREngineResult:
        """
        Recognize text with the owned engine, one recognition at a time.

        Raises:
            OCREngineError: If the engine fails. The reusable engine is kept
                for later calls.
        """
        callback = progress_callback or self.progress_callback
        async with self._ocr_lock:
            return await asyncio.to_thread(self._recognize_blocking, image, callback)

    async def aclose(self) -> None:
        """Release the reusable OCR engine."""
        async with self._ocr_lock:
            if self._engine is not None:
                self._engine.close()
                self._engine = None
                logger.info("[Pipeline] OCR engine released")

    async def __aenter__(self) -> "PipelineOrchestrator":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    # ═══════════════════════════════════════════════════════════════════════
    # PIPELINE
    # ═══════════════════════════════════════════════════════════════════════

    def _fail(
        self,
        stages: List[StageResult],
        stage: str,
        code: ErrorCode,
        message: str,
        report: Optional[DetectionReport] = None,
        reason: Optional[FailureReason] = None,
    ) -> PipelineResult:
        reason = reason.with_stage(stage) if reason else FailureReason(code, message, stage)
        self._set_state(PipelineState.FAILED)
        logger.warning(f"[Pipeline] ✗ {stage} failed: {reason.message}")
        return PipelineResult(
            stages=tuple(stages),
            result=Err(PipelineError(reason=reason, stage=stage, diagnostics=report)),
            detection_report=report,
        )

    async def process(
        self,
        image: Union[np.ndarray, ImageBuffer],
        options: Optional[ProcessingOptions] = None,
    ) -> PipelineResult:
        """
        Run the full pipeline on one image.

        Args:
            image: BGR, BGRA or grayscale uint8 image.
            options: Stage toggles and Hough thresholds.

        Returns:
            PipelineResult with per-stage timings and Ok/Err outcome.
        """
        options = options or ProcessingOptions()
        stages: List[StageResult] = []
        self._set_state(PipelineState.IDLE)

        # Stage 1: input validation
        start = time.perf_counter()
        try:
            buffer = image if isinstance(image, ImageBuffer) else ImageBuffer(data=image)
            frame = buffer.to_bgr()
        except (ValidationError, ValueError) as e:
            stages.append(StageResult("validate_input", _elapsed_ms(start), False))
            return self._fail(stages, "validate_input", ErrorCode.INVALID_INPUT, str(e))
        stages.append(
            StageResult(
                "validate_input",
                _elapsed_ms(start),
                True,
                {"width": buffer.width, "height": buffer.height},
            )
        )

        # Stage 2: detection
        self._set_state(PipelineState.DETECTING)
        logger.info(f"[Pipeline] Detecting card in {buffer.width}x{buffer.height} image")
        start = time.perf_counter()
        try:
            report = self.detector.detect(frame, options.hough_thresholds)
        except ValueError as e:
            stages.append(StageResult("detect_card", _elapsed_ms(start), False))
            return self._fail(stages, "detect_card", ErrorCode.INVALID_INPUT, str(e))

        selected = report.diagnostics.selected
        stages.append(
            StageResult(
                "detect_card",
                _elapsed_ms(start),
                report.success,
                {
                    "threshold": selected.threshold,
                    "raw_lines": selected.raw_count,
                    "merged_lines": selected.merged_count,
                    "intersections": report.diagnostics.intersection_count,
                    "confidence": report.result.confidence,
                },
            )
        )
        if not report.success:
            return self._fail(
                stages, "detect_card", report.failure.code, report.diagnosis, report, report.failure
            )

        # Stage 3: overlay
        start = time.perf_counter()
        overlay = draw_detection_overlay(frame, report)
        stages.append(StageResult("draw_overlay", _elapsed_ms(start), True))

        # Stage 4: crop and warp
        self._set_state(PipelineState.CROPPING)
        card = self.config.card
        output_size = (card.output_width, max(1, int(round(card.output_width / card.aspect_ratio))))
        start = time.perf_counter()
        try:
            if options.enable_crop:
                cropped = rectify_card(frame, report.result.corners, output_size=output_size)
            else:
                cropped = resize_to_width(frame, card.output_width)
        except DegenerateGeometryError as e:
            stages.append(StageResult("crop_and_warp", _elapsed_ms(start), False))
            return self._fail(stages, "crop_and_warp", ErrorCode.DEGENERATE_GEOMETRY, str(e), report)
        stages.append(
            StageResult(
                "crop_and_warp",
                _elapsed_ms(start),
                True,
                {"applied": options.enable_crop, "size": [cropped.shape[1], cropped.shape[0]]},
            )
        )

        # Stage 5: enhancement
        start = time.perf_counter()
        enhanced = self.enhancer.enhance(cropped) if options.enable_enhancement else cropped
        stages.append(
            StageResult(
                "image_enhancement",
                _elapsed_ms(start),
                True,
                {"applied": options.enable_enhancement},
            )
        )

        # Stage 6: binarization
        start = time.perf_counter()
        thresholded = self.enhancer.binarize(enhanced) if options.enable_ocr_preprocessing else None
        stages.append(
            StageResult(
                "ocr_preprocessing",
                _elapsed_ms(start),
                True,
                {"applied": options.enable_ocr_preprocessing},
            )
        )

        # Stage 7: OCR
        ocr_result = None
        if options.enable_ocr:
            self._set_state(PipelineState.OCR)
            ocr_input = thresholded if thresholded is not None else enhanced
            start = time.perf_counter()
            try:
                ocr_result = await self.recognize(ocr_input)
            except Exception as e:
                logger.error(f"[Pipeline] OCR engine failure: {e}", exc_info=True)
                stages.append(StageResult("ocr_recognition", _elapsed_ms(start), False))
                return self._fail(stages, "ocr_recognition", ErrorCode.OCR_ENGINE_FAILURE, str(e), report)
            stages.append(
                StageResult(
                    "ocr_recognition",
                    _elapsed_ms(start),
                    True,
                    {
                        "applied": True,
                        "lines": len(ocr_result.lines),
                        "confidence": ocr_result.confidence,
                    },
                )
            )

        processed = ProcessedImages(
            original_with_overlay=overlay,
            cropped_card=cropped,
            enhanced_card=enhanced,
            thresholded_card=thresholded,
            detection_result=report.result,
            applied=AppliedTransforms(
                cropped=options.enable_crop,
                enhanced=options.enable_enhancement,
                thresholded=options.enable_ocr_preprocessing,
                recognized=ocr_result is not None,
            ),
            ocr_result=ocr_result,
        )
        self._set_state(PipelineState.COMPLETE)
        result = PipelineResult(stages=tuple(stages), result=Ok(processed), detection_report=report)
        logger.info(f"[Pipeline] ✓ Complete in {result.total_duration_ms:.1f}ms")
        return result
