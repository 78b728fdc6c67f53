"""Type definitions for the scanning pipeline orchestrator."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Sequence, Tuple, Union

import numpy as np

from cardscan.common.errors import PipelineError
from cardscan.common.types import Err, Ok
from cardscan.detection.types import DetectionReport, DetectionResult
from cardscan.ocr.types import OCREngineResult


class PipelineState(Enum):
    """Orchestrator state; FAILED and COMPLETE are terminal for a run."""

    IDLE = "idle"
    DETECTING = "detecting"
    CROPPING = "cropping"
    OCR = "ocr"
    COMPLETE = "complete"
    FAILED = "failed"


@dataclass(frozen=True)
class ProcessingOptions:
    """Caller-supplied switches for one pipeline run.

    Attributes:
        enable_crop: Warp the detected card; otherwise the whole frame is
            scaled to the canonical card width.
        enable_enhancement: Apply the contrast stretch and sharpening.
        enable_ocr_preprocessing: Binarize before OCR.
        enable_ocr: Run the OCR engine.
        hough_thresholds: Vote threshold or ordered sweep; None uses config.
    """

    enable_crop: bool = True
    enable_enhancement: bool = True
    enable_ocr_preprocessing: bool = True
    enable_ocr: bool = True
    hough_thresholds: Optional[Union[int, Sequence[int]]] = None


@dataclass(frozen=True)
class StageResult:
    """Timing and outcome of one pipeline stage.

    Attributes:
        stage: Stage name (e.g. "detect_card").
        duration_ms: Wall time spent in the stage.
        success: Whether the stage succeeded.
        details: Stage-specific values (counts, flags, sizes).
    """

    stage: str
    duration_ms: float
    success: bool
    details: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class AppliedTransforms:
    """Which transforms actually ran on the card image."""

    cropped: bool = False
    enhanced: bool = False
    thresholded: bool = False
    recognized: bool = False


@dataclass(frozen=True)
class ProcessedImages:
    """Images and OCR output of a successful run.

    Attributes:
        original_with_overlay: Source frame with the detected outline drawn.
        cropped_card: Rectified card (or scaled frame when cropping is off).
        enhanced_card: Contrast-boosted card; same as ``cropped_card`` when
            enhancement is off.
        thresholded_card: Binarized card, None when preprocessing is off.
        detection_result: Detection summary.
        applied: Transforms that ran.
        ocr_result: Engine output, None when OCR is off.
    """

    original_with_overlay: np.ndarray
    cropped_card: np.ndarray
    enhanced_card: np.ndarray
    thresholded_card: Optional[np.ndarray]
    detection_result: DetectionResult
    applied: AppliedTransforms
    ocr_result: Optional[OCREngineResult] = None

    @property
    def ocr_text(self) -> Optional[str]:
        return self.ocr_result.text if self.ocr_result is not None else None

    @property
    def ocr_confidence(self) -> float:
        return self.ocr_result.confidence if self.ocr_result is not None else 0.0


@dataclass(frozen=True)
class PipelineResult:
    """Outcome of one pipeline run with per-stage diagnostics.

    Attributes:
        stages: Stages in the order they ran; stops at the first failure.
        result: ``Ok(ProcessedImages)`` or ``Err(PipelineError)``.
        detection_report: Detection diagnostics when detection ran.
    """

    stages: Tuple[StageResult, ...]
    result: Union[Ok[ProcessedImages], Err[PipelineError]]
    detection_report: Optional[DetectionReport] = None

    @property
    def total_duration_ms(self) -> float:
        """Sum of the stage durations."""
        return sum(stage.duration_ms for stage in self.stages)

    @property
    def success(self) -> bool:
        return self.result.is_ok()

    def stage_names(self) -> Tuple[str, ...]:
        return tuple(stage.stage for stage in self.stages)
