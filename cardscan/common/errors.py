"""
Structured failure reasons and exceptions for the card scanning pipeline.

Detection problems (too few lines, no rectangle) are ordinary outcomes of
pointing a camera at a scene, so they are reported as ``FailureReason``
values. Exceptions are reserved for calls that cannot produce a result at
all: rectifying degenerate geometry and OCR engine crashes.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional


class ErrorCode(Enum):
    """Programmatic failure constants."""

    INSUFFICIENT_LINES = "INSUFFICIENT_LINES"
    INSUFFICIENT_INTERSECTIONS = "INSUFFICIENT_INTERSECTIONS"
    NO_VALID_QUADRILATERAL = "NO_VALID_QUADRILATERAL"
    DEGENERATE_GEOMETRY = "DEGENERATE_GEOMETRY"
    OCR_ENGINE_FAILURE = "OCR_ENGINE_FAILURE"
    INVALID_INPUT = "INVALID_INPUT"


# Error id and user-facing message per code
_ERROR_CATALOG: Dict[ErrorCode, tuple] = {
    ErrorCode.INVALID_INPUT: ("SCAN-E000", "The image could not be read."),
    ErrorCode.INSUFFICIENT_LINES: (
        "DET-E001",
        "Card edges not found. Place the card on a plain, contrasting surface.",
    ),
    ErrorCode.INSUFFICIENT_INTERSECTIONS: (
        "DET-E002",
        "Card corners not found. Make sure all four corners are visible.",
    ),
    ErrorCode.NO_VALID_QUADRILATERAL: (
        "DET-E003",
        "No card-shaped rectangle found. Hold the camera straight above the card.",
    ),
    ErrorCode.DEGENERATE_GEOMETRY: (
        "ALN-E001",
        "The detected card outline is too distorted to straighten.",
    ),
    ErrorCode.OCR_ENGINE_FAILURE: (
        "OCR-E001",
        "Text recognition failed. Please try again.",
    ),
}


@dataclass(frozen=True)
class FailureReason:
    """Structured failure reason with error code and context.

    Attributes:
        code: Failure constant for programmatic checking.
        message: Diagnostic explanation (counts, thresholds).
        stage: Pipeline stage where the failure occurred (e.g. "detect_card").
        details: Extra diagnostic values.
    """

    code: ErrorCode
    message: str
    stage: str = ""
    details: Dict[str, Any] = field(default_factory=dict)

    @property
    def error_id(self) -> str:
        """Stable identifier such as ``DET-E001``."""
        return _ERROR_CATALOG[self.code][0]

    def user_message(self) -> str:
        """Short message suitable for showing to the person holding the camera."""
        return _ERROR_CATALOG[self.code][1]

    def with_stage(self, stage: str) -> "FailureReason":
        return FailureReason(self.code, self.message, stage, dict(self.details))


@dataclass(frozen=True)
class PipelineError:
    """Payload of a failed pipeline run.

    Attributes:
        reason: The structured failure.
        stage: Stage that failed.
        diagnostics: Detection diagnostics, when detection ran.
    """

    reason: FailureReason
    stage: str
    diagnostics: Optional[Any] = None

    @property
    def code(self) -> ErrorCode:
        return self.reason.code

    @property
    def message(self) -> str:
        return self.reason.user_message()

    def __str__(self) -> str:
        return f"[{self.reason.error_id}] {self.stage}: {self.reason.message}"


class DegenerateGeometryError(ValueError):
    """Raised when corners cannot define a rectifiable quadrilateral."""

    def __init__(self, reason: str):
        super().__init__(f"Degenerate card geometry: {reason}")
        self.reason = reason


class OCREngineError(RuntimeError):
    """Raised when the OCR engine fails to produce a result."""
