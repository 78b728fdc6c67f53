"""Type definitions for OCR and field extraction.

This module defines the engine output, the parsed card fields with their
per-field confidence, and the roster validation result.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Tuple

# Fields extracted from a card, in display order
FIELD_NAMES: Tuple[str, ...] = ("id", "name", "surname", "classroom", "no", "national_id")


class ConfidenceBand(Enum):
    """Named range of a 0-100 field confidence, used for UI color-coding."""

    HIGH = "high"  # >= 80
    MEDIUM = "medium"  # 50-79
    LOW = "low"  # 1-49
    ABSENT = "absent"  # 0


def confidence_band(score: float) -> ConfidenceBand:
    """Map a 0-100 score to its band."""
    if score >= 80:
        return ConfidenceBand.HIGH
    if score >= 50:
        return ConfidenceBand.MEDIUM
    if score > 0:
        return ConfidenceBand.LOW
    return ConfidenceBand.ABSENT


@dataclass(frozen=True)
class OCRLine:
    """One recognized text line.

    Attributes:
        text: Line text.
        confidence: Engine confidence (0.0-1.0).
    """

    text: str
    confidence: float


@dataclass(frozen=True)
class OCREngineResult:
    """Result from OCR engine text extraction.

    Attributes:
        text: Recognized text, one line per row of the card.
        confidence: Mean line confidence (0.0-1.0).
        lines: Recognized lines with their confidences, in reading order.
        success: Whether any text was recognized.
    """

    text: str
    confidence: float
    lines: Tuple[OCRLine, ...] = ()
    success: bool = True

    @property
    def line_confidences(self) -> List[float]:
        return [line.confidence for line in self.lines]

    @classmethod
    def empty(cls) -> "OCREngineResult":
        return cls(text="", confidence=0.0, lines=(), success=False)


@dataclass(frozen=True)
class ParseResult:
    """Fields parsed from raw OCR text.

    Every field is optional; ``confidence`` holds a 0-100 score for each name
    in ``FIELD_NAMES``. A score of 0 means the field is absent and any present
    field scores at least 1.

    Raises:
        ValueError: If a confidence disagrees with the presence of its field.
    """

    id: Optional[str] = None
    name: Optional[str] = None
    surname: Optional[str] = None
    classroom: Optional[str] = None
    no: Optional[str] = None
    national_id: Optional[str] = None
    confidence: Dict[str, int] = field(default_factory=dict)

    def __post_init__(self):
        scores = {name: int(self.confidence.get(name, 0)) for name in FIELD_NAMES}
        for name in FIELD_NAMES:
            present = getattr(self, name) is not None
            if present and scores[name] <= 0:
                raise ValueError(f"Field '{name}' is present but has confidence 0")
            if not present and scores[name] != 0:
                raise ValueError(f"Field '{name}' is absent but has confidence {scores[name]}")
        object.__setattr__(self, "confidence", scores)

    def band(self, field_name: str) -> ConfidenceBand:
        return confidence_band(self.confidence.get(field_name, 0))

    def present_fields(self) -> List[str]:
        return [name for name in FIELD_NAMES if getattr(self, name) is not None]

    def to_dict(self) -> Dict[str, object]:
        data: Dict[str, object] = {name: getattr(self, name) for name in FIELD_NAMES}
        data["confidence"] = dict(self.confidence)
        return data


@dataclass(frozen=True)
class StudentRecord:
    """One roster entry.

    Attributes:
        id: 4-digit student ID.
        name: Given name (Thai).
        surname: Family name (Thai).
        classroom: Grade/room, e.g. "5/3".
        no: Number within the classroom.
        national_id: 13-digit national ID, when known.
        prefix: Honorific (e.g. "นาย"), when known.
    """

    id: str
    name: str
    surname: str
    classroom: str
    no: Optional[str] = None
    national_id: Optional[str] = None
    prefix: Optional[str] = None

    @property
    def full_name(self) -> str:
        return f"{self.name} {self.surname}".strip()


class MatchType(Enum):
    """How well a parse matched the roster."""

    EXACT = "exact"
    PARTIAL = "partial"
    NONE = "none"


@dataclass(frozen=True)
class ValidationResult:
    """Outcome of comparing a parse against the roster.

    Attributes:
        is_valid: True only for an exact match.
        matched_student: Best roster record, if any.
        match_type: EXACT, PARTIAL or NONE.
        matched_fields: Parsed fields that agree with ``matched_student``.
        conflicting_fields: Parsed fields that disagree with ``matched_student``.
        name_similarity: Fuzzy full-name similarity (0-100), 0 when not compared.
    """

    is_valid: bool
    matched_student: Optional[StudentRecord]
    match_type: MatchType
    matched_fields: Tuple[str, ...] = ()
    conflicting_fields: Tuple[str, ...] = ()
    name_similarity: float = 0.0

    @classmethod
    def no_match(cls) -> "ValidationResult":
        return cls(is_valid=False, matched_student=None, match_type=MatchType.NONE)
