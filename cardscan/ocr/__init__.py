"""
OCR, field parsing and roster validation for student ID cards.

Example:
    >>> from cardscan.ocr import parse_ocr_text, RosterValidator, load_roster
    >>> parsed = parse_ocr_text("รหัส 6367\\nม.5/3")
    >>> RosterValidator(load_roster("data.json")).validate(parsed).match_type
    <MatchType.EXACT: 'exact'>
"""

from cardscan.ocr.engine import (
    OCREngine,
    RapidOCREngine,
    TesseractEngine,
    create_engine,
)
from cardscan.ocr.matcher import RosterValidator
from cardscan.ocr.parser import parse_engine_result, parse_ocr_text
from cardscan.ocr.roster import InMemoryRoster, RosterStore, load_roster
from cardscan.ocr.types import (
    ConfidenceBand,
    MatchType,
    OCREngineResult,
    OCRLine,
    ParseResult,
    StudentRecord,
    ValidationResult,
    confidence_band,
)

__all__ = [
    "ConfidenceBand",
    "InMemoryRoster",
    "MatchType",
    "OCREngine",
    "OCREngineResult",
    "OCRLine",
    "ParseResult",
    "RapidOCREngine",
    "RosterStore",
    "RosterValidator",
    "StudentRecord",
    "TesseractEngine",
    "ValidationResult",
    "confidence_band",
    "create_engine",
    "load_roster",
    "parse_engine_result",
    "parse_ocr_text",
]
