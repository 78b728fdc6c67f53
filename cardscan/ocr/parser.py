"""Field extraction from raw OCR text of a Thai student ID card.

Each field is searched independently, so a field that OCR missed never
blocks the others. Labelled matches (``รหัส 6367``, ``ม.5/3``) score higher
than bare tokens that merely look right. Numeric fields are consumed in a
fixed order (national ID, labelled fields, then bare tokens) and each match
is blanked out of the working text so that, for example, digits of the
13-digit national ID are never re-read as a student ID.

Parsing is a pure function of its inputs.

Example:
    >>> result = parse_ocr_text("รหัส 6367\\nนายสมชาย ใจดี\\nม.5/3 เลขที่ 12")
    >>> result.id, result.classroom, result.confidence["id"]
    ('6367', '5/3', 95)
"""

import logging
import re
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple

from .types import OCREngineResult, ParseResult
from .validator import normalize_digits, validate_national_id_checksum

logger = logging.getLogger(__name__)

# Base scores (0-100) before line confidence weighting
SCORE_NATIONAL_ID_LABELED = 95
SCORE_NATIONAL_ID = 85
SCORE_NATIONAL_ID_BAD_CHECKSUM = 45
SCORE_ID_LABELED = 95
SCORE_ID_LABELED_LEGACY = 40
SCORE_ID_BARE = 60
SCORE_ID_BARE_LEGACY = 35
SCORE_CLASSROOM_LABELED = 90
SCORE_CLASSROOM_BARE = 60
SCORE_NO_LABELED = 90
SCORE_NAME_LABELED = 85
SCORE_NAME_WITH_PREFIX = 70
SCORE_NAME_HEURISTIC = 55

# Longest first so that "นางสาว" wins over "นาง"
NAME_PREFIXES = ("เด็กหญิง", "เด็กชาย", "นางสาว", "ด.ญ.", "ด.ช.", "น.ส.", "นาย", "นาง")

_NATIONAL_ID = re.compile(r"(?<!\d)(\d(?:[ -]?\d){12})(?!\d)", re.ASCII)
_NATIONAL_ID_LABEL = re.compile(
    r"เลข(?:ประจำตัว|บัตร)ประชาชน|(?<![A-Za-z])Identification\s*(?:Number|No\.?)|(?<![A-Za-z])ID\s*Card",
    re.IGNORECASE,
)
_ID_LABELED = re.compile(
    r"(?:รหัส(?:ประจำตัว)?(?:นักเรียน)?|เลขประจำตัว(?!ประชาชน)(?:นักเรียน)?"
    r"|(?<![A-Za-z])(?:Student\s*)?ID(?:\s*No\.?)?)"
    r"\s*[:.]?\s*(\d{4,5})(?!\d)",
    re.IGNORECASE | re.ASCII,
)
_ID_BARE = re.compile(r"(?<![\d/])(\d{4})(?![\d/])", re.ASCII)
_ID_BARE_LEGACY = re.compile(r"(?<![\d/])(\d{5})(?![\d/])", re.ASCII)
_CLASSROOM_LABELED = re.compile(
    r"(?:มัธยมศึกษาปีที่|ม\.|ชั้น(?:เรียน)?|ห้อง|(?<![A-Za-z])Class(?:room)?)"
    r"\s*[:.]?\s*(\d{1,2})\s*/\s*(\d{1,2})(?![\d/])",
    re.IGNORECASE | re.ASCII,
)
_CLASSROOM_BARE = re.compile(r"(?<![\d/])(\d{1,2})\s*/\s*(\d{1,2})(?![\d/])", re.ASCII)
_NO_LABELED = re.compile(
    r"(?:เลขที่|(?<![A-Za-z])No\.?)\s*[:.]?\s*(\d{1,3})(?!\d)", re.IGNORECASE | re.ASCII
)
_DATE_HINT = re.compile(
    r"พ\.ศ\.|ปีการศึกษา|วันออกบัตร|หมดอายุ|วันเกิด|เกิดวันที่"
    r"|ม\.ค\.|ก\.พ\.|มี\.ค\.|เม\.ย\.|พ\.ค\.|มิ\.ย\.|ก\.ค\.|ส\.ค\.|ก\.ย\.|ต\.ค\.|พ\.ย\.|ธ\.ค\."
    r"|(?<![A-Za-z])(?:Issue|Expir|Birth)",
    re.IGNORECASE,
)

_FULL_NAME_LABEL = re.compile(r"ชื่อ\s*[-–]?\s*(?:นาม)?สกุล\s*[:.]?\s*(.+)")
_NAME_LABEL = re.compile(r"(?:(?<!มือ)ชื่อ|(?<![A-Za-z])(?:First\s*)?Name)\s*[:.]?\s*(.+)", re.IGNORECASE)
_SURNAME_LABEL = re.compile(
    r"(?:นามสกุล|(?<![A-Za-z])(?:Surname|Last\s*name))\s*[:.]?\s*(.+)", re.IGNORECASE
)
_NAME_TOKEN = re.compile(r"^[ก-๎A-Za-z.]+$")
_THAI_TOKEN = re.compile(r"^[ก-๎]+$")
_NAME_STOPWORDS = (
    "โรงเรียน",
    "นักเรียน",
    "บัตร",
    "ประจำตัว",
    "ชื่อ",
    "สกุล",
    "ชั้น",
    "ห้อง",
    "เลขที่",
    "รหัส",
    "ผู้อำนวยการ",
    "ลายมือ",
    "หมดอายุ",
    "วันออก",
)


@dataclass
class _Line:
    index: int  # Position in the raw text's lines
    original: str
    working: str  # Matched spans are blanked here


@dataclass
class _Field:
    value: str
    score: int
    line_index: int


def normalize_text(text: str) -> List[Tuple[int, str]]:
    """
    Normalize OCR text into (raw line index, line) pairs.

    Every decimal digit (Thai, fullwidth, Arabic-Indic) becomes its ASCII
    digit, runs of whitespace collapse to one space and empty lines are
    dropped.
    """
    lines = []
    for index, raw in enumerate(normalize_digits(text).splitlines()):
        line = re.sub(r"\s+", " ", raw).strip()
        if line:
            lines.append((index, line))
    return lines


def strip_name_prefix(text: str) -> Tuple[str, Optional[str]]:
    """Remove a leading Thai honorific; returns (remainder, prefix or None)."""
    stripped = text.strip()
    for prefix in NAME_PREFIXES:
        if stripped.startswith(prefix):
            return stripped[len(prefix) :].strip(), prefix
    return stripped, None


def _name_tokens(segment: str) -> List[str]:
    remainder, _ = strip_name_prefix(segment)
    tokens = []
    for token in remainder.split():
        if token in NAME_PREFIXES:
            continue
        if not _NAME_TOKEN.match(token):
            break
        tokens.append(token)
    return tokens


def _blank(line: _Line, match: "re.Match", group: int = 0) -> None:
    start, end = match.span(group)
    line.working = line.working[:start] + " " * (end - start) + line.working[end:]


def _find_national_id(lines: List[_Line]) -> Optional[_Field]:
    fallback = None
    for line in lines:
        for match in _NATIONAL_ID.finditer(line.working):
            digits = re.sub(r"[ -]", "", match.group(1))
            if validate_national_id_checksum(digits):
                labeled = bool(_NATIONAL_ID_LABEL.search(line.working[: match.start()]))
                _blank(line, match, 1)
                score = SCORE_NATIONAL_ID_LABELED if labeled else SCORE_NATIONAL_ID
                return _Field(digits, score, line.index)
            if fallback is None:
                fallback = (line, match, digits)

    if fallback is None:
        return None
    line, match, digits = fallback
    _blank(line, match, 1)
    return _Field(digits, SCORE_NATIONAL_ID_BAD_CHECKSUM, line.index)


def _find_labeled(
    lines: List[_Line], pattern: "re.Pattern", score_for, value_for
) -> Optional[_Field]:
    for line in lines:
        match = pattern.search(line.working)
        if match:
            _blank(line, match)
            return _Field(value_for(match), score_for(match), line.index)
    return None


def _find_bare(
    lines: List[_Line], pattern: "re.Pattern", score: int, value_for, skip_dates: bool = False
) -> Optional[_Field]:
    for line in lines:
        if skip_dates and _DATE_HINT.search(line.original):
            continue
        match = pattern.search(line.working)
        if match:
            _blank(line, match)
            return _Field(value_for(match), score, line.index)
    return None


def _classroom_value(match: "re.Match") -> str:
    return f"{int(match.group(1))}/{int(match.group(2))}"


def _find_names(lines: List[_Line]) -> Tuple[Optional[_Field], Optional[_Field]]:
    """Labelled name/surname first, then a two-token Thai line."""
    name: Optional[_Field] = None
    surname: Optional[_Field] = None

    for line in lines:
        match = _FULL_NAME_LABEL.search(line.original)
        if match:
            tokens = _name_tokens(match.group(1))
            if tokens:
                name = _Field(tokens[0], SCORE_NAME_LABELED, line.index)
            if len(tokens) >= 2:
                surname = _Field(" ".join(tokens[1:]), SCORE_NAME_LABELED, line.index)
            break

    for line in lines:
        surname_match = _SURNAME_LABEL.search(line.original)
        name_match = _NAME_LABEL.search(line.original)
        if name is None and name_match and not _FULL_NAME_LABEL.search(line.original):
            segment = name_match.group(1)
            if surname_match and surname_match.start() > name_match.start():
                segment = line.original[name_match.start(1) : surname_match.start()]
            tokens = _name_tokens(segment)
            if tokens:
                name = _Field(tokens[0], SCORE_NAME_LABELED, line.index)
        if surname is None and surname_match:
            tokens = _name_tokens(surname_match.group(1))
            if tokens:
                surname = _Field(" ".join(tokens), SCORE_NAME_LABELED, line.index)

    if name is not None or surname is not None:
        return name, surname

    for line in lines:
        if re.search(r"\d", line.original, re.ASCII):
            continue
        if any(word in line.original for word in _NAME_STOPWORDS):
            continue
        remainder, prefix = strip_name_prefix(line.original)
        tokens = remainder.split()
        if len(tokens) == 2 and all(_THAI_TOKEN.match(t) for t in tokens):
            score = SCORE_NAME_WITH_PREFIX if prefix else SCORE_NAME_HEURISTIC
            return _Field(tokens[0], score, line.index), _Field(tokens[1], score, line.index)

    return None, None


def _weighted(field: _Field, line_confidences: Optional[Sequence[float]]) -> int:
    if line_confidences is None or field.line_index >= len(line_confidences):
        return field.score
    conf = min(1.0, max(0.0, float(line_confidences[field.line_index])))
    return max(1, int(round(field.score * (0.5 + 0.5 * conf))))


def parse_ocr_text(
    text: str,
    line_confidences: Optional[Sequence[float]] = None,
) -> ParseResult:
    """
    Parse raw OCR text into card fields with per-field confidence.

    Args:
        text: Raw recognized text.
        line_confidences: Optional engine confidence (0.0-1.0) for each line of
            ``text`` (same indexing as ``text.splitlines()``). When given, each
            field score is scaled by ``0.5 + 0.5 * confidence`` of its line.

    Returns:
        ParseResult; absent fields are None with confidence 0.
    """
    lines = [_Line(index, line, line) for index, line in normalize_text(text or "")]

    fields: Dict[str, Optional[_Field]] = {}
    fields["national_id"] = _find_national_id(lines)
    fields["id"] = _find_labeled(
        lines,
        _ID_LABELED,
        lambda m: SCORE_ID_LABELED if len(m.group(1)) == 4 else SCORE_ID_LABELED_LEGACY,
        lambda m: m.group(1),
    )
    fields["classroom"] = _find_labeled(
        lines, _CLASSROOM_LABELED, lambda m: SCORE_CLASSROOM_LABELED, _classroom_value
    )
    fields["no"] = _find_labeled(
        lines, _NO_LABELED, lambda m: SCORE_NO_LABELED, lambda m: str(int(m.group(1)))
    )
    if fields["classroom"] is None:
        fields["classroom"] = _find_bare(
            lines, _CLASSROOM_BARE, SCORE_CLASSROOM_BARE, _classroom_value, skip_dates=True
        )
    if fields["id"] is None:
        fields["id"] = _find_bare(
            lines, _ID_BARE, SCORE_ID_BARE, lambda m: m.group(1), skip_dates=True
        ) or _find_bare(
            lines, _ID_BARE_LEGACY, SCORE_ID_BARE_LEGACY, lambda m: m.group(1), skip_dates=True
        )
    fields["name"], fields["surname"] = _find_names(lines)

    values = {key: (f.value if f else None) for key, f in fields.items()}
    confidence = {key: (_weighted(f, line_confidences) if f else 0) for key, f in fields.items()}

    result = ParseResult(confidence=confidence, **values)
    logger.debug(f"Parsed fields: {result.present_fields()} confidence={result.confidence}")
    return result


def parse_engine_result(result: OCREngineResult, weight_by_line_confidence: bool = True) -> ParseResult:
    """Parse an engine result, weighting fields by its line confidences."""
    confidences = result.line_confidences if weight_by_line_confidence and result.lines else None
    return parse_ocr_text(result.text, confidences)
