"""
Unit tests for OCR text field extraction.
"""

import pytest

from cardscan.ocr.parser import (
    SCORE_ID_BARE,
    SCORE_ID_LABELED,
    SCORE_ID_LABELED_LEGACY,
    SCORE_NAME_WITH_PREFIX,
    SCORE_NATIONAL_ID_BAD_CHECKSUM,
    SCORE_NATIONAL_ID_LABELED,
    normalize_text,
    parse_engine_result,
    parse_ocr_text,
    strip_name_prefix,
)
from cardscan.ocr.types import (
    FIELD_NAMES,
    ConfidenceBand,
    OCREngineResult,
    OCRLine,
    ParseResult,
)


@pytest.fixture
def card_text():
    """Typical OCR output of a student card."""
    return "รหัส 6367\nนายสมชาย ใจดี\nม.5/3 เลขที่ 12"


class TestParseOcrText:
    """Tests for field extraction from plain text."""

    def test_typical_card(self, card_text):
        """Test every field of a typical card is extracted."""
        result = parse_ocr_text(card_text)

        assert result.id == "6367"
        assert result.confidence["id"] >= 80
        assert result.classroom == "5/3"
        assert result.no == "12"
        assert result.name == "สมชาย"
        assert result.surname == "ใจดี"
        assert result.confidence["name"] == SCORE_NAME_WITH_PREFIX

    def test_fullwidth_digits(self):
        """Test fullwidth numerals are read as ASCII digits."""
        result = parse_ocr_text("เลขประจำตัวประชาชน １１０３７０２０７１８１１\nรหัส ６３６７")

        assert result.national_id == "1103702071811"
        assert result.confidence["national_id"] == SCORE_NATIONAL_ID_LABELED
        assert result.id == "6367"

    def test_arabic_indic_digits(self):
        """Test Arabic-Indic numerals are read as ASCII digits."""
        result = parse_ocr_text("รหัส ٦٣٦٧\nม.٥/٣")

        assert result.id == "6367"
        assert result.confidence["id"] == SCORE_ID_LABELED
        assert result.classroom == "5/3"

    def test_missing_field_has_zero_confidence(self, card_text):
        """Test absent fields are None with confidence 0."""
        result = parse_ocr_text(card_text)

        assert result.national_id is None
        assert result.confidence["national_id"] == 0
        assert result.band("national_id") == ConfidenceBand.ABSENT

    def test_bands(self, card_text):
        """Test labelled fields fall in the high band."""
        result = parse_ocr_text(card_text)

        assert result.band("id") == ConfidenceBand.HIGH
        assert result.band("classroom") == ConfidenceBand.HIGH
        assert result.band("name") == ConfidenceBand.MEDIUM

    def test_empty_text(self):
        """Test empty text yields an empty result instead of raising."""
        result = parse_ocr_text("")

        assert result.present_fields() == []
        assert all(result.confidence[name] == 0 for name in FIELD_NAMES)

    def test_deterministic(self, card_text):
        """Test the same text always parses to the same result."""
        assert parse_ocr_text(card_text) == parse_ocr_text(card_text)

    def test_thai_digits(self):
        """Test Thai numerals are read as ASCII digits."""
        result = parse_ocr_text("รหัส ๖๓๖๗\nม.๕/๓")

        assert result.id == "6367"
        assert result.classroom == "5/3"

    def test_labelled_national_id(self):
        """Test a grouped national ID with its label scores highest."""
        result = parse_ocr_text("เลขประจำตัวประชาชน 1 1037 02071 81 1")

        assert result.national_id == "1103702071811"
        assert result.confidence["national_id"] == SCORE_NATIONAL_ID_LABELED

    def test_national_id_digits_not_reused(self):
        """Test digits of the national ID are never read as a student ID."""
        result = parse_ocr_text("1103702071811")

        assert result.national_id == "1103702071811"
        assert result.id is None

    def test_bad_checksum_is_low(self):
        """Test a national ID failing its checksum is kept with low confidence."""
        result = parse_ocr_text("1103702071812")

        assert result.national_id == "1103702071812"
        assert result.confidence["national_id"] == SCORE_NATIONAL_ID_BAD_CHECKSUM
        assert result.band("national_id") == ConfidenceBand.LOW

    def test_bare_student_id(self):
        """Test an unlabelled 4-digit token is a medium confidence ID."""
        result = parse_ocr_text("โรงเรียนตัวอย่าง\n6367")

        assert result.id == "6367"
        assert result.confidence["id"] == SCORE_ID_BARE

    def test_date_lines_skipped_for_bare_id(self):
        """Test years on issue/expiry lines are not taken as IDs."""
        result = parse_ocr_text("วันออกบัตร 2566\n6367")

        assert result.id == "6367"

    def test_five_digit_id(self):
        """Test 5-digit IDs are accepted with low confidence."""
        result = parse_ocr_text("รหัส 12345")

        assert result.id == "12345"
        assert result.confidence["id"] == SCORE_ID_LABELED_LEGACY

    def test_english_labels(self):
        """Test English-labelled cards."""
        result = parse_ocr_text("Student ID: 6367\nName: Somchai\nSurname: Jaidee\nClass 5/3 No. 12")

        assert result.id == "6367"
        assert result.confidence["id"] == SCORE_ID_LABELED
        assert result.name == "Somchai"
        assert result.surname == "Jaidee"
        assert result.classroom == "5/3"
        assert result.no == "12"

    def test_thai_name_labels(self):
        """Test labelled Thai name and surname on separate lines."""
        result = parse_ocr_text("ชื่อ เด็กหญิงมาลี\nนามสกุล ศรีสุข")

        assert result.name == "มาลี"
        assert result.surname == "ศรีสุข"

    def test_line_confidence_weighting(self, card_text):
        """Test field scores scale with the confidence of their line."""
        result = parse_ocr_text(card_text, line_confidences=[1.0, 0.2, 1.0])

        assert result.confidence["id"] == SCORE_ID_LABELED
        assert result.confidence["name"] == round(SCORE_NAME_WITH_PREFIX * 0.6)

    def test_weighted_scores_stay_positive(self):
        """Test a present field never drops to confidence 0."""
        result = parse_ocr_text("รหัส 6367", line_confidences=[0.0])

        assert result.confidence["id"] >= 1


class TestParseEngineResult:
    """Tests for parsing engine output."""

    def test_uses_line_confidences(self, card_text):
        """Test per-line engine confidence weights the fields."""
        lines = tuple(OCRLine(text, conf) for text, conf in zip(card_text.splitlines(), [0.5, 1.0, 1.0]))
        engine_result = OCREngineResult(text=card_text, confidence=0.8, lines=lines)

        result = parse_engine_result(engine_result)

        assert result.confidence["id"] == round(SCORE_ID_LABELED * 0.75)

    def test_weighting_disabled(self, card_text):
        """Test weighting can be switched off."""
        lines = tuple(OCRLine(text, 0.1) for text in card_text.splitlines())
        engine_result = OCREngineResult(text=card_text, confidence=0.1, lines=lines)

        result = parse_engine_result(engine_result, weight_by_line_confidence=False)

        assert result.confidence["id"] == SCORE_ID_LABELED


class TestParseResult:
    """Tests for the presence/confidence invariant."""

    def test_present_field_needs_confidence(self):
        """Test a present field with confidence 0 is rejected."""
        with pytest.raises(ValueError, match="present"):
            ParseResult(id="6367", confidence={"id": 0})

    def test_absent_field_needs_zero(self):
        """Test an absent field with a score is rejected."""
        with pytest.raises(ValueError, match="absent"):
            ParseResult(confidence={"name": 40})

    def test_confidence_covers_all_fields(self):
        """Test every field name gets a confidence entry."""
        result = ParseResult(id="6367", confidence={"id": 95})

        assert set(result.confidence) == set(FIELD_NAMES)
        assert result.to_dict()["id"] == "6367"


class TestHelpers:
    """Tests for text helpers."""

    def test_normalize_text(self):
        """Test whitespace collapsing keeps raw line indices."""
        assert normalize_text("a   b\n\n  c ") == [(0, "a b"), (2, "c")]

    @pytest.mark.parametrize(
        "text,expected",
        [
            ("นางสาวมาลี ศรีสุข", ("มาลี ศรีสุข", "นางสาว")),
            ("นางมาลี", ("มาลี", "นาง")),
            ("สมชาย", ("สมชาย", None)),
        ],
    )
    def test_strip_name_prefix(self, text, expected):
        """Test the longest honorific is removed."""
        assert strip_name_prefix(text) == expected
