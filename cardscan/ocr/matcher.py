"""Roster validation of parsed card fields.

Match levels:

- EXACT: the student ID and the national ID both point at the same record.
  Cards without a readable national ID are confirmed by the classroom of
  the record the student ID points at instead.
- PARTIAL: some identifying fields agree but confirmation is missing or a
  present identifier disagrees, or only the name matches fuzzily.
- NONE: no plausible record.

Validation only reads the roster; "no match" is a normal result.
"""

import logging
from typing import List, Optional, Tuple

from cardscan.common.config_loader import MatcherConfig

from .roster import RosterStore, normalize_name, normalize_student_id
from .types import MatchType, ParseResult, StudentRecord, ValidationResult
from .validator import normalize_national_id

logger = logging.getLogger(__name__)


def _compare(parsed: ParseResult, record: StudentRecord) -> Tuple[List[str], List[str]]:
    """Fields of ``parsed`` that agree / disagree with ``record``."""
    matched, conflicting = [], []

    def check(field_name: str, equal: bool) -> None:
        (matched if equal else conflicting).append(field_name)

    if parsed.id is not None:
        check("id", normalize_student_id(parsed.id) == record.id)
    if parsed.national_id is not None and record.national_id:
        check("national_id", normalize_national_id(parsed.national_id) == record.national_id)
    if parsed.classroom is not None:
        check("classroom", parsed.classroom.replace(" ", "") == record.classroom.replace(" ", ""))
    if parsed.name is not None:
        check("name", normalize_name(parsed.name) == normalize_name(record.name))
    if parsed.surname is not None:
        check("surname", normalize_name(parsed.surname) == normalize_name(record.surname))
    if parsed.no is not None and record.no is not None:
        check("no", parsed.no.lstrip("0") == record.no.lstrip("0"))
    return matched, conflicting


class RosterValidator:
    """Compares parse results against a roster.

    Args:
        roster: Roster lookup collaborator.
        config: Matching thresholds.

    Example:
        >>> validator = RosterValidator(load_roster("data.json"))
        >>> result = validator.validate(parse_ocr_text(ocr_text))
        >>> result.match_type, result.matched_student
    """

    def __init__(self, roster: RosterStore, config: Optional[MatcherConfig] = None):
        self.roster = roster
        self.config = config or MatcherConfig()

    def validate(self, parsed: ParseResult) -> ValidationResult:
        by_id = self.roster.find_by_student_id(parsed.id) if parsed.id else None
        by_national_id = (
            self.roster.find_by_national_id(parsed.national_id) if parsed.national_id else None
        )

        if by_id is not None:
            return self._validate_record(parsed, by_id, other=by_national_id)
        if by_national_id is not None:
            return self._partial(parsed, by_national_id, reason="national id only")
        return self._validate_by_name(parsed)

    def _validate_record(
        self,
        parsed: ParseResult,
        record: StudentRecord,
        other: Optional[StudentRecord],
    ) -> ValidationResult:
        matched, conflicting = _compare(parsed, record)
        hard_conflicts = [f for f in conflicting if f in ("national_id", "classroom")]
        if other is not None and other != record:
            hard_conflicts.append("national_id")

        if parsed.national_id is not None and record.national_id:
            confirmed = "national_id" in matched
        else:
            confirmed = "classroom" in matched

        if confirmed and not hard_conflicts:
            logger.info(f"[Validator] Exact match for student {record.id} ({matched})")
            return ValidationResult(
                is_valid=True,
                matched_student=record,
                match_type=MatchType.EXACT,
                matched_fields=tuple(matched),
                conflicting_fields=tuple(conflicting),
            )

        return self._partial(parsed, record, reason=f"conflicts={conflicting or hard_conflicts}")

    def _partial(self, parsed: ParseResult, record: StudentRecord, reason: str) -> ValidationResult:
        matched, conflicting = _compare(parsed, record)
        logger.info(f"[Validator] Partial match for student {record.id}: {reason}")
        return ValidationResult(
            is_valid=False,
            matched_student=record,
            match_type=MatchType.PARTIAL,
            matched_fields=tuple(matched),
            conflicting_fields=tuple(conflicting),
        )

    def _validate_by_name(self, parsed: ParseResult) -> ValidationResult:
        if parsed.name is None:
            logger.info("[Validator] No identifiers or name to match")
            return ValidationResult.no_match()

        candidates = self.roster.search_by_name(parsed.name, parsed.surname, self.config.search_limit)
        if not candidates:
            return ValidationResult.no_match()

        record, similarity = candidates[0]
        if similarity < self.config.name_similarity_threshold:
            logger.info(
                f"[Validator] Best name similarity {similarity:.1f} below "
                f"{self.config.name_similarity_threshold:.1f}"
            )
            return ValidationResult.no_match()

        matched, conflicting = _compare(parsed, record)
        logger.info(f"[Validator] Fuzzy name match for student {record.id} ({similarity:.1f})")
        return ValidationResult(
            is_valid=False,
            matched_student=record,
            match_type=MatchType.PARTIAL,
            matched_fields=tuple(matched),
            conflicting_fields=tuple(conflicting),
            name_similarity=similarity,
        )
