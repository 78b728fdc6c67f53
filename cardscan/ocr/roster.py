"""Read-only roster lookup.

The roster is consumed through the ``RosterStore`` protocol: exact lookups
by student ID and national ID plus a fuzzy name search. ``InMemoryRoster``
implements it over a list of records (for example loaded from the school's
``data.json`` export with :func:`load_roster`); fuzzy name matching uses
rapidfuzz.
"""

import json
import logging
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Protocol, Tuple, Union

from rapidfuzz import fuzz, process

from .types import StudentRecord
from .validator import normalize_digits, normalize_national_id

logger = logging.getLogger(__name__)


class RosterStore(Protocol):
    """Lookup interface the roster validator depends on."""

    def find_by_student_id(self, student_id: str) -> Optional[StudentRecord]:
        ...

    def find_by_national_id(self, national_id: str) -> Optional[StudentRecord]:
        ...

    def search_by_name(
        self, name: str, surname: Optional[str] = None, limit: int = 5
    ) -> List[Tuple[StudentRecord, float]]:
        ...


def normalize_student_id(value: Union[str, int]) -> str:
    """Student IDs are compared as zero-padded 4-digit strings."""
    text = normalize_digits(str(value)).strip()
    return text.zfill(4) if text.isdigit() else text


def normalize_name(value: str) -> str:
    return " ".join(value.split())


class InMemoryRoster:
    """Roster held in memory, indexed by student ID and national ID.

    Args:
        records: Roster entries. Later duplicates of a student ID are ignored.
    """

    def __init__(self, records: Iterable[StudentRecord]):
        self._records: List[StudentRecord] = []
        self._by_id: Dict[str, StudentRecord] = {}
        self._by_national_id: Dict[str, StudentRecord] = {}

        for record in records:
            key = normalize_student_id(record.id)
            if key in self._by_id:
                logger.warning(f"Duplicate student id {key} in roster, keeping first entry")
                continue
            self._records.append(record)
            self._by_id[key] = record
            if record.national_id:
                self._by_national_id[normalize_national_id(record.national_id)] = record

        self._full_names = [normalize_name(r.full_name) for r in self._records]

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self):
        return iter(self._records)

    def find_by_student_id(self, student_id: str) -> Optional[StudentRecord]:
        return self._by_id.get(normalize_student_id(student_id))

    def find_by_national_id(self, national_id: str) -> Optional[StudentRecord]:
        return self._by_national_id.get(normalize_national_id(national_id))

    def search_by_name(
        self, name: str, surname: Optional[str] = None, limit: int = 5
    ) -> List[Tuple[StudentRecord, float]]:
        """
        Fuzzy search on full names.

        Returns:
            Up to ``limit`` (record, similarity 0-100) pairs, best first.
        """
        query = normalize_name(f"{name} {surname or ''}")
        if not query or not self._full_names:
            return []
        scorer = fuzz.ratio if surname else fuzz.partial_ratio
        matches = process.extract(query, self._full_names, scorer=scorer, limit=limit)
        return [(self._records[index], float(score)) for _, score, index in matches]


def record_from_dict(data: Dict[str, object]) -> StudentRecord:
    """
    Build a record from one roster JSON object.

    Raises:
        KeyError: If a required key (id, name, surname, classroom) is missing.
    """
    no = data.get("no")
    national_id = data.get("national_id")
    return StudentRecord(
        id=normalize_student_id(data["id"]),
        name=str(data["name"]).strip(),
        surname=str(data["surname"]).strip(),
        classroom=str(data["classroom"]).strip(),
        no=None if no is None else str(no),
        national_id=None if not national_id else normalize_national_id(str(national_id)),
        prefix=data.get("prefix") or None,
    )


def load_roster(path: Union[str, Path]) -> InMemoryRoster:
    """
    Load a roster from a JSON array of student objects.

    Raises:
        FileNotFoundError: If the file does not exist.
        ValueError: If the file is not valid JSON, not a JSON array, or an
            entry lacks a required key.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Roster file not found: {path}")

    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)

    if not isinstance(data, list):
        raise ValueError(f"Roster file must contain a JSON array, got {type(data).__name__}")

    records = []
    for index, item in enumerate(data):
        if not isinstance(item, dict):
            raise ValueError(
                f"Roster entry {index} must be a JSON object, got {type(item).__name__}"
            )
        try:
            records.append(record_from_dict(item))
        except KeyError as e:
            raise ValueError(f"Roster entry {index} is missing key {e}") from e

    roster = InMemoryRoster(records)
    logger.info(f"Loaded {len(roster)} students from {path}")
    return roster
