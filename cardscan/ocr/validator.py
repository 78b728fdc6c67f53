"""Format and checksum validation for Thai student and national ID numbers.

The 13-digit Thai national identification number ends with a check digit:

    sum = d1*13 + d2*12 + ... + d12*2
    check = (11 - sum mod 11) mod 10
"""

import re
import unicodedata

_STUDENT_ID = re.compile(r"^\d{4}$", re.ASCII)
_NATIONAL_ID = re.compile(r"^\d{13}$", re.ASCII)
_CLASSROOM = re.compile(r"^\d{1,2}/\d{1,2}$", re.ASCII)


def normalize_digits(text: str) -> str:
    """Replace non-ASCII decimal digits (Thai, fullwidth, Arabic-Indic) with ASCII digits."""
    return "".join(
        str(unicodedata.decimal(ch)) if ch.isdecimal() and not ch.isascii() else ch
        for ch in text
    )


def normalize_national_id(value: str) -> str:
    """Digits to ASCII and separators (spaces, dashes) removed."""
    return re.sub(r"[\s-]", "", normalize_digits(value))


def calculate_national_id_check_digit(first_twelve: str) -> int:
    """Calculate the check digit of a Thai national ID.

    Args:
        first_twelve: The first 12 digits.

    Returns:
        Check digit (0-9)

    Raises:
        ValueError: If input is not exactly 12 digits

    Example:
        >>> calculate_national_id_check_digit("110370207181")
        1
    """
    if len(first_twelve) != 12:
        raise ValueError(f"Expected 12 digits, got {len(first_twelve)}")
    if not first_twelve.isdigit() or not first_twelve.isascii():
        raise ValueError(f"Invalid character in national ID prefix: {first_twelve!r}")

    total = sum(int(d) * (13 - i) for i, d in enumerate(first_twelve))
    return (11 - total % 11) % 10


def validate_national_id_format(national_id: str) -> bool:
    """Exactly 13 ASCII digits."""
    return bool(_NATIONAL_ID.match(national_id))


def validate_national_id_checksum(national_id: str) -> bool:
    """Format check plus check digit verification."""
    if not validate_national_id_format(national_id):
        return False
    return calculate_national_id_check_digit(national_id[:12]) == int(national_id[12])


def is_valid_national_id(value: str) -> bool:
    """Validate a national ID that may contain separators or non-ASCII digits."""
    return validate_national_id_checksum(normalize_national_id(value))


def is_valid_student_id(student_id: str) -> bool:
    """Student IDs are exactly 4 digits."""
    return bool(_STUDENT_ID.match(normalize_digits(student_id)))


def is_valid_classroom(classroom: str) -> bool:
    """Classroom in ``grade/room`` form, e.g. ``5/3``."""
    return bool(_CLASSROOM.match(normalize_digits(classroom).replace(" ", "")))
