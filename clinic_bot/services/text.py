"""
Input Parsing

Normalization and validation of the free text patients and admins type:
localized digits, phone numbers, names, vocabulary words, doctor
selectors and cutoff times.
"""

import re
from typing import Iterable, Optional, Sequence, Tuple

from clinic_bot.models.schemas import Doctor, VisitType

# Eastern-Arabic and Persian digits
_DIGITS = str.maketrans("٠١٢٣٤٥٦٧٨٩۰۱۲۳۴۵۶۷۸۹", "01234567890123456789")

_PHONE_SEPARATORS = re.compile(r"[\s\-\(\)\.]")
_PHONE = re.compile(r"^\d{7,15}$")
_CUTOFF_TIME = re.compile(r"^(\d{1,2}):?(\d{2})?$")
_DOCTOR_TITLES = ("دكتور", "د.", "dr.", "dr ")

MIN_NAME_LENGTH = 3


class InputValidationError(ValueError):
    """Raised when user input cannot be accepted; the caller re-prompts."""
    pass


def normalize_digits(text: str) -> str:
    return text.translate(_DIGITS)


def normalize_input(text: str) -> str:
    """Trimmed, lower-cased, Western-digit form used for vocabulary checks."""
    return normalize_digits(text.strip()).lower()


def is_one_of(text: str, vocabulary: Iterable[str]) -> bool:
    """Exact match of the whole input against a vocabulary."""
    value = normalize_input(text)
    return any(value == normalize_input(word) for word in vocabulary)


def contains_keyword(text: str, keywords: Iterable[str]) -> bool:
    """
    Whole-word keyword search.

    "hi" matches "hi there" and "/start" matches "start", but "hi" does
    not match "this".
    """
    value = normalize_input(text)
    for keyword in keywords:
        keyword = normalize_input(keyword)
        if keyword and re.search(rf"(?<!\w){re.escape(keyword)}(?!\w)", value):
            return True
    return False


def validate_name(text: str) -> str:
    name = " ".join(text.split())
    if len(name) < MIN_NAME_LENGTH:
        raise InputValidationError(f"Name must be at least {MIN_NAME_LENGTH} characters")
    return name


def normalize_phone(text: str) -> str:
    """
    Normalize a phone number to bare digits.

    Spaces, dashes, parentheses, dots and a leading "+" are removed and
    localized digits converted.

    Raises:
        InputValidationError: The result is not 7 to 15 digits
    """
    phone = _PHONE_SEPARATORS.sub("", normalize_digits(text.strip()))
    if phone.startswith("+"):
        phone = phone[1:]
    if not _PHONE.match(phone):
        raise InputValidationError(f"Invalid phone number: {text!r}")
    return phone


def parse_visit_type(
    text: str,
    new_keywords: Sequence[str],
    followup_keywords: Sequence[str],
) -> VisitType:
    if is_one_of(text, new_keywords):
        return VisitType.NEW
    if is_one_of(text, followup_keywords):
        return VisitType.FOLLOWUP
    raise InputValidationError(f"Unknown visit type: {text!r}")


def _strip_title(name: str) -> str:
    for title in _DOCTOR_TITLES:
        name = name.replace(title, "")
    return name.strip()


def find_doctor(selector: str, doctors: Sequence[Doctor]) -> Optional[Doctor]:
    """
    Resolve a doctor selector against the current doctor list.

    A number is a 1-based position in the list. Anything else is matched
    case-insensitively: the doctor's name contains the input, or the input
    contains the doctor's name without its title.
    """
    value = normalize_input(selector)
    if not value:
        return None

    if value.isdigit():
        index = int(value) - 1
        if 0 <= index < len(doctors):
            return doctors[index]

    for doctor in doctors:
        name = doctor.name.lower()
        bare = _strip_title(name)
        if value in name or (bare and bare in value):
            return doctor
    return None


def parse_cutoff_time(text: str) -> Tuple[int, int]:
    """
    Parse "18", "18:30" or "1830" into (hour, minute).

    Raises:
        InputValidationError: Not a valid time of day
    """
    match = _CUTOFF_TIME.match(normalize_digits(text.strip()))
    if not match:
        raise InputValidationError(f"Invalid time: {text!r}")
    hour = int(match.group(1))
    minute = int(match.group(2) or 0)
    if hour > 23 or minute > 59:
        raise InputValidationError(f"Invalid time: {text!r}")
    return hour, minute


def parse_booking_id(text: str) -> int:
    value = normalize_digits(text.strip()).lstrip("#")
    if not value.isdigit():
        raise InputValidationError(f"Invalid booking id: {text!r}")
    return int(value)
