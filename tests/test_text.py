"""
Tests for input normalization and validation.
"""

from datetime import datetime, timezone

import pytest

from clinic_bot.models.schemas import Doctor, VisitType
from clinic_bot.services.text import (
    InputValidationError,
    contains_keyword,
    find_doctor,
    is_one_of,
    normalize_digits,
    normalize_phone,
    parse_booking_id,
    parse_cutoff_time,
    parse_visit_type,
    validate_name,
)

NEW_WORDS = ("new", "1", "جديد", "كشف")
FOLLOWUP_WORDS = ("followup", "follow-up", "2", "مراجعة")


def make_doctor(doctor_id: int, name: str) -> Doctor:
    return Doctor(
        id=doctor_id,
        name=name,
        specialty="General",
        contact=str(500 + doctor_id),
        created_at=datetime(2025, 1, 1, tzinfo=timezone.utc),
    )


@pytest.fixture
def directory():
    return [
        make_doctor(1, "Dr. Ahmad Khalil"),
        make_doctor(2, "Dr. Sara Haddad"),
        make_doctor(3, "د. محمد علي"),
    ]


class TestDigitsAndKeywords:
    def test_eastern_arabic_and_persian_digits(self):
        assert normalize_digits("٠٩٩١٢٣") == "099123"
        assert normalize_digits("۰۹۹۱۲۳") == "099123"
        assert normalize_digits("abc 12") == "abc 12"

    def test_is_one_of_matches_whole_input_only(self):
        assert is_one_of("  YES ", ("yes", "نعم"))
        assert is_one_of("نعم", ("yes", "نعم"))
        assert not is_one_of("yes please", ("yes",))

    def test_contains_keyword_respects_word_boundaries(self):
        assert contains_keyword("hi there", ("hi",))
        assert contains_keyword("Hello!", ("hello",))
        assert not contains_keyword("this is it", ("hi",))
        assert contains_keyword("مرحبا دكتور", ("مرحبا",))


class TestNameAndPhone:
    def test_name_whitespace_collapsed(self):
        assert validate_name("  Ali   Hassan ") == "Ali Hassan"

    def test_short_name_rejected(self):
        with pytest.raises(InputValidationError):
            validate_name(" Al ")

    @pytest.mark.parametrize("raw,expected", [
        ("0991234567", "0991234567"),
        ("+963 991-234-567", "963991234567"),
        ("(099) 123.4567", "0991234567"),
        ("٠٩٩١٢٣٤٥٦٧", "0991234567"),
        ("1234567", "1234567"),
    ])
    def test_phone_normalized(self, raw, expected):
        assert normalize_phone(raw) == expected

    @pytest.mark.parametrize("raw", ["123456", "1234567890123456", "09912abc67", ""])
    def test_phone_rejected(self, raw):
        with pytest.raises(InputValidationError):
            normalize_phone(raw)


class TestVisitType:
    def test_vocabulary(self):
        assert parse_visit_type("New", NEW_WORDS, FOLLOWUP_WORDS) == VisitType.NEW
        assert parse_visit_type("٢", NEW_WORDS, FOLLOWUP_WORDS) == VisitType.FOLLOWUP
        assert parse_visit_type("مراجعة", NEW_WORDS, FOLLOWUP_WORDS) == VisitType.FOLLOWUP

    def test_unknown_word(self):
        with pytest.raises(InputValidationError):
            parse_visit_type("maybe", NEW_WORDS, FOLLOWUP_WORDS)


class TestFindDoctor:
    def test_by_position(self, directory):
        assert find_doctor("2", directory).id == 2
        assert find_doctor("٣", directory).id == 3

    def test_out_of_range_position(self, directory):
        assert find_doctor("7", directory) is None
        assert find_doctor("0", directory) is None

    def test_name_contains_input(self, directory):
        assert find_doctor("sara", directory).id == 2
        assert find_doctor("KHALIL", directory).id == 1

    def test_input_contains_bare_name(self, directory):
        assert find_doctor("I want ahmad khalil please", directory).id == 1
        assert find_doctor("الدكتور محمد علي", directory).id == 3

    def test_no_match(self, directory):
        assert find_doctor("nobody", directory) is None
        assert find_doctor("   ", directory) is None


class TestCutoffAndIds:
    @pytest.mark.parametrize("raw,expected", [
        ("18", (18, 0)),
        ("18:30", (18, 30)),
        ("1830", (18, 30)),
        ("7:05", (7, 5)),
        ("١٧:٤٥", (17, 45)),
    ])
    def test_cutoff_time(self, raw, expected):
        assert parse_cutoff_time(raw) == expected

    @pytest.mark.parametrize("raw", ["24", "18:60", "noon", "18:3", ""])
    def test_invalid_cutoff_time(self, raw):
        with pytest.raises(InputValidationError):
            parse_cutoff_time(raw)

    def test_booking_id(self):
        assert parse_booking_id("#12") == 12
        assert parse_booking_id(" ١٥ ") == 15
        with pytest.raises(InputValidationError):
            parse_booking_id("twelve")
