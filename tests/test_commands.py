"""
Tests for command recognition.
"""

import pytest

from clinic_bot.services.commands import ADMIN_COMMANDS, Command, parse_command


class TestParseCommand:
    @pytest.mark.parametrize("text,command", [
        ("!help", Command.HELP),
        ("help", Command.HELP),
        ("مساعدة", Command.HELP),
        ("!ping", Command.PING),
        ("/pending", Command.PENDING_PAYMENTS),
        ("!الدفعات", Command.PENDING_PAYMENTS),
        ("!doctors", Command.LIST_DOCTORS),
        ("doctors", Command.SHOW_DOCTORS),
        ("عرض الدكاترة", Command.SHOW_DOCTORS),
        ("new booking", Command.NEW_BOOKING),
        ("حجز جديد", Command.NEW_BOOKING),
        ("Cancel", Command.CANCEL),
        ("!today_bookings", Command.TODAY_BOOKINGS),
        ("!today", Command.TODAY_BOOKINGS),
        ("!whoami", Command.WHOAMI),
    ])
    def test_aliases(self, text, command):
        parsed = parse_command(text)
        assert parsed is not None
        assert parsed.command == command
        assert parsed.args == ""

    def test_arguments_keep_original_case(self):
        parsed = parse_command("!add_doctor Dr. Rami Saleh | Dermatology | 503")
        assert parsed.command == Command.ADD_DOCTOR
        assert parsed.args == "Dr. Rami Saleh | Dermatology | 503"

    def test_localized_digits_in_arguments(self):
        parsed = parse_command("!تأكيد_دفع ١٢")
        assert parsed.command == Command.CONFIRM_PAYMENT
        assert parsed.args == "12"

    def test_reject_with_reason(self):
        parsed = parse_command("/reject_payment 7 blurry receipt")
        assert parsed.command == Command.REJECT_PAYMENT
        assert parsed.args == "7 blurry receipt"

    def test_alias_prefix_of_longer_word_is_not_a_command(self):
        assert parse_command("!confirm_paymentx 3") is None
        assert parse_command("!cutoff18") is None

    def test_argumentless_command_with_trailing_text(self):
        assert parse_command("help me please") is None
        assert parse_command("!pending now") is None

    @pytest.mark.parametrize("text", ["hello", "Ali Hassan", "1", "", "!unknown"])
    def test_plain_text(self, text):
        assert parse_command(text) is None


class TestAdminCommands:
    def test_admin_only_flag(self):
        assert parse_command("!cleanup").admin_only
        assert parse_command("!summary").admin_only
        assert not parse_command("!help").admin_only
        assert not parse_command("cancel").admin_only

    def test_patient_commands_are_open(self):
        for command in (Command.HELP, Command.PING, Command.WHOAMI, Command.NEW_BOOKING,
                        Command.UPDATE_INFO, Command.SHOW_DOCTORS, Command.CANCEL):
            assert command not in ADMIN_COMMANDS
