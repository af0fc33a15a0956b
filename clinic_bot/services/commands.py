"""
Command Parsing

Maps the bilingual command aliases onto one semantic command each.
Commands start with "!" ("/" is accepted as well); a few patient
commands are plain words.
"""

from enum import Enum
from typing import Dict, Optional, Tuple

from pydantic import BaseModel

from clinic_bot.services.text import normalize_digits


class Command(str, Enum):
    WHOAMI = "whoami"
    CLEANUP = "cleanup"
    PING = "ping"
    HELP = "help"
    LIST_DOCTORS = "list_doctors"
    ADD_DOCTOR = "add_doctor"
    REMOVE_DOCTOR = "remove_doctor"
    PENDING_PAYMENTS = "pending_payments"
    CONFIRM_PAYMENT = "confirm_payment"
    REJECT_PAYMENT = "reject_payment"
    SEND_SUMMARY = "send_summary"
    SET_CUTOFF = "set_cutoff"
    ANALYTICS = "analytics"
    DOCTOR_PATIENTS = "doctor_patients"
    TODAY_BOOKINGS = "today_bookings"
    ALL_BOOKINGS = "all_bookings"
    DOCTOR_STATS = "doctor_stats"
    NEW_BOOKING = "new_booking"
    UPDATE_INFO = "update_info"
    SHOW_DOCTORS = "show_doctors"
    CANCEL = "cancel"


ADMIN_COMMANDS = frozenset({
    Command.CLEANUP,
    Command.LIST_DOCTORS,
    Command.ADD_DOCTOR,
    Command.REMOVE_DOCTOR,
    Command.PENDING_PAYMENTS,
    Command.CONFIRM_PAYMENT,
    Command.REJECT_PAYMENT,
    Command.SEND_SUMMARY,
    Command.SET_CUTOFF,
    Command.ANALYTICS,
    Command.DOCTOR_PATIENTS,
    Command.TODAY_BOOKINGS,
    Command.ALL_BOOKINGS,
    Command.DOCTOR_STATS,
})

# commands that take arguments after the alias
_WITH_ARGS = frozenset({
    Command.ADD_DOCTOR,
    Command.REMOVE_DOCTOR,
    Command.CONFIRM_PAYMENT,
    Command.REJECT_PAYMENT,
    Command.SET_CUTOFF,
    Command.DOCTOR_PATIENTS,
})

ALIASES: Dict[Command, Tuple[str, ...]] = {
    Command.WHOAMI: ("!check", "!whoami", "!تحقق"),
    Command.CLEANUP: ("!cleanup", "!تنظيف"),
    Command.PING: ("ping", "!ping"),
    Command.HELP: ("!help", "help", "!مساعدة", "مساعدة", "مساعده"),
    Command.LIST_DOCTORS: ("!doctors", "!الدكاترة"),
    Command.ADD_DOCTOR: ("!add_doctor", "!اضافة_دكتور", "!إضافة_دكتور"),
    Command.REMOVE_DOCTOR: ("!remove_doctor", "!حذف_دكتور"),
    Command.PENDING_PAYMENTS: ("!pending", "!payments", "!الدفعات"),
    Command.CONFIRM_PAYMENT: ("!confirm_payment", "!تأكيد_دفع", "!تاكيد_دفع"),
    Command.REJECT_PAYMENT: ("!reject_payment", "!رفض_دفع"),
    Command.SEND_SUMMARY: ("!summary", "!ملخص"),
    Command.SET_CUTOFF: ("!cutoff", "!وقت_الاغلاق", "!وقت_الإغلاق"),
    Command.ANALYTICS: ("!analytics", "!stats", "!احصائيات"),
    Command.DOCTOR_PATIENTS: ("!doctor_patients", "!مرضى_دكتور"),
    Command.TODAY_BOOKINGS: ("!today", "!today_bookings", "!حجوزات_اليوم"),
    Command.ALL_BOOKINGS: ("!all_bookings", "!كل_الحجوزات", "!الحجوزات"),
    Command.DOCTOR_STATS: ("!doctor_stats", "!احصائيات_الدكاترة"),
    Command.NEW_BOOKING: ("!new_booking", "!حجز_جديد", "new booking", "حجز جديد", "حجزجديد"),
    Command.UPDATE_INFO: (
        "!update_info", "!تحديث_بياناتي", "update info", "تحديث بياناتي", "تغيير بياناتي",
    ),
    Command.SHOW_DOCTORS: (
        "doctors", "list", "!list", "دكاترة", "قائمة", "!دكاترة", "!قائمة",
        "الدكاترة", "عرض الدكاترة",
    ),
    Command.CANCEL: ("cancel", "!cancel", "إلغاء", "الغاء"),
}

# longest alias first so "!today_bookings" is not read as "!today"
_ALIAS_TABLE = sorted(
    ((alias, command) for command, aliases in ALIASES.items() for alias in aliases),
    key=lambda item: len(item[0]),
    reverse=True,
)


class ParsedCommand(BaseModel):
    command: Command
    args: str = ""

    @property
    def admin_only(self) -> bool:
        return self.command in ADMIN_COMMANDS


def parse_command(text: str) -> Optional[ParsedCommand]:
    """
    Recognize a command in a message.

    Commands without arguments must match the whole message; commands
    with arguments match when the alias is followed by whitespace or ends
    the message.

    Returns:
        ParsedCommand, or None when the message is not a command
    """
    value = normalize_digits(text.strip())
    if value.startswith("/"):
        value = "!" + value[1:]
    lowered = value.lower()

    for alias, command in _ALIAS_TABLE:
        if lowered == alias:
            return ParsedCommand(command=command)
        if command in _WITH_ARGS and lowered.startswith(alias) and lowered[len(alias)].isspace():
            return ParsedCommand(command=command, args=value[len(alias):].strip())
    return None
