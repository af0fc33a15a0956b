"""
Message Templates

Text of everything the bot says. Functions take domain records and
return ready-to-send strings.
"""

from datetime import datetime
from typing import List, Optional, Sequence

from clinic_bot.models.schemas import (
    Analytics,
    ConfirmedBooking,
    Doctor,
    DoctorStats,
    InboundEvent,
    PendingPayment,
    ResetCounts,
    VisitType,
)

VISIT_LABELS = {
    VisitType.NEW: "New consultation",
    VisitType.FOLLOWUP: "Follow-up",
}

ALL_BOOKINGS_LIMIT = 20


def money(amount: Optional[int], currency: str) -> str:
    return f"{amount or 0:,} {currency}"


def visit_label(visit_type: VisitType) -> str:
    return VISIT_LABELS[visit_type]


def _stamp(value: Optional[datetime]) -> str:
    return value.strftime("%Y-%m-%d %H:%M") if value else "-"


# ---------------------------------------------------------------------
# Patient flow
# ---------------------------------------------------------------------

NOT_ADMIN = "⛔ This command is only available to clinic administrators."
PONG = "🏓 pong"
NO_DOCTORS = "😔 No doctors are available right now. Please try again later."
DOCTOR_NOT_FOUND = (
    "❓ I couldn't find that doctor.\n"
    "Please reply with the doctor's number from the list, or part of the name."
)
NAME_TOO_SHORT = "✏️ Please send the patient's full name (at least 3 characters)."
ASK_PHONE = "📱 Thanks! Now send the patient's phone number."
INVALID_PHONE = (
    "⚠️ That doesn't look like a valid phone number.\n"
    "Please send 7 to 15 digits, for example 0991234567."
)
INVALID_VISIT_TYPE = "⚠️ Please reply 1 for a new consultation or 2 for a follow-up."
INVALID_CONFIRMATION = "⚠️ Please reply 1 to confirm, 2 to cancel or 3 to edit."
EDIT_OPTIONS = (
    "✏️ What would you like to change?\n\n"
    "• Send 'update info' to re-enter the patient's name and phone\n"
    "• Send 'doctors' to choose another doctor\n"
    "• Send 'back' to return to the booking summary"
)
BOOKING_CANCELLED = "❌ Booking cancelled. Send 'hi' whenever you want to book again."
NO_ACTIVE_BOOKING = (
    "⚠️ I couldn't find an active booking waiting for payment.\n"
    "Send 'hi' to start a new booking."
)
GENERIC_ERROR = "😔 I encountered an unexpected error. Please try again in a moment."


def doctor_list(doctors: Sequence[Doctor]) -> str:
    lines = [f"{index}. {doctor.name} ({doctor.specialty})" for index, doctor in enumerate(doctors, 1)]
    return "\n".join(lines)


def welcome(doctors: Sequence[Doctor], clinic_name: str, patient_name: Optional[str] = None) -> str:
    greeting = f"👋 Hello {patient_name}!" if patient_name else "👋 Hello!"
    return (
        f"{greeting}\n"
        f"Welcome to {clinic_name}.\n\n"
        f"👨‍⚕️ Please choose a doctor by sending their number:\n\n"
        f"{doctor_list(doctors)}"
    )


def booking_closed(cutoff_time: str, current_time: str) -> str:
    return (
        f"🕐 Bookings for today are closed.\n\n"
        f"Bookings close at {cutoff_time} and it is now {current_time}.\n"
        f"Please come back tomorrow."
    )


def ask_name(doctor_name: str) -> str:
    return f"👨‍⚕️ You chose {doctor_name}.\n\n✏️ Please send the patient's full name."


def ask_visit_type(new_price: int, followup_price: int, currency: str, patient_name: Optional[str] = None) -> str:
    intro = f"👤 Booking for {patient_name}.\n\n" if patient_name else ""
    return (
        f"{intro}"
        f"🩺 What kind of visit is this?\n\n"
        f"1. {VISIT_LABELS[VisitType.NEW]} - {money(new_price, currency)}\n"
        f"2. {VISIT_LABELS[VisitType.FOLLOWUP]} - {money(followup_price, currency)}"
    )


def confirmation_summary(
    doctor_name: str,
    specialty: str,
    patient_name: str,
    patient_phone: str,
    visit_type: VisitType,
    price: int,
    currency: str,
) -> str:
    return (
        f"📋 Please review your booking:\n\n"
        f"👨‍⚕️ Doctor: {doctor_name} ({specialty})\n"
        f"👤 Patient: {patient_name}\n"
        f"📱 Phone: {patient_phone}\n"
        f"🩺 Visit: {visit_label(visit_type)}\n"
        f"💰 Price: {money(price, currency)}\n\n"
        f"1. ✅ Confirm\n"
        f"2. ❌ Cancel\n"
        f"3. ✏️ Edit"
    )


def payment_instructions(booking: PendingPayment, instructions: str, currency: str) -> str:
    return (
        f"✅ Booking #{booking.id} created.\n\n"
        f"💰 Amount due: {money(booking.price, currency)}\n\n"
        f"{instructions}\n\n"
        f"📸 After paying, send a photo of the receipt here."
    )


def payment_reminder(booking_id: Optional[int]) -> str:
    return (
        f"📸 Booking #{booking_id} is waiting for payment.\n"
        f"Please send a photo of the payment receipt, or send 'cancel' to cancel the booking."
    )


def proof_received(booking: PendingPayment) -> str:
    return (
        f"✅ Receipt received for booking #{booking.id}.\n\n"
        f"Our team will review it shortly and you'll get a message once it's confirmed."
    )


def under_review(booking_id: Optional[int]) -> str:
    return f"⏳ The payment for booking #{booking_id} is under review. We'll message you once it's confirmed."


def _booking_details(booking: PendingPayment, currency: str) -> str:
    return (
        f"👨‍⚕️ Doctor: {booking.doctor_name} ({booking.doctor_specialty})\n"
        f"👤 Patient: {booking.patient_name}\n"
        f"📱 Phone: {booking.patient_phone}\n"
        f"🩺 Visit: {visit_label(booking.visit_type)}\n"
        f"💰 Price: {money(booking.price, currency)}"
    )


def active_booking_awaiting_payment(booking: PendingPayment, currency: str) -> str:
    return (
        f"📌 You already have booking #{booking.id} waiting for payment.\n\n"
        f"{_booking_details(booking, currency)}\n\n"
        f"📸 Send a photo of the payment receipt to complete it, or 'cancel' to drop it."
    )


def active_booking_submitted(booking: PendingPayment, currency: str) -> str:
    return (
        f"📌 Your booking #{booking.id} is under review.\n\n"
        f"{_booking_details(booking, currency)}\n\n"
        f"⏳ We'll message you as soon as the payment is confirmed."
    )


def existing_booking_confirmed(booking: ConfirmedBooking) -> str:
    return (
        f"✅ You already have a confirmed booking #{booking.id} with {booking.doctor_name}.\n"
        f"🎫 Your queue number is {booking.queue_position}."
    )


def confirmed_not_cancellable(booking_id: int, queue_position: int) -> str:
    return (
        f"✅ Booking #{booking_id} is already confirmed with queue number {queue_position}.\n"
        f"It can't be cancelled here. Please contact the clinic if you can't make it."
    )


def payment_confirmed(booking: ConfirmedBooking, clinic_name: str, currency: str) -> str:
    return (
        f"🎉 Your payment is confirmed!\n\n"
        f"🎫 Booking #{booking.id}\n"
        f"{_booking_details(booking, currency)}\n\n"
        f"🔢 Your queue number: {booking.queue_position}\n\n"
        f"See you at {clinic_name}."
    )


def payment_rejected(booking: PendingPayment) -> str:
    reason = booking.rejection_reason or "No reason given"
    return (
        f"❌ The payment for booking #{booking.id} was not accepted.\n\n"
        f"📝 Reason: {reason}\n\n"
        f"The booking has been removed. Send 'new booking' to book again."
    )


def update_info_prompt() -> str:
    return "✏️ Let's update your details. Please send the patient's full name."


# ---------------------------------------------------------------------
# Admin notifications
# ---------------------------------------------------------------------

def admin_proof_caption(booking: PendingPayment, currency: str) -> str:
    return (
        f"💳 New payment receipt\n\n"
        f"🎫 Booking #{booking.id}\n"
        f"{_booking_details(booking, currency)}\n\n"
        f"✅ !confirm_payment {booking.id}\n"
        f"❌ !reject_payment {booking.id} <reason>"
    )


def admin_proof_fallback(caption: str) -> str:
    return f"{caption}\n\n⚠️ The receipt image couldn't be loaded."


def admin_payment_confirmed(booking: ConfirmedBooking) -> str:
    return (
        f"✅ Booking #{booking.id} confirmed.\n"
        f"👤 {booking.patient_name} with {booking.doctor_name}, queue number {booking.queue_position}."
    )


def admin_payment_rejected(booking: PendingPayment) -> str:
    return (
        f"❌ Booking #{booking.id} rejected and removed.\n"
        f"📝 Reason: {booking.rejection_reason or 'No reason given'}"
    )


def booking_not_found(booking_id: int) -> str:
    return f"⚠️ Booking #{booking_id} was not found among pending payments."


def whoami(event: InboundEvent) -> str:
    role = "✅ You are an administrator." if event.is_admin else "❌ You are not an administrator."
    return (
        f"🔍 Permission check\n\n"
        f"👤 Name: {event.sender_name or '-'}\n"
        f"🆔 User id: {event.sender_id}\n"
        f"💬 Chat id: {event.chat_id}\n\n"
        f"{role}"
    )


def help_menu(is_admin: bool) -> str:
    patient = (
        "🤖 How to book\n\n"
        "• hi - start a booking\n"
        "• doctors - show the doctor list\n"
        "• new booking - start over\n"
        "• update info - change name and phone\n"
        "• cancel - cancel the current booking\n"
        "• ping - check the bot is alive"
    )
    if not is_admin:
        return patient
    return (
        f"{patient}\n\n"
        "👑 Admin commands\n\n"
        "• !doctors - list doctors with contacts\n"
        "• !add_doctor name | specialty | contact\n"
        "• !remove_doctor id or name\n"
        "• !pending - payments waiting for review\n"
        "• !confirm_payment id\n"
        "• !reject_payment id [reason]\n"
        "• !summary - send doctor summaries now\n"
        "• !analytics - totals and revenue\n"
        "• !doctor_patients [id]\n"
        "• !today - today's confirmed bookings\n"
        "• !all_bookings - latest confirmed bookings\n"
        "• !doctor_stats - per-doctor totals\n"
        "• !cutoff [enable | disable | HH:MM]\n"
        "• !cleanup - clear all bookings and sessions\n"
        "• !check - show your ids and admin status"
    )


ADD_DOCTOR_USAGE = "ℹ️ Usage: !add_doctor name | specialty | contact"
REMOVE_DOCTOR_USAGE = "ℹ️ Usage: !remove_doctor id or name"
CONFIRM_USAGE = "ℹ️ Usage: !confirm_payment id"
REJECT_USAGE = "ℹ️ Usage: !reject_payment id [reason]"
ADMIN_DOCTOR_NOT_FOUND = "⚠️ Doctor not found."
NO_PENDING_PAYMENTS = "✅ No payments are waiting for review."
NO_CONFIRMED_BOOKINGS = "📭 No confirmed bookings yet."
NO_BOOKINGS_TODAY = "📭 No confirmed bookings today."
INVALID_CUTOFF = "⚠️ Invalid time. Use HH or HH:MM, for example 18:00."


def doctor_added(doctor: Doctor) -> str:
    return f"✅ Added doctor #{doctor.id}: {doctor.name} ({doctor.specialty}), contact {doctor.contact}"


def doctor_removed(doctor: Doctor) -> str:
    return f"🗑️ Removed doctor #{doctor.id}: {doctor.name}"


def admin_doctor_list(doctors: Sequence[Doctor]) -> str:
    if not doctors:
        return "📭 No doctors registered. Add one with !add_doctor name | specialty | contact"
    lines = [
        f"#{doctor.id} {doctor.name} - {doctor.specialty}\n    📞 {doctor.contact}"
        for doctor in doctors
    ]
    return "👨‍⚕️ Doctors\n\n" + "\n".join(lines)


def pending_payments(payments: Sequence[PendingPayment], currency: str) -> str:
    if not payments:
        return NO_PENDING_PAYMENTS
    lines = [
        f"🎫 #{p.id} {p.patient_name} ({p.patient_phone})\n"
        f"    {p.doctor_name} - {visit_label(p.visit_type)} - {money(p.price, currency)}\n"
        f"    submitted {_stamp(p.updated_at)}"
        for p in payments
    ]
    return f"💳 Payments waiting for review ({len(payments)})\n\n" + "\n\n".join(lines)


def _booking_line(index: int, booking: ConfirmedBooking, currency: str) -> str:
    return (
        f"{index}. {booking.patient_name} ({booking.patient_phone})\n"
        f"    🎫 #{booking.id} - queue {booking.queue_position} - "
        f"{visit_label(booking.visit_type)} - {money(booking.price, currency)}"
    )


def doctor_patients(doctor_name: str, bookings: Sequence[ConfirmedBooking], currency: str) -> str:
    if not bookings:
        return f"📭 {doctor_name} has no confirmed patients."
    lines = [_booking_line(i, b, currency) for i, b in enumerate(bookings, 1)]
    return f"👨‍⚕️ {doctor_name} - {len(bookings)} patients\n\n" + "\n".join(lines)


def doctor_patients_pick(doctors: Sequence[Doctor]) -> str:
    if not doctors:
        return "📭 No doctors registered."
    lines = [f"#{doctor.id} {doctor.name}" for doctor in doctors]
    return "ℹ️ Usage: !doctor_patients id\n\n" + "\n".join(lines)


def today_bookings(bookings: Sequence[ConfirmedBooking], currency: str) -> str:
    if not bookings:
        return NO_BOOKINGS_TODAY
    lines = [
        f"{i}. {b.patient_name} with {b.doctor_name}, queue {b.queue_position} "
        f"({visit_label(b.visit_type)}, {money(b.price, currency)})"
        for i, b in enumerate(bookings, 1)
    ]
    return f"📅 Today's confirmed bookings ({len(bookings)})\n\n" + "\n".join(lines)


def all_bookings(bookings: Sequence[ConfirmedBooking], currency: str) -> str:
    """Latest confirmed bookings, newest first."""
    if not bookings:
        return NO_CONFIRMED_BOOKINGS
    latest = list(reversed(bookings[-ALL_BOOKINGS_LIMIT:]))
    lines = [
        f"🎫 #{b.id} {b.patient_name} with {b.doctor_name}, queue {b.queue_position}, "
        f"{money(b.price, currency)}, {_stamp(b.confirmed_at)}"
        for b in latest
    ]
    text = f"📚 Confirmed bookings ({len(bookings)})\n\n" + "\n".join(lines)
    if len(bookings) > ALL_BOOKINGS_LIMIT:
        text += f"\n\nShowing the latest {ALL_BOOKINGS_LIMIT} of {len(bookings)}."
    return text


def doctor_stats(stats: Sequence[DoctorStats], currency: str) -> str:
    if not stats:
        return NO_CONFIRMED_BOOKINGS
    lines = [
        f"👨‍⚕️ {s.doctor_name}: {s.total_bookings} bookings "
        f"({s.new_visits} new, {s.followup_visits} follow-up), {money(s.total_revenue, currency)}"
        for s in stats
    ]
    return "📊 Doctor statistics\n\n" + "\n".join(lines)


def analytics(data: Analytics, currency: str) -> str:
    return (
        f"📊 Clinic analytics\n\n"
        f"✅ Confirmed bookings: {data.total_bookings}\n"
        f"⏳ Pending payments: {data.pending_payments_count}\n"
        f"📅 Confirmed today: {data.today_bookings}\n\n"
        f"💰 Total revenue: {money(data.total_revenue, currency)}\n"
        f"💰 Revenue today: {money(data.today_revenue, currency)}\n\n"
        f"🆕 New consultations: {data.new_visits}\n"
        f"🔁 Follow-ups: {data.followup_visits}"
    )


def cutoff_status(cutoff_time: str, current_time: str, enabled: bool, allowed: bool) -> str:
    state = "✅ enabled" if enabled else "⏸️ disabled"
    open_now = "🟢 open" if allowed else "🔴 closed"
    return (
        f"🕐 Booking cutoff\n\n"
        f"Cutoff: {cutoff_time} ({state})\n"
        f"Current time: {current_time}\n"
        f"Bookings are {open_now}.\n\n"
        f"!cutoff HH:MM to change, !cutoff enable / disable to toggle."
    )


def cutoff_set(cutoff_time: str) -> str:
    return f"✅ Cutoff set to {cutoff_time}. Doctor summaries will be sent at that time."


CUTOFF_ENABLED = "✅ Booking cutoff enabled."
CUTOFF_DISABLED = "⏸️ Booking cutoff disabled. Bookings stay open all day and no automatic summary is sent."


def cleanup_done(counts: ResetCounts, sessions: int, now: datetime) -> str:
    return (
        f"🧹 All bookings cleared\n\n"
        f"📅 {now.strftime('%Y-%m-%d %H:%M')}\n\n"
        f"• {counts.cleared_confirmed} confirmed bookings\n"
        f"• {counts.cleared_pending} pending bookings\n"
        f"• {sessions} patient sessions\n\n"
        f"✅ Ready for new bookings."
    )


def daily_reset(counts: ResetCounts, now: datetime) -> str:
    return (
        f"🌙 Daily reset done ({now.strftime('%Y-%m-%d')})\n\n"
        f"• {counts.cleared_confirmed} confirmed bookings cleared\n"
        f"• {counts.cleared_pending} pending bookings cleared"
    )


# ---------------------------------------------------------------------
# Daily summary
# ---------------------------------------------------------------------

def doctor_summary(
    doctor: Doctor,
    bookings: Sequence[ConfirmedBooking],
    day: str,
    clinic_name: str,
    currency: str,
) -> str:
    new_visits = sum(1 for b in bookings if b.visit_type == VisitType.NEW)
    followups = sum(1 for b in bookings if b.visit_type == VisitType.FOLLOWUP)
    total = sum(b.price or 0 for b in bookings)
    if bookings:
        patients = "\n".join(
            f"{i}. {b.patient_name} ({b.patient_phone}) - queue {b.queue_position} - "
            f"{visit_label(b.visit_type)}"
            for i, b in enumerate(bookings, 1)
        )
    else:
        patients = "No patients booked today."
    return (
        f"📋 Daily summary for {day}\n"
        f"👨‍⚕️ {doctor.name} ({doctor.specialty})\n\n"
        f"👥 Patients: {len(bookings)}\n"
        f"🆕 New: {new_visits}\n"
        f"🔁 Follow-up: {followups}\n"
        f"💰 Revenue: {money(total, currency)}\n\n"
        f"{patients}\n\n"
        f"{clinic_name}"
    )


def summary_rollup(
    sent: List[str],
    failed: List[str],
    day: str,
    current_time: str,
    automatic: bool = True,
) -> str:
    title = "📤 Automatic doctor summaries" if automatic else "📤 Doctor summaries"
    sent_list = "\n".join(f"• {line}" for line in sent) or "• none"
    failed_list = "\n".join(f"• {line}" for line in failed) or "• none"
    return (
        f"{title} ({day} {current_time})\n\n"
        f"✅ Sent ({len(sent)}):\n{sent_list}\n\n"
        f"❌ Failed ({len(failed)}):\n{failed_list}"
    )


NO_DOCTORS_FOR_SUMMARY = "📭 No doctors registered, no summaries sent."
