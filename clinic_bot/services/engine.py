"""
Conversation Engine

Interprets one inbound event at a time against the sender's session and
returns the messages to send. Patients move through the booking flow:
doctor, name, phone, visit type, confirmation, payment proof. Admins
moderate payments and manage the clinic through "!" commands.

The engine never talks to the transport itself; the caller delivers the
returned OutboundMessage list.
"""

import logging
from typing import Awaitable, Callable, Dict, List, Optional

from clinic_bot import messages
from clinic_bot.config import Settings
from clinic_bot.models.schemas import (
    BookingStatus,
    Doctor,
    DoctorRef,
    InboundEvent,
    OutboundMessage,
    PendingPayment,
)
from clinic_bot.services.commands import Command, ParsedCommand, parse_command
from clinic_bot.services.ledger import (
    BookingLedger,
    BookingNotFoundError,
    DuplicateActiveBookingError,
)
from clinic_bot.services.scheduler import ClinicScheduler
from clinic_bot.services.sessions import (
    DETAIL_STEPS,
    AwaitingConfirmation,
    AwaitingName,
    AwaitingPaymentProof,
    AwaitingPhone,
    AwaitingVisitType,
    BookingConfirmed,
    ChoosingDoctor,
    Idle,
    PaymentSubmitted,
    Session,
    SessionStore,
)
from clinic_bot.services.text import (
    InputValidationError,
    contains_keyword,
    find_doctor,
    is_one_of,
    normalize_phone,
    parse_booking_id,
    parse_cutoff_time,
    parse_visit_type,
    validate_name,
)

logger = logging.getLogger(__name__)

Replies = List[OutboundMessage]

# commands that belong to the booking flow rather than the command table
_FLOW_COMMANDS = frozenset({
    Command.NEW_BOOKING,
    Command.UPDATE_INFO,
    Command.SHOW_DOCTORS,
    Command.CANCEL,
})

_BACK_WORDS = ("back", "رجوع")
_CUTOFF_STATUS_WORDS = ("", "status", "حالة")
_CUTOFF_ENABLE_WORDS = ("enable", "on", "تفعيل")
_CUTOFF_DISABLE_WORDS = ("disable", "off", "ايقاف", "إيقاف")


def doctor_ref(doctor: Doctor) -> DoctorRef:
    return DoctorRef(id=doctor.id, name=doctor.name, specialty=doctor.specialty)


def booking_doctor_ref(booking: PendingPayment) -> DoctorRef:
    return DoctorRef(id=booking.doctor_id, name=booking.doctor_name, specialty=booking.doctor_specialty)


class ConversationEngine:
    """
    State machine for patient conversations and admin commands.

    Args:
        ledger: Booking ledger
        sessions: Session store
        scheduler: Owner of the cutoff configuration and summary jobs
        settings: Clinic settings (vocabulary, prices, admins, payment text)
    """

    def __init__(
        self,
        ledger: BookingLedger,
        sessions: SessionStore,
        scheduler: ClinicScheduler,
        settings: Settings,
    ):
        self.ledger = ledger
        self.sessions = sessions
        self.scheduler = scheduler
        self.gate = scheduler.gate
        self.settings = settings

        self._commands: Dict[Command, Callable[[InboundEvent, ParsedCommand], Awaitable[Replies]]] = {
            Command.WHOAMI: self._cmd_whoami,
            Command.CLEANUP: self._cmd_cleanup,
            Command.PING: self._cmd_ping,
            Command.HELP: self._cmd_help,
            Command.LIST_DOCTORS: self._cmd_list_doctors,
            Command.ADD_DOCTOR: self._cmd_add_doctor,
            Command.REMOVE_DOCTOR: self._cmd_remove_doctor,
            Command.PENDING_PAYMENTS: self._cmd_pending_payments,
            Command.CONFIRM_PAYMENT: self._cmd_confirm_payment,
            Command.REJECT_PAYMENT: self._cmd_reject_payment,
            Command.SEND_SUMMARY: self._cmd_send_summary,
            Command.SET_CUTOFF: self._cmd_set_cutoff,
            Command.ANALYTICS: self._cmd_analytics,
            Command.DOCTOR_PATIENTS: self._cmd_doctor_patients,
            Command.TODAY_BOOKINGS: self._cmd_today_bookings,
            Command.ALL_BOOKINGS: self._cmd_all_bookings,
            Command.DOCTOR_STATS: self._cmd_doctor_stats,
        }

    @property
    def currency(self) -> str:
        return self.settings.currency

    @staticmethod
    def _reply(event: InboundEvent, *texts: str) -> Replies:
        return [OutboundMessage(chat_id=event.chat_id, text=text) for text in texts]

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------

    async def handle(self, event: InboundEvent) -> Replies:
        """
        Process one inbound event.

        Args:
            event: Message from a patient or admin

        Returns:
            Messages to deliver, possibly to other chats (admins, patients)
        """
        if event.attachment:
            return await self._handle_payment_proof(event)

        text = event.text.strip()
        if not text:
            return []

        parsed = parse_command(text)
        if parsed is not None and parsed.command not in _FLOW_COMMANDS:
            if parsed.admin_only and not event.is_admin:
                logger.warning(f"Non-admin {event.sender_id} tried {parsed.command.value}")
                return self._reply(event, messages.NOT_ADMIN)
            logger.info(f"Command {parsed.command.value} from {event.sender_id}")
            return await self._commands[parsed.command](event, parsed)

        if parsed is not None and parsed.command == Command.NEW_BOOKING:
            self.sessions.clear_notified(event.chat_id)
            return await self._start(event)

        if parsed is None and not event.is_admin:
            active = await self.ledger.active_booking(event.chat_id)
            if active is not None:
                return self._active_booking_notice(event, active)

        if parsed is not None and parsed.command == Command.UPDATE_INFO:
            return await self._update_info(event)

        session = self.sessions.get(event.chat_id)

        if parsed is None and (
            isinstance(session.step, Idle)
            or contains_keyword(text, self.settings.start_keywords)
        ):
            return await self._start(event)

        if parsed is not None and parsed.command == Command.SHOW_DOCTORS:
            return await self._start(event)

        if parsed is not None and parsed.command == Command.CANCEL:
            return await self._cancel(event, session)

        return await self._handle_step(event, session, text)

    # ------------------------------------------------------------------
    # Patient flow
    # ------------------------------------------------------------------

    async def _start(self, event: InboundEvent, ask_details: bool = False) -> Replies:
        """Gate check, then show the doctor list with known details prefilled."""
        chat_id = event.chat_id
        self.sessions.reset(chat_id)

        if not self.gate.is_booking_allowed():
            info = self.gate.info()
            logger.info(f"Booking attempt from chat {chat_id} after cutoff {info.cutoff_time}")
            return self._reply(event, messages.booking_closed(info.cutoff_time, info.current_time))

        doctors = await self.ledger.list_doctors()
        if not doctors:
            return self._reply(event, messages.NO_DOCTORS)

        known = None if ask_details else await self.ledger.patient_info(chat_id)
        self.sessions.advance(chat_id, ChoosingDoctor.begin(known, ask_details=ask_details))
        patient_name = known.name if known else None
        return self._reply(
            event, messages.welcome(doctors, self.settings.clinic_name, patient_name)
        )

    def _active_booking_notice(self, event: InboundEvent, active: PendingPayment) -> Replies:
        """Tell the patient about their active booking once, then stay quiet."""
        chat_id = event.chat_id
        if self.sessions.is_notified(chat_id):
            return []
        self.sessions.mark_notified(chat_id)

        if active.status == BookingStatus.AWAITING_PAYMENT:
            self.sessions.advance(
                chat_id,
                AwaitingPaymentProof(booking_id=active.id, doctor=booking_doctor_ref(active)),
            )
            text = messages.active_booking_awaiting_payment(active, self.currency)
        else:
            self.sessions.advance(
                chat_id,
                PaymentSubmitted(booking_id=active.id, doctor=booking_doctor_ref(active)),
            )
            text = messages.active_booking_submitted(active, self.currency)

        logger.info(f"Notified chat {chat_id} about active booking #{active.id}")
        return self._reply(event, text)

    async def _update_info(self, event: InboundEvent) -> Replies:
        session = self.sessions.get(event.chat_id)
        if isinstance(session.step, DETAIL_STEPS):
            self.sessions.advance(event.chat_id, AwaitingName(doctor=session.step.doctor))
            return self._reply(event, messages.update_info_prompt())
        return await self._start(event, ask_details=True)

    async def _cancel(self, event: InboundEvent, session: Session) -> Replies:
        chat_id = event.chat_id
        step = session.step

        if isinstance(step, PaymentSubmitted):
            return self._reply(event, messages.under_review(step.booking_id))
        if isinstance(step, BookingConfirmed):
            return self._reply(
                event, messages.confirmed_not_cancellable(step.booking_id, step.queue_position)
            )

        booking_id = None
        if isinstance(step, AwaitingPaymentProof):
            booking_id = step.booking_id
        elif isinstance(step, Idle):
            # session evicted or lost on restart; the ledger still knows the booking
            active = await self.ledger.active_booking(chat_id)
            if active is not None and active.status == BookingStatus.PAYMENT_SUBMITTED:
                self.sessions.advance(
                    chat_id, PaymentSubmitted(booking_id=active.id, doctor=booking_doctor_ref(active))
                )
                return self._reply(event, messages.under_review(active.id))
            if active is not None:
                booking_id = active.id

        if booking_id is not None:
            withdrawn = await self.ledger.withdraw(booking_id)
            if withdrawn is not None:
                self.sessions.clear_notified(chat_id)

        self.sessions.reset(chat_id)
        return self._reply(event, messages.BOOKING_CANCELLED)

    async def _handle_step(self, event: InboundEvent, session: Session, text: str) -> Replies:
        step = session.step
        if isinstance(step, ChoosingDoctor):
            return await self._on_doctor_choice(event, step, text)
        if isinstance(step, AwaitingName):
            return self._on_name(event, step, text)
        if isinstance(step, AwaitingPhone):
            return self._on_phone(event, step, text)
        if isinstance(step, AwaitingVisitType):
            return self._on_visit_type(event, step, text)
        if isinstance(step, AwaitingConfirmation):
            return await self._on_confirmation(event, step, text)
        if isinstance(step, AwaitingPaymentProof):
            return self._reply(event, messages.payment_reminder(step.booking_id))
        if isinstance(step, PaymentSubmitted):
            return self._reply(event, messages.under_review(step.booking_id))
        # BookingConfirmed: next contact starts a new booking
        return await self._start(event)

    async def _on_doctor_choice(self, event: InboundEvent, step: ChoosingDoctor, text: str) -> Replies:
        chat_id = event.chat_id
        doctors = await self.ledger.list_doctors()
        if not doctors:
            return self._reply(event, messages.NO_DOCTORS)

        doctor = find_doctor(text, doctors)
        if doctor is None:
            return self._reply(
                event, f"{messages.DOCTOR_NOT_FOUND}\n\n{messages.doctor_list(doctors)}"
            )

        existing = await self.ledger.booking_with_doctor(chat_id, doctor.id)
        if existing is not None:
            if existing.status == BookingStatus.AWAITING_PAYMENT:
                self.sessions.advance(
                    chat_id, AwaitingPaymentProof(booking_id=existing.id, doctor=doctor_ref(doctor))
                )
                return self._reply(
                    event, messages.active_booking_awaiting_payment(existing, self.currency)
                )
            if existing.status == BookingStatus.PAYMENT_SUBMITTED:
                return self._reply(event, messages.active_booking_submitted(existing, self.currency))
            return self._reply(event, messages.existing_booking_confirmed(existing))

        next_step = step.pick(doctor_ref(doctor))
        self.sessions.advance(chat_id, next_step)
        if isinstance(next_step, AwaitingName):
            return self._reply(event, messages.ask_name(doctor.name))
        return self._reply(event, self._visit_type_prompt(next_step.patient_name))

    def _visit_type_prompt(self, patient_name: Optional[str] = None) -> str:
        return messages.ask_visit_type(
            self.ledger.prices.new_consultation,
            self.ledger.prices.followup,
            self.currency,
            patient_name,
        )

    def _on_name(self, event: InboundEvent, step: AwaitingName, text: str) -> Replies:
        try:
            name = validate_name(text)
        except InputValidationError:
            return self._reply(event, messages.NAME_TOO_SHORT)
        self.sessions.advance(event.chat_id, step.with_name(name))
        return self._reply(event, messages.ASK_PHONE)

    def _on_phone(self, event: InboundEvent, step: AwaitingPhone, text: str) -> Replies:
        try:
            phone = normalize_phone(text)
        except InputValidationError:
            return self._reply(event, messages.INVALID_PHONE)
        self.sessions.advance(event.chat_id, step.with_phone(phone))
        return self._reply(event, self._visit_type_prompt())

    def _on_visit_type(self, event: InboundEvent, step: AwaitingVisitType, text: str) -> Replies:
        try:
            visit_type = parse_visit_type(
                text,
                self.settings.new_visit_keywords,
                self.settings.followup_visit_keywords,
            )
        except InputValidationError:
            return self._reply(event, messages.INVALID_VISIT_TYPE)
        next_step = step.with_visit_type(visit_type)
        self.sessions.advance(event.chat_id, next_step)
        return self._reply(event, self._summary(next_step))

    def _summary(self, step: AwaitingConfirmation) -> str:
        return messages.confirmation_summary(
            step.doctor.name,
            step.doctor.specialty,
            step.patient_name,
            step.patient_phone,
            step.visit_type,
            self.ledger.prices.price_for(step.visit_type),
            self.currency,
        )

    async def _on_confirmation(self, event: InboundEvent, step: AwaitingConfirmation, text: str) -> Replies:
        chat_id = event.chat_id

        if is_one_of(text, self.settings.confirm_yes_keywords):
            try:
                booking = await self.ledger.create_pending(step.to_draft(chat_id))
            except DuplicateActiveBookingError as e:
                existing = e.existing
                if existing.status == BookingStatus.AWAITING_PAYMENT:
                    self.sessions.advance(
                        chat_id, AwaitingPaymentProof(booking_id=existing.id, doctor=step.doctor)
                    )
                    return self._reply(
                        event, messages.active_booking_awaiting_payment(existing, self.currency)
                    )
                self.sessions.advance(
                    chat_id, PaymentSubmitted(booking_id=existing.id, doctor=step.doctor)
                )
                return self._reply(event, messages.active_booking_submitted(existing, self.currency))

            self.sessions.advance(chat_id, step.booked(booking.id))
            logger.info(f"Payment requested for booking #{booking.id}")
            return self._reply(
                event,
                messages.payment_instructions(booking, self.settings.payment_instructions, self.currency),
                *self.settings.payment_copy_values,
            )

        if is_one_of(text, self.settings.confirm_no_keywords):
            self.sessions.reset(chat_id)
            return self._reply(event, messages.BOOKING_CANCELLED)

        if is_one_of(text, self.settings.confirm_edit_keywords):
            return self._reply(event, messages.EDIT_OPTIONS)

        if is_one_of(text, _BACK_WORDS):
            return self._reply(event, self._summary(step))

        return self._reply(event, messages.INVALID_CONFIRMATION)

    async def _handle_payment_proof(self, event: InboundEvent) -> Replies:
        chat_id = event.chat_id
        session = self.sessions.get(chat_id)
        step = session.step

        if isinstance(step, (AwaitingPaymentProof, PaymentSubmitted)):
            booking_id = step.booking_id
        else:
            active = await self.ledger.active_booking(chat_id)
            if active is None or active.status != BookingStatus.AWAITING_PAYMENT:
                logger.info(f"Image from chat {chat_id} with no booking awaiting payment")
                return self._reply(event, messages.NO_ACTIVE_BOOKING)
            booking_id = active.id

        try:
            booking = await self.ledger.attach_proof(booking_id, event.attachment)
        except BookingNotFoundError:
            logger.warning(f"Payment proof for missing booking #{booking_id} from chat {chat_id}")
            self.sessions.reset(chat_id)
            return self._reply(event, messages.NO_ACTIVE_BOOKING)

        self.sessions.advance(
            chat_id, PaymentSubmitted(booking_id=booking.id, doctor=booking_doctor_ref(booking))
        )
        self.sessions.clear_notified(chat_id)

        caption = messages.admin_proof_caption(booking, self.currency)
        replies = self._reply(event, messages.proof_received(booking))
        replies.extend(
            OutboundMessage(chat_id=admin_id, text=caption, photo=event.attachment)
            for admin_id in self.settings.admin_ids
        )
        return replies

    # ------------------------------------------------------------------
    # General commands
    # ------------------------------------------------------------------

    async def _cmd_whoami(self, event: InboundEvent, parsed: ParsedCommand) -> Replies:
        return self._reply(event, messages.whoami(event))

    async def _cmd_ping(self, event: InboundEvent, parsed: ParsedCommand) -> Replies:
        return self._reply(event, messages.PONG)

    async def _cmd_help(self, event: InboundEvent, parsed: ParsedCommand) -> Replies:
        return self._reply(event, messages.help_menu(event.is_admin))

    # ------------------------------------------------------------------
    # Admin commands
    # ------------------------------------------------------------------

    async def _cmd_cleanup(self, event: InboundEvent, parsed: ParsedCommand) -> Replies:
        counts, sessions = await self.scheduler.manual_cleanup()
        logger.info(f"Admin {event.sender_id} triggered manual cleanup")
        return self._reply(event, messages.cleanup_done(counts, sessions, self.gate.local_now()))

    async def _cmd_list_doctors(self, event: InboundEvent, parsed: ParsedCommand) -> Replies:
        return self._reply(event, messages.admin_doctor_list(await self.ledger.list_doctors()))

    async def _cmd_add_doctor(self, event: InboundEvent, parsed: ParsedCommand) -> Replies:
        parts = [part.strip() for part in parsed.args.split("|")]
        if len(parts) != 3 or not all(parts):
            return self._reply(event, messages.ADD_DOCTOR_USAGE)
        doctor = await self.ledger.add_doctor(*parts)
        return self._reply(event, messages.doctor_added(doctor))

    async def _cmd_remove_doctor(self, event: InboundEvent, parsed: ParsedCommand) -> Replies:
        if not parsed.args:
            return self._reply(event, messages.REMOVE_DOCTOR_USAGE)
        doctor = await self.ledger.remove_doctor(parsed.args)
        if doctor is None:
            return self._reply(event, messages.ADMIN_DOCTOR_NOT_FOUND)
        return self._reply(event, messages.doctor_removed(doctor))

    async def _cmd_pending_payments(self, event: InboundEvent, parsed: ParsedCommand) -> Replies:
        payments = await self.ledger.submitted_payments()
        return self._reply(event, messages.pending_payments(payments, self.currency))

    async def _cmd_confirm_payment(self, event: InboundEvent, parsed: ParsedCommand) -> Replies:
        try:
            booking_id = parse_booking_id(parsed.args)
        except InputValidationError:
            return self._reply(event, messages.CONFIRM_USAGE)

        try:
            booking = await self.ledger.confirm(booking_id)
        except BookingNotFoundError:
            return self._reply(event, messages.booking_not_found(booking_id))

        patient_chat = booking.chat_id
        self.sessions.clear_notified(patient_chat)
        if self.sessions.peek(patient_chat) is not None:
            self.sessions.advance(
                patient_chat,
                BookingConfirmed(booking_id=booking.id, queue_position=booking.queue_position),
            )

        logger.info(f"Admin {event.sender_id} confirmed payment for booking #{booking_id}")
        return [
            OutboundMessage(
                chat_id=patient_chat,
                text=messages.payment_confirmed(booking, self.settings.clinic_name, self.currency),
            ),
            *self._reply(event, messages.admin_payment_confirmed(booking)),
        ]

    async def _cmd_reject_payment(self, event: InboundEvent, parsed: ParsedCommand) -> Replies:
        head, _, reason = parsed.args.partition(" ")
        try:
            booking_id = parse_booking_id(head)
        except InputValidationError:
            return self._reply(event, messages.REJECT_USAGE)

        try:
            booking = await self.ledger.reject(booking_id, reason.strip())
        except BookingNotFoundError:
            return self._reply(event, messages.booking_not_found(booking_id))

        patient_chat = booking.chat_id
        self.sessions.clear_notified(patient_chat)
        if self.sessions.peek(patient_chat) is not None:
            self.sessions.advance(
                patient_chat,
                AwaitingPaymentProof(booking_id=booking.id, doctor=booking_doctor_ref(booking)),
            )

        logger.info(f"Admin {event.sender_id} rejected payment for booking #{booking_id}")
        return [
            OutboundMessage(chat_id=patient_chat, text=messages.payment_rejected(booking)),
            *self._reply(event, messages.admin_payment_rejected(booking)),
        ]

    async def _cmd_send_summary(self, event: InboundEvent, parsed: ParsedCommand) -> Replies:
        report = await self.scheduler.send_summaries()
        if not report.sent and not report.failed:
            return self._reply(event, messages.NO_DOCTORS_FOR_SUMMARY)
        return self._reply(
            event,
            messages.summary_rollup(
                report.sent,
                report.failed,
                day=str(report.day),
                current_time=self.gate.local_now().strftime("%H:%M"),
                automatic=False,
            ),
        )

    async def _cmd_set_cutoff(self, event: InboundEvent, parsed: ParsedCommand) -> Replies:
        arg = parsed.args.strip().lower()

        if arg in _CUTOFF_STATUS_WORDS:
            info = self.gate.info()
            return self._reply(
                event,
                messages.cutoff_status(info.cutoff_time, info.current_time, info.enabled, info.allowed),
            )
        if arg in _CUTOFF_ENABLE_WORDS:
            self.scheduler.set_enabled(True)
            return self._reply(event, messages.CUTOFF_ENABLED)
        if arg in _CUTOFF_DISABLE_WORDS:
            self.scheduler.set_enabled(False)
            return self._reply(event, messages.CUTOFF_DISABLED)

        try:
            hour, minute = parse_cutoff_time(arg)
        except InputValidationError:
            return self._reply(event, messages.INVALID_CUTOFF)
        config = self.scheduler.set_cutoff(hour, minute)
        return self._reply(event, messages.cutoff_set(config.cutoff_label))

    async def _cmd_analytics(self, event: InboundEvent, parsed: ParsedCommand) -> Replies:
        return self._reply(event, messages.analytics(await self.ledger.analytics(), self.currency))

    async def _cmd_doctor_patients(self, event: InboundEvent, parsed: ParsedCommand) -> Replies:
        doctors = await self.ledger.list_doctors()
        if not parsed.args:
            return self._reply(event, messages.doctor_patients_pick(doctors))

        if parsed.args.isdigit():
            doctor = next((d for d in doctors if d.id == int(parsed.args)), None)
        else:
            doctor = find_doctor(parsed.args, doctors)
        if doctor is None:
            return self._reply(event, messages.ADMIN_DOCTOR_NOT_FOUND)

        bookings = await self.ledger.confirmed_for_doctor(doctor.id)
        return self._reply(event, messages.doctor_patients(doctor.name, bookings, self.currency))

    async def _cmd_today_bookings(self, event: InboundEvent, parsed: ParsedCommand) -> Replies:
        bookings = await self.ledger.confirmed_today()
        return self._reply(event, messages.today_bookings(bookings, self.currency))

    async def _cmd_all_bookings(self, event: InboundEvent, parsed: ParsedCommand) -> Replies:
        bookings = await self.ledger.all_confirmed()
        return self._reply(event, messages.all_bookings(bookings, self.currency))

    async def _cmd_doctor_stats(self, event: InboundEvent, parsed: ParsedCommand) -> Replies:
        data = await self.ledger.analytics()
        return self._reply(event, messages.doctor_stats(data.doctor_stats, self.currency))
