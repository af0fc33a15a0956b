"""
Session Store

In-memory conversation state, one session per chat. Each state is its
own frozen pydantic model carrying only the fields valid in that state;
the conversation advances by calling the builder methods on the current
state, which return the next one.

Sessions are not persisted. Idle sessions are evicted by a periodic sweep.
"""

import asyncio
import logging
from datetime import datetime, timedelta
from enum import Enum
from typing import Annotated, Dict, Literal, Optional, Set, Union

from pydantic import BaseModel, ConfigDict, Field

from clinic_bot.models.schemas import BookingDraft, DoctorRef, PatientInfo, VisitType
from clinic_bot.services.clock import Clock, utc_clock

logger = logging.getLogger(__name__)


class ConversationState(str, Enum):
    IDLE = "IDLE"
    AWAITING_DOCTOR_CHOICE = "AWAITING_DOCTOR_CHOICE"
    AWAITING_PATIENT_NAME = "AWAITING_PATIENT_NAME"
    AWAITING_PATIENT_PHONE = "AWAITING_PATIENT_PHONE"
    AWAITING_VISIT_TYPE = "AWAITING_VISIT_TYPE"
    AWAITING_CONFIRMATION = "AWAITING_CONFIRMATION"
    AWAITING_PAYMENT_PROOF = "AWAITING_PAYMENT_PROOF"
    PAYMENT_SUBMITTED = "PAYMENT_SUBMITTED"
    BOOKING_CONFIRMED = "BOOKING_CONFIRMED"


class _Step(BaseModel):
    model_config = ConfigDict(frozen=True)


class Idle(_Step):
    state: Literal[ConversationState.IDLE] = ConversationState.IDLE


class ChoosingDoctor(_Step):
    state: Literal[ConversationState.AWAITING_DOCTOR_CHOICE] = ConversationState.AWAITING_DOCTOR_CHOICE
    known_name: Optional[str] = None
    known_phone: Optional[str] = None
    # set by update-my-info: details are asked again even if known
    ask_details: bool = False

    @classmethod
    def begin(cls, known: Optional[PatientInfo] = None, ask_details: bool = False) -> "ChoosingDoctor":
        if known is None or ask_details:
            return cls(ask_details=ask_details)
        return cls(known_name=known.name, known_phone=known.phone)

    @property
    def has_known_identity(self) -> bool:
        return bool(self.known_name and self.known_phone) and not self.ask_details

    def pick(self, doctor: DoctorRef) -> Union["AwaitingName", "AwaitingVisitType"]:
        """Select a doctor; skip the detail questions when the patient is known."""
        if self.has_known_identity:
            return AwaitingVisitType(
                doctor=doctor,
                patient_name=self.known_name,
                patient_phone=self.known_phone,
            )
        return AwaitingName(doctor=doctor)


class AwaitingName(_Step):
    state: Literal[ConversationState.AWAITING_PATIENT_NAME] = ConversationState.AWAITING_PATIENT_NAME
    doctor: DoctorRef

    def with_name(self, name: str) -> "AwaitingPhone":
        return AwaitingPhone(doctor=self.doctor, patient_name=name)


class AwaitingPhone(_Step):
    state: Literal[ConversationState.AWAITING_PATIENT_PHONE] = ConversationState.AWAITING_PATIENT_PHONE
    doctor: DoctorRef
    patient_name: str

    def with_phone(self, phone: str) -> "AwaitingVisitType":
        return AwaitingVisitType(
            doctor=self.doctor,
            patient_name=self.patient_name,
            patient_phone=phone,
        )


class AwaitingVisitType(_Step):
    state: Literal[ConversationState.AWAITING_VISIT_TYPE] = ConversationState.AWAITING_VISIT_TYPE
    doctor: DoctorRef
    patient_name: str
    patient_phone: str

    def with_visit_type(self, visit_type: VisitType) -> "AwaitingConfirmation":
        return AwaitingConfirmation(
            doctor=self.doctor,
            patient_name=self.patient_name,
            patient_phone=self.patient_phone,
            visit_type=visit_type,
        )


class AwaitingConfirmation(_Step):
    state: Literal[ConversationState.AWAITING_CONFIRMATION] = ConversationState.AWAITING_CONFIRMATION
    doctor: DoctorRef
    patient_name: str
    patient_phone: str
    visit_type: VisitType

    def to_draft(self, chat_id: int) -> BookingDraft:
        return BookingDraft(
            chat_id=chat_id,
            patient_name=self.patient_name,
            patient_phone=self.patient_phone,
            doctor=self.doctor,
            visit_type=self.visit_type,
        )

    def booked(self, booking_id: int) -> "AwaitingPaymentProof":
        return AwaitingPaymentProof(booking_id=booking_id, doctor=self.doctor)


class AwaitingPaymentProof(_Step):
    state: Literal[ConversationState.AWAITING_PAYMENT_PROOF] = ConversationState.AWAITING_PAYMENT_PROOF
    booking_id: int
    doctor: Optional[DoctorRef] = None


class PaymentSubmitted(_Step):
    state: Literal[ConversationState.PAYMENT_SUBMITTED] = ConversationState.PAYMENT_SUBMITTED
    booking_id: int
    doctor: Optional[DoctorRef] = None


class BookingConfirmed(_Step):
    state: Literal[ConversationState.BOOKING_CONFIRMED] = ConversationState.BOOKING_CONFIRMED
    booking_id: int
    queue_position: int


Step = Annotated[
    Union[
        Idle,
        ChoosingDoctor,
        AwaitingName,
        AwaitingPhone,
        AwaitingVisitType,
        AwaitingConfirmation,
        AwaitingPaymentProof,
        PaymentSubmitted,
        BookingConfirmed,
    ],
    Field(discriminator="state"),
]

# states in which a doctor has already been picked
DETAIL_STEPS = (AwaitingName, AwaitingPhone, AwaitingVisitType, AwaitingConfirmation)


class Session(BaseModel):
    chat_id: int
    step: Step = Field(default_factory=Idle)
    last_activity: datetime

    @property
    def state(self) -> ConversationState:
        return self.step.state

    @property
    def booking_id(self) -> Optional[int]:
        return getattr(self.step, "booking_id", None)


class SessionStore:
    """
    Chat-keyed session map with idle eviction.

    Also tracks which chats were already told about their active
    booking, so that notice goes out once per booking.

    Args:
        timeout_minutes: Idle time after which a session is evicted
        clock: Returns the current aware UTC time
    """

    def __init__(self, timeout_minutes: int = 30, clock: Clock = utc_clock):
        self.timeout = timedelta(minutes=timeout_minutes)
        self._clock = clock
        self._sessions: Dict[int, Session] = {}
        self._notified: Set[int] = set()
        self._sweeper: Optional[asyncio.Task] = None

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, chat_id: int) -> bool:
        return chat_id in self._sessions

    def get(self, chat_id: int) -> Session:
        """Return the chat's session, creating an idle one on first contact."""
        now = self._clock()
        session = self._sessions.get(chat_id)
        if session is None:
            session = Session(chat_id=chat_id, last_activity=now)
            self._sessions[chat_id] = session
            logger.debug(f"Created session for chat {chat_id}")
        else:
            session.last_activity = now
        return session

    def peek(self, chat_id: int) -> Optional[Session]:
        """Return the session if one exists, without touching it."""
        return self._sessions.get(chat_id)

    def advance(self, chat_id: int, step: Step) -> Session:
        session = self.get(chat_id)
        session.step = step
        return session

    def reset(self, chat_id: int) -> Session:
        return self.advance(chat_id, Idle())

    def clear(self) -> int:
        """Forget every session and notified flag; returns the session count."""
        count = len(self._sessions)
        self._sessions.clear()
        self._notified.clear()
        return count

    def sweep(self, now: Optional[datetime] = None) -> int:
        """
        Evict sessions idle for longer than the timeout.

        Returns:
            Number of evicted sessions
        """
        now = now or self._clock()
        expired = [
            chat_id for chat_id, session in self._sessions.items()
            if now - session.last_activity > self.timeout
        ]
        for chat_id in expired:
            del self._sessions[chat_id]
        if expired:
            logger.info(f"Evicted {len(expired)} idle sessions")
        return len(expired)

    # notified-about-active-booking set

    def is_notified(self, chat_id: int) -> bool:
        return chat_id in self._notified

    def mark_notified(self, chat_id: int) -> None:
        self._notified.add(chat_id)

    def clear_notified(self, chat_id: int) -> None:
        self._notified.discard(chat_id)

    # sweeper task

    async def _sweep_forever(self, interval_seconds: float) -> None:
        while True:
            await asyncio.sleep(interval_seconds)
            try:
                self.sweep()
            except Exception as e:
                logger.error(f"Session sweep failed: {e}", exc_info=True)

    def start_sweeper(self, interval_minutes: float = 10) -> None:
        if self._sweeper is None or self._sweeper.done():
            self._sweeper = asyncio.create_task(self._sweep_forever(interval_minutes * 60))
            logger.info(f"Session sweeper started (every {interval_minutes} min)")

    async def stop_sweeper(self) -> None:
        if self._sweeper is not None:
            self._sweeper.cancel()
            try:
                await self._sweeper
            except asyncio.CancelledError:
                pass
            self._sweeper = None
            logger.info("Session sweeper stopped")
