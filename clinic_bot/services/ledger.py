"""
Booking Ledger

Owns the lifecycle of a booking: pending payment, proof submitted,
confirmed with a queue position, or rejected. Also carries the doctor
directory and the read-side queries used for reports.

All operations run behind one asyncio.Lock, so the ledger behaves as a
single writer: id allocation, the active-booking check and queue
position assignment are never interleaved.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import date, datetime, time
from typing import AsyncGenerator, List, Optional, Union
from zoneinfo import ZoneInfo

from pydantic import BaseModel
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from clinic_bot.db.models import BookingRecord
from clinic_bot.db.repository import (
    BOOKING_ID_COUNTER,
    BookingRepository,
    CounterRepository,
    DatabaseError,
    DoctorRepository,
    as_utc,
    to_booking,
)
from clinic_bot.models.schemas import (
    Analytics,
    Booking,
    BookingDraft,
    BookingStatus,
    ConfirmedBooking,
    Doctor,
    DoctorStats,
    PatientInfo,
    PendingPayment,
    ResetCounts,
    VisitType,
)
from clinic_bot.services.clock import Clock, utc_clock

logger = logging.getLogger(__name__)


class LedgerError(Exception):
    """Base class for booking ledger errors."""
    pass


class BookingNotFoundError(LedgerError):
    """Raised when a booking id is not in the pending set."""

    def __init__(self, booking_id: int):
        super().__init__(f"Booking #{booking_id} not found")
        self.booking_id = booking_id


class DuplicateActiveBookingError(LedgerError):
    """Raised when a chat already has an active booking with the doctor."""

    def __init__(self, existing: PendingPayment):
        super().__init__(
            f"Chat {existing.chat_id} already has active booking #{existing.id} "
            f"with doctor {existing.doctor_id}"
        )
        self.existing = existing


class PriceTable(BaseModel):
    new_consultation: int
    followup: int

    def price_for(self, visit_type: VisitType) -> int:
        if visit_type == VisitType.NEW:
            return self.new_consultation
        return self.followup


def price_or_zero(booking: PendingPayment) -> int:
    """Frozen price of a booking; missing or invalid prices count as zero."""
    price = booking.price
    if isinstance(price, bool) or not isinstance(price, int) or price < 0:
        return 0
    return price


def revenue(bookings: List[PendingPayment]) -> int:
    return sum(price_or_zero(b) for b in bookings)


class BookingLedger:
    """
    Durable ledger of pending and confirmed bookings.

    Args:
        session_factory: Factory producing AsyncSession objects
        prices: Price table used to freeze the price at creation time
        timezone_name: Clinic time zone; decides what "today" means
        clock: Returns the current aware UTC time
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        prices: PriceTable,
        timezone_name: str,
        clock: Clock = utc_clock,
    ):
        self._session_factory = session_factory
        self.prices = prices
        self.tz = ZoneInfo(timezone_name)
        self._clock = clock
        self._lock = asyncio.Lock()

    # ------------------------------------------------------------------
    # Plumbing
    # ------------------------------------------------------------------

    @asynccontextmanager
    async def _transaction(self) -> AsyncGenerator[AsyncSession, None]:
        """Serialize on the ledger lock and run one database transaction."""
        async with self._lock:
            async with self._session_factory() as db:
                async with db.begin():
                    yield db

    def now(self) -> datetime:
        return self._clock()

    def local_today(self) -> date:
        return self.now().astimezone(self.tz).date()

    def _local_date(self, value: datetime) -> date:
        return as_utc(value).astimezone(self.tz).date()

    # ------------------------------------------------------------------
    # Doctors
    # ------------------------------------------------------------------

    async def add_doctor(self, name: str, specialty: str, contact: str) -> Doctor:
        async with self._transaction() as db:
            return await DoctorRepository(db).add(name, specialty, contact)

    async def remove_doctor(self, identifier: str) -> Optional[Doctor]:
        """
        Hard-delete a doctor by numeric id or by name fragment.

        Existing bookings keep their doctor snapshot.
        """
        identifier = identifier.strip()
        async with self._transaction() as db:
            repo = DoctorRepository(db)
            if identifier.isdigit():
                return await repo.remove_by_id(int(identifier))
            return await repo.remove_by_name(identifier)

    async def list_doctors(self) -> List[Doctor]:
        async with self._transaction() as db:
            return await DoctorRepository(db).list_all()

    async def get_doctor(self, doctor_id: int) -> Optional[Doctor]:
        async with self._transaction() as db:
            return await DoctorRepository(db).get(doctor_id)

    # ------------------------------------------------------------------
    # Booking lifecycle
    # ------------------------------------------------------------------

    async def create_pending(self, draft: BookingDraft) -> PendingPayment:
        """
        Create a booking awaiting payment.

        The price is resolved from the current price table and frozen
        into the record.

        Args:
            draft: Patient, doctor snapshot and visit type

        Returns:
            The new PendingPayment

        Raises:
            DuplicateActiveBookingError: The chat already has an active
                booking with this doctor
        """
        async with self._transaction() as db:
            bookings = BookingRepository(db)
            existing = await bookings.find_active(draft.chat_id, draft.doctor.id)
            if existing is not None:
                raise DuplicateActiveBookingError(to_booking(existing))

            booking_id = await CounterRepository(db).next_value(BOOKING_ID_COUNTER)
            now = self.now()
            record = BookingRecord(
                id=booking_id,
                chat_id=draft.chat_id,
                patient_name=draft.patient_name,
                patient_phone=draft.patient_phone,
                doctor_id=draft.doctor.id,
                doctor_name=draft.doctor.name,
                doctor_specialty=draft.doctor.specialty,
                visit_type=draft.visit_type.value,
                price=self.prices.price_for(draft.visit_type),
                status=BookingStatus.AWAITING_PAYMENT.value,
                payment_proof=None,
                created_at=now,
                updated_at=now,
            )
            try:
                await bookings.add(record)
            except DatabaseError as e:
                if isinstance(e.__cause__, IntegrityError):
                    raise LedgerError(
                        f"Active booking for chat {draft.chat_id} and doctor "
                        f"{draft.doctor.id} already exists"
                    ) from e
                raise
            pending = to_booking(record)

        logger.info(
            f"Created pending booking #{pending.id} for chat {pending.chat_id} "
            f"with doctor {pending.doctor_id} ({pending.visit_type.value}, {pending.price})"
        )
        return pending

    async def attach_proof(self, booking_id: int, proof_ref: str) -> PendingPayment:
        """
        Attach a payment proof and mark the booking as submitted.

        Re-submission overwrites the previous proof and timestamp.

        Raises:
            BookingNotFoundError: The id is not in the pending set
        """
        async with self._transaction() as db:
            record = await BookingRepository(db).get_pending(booking_id, for_update=True)
            if record is None:
                raise BookingNotFoundError(booking_id)
            record.payment_proof = proof_ref
            record.status = BookingStatus.PAYMENT_SUBMITTED.value
            record.updated_at = self.now()
            await db.flush()
            pending = to_booking(record)

        logger.info(f"Payment proof attached to booking #{booking_id}")
        return pending

    async def confirm(self, booking_id: int) -> ConfirmedBooking:
        """
        Promote a pending booking and assign its queue position.

        The position is one more than the doctor's confirmed bookings at
        this moment and is never recomputed.

        Raises:
            BookingNotFoundError: The id is not in the pending set
        """
        async with self._transaction() as db:
            bookings = BookingRepository(db)
            record = await bookings.get_pending(booking_id, for_update=True)
            if record is None:
                raise BookingNotFoundError(booking_id)

            position = await bookings.count_confirmed_for_doctor(record.doctor_id) + 1
            now = self.now()
            record.status = BookingStatus.CONFIRMED.value
            record.queue_position = position
            record.confirmed_at = now
            record.updated_at = now
            await db.flush()
            confirmed = to_booking(record)

        logger.info(
            f"Confirmed booking #{booking_id} for doctor {confirmed.doctor_id} "
            f"at queue position {position}"
        )
        return confirmed

    async def reject(self, booking_id: int, reason: str = "") -> PendingPayment:
        """
        Remove a pending booking permanently.

        The reason travels on the returned object only; nothing about the
        rejection is kept in the store.

        Raises:
            BookingNotFoundError: The id is not in the pending set
        """
        async with self._transaction() as db:
            bookings = BookingRepository(db)
            record = await bookings.get_pending(booking_id, for_update=True)
            if record is None:
                raise BookingNotFoundError(booking_id)
            rejected = to_booking(record)
            await bookings.remove(record)

        logger.info(f"Rejected booking #{booking_id}: {reason or 'no reason given'}")
        return rejected.model_copy(
            update={"rejection_reason": reason or None, "updated_at": self.now()}
        )

    async def withdraw(self, booking_id: int) -> Optional[PendingPayment]:
        """Drop a booking the patient cancelled before sending any proof."""
        async with self._transaction() as db:
            bookings = BookingRepository(db)
            record = await bookings.get_pending(booking_id, for_update=True)
            if record is None or record.status != BookingStatus.AWAITING_PAYMENT.value:
                return None
            withdrawn = to_booking(record)
            await bookings.remove(record)

        logger.info(f"Withdrew booking #{booking_id} on patient request")
        return withdrawn

    async def reset_daily(self) -> ResetCounts:
        """Empty both sets; the booking id counter keeps counting."""
        async with self._transaction() as db:
            bookings = BookingRepository(db)
            counts = await bookings.count_by_status()
            await bookings.remove_all()

        cleared = ResetCounts(
            cleared_confirmed=counts.get(BookingStatus.CONFIRMED.value, 0),
            cleared_pending=sum(
                count for status, count in counts.items()
                if status != BookingStatus.CONFIRMED.value
            ),
        )
        logger.info(
            f"Daily reset cleared {cleared.cleared_confirmed} confirmed and "
            f"{cleared.cleared_pending} pending bookings"
        )
        return cleared

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def get_pending(self, booking_id: int) -> Optional[PendingPayment]:
        async with self._transaction() as db:
            record = await BookingRepository(db).get_pending(booking_id)
            return to_booking(record) if record else None

    async def active_booking(self, chat_id: int) -> Optional[PendingPayment]:
        async with self._transaction() as db:
            record = await BookingRepository(db).find_active(chat_id)
            return to_booking(record) if record else None

    async def booking_with_doctor(self, chat_id: int, doctor_id: int) -> Optional[Booking]:
        """Confirmed booking with the doctor if any, else the active pending one."""
        async with self._transaction() as db:
            bookings = BookingRepository(db)
            record = await bookings.find_confirmed(chat_id, doctor_id)
            if record is None:
                record = await bookings.find_active(chat_id, doctor_id)
            return to_booking(record) if record else None

    async def patient_info(self, chat_id: int) -> Optional[PatientInfo]:
        """
        Name and phone the chat used last time.

        Confirmed bookings win over pending ones; within each set the
        most recent record wins.
        """
        async with self._transaction() as db:
            bookings = BookingRepository(db)
            record = await bookings.latest_for_chat(chat_id, [BookingStatus.CONFIRMED.value])
            if record is None:
                record = await bookings.latest_for_chat(
                    chat_id,
                    [BookingStatus.AWAITING_PAYMENT.value, BookingStatus.PAYMENT_SUBMITTED.value],
                )
            if record is None:
                return None
            return PatientInfo(name=record.patient_name, phone=record.patient_phone)

    async def confirmed_for_doctor(self, doctor_id: int) -> List[ConfirmedBooking]:
        async with self._transaction() as db:
            records = await BookingRepository(db).list_confirmed(doctor_id)
            return [to_booking(r) for r in records]

    async def all_confirmed(self) -> List[ConfirmedBooking]:
        async with self._transaction() as db:
            records = await BookingRepository(db).list_confirmed()
            return [to_booking(r) for r in records]

    async def confirmed_today(self, doctor_id: Optional[int] = None) -> List[ConfirmedBooking]:
        """Confirmed bookings whose confirmation falls on today's clinic date."""
        today = self.local_today()
        bookings = (
            await self.confirmed_for_doctor(doctor_id)
            if doctor_id is not None
            else await self.all_confirmed()
        )
        return [b for b in bookings if self._local_date(b.confirmed_at) == today]

    async def confirmed_between(
        self,
        start: Union[date, datetime],
        end: Union[date, datetime],
    ) -> List[ConfirmedBooking]:
        """
        Confirmed bookings inside an inclusive clinic-local date range.

        The end is clamped to the last instant of its day.
        """
        start_day = start.date() if isinstance(start, datetime) else start
        end_day = end.date() if isinstance(end, datetime) else end
        lower = datetime.combine(start_day, time.min, tzinfo=self.tz)
        upper = datetime.combine(end_day, time.max, tzinfo=self.tz)
        return [
            b for b in await self.all_confirmed()
            if lower <= as_utc(b.confirmed_at) <= upper
        ]

    async def submitted_payments(self) -> List[PendingPayment]:
        """Pending bookings with a proof waiting for an admin decision."""
        async with self._transaction() as db:
            records = await BookingRepository(db).list_pending(BookingStatus.PAYMENT_SUBMITTED)
            return [to_booking(r) for r in records]

    async def all_pending(self) -> List[PendingPayment]:
        async with self._transaction() as db:
            records = await BookingRepository(db).list_pending()
            return [to_booking(r) for r in records]

    async def pending_count(self) -> int:
        async with self._transaction() as db:
            return len(await BookingRepository(db).list_pending())

    async def next_booking_id(self) -> int:
        async with self._transaction() as db:
            return await CounterRepository(db).peek(BOOKING_ID_COUNTER)

    async def analytics(self) -> Analytics:
        """Aggregate counts and revenue by scanning the confirmed set."""
        confirmed = await self.all_confirmed()
        pending = await self.all_pending()
        today = self.local_today()
        today_bookings = [b for b in confirmed if self._local_date(b.confirmed_at) == today]

        per_doctor: dict = {}
        for booking in confirmed:
            stats = per_doctor.setdefault(
                booking.doctor_id,
                DoctorStats(doctor_id=booking.doctor_id, doctor_name=booking.doctor_name),
            )
            stats.total_bookings += 1
            stats.total_revenue += price_or_zero(booking)
            if booking.visit_type == VisitType.NEW:
                stats.new_visits += 1
            else:
                stats.followup_visits += 1

        return Analytics(
            total_bookings=len(confirmed),
            pending_payments_count=len(pending),
            today_bookings=len(today_bookings),
            total_revenue=revenue(confirmed),
            today_revenue=revenue(today_bookings),
            new_visits=sum(1 for b in confirmed if b.visit_type == VisitType.NEW),
            followup_visits=sum(1 for b in confirmed if b.visit_type == VisitType.FOLLOWUP),
            doctor_stats=list(per_doctor.values()),
        )
