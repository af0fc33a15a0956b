"""
Database Repository Layer

Implements repository pattern for database operations.
Provides abstraction over SQLAlchemy for cleaner business logic.

Repositories never commit: the caller owns the transaction so that a
read-modify-write spanning several repositories stays atomic.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Iterable, List, Optional, Sequence

from sqlalchemy import delete, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from clinic_bot.db.models import BookingRecord, CounterRecord, DoctorRecord
from clinic_bot.models.schemas import (
    ACTIVE_STATUSES,
    Booking,
    BookingStatus,
    ConfirmedBooking,
    Doctor,
    PendingPayment,
)

logger = logging.getLogger(__name__)

BOOKING_ID_COUNTER = "booking_id"

_ACTIVE = [status.value for status in ACTIVE_STATUSES]


class DatabaseError(Exception):
    """Custom exception for database operations."""
    pass


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """SQLite hands back naive datetimes; everything stored is UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def to_doctor(record: DoctorRecord) -> Doctor:
    return Doctor(
        id=record.id,
        name=record.name,
        specialty=record.specialty,
        contact=record.contact,
        created_at=as_utc(record.created_at),
    )


def to_booking(record: BookingRecord) -> Booking:
    """
    Convert a booking row into its domain record.

    Args:
        record: ORM row

    Returns:
        ConfirmedBooking for confirmed rows, PendingPayment otherwise
    """
    fields = dict(
        id=record.id,
        chat_id=record.chat_id,
        patient_name=record.patient_name,
        patient_phone=record.patient_phone,
        doctor_id=record.doctor_id,
        doctor_name=record.doctor_name,
        doctor_specialty=record.doctor_specialty,
        visit_type=record.visit_type,
        price=record.price,
        status=record.status,
        payment_proof=record.payment_proof,
        created_at=as_utc(record.created_at),
        updated_at=as_utc(record.updated_at),
    )
    if record.status == BookingStatus.CONFIRMED.value:
        return ConfirmedBooking(
            **fields,
            queue_position=record.queue_position,
            confirmed_at=as_utc(record.confirmed_at),
        )
    return PendingPayment(**fields)


class BaseRepository:
    """Base repository with common database operations."""

    def __init__(self, session: AsyncSession):
        """
        Initialize repository with database session.

        Args:
            session: AsyncSession instance for database operations
        """
        self.session = session

    async def execute(self, statement: Any) -> Any:
        """
        Execute a statement, translating driver failures.

        Raises:
            DatabaseError: If statement execution fails
        """
        try:
            return await self.session.execute(statement)
        except SQLAlchemyError as e:
            logger.error(f"Query execution failed: {e}")
            raise DatabaseError(f"Database operation failed: {str(e)}") from e

    async def scalars(self, statement: Any) -> Sequence[Any]:
        result = await self.execute(statement)
        return result.scalars().all()

    async def flush(self) -> None:
        try:
            await self.session.flush()
        except SQLAlchemyError as e:
            logger.error(f"Flush failed: {e}")
            raise DatabaseError(f"Database operation failed: {str(e)}") from e


class CounterRepository(BaseRepository):
    """Monotonic counters that survive the daily reset."""

    async def next_value(self, name: str) -> int:
        """
        Allocate the next value of a counter.

        The counter row is locked for the rest of the transaction on
        databases that support row locks.

        Args:
            name: Counter name

        Returns:
            The allocated value (the first allocation returns 1)
        """
        result = await self.execute(
            select(CounterRecord).where(CounterRecord.name == name).with_for_update()
        )
        counter = result.scalar_one_or_none()
        if counter is None:
            counter = CounterRecord(name=name, value=1)
            self.session.add(counter)

        value = counter.value
        counter.value = value + 1
        await self.flush()
        return value

    async def peek(self, name: str) -> int:
        result = await self.execute(
            select(CounterRecord.value).where(CounterRecord.name == name)
        )
        value = result.scalar_one_or_none()
        return value if value is not None else 1


class DoctorRepository(BaseRepository):
    """Repository for the doctor directory."""

    async def add(self, name: str, specialty: str, contact: str) -> Doctor:
        record = DoctorRecord(name=name, specialty=specialty, contact=contact)
        self.session.add(record)
        await self.flush()
        logger.info(f"Created doctor {record.id} ({name})")
        return to_doctor(record)

    async def list_all(self) -> List[Doctor]:
        records = await self.scalars(select(DoctorRecord).order_by(DoctorRecord.id))
        return [to_doctor(record) for record in records]

    async def get(self, doctor_id: int) -> Optional[Doctor]:
        record = await self.session.get(DoctorRecord, doctor_id)
        return to_doctor(record) if record else None

    async def remove_by_id(self, doctor_id: int) -> Optional[Doctor]:
        record = await self.session.get(DoctorRecord, doctor_id)
        if record is None:
            return None
        return await self._remove(record)

    async def remove_by_name(self, name: str) -> Optional[Doctor]:
        """Remove the first doctor whose name contains `name` (case-insensitive)."""
        needle = name.strip().lower()
        records = await self.scalars(select(DoctorRecord).order_by(DoctorRecord.id))
        for record in records:
            if needle and needle in record.name.lower():
                return await self._remove(record)
        return None

    async def _remove(self, record: DoctorRecord) -> Doctor:
        doctor = to_doctor(record)
        await self.session.delete(record)
        await self.flush()
        logger.info(f"Removed doctor {doctor.id} ({doctor.name})")
        return doctor


class BookingRepository(BaseRepository):
    """Repository for pending and confirmed bookings."""

    async def add(self, record: BookingRecord) -> BookingRecord:
        self.session.add(record)
        await self.flush()
        return record

    async def get_pending(self, booking_id: int, for_update: bool = False) -> Optional[BookingRecord]:
        """
        Get a booking that is still in the pending set.

        Args:
            booking_id: Booking id
            for_update: Lock the row for the rest of the transaction

        Returns:
            The row, or None if it does not exist or is already confirmed
        """
        statement = select(BookingRecord).where(
            BookingRecord.id == booking_id,
            BookingRecord.status.in_(_ACTIVE),
        )
        if for_update:
            statement = statement.with_for_update()
        result = await self.execute(statement)
        return result.scalar_one_or_none()

    async def find_active(
        self,
        chat_id: int,
        doctor_id: Optional[int] = None,
    ) -> Optional[BookingRecord]:
        statement = select(BookingRecord).where(
            BookingRecord.chat_id == chat_id,
            BookingRecord.status.in_(_ACTIVE),
        )
        if doctor_id is not None:
            statement = statement.where(BookingRecord.doctor_id == doctor_id)
        result = await self.execute(statement.order_by(BookingRecord.id).limit(1))
        return result.scalar_one_or_none()

    async def find_confirmed(self, chat_id: int, doctor_id: int) -> Optional[BookingRecord]:
        result = await self.execute(
            select(BookingRecord)
            .where(
                BookingRecord.chat_id == chat_id,
                BookingRecord.doctor_id == doctor_id,
                BookingRecord.status == BookingStatus.CONFIRMED.value,
            )
            .order_by(BookingRecord.id)
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def latest_for_chat(
        self,
        chat_id: int,
        statuses: Iterable[str],
    ) -> Optional[BookingRecord]:
        """Most recent booking of the chat among the given statuses."""
        statuses = list(statuses)
        order_column = (
            func.coalesce(BookingRecord.confirmed_at, BookingRecord.created_at)
            if BookingStatus.CONFIRMED.value in statuses
            else BookingRecord.created_at
        )
        result = await self.execute(
            select(BookingRecord)
            .where(BookingRecord.chat_id == chat_id, BookingRecord.status.in_(statuses))
            .order_by(order_column.desc(), BookingRecord.id.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def count_confirmed_for_doctor(self, doctor_id: int) -> int:
        result = await self.execute(
            select(func.count())
            .select_from(BookingRecord)
            .where(
                BookingRecord.doctor_id == doctor_id,
                BookingRecord.status == BookingStatus.CONFIRMED.value,
            )
        )
        return int(result.scalar_one())

    async def list_confirmed(self, doctor_id: Optional[int] = None) -> List[BookingRecord]:
        statement = select(BookingRecord).where(
            BookingRecord.status == BookingStatus.CONFIRMED.value
        )
        if doctor_id is not None:
            statement = statement.where(BookingRecord.doctor_id == doctor_id)
        return list(
            await self.scalars(statement.order_by(BookingRecord.confirmed_at, BookingRecord.id))
        )

    async def list_pending(self, status: Optional[BookingStatus] = None) -> List[BookingRecord]:
        statuses = [status.value] if status else _ACTIVE
        return list(
            await self.scalars(
                select(BookingRecord)
                .where(BookingRecord.status.in_(statuses))
                .order_by(BookingRecord.id)
            )
        )

    async def count_by_status(self) -> dict:
        result = await self.execute(
            select(BookingRecord.status, func.count()).group_by(BookingRecord.status)
        )
        return {status: count for status, count in result.all()}

    async def remove(self, record: BookingRecord) -> None:
        await self.session.delete(record)
        await self.flush()

    async def remove_all(self) -> int:
        result = await self.execute(delete(BookingRecord))
        return result.rowcount or 0
