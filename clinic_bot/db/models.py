"""
Database Models

SQLAlchemy ORM tables backing the record store: doctors, bookings
(pending and confirmed in one table, told apart by status) and counters.
"""

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import BigInteger, DateTime, Index, Integer, String, text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    pass


class DoctorRecord(Base):
    __tablename__ = "doctors"
    # ids of removed doctors are never handed out again
    __table_args__ = {"sqlite_autoincrement": True}

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    specialty: Mapped[str] = mapped_column(String(200), nullable=False)
    contact: Mapped[str] = mapped_column(String(120), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)


_ACTIVE_STATUS_SQL = "status IN ('awaiting_payment', 'payment_submitted')"


class BookingRecord(Base):
    __tablename__ = "bookings"
    __table_args__ = (
        # at most one active booking per chat and doctor
        Index(
            "ux_bookings_active_chat_doctor",
            "chat_id",
            "doctor_id",
            unique=True,
            postgresql_where=text(_ACTIVE_STATUS_SQL),
            sqlite_where=text(_ACTIVE_STATUS_SQL),
        ),
        Index("ix_bookings_doctor_status", "doctor_id", "status"),
    )

    # ids come from the booking_id counter, never from the table
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=False)
    # telegram chat ids exceed 32 bits
    chat_id: Mapped[int] = mapped_column(BigInteger, nullable=False, index=True)
    patient_name: Mapped[str] = mapped_column(String(200), nullable=False)
    patient_phone: Mapped[str] = mapped_column(String(20), nullable=False)
    doctor_id: Mapped[int] = mapped_column(Integer, nullable=False)
    doctor_name: Mapped[str] = mapped_column(String(200), nullable=False)
    doctor_specialty: Mapped[str] = mapped_column(String(200), nullable=False)
    visit_type: Mapped[str] = mapped_column(String(20), nullable=False)
    price: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    status: Mapped[str] = mapped_column(String(30), nullable=False, index=True)
    payment_proof: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    queue_position: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    confirmed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}


class CounterRecord(Base):
    __tablename__ = "counters"

    name: Mapped[str] = mapped_column(String(50), primary_key=True)
    value: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
