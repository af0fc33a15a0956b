"""
Pydantic Schemas

Domain records exchanged between the ledger, the conversation engine,
the scheduler and the transport adapters.
"""

from datetime import datetime
from enum import Enum
from typing import List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class VisitType(str, Enum):
    """Kind of visit; decides the price."""

    NEW = "new"
    FOLLOWUP = "followup"


class BookingStatus(str, Enum):
    """Lifecycle status of a booking record."""

    AWAITING_PAYMENT = "awaiting_payment"
    PAYMENT_SUBMITTED = "payment_submitted"
    CONFIRMED = "confirmed"


ACTIVE_STATUSES = (BookingStatus.AWAITING_PAYMENT, BookingStatus.PAYMENT_SUBMITTED)


class Doctor(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    specialty: str
    contact: str
    created_at: datetime


class DoctorRef(BaseModel):
    """Snapshot of a doctor taken when a booking is drafted."""

    model_config = ConfigDict(frozen=True, from_attributes=True)

    id: int
    name: str
    specialty: str


class BookingDraft(BaseModel):
    """Everything the patient filled in before confirming."""

    model_config = ConfigDict(frozen=True)

    chat_id: int
    patient_name: str
    patient_phone: str
    doctor: DoctorRef
    visit_type: VisitType


class PendingPayment(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    chat_id: int
    patient_name: str
    patient_phone: str
    doctor_id: int
    doctor_name: str
    doctor_specialty: str
    visit_type: VisitType
    price: Optional[int] = None
    status: BookingStatus
    payment_proof: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    rejection_reason: Optional[str] = None


class ConfirmedBooking(PendingPayment):
    queue_position: int
    confirmed_at: datetime


Booking = Union[ConfirmedBooking, PendingPayment]


class PatientInfo(BaseModel):
    name: str
    phone: str


class DoctorStats(BaseModel):
    doctor_id: int
    doctor_name: str
    total_bookings: int = 0
    total_revenue: int = 0
    new_visits: int = 0
    followup_visits: int = 0


class Analytics(BaseModel):
    total_bookings: int = 0
    pending_payments_count: int = 0
    today_bookings: int = 0
    total_revenue: int = 0
    today_revenue: int = 0
    new_visits: int = 0
    followup_visits: int = 0
    doctor_stats: List[DoctorStats] = Field(default_factory=list)


class ResetCounts(BaseModel):
    cleared_confirmed: int = 0
    cleared_pending: int = 0


class InboundEvent(BaseModel):
    """A message delivered by the transport layer."""

    model_config = ConfigDict(frozen=True)

    chat_id: int
    sender_id: int
    sender_name: str = ""
    is_admin: bool = False
    text: str = ""
    attachment: Optional[str] = None


class OutboundMessage(BaseModel):
    """Something the bot wants to say; photo is a transport file reference."""

    model_config = ConfigDict(frozen=True)

    chat_id: Union[int, str]
    text: str
    photo: Optional[str] = None
