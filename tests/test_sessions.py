"""
Tests for the session store and the conversation steps.
"""

import pytest
from pydantic import ValidationError

from clinic_bot.models.schemas import DoctorRef, PatientInfo, VisitType
from clinic_bot.services.sessions import (
    AwaitingName,
    AwaitingVisitType,
    ChoosingDoctor,
    ConversationState,
    Session,
    SessionStore,
)

DOCTOR = DoctorRef(id=1, name="Dr. Ahmad Khalil", specialty="Cardiology")


class TestSteps:
    """Transitions between typed conversation steps."""

    def test_unknown_patient_is_asked_for_details(self):
        step = ChoosingDoctor.begin(None).pick(DOCTOR)

        assert isinstance(step, AwaitingName)
        step = step.with_name("Ali Hassan").with_phone("0991234567")
        assert step.state == ConversationState.AWAITING_VISIT_TYPE

    def test_known_patient_skips_to_visit_type(self):
        known = PatientInfo(name="Ali Hassan", phone="0991234567")

        step = ChoosingDoctor.begin(known).pick(DOCTOR)

        assert isinstance(step, AwaitingVisitType)
        assert step.patient_name == "Ali Hassan"

    def test_update_info_asks_again(self):
        known = PatientInfo(name="Ali Hassan", phone="0991234567")

        chooser = ChoosingDoctor.begin(known, ask_details=True)

        assert not chooser.has_known_identity
        assert isinstance(chooser.pick(DOCTOR), AwaitingName)

    def test_confirmation_builds_draft_and_payment_step(self):
        step = (
            AwaitingName(doctor=DOCTOR)
            .with_name("Ali Hassan")
            .with_phone("0991234567")
            .with_visit_type(VisitType.FOLLOWUP)
        )

        draft = step.to_draft(111)
        payment = step.booked(5)

        assert draft.chat_id == 111
        assert draft.visit_type == VisitType.FOLLOWUP
        assert payment.booking_id == 5
        assert payment.state == ConversationState.AWAITING_PAYMENT_PROOF

    def test_steps_are_immutable(self):
        step = AwaitingName(doctor=DOCTOR)
        with pytest.raises(ValidationError):
            step.doctor = None

    def test_session_parses_step_by_state(self):
        session = Session.model_validate({
            "chat_id": 1,
            "last_activity": "2025-03-10T08:00:00Z",
            "step": {"state": "AWAITING_PAYMENT_PROOF", "booking_id": 9},
        })

        assert session.state == ConversationState.AWAITING_PAYMENT_PROOF
        assert session.booking_id == 9


class TestSessionStore:
    """Creation, mutation and eviction of sessions."""

    def test_first_contact_creates_idle_session(self, sessions):
        session = sessions.get(111)

        assert session.state == ConversationState.IDLE
        assert session.booking_id is None
        assert 111 in sessions

    def test_peek_does_not_create(self, sessions):
        assert sessions.peek(111) is None
        assert len(sessions) == 0

    def test_advance_and_reset(self, sessions):
        sessions.advance(111, AwaitingName(doctor=DOCTOR))
        assert sessions.get(111).state == ConversationState.AWAITING_PATIENT_NAME

        sessions.reset(111)
        assert sessions.get(111).state == ConversationState.IDLE

    def test_sweep_evicts_idle_sessions(self, sessions, clock):
        sessions.get(1)
        clock.advance(minutes=20)
        sessions.get(2)
        clock.advance(minutes=15)

        evicted = sessions.sweep()

        assert evicted == 1
        assert 1 not in sessions
        assert 2 in sessions

    def test_activity_refreshes_session(self, sessions, clock):
        sessions.get(1)
        clock.advance(minutes=25)
        sessions.get(1)
        clock.advance(minutes=25)

        assert sessions.sweep() == 0

    def test_evicted_chat_starts_idle(self, sessions, clock):
        sessions.advance(1, AwaitingName(doctor=DOCTOR))
        clock.advance(minutes=31)
        sessions.sweep()

        assert sessions.get(1).state == ConversationState.IDLE

    def test_clear_forgets_sessions_and_notices(self, sessions):
        sessions.get(1)
        sessions.get(2)
        sessions.mark_notified(1)

        assert sessions.clear() == 2
        assert len(sessions) == 0
        assert not sessions.is_notified(1)

    def test_notified_flag(self, sessions):
        sessions.mark_notified(5)
        assert sessions.is_notified(5)
        sessions.clear_notified(5)
        assert not sessions.is_notified(5)


class TestSweeper:
    @pytest.mark.asyncio
    async def test_start_and_stop(self, sessions):
        sessions.start_sweeper(interval_minutes=10)
        task = sessions._sweeper
        sessions.start_sweeper(interval_minutes=10)

        assert sessions._sweeper is task
        await sessions.stop_sweeper()
        assert sessions._sweeper is None
        assert task.cancelled()
