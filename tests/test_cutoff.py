"""
Tests for the booking cutoff gate.
"""

import pytest
from pydantic import ValidationError

from clinic_bot.services.cutoff import CutoffGate, SchedulerConfig
from tests.conftest import CLINIC_TZ


@pytest.fixture
def config():
    return SchedulerConfig(enabled=True, hour=18, minute=0, timezone=CLINIC_TZ)


@pytest.fixture
def gate(config, clock):
    return CutoffGate(lambda: config, clock)


class TestCutoffGate:
    @pytest.mark.parametrize("hour,minute,allowed", [
        (0, 0, True),
        (17, 59, True),
        (18, 0, False),
        (18, 1, False),
        (23, 59, False),
    ])
    def test_boundaries(self, gate, clock, hour, minute, allowed):
        clock.set_local(hour, minute)
        assert gate.is_booking_allowed() is allowed

    def test_disabled_gate_always_allows(self, gate, config, clock):
        config.enabled = False
        clock.set_local(23, 30)
        assert gate.is_booking_allowed()

    def test_uses_clinic_time_not_utc(self, gate, clock):
        # 17:30 in Damascus is already past 14:00 UTC; still open locally
        clock.set_local(17, 30)
        assert gate.is_booking_allowed()
        assert gate.local_now().hour == 17

    def test_config_change_applies_immediately(self, gate, config, clock):
        clock.set_local(16, 0)
        assert gate.is_booking_allowed()

        config.hour = 15
        config.minute = 30

        assert not gate.is_booking_allowed()

    def test_info(self, gate, clock):
        clock.set_local(9, 5)

        info = gate.info()

        assert info.cutoff_time == "18:00"
        assert info.current_time == "09:05"
        assert info.enabled is True
        assert info.allowed is True


class TestSchedulerConfig:
    def test_rejects_out_of_range_time(self, config):
        with pytest.raises(ValidationError):
            config.hour = 24
        with pytest.raises(ValidationError):
            config.minute = 60

    def test_rejects_unknown_timezone(self):
        with pytest.raises(ValidationError):
            SchedulerConfig(timezone="Mars/Olympus")

    def test_label(self):
        assert SchedulerConfig(hour=7, minute=5).cutoff_label == "07:05"
