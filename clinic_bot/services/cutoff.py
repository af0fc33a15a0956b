"""
Cutoff Gate

Decides whether new bookings may start, based on clinic-local wall-clock
time and a runtime-mutable cutoff configuration.
"""

from datetime import datetime
from typing import Callable
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel, ConfigDict, Field, field_validator

from clinic_bot.services.clock import Clock, utc_clock


class SchedulerConfig(BaseModel):
    """Runtime cutoff settings; admins change these from chat."""

    model_config = ConfigDict(validate_assignment=True)

    enabled: bool = True
    hour: int = Field(default=18, ge=0, le=23)
    minute: int = Field(default=0, ge=0, le=59)
    timezone: str = "Asia/Damascus"

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, v: str) -> str:
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ValueError(f"Unknown time zone: {v}") from e
        return v

    @property
    def cutoff_minutes(self) -> int:
        return self.hour * 60 + self.minute

    @property
    def cutoff_label(self) -> str:
        return f"{self.hour:02d}:{self.minute:02d}"


class CutoffInfo(BaseModel):
    cutoff_time: str
    current_time: str
    enabled: bool
    allowed: bool


class CutoffGate:
    """
    Time-of-day predicate over a SchedulerConfig.

    The config is read through an accessor on every check, so changes
    made by the scheduler apply immediately.
    """

    def __init__(self, config: Callable[[], SchedulerConfig], clock: Clock = utc_clock):
        self._config = config
        self._clock = clock

    @property
    def config(self) -> SchedulerConfig:
        return self._config()

    def local_now(self) -> datetime:
        return self._clock().astimezone(ZoneInfo(self.config.timezone))

    def is_booking_allowed(self) -> bool:
        config = self.config
        if not config.enabled:
            return True
        now = self.local_now()
        return now.hour * 60 + now.minute < config.cutoff_minutes

    def info(self) -> CutoffInfo:
        config = self.config
        return CutoffInfo(
            cutoff_time=config.cutoff_label,
            current_time=self.local_now().strftime("%H:%M"),
            enabled=config.enabled,
            allowed=self.is_booking_allowed(),
        )
