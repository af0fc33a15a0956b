"""
Configuration Module

Clinic settings read from the environment (and .env) with
pydantic-settings: infrastructure, clinic identity, prices, cutoff
defaults and the bilingual conversation vocabulary.
"""

from functools import lru_cache
from typing import List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

_ASYNC_SCHEMES = ("postgresql+asyncpg://", "sqlite+aiosqlite://")


class Settings(BaseSettings):
    """Environment-backed settings; list fields accept JSON arrays."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Storage
    database_url: str = "sqlite+aiosqlite:///./clinic_bot.db"
    db_pool_size: int = Field(default=10, ge=1)
    db_max_overflow: int = Field(default=20, ge=0)
    db_pool_timeout: int = Field(default=30, ge=1)
    db_pool_recycle: int = Field(default=3600, ge=60)
    db_echo: bool = False

    # Telegram
    telegram_bot_token: str = ""
    telegram_webhook_url: Optional[str] = None
    webhook_secret_token: Optional[str] = Field(default=None, min_length=20)

    # HTTP server
    app_host: str = "0.0.0.0"
    app_port: int = Field(default=8000, ge=1, le=65535)
    debug: bool = False
    log_level: str = "INFO"

    # Clinic
    clinic_name: str = Field(default="Al Shifa Clinic")
    bot_name: str = Field(default="Clinic Booking Bot")
    clinic_timezone: str = Field(
        default="Asia/Damascus",
        description="IANA time zone used for the cutoff and daily jobs",
    )
    admin_ids: List[int] = Field(
        default_factory=list,
        description="Telegram user ids allowed to run admin commands",
    )

    # Booking cutoff (runtime defaults, admins can change them from chat)
    cutoff_enabled: bool = Field(default=True)
    cutoff_hour: int = Field(default=18, ge=0, le=23)
    cutoff_minute: int = Field(default=0, ge=0, le=59)

    # Sessions
    session_timeout_minutes: int = Field(default=30, ge=1)
    session_sweep_interval_minutes: int = Field(default=10, ge=1)

    # Prices
    price_new_consultation: int = Field(default=50000, ge=0)
    price_followup: int = Field(default=25000, ge=0)
    currency: str = Field(default="SYP")

    # Payment instructions shown after the patient confirms
    payment_instructions: str = Field(
        default=(
            "Bank transfer: Clinic Bank, account Al Shifa Clinic\n"
            "Mobile cash: send to the number below"
        ),
    )
    payment_copy_values: List[str] = Field(
        default_factory=list,
        description="Account numbers sent as separate messages for easy copying",
    )

    # Conversation vocabulary
    start_keywords: List[str] = Field(
        default_factory=lambda: [
            "hi", "hello", "hey", "start", "book", "booking",
            "مرحبا", "السلام عليكم", "سلام", "اهلا", "أهلا", "حجز",
        ],
    )
    new_visit_keywords: List[str] = Field(
        default_factory=lambda: ["1", "new", "new visit", "جديد", "كشف", "كشف جديد"],
    )
    followup_visit_keywords: List[str] = Field(
        default_factory=lambda: [
            "2", "followup", "follow up", "follow-up", "متابعة", "مراجعة",
        ],
    )
    confirm_yes_keywords: List[str] = Field(
        default_factory=lambda: ["1", "yes", "y", "ok", "confirm", "نعم", "اي", "أكيد", "موافق", "تأكيد"],
    )
    confirm_no_keywords: List[str] = Field(
        default_factory=lambda: ["2", "no", "n", "لا"],
    )
    confirm_edit_keywords: List[str] = Field(
        default_factory=lambda: ["3", "edit", "change", "تعديل"],
    )

    # Scheduler
    summary_send_delay_seconds: float = Field(
        default=1.0,
        ge=0,
        description="Pause between consecutive doctor summary messages",
    )

    @field_validator("database_url", mode="before")
    @classmethod
    def use_async_driver(cls, v: str) -> str:
        """Map plain postgresql:// and sqlite:// URLs onto their async drivers."""
        if v.startswith("postgresql://"):
            return "postgresql+asyncpg://" + v[len("postgresql://"):]
        if v.startswith("sqlite://"):
            return "sqlite+aiosqlite://" + v[len("sqlite://"):]
        if not v.startswith(_ASYNC_SCHEMES):
            raise ValueError(f"DATABASE_URL must start with one of {', '.join(_ASYNC_SCHEMES)}")
        return v

    @property
    def is_sqlite(self) -> bool:
        return self.database_url.startswith("sqlite")


@lru_cache()
def get_settings() -> Settings:
    """Settings are read from the environment once per process."""
    return Settings()


settings = get_settings()
