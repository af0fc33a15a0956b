"""
Application Wiring

Builds the ledger, session store, scheduler, engine and notifier from
Settings and hands the engine to the aiogram dispatcher.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from aiogram import Dispatcher
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from clinic_bot.bot.transport import Notifier, Transport
from clinic_bot.config import Settings
from clinic_bot.services.clock import Clock, utc_clock
from clinic_bot.services.cutoff import SchedulerConfig
from clinic_bot.services.engine import ConversationEngine
from clinic_bot.services.ledger import BookingLedger, PriceTable
from clinic_bot.services.scheduler import ClinicScheduler
from clinic_bot.services.sessions import SessionStore

logger = logging.getLogger(__name__)


@dataclass
class Container:
    settings: Settings
    ledger: BookingLedger
    sessions: SessionStore
    scheduler: ClinicScheduler
    engine: ConversationEngine
    notifier: Notifier

    def bind(self, dispatcher: Dispatcher) -> None:
        """Expose the engine and notifier to handlers as workflow data."""
        dispatcher["engine"] = self.engine
        dispatcher["notifier"] = self.notifier

    def start(self) -> None:
        self.scheduler.start()
        self.sessions.start_sweeper(self.settings.session_sweep_interval_minutes)

    async def stop(self) -> None:
        self.scheduler.shutdown()
        await self.sessions.stop_sweeper()


def build_container(
    settings: Settings,
    session_factory: async_sessionmaker[AsyncSession],
    transport: Transport,
    clock: Clock = utc_clock,
    send_delay_seconds: Optional[float] = None,
) -> Container:
    """
    Build every component from settings.

    Args:
        settings: Application settings
        session_factory: Database session factory for the ledger
        transport: Outbound transport (Telegram in production)
        clock: Time source shared by all components
        send_delay_seconds: Override for the summary pacing delay

    Returns:
        Container with all components wired together
    """
    ledger = BookingLedger(
        session_factory,
        PriceTable(
            new_consultation=settings.price_new_consultation,
            followup=settings.price_followup,
        ),
        settings.clinic_timezone,
        clock=clock,
    )
    sessions = SessionStore(timeout_minutes=settings.session_timeout_minutes, clock=clock)
    notifier = Notifier(transport)
    scheduler = ClinicScheduler(
        ledger,
        sessions,
        notifier,
        SchedulerConfig(
            enabled=settings.cutoff_enabled,
            hour=settings.cutoff_hour,
            minute=settings.cutoff_minute,
            timezone=settings.clinic_timezone,
        ),
        admin_ids=settings.admin_ids,
        clinic_name=settings.clinic_name,
        currency=settings.currency,
        send_delay_seconds=(
            settings.summary_send_delay_seconds if send_delay_seconds is None else send_delay_seconds
        ),
        clock=clock,
    )
    engine = ConversationEngine(ledger, sessions, scheduler, settings)
    logger.info("Application components wired")
    return Container(
        settings=settings,
        ledger=ledger,
        sessions=sessions,
        scheduler=scheduler,
        engine=engine,
        notifier=notifier,
    )
