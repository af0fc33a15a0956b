"""
Clinic Scheduler

Two recurring jobs in clinic-local time:

- daily_summary at the cutoff time (only while the cutoff is enabled):
  each doctor gets today's confirmed patients, admins get a rollup.
- daily_reset at midnight: bookings, sessions and notified flags are
  cleared and admins are told what was removed.

The scheduler owns the runtime SchedulerConfig; the CutoffGate reads it
through an accessor.
"""

import asyncio
import logging
from datetime import date
from typing import TYPE_CHECKING, List, Optional, Sequence, Tuple
from zoneinfo import ZoneInfo

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from pydantic import BaseModel, Field

from clinic_bot import messages
from clinic_bot.models.schemas import OutboundMessage, ResetCounts
from clinic_bot.services.clock import Clock, utc_clock
from clinic_bot.services.cutoff import CutoffGate, SchedulerConfig
from clinic_bot.services.ledger import BookingLedger
from clinic_bot.services.sessions import SessionStore

if TYPE_CHECKING:
    from clinic_bot.bot.transport import Notifier

logger = logging.getLogger(__name__)

SUMMARY_JOB_ID = "daily_summary"
RESET_JOB_ID = "daily_reset"


class SummaryReport(BaseModel):
    day: date
    sent: List[str] = Field(default_factory=list)
    failed: List[str] = Field(default_factory=list)


class ClinicScheduler:
    """
    Recurring jobs for the clinic day.

    Args:
        ledger: Booking ledger shared with the conversation engine
        sessions: Session store cleared by the daily reset
        notifier: Outbound delivery
        config: Initial cutoff configuration
        admin_ids: Chats that receive rollups and reset notices
        clinic_name: Used in the doctor summaries
        currency: Used in the doctor summaries
        send_delay_seconds: Pause between consecutive doctor summaries
        clock: Returns the current aware UTC time
    """

    def __init__(
        self,
        ledger: BookingLedger,
        sessions: SessionStore,
        notifier: "Notifier",
        config: SchedulerConfig,
        admin_ids: Sequence[int] = (),
        clinic_name: str = "",
        currency: str = "",
        send_delay_seconds: float = 1.0,
        clock: Clock = utc_clock,
    ):
        self.ledger = ledger
        self.sessions = sessions
        self.notifier = notifier
        self.config = config
        self.admin_ids = list(admin_ids)
        self.clinic_name = clinic_name
        self.currency = currency
        self.send_delay_seconds = send_delay_seconds
        self.gate = CutoffGate(self.get_config, clock)
        self._scheduler = AsyncIOScheduler(timezone=self.tz)
        self._last_summary_date: Optional[date] = None

    @property
    def tz(self) -> ZoneInfo:
        return ZoneInfo(self.config.timezone)

    def get_config(self) -> SchedulerConfig:
        return self.config

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        self.schedule_jobs()
        self._scheduler.start()
        logger.info("Scheduler started")

    def shutdown(self) -> None:
        if self._scheduler.running:
            self._scheduler.shutdown(wait=False)
            logger.info("Scheduler stopped")

    def schedule_jobs(self) -> None:
        self._schedule_summary()
        self._schedule_reset()

    def get_job(self, job_id: str):
        return self._scheduler.get_job(job_id)

    def job_times(self) -> dict:
        """Next run time of each scheduled job, ISO formatted."""
        times = {}
        for job in self._scheduler.get_jobs():
            next_run = getattr(job, "next_run_time", None)
            times[job.id] = next_run.isoformat() if next_run else None
        return times

    def _remove_job(self, job_id: str) -> None:
        try:
            self._scheduler.remove_job(job_id)
        except JobLookupError:
            pass

    def _schedule_summary(self) -> None:
        # remove first: replace_existing does not cover jobs still pending
        # on a scheduler that has not started
        self._remove_job(SUMMARY_JOB_ID)
        if not self.config.enabled:
            logger.info("Cutoff disabled, daily summary not scheduled")
            return

        self._scheduler.add_job(
            self.run_daily_summary,
            CronTrigger(hour=self.config.hour, minute=self.config.minute, timezone=self.tz),
            id=SUMMARY_JOB_ID,
            name="Daily doctor summary",
            replace_existing=True,
            coalesce=True,
            misfire_grace_time=300,
        )
        logger.info(f"Daily summary scheduled at {self.config.cutoff_label} ({self.config.timezone})")

    def _schedule_reset(self) -> None:
        self._remove_job(RESET_JOB_ID)
        self._scheduler.add_job(
            self.run_daily_reset,
            CronTrigger(hour=0, minute=0, timezone=self.tz),
            id=RESET_JOB_ID,
            name="Daily reset",
            replace_existing=True,
            coalesce=True,
            misfire_grace_time=300,
        )
        logger.info(f"Daily reset scheduled at 00:00 ({self.config.timezone})")

    # ------------------------------------------------------------------
    # Runtime configuration
    # ------------------------------------------------------------------

    def set_cutoff(self, hour: int, minute: int) -> SchedulerConfig:
        """Move the cutoff; this also enables it."""
        self.config.hour = hour
        self.config.minute = minute
        self.config.enabled = True
        self._schedule_summary()
        logger.info(f"Cutoff set to {self.config.cutoff_label}")
        return self.config

    def set_enabled(self, enabled: bool) -> SchedulerConfig:
        self.config.enabled = enabled
        self._schedule_summary()
        logger.info(f"Cutoff {'enabled' if enabled else 'disabled'}")
        return self.config

    # ------------------------------------------------------------------
    # Jobs
    # ------------------------------------------------------------------

    async def run_daily_summary(self) -> Optional[SummaryReport]:
        """
        Scheduled summary dispatch; runs at most once per clinic day.

        Returns:
            The report, or None when today's summary was already sent
        """
        today = self.gate.local_now().date()
        if self._last_summary_date == today:
            logger.warning(f"Summary already sent for {today}, skipping")
            return None
        self._last_summary_date = today

        logger.info("Starting automatic summary")
        report = await self.send_summaries()
        rollup = messages.summary_rollup(
            report.sent,
            report.failed,
            day=str(report.day),
            current_time=self.gate.local_now().strftime("%H:%M"),
        )
        await self._notify_admins(rollup)
        logger.info(
            f"Automatic summary complete: {len(report.sent)} sent, {len(report.failed)} failed"
        )
        return report

    async def send_summaries(self) -> SummaryReport:
        """Send today's summary to every doctor; failures are isolated per doctor."""
        today = self.gate.local_now().date()
        report = SummaryReport(day=today)
        doctors = await self.ledger.list_doctors()
        if not doctors:
            logger.warning("No doctors found for summary")
            return report

        for index, doctor in enumerate(doctors):
            if index and self.send_delay_seconds:
                await asyncio.sleep(self.send_delay_seconds)
            try:
                bookings = await self.ledger.confirmed_today(doctor.id)
                text = messages.doctor_summary(
                    doctor, bookings, str(today), self.clinic_name, self.currency
                )
                delivered = await self.notifier.send(
                    OutboundMessage(chat_id=doctor.contact, text=text)
                )
            except Exception as e:
                logger.error(f"Summary for doctor {doctor.id} failed: {e}", exc_info=True)
                report.failed.append(f"{doctor.name}: {e}")
                continue

            if delivered:
                report.sent.append(f"{doctor.name}: {len(bookings)} patients")
                logger.info(f"Sent summary to {doctor.name} ({len(bookings)} patients)")
            else:
                report.failed.append(f"{doctor.name}: delivery failed")

        return report

    async def run_daily_reset(self) -> ResetCounts:
        """Midnight reset; runs whether or not the cutoff is enabled."""
        counts = await self.ledger.reset_daily()
        sessions = self.sessions.clear()
        logger.info(f"Daily reset cleared {sessions} sessions")
        await self._notify_admins(messages.daily_reset(counts, self.gate.local_now()))
        return counts

    async def manual_cleanup(self) -> Tuple[ResetCounts, int]:
        """Admin-triggered reset; returns the cleared counts and session count."""
        counts = await self.ledger.reset_daily()
        sessions = self.sessions.clear()
        logger.info(f"Manual cleanup cleared {sessions} sessions")
        return counts, sessions

    async def _notify_admins(self, text: str) -> None:
        await self.notifier.deliver(
            OutboundMessage(chat_id=admin_id, text=text) for admin_id in self.admin_ids
        )
