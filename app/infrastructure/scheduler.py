"""
APScheduler setup with persistent job store for delayed nudges and
the recurring follow-up and cleanup jobs.
"""

import logging
from datetime import timedelta
from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.jobstores.sqlalchemy import SQLAlchemyJobStore
from apscheduler.triggers.date import DateTrigger
from apscheduler.triggers.interval import IntervalTrigger

from app.config.settings import get_settings
from app.utils.time import aware_utcnow

logger = logging.getLogger(__name__)
settings = get_settings()

FOLLOW_UP_JOB_ID = "follow_up_pass"
CLEANUP_JOB_ID = "cleanup_sent_numbers"

# Global scheduler instance
scheduler: Optional[AsyncIOScheduler] = None


def get_scheduler() -> AsyncIOScheduler:
    """Get or create the scheduler instance."""
    global scheduler

    if scheduler is None:
        # Jobs survive restarts in sqlite
        jobstores = {
            'default': SQLAlchemyJobStore(url=settings.jobs_database_url)
        }

        # Jobs that came due while the process was down still run on restart
        job_defaults = {
            'coalesce': True,
            'misfire_grace_time': None
        }

        scheduler = AsyncIOScheduler(
            jobstores=jobstores,
            job_defaults=job_defaults,
            timezone=settings.timezone
        )

    return scheduler


async def start_scheduler() -> None:
    """Start the scheduler."""
    sched = get_scheduler()
    if not sched.running:
        sched.start()
        logger.info("Scheduler started")


async def stop_scheduler() -> None:
    """Stop the scheduler gracefully."""
    global scheduler
    if scheduler and scheduler.running:
        scheduler.shutdown(wait=True)
        logger.info("Scheduler stopped")


def register_periodic_jobs(sched: Optional[AsyncIOScheduler] = None) -> None:
    """Register the recurring follow-up pass and registry cleanup."""
    sched = sched or get_scheduler()

    if settings.enable_follow_up_schedule:
        sched.add_job(
            run_follow_up_pass,
            trigger=IntervalTrigger(minutes=settings.follow_up_interval_minutes),
            id=FOLLOW_UP_JOB_ID,
            replace_existing=True,
        )
        logger.info(f"Follow-up pass scheduled every {settings.follow_up_interval_minutes} min")

    if settings.enable_cleanup_schedule:
        sched.add_job(
            cleanup_sent_numbers,
            trigger=IntervalTrigger(minutes=settings.cleanup_interval_minutes),
            id=CLEANUP_JOB_ID,
            replace_existing=True,
        )
        logger.info(f"Sent-number cleanup scheduled every {settings.cleanup_interval_minutes} min")


class NudgeScheduler:
    """Schedules delayed messages as persistent one-off jobs."""

    def __init__(self, sched: Optional[AsyncIOScheduler] = None):
        self._sched = sched

    @property
    def sched(self) -> AsyncIOScheduler:
        return self._sched or get_scheduler()

    async def schedule(self, recipient: str, message: str, fire_after: timedelta) -> bool:
        """
        Schedule a message to be sent once the delay has passed.

        Args:
            recipient: Local mobile number
            message: Message body
            fire_after: Delay from now

        Returns:
            True if the job was stored
        """
        run_date = aware_utcnow() + fire_after
        job_id = f"nudge_{recipient}_{int(fire_after.total_seconds())}"

        try:
            self.sched.add_job(
                send_delayed_message,
                trigger=DateTrigger(run_date=run_date),
                id=job_id,
                replace_existing=True,
                coalesce=True,
                misfire_grace_time=None,
                kwargs={
                    'recipient': recipient,
                    'message': message
                }
            )
            logger.info(f"Scheduled nudge {job_id} for {run_date}")
            return True
        except Exception as e:
            logger.exception(f"Failed to schedule nudge for {recipient}: {e}")
            return False


async def send_delayed_message(recipient: str, message: str) -> None:
    """
    Send a scheduled nudge.

    This function is called by the scheduler at the scheduled time.
    """
    from app.infrastructure.chat_gateway import get_chat_gateway

    logger.info(f"Sending delayed message to {recipient}")

    try:
        result = await get_chat_gateway().send_message(recipient, message)
        if result.success:
            logger.info(f"Delayed message sent to {recipient}")
        else:
            logger.error(f"Delayed message to {recipient} failed: {result.error}")
    except Exception as e:
        logger.exception(f"Error sending delayed message: {e}")


async def run_follow_up_pass() -> None:
    """Run one orchestration pass on the recurring schedule."""
    from app.usecases.follow_up_service import build_follow_up_orchestrator

    try:
        report = await build_follow_up_orchestrator().run_once()
        logger.info(f"Follow-up pass finished: {report.message} (sent {report.sent_count})")
    except Exception as e:
        logger.exception(f"Error running follow-up pass: {e}")


async def cleanup_sent_numbers() -> None:
    """Evict sent numbers whose suppression window has ended."""
    from app.infrastructure.database import async_session_factory
    from app.usecases.sent_registry import SentRegistry

    try:
        registry = SentRegistry(async_session_factory)
        await registry.evict_older_than(timedelta(minutes=settings.suppression_window_minutes))
    except Exception as e:
        logger.exception(f"Error cleaning up sent numbers: {e}")
