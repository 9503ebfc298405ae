import logging
from typing import Any, Dict

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from app.core.config import settings
from app.db.base import SessionLocal
from app.services.messaging import get_messaging_service
from app.services.reminder_dispatch import ReminderDispatcher

logger = logging.getLogger(__name__)


class SchedulerService:
    """In-process trigger for the reminder job.

    Production deployments call ``GET /api/cron/reminders`` from an external
    cron; this is for single-process setups without one and only starts when
    ``local_scheduler_enabled`` is set.
    """

    def __init__(self):
        self.scheduler = AsyncIOScheduler(timezone="UTC")
        self._setup_jobs()

    def _setup_jobs(self):
        """Set up all scheduled jobs"""
        self.scheduler.add_job(
            func=self.dispatch_reminders,
            trigger=IntervalTrigger(seconds=settings.local_scheduler_interval_s),
            id="habit_reminder_dispatch",
            name="Habit Reminder Dispatch",
            replace_existing=True,
            max_instances=1,
            coalesce=True
        )
        logger.info("Scheduled jobs configured")

    def start(self):
        """Start the scheduler if enabled"""
        if not settings.local_scheduler_enabled:
            logger.info("Local scheduler disabled, expecting external cron trigger")
            return
        try:
            self.scheduler.start()
            logger.info("Scheduler started successfully")
        except Exception as e:
            logger.error(f"Failed to start scheduler: {e}")

    def shutdown(self):
        """Shutdown the scheduler"""
        if not self.scheduler.running:
            return
        try:
            self.scheduler.shutdown(wait=True)
            logger.info("Scheduler shut down successfully")
        except Exception as e:
            logger.error(f"Failed to shutdown scheduler: {e}")

    async def dispatch_reminders(self) -> Dict[str, Any]:
        """Run one reminder pass with a fresh session"""
        db = SessionLocal()
        try:
            return await ReminderDispatcher(db, get_messaging_service()).run()
        except Exception as e:
            logger.error(f"Reminder dispatch job failed: {e}")
            return {"sent": 0, "errors": [f"Critical error: {e}"]}
        finally:
            db.close()


scheduler_service = SchedulerService()
