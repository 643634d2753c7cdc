import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from finance_tracker.config import APP_URL, CATCH_UP_CRON
from finance_tracker.db.database import async_session
from finance_tracker.exceptions import InvalidRecurrenceError
from finance_tracker.scheduler.catch_up import CATCH_UP_JOB, CatchUpSweeper
from finance_tracker.scheduler.dispatch import MonthlySummary, ReminderDispatcher
from finance_tracker.scheduler.recurrence import Custom, rule_from_reminder, upcoming_fire_time
from finance_tracker.scheduler.registry import JobRegistry
from finance_tracker.services.email_service import EmailSender
from finance_tracker.services.notification_service import NotificationService
from finance_tracker.services.reminder_store import ReminderStore
from finance_tracker.services.transaction_store import TransactionStore
from finance_tracker.services.user_store import UserStore

logger = logging.getLogger(__name__)


class SchedulerState(Enum):
    STOPPED = "stopped"
    STARTING = "starting"
    RUNNING = "running"


class ReminderScheduler:
    """Class to schedule and manage recurring reminders.

    One instance per process. API handlers call ``add_reminder``,
    ``update_reminder`` and ``remove_reminder`` after they change the
    reminders table; each call touches only that reminder's job.
    """

    def __init__(
        self,
        reminder_store,
        dispatcher: ReminderDispatcher,
        catch_up_cron: str = CATCH_UP_CRON,
        scheduler: Optional[AsyncIOScheduler] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        """
        Initialize the scheduler.

        Args:
            reminder_store: Source of reminders and target of next-send bookkeeping
            dispatcher: Pipeline that delivers a due reminder
            catch_up_cron: Crontab (UTC) for the daily catch-up sweep
            scheduler: APScheduler instance; a UTC AsyncIOScheduler by default
            clock: Returns the current UTC time
        """
        self.reminder_store = reminder_store
        self.dispatcher = dispatcher
        self.catch_up_cron = catch_up_cron
        self.clock = clock or (lambda: datetime.now(timezone.utc))
        self.scheduler = scheduler or AsyncIOScheduler(timezone="UTC")
        self.registry = JobRegistry(self.scheduler)
        self.sweeper = CatchUpSweeper(reminder_store, dispatcher, clock=self.clock)
        self.state = SchedulerState.STOPPED

    @property
    def running(self) -> bool:
        return self.state is SchedulerState.RUNNING

    async def start(self):
        """Start the scheduler: catch-up sweep first, then one job per active reminder."""
        if self.state is not SchedulerState.STOPPED:
            logger.warning(f"Reminder scheduler is already {self.state.value}")
            return

        self.state = SchedulerState.STARTING
        if not self.scheduler.running:
            self.scheduler.start()

        self.registry.register(CATCH_UP_JOB, Custom(self.catch_up_cron), self.sweeper.sweep)

        try:
            reminders = await self.reminder_store.find_active_reminders()
        except Exception as e:
            logger.error(f"Error loading reminders: {str(e)}")
            reminders = []

        # stop() may have run while the reminders were loading
        if self.state is not SchedulerState.STARTING:
            logger.warning("Reminder scheduler was stopped during start-up, not scheduling reminders")
            return

        scheduled =sum(1 for reminder in reminders if self.schedule_reminder(reminder))
        self.state = SchedulerState.RUNNING
        logger.info(f"Reminder scheduler started with {scheduled} of {len(reminders)} active reminders")

    def stop(self):
        """Cancel every job and stop the scheduler. Safe to call repeatedly."""
        if self.state is SchedulerState.STOPPED:
            logger.warning("Reminder scheduler is already stopped")
            return

        removed = self.registry.cancel_all()
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
        self.state = SchedulerState.STOPPED
        logger.info(f"Reminder scheduler stopped, {removed} jobs cancelled")

    def schedule_reminder(self, reminder) -> bool:
        """
        Register (or replace) the job for a reminder.

        Args:
            reminder: Reminder row

        Returns:
            True if a job is now live for the reminder
        """
        if not reminder.is_active:
            self.registry.cancel(reminder.id)
            return False

        try:
            rule = rule_from_reminder(reminder)
        except InvalidRecurrenceError as e:
            logger.error(f"Invalid schedule for reminder {reminder.id}: {str(e)}")
            self.registry.cancel(reminder.id)
            return False

        if rule is None:
            logger.warning(f"Unknown frequency {reminder.frequency!r} for reminder {reminder.id}")
            self.registry.cancel(reminder.id)
            return False

        return self.registry.register(reminder.id, rule, self._fire, reminder.id) is not None

    def add_reminder(self, reminder) -> bool:
        """Schedule a newly created reminder."""
        return self.schedule_reminder(reminder)

    def update_reminder(self, reminder) -> bool:
        """Reschedule a reminder after any of its stored fields changed."""
        self.registry.cancel(reminder.id)
        if reminder.is_active:
            return self.schedule_reminder(reminder)
        return False

    def remove_reminder(self, reminder_id: int) -> bool:
        """Cancel a reminder's job. The caller deletes the row."""
        return self.registry.cancel(reminder_id)

    async def send_reminder(self, reminder) -> bool:
        """Send a reminder now, outside its schedule."""
        return await self.dispatcher.dispatch(reminder)

    async def send_monthly_summary(self, user_id: int, year: int, month: int) -> Optional[MonthlySummary]:
        """Send a user's monthly summary now."""
        return await self.dispatcher.dispatch_monthly_summary(user_id, year, month)

    async def _fire(self, reminder_id: int):
        """Job callback: reload the reminder, send it, record its next occurrence."""
        try:
            reminder = await self.reminder_store.find_by_id(reminder_id)
        except Exception as e:
            logger.error(f"Error loading reminder {reminder_id}: {str(e)}")
            return

        if reminder is None or not reminder.is_active:
            logger.warning(f"Reminder {reminder_id} is gone or inactive, removing its job")
            self.registry.cancel(reminder_id)
            return

        if not await self.dispatcher.dispatch(reminder):
            return

        # Move next_send past this occurrence so the catch-up sweep does not resend it
        try:
            next_send = upcoming_fire_time(rule_from_reminder(reminder), self.clock())
            await self.reminder_store.update_next_fire_at(reminder.id, next_send)
        except Exception as e:
            logger.error(f"Error updating next send time for reminder {reminder.id}: {str(e)}")


def setup_scheduler(session_factory=async_session, email_sender: Optional[EmailSender] = None) -> ReminderScheduler:
    """
    Set up the reminder scheduler with database-backed collaborators.

    Args:
        session_factory: Async session factory for the stores
        email_sender: Email transport; SMTP from the environment by default

    Returns:
        Configured ReminderScheduler
    """
    reminder_store = ReminderStore(session_factory)
    dispatcher = ReminderDispatcher(
        reminder_store=reminder_store,
        user_store=UserStore(session_factory),
        transaction_store=TransactionStore(session_factory),
        email_sender=email_sender or EmailSender(),
        notification_sink=NotificationService(session_factory),
        app_url=APP_URL,
    )
    return ReminderScheduler(reminder_store, dispatcher)
