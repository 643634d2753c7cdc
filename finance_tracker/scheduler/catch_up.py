import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Optional

from finance_tracker.scheduler.recurrence import advance_after_sweep, as_utc

logger = logging.getLogger(__name__)

CATCH_UP_JOB = "daily_check"


@dataclass
class SweepResult:
    due: int = 0
    dispatched: int = 0
    skipped: int = 0
    failed: int = 0


def already_fired(reminder) -> bool:
    """True if ``last_sent`` shows the due occurrence was delivered by its own job."""
    if reminder.last_sent is None or reminder.next_send is None:
        return False
    return as_utc(reminder.last_sent) >= as_utc(reminder.next_send)


class CatchUpSweeper:
    """Fires every active reminder whose ``next_send`` has passed.

    Runs once a day from the scheduler and covers fires missed while the
    process was down. Each reminder is handled on its own: a failure is
    logged and the sweep moves on to the next one.
    """

    def __init__(self, reminder_store, dispatcher, clock: Optional[Callable[[], datetime]] = None):
        self.reminder_store = reminder_store
        self.dispatcher = dispatcher
        self.clock = clock or (lambda: datetime.now(timezone.utc))

    async def sweep(self, now: Optional[datetime] = None) -> SweepResult:
        now = now or self.clock()
        result = SweepResult()
        logger.info("Running daily reminder check")

        try:
            reminders = await self.reminder_store.find_due_reminders(now)
        except Exception as e:
            logger.error(f"Error loading due reminders: {str(e)}")
            return result

        result.due = len(reminders)
        for reminder in reminders:
            try:
                if already_fired(reminder):
                    logger.info(f"Reminder {reminder.id} already sent at {reminder.last_sent}, skipping")
                    result.skipped += 1
                elif await self.dispatcher.dispatch(reminder):
                    result.dispatched += 1
                else:
                    result.failed += 1

                next_send = advance_after_sweep(reminder, now)
                if next_send is not None:
                    await self.reminder_store.update_next_fire_at(reminder.id, next_send)
            except Exception as e:
                result.failed += 1
                logger.error(f"Error processing due reminder {reminder.id}: {str(e)}")

        logger.info(
            f"Processed {result.due} due reminders: {result.dispatched} sent, "
            f"{result.skipped} skipped, {result.failed} failed"
        )
        return result
