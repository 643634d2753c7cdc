import logging
from datetime import datetime
from typing import List, Optional
from sqlalchemy import select, update

from finance_tracker.db.database import async_session
from finance_tracker.models.reminder import Reminder

logger = logging.getLogger(__name__)

class ReminderStore:
    """Reads and bookkeeping writes on the reminders table for the scheduler."""

    def __init__(self, session_factory=async_session):
        self.session_factory = session_factory

    async def find_active_reminders(self) -> List[Reminder]:
        """Get all reminders that should have a live job."""
        async with self.session_factory() as session:
            result = await session.execute(
                select(Reminder).where(Reminder.is_active == True)
            )
            return list(result.scalars().all())

    async def find_due_reminders(self, now: datetime) -> List[Reminder]:
        """Get active reminders whose next send time is not after *now*."""
        async with self.session_factory() as session:
            result = await session.execute(
                select(Reminder).where(
                    Reminder.is_active == True,
                    Reminder.next_send <= now
                ).order_by(Reminder.next_send, Reminder.id)
            )
            return list(result.scalars().all())

    async def find_by_id(self, reminder_id: int) -> Optional[Reminder]:
        async with self.session_factory() as session:
            result = await session.execute(
                select(Reminder).where(Reminder.id == reminder_id)
            )
            return result.scalars().first()

    async def update_last_fired(self, reminder_id: int, instant: datetime) -> None:
        async with self.session_factory() as session:
            await session.execute(
                update(Reminder).where(Reminder.id == reminder_id).values(last_sent=instant)
            )
            await session.commit()

    async def update_next_fire_at(self, reminder_id: int, instant: datetime) -> None:
        async with self.session_factory() as session:
            await session.execute(
                update(Reminder).where(Reminder.id == reminder_id).values(next_send=instant)
            )
            await session.commit()
