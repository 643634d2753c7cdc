import logging
from datetime import datetime, timezone
from typing import Optional

from finance_tracker.db.database import async_session
from finance_tracker.models.notification import Notification

logger = logging.getLogger(__name__)

class NotificationService:
    """Creates in-app notifications. Reading and marking them read happens elsewhere."""

    def __init__(self, session_factory=async_session):
        self.session_factory = session_factory

    async def create(
        self,
        user_id: int,
        type: str,
        title: str,
        message: str,
        action_url: Optional[str] = None,
        is_email_sent: bool = False,
    ) -> Notification:
        """
        Create a notification for a user.

        Args:
            user_id: Owning user
            type: One of reminder, transaction, category, system
            title: Short title (up to 100 characters)
            message: Body text (up to 500 characters)
            action_url: Where a click on the notification leads
            is_email_sent: Whether an email went out alongside it

        Returns:
            Created notification
        """
        async with self.session_factory() as session:
            notification = Notification(
                user_id=user_id,
                type=type,
                title=title[:100],
                message=message[:500],
                action_url=action_url,
                is_email_sent=is_email_sent,
                email_sent_at=datetime.now(timezone.utc) if is_email_sent else None,
            )
            session.add(notification)
            await session.commit()
            await session.refresh(notification)

            logger.info(f"Created {type} notification {notification.id} for user {user_id}")
            return notification
