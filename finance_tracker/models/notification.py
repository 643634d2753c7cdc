from sqlalchemy import Column, Integer, String, Boolean, DateTime, Text, ForeignKey, Index
from sqlalchemy.sql import func
from finance_tracker.db.database import Base

NOTIFICATION_TYPES = ("reminder", "transaction", "category", "system")

class Notification(Base):
    """In-app notification written once per successful dispatch."""
    __tablename__ = "notifications"
    __table_args__ = (
        Index("ix_notifications_user_read", "user_id", "is_read"),
    )

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    type = Column(String(20), nullable=False, index=True)  # one of NOTIFICATION_TYPES
    title = Column(String(100), nullable=False)
    message = Column(Text, nullable=False)
    is_read = Column(Boolean, default=False)
    is_email_sent = Column(Boolean, default=False)
    email_sent_at = Column(DateTime(timezone=True), nullable=True)
    action_url = Column(String(255), nullable=True)  # where a click on the notification leads
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    def __repr__(self):
        return f"<Notification {self.id}: {self.title[:20]}{'...' if len(self.title) > 20 else ''}>"
