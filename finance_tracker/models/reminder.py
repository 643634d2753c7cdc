from sqlalchemy import Column, Integer, String, Boolean, DateTime, Text, ForeignKey, Index
from sqlalchemy.sql import func
from finance_tracker.db.database import Base

REMINDER_TYPES = ("income", "expense", "general", "monthly_summary")
FREQUENCIES = ("daily", "weekly", "monthly", "custom")

class Reminder(Base):
    """Reminder model for storing user-defined recurring reminders."""
    __tablename__ = "reminders"
    __table_args__ = (
        Index("ix_reminders_user_active", "user_id", "is_active"),
    )

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    type = Column(String(20), nullable=False, index=True)  # one of REMINDER_TYPES
    title = Column(String(100), nullable=False)
    message = Column(Text, nullable=False)  # up to 500 characters
    frequency = Column(String(10), nullable=False, default="weekly")  # one of FREQUENCIES
    day_of_week = Column(Integer, nullable=True)  # 0 = Sunday, 6 = Saturday
    day_of_month = Column(Integer, nullable=True)  # 1..31
    time = Column(String(5), nullable=False, default="09:00")  # HH:MM, UTC
    custom_cron = Column(String(100), nullable=True)  # crontab for "custom" frequency
    is_active = Column(Boolean, default=True)
    last_sent = Column(DateTime(timezone=True), nullable=True)
    next_send = Column(DateTime(timezone=True), nullable=True, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    def __repr__(self):
        return f"<Reminder {self.id}: {self.title[:20]}{'...' if len(self.title) > 20 else ''} ({self.frequency})>"
