from sqlalchemy import Column, Integer, String, Boolean, DateTime, Text
from sqlalchemy.sql import func
from finance_tracker.db.database import Base

class ReminderTemplate(Base):
    """Admin-curated preset used to seed new reminders."""
    __tablename__ = "reminder_templates"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), nullable=False)
    type = Column(String(20), nullable=False)
    title = Column(String(100), nullable=False)
    message = Column(Text, nullable=False)
    frequency = Column(String(10), nullable=False)
    day_of_week = Column(Integer, nullable=True)
    day_of_month = Column(Integer, nullable=True)
    time = Column(String(5), nullable=False, default="09:00")
    is_default = Column(Boolean, default=False)
    is_active = Column(Boolean, default=True)
    description = Column(Text, nullable=True)
    category = Column(String(50), nullable=True)  # grouping for display
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    def __repr__(self):
        return f"<ReminderTemplate {self.id}: {self.name}>"
