from sqlalchemy import Column, Integer, String, Boolean, DateTime
from sqlalchemy.sql import func
from finance_tracker.db.database import Base

class User(Base):
    """User model; the scheduler only reads it to resolve email addresses."""
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(255), unique=True, index=True, nullable=False)
    first_name = Column(String(50), nullable=True)
    last_name = Column(String(50), nullable=True)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    def __repr__(self):
        return f"<User {self.id}: {self.email}>"
