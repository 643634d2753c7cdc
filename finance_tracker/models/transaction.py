from sqlalchemy import Column, Integer, String, Date, DateTime, Numeric, Text, ForeignKey, Index
from sqlalchemy.sql import func
from finance_tracker.db.database import Base

class Transaction(Base):
    """Income or expense record."""
    __tablename__ = "transactions"
    __table_args__ = (
        Index("ix_transactions_user_date", "user_id", "date"),
    )

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    category_id = Column(Integer, ForeignKey("categories.id"), nullable=False)
    amount = Column(Numeric(10, 2), nullable=False)
    description = Column(String(200), nullable=False)
    type = Column(String(10), nullable=False)  # "income" or "expense"
    date = Column(Date, nullable=False)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    def __repr__(self):
        return f"<Transaction {self.id}: {self.type} {self.amount}>"
