from datetime import date
from decimal import Decimal
from typing import List, NamedTuple, Optional
from sqlalchemy import select

from finance_tracker.db.database import async_session
from finance_tracker.models.category import Category
from finance_tracker.models.transaction import Transaction

class TransactionRow(NamedTuple):
    amount: Decimal
    type: str
    category_name: Optional[str]

class TransactionStore:
    """Read-only transaction queries used for summaries."""

    def __init__(self, session_factory=async_session):
        self.session_factory = session_factory

    async def find_for_user_between(self, user_id: int, start: date, end: date) -> List[TransactionRow]:
        """Get a user's transactions dated within [start, end], oldest first."""
        async with self.session_factory() as session:
            result = await session.execute(
                select(Transaction.amount, Transaction.type, Category.name)
                .join(Category, Category.id == Transaction.category_id, isouter=True)
                .where(
                    Transaction.user_id == user_id,
                    Transaction.date >= start,
                    Transaction.date <= end
                )
                .order_by(Transaction.date, Transaction.id)
            )
            return [TransactionRow(amount, type_, name) for amount, type_, name in result.all()]
