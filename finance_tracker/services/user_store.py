from typing import Optional
from sqlalchemy import select

from finance_tracker.db.database import async_session
from finance_tracker.models.user import User

class UserStore:
    """Read-only user lookup."""

    def __init__(self, session_factory=async_session):
        self.session_factory = session_factory

    async def find_by_id(self, user_id: int) -> Optional[User]:
        async with self.session_factory() as session:
            result = await session.execute(
                select(User).where(User.id == user_id)
            )
            return result.scalars().first()
