import calendar
import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from finance_tracker.config import APP_URL

logger = logging.getLogger(__name__)

TOP_CATEGORY_LIMIT = 5


@dataclass
class MonthlySummary:
    """Totals for one user and calendar month."""

    income: float = 0.0
    expenses: float = 0.0
    top_categories: List[Dict[str, float]] = field(default_factory=list)

    @property
    def net(self) -> float:
        return self.income - self.expenses


def summarize_transactions(transactions: Iterable, limit: int = TOP_CATEGORY_LIMIT) -> MonthlySummary:
    """
    Total income and expenses and rank spending categories.

    Categories are ranked by summed expense amount, highest first; ties keep
    the order in which the categories were first seen.

    Args:
        transactions: Rows exposing ``amount``, ``type`` and ``category_name``
        limit: Number of categories to keep

    Returns:
        MonthlySummary for the rows
    """
    summary = MonthlySummary()
    category_totals: Dict[str, float] = {}

    for transaction in transactions:
        amount = float(transaction.amount)
        if transaction.type == "income":
            summary.income += amount
        elif transaction.type == "expense":
            summary.expenses += amount
            name = transaction.category_name or "Uncategorized"
            category_totals[name] = category_totals.get(name, 0.0) + amount

    # sorted() is stable, so equal totals stay in first-seen order
    ranked = sorted(category_totals.items(), key=lambda item: item[1], reverse=True)
    summary.top_categories = [{"name": name, "total": total} for name, total in ranked[:limit]]
    return summary


def month_bounds(year: int, month: int) -> Tuple[date, date]:
    """First and last day of a calendar month."""
    return date(year, month, 1), date(year, month, calendar.monthrange(year, month)[1])


def previous_month(instant: datetime) -> Tuple[int, int]:
    if instant.month == 1:
        return instant.year - 1, 12
    return instant.year, instant.month - 1


class ReminderDispatcher:
    """Sends a due reminder: email, in-app notification, then ``last_sent`` bookkeeping.

    Every public method catches and logs its own failures so a scheduler
    callback never sees an exception.
    """

    def __init__(
        self,
        reminder_store,
        user_store,
        transaction_store,
        email_sender,
        notification_sink,
        app_url: str = APP_URL,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.reminder_store = reminder_store
        self.user_store = user_store
        self.transaction_store = transaction_store
        self.email_sender = email_sender
        self.notification_sink = notification_sink
        self.app_url = app_url.rstrip("/")
        self.clock = clock or (lambda: datetime.now(timezone.utc))

    async def dispatch(self, reminder) -> bool:
        """
        Send a reminder to its owner.

        Args:
            reminder: Reminder row (or any object with the same attributes)

        Returns:
            True if the reminder was delivered and ``last_sent`` recorded
        """
        try:
            user = await self.user_store.find_by_id(reminder.user_id)
            if not user:
                logger.error(f"User {reminder.user_id} not found for reminder {reminder.id}")
                return False

            if reminder.type == "monthly_summary":
                year, month = previous_month(self.clock())
                if await self.dispatch_monthly_summary(user.id, year, month) is None:
                    return False
            else:
                email_data = {
                    "title": reminder.title,
                    "message": reminder.message,
                    "appUrl": self.app_url,
                }
                await self.email_sender.send(user.email, "reminder", email_data)
                await self._notify(
                    user.id,
                    type="reminder",
                    title=reminder.title,
                    message=reminder.message,
                    action_url=f"{self.app_url}/transactions/new",
                )

            await self.reminder_store.update_last_fired(reminder.id, self.clock())
            logger.info(f"Sent reminder {reminder.id} to user {user.id}")
            return True

        except Exception as e:
            logger.error(f"Error sending reminder {reminder.id} for user {reminder.user_id}: {str(e)}")
            return False

    async def dispatch_monthly_summary(self, user_id: int, year: int, month: int) -> Optional[MonthlySummary]:
        """
        Email a user the income/expense summary for a month.

        Args:
            user_id: User ID
            year: Calendar year
            month: Month number (1-12)

        Returns:
            The computed summary, or None if it could not be sent
        """
        try:
            user = await self.user_store.find_by_id(user_id)
            if not user:
                logger.error(f"User {user_id} not found for monthly summary {year}-{month:02d}")
                return None

            start, end = month_bounds(year, month)
            transactions = await self.transaction_store.find_for_user_between(user_id, start, end)
            summary = summarize_transactions(transactions)

            month_name = calendar.month_name[month]
            email_data = {
                "month": month_name,
                "year": year,
                "income": summary.income,
                "expenses": summary.expenses,
                "net": summary.net,
                "topCategories": summary.top_categories,
                "appUrl": self.app_url,
            }
            await self.email_sender.send(user.email, "monthlySummary", email_data)
            await self._notify(
                user_id,
                type="system",
                title="Monthly Summary Sent",
                message=f"Your {month_name} {year} finance summary has been sent to your email.",
                action_url=f"{self.app_url}/analytics/monthly/{year}/{month}",
            )

            logger.info(f"Sent {month_name} {year} summary to user {user_id}")
            return summary

        except Exception as e:
            logger.error(f"Error sending monthly summary {year}-{month:02d} for user {user_id}: {str(e)}")
            return None

    async def _notify(self, user_id: int, **notification) -> None:
        # The email already went out; a failed notification write must not undo the dispatch
        try:
            await self.notification_sink.create(user_id=user_id, is_email_sent=True, **notification)
        except Exception as e:
            logger.error(f"Error creating notification for user {user_id}: {str(e)}")
