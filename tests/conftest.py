"""Shared fixtures and in-memory collaborators for the scheduler tests."""
from __future__ import annotations

import os

# Keep the module-level engine off PostgreSQL during tests
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")

from datetime import datetime, timezone
from types import SimpleNamespace

import pytest

from finance_tracker.scheduler.dispatch import ReminderDispatcher
from finance_tracker.services.transaction_store import TransactionRow

NOW = datetime(2024, 4, 2, 9, 0, tzinfo=timezone.utc)  # a Tuesday


def make_reminder(**overrides):
    fields = dict(
        id=1,
        user_id=1,
        type="expense",
        title="Log your expenses",
        message="Record what you spent today.",
        frequency="daily",
        time="20:00",
        day_of_week=None,
        day_of_month=None,
        custom_cron=None,
        is_active=True,
        last_sent=None,
        next_send=None,
    )
    fields.update(overrides)
    return SimpleNamespace(**fields)


class FakeReminderStore:
    def __init__(self, reminders=()):
        self.reminders = {reminder.id: reminder for reminder in reminders}
        self.last_fired: dict = {}
        self.next_fire_at: dict = {}
        self.fail_loading = False

    async def find_active_reminders(self):
        if self.fail_loading:
            raise RuntimeError("database unavailable")
        return [r for r in self.reminders.values() if r.is_active]

    async def find_due_reminders(self, now):
        if self.fail_loading:
            raise RuntimeError("database unavailable")
        return [
            r for r in self.reminders.values()
            if r.is_active and r.next_send is not None and r.next_send <= now
        ]

    async def find_by_id(self, reminder_id):
        return self.reminders.get(reminder_id)

    async def update_last_fired(self, reminder_id, instant):
        self.last_fired[reminder_id] = instant
        if reminder_id in self.reminders:
            self.reminders[reminder_id].last_sent = instant

    async def update_next_fire_at(self, reminder_id, instant):
        self.next_fire_at[reminder_id] = instant
        if reminder_id in self.reminders:
            self.reminders[reminder_id].next_send = instant


class FakeUserStore:
    def __init__(self, users=()):
        self.users = {user.id: user for user in users}

    async def find_by_id(self, user_id):
        return self.users.get(user_id)


class FakeTransactionStore:
    def __init__(self, rows=()):
        self.rows = list(rows)
        self.queries: list = []

    async def find_for_user_between(self, user_id, start, end):
        self.queries.append((user_id, start, end))
        return list(self.rows)


class FakeEmailSender:
    def __init__(self):
        self.sent: list = []
        self.failing_addresses: set = set()

    async def send(self, to, kind, data):
        if to in self.failing_addresses:
            raise ConnectionError(f"SMTP refused {to}")
        self.sent.append((to, kind, data))
        return f"<{len(self.sent)}@test>"


class FakeNotificationSink:
    def __init__(self):
        self.created: list = []
        self.fail = False

    async def create(self, **notification):
        if self.fail:
            raise RuntimeError("notifications table locked")
        self.created.append(notification)
        return SimpleNamespace(id=len(self.created), **notification)


@pytest.fixture
def users():
    return FakeUserStore([
        SimpleNamespace(id=1, email="alice@example.com"),
        SimpleNamespace(id=2, email="bob@example.com"),
    ])


@pytest.fixture
def reminder_store():
    return FakeReminderStore()


@pytest.fixture
def transactions():
    return FakeTransactionStore()


@pytest.fixture
def email_sender():
    return FakeEmailSender()


@pytest.fixture
def notifications():
    return FakeNotificationSink()


@pytest.fixture
def dispatcher(reminder_store, users, transactions, email_sender, notifications):
    return ReminderDispatcher(
        reminder_store=reminder_store,
        user_store=users,
        transaction_store=transactions,
        email_sender=email_sender,
        notification_sink=notifications,
        app_url="https://finance.example.com",
        clock=lambda: NOW,
    )


def row(amount, type_, category=None):
    return TransactionRow(amount, type_, category)
