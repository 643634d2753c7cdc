"""Recurrence rules and the pure next-fire-time calculations behind them.

A reminder's schedule is stored as loose columns (``frequency``, ``time``,
``day_of_week``, ``day_of_month``, ``custom_cron``). This module turns those
columns into one of four rule variants and answers two questions about a rule:

• when is it next due after a reference instant (``next_fire_time``), and
• which APScheduler ``CronTrigger`` fires it natively (``build_trigger``).

Weekdays follow the crontab convention used by the API: 0 = Sunday .. 6 = Saturday,
in both weekly rules and custom expressions (where 7 is also Sunday).
All instants are UTC.

Months that lack the requested day-of-month are skipped, never clamped: a
reminder for the 31st fires in January and March but not in February or
April. This matches what the cron trigger itself does with ``day=31``.
"""
from __future__ import annotations

import calendar
from dataclasses import dataclass
from datetime import datetime, time, timedelta, timezone
from typing import Optional, Union

from apscheduler.triggers.cron import CronTrigger
from dateutil.relativedelta import relativedelta

from finance_tracker.exceptions import InvalidRecurrenceError

# Index is the crontab weekday number (0 = Sunday)
WEEKDAY_NAMES = ("sun", "mon", "tue", "wed", "thu", "fri", "sat")

CUSTOM_FALLBACK = timedelta(hours=1)
DEFAULT_FALLBACK = timedelta(hours=24)


def parse_time_of_day(value: Union[str, time]) -> time:
    """Parse ``HH:MM`` (or ``HH:MM:SS``) into a :class:`datetime.time`."""
    if isinstance(value, time):
        return value.replace(second=0, microsecond=0)
    try:
        parts = [int(part) for part in str(value).split(":")]
        if len(parts) not in (2, 3):
            raise ValueError(value)
        return time(hour=parts[0], minute=parts[1])
    except (TypeError, ValueError):
        raise InvalidRecurrenceError(f"Invalid time of day: {value!r}") from None


@dataclass(frozen=True)
class Daily:
    at: time


@dataclass(frozen=True)
class Weekly:
    day_of_week: int
    at: time

    def __post_init__(self):
        if self.day_of_week is None or not 0 <= self.day_of_week <= 6:
            raise InvalidRecurrenceError(f"day_of_week must be 0-6, got {self.day_of_week!r}")


@dataclass(frozen=True)
class Monthly:
    day_of_month: int
    at: time

    def __post_init__(self):
        if self.day_of_month is None or not 1 <= self.day_of_month <= 31:
            raise InvalidRecurrenceError(f"day_of_month must be 1-31, got {self.day_of_month!r}")


@dataclass(frozen=True)
class Custom:
    """Raw crontab expression. Only its day-of-week field is rewritten for the trigger."""

    expression: str


RecurrenceRule = Union[Daily, Weekly, Monthly, Custom]


def rule_from_fields(
    frequency: Optional[str],
    time_of_day: Union[str, time, None] = None,
    day_of_week: Optional[int] = None,
    day_of_month: Optional[int] = None,
    custom_cron: Optional[str] = None,
) -> Optional[RecurrenceRule]:
    """Build a rule from stored reminder columns.

    Returns ``None`` for an unknown frequency and raises
    :class:`InvalidRecurrenceError` when the fields a known frequency needs are
    missing or out of range.
    """
    if frequency == "custom":
        if not custom_cron or not custom_cron.strip():
            raise InvalidRecurrenceError("custom frequency requires a cron expression")
        return Custom(custom_cron.strip())
    if frequency == "daily":
        return Daily(parse_time_of_day(time_of_day))
    if frequency == "weekly":
        return Weekly(day_of_week, parse_time_of_day(time_of_day))
    if frequency == "monthly":
        return Monthly(day_of_month, parse_time_of_day(time_of_day))
    return None


def rule_from_reminder(reminder) -> Optional[RecurrenceRule]:
    """Build the rule for a Reminder (or ReminderTemplate) row."""
    return rule_from_fields(
        reminder.frequency,
        reminder.time,
        reminder.day_of_week,
        reminder.day_of_month,
        getattr(reminder, "custom_cron", None),
    )


def as_utc(instant: datetime) -> datetime:
    """Treat naive instants as UTC and convert aware ones to UTC."""
    if instant.tzinfo is None:
        return instant.replace(tzinfo=timezone.utc)
    return instant.astimezone(timezone.utc)


def _crontab_weekday(instant: datetime) -> int:
    # isoweekday: Monday = 1 .. Sunday = 7
    return instant.isoweekday() % 7


def next_fire_time(rule: Optional[RecurrenceRule], reference: datetime) -> datetime:
    """Return the next instant strictly after *reference* at which *rule* is due.

    Custom rules only get a bookkeeping estimate (``reference + 1h``); their
    real schedule belongs to the cron trigger. A missing rule falls back to
    ``reference + 24h``.
    """
    reference = as_utc(reference)

    if isinstance(rule, Daily):
        candidate = reference.replace(hour=rule.at.hour, minute=rule.at.minute, second=0, microsecond=0)
        if candidate <= reference:
            candidate += timedelta(days=1)
        return candidate

    if isinstance(rule, Weekly):
        days_ahead = (rule.day_of_week - _crontab_weekday(reference) + 7) % 7
        candidate = reference.replace(hour=rule.at.hour, minute=rule.at.minute, second=0, microsecond=0)
        candidate += timedelta(days=days_ahead)
        if candidate <= reference:
            candidate += timedelta(days=7)
        return candidate

    if isinstance(rule, Monthly):
        year, month = reference.year, reference.month
        while True:
            if rule.day_of_month <= calendar.monthrange(year, month)[1]:
                candidate = datetime(
                    year, month, rule.day_of_month, rule.at.hour, rule.at.minute, tzinfo=timezone.utc
                )
                if candidate > reference:
                    return candidate
            year, month = (year + 1, 1) if month == 12 else (year, month + 1)

    if isinstance(rule, Custom):
        return reference + CUSTOM_FALLBACK

    return reference + DEFAULT_FALLBACK


def advance_after_sweep(reminder, now: datetime) -> Optional[datetime]:
    """Next due instant recorded after the catch-up sweep fires a reminder.

    Daily and weekly reminders move a fixed 24h / 7d from *now*. Monthly ones
    move to their next real occurrence, so a short month is skipped here just
    as the cron trigger skips it; a monthly row without a usable day moves one
    calendar month instead. Any other frequency returns ``None`` and keeps its
    current value.
    """
    now = as_utc(now)
    if reminder.frequency == "daily":
        return now + timedelta(days=1)
    if reminder.frequency == "weekly":
        return now + timedelta(days=7)
    if reminder.frequency == "monthly":
        try:
            return next_fire_time(rule_from_reminder(reminder), now)
        except InvalidRecurrenceError:
            return now + relativedelta(months=1)
    return None


def cron_expression(rule: RecurrenceRule) -> str:
    """Crontab rendering of *rule*, used for logs and API responses."""
    if isinstance(rule, Custom):
        return rule.expression
    if isinstance(rule, Daily):
        return f"{rule.at.minute} {rule.at.hour} * * *"
    if isinstance(rule, Weekly):
        return f"{rule.at.minute} {rule.at.hour} * * {rule.day_of_week}"
    if isinstance(rule, Monthly):
        return f"{rule.at.minute} {rule.at.hour} {rule.day_of_month} * *"
    raise InvalidRecurrenceError(f"Unsupported rule: {rule!r}")


def build_trigger(rule: RecurrenceRule) -> CronTrigger:
    """Translate *rule* into a UTC ``CronTrigger``.

    Raises :class:`InvalidRecurrenceError` for an unparseable custom expression.
    """
    if isinstance(rule, Daily):
        return CronTrigger(minute=rule.at.minute, hour=rule.at.hour, timezone="UTC")
    if isinstance(rule, Weekly):
        return CronTrigger(
            minute=rule.at.minute,
            hour=rule.at.hour,
            day_of_week=WEEKDAY_NAMES[rule.day_of_week],
            timezone="UTC",
        )
    if isinstance(rule, Monthly):
        return CronTrigger(minute=rule.at.minute, hour=rule.at.hour, day=rule.day_of_month, timezone="UTC")
    if isinstance(rule, Custom):
        fields = rule.expression.split()
        if len(fields) != 5:
            raise InvalidRecurrenceError(f"Invalid cron expression {rule.expression!r}: expected 5 fields")
        minute, hour, day, month, day_of_week = fields
        day_of_week = crontab_day_of_week(day_of_week)
        try:
            return CronTrigger(
                minute=minute, hour=hour, day=day, month=month, day_of_week=day_of_week, timezone="UTC"
            )
        except ValueError as e:
            raise InvalidRecurrenceError(f"Invalid cron expression {rule.expression!r}: {e}") from e
    raise InvalidRecurrenceError(f"Unsupported rule: {rule!r}")


def crontab_day_of_week(field: str) -> str:
    """Rewrite a crontab day-of-week field with weekday names.

    Crontab counts from Sunday (0 and 7 both mean Sunday) while APScheduler
    counts from Monday, so numeric days are expanded to names: ``1-5`` becomes
    ``mon,tue,wed,thu,fri`` and ``*/2`` becomes ``sun,tue,thu,sat``. Tokens
    that are already names are left for the trigger to parse.
    """
    if field == "*":
        return field

    names = []
    for token in field.split(","):
        expression, _, step = token.partition("/")
        if expression != "*" and not expression[:1].isdigit():
            names.append(token)
            continue

        try:
            if expression == "*":
                first, last = 0, 6
            else:
                first, _, last = expression.partition("-")
                first = int(first)
                last = int(last) if last else (7 if step else first)
            step = int(step) if step else 1
        except ValueError:
            raise InvalidRecurrenceError(f"Invalid day of week {token!r}") from None

        if not 0 <= first <= last <= 7 or step < 1:
            raise InvalidRecurrenceError(f"Invalid day of week {token!r}")

        for day in range(first, last + 1, step):
            name = WEEKDAY_NAMES[day % 7]
            if name not in names:
                names.append(name)

    return ",".join(names)


def upcoming_fire_time(rule: Optional[RecurrenceRule], reference: datetime) -> datetime:
    """Like :func:`next_fire_time`, but asks the cron trigger for custom rules.

    Used to record the real next occurrence after a native fire, where the
    one-hour estimate would make the catch-up sweep see a custom reminder as
    overdue.
    """
    if isinstance(rule, Custom):
        try:
            upcoming = build_trigger(rule).get_next_fire_time(None, as_utc(reference))
        except InvalidRecurrenceError:
            upcoming = None
        if upcoming is not None:
            return as_utc(upcoming)
    return next_fire_time(rule, reference)
