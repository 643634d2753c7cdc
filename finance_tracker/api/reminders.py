import logging
from datetime import datetime, timezone
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Path
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from finance_tracker.api.deps import get_current_user_id, get_reminder_scheduler
from finance_tracker.api.schemas import (
    ActionResponse,
    MonthlySummaryResponse,
    ReminderCreate,
    ReminderResponse,
    ReminderUpdate,
)
from finance_tracker.db.database import get_db
from finance_tracker.exceptions import InvalidRecurrenceError
from finance_tracker.models.reminder import Reminder
from finance_tracker.scheduler.recurrence import Custom, build_trigger, rule_from_fields, upcoming_fire_time
from finance_tracker.scheduler.reminder import ReminderScheduler

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/reminders", tags=["reminders"])

SCHEDULE_FIELDS = ("frequency", "time", "day_of_week", "day_of_month", "custom_cron")


def compute_next_send(frequency, time, day_of_week=None, day_of_month=None, custom_cron=None) -> datetime:
    """Validate the schedule fields and return the first send time, or raise 400."""
    try:
        rule = rule_from_fields(frequency, time, day_of_week, day_of_month, custom_cron)
        if isinstance(rule, Custom):
            build_trigger(rule)
    except InvalidRecurrenceError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return upcoming_fire_time(rule, datetime.now(timezone.utc))


def to_response(reminder: Reminder, scheduler: ReminderScheduler) -> ReminderResponse:
    response = ReminderResponse.model_validate(reminder)
    response.scheduled = reminder.id in scheduler.registry
    return response


async def get_owned_reminder(session: AsyncSession, reminder_id: int, user_id: int) -> Reminder:
    result = await session.execute(
        select(Reminder).where(Reminder.id == reminder_id, Reminder.user_id == user_id)
    )
    reminder = result.scalars().first()
    if not reminder:
        raise HTTPException(status_code=404, detail="Reminder not found")
    return reminder


@router.post("", response_model=ReminderResponse, status_code=201)
async def create_reminder(
    payload: ReminderCreate,
    db: AsyncSession = Depends(get_db),
    user_id: int = Depends(get_current_user_id),
    scheduler: ReminderScheduler = Depends(get_reminder_scheduler),
):
    next_send = compute_next_send(
        payload.frequency, payload.time, payload.day_of_week, payload.day_of_month, payload.custom_cron
    )

    reminder = Reminder(user_id=user_id, next_send=next_send, is_active=True, **payload.model_dump())
    db.add(reminder)
    await db.commit()
    await db.refresh(reminder)

    scheduler.add_reminder(reminder)
    logger.info(f"Created reminder {reminder.id} for user {user_id}")
    return to_response(reminder, scheduler)


@router.get("", response_model=List[ReminderResponse])
async def list_reminders(
    type: Optional[str] = None,
    is_active: Optional[bool] = None,
    db: AsyncSession = Depends(get_db),
    user_id: int = Depends(get_current_user_id),
    scheduler: ReminderScheduler = Depends(get_reminder_scheduler),
):
    query = select(Reminder).where(Reminder.user_id == user_id)
    if type:
        query = query.where(Reminder.type == type)
    if is_active is not None:
        query = query.where(Reminder.is_active == is_active)

    result = await db.execute(query.order_by(Reminder.created_at.desc(), Reminder.id.desc()))
    return [to_response(reminder, scheduler) for reminder in result.scalars().all()]


@router.get("/{reminder_id}", response_model=ReminderResponse)
async def get_reminder(
    reminder_id: int,
    db: AsyncSession = Depends(get_db),
    user_id: int = Depends(get_current_user_id),
    scheduler: ReminderScheduler = Depends(get_reminder_scheduler),
):
    reminder = await get_owned_reminder(db, reminder_id, user_id)
    return to_response(reminder, scheduler)


@router.put("/{reminder_id}", response_model=ReminderResponse)
async def update_reminder(
    reminder_id: int,
    payload: ReminderUpdate,
    db: AsyncSession = Depends(get_db),
    user_id: int = Depends(get_current_user_id),
    scheduler: ReminderScheduler = Depends(get_reminder_scheduler),
):
    reminder = await get_owned_reminder(db, reminder_id, user_id)
    changes = payload.model_dump(exclude_unset=True, exclude_none=True)

    schedule_changed = any(
        field in changes and changes[field] != getattr(reminder, field) for field in SCHEDULE_FIELDS
    )
    if schedule_changed:
        merged = {field: changes.get(field, getattr(reminder, field)) for field in SCHEDULE_FIELDS}
        changes["next_send"] = compute_next_send(
            merged["frequency"], merged["time"], merged["day_of_week"], merged["day_of_month"], merged["custom_cron"]
        )

    for field, value in changes.items():
        setattr(reminder, field, value)
    await db.commit()
    await db.refresh(reminder)

    scheduler.update_reminder(reminder)
    return to_response(reminder, scheduler)


@router.delete("/{reminder_id}", response_model=ActionResponse)
async def delete_reminder(
    reminder_id: int,
    db: AsyncSession = Depends(get_db),
    user_id: int = Depends(get_current_user_id),
    scheduler: ReminderScheduler = Depends(get_reminder_scheduler),
):
    reminder = await get_owned_reminder(db, reminder_id, user_id)

    scheduler.remove_reminder(reminder.id)
    await db.delete(reminder)
    await db.commit()

    return ActionResponse(success=True, message="Reminder deleted successfully")


@router.post("/{reminder_id}/test", response_model=ActionResponse)
async def send_test_reminder(
    reminder_id: int,
    db: AsyncSession = Depends(get_db),
    user_id: int = Depends(get_current_user_id),
    scheduler: ReminderScheduler = Depends(get_reminder_scheduler),
):
    reminder = await get_owned_reminder(db, reminder_id, user_id)

    if not await scheduler.send_reminder(reminder):
        raise HTTPException(status_code=502, detail="Failed to send test reminder")
    return ActionResponse(success=True, message="Test reminder sent successfully")


@router.post("/monthly-summary/{year}/{month}", response_model=MonthlySummaryResponse)
async def send_monthly_summary(
    year: int = Path(..., ge=2000, le=2100),
    month: int = Path(..., ge=1, le=12),
    user_id: int = Depends(get_current_user_id),
    scheduler: ReminderScheduler = Depends(get_reminder_scheduler),
):
    summary = await scheduler.send_monthly_summary(user_id, year, month)
    if summary is None:
        raise HTTPException(status_code=502, detail="Failed to send monthly summary")

    return MonthlySummaryResponse(
        year=year,
        month=month,
        income=summary.income,
        expenses=summary.expenses,
        net=summary.net,
        top_categories=summary.top_categories,
    )
