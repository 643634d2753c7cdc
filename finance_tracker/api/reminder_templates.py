import logging
from datetime import datetime, timezone
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from finance_tracker.api.deps import get_current_user_id, get_reminder_scheduler
from finance_tracker.api.reminders import to_response
from finance_tracker.api.schemas import ReminderResponse, ReminderTemplateResponse
from finance_tracker.db.database import get_db
from finance_tracker.exceptions import InvalidRecurrenceError
from finance_tracker.models.reminder import Reminder
from finance_tracker.models.reminder_template import ReminderTemplate
from finance_tracker.scheduler.recurrence import next_fire_time, rule_from_reminder
from finance_tracker.scheduler.reminder import ReminderScheduler

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/reminder-templates", tags=["reminder-templates"])


def reminder_from_template(template: ReminderTemplate, user_id: int, now: datetime) -> Reminder:
    """Seed a new active reminder from a template's schedule and wording."""
    return Reminder(
        user_id=user_id,
        type=template.type,
        title=template.title,
        message=template.message,
        frequency=template.frequency,
        day_of_week=template.day_of_week,
        day_of_month=template.day_of_month,
        time=template.time,
        is_active=True,
        next_send=next_fire_time(rule_from_reminder(template), now),
    )


async def get_active_template(session: AsyncSession, template_id: int) -> ReminderTemplate:
    result = await session.execute(
        select(ReminderTemplate).where(
            ReminderTemplate.id == template_id,
            ReminderTemplate.is_active == True
        )
    )
    template = result.scalars().first()
    if not template:
        raise HTTPException(status_code=404, detail="Template not found")
    return template


@router.get("", response_model=List[ReminderTemplateResponse])
async def list_templates(
    type: Optional[str] = None,
    category: Optional[str] = None,
    db: AsyncSession = Depends(get_db),
):
    query = select(ReminderTemplate).where(ReminderTemplate.is_active == True)
    if type:
        query = query.where(ReminderTemplate.type == type)
    if category:
        query = query.where(ReminderTemplate.category == category)

    result = await db.execute(query.order_by(ReminderTemplate.category, ReminderTemplate.name))
    return result.scalars().all()


@router.get("/categories", response_model=List[str])
async def list_template_categories(db: AsyncSession = Depends(get_db)):
    result = await db.execute(
        select(ReminderTemplate.category)
        .where(ReminderTemplate.is_active == True, ReminderTemplate.category.is_not(None))
        .group_by(ReminderTemplate.category)
        .order_by(ReminderTemplate.category)
    )
    return list(result.scalars().all())


@router.get("/{template_id}", response_model=ReminderTemplateResponse)
async def get_template(template_id: int, db: AsyncSession = Depends(get_db)):
    return await get_active_template(db, template_id)


@router.post("/{template_id}/create-reminder", response_model=ReminderResponse, status_code=201)
async def create_reminder_from_template(
    template_id: int,
    db: AsyncSession = Depends(get_db),
    user_id: int = Depends(get_current_user_id),
    scheduler: ReminderScheduler = Depends(get_reminder_scheduler),
):
    template = await get_active_template(db, template_id)

    try:
        reminder = reminder_from_template(template, user_id, datetime.now(timezone.utc))
    except InvalidRecurrenceError as e:
        logger.error(f"Template {template_id} has an invalid schedule: {str(e)}")
        raise HTTPException(status_code=400, detail=str(e))

    db.add(reminder)
    await db.commit()
    await db.refresh(reminder)

    scheduler.add_reminder(reminder)
    logger.info(f"Created reminder {reminder.id} from template {template_id} for user {user_id}")
    return to_response(reminder, scheduler)
