from fastapi import Header, HTTPException, Request

from finance_tracker.scheduler.reminder import ReminderScheduler


async def get_current_user_id(x_user_id: int = Header(...)) -> int:
    """Identity of the caller, set by the authenticating gateway."""
    if x_user_id <= 0:
        raise HTTPException(status_code=401, detail="Invalid user")
    return x_user_id


def get_reminder_scheduler(request: Request) -> ReminderScheduler:
    return request.app.state.reminder_scheduler
