from datetime import datetime
from typing import List, Literal, Optional
from pydantic import BaseModel, Field

ReminderType = Literal["income", "expense", "general", "monthly_summary"]
Frequency = Literal["daily", "weekly", "monthly", "custom"]

TIME_PATTERN = r"^([0-1]?[0-9]|2[0-3]):[0-5][0-9]$"


class ReminderCreate(BaseModel):
    type: ReminderType
    title: str = Field(min_length=1, max_length=100)
    message: str = Field(min_length=1, max_length=500)
    frequency: Frequency = "weekly"
    time: str = Field(default="09:00", pattern=TIME_PATTERN)
    day_of_week: Optional[int] = Field(default=None, ge=0, le=6)
    day_of_month: Optional[int] = Field(default=None, ge=1, le=31)
    custom_cron: Optional[str] = Field(default=None, min_length=1, max_length=100)


class ReminderUpdate(BaseModel):
    type: Optional[ReminderType] = None
    title: Optional[str] = Field(default=None, min_length=1, max_length=100)
    message: Optional[str] = Field(default=None, min_length=1, max_length=500)
    frequency: Optional[Frequency] = None
    time: Optional[str] = Field(default=None, pattern=TIME_PATTERN)
    day_of_week: Optional[int] = Field(default=None, ge=0, le=6)
    day_of_month: Optional[int] = Field(default=None, ge=1, le=31)
    custom_cron: Optional[str] = Field(default=None, min_length=1, max_length=100)
    is_active: Optional[bool] = None


class ReminderResponse(BaseModel):
    id: int
    user_id: int
    type: str
    title: str
    message: str
    frequency: str
    time: str
    day_of_week: Optional[int] = None
    day_of_month: Optional[int] = None
    custom_cron: Optional[str] = None
    is_active: bool
    last_sent: Optional[datetime] = None
    next_send: Optional[datetime] = None
    scheduled: bool = False

    class Config:
        from_attributes = True


class ReminderTemplateResponse(BaseModel):
    id: int
    name: str
    type: str
    title: str
    message: str
    frequency: str
    time: str
    day_of_week: Optional[int] = None
    day_of_month: Optional[int] = None
    is_default: bool = False
    description: Optional[str] = None
    category: Optional[str] = None

    class Config:
        from_attributes = True


class MonthlySummaryResponse(BaseModel):
    year: int
    month: int
    income: float
    expenses: float
    net: float
    top_categories: List[dict]


class ActionResponse(BaseModel):
    success: bool
    message: str
