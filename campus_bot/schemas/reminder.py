from datetime import datetime
from typing import Optional

from pydantic import BaseModel


class ReminderItem(BaseModel):
    reminder_id: str
    user_id: str
    text: str
    due_at: datetime
    status: str
    minutes_overdue: int


class DueRemindersResponse(BaseModel):
    count: int
    reminders: list[ReminderItem]


class ScanDetail(BaseModel):
    reminder_id: str
    success: bool = False
    error: Optional[str] = None


class ScanResponse(BaseModel):
    total: int
    sent: int
    failed: int
    details: list[ScanDetail]
