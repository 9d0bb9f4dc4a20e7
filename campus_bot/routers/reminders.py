from datetime import datetime

from fastapi import APIRouter, Request

from campus_bot.schemas.reminder import DueRemindersResponse, ReminderItem, ScanResponse
from campus_bot.services.reminder_service import scan_due_reminders

router = APIRouter()


@router.get("/reminders/due", response_model=DueRemindersResponse)
def get_due_reminders(request: Request):
    """Active reminders whose time has come but which have not been delivered yet."""
    now = datetime.now()
    due = request.app.state.services.reminders.list_due(now)
    items = [
        ReminderItem(
            reminder_id=r.id,
            user_id=r.user_id,
            text=r.text,
            due_at=r.due_at,
            status=r.status.value,
            minutes_overdue=int((now - r.due_at).total_seconds() // 60),
        )
        for r in due
    ]
    return DueRemindersResponse(count=len(items), reminders=items)


@router.post("/reminders/scan", response_model=ScanResponse)
async def scan_reminders(request: Request):
    """Run one reminder scan now instead of waiting for the background loop."""
    state = request.app.state
    results = await scan_due_reminders(state.services.reminders, state.responder)
    return ScanResponse(**results)
