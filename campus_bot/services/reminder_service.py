"""User reminders and the background scan that delivers the due ones.

The service is read by the dispatch path (/reminder) and by the periodic
scanner task, so every access to the map goes through one lock. Times are
naive local datetimes, the way users type them.
"""

import itertools
import threading
import time
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Callable, Optional

from campus_bot.bot.responder import MessengerError, Responder
from campus_bot.logging_config import get_logger
from campus_bot.schemas.event import Recipient
from campus_bot.services.exceptions import NotFoundError

logger = get_logger("reminder_service")

REMINDER_TEMPLATE = "⏰ **Напоминание**\n\n{text}"


class ReminderStatus(str, Enum):
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


@dataclass
class Reminder:
    id: str
    user_id: str
    text: str
    due_at: datetime
    status: ReminderStatus = ReminderStatus.ACTIVE
    created_at: datetime = field(default_factory=datetime.now)


class ReminderService:
    def __init__(self, clock: Callable[[], datetime] = datetime.now):
        self._reminders: dict[str, Reminder] = {}
        self._lock = threading.Lock()
        self._seq = itertools.count(1)
        self._clock = clock

    def create_reminder(self, user_id: str, text: str, due_at: datetime) -> Reminder:
        with self._lock:
            reminder_id = f"REM-{int(time.time())}-{next(self._seq)}"
            reminder = Reminder(id=reminder_id, user_id=user_id, text=text, due_at=due_at, created_at=self._clock())
            self._reminders[reminder_id] = reminder
        logger.info(f"Reminder created: {reminder_id}", extra={"context": {"user_id": user_id}})
        return replace(reminder)

    def get_reminder(self, reminder_id: str) -> Optional[Reminder]:
        with self._lock:
            reminder = self._reminders.get(reminder_id)
            return replace(reminder) if reminder else None

    def list_user_reminders(self, user_id: str) -> list[Reminder]:
        with self._lock:
            items = [replace(r) for r in self._reminders.values() if r.user_id == user_id]
        return sorted(items, key=lambda r: r.due_at)

    def list_active_user_reminders(self, user_id: str) -> list[Reminder]:
        return [r for r in self.list_user_reminders(user_id) if r.status == ReminderStatus.ACTIVE]

    def list_all_active(self) -> list[Reminder]:
        with self._lock:
            items = [replace(r) for r in self._reminders.values() if r.status == ReminderStatus.ACTIVE]
        return sorted(items, key=lambda r: r.due_at)

    def list_due(self, now: Optional[datetime] = None) -> list[Reminder]:
        now = now or self._clock()
        return [r for r in self.list_all_active() if r.due_at <= now]

    def mark_completed(self, reminder_id: str) -> None:
        self._set_status(reminder_id, ReminderStatus.COMPLETED)

    def cancel_reminder(self, reminder_id: str) -> None:
        self._set_status(reminder_id, ReminderStatus.CANCELLED)

    def _set_status(self, reminder_id: str, status: ReminderStatus) -> None:
        with self._lock:
            reminder = self._reminders.get(reminder_id)
            if reminder is None:
                raise NotFoundError("reminder", reminder_id)
            reminder.status = status


async def scan_due_reminders(
    service: ReminderService, responder: Responder, now: Optional[datetime] = None
) -> dict:
    """Deliver every due reminder once. Returns summary.

    A reminder is completed only after a successful send; on failure it
    stays active and is retried by the next scan.
    """
    due = service.list_due(now)
    results = {"total": len(due), "sent": 0, "failed": 0, "details": []}

    for reminder in due:
        try:
            await responder.send_message(
                Recipient.for_user(reminder.user_id),
                REMINDER_TEMPLATE.format(text=reminder.text),
                markdown=True,
            )
        except MessengerError as e:
            results["failed"] += 1
            results["details"].append({"reminder_id": reminder.id, "error": str(e)})
            logger.warning(
                f"Failed to deliver reminder: {e}",
                extra={"context": {"reminder_id": reminder.id, "user_id": reminder.user_id}},
            )
            continue

        try:
            service.mark_completed(reminder.id)
        except NotFoundError:
            logger.warning(f"Reminder disappeared before completion: {reminder.id}")
        results["sent"] += 1
        results["details"].append({"reminder_id": reminder.id, "success": True})

    if results["total"]:
        logger.info(
            "Reminder scan finished",
            extra={"context": {k: results[k] for k in ("total", "sent", "failed")}},
        )
    return results
