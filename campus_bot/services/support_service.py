import itertools
import threading
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from campus_bot.logging_config import get_logger
from campus_bot.services.exceptions import NotFoundError

logger = get_logger("support_service")

USER_REPLY_SEPARATOR = "\n\n---\n\n"


class TicketStatus(str, Enum):
    RECEIVED = "received"
    IN_PROGRESS = "in_progress"
    ANSWERED = "answered"
    RESOLVED = "resolved"
    CLOSED = "closed"


OPEN_STATUSES = {TicketStatus.RECEIVED, TicketStatus.IN_PROGRESS, TicketStatus.ANSWERED}

STATUS_LABELS = {
    TicketStatus.RECEIVED: "📨 Получено",
    TicketStatus.IN_PROGRESS: "⏳ В работе",
    TicketStatus.ANSWERED: "💬 Есть ответ",
    TicketStatus.RESOLVED: "✅ Решено",
    TicketStatus.CLOSED: "🔒 Закрыто",
}


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Ticket:
    id: str
    user_id: str
    subject: str
    message: str
    department: str = "Department of Education"
    response: str = ""
    response_by: str = ""
    user_reply: str = ""
    status: TicketStatus = TicketStatus.RECEIVED
    created_at: datetime = field(default_factory=_now)
    updated_at: datetime = field(default_factory=_now)

    @property
    def is_open(self) -> bool:
        return self.status in OPEN_STATUSES


class SupportService:
    """Support tickets: created by users, answered and closed by managers."""

    def __init__(self):
        self._tickets: dict[str, Ticket] = {}
        self._lock = threading.Lock()
        self._seq = itertools.count(1)

    def create_ticket(self, user_id: str, subject: str, message: str) -> Ticket:
        now = _now()
        with self._lock:
            ticket = Ticket(
                id=f"DOE-{int(now.timestamp())}-{next(self._seq)}",
                user_id=user_id,
                subject=subject,
                message=message,
                created_at=now,
                updated_at=now,
            )
            self._tickets[ticket.id] = ticket
        logger.info(f"Ticket created: {ticket.id}", extra={"context": {"user_id": user_id}})
        return replace(ticket)

    def get_ticket(self, ticket_id: str) -> Optional[Ticket]:
        with self._lock:
            ticket = self._tickets.get(ticket_id)
            return replace(ticket) if ticket else None

    def list_tickets(self) -> list[Ticket]:
        with self._lock:
            tickets = [replace(t) for t in self._tickets.values()]
        return sorted(tickets, key=lambda t: t.created_at)

    def list_user_tickets(self, user_id: str) -> list[Ticket]:
        return [t for t in self.list_tickets() if t.user_id == user_id]

    def update_status(self, ticket_id: str, status: TicketStatus) -> Ticket:
        with self._lock:
            ticket = self._require(ticket_id)
            ticket.status = status
            ticket.updated_at = _now()
            return replace(ticket)

    def add_response(self, ticket_id: str, response: str, response_by: str) -> Ticket:
        """Staff answer. The ticket stays open until closed explicitly."""
        with self._lock:
            ticket = self._require(ticket_id)
            ticket.response = response
            ticket.response_by = response_by
            ticket.status = TicketStatus.ANSWERED
            ticket.updated_at = _now()
            return replace(ticket)

    def add_user_reply(self, ticket_id: str, reply: str) -> Ticket:
        with self._lock:
            ticket = self._require(ticket_id)
            if ticket.user_reply:
                ticket.user_reply = ticket.user_reply + USER_REPLY_SEPARATOR + reply
            else:
                ticket.user_reply = reply
            ticket.status = TicketStatus.IN_PROGRESS
            ticket.updated_at = _now()
            return replace(ticket)

    def _require(self, ticket_id: str) -> Ticket:
        ticket = self._tickets.get(ticket_id)
        if ticket is None:
            raise NotFoundError("ticket", ticket_id)
        return ticket
