from campus_bot.schemas.event import Attachment, Event, EventKind, Recipient
from campus_bot.schemas.state import ConversationState
from campus_bot.schemas.webhook import MessengerUpdate, WebhookResponse

__all__ = [
    "Attachment",
    "ConversationState",
    "Event",
    "EventKind",
    "MessengerUpdate",
    "Recipient",
    "WebhookResponse",
]
