from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field


class EventKind(str, Enum):
    MESSAGE = "message"
    CALLBACK = "callback"


class Recipient(BaseModel):
    """Where a reply goes: a chat when known, otherwise the user directly."""

    chat_id: Optional[str] = None
    user_id: Optional[str] = None

    @classmethod
    def for_user(cls, user_id: str) -> "Recipient":
        return cls(user_id=str(user_id))

    def is_empty(self) -> bool:
        return not self.chat_id and not self.user_id


class Attachment(BaseModel):
    type: str
    payload: dict[str, Any] = Field(default_factory=dict)


class Event(BaseModel):
    """Normalized inbound event, independent of the messenger wire format."""

    kind: EventKind
    user_id: str = ""
    recipient: Recipient = Field(default_factory=Recipient)
    text: str = ""
    callback_payload: str = ""
    callback_id: str = ""
    message_id: str = ""
    attachments: list[Attachment] = Field(default_factory=list)

    @property
    def is_callback(self) -> bool:
        return self.kind == EventKind.CALLBACK

    def file_reference(self) -> str:
        """Token (or url) of the first file attachment, empty if there is none."""
        for attachment in self.attachments:
            if attachment.type != "file":
                continue
            token = attachment.payload.get("token")
            if token:
                return str(token)
            url = attachment.payload.get("url")
            if url:
                return str(url)
        return ""
