from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from campus_bot.schemas.event import Recipient


class ButtonIntent(str, Enum):
    DEFAULT = "default"
    POSITIVE = "positive"
    NEGATIVE = "negative"


@dataclass(frozen=True)
class Button:
    text: str
    payload: str
    intent: ButtonIntent = ButtonIntent.DEFAULT


@dataclass
class Keyboard:
    """Inline keyboard made of rows of callback buttons."""

    rows: list[list[Button]] = field(default_factory=list)

    def row(self, *buttons: Button) -> "Keyboard":
        if buttons:
            self.rows.append(list(buttons))
        return self

    def is_empty(self) -> bool:
        return not any(self.rows)

    def to_payload(self) -> dict:
        return {
            "buttons": [
                [
                    {"type": "callback", "text": b.text, "payload": b.payload, "intent": b.intent.value}
                    for b in row
                ]
                for row in self.rows
            ]
        }


class MessengerError(Exception):
    """Outbound delivery failed. Never retried by the bot itself."""


class Responder(ABC):
    """Outbound capability used by handlers: send, edit-via-callback, delete."""

    @abstractmethod
    async def send_message(
        self,
        recipient: Recipient,
        text: str,
        *,
        keyboard: Optional[Keyboard] = None,
        markdown: bool = False,
        attachment_token: Optional[str] = None,
    ) -> None:
        pass

    @abstractmethod
    async def answer_callback(
        self,
        callback_id: str,
        *,
        notification: Optional[str] = None,
        text: Optional[str] = None,
        keyboard: Optional[Keyboard] = None,
    ) -> None:
        """Acknowledge a button press. With ``text`` the source message is edited in place."""
        pass

    @abstractmethod
    async def delete_message(self, message_id: str) -> None:
        pass

    async def close(self) -> None:
        return None
