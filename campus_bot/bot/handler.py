from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

from campus_bot.bot.responder import Keyboard, MessengerError, Responder
from campus_bot.logging_config import get_logger
from campus_bot.schemas.event import Event, Recipient
from campus_bot.schemas.state import ConversationState

logger = get_logger("handler")


@dataclass
class Request:
    """What a handler receives: the event, the routed command/args and the user's mutable state.

    For callbacks ``command`` is empty and ``args`` carries the raw payload.
    """

    event: Event
    state: ConversationState
    command: str = ""
    args: str = ""

    @property
    def user_id(self) -> str:
        return self.event.user_id

    @property
    def recipient(self) -> Recipient:
        return self.event.recipient

    @property
    def callback_id(self) -> str:
        return self.event.callback_id

    @property
    def message_id(self) -> str:
        return self.event.message_id

    @property
    def is_callback(self) -> bool:
        return self.event.is_callback

    @property
    def data(self) -> dict[str, str]:
        return self.state.ensure_data()


class Handler(ABC):
    @abstractmethod
    async def handle(self, request: Request, responder: Responder) -> None:
        pass


async def reply(request: Request, responder: Responder, text: str, **kwargs) -> None:
    await responder.send_message(request.recipient, text, **kwargs)


async def ack(request: Request, responder: Responder, notification: Optional[str] = None) -> None:
    """Clear the loading indicator of a pressed button. No-op for plain messages."""
    if not request.callback_id:
        return
    try:
        await responder.answer_callback(request.callback_id, notification=notification)
    except MessengerError as e:
        logger.warning(f"Failed to answer callback: {e}", extra={"context": {"callback_id": request.callback_id}})


async def respond_with_keyboard(
    request: Request, responder: Responder, text: str, keyboard: Optional[Keyboard] = None
) -> None:
    """Edit the pressed message when answering a callback, otherwise send a new one."""
    if request.callback_id:
        await responder.answer_callback(request.callback_id, text=text, keyboard=keyboard)
        return
    await responder.send_message(request.recipient, text, keyboard=keyboard)


async def delete_and_send_new(
    request: Request, responder: Responder, text: str, keyboard: Optional[Keyboard] = None
) -> None:
    """Replace the pressed message with a fresh one (used when a flow ends)."""
    await ack(request, responder)
    if request.is_callback and request.message_id:
        try:
            await responder.delete_message(request.message_id)
        except MessengerError as e:
            logger.warning(
                f"Failed to delete message, continuing: {e}",
                extra={"context": {"message_id": request.message_id}},
            )
    await responder.send_message(request.recipient, text, keyboard=keyboard)


async def notify(responder: Responder, user_id: str, text: str, **kwargs) -> bool:
    """Push a message to another user. Delivery failures are logged, not raised."""
    try:
        await responder.send_message(Recipient.for_user(user_id), text, **kwargs)
        return True
    except MessengerError as e:
        logger.warning(f"Failed to notify user: {e}", extra={"context": {"user_id": user_id}})
        return False
