from typing import Any, Optional

from pydantic import BaseModel

from campus_bot.schemas.event import Attachment, Event, EventKind, Recipient

UPDATE_MESSAGE_CREATED = "message_created"
UPDATE_MESSAGE_CALLBACK = "message_callback"


class MessengerUser(BaseModel):
    user_id: int
    name: Optional[str] = None
    username: Optional[str] = None
    is_bot: bool = False


class MessengerRecipient(BaseModel):
    chat_id: Optional[int] = None
    chat_type: Optional[str] = None  # dialog, chat, channel
    user_id: Optional[int] = None


class MessengerAttachment(BaseModel):
    type: str
    payload: Optional[dict[str, Any]] = None


class MessengerMessageBody(BaseModel):
    mid: str = ""
    seq: Optional[int] = None
    text: Optional[str] = None
    attachments: Optional[list[MessengerAttachment]] = None


class MessengerMessage(BaseModel):
    sender: Optional[MessengerUser] = None
    recipient: MessengerRecipient = MessengerRecipient()
    timestamp: Optional[int] = None
    body: Optional[MessengerMessageBody] = None


class MessengerCallback(BaseModel):
    callback_id: str
    payload: Optional[str] = None
    user: MessengerUser
    timestamp: Optional[int] = None


class MessengerUpdate(BaseModel):
    update_type: str
    timestamp: Optional[int] = None
    message: Optional[MessengerMessage] = None
    callback: Optional[MessengerCallback] = None

    def to_event(self) -> Optional[Event]:
        """Convert to a normalized Event. Returns None for update types the bot ignores."""
        if self.update_type == UPDATE_MESSAGE_CALLBACK and self.callback:
            return self._callback_event()
        if self.update_type == UPDATE_MESSAGE_CREATED and self.message:
            return self._message_event()
        return None

    def _message_event(self) -> Event:
        message = self.message
        body = message.body or MessengerMessageBody()
        sender_id = str(message.sender.user_id) if message.sender else ""
        if not sender_id and message.recipient.user_id is not None:
            sender_id = str(message.recipient.user_id)

        return Event(
            kind=EventKind.MESSAGE,
            user_id=sender_id,
            recipient=_reply_target(message.recipient, sender_id),
            text=body.text or "",
            message_id=body.mid,
            attachments=[
                Attachment(type=item.type, payload=item.payload or {}) for item in (body.attachments or [])
            ],
        )

    def _callback_event(self) -> Event:
        callback = self.callback
        user_id = str(callback.user.user_id)
        recipient = Recipient.for_user(user_id)
        message_id = ""
        if self.message:
            recipient = _reply_target(self.message.recipient, user_id)
            if self.message.body:
                message_id = self.message.body.mid

        return Event(
            kind=EventKind.CALLBACK,
            user_id=user_id,
            recipient=recipient,
            callback_payload=callback.payload or "",
            callback_id=callback.callback_id,
            message_id=message_id,
        )


def _reply_target(recipient: MessengerRecipient, fallback_user_id: str) -> Recipient:
    if recipient.chat_id is not None:
        return Recipient(chat_id=str(recipient.chat_id))
    return Recipient(user_id=fallback_user_id or None)


class WebhookResponse(BaseModel):
    success: bool
    message: Optional[str] = None
