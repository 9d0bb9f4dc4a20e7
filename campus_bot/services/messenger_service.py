from typing import Optional

import httpx

from campus_bot.bot.responder import Keyboard, MessengerError, Responder
from campus_bot.logging_config import get_logger
from campus_bot.schemas.event import Recipient

logger = get_logger("messenger_service")


class MessengerService(Responder):
    """Responder backed by the messenger Bot API over HTTP.

    Errors are raised as MessengerError; nothing is retried here.
    """

    def __init__(
        self,
        bot_token: str,
        base_url: str = "https://platform-api.max.ru",
        timeout_seconds: float = 30.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.bot_token = bot_token
        self.base_url = base_url.rstrip("/")
        self._client = client or httpx.AsyncClient(timeout=timeout_seconds)

    async def _make_request(
        self, method: str, path: str, params: Optional[dict] = None, json: Optional[dict] = None
    ) -> dict:
        query = {"access_token": self.bot_token, **(params or {})}
        try:
            response = await self._client.request(method, f"{self.base_url}{path}", params=query, json=json)
        except httpx.HTTPError as e:
            logger.error(f"Messenger API error: {e}", extra={"context": {"path": path}})
            raise MessengerError(str(e)) from e

        if response.status_code >= 400:
            logger.error(
                f"Messenger API returned {response.status_code}",
                extra={"context": {"path": path, "body": response.text[:500]}},
            )
            raise MessengerError(f"{path}: HTTP {response.status_code}")

        try:
            data = response.json()
        except ValueError:
            return {}
        if isinstance(data, dict) and data.get("success") is False:
            raise MessengerError(f"{path}: {data.get('message') or 'request rejected'}")
        return data if isinstance(data, dict) else {}

    @staticmethod
    def _body(text: Optional[str], keyboard: Optional[Keyboard], markdown: bool = False, attachment_token: Optional[str] = None) -> dict:
        body: dict = {}
        if text is not None:
            body["text"] = text
        attachments = []
        if keyboard is not None and not keyboard.is_empty():
            attachments.append({"type": "inline_keyboard", "payload": keyboard.to_payload()})
        if attachment_token:
            attachments.append({"type": "file", "payload": {"token": attachment_token}})
        if attachments or keyboard is not None:
            body["attachments"] = attachments
        if markdown:
            body["format"] = "markdown"
        return body

    async def send_message(
        self,
        recipient: Recipient,
        text: str,
        *,
        keyboard: Optional[Keyboard] = None,
        markdown: bool = False,
        attachment_token: Optional[str] = None,
    ) -> None:
        if recipient.is_empty():
            raise MessengerError("Recipient is empty")
        params = {"chat_id": recipient.chat_id} if recipient.chat_id else {"user_id": recipient.user_id}
        await self._make_request(
            "POST", "/messages", params=params, json=self._body(text, keyboard, markdown, attachment_token)
        )

    async def answer_callback(
        self,
        callback_id: str,
        *,
        notification: Optional[str] = None,
        text: Optional[str] = None,
        keyboard: Optional[Keyboard] = None,
    ) -> None:
        payload: dict = {}
        if text is not None:
            payload["message"] = self._body(text, keyboard or Keyboard())
        if notification:
            payload["notification"] = notification
        await self._make_request("POST", "/answers", params={"callback_id": callback_id}, json=payload)

    async def delete_message(self, message_id: str) -> None:
        await self._make_request("DELETE", "/messages", params={"message_id": message_id})

    async def close(self) -> None:
        await self._client.aclose()
