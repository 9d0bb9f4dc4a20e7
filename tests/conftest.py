import asyncio
from typing import Optional

import pytest

from campus_bot.bot.dispatcher import Dispatcher
from campus_bot.bot.responder import Keyboard, MessengerError, Responder
from campus_bot.handlers import Services, build_router
from campus_bot.schemas.event import Event, EventKind, Recipient
from campus_bot.services.moodle_service import MoodleService
from campus_bot.services.state_store import InMemoryStateStore
from campus_bot.services.user_service import Role, User


class RecordingResponder(Responder):
    """Responder fake that records every outbound call."""

    def __init__(self):
        self.sent: list[dict] = []
        self.answers: list[dict] = []
        self.deleted: list[str] = []
        self.failing_users: set[str] = set()
        self._log: list[str] = []

    async def send_message(
        self,
        recipient: Recipient,
        text: str,
        *,
        keyboard: Optional[Keyboard] = None,
        markdown: bool = False,
        attachment_token: Optional[str] = None,
    ) -> None:
        if recipient.user_id in self.failing_users:
            raise MessengerError(f"user {recipient.user_id} blocked the bot")
        self.sent.append(
            {
                "recipient": recipient,
                "text": text,
                "keyboard": keyboard,
                "markdown": markdown,
                "attachment_token": attachment_token,
            }
        )
        self._log.append(text)

    async def answer_callback(
        self,
        callback_id: str,
        *,
        notification: Optional[str] = None,
        text: Optional[str] = None,
        keyboard: Optional[Keyboard] = None,
    ) -> None:
        self.answers.append({"callback_id": callback_id, "notification": notification, "text": text, "keyboard": keyboard})
        if text is not None:
            self._log.append(text)

    async def delete_message(self, message_id: str) -> None:
        self.deleted.append(message_id)

    @property
    def texts(self) -> list[str]:
        """Everything the user saw, in order: sent messages and in-place edits."""
        return list(self._log)

    def sent_to(self, user_id: str) -> list[str]:
        return [m["text"] for m in self.sent if m["recipient"].user_id == user_id]


def make_message(user_id: str, text: str, attachments: Optional[list] = None) -> Event:
    return Event(
        kind=EventKind.MESSAGE,
        user_id=user_id,
        recipient=Recipient.for_user(user_id),
        text=text,
        message_id=f"mid-{user_id}",
        attachments=attachments or [],
    )


def make_callback(user_id: str, payload: str, callback_id: str = "cb-1") -> Event:
    return Event(
        kind=EventKind.CALLBACK,
        user_id=user_id,
        recipient=Recipient.for_user(user_id),
        callback_payload=payload,
        callback_id=callback_id,
        message_id=f"mid-{user_id}",
    )


@pytest.fixture
def responder():
    return RecordingResponder()


@pytest.fixture
def store():
    return InMemoryStateStore()


@pytest.fixture
def services():
    return Services(moodle=MoodleService("http://moodle.test"))


@pytest.fixture
def router(services):
    return build_router(services)


@pytest.fixture
def dispatcher(router, store, responder):
    return Dispatcher(router, store, responder)


@pytest.fixture
def message_event():
    return make_message


@pytest.fixture
def callback_event():
    return make_callback


@pytest.fixture
def mock_env(monkeypatch):
    """Set test environment variables."""
    monkeypatch.setenv("STATE_BACKEND", "memory")
    monkeypatch.setenv("BOT_TOKEN", "test-token")
    monkeypatch.setenv("OPENAI_API_KEY", "")


@pytest.fixture
def add_user(services):
    def _add(user_id: str, role: Role = Role.STUDENT, first_name: str = "Иван", **kwargs) -> User:
        user = User(
            user_id=user_id,
            first_name=first_name,
            last_name=kwargs.pop("last_name", "Петров"),
            age=kwargs.pop("age", 20),
            gender=kwargs.pop("gender", "male"),
            email=kwargs.pop("email", f"{user_id}@uni.ru"),
            role=role,
            **kwargs,
        )
        return services.users.create_user(user)

    return _add


def dispatch_all(dispatcher, *events) -> None:
    async def _run():
        for event in events:
            await dispatcher.dispatch(event)

    asyncio.run(_run())


@pytest.fixture
def run(dispatcher):
    """Dispatch events one after another through the shared dispatcher."""

    def _run(*events):
        dispatch_all(dispatcher, *events)

    return _run


@pytest.fixture
def load_state(store):
    def _load(user_id: str):
        return asyncio.run(store.get(user_id))

    return _load
