"""Per-event orchestration: load state, resolve, invoke, save.

Events of one user are processed strictly one at a time in arrival order
(a FIFO asyncio.Lock per user id); events of different users run
concurrently. This is what makes the read-modify-write on the session
store safe, since the store itself is last-write-wins.
"""

import asyncio
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import AsyncIterator, Callable, Optional

from campus_bot.bot.handler import Handler, Request
from campus_bot.bot.responder import MessengerError, Responder
from campus_bot.bot.router import Router
from campus_bot.logging_config import LoggerAdapter, get_logger
from campus_bot.schemas.event import Event
from campus_bot.schemas.state import ConversationState
from campus_bot.services.state_store import StateStore, StateStoreError

logger = get_logger("dispatcher")

UNKNOWN_CALLBACK_NOTIFICATION = "Команда не распознана"


class DispatcherClosedError(Exception):
    pass


class UserLocks:
    """asyncio.Lock per key, dropped as soon as nobody holds or waits for it."""

    def __init__(self):
        self._locks: dict[str, asyncio.Lock] = {}
        self._users: dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        self._users[key] = self._users.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[key] -= 1
            if self._users[key] == 0:
                del self._users[key]
                del self._locks[key]

    def __len__(self) -> int:
        return len(self._locks)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Dispatcher:
    def __init__(
        self,
        router: Router,
        store: StateStore,
        responder: Responder,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.router = router
        self.store = store
        self.responder = responder
        self._clock = clock
        self._locks = UserLocks()
        self._closed = False
        self._in_flight = 0
        self._idle: Optional[asyncio.Event] = None

    @property
    def closed(self) -> bool:
        return self._closed

    async def dispatch(self, event: Event) -> None:
        if self._closed:
            raise DispatcherClosedError("Dispatcher is shutting down")

        self._in_flight += 1
        try:
            if event.user_id:
                async with self._locks.hold(event.user_id):
                    await self._process(event)
            else:
                await self._process(event)
        finally:
            self._in_flight -= 1
            if self._in_flight == 0 and self._idle is not None:
                self._idle.set()

    async def close(self) -> None:
        """Stop accepting events and wait for in-flight ones to finish."""
        self._closed = True
        if self._in_flight == 0:
            return
        if self._idle is None:
            self._idle = asyncio.Event()
        await self._idle.wait()

    async def _process(self, event: Event) -> None:
        log = LoggerAdapter(logger, {"user_id": event.user_id, "kind": event.kind.value})
        state = await self._load_state(event.user_id, log)

        if event.is_callback:
            await self._process_callback(event, state, log)
        else:
            await self._process_message(event, state, log)

    async def _process_message(self, event: Event, state: ConversationState, log: LoggerAdapter) -> None:
        decision = self.router.resolve_by_state(event.text, state)
        log = log.bind(command=decision.command)
        log.debug(f"Resolved message to {type(decision.handler).__name__}")

        request = Request(event=event, state=state, command=decision.command, args=decision.args)
        await self._invoke(decision.handler, request, log)

        if event.user_id:
            request.state.last_command = decision.command
            await self._save_state(event.user_id, request.state, log)

    async def _process_callback(self, event: Event, state: ConversationState, log: LoggerAdapter) -> None:
        payload = event.callback_payload
        handler = self.router.resolve_callback(payload, state)
        if handler is None:
            log.warning("Unrecognized callback", context={"payload": payload})
            if event.callback_id:
                try:
                    await self.responder.answer_callback(
                        event.callback_id, notification=UNKNOWN_CALLBACK_NOTIFICATION
                    )
                except MessengerError as e:
                    log.warning(f"Failed to answer unrecognized callback: {e}")
            return

        request = Request(event=event, state=state, command="", args=payload)
        await self._invoke(handler, request, log)

        if event.user_id:
            await self._save_state(event.user_id, request.state, log)

    async def _invoke(self, handler: Handler, request: Request, log: LoggerAdapter) -> None:
        try:
            await handler.handle(request, self.responder)
        except Exception as e:
            log.error(
                f"Handler {type(handler).__name__} failed: {e}",
                exc_info=True,
                context={"command": request.command, "step": request.state.step},
            )

    async def _load_state(self, user_id: str, log: LoggerAdapter) -> ConversationState:
        state = None
        if user_id:
            try:
                state = await self.store.get(user_id)
            except StateStoreError as e:
                log.error(f"Failed to load state, starting fresh: {e}")
        if state is None:
            state = ConversationState()
        state.ensure_data()
        return state

    async def _save_state(self, user_id: str, state: ConversationState, log: LoggerAdapter) -> None:
        state.last_updated_at = self._clock()
        state.ensure_data()
        try:
            await self.store.save(user_id, state)
        except StateStoreError as e:
            log.error(f"Failed to save state: {e}", context={"step": state.step})
