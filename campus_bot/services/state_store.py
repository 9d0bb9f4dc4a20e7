"""Session store for ConversationState.

Each dispatch does a plain read-modify-write with a full overwrite: the
store offers no compare-and-set, so concurrent writers for one user are
last-write-wins. The dispatcher serializes work per user instead.
"""

import time
from abc import ABC, abstractmethod
from typing import Callable, Optional

import redis.asyncio as redis_async
from pydantic import ValidationError
from redis.exceptions import RedisError

from campus_bot.logging_config import get_logger
from campus_bot.schemas.state import ConversationState

logger = get_logger("state_store")

DEFAULT_KEY_PREFIX = "maxbot:user:"
DEFAULT_TTL_SECONDS = 48 * 3600


class StateStoreError(Exception):
    """Backend or decoding failure while reading or writing a session."""


class StateStore(ABC):
    @abstractmethod
    async def get(self, user_id: str) -> Optional[ConversationState]:
        """Return the stored state, or None when absent or expired."""

    @abstractmethod
    async def save(self, user_id: str, state: ConversationState) -> None:
        """Overwrite the whole record and refresh its TTL."""

    async def close(self) -> None:
        return None


def _decode(user_id: str, raw: str) -> ConversationState:
    try:
        return ConversationState.from_json(raw)
    except ValidationError as e:
        raise StateStoreError(f"Corrupted session for user {user_id}: {e}") from e


class RedisStateStore(StateStore):
    def __init__(self, client, key_prefix: str = DEFAULT_KEY_PREFIX, ttl_seconds: int = DEFAULT_TTL_SECONDS):
        self._client = client
        self.key_prefix = key_prefix
        self.ttl_seconds = ttl_seconds

    @classmethod
    def from_url(
        cls,
        redis_url: str,
        key_prefix: str = DEFAULT_KEY_PREFIX,
        ttl_seconds: int = DEFAULT_TTL_SECONDS,
        socket_timeout_seconds: float = 2.0,
    ) -> "RedisStateStore":
        client = redis_async.from_url(
            redis_url,
            decode_responses=True,
            socket_connect_timeout=socket_timeout_seconds,
            socket_timeout=socket_timeout_seconds,
        )
        return cls(client, key_prefix=key_prefix, ttl_seconds=ttl_seconds)

    def key(self, user_id: str) -> str:
        return f"{self.key_prefix}{user_id}"

    async def get(self, user_id: str) -> Optional[ConversationState]:
        try:
            raw = await self._client.get(self.key(user_id))
        except RedisError as e:
            raise StateStoreError(f"Failed to read session: {e}") from e
        if raw is None:
            return None
        return _decode(user_id, raw)

    async def save(self, user_id: str, state: ConversationState) -> None:
        try:
            await self._client.set(self.key(user_id), state.to_json(), ex=self.ttl_seconds)
        except RedisError as e:
            raise StateStoreError(f"Failed to write session: {e}") from e

    async def close(self) -> None:
        try:
            await self._client.aclose()
        except RedisError as e:
            logger.warning(f"Failed to close redis client: {e}")


class InMemoryStateStore(StateStore):
    """Process-local store with the same serialization and TTL semantics as redis."""

    def __init__(self, ttl_seconds: int = DEFAULT_TTL_SECONDS, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._records: dict[str, tuple[float, str]] = {}

    async def get(self, user_id: str) -> Optional[ConversationState]:
        record = self._records.get(user_id)
        if record is None:
            return None
        expires_at, raw = record
        if expires_at <= self._clock():
            del self._records[user_id]
            return None
        return _decode(user_id, raw)

    async def save(self, user_id: str, state: ConversationState) -> None:
        self._records[user_id] = (self._clock() + self.ttl_seconds, state.to_json())

    def __len__(self) -> int:
        return len(self._records)
