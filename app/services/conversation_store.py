"""Keyed conversation state shared by every request in the process.

Each recipient key holds at most one ConversationRecord and, separately, the
FinalResponse waiting to be picked up by a poll. All mutations for a key go
through ``lock(key)`` so that check-then-set sequences (trigger the deferred
call once, refuse a second pending conversation) are linearized.
"""

import asyncio
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from app.logging_config import ConversationLogger, get_logger
from app.models.conversation import ConversationRecord, FinalResponse

logger = get_logger("conversation_store")


class StoreError(Exception):
    """Backend failure while reading or writing conversation state."""


class BaseConversationStore(ABC):
    """Interface every conversation store backend implements."""

    @abstractmethod
    def lock(self, key: str):
        """Async context manager serializing all work on one key."""

    @abstractmethod
    async def get_record(self, key: str) -> Optional[ConversationRecord]: ...

    @abstractmethod
    async def save_record(self, record: ConversationRecord) -> None: ...

    @abstractmethod
    async def delete_record(self, key: str) -> None: ...

    @abstractmethod
    async def get_response(self, key: str) -> Optional[FinalResponse]: ...

    @abstractmethod
    async def save_response(self, key: str, response: FinalResponse) -> None: ...

    @abstractmethod
    async def delete_response(self, key: str) -> None: ...

    @abstractmethod
    async def keys(self) -> list[str]:
        """Keys holding a record, a response, or both."""

    async def count_records(self) -> dict[str, int]:
        records = responses = 0
        for key in await self.keys():
            if await self.get_record(key) is not None:
                records += 1
            if await self.get_response(key) is not None:
                responses += 1
        return {"conversations": records, "pending_responses": responses}

    async def close(self) -> None:
        return None

    async def sweep(self, max_age_seconds: float, now: float) -> int:
        """Remove records (and their responses) started more than max_age ago.

        Orphaned responses older than max_age are dropped as well.
        Returns the number of keys cleaned.
        """
        removed = 0
        for key in await self.keys():
            async with self.lock(key):
                record = await self.get_record(key)
                response = await self.get_response(key)
                if record is not None and now - record.start_time > max_age_seconds:
                    await self.delete_record(key)
                    await self.delete_response(key)
                    removed += 1
                    ConversationLogger.for_record(logger, record).info("Expired conversation swept")
                elif record is None and response is not None and now - response.timestamp > max_age_seconds:
                    await self.delete_response(key)
                    removed += 1
                    ConversationLogger(logger, key, response.conversation_id).info("Orphaned response swept")
        return removed


class InMemoryConversationStore(BaseConversationStore):
    """Single-process backend: plain dicts behind one asyncio.Lock per key.

    A key's lock lives only while some task holds or waits for it.
    """

    def __init__(self):
        self._records: dict[str, ConversationRecord] = {}
        self._responses: dict[str, FinalResponse] = {}
        # key -> (lock, number of tasks holding or waiting)
        self._locks: dict[str, tuple[asyncio.Lock, int]] = {}

    @asynccontextmanager
    async def lock(self, key: str) -> AsyncIterator[None]:
        key_lock, users = self._locks.get(key, (None, 0))
        if key_lock is None:
            key_lock = asyncio.Lock()
        self._locks[key] = (key_lock, users + 1)
        try:
            async with key_lock:
                yield
        finally:
            key_lock, users = self._locks[key]
            if users <= 1:
                del self._locks[key]
            else:
                self._locks[key] = (key_lock, users - 1)

    @property
    def lock_count(self) -> int:
        return len(self._locks)

    async def get_record(self, key: str) -> Optional[ConversationRecord]:
        record = self._records.get(key)
        return record.model_copy() if record is not None else None

    async def save_record(self, record: ConversationRecord) -> None:
        self._records[record.recipient] = record.model_copy()

    async def delete_record(self, key: str) -> None:
        self._records.pop(key, None)

    async def get_response(self, key: str) -> Optional[FinalResponse]:
        return self._responses.get(key)

    async def save_response(self, key: str, response: FinalResponse) -> None:
        self._responses[key] = response

    async def delete_response(self, key: str) -> None:
        self._responses.pop(key, None)

    async def keys(self) -> list[str]:
        return sorted(set(self._records) | set(self._responses))


def create_store(config=None) -> BaseConversationStore:
    """Build the backend named by ``store_backend`` ("memory" or "redis")."""
    from app.config import settings as default_settings

    config = config or default_settings
    backend = (config.store_backend or "memory").strip().lower()

    if backend == "redis":
        from app.services.redis_store import RedisConversationStore

        logger.info("Using redis conversation store")
        return RedisConversationStore.from_url(
            config.redis_url,
            ttl_seconds=int(config.max_conversation_age_seconds),
            lock_timeout_seconds=config.redis_lock_timeout_seconds,
        )
    if backend != "memory":
        raise ValueError(f"Unknown store backend: {config.store_backend}")

    logger.info("Using in-memory conversation store")
    return InMemoryConversationStore()
