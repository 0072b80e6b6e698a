"""Redis backend for conversation state shared by several API instances."""

from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

import redis.asyncio as redis_async
from redis.exceptions import LockError, RedisError

from app.logging_config import get_logger
from app.models.conversation import ConversationRecord, FinalResponse
from app.services.conversation_store import BaseConversationStore, StoreError

logger = get_logger("redis_store")

RECORD_PREFIX = "relay:conversation:"
RESPONSE_PREFIX = "relay:response:"
LOCK_PREFIX = "relay:lock:"


class RedisConversationStore(BaseConversationStore):
    """Records and responses as JSON strings with a TTL; per-key Redis locks.

    The TTL is the passive expiry; the periodic sweep still runs so that
    records expire on ``start_time`` rather than on last write.
    """

    def __init__(self, redis_client, *, ttl_seconds: int = 600, lock_timeout_seconds: float = 10.0):
        self._redis = redis_client
        self.ttl_seconds = ttl_seconds
        self.lock_timeout_seconds = lock_timeout_seconds

    @classmethod
    def from_url(cls, redis_url: str, **kwargs) -> "RedisConversationStore":
        client = redis_async.from_url(redis_url, decode_responses=True)
        return cls(client, **kwargs)

    @asynccontextmanager
    async def lock(self, key: str) -> AsyncIterator[None]:
        redis_lock = self._redis.lock(
            f"{LOCK_PREFIX}{key}",
            timeout=self.lock_timeout_seconds,
            blocking_timeout=self.lock_timeout_seconds,
        )
        try:
            acquired = await redis_lock.acquire()
        except RedisError as exc:
            raise StoreError(f"Lock unavailable for {key}: {exc}") from exc
        if not acquired:
            raise StoreError(f"Timed out waiting for lock on {key}")
        try:
            yield
        finally:
            try:
                await redis_lock.release()
            except LockError as exc:
                logger.warning("Redis lock expired before release", extra={"context": {"key": key, "error": str(exc)}})

    async def _get(self, name: str) -> Optional[str]:
        try:
            return await self._redis.get(name)
        except RedisError as exc:
            raise StoreError(str(exc)) from exc

    async def _set(self, name: str, value: str) -> None:
        try:
            await self._redis.set(name, value, ex=self.ttl_seconds)
        except RedisError as exc:
            raise StoreError(str(exc)) from exc

    async def _delete(self, name: str) -> None:
        try:
            await self._redis.delete(name)
        except RedisError as exc:
            raise StoreError(str(exc)) from exc

    async def get_record(self, key: str) -> Optional[ConversationRecord]:
        raw = await self._get(f"{RECORD_PREFIX}{key}")
        return ConversationRecord.model_validate_json(raw) if raw else None

    async def save_record(self, record: ConversationRecord) -> None:
        await self._set(f"{RECORD_PREFIX}{record.recipient}", record.model_dump_json())

    async def delete_record(self, key: str) -> None:
        await self._delete(f"{RECORD_PREFIX}{key}")

    async def get_response(self, key: str) -> Optional[FinalResponse]:
        raw = await self._get(f"{RESPONSE_PREFIX}{key}")
        return FinalResponse.model_validate_json(raw) if raw else None

    async def save_response(self, key: str, response: FinalResponse) -> None:
        await self._set(f"{RESPONSE_PREFIX}{key}", response.model_dump_json())

    async def delete_response(self, key: str) -> None:
        await self._delete(f"{RESPONSE_PREFIX}{key}")

    async def keys(self) -> list[str]:
        found: set[str] = set()
        try:
            for prefix in (RECORD_PREFIX, RESPONSE_PREFIX):
                async for name in self._redis.scan_iter(match=f"{prefix}*"):
                    found.add(name[len(prefix):])
        except RedisError as exc:
            raise StoreError(str(exc)) from exc
        return sorted(found)

    async def close(self) -> None:
        await self._redis.aclose()
