"""Deferred webhook dispatch and the polling state machine.

A message either goes to the workflow inline (immediate path) or is parked as
a ConversationRecord and answered with "pending" (deferred path). For the
deferred path the client polls; each poll reads the record, reports a
synthetic status, and at ``api_call_delay`` seconds fires the workflow call
as a background task whose result is written back to the store for a later
poll to deliver.
"""

import asyncio
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional, Union

from app.config import settings
from app.logging_config import ConversationLogger, get_logger
from app.models.conversation import ConversationRecord, FinalResponse
from app.services.alert_service import alert_error
from app.services.conversation_store import BaseConversationStore, create_store
from app.services.webhook_client import MSG_WORKFLOW_UNAVAILABLE, WebhookClient, WebhookReply

logger = get_logger("relay_service")

MSG_PENDING = "Your message was received and is being processed. This may take a minute or two."
MSG_IN_PROGRESS = "Your previous message is still being processed. Please wait for the reply."
MSG_NO_CONVERSATION = "No active conversation"
MSG_PROCESSING = "Your request is being processed..."
MSG_TIMEOUT = "Sorry, this is taking longer than expected. Please try sending your message again."
MSG_FALLBACK = "Sorry, I couldn't finish processing your message. Please try again in a moment."
MSG_RESPONSE_MISSING = "Sorry, something went wrong while preparing your answer. Please try again."

FILLER_MESSAGES = (
    "Still working on your request...",
    "Analyzing your answer, this can take a minute...",
    "Putting together a detailed reply...",
    "Almost there, thanks for your patience...",
)

# (seconds since the workflow call started, text); first match wins
PROCESSING_BANDS = (
    (60, "This is taking longer than usual, hang tight..."),
    (45, "Finalizing the response..."),
    (30, "Reviewing the details of your message..."),
    (15, "Analyzing your message..."),
)


class PollStatus(str, Enum):
    NONE = "none"
    EMPTY = "empty"
    WAITING = "waiting"
    PROCESSING = "processing"
    COMPLETED = "completed"
    TIMEOUT = "timeout"
    ERROR = "error"


@dataclass
class PollResult:
    status: PollStatus
    message: str
    elapsed_seconds: Optional[int] = None
    completed: Optional[bool] = None
    success: Optional[bool] = None

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"status": self.status.value, "message": self.message}
        if self.elapsed_seconds is not None:
            payload["elapsedSeconds"] = self.elapsed_seconds
        if self.completed is not None:
            payload["completed"] = self.completed
        if self.success is not None:
            payload["success"] = self.success
        return payload


@dataclass
class Immediate:
    ok: bool
    message: str


@dataclass
class Deferred:
    conversation_id: str


@dataclass
class Rejected:
    conversation_id: str
    reason: str = "in_progress"


DispatchResult = Union[Immediate, Deferred, Rejected]


def processing_message(webhook_elapsed: float) -> str:
    for threshold, text in PROCESSING_BANDS:
        if webhook_elapsed > threshold:
            return text
    return MSG_PROCESSING


def filler_message(count: int) -> str:
    return FILLER_MESSAGES[count % len(FILLER_MESSAGES)]


class RelayService:
    def __init__(
        self,
        store: BaseConversationStore,
        client: WebhookClient,
        *,
        clock=time.time,
        api_call_delay_seconds: Optional[float] = None,
        hard_deadline_seconds: Optional[float] = None,
        empty_message_interval_seconds: Optional[float] = None,
        immediate_timeout_seconds: Optional[float] = None,
        webhook_timeout_seconds: Optional[float] = None,
    ):
        self.store = store
        self.client = client
        self._clock = clock
        self.api_call_delay_seconds = _pick(api_call_delay_seconds, settings.api_call_delay_seconds)
        self.hard_deadline_seconds = _pick(hard_deadline_seconds, settings.hard_deadline_seconds)
        self.empty_message_interval_seconds = _pick(
            empty_message_interval_seconds, settings.empty_message_interval_seconds
        )
        self.immediate_timeout_seconds = _pick(immediate_timeout_seconds, settings.immediate_timeout_seconds)
        self.webhook_timeout_seconds = _pick(webhook_timeout_seconds, settings.webhook_timeout_seconds)
        self._tasks: set[asyncio.Task] = set()

    # Dispatch

    async def dispatch(self, key: str, message: str, defer: bool) -> DispatchResult:
        """Answer inline, or park the message for the polling loop."""
        if not defer:
            return await self._call_inline(key, message)

        async with self.store.lock(key):
            now = self._clock()
            existing = await self.store.get_record(key)
            expired = existing is not None and existing.elapsed(now) >= self.hard_deadline_seconds
            if expired:
                ConversationLogger.for_record(logger, existing).warning(
                    "Conversation past hard deadline discarded on new send",
                    context={"elapsed_seconds": int(existing.elapsed(now))},
                )
            if existing is not None and not existing.completed and not expired:
                ConversationLogger.for_record(logger, existing).info(
                    "Deferred request rejected, conversation already in progress"
                )
                return Rejected(conversation_id=existing.conversation_id)

            # a completed or expired record, or an unclaimed response, belongs to the previous exchange
            await self.store.delete_record(key)
            await self.store.delete_response(key)

            record = ConversationRecord.start(key, message, now)
            await self.store.save_record(record)

        ConversationLogger.for_record(logger, record).info(
            "Deferred conversation registered",
            context={"api_call_delay_seconds": self.api_call_delay_seconds},
        )
        return Deferred(conversation_id=record.conversation_id)

    async def _call_inline(self, key: str, message: str) -> Immediate:
        try:
            reply = await self.client.call(key, message, self.immediate_timeout_seconds)
        except Exception as exc:
            logger.error(
                "Immediate webhook call crashed",
                extra={"context": {"recipient": key, "error": str(exc)}},
                exc_info=True,
            )
            return Immediate(ok=False, message=MSG_WORKFLOW_UNAVAILABLE)
        return Immediate(ok=reply.ok, message=reply.message)

    # Polling

    async def poll(self, key: str) -> PollResult:
        """Next observable status for ``key``; never raises."""
        try:
            async with self.store.lock(key):
                return await self._advance(key)
        except Exception as exc:
            logger.error(
                "Poll failed, reporting no conversation",
                extra={"context": {"recipient": key, "error": str(exc)}},
                exc_info=True,
            )
            return PollResult(PollStatus.NONE, MSG_NO_CONVERSATION)

    async def _advance(self, key: str) -> PollResult:
        now = self._clock()
        record = await self.store.get_record(key)

        if record is None:
            response = await self.store.get_response(key)
            if response is None:
                return PollResult(PollStatus.NONE, MSG_NO_CONVERSATION)
            await self.store.delete_response(key)
            return PollResult(PollStatus.COMPLETED, response.message, completed=True, success=response.success)

        log = ConversationLogger.for_record(logger, record)
        elapsed = record.elapsed(now)
        elapsed_seconds = int(elapsed)

        if elapsed >= self.hard_deadline_seconds:
            await self.store.delete_record(key)
            await self.store.delete_response(key)
            log.warning("Conversation hit hard deadline", context={"elapsed_seconds": elapsed_seconds})
            return PollResult(PollStatus.TIMEOUT, MSG_TIMEOUT, completed=True, success=False)

        if record.completed:
            response = await self.store.get_response(key)
            await self.store.delete_record(key)
            if response is None:
                log.error("Conversation completed without a stored response")
                return PollResult(
                    PollStatus.COMPLETED, MSG_RESPONSE_MISSING, elapsed_seconds, completed=True, success=False
                )
            await self.store.delete_response(key)
            log.info("Final response delivered", context={"success": response.success})
            return PollResult(
                PollStatus.COMPLETED, response.message, elapsed_seconds, completed=True, success=response.success
            )

        if not record.webhook_called and elapsed >= self.api_call_delay_seconds:
            record.webhook_called = True
            record.webhook_start_time = now
            await self.store.save_record(record)
            self._spawn(self.complete_conversation(key, record.conversation_id, record.user_message))
            log.info("Deferred webhook call started", context={"elapsed_seconds": elapsed_seconds})
            return PollResult(PollStatus.PROCESSING, MSG_PROCESSING, elapsed_seconds)

        if record.webhook_called:
            webhook_elapsed = now - (record.webhook_start_time or now)
            return PollResult(PollStatus.PROCESSING, processing_message(webhook_elapsed), elapsed_seconds)

        if now - record.last_empty_message_time >= self.empty_message_interval_seconds:
            record.last_empty_message_time = now
            record.empty_message_count += 1
            await self.store.save_record(record)
            return PollResult(PollStatus.EMPTY, filler_message(record.empty_message_count), elapsed_seconds)

        return PollResult(PollStatus.WAITING, filler_message(record.empty_message_count), elapsed_seconds)

    # Background completion

    def _spawn(self, coro) -> asyncio.Task:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def complete_conversation(self, key: str, conversation_id: str, message: str) -> None:
        """Run the deferred workflow call and store its outcome for the next poll."""
        log = ConversationLogger(logger, key, conversation_id)
        try:
            reply = await self.client.call(key, message, self.webhook_timeout_seconds)
        except Exception as exc:
            log.error("Deferred webhook call crashed", context={"error": str(exc)}, exc_info=True)
            await alert_error("Deferred webhook call crashed", {"recipient": key, "error": str(exc)})
            reply = WebhookReply(ok=False, message=MSG_FALLBACK, error=str(exc))

        if reply.ok:
            response = FinalResponse(
                conversation_id=conversation_id, message=reply.message, timestamp=self._clock(), success=True
            )
        else:
            log.warning("Deferred webhook call failed", context={"error": reply.error})
            response = FinalResponse(
                conversation_id=conversation_id, message=MSG_FALLBACK, timestamp=self._clock(), success=False
            )

        try:
            async with self.store.lock(key):
                record = await self.store.get_record(key)
                if record is None or record.conversation_id != conversation_id:
                    log.info("Conversation gone before completion, result discarded")
                    return
                await self.store.save_response(key, response)
                record.completed = True
                await self.store.save_record(record)
        except Exception as exc:
            log.error("Failed to store deferred result", context={"error": str(exc)}, exc_info=True)
            return
        log.info("Deferred conversation completed", context={"success": response.success})

    @property
    def background_tasks(self) -> int:
        return len(self._tasks)

    async def wait_for_background(self) -> None:
        """Wait until every in-flight completion task has finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def shutdown(self) -> None:
        for task in list(self._tasks):
            task.cancel()
        await asyncio.gather(*list(self._tasks), return_exceptions=True)
        await self.store.close()


def _pick(value: Optional[float], default: float) -> float:
    return value if value is not None else default


_relay_service: Optional[RelayService] = None


def get_relay_service() -> RelayService:
    """Process-wide relay service (FastAPI dependency)."""
    global _relay_service
    if _relay_service is None:
        _relay_service = RelayService(create_store(), WebhookClient())
    return _relay_service


async def shutdown_relay_service() -> None:
    global _relay_service
    if _relay_service is None:
        return
    await _relay_service.shutdown()
    _relay_service = None
