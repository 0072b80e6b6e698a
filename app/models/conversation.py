from typing import Optional
from uuid import uuid4

from pydantic import BaseModel, Field


class ConversationRecord(BaseModel):
    """In-flight deferred exchange for one recipient.

    Times are epoch seconds taken from the relay clock. ``start_time`` and
    ``user_message`` never change after creation; ``webhook_called`` and
    ``completed`` flip to True at most once.
    """

    conversation_id: str = Field(default_factory=lambda: uuid4().hex)
    recipient: str
    user_message: str
    start_time: float
    webhook_called: bool = False
    webhook_start_time: Optional[float] = None
    completed: bool = False
    last_empty_message_time: float
    empty_message_count: int = 0

    @classmethod
    def start(cls, recipient: str, user_message: str, now: float) -> "ConversationRecord":
        return cls(
            recipient=recipient,
            user_message=user_message,
            start_time=now,
            last_empty_message_time=now,
        )

    def elapsed(self, now: float) -> float:
        return now - self.start_time


class FinalResponse(BaseModel):
    """Result of the deferred workflow call, waiting for the next poll."""

    conversation_id: str
    message: str
    timestamp: float
    success: bool
