from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict

from app.schemas.resume import ResumeRecord


class InboundEvent(BaseModel):
    type: Optional[str] = None
    data: Optional[dict[str, Any]] = None

    model_config = ConfigDict(extra="allow")


class InboundResponse(BaseModel):
    success: bool
    messageReceived: str
    externalApiResponse: Optional[str] = None
    resume: Optional[ResumeRecord] = None


class LoggedMessage(BaseModel):
    id: int
    type: str
    content: str
    timestamp: datetime


class MessagesResponse(BaseModel):
    messages: list[LoggedMessage]
    parsedResume: Optional[ResumeRecord] = None
