from typing import Optional, Union

from pydantic import BaseModel, ConfigDict


class SendMessageRequest(BaseModel):
    action: Optional[str] = "send"
    message: Optional[str] = None
    toPhone: Optional[Union[str, int]] = None
    isSoftSkillsQuestion: Optional[bool] = None

    model_config = ConfigDict(extra="ignore")


class SendMessageResponse(BaseModel):
    ok: bool
    message: str
    status: Optional[str] = None  # pending, in_progress
    pending: Optional[bool] = None
    requestId: Optional[str] = None


class PollResponse(BaseModel):
    status: str  # none, empty, waiting, processing, completed, timeout, error
    message: str
    elapsedSeconds: Optional[int] = None
    completed: Optional[bool] = None
    success: Optional[bool] = None
