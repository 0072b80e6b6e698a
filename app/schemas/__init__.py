from app.schemas.resume import ResumeRecord
from app.schemas.send_message import PollResponse, SendMessageRequest, SendMessageResponse

__all__ = ["PollResponse", "ResumeRecord", "SendMessageRequest", "SendMessageResponse"]
