from app.models.conversation import ConversationRecord, FinalResponse
from app.models.message import Message
from app.models.user import User

__all__ = [
    "ConversationRecord",
    "FinalResponse",
    "Message",
    "User",
]
